from abc import ABC, abstractmethod
from enum import Enum
from functools import lru_cache
from typing import (
	Mapping,
	NamedTuple,
	TypeAlias,
	Union,
)

from ..utils.io import DEFAULT_ENCODING
from .status import HTTP_STATUS

# -----------------------------------------------------------------------------
#
# HELPERS
#
# -----------------------------------------------------------------------------


# Header names come from clients, so only a bounded number of them is kept
HEADER_NAMES_CACHE: int = 256


@lru_cache(maxsize=HEADER_NAMES_CACHE)
def headername(name: str) -> str:
	"""Normalizes the header name as `Kebab-Case`."""
	return "-".join(_.capitalize() for _ in name.split("-"))


def hasToken(value: str | None, token: str) -> bool:
	"""Tells if the comma-separated header `value` lists `token`
	(case-insensitive), as in `Connection: keep-alive, Upgrade`."""
	if not value:
		return False
	return any(_.strip().lower() == token for _ in value.split(","))


# -----------------------------------------------------------------------------
#
# DATA MODEL
#
# -----------------------------------------------------------------------------


class HTTPRequestLine(NamedTuple):
	"""Represents a request status line"""

	method: str
	target: str
	path: str
	query: str
	protocol: str


class HTTPHeaders(NamedTuple):
	"""Wraps HTTP headers, keeping key information for request processing."""

	headers: dict[str, str]
	contentType: str | None = None
	contentLength: int | None = None
	transferEncoding: str | None = None

	@property
	def isChunked(self) -> bool:
		return hasToken(self.transferEncoding, "chunked")


class HTTPProcessingStatus(Enum):
	"""Internal parser/processor state management"""

	Processing = 0
	Body = 1
	Complete = 2
	Timeout = 10
	NoData = 11
	BadFormat = 12


# Type alias for what the parser produces
HTTPAtom: TypeAlias = Union[
	HTTPRequestLine,
	HTTPHeaders,
	HTTPProcessingStatus,
	"HTTPRequest",
]

# -----------------------------------------------------------------------------
#
# WRITER
#
# -----------------------------------------------------------------------------


class HTTPBodyWriter(ABC):
	"""A generic writer for response payloads, typically to a socket."""

	__slots__ = ["shouldClose"]

	def __init__(self) -> None:
		self.shouldClose: bool = False

	async def write(self, data: bytes | None) -> bool:
		"""Writes the given bytes, `None` and empty payloads are no-ops."""
		if not data:
			return True
		return await self._writeBytes(data)

	@abstractmethod
	async def _writeBytes(self, chunk: bytes) -> bool: ...


# -----------------------------------------------------------------------------
#
# REQUESTS
#
# -----------------------------------------------------------------------------


class HTTPRequest:
	"""Represents an HTTP request head, which also acts as a factory for
	responses. Requests are only ever built by the parser, fully populated."""

	__slots__ = [
		"protocol",
		"method",
		"target",
		"path",
		"query",
		"_headers",
	]

	def __init__(
		self,
		method: str,
		target: str,
		path: str,
		query: dict[str, str] | None,
		headers: HTTPHeaders,
		protocol: str = "HTTP/1.1",
	):
		self.method: str = method
		self.target: str = target
		self.path: str = path
		self.query: dict[str, str] = query or {}
		self.protocol: str = protocol
		self._headers: HTTPHeaders = headers

	@property
	def headers(self) -> dict[str, str]:
		return self._headers.headers

	def header(self, name: str) -> str | None:
		return self._headers.headers.get(headername(name))

	@property
	def keepAlive(self) -> bool:
		"""HTTP/1.1 connections persist unless the client asks to close,
		HTTP/1.0 ones only when the client asks to keep them."""
		connection: str | None = self.header("Connection")
		if self.protocol == "HTTP/1.0":
			return hasToken(connection, "keep-alive")
		else:
			return not hasToken(connection, "close")

	@property
	def expectsContinue(self) -> bool:
		return hasToken(self.header("Expect"), "100-continue")

	def respond(
		self,
		content: str | None = None,
		contentType: str | None = None,
		status: int = 200,
		headers: dict[str, str] | None = None,
		message: str | None = None,
	) -> "HTTPResponse":
		return HTTPResponse.Create(
			status=status,
			message=message,
			content=content,
			contentType=contentType,
			headers=headers,
		)

	def __str__(self) -> str:
		return f"Request({self.method} {self.target} {self.protocol} {self.headers})"


# -----------------------------------------------------------------------------
#
# RESPONSE
#
# -----------------------------------------------------------------------------


class HTTPResponse:
	"""An HTTP response with a textual body."""

	@staticmethod
	def Create(
		content: str | None = None,
		contentType: str | None = None,
		headers: dict[str, str] | None = None,
		status: int = 200,
		message: str | None = None,
		protocol: str = "HTTP/1.1",
	) -> "HTTPResponse":
		"""Factory method to create HTTP response objects."""
		res = HTTPResponse(
			protocol=protocol,
			status=status,
			message=message or HTTP_STATUS.get(status, "Unknown status"),
			headers={},
			body="" if content is None else content,
		)
		if headers:
			res.setHeaders(headers)
		if contentType is not None:
			res.setHeader("Content-Type", contentType)
		return res

	__slots__ = [
		"protocol",
		"status",
		"message",
		"headers",
		"body",
	]

	def __init__(
		self,
		protocol: str,
		status: int,
		message: str | None,
		headers: dict[str, str],
		body: str = "",
	):
		self.protocol: str = protocol
		self.status: int = status
		self.message: str | None = message
		self.headers: dict[str, str] = headers
		self.body: str = body

	@property
	def payload(self) -> bytes:
		return self.body.encode(DEFAULT_ENCODING)

	@property
	def contentLength(self) -> int:
		return len(self.payload)

	def getHeader(self, name: str) -> str | None:
		return self.headers.get(headername(name))

	def setHeader(self, name: str, value: str | int | None) -> "HTTPResponse":
		if value is None:
			self.headers.pop(headername(name), None)
		else:
			self.headers[headername(name)] = str(value)
		return self

	def setHeaders(self, headers: Mapping[str, str | int | None]) -> "HTTPResponse":
		for k, v in headers.items():
			self.setHeader(k, v)
		return self

	def head(self) -> bytes:
		"""Serializes the head as a payload, the `Content-Length` always
		reflects the encoded body."""
		message: str = self.message or HTTP_STATUS.get(self.status, "Unknown status")
		headers: dict[str, str] = self.headers | {
			"Content-Length": str(self.contentLength)
		}
		lines: list[str] = [f"{headername(k)}: {v}" for k, v in headers.items()]
		lines.insert(0, f"{self.protocol} {self.status} {message}")
		lines.append("")
		lines.append("")
		# Header values are Latin-1 on the wire
		return "\r\n".join(lines).encode("latin-1")

	def __str__(self) -> str:
		return f"Response({self.protocol} {self.status} {self.message} {self.headers} {self.body!r})"


# EOF
