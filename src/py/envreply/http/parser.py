from string import ascii_letters, digits, hexdigits
from typing import Iterator, Literal
from ..utils.io import LineParser
from .model import (
	HTTPRequest,
	HTTPRequestLine,
	HTTPHeaders,
	HTTPAtom,
	HTTPProcessingStatus,
	headername,
)

BAD_FORMAT: Literal[HTTPProcessingStatus.BadFormat] = HTTPProcessingStatus.BadFormat

# SEE: https://www.rfc-editor.org/rfc/rfc9110#name-tokens
TOKEN: frozenset[str] = frozenset(ascii_letters + digits + "!#$%&'*+-.^_`|~")
HEX: frozenset[str] = frozenset(hexdigits)

# Same default as Node's `http.maxHeaderSize`
MAX_HEAD_SIZE: int = 16 * 1024
MAX_CHUNK_LINE: int = 4 * 1024


def istoken(text: str) -> bool:
	return bool(text) and all(_ in TOKEN for _ in text)


class MessageParser:
	"""Parses an HTTP request line."""

	__slots__ = ["line", "value"]

	def __init__(self) -> None:
		self.line: LineParser = LineParser()
		self.value: HTTPRequestLine | None = None

	def flush(self) -> HTTPRequestLine | None:
		res = self.value
		self.reset()
		return res

	def reset(self) -> "MessageParser":
		self.line.reset()
		self.value = None
		return self

	def feed(
		self, chunk: bytes, start: int = 0
	) -> tuple[bool | HTTPProcessingStatus | None, int]:
		"""Returns `True` once a request line is available in `value`,
		`None` when more data is needed (or an empty line was skipped) and
		`BAD_FORMAT` when the line is not a valid request line."""
		line, read = self.line.feed(chunk, start)
		if line is None:
			return None, read
		elif not line:
			# Empty lines before the request line are ignored
			return None, read
		try:
			ln: str = line.decode("ascii")
		except UnicodeDecodeError:
			return BAD_FORMAT, read
		parts: list[str] = ln.split(" ")
		if len(parts) != 3:
			return BAD_FORMAT, read
		method, target, protocol = parts
		if (
			not istoken(method)
			or not target
			or not protocol.startswith("HTTP/1.")
			or not protocol[7:].isdigit()
		):
			return BAD_FORMAT, read
		p: list[str] = target.split("?", 1)
		self.value = HTTPRequestLine(
			method, target, p[0], p[1] if len(p) > 1 else "", protocol
		)
		return True, read

	def __str__(self) -> str:
		return f"MessageParser({self.value})"


class HeadersParser:
	__slots__ = [
		"headers",
		"contentType",
		"contentLength",
		"transferEncoding",
		"line",
	]

	def __init__(self) -> None:
		self.line: LineParser = LineParser()
		self.headers: dict[str, str] = {}
		self.contentType: str | None = None
		self.contentLength: int | None = None
		self.transferEncoding: str | None = None

	def flush(self) -> HTTPHeaders:
		res = HTTPHeaders(
			self.headers, self.contentType, self.contentLength, self.transferEncoding
		)
		self.reset()
		return res

	def reset(self) -> "HeadersParser":
		self.line.reset()
		self.headers = {}
		self.contentType = None
		self.contentLength = None
		self.transferEncoding = None
		return self

	def feed(
		self, chunk: bytes, start: int = 0
	) -> tuple[str | Literal[False] | HTTPProcessingStatus | None, int]:
		"""Feeds data from chunk, starting at `start` offset. Returns
		a value and the number of bytes read. When the value is `None`, no
		header has been extracted, when the value is `False` it's the empty
		line ending the head, when it is a string, the header of that name
		was added, and `BAD_FORMAT` denotes an invalid header line."""
		line, read = self.line.feed(chunk, start)
		if line is None:
			return None, read
		elif not line:
			# An empty line denotes the end of headers
			return False, read
		# Obsolete line folding is rejected, as with any line that is not
		# a `name: value` pair.
		ln: str = line.decode("latin-1")
		i = ln.find(":")
		if i <= 0 or not istoken(ln[:i]):
			return BAD_FORMAT, read
		h: str = ln[:i].lower()
		v: str = ln[i + 1 :].strip(" \t")
		if h == "content-length":
			if not (v.isascii() and v.isdigit()) or (
				self.contentLength is not None and self.contentLength != int(v)
			):
				return BAD_FORMAT, read
			self.contentLength = int(v)
		elif h == "content-type":
			self.contentType = v
		elif h == "transfer-encoding":
			self.transferEncoding = (
				v if self.transferEncoding is None else f"{self.transferEncoding}, {v}"
			)
		n: str = headername(h)
		# Repeated headers are combined as a comma-separated list
		self.headers[n] = v if n not in self.headers else f"{self.headers[n]}, {v}"
		return n, read

	def __str__(self) -> str:
		return f"HeadersParser({self.headers})"


class BodyLengthParser:
	"""Skips over the body of a request with `Content-Length` set."""

	__slots__ = ["expected", "read"]

	def __init__(self) -> None:
		self.expected: int = 0
		self.read: int = 0

	def reset(self, length: int = 0) -> "BodyLengthParser":
		self.expected = length
		self.read = 0
		return self

	def feed(self, chunk: bytes, start: int = 0) -> tuple[bool, int]:
		to_read: int = min(len(chunk) - start, self.expected - self.read)
		self.read += to_read
		return self.read >= self.expected, to_read


class BodyChunkedParser:
	"""Skips over a body sent with `Transfer-Encoding: chunked`, including
	its trailers."""

	__slots__ = ["line", "remaining", "trailers"]

	def __init__(self) -> None:
		self.line: LineParser = LineParser()
		# Bytes left in the current chunk, including its CRLF
		self.remaining: int = 0
		self.trailers: bool = False

	def reset(self) -> "BodyChunkedParser":
		self.line.reset()
		self.remaining = 0
		self.trailers = False
		return self

	def feed(
		self, chunk: bytes, start: int = 0
	) -> tuple[bool | HTTPProcessingStatus | None, int]:
		if self.remaining:
			read: int = min(len(chunk) - start, self.remaining)
			self.remaining -= read
			return None, read
		line, read = self.line.feed(chunk, start)
		if line is None:
			return (BAD_FORMAT if self.line.pending > MAX_CHUNK_LINE else None), read
		self.line.reset()
		if self.trailers:
			# The body ends with an empty line after the trailers
			return (True if not line else None), read
		# The chunk size may be followed by `;` and extensions
		size: str = line.split(b";", 1)[0].strip().decode("latin-1")
		if not size or not all(_ in HEX for _ in size):
			return BAD_FORMAT, read
		n: int = int(size, 16)
		if n == 0:
			self.trailers = True
		else:
			self.remaining = n + 2
		return None, read


class HTTPParser:
	"""A stateful, incremental HTTP request parser. Requests are yielded
	as soon as their head is complete, their body (if any) is then skipped
	so that the next request on the same connection is parsed correctly."""

	def __init__(self, maxHeadSize: int = MAX_HEAD_SIZE) -> None:
		self.maxHeadSize: int = maxHeadSize
		self.message: MessageParser = MessageParser()
		self.headers: HeadersParser = HeadersParser()
		self.bodyLength: BodyLengthParser = BodyLengthParser()
		self.bodyChunked: BodyChunkedParser = BodyChunkedParser()
		self.parser: (
			MessageParser | HeadersParser | BodyLengthParser | BodyChunkedParser
		) = self.message
		self.requestLine: HTTPRequestLine | None = None
		self.headSize: int = 0
		self.failed: bool = False

	def reset(self) -> "HTTPParser":
		self.message.reset()
		self.headers.reset()
		self.bodyLength.reset()
		self.bodyChunked.reset()
		self.parser = self.message
		self.requestLine = None
		self.headSize = 0
		self.failed = False
		return self

	def fail(self) -> HTTPProcessingStatus:
		self.failed = True
		return BAD_FORMAT

	def feed(self, chunk: bytes) -> Iterator[HTTPAtom]:
		if self.failed:
			yield BAD_FORMAT
			return
		size: int = len(chunk)
		offset: int = 0
		while offset < size:
			# The expectation here is that when we feed a chunk and it's
			# partially read, we don't need to re-feed it again. The underlying
			# parser will keep a buffer up until it is flushed.
			if self.parser is self.message:
				ok, read = self.message.feed(chunk, offset)
				offset += read
				self.headSize += read
				if ok is BAD_FORMAT or self.headSize > self.maxHeadSize:
					yield self.fail()
					return
				elif ok:
					line = self.message.flush()
					self.requestLine = line
					if line is not None:
						yield line
						self.parser = self.headers
			elif self.parser is self.headers:
				name, read = self.headers.feed(chunk, offset)
				offset += read
				self.headSize += read
				if name is BAD_FORMAT or self.headSize > self.maxHeadSize:
					yield self.fail()
					return
				elif name is False:
					# We've parsed the whole head
					headers = self.headers.flush()
					# SEE: https://www.rfc-editor.org/rfc/rfc9112#section-6.3
					# Without `chunked`, the body of a request has no framing.
					if headers.transferEncoding is not None and not headers.isChunked:
						yield self.fail()
						return
					line = self.requestLine
					yield headers
					if line is not None:
						yield HTTPRequest(
							method=line.method,
							target=line.target,
							path=line.path,
							query=parseQuery(line.query),
							headers=headers,
							protocol=line.protocol,
						)
					self.headSize = 0
					# The chunked encoding takes precedence over the length
					if headers.isChunked:
						self.parser = self.bodyChunked.reset()
						yield HTTPProcessingStatus.Body
					elif headers.contentLength:
						self.parser = self.bodyLength.reset(headers.contentLength)
						yield HTTPProcessingStatus.Body
					else:
						self.parser = self.message.reset()
						yield HTTPProcessingStatus.Complete
				else:
					# `name` is going to be the header name as a string there.
					pass
			elif self.parser is self.bodyLength:
				done, read = self.bodyLength.feed(chunk, offset)
				offset += read
				if done:
					self.parser = self.message.reset()
					yield HTTPProcessingStatus.Complete
			elif self.parser is self.bodyChunked:
				done, read = self.bodyChunked.feed(chunk, offset)
				offset += read
				if done is BAD_FORMAT:
					yield self.fail()
					return
				elif done:
					self.parser = self.message.reset()
					yield HTTPProcessingStatus.Complete
			else:
				raise RuntimeError(f"Unsupported parser: {self.parser}")


def parseQuery(text: str) -> dict[str, str]:
	res: dict[str, str] = {}
	if not text:
		return res
	for item in text.split("&"):
		kv = item.split("=", 1)
		if len(kv) == 1:
			res[item] = ""
		else:
			res[kv[0]] = kv[1]
	return res


# EOF
