from typing import Callable, TypeAlias

from .config import Configuration
from .http.model import HTTPRequest, HTTPResponse

RESPONSE_PREFIX: str = "And the pre-configured environment-based response is: "

THandler: TypeAlias = Callable[[HTTPRequest, Configuration], HTTPResponse]


def respond(request: HTTPRequest, config: Configuration) -> HTTPResponse:
	"""Responds to any request, whatever its method, path or headers, with
	the configured value. This never fails and has no side effects."""
	return request.respond(
		RESPONSE_PREFIX + config.responseText, "text/plain; charset=utf-8"
	)


# EOF
