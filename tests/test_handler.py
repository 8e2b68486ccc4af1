"""
Request handler tests.

The handler maps any request to the same response, built from the
configuration alone.
"""
import pytest

from envreply.config import ABSENT, Configuration
from envreply.handler import RESPONSE_PREFIX, respond
from envreply.http.parser import HTTPParser
from envreply.http.model import HTTPRequest


def parse(raw: bytes) -> HTTPRequest:
    return next(_ for _ in HTTPParser().feed(raw) if isinstance(_, HTTPRequest))


@pytest.mark.parametrize(
    "raw",
    [
        b"GET / HTTP/1.1\r\n\r\n",
        b"GET /anything?x=1 HTTP/1.1\r\nHost: example.com\r\n\r\n",
        b"POST /x HTTP/1.1\r\nContent-Length: 0\r\n\r\n",
        b"DELETE /a/b/c HTTP/1.0\r\nAuthorization: Bearer t\r\n\r\n",
        b"BREW /pot HTTP/1.1\r\nAccept-Additions: milk\r\n\r\n",
    ],
)
def test_any_request_gets_the_configured_value(raw):
    """Method, path and headers have no influence on the response."""
    res = respond(parse(raw), Configuration("hello"))

    assert res.status == 200
    assert res.body == "And the pre-configured environment-based response is: hello"


def test_absent_value_renders_as_undefined():
    res = respond(parse(b"GET / HTTP/1.1\r\n\r\n"), Configuration())

    assert res.status == 200
    assert ABSENT == "undefined"
    assert res.body == RESPONSE_PREFIX + "undefined"


def test_empty_value_is_not_absent():
    res = respond(parse(b"GET / HTTP/1.1\r\n\r\n"), Configuration(""))

    assert res.body == RESPONSE_PREFIX


def test_value_is_substituted_verbatim():
    value = "  spaces, ünïcödé & <markup> %s {}  "
    res = respond(parse(b"GET / HTTP/1.1\r\n\r\n"), Configuration(value))

    assert res.body == RESPONSE_PREFIX + value
    assert res.contentLength == len((RESPONSE_PREFIX + value).encode("utf8"))


def test_response_is_plain_text():
    res = respond(parse(b"GET / HTTP/1.1\r\n\r\n"), Configuration("hello"))

    assert res.getHeader("content-type") == "text/plain; charset=utf-8"
    assert res.message == "OK"


def test_responses_are_independent():
    """Each call builds a new response, so the server may add headers to one
    without affecting the next."""
    config = Configuration("hello")
    request = parse(b"GET / HTTP/1.1\r\n\r\n")
    a = respond(request, config)
    a.setHeader("Connection", "close")
    b = respond(request, config)

    assert a is not b
    assert b.getHeader("Connection") is None
    assert a.body == b.body
