"""
Request/response model tests.
"""
import pytest

from envreply.http.model import (
    HEADER_NAMES_CACHE,
    HTTPHeaders,
    HTTPRequest,
    HTTPResponse,
    hasToken,
    headername,
)


def request(protocol: str = "HTTP/1.1", **headers: str) -> HTTPRequest:
    return HTTPRequest(
        method="GET",
        target="/",
        path="/",
        query=None,
        headers=HTTPHeaders({headername(k.replace("_", "-")): v for k, v in headers.items()}),
        protocol=protocol,
    )


def test_headername():
    assert headername("content-length") == "Content-Length"
    assert headername("X-REQUEST-ID") == "X-Request-Id"
    assert headername("host") == "Host"


def test_headername_cache_is_bounded():
    for i in range(HEADER_NAMES_CACHE * 4):
        assert headername(f"x-made-up-{i}") == f"X-Made-Up-{i}"

    assert headername.cache_info().currsize <= HEADER_NAMES_CACHE
    assert headername("content-length") == "Content-Length"


def test_has_token():
    assert hasToken("keep-alive, Upgrade", "upgrade")
    assert hasToken("Close", "close")
    assert not hasToken("closed", "close")
    assert not hasToken(None, "close")


@pytest.mark.parametrize(
    "protocol,connection,expected",
    [
        ("HTTP/1.1", None, True),
        ("HTTP/1.1", "close", False),
        ("HTTP/1.1", "Keep-Alive", True),
        ("HTTP/1.0", None, False),
        ("HTTP/1.0", "keep-alive", True),
    ],
)
def test_keep_alive(protocol, connection, expected):
    headers = {} if connection is None else {"Connection": connection}

    assert request(protocol, **headers).keepAlive is expected


def test_expects_continue():
    assert request(Expect="100-continue").expectsContinue
    assert not request().expectsContinue


def test_request_has_no_query_by_default():
    assert request().query == {}


def test_response_head():
    res = HTTPResponse.Create("héllo", "text/plain")
    res.setHeader("connection", "close")

    assert res.head() == (
        b"HTTP/1.1 200 OK\r\n"
        b"Content-Type: text/plain\r\n"
        b"Connection: close\r\n"
        b"Content-Length: 6\r\n"
        b"\r\n"
    )
    assert res.payload == "héllo".encode("utf8")


def test_content_length_always_matches_body():
    res = HTTPResponse.Create("abc", headers={"Content-Length": "999"})

    assert b"Content-Length: 3\r\n" in res.head()
    assert b"999" not in res.head()


def test_set_header_to_none_removes_it():
    res = HTTPResponse.Create("", headers={"X-Remove": "1"})
    res.setHeaders({"x-remove": None, "X-Count": 2})

    assert res.getHeader("X-Remove") is None
    assert res.getHeader("x-count") == "2"


def test_reason_phrases():
    assert HTTPResponse.Create(status=200).message == "OK"
    assert HTTPResponse.Create(status=599).message == "Unknown status"
