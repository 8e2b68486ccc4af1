"""
Pytest fixtures for envreply tests.

Provides fixtures for starting/stopping:
- A live server bound to an ephemeral port, running in a background thread
- Raw socket exchanges, for what an HTTP client library would not send
"""
import asyncio
import socket
import threading
from typing import Callable, Iterator, NamedTuple

import pytest

from envreply.config import Configuration
from envreply.handler import THandler, respond
from envreply.server import AIOSocketServer, ServerOptions


class RunningServer(NamedTuple):
    host: str
    port: int
    thread: threading.Thread
    stopped: threading.Event

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}"

    def stop(self) -> None:
        self.stopped.set()
        self.thread.join(timeout=5)


def start_server(
    config: Configuration, handler: THandler = respond, **options
) -> RunningServer:
    """
    Start a server answering with the given configuration.

    The listening socket is bound before the thread starts, so connections
    made right after this returns are queued in the backlog.
    """
    stopped = threading.Event()
    opts = ServerOptions(
        host="127.0.0.1",
        port=0,
        polling=0.05,
        stopSignals=False,
        condition=lambda: not stopped.is_set(),
    )._replace(**options)
    sock = AIOSocketServer.Bind(opts)
    port = sock.getsockname()[1]
    thread = threading.Thread(
        target=asyncio.run,
        args=(AIOSocketServer.Serve(config, opts, handler, server=sock),),
        name=f"envreply-{port}",
        daemon=True,
    )
    thread.start()
    return RunningServer("127.0.0.1", port, thread, stopped)


def exchange(port: int, data: bytes, timeout: float = 5.0) -> bytes:
    """
    Send raw bytes and read until the server closes the connection.

    Returns:
        Everything the server wrote back
    """
    with socket.create_connection(("127.0.0.1", port), timeout=timeout) as sock:
        sock.sendall(data)
        return read_until_closed(sock)


def read_until_closed(sock: socket.socket) -> bytes:
    chunks = []
    while True:
        try:
            chunk = sock.recv(65536)
        except ConnectionResetError:
            break
        if not chunk:
            break
        chunks.append(chunk)
    return b"".join(chunks)


@pytest.fixture
def serve() -> Iterator[Callable[..., RunningServer]]:
    """
    Factory fixture starting servers, all stopped on teardown.

    Yields:
        A callable taking a Configuration (and optional handler/options)
    """
    servers = []

    def factory(config: Configuration, handler: THandler = respond, **options):
        server = start_server(config, handler, **options)
        servers.append(server)
        return server

    try:
        yield factory
    finally:
        for server in servers:
            server.stop()


@pytest.fixture
def hello_server(serve) -> RunningServer:
    """A server configured with `response=hello`."""
    return serve(Configuration.FromEnv({"response": "hello"}))
