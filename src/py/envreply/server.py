import asyncio
import errno
import socket
import threading
from dataclasses import dataclass
from email.utils import formatdate
from signal import SIGINT, SIGTERM
from typing import Any, Callable, NamedTuple

from .config import HOST, LOG_REQUESTS, PORT, Configuration
from .handler import THandler, respond
from .http.model import (
	HTTPBodyWriter,
	HTTPProcessingStatus,
	HTTPRequest,
	HTTPResponse,
)
from .http.parser import MAX_HEAD_SIZE, HTTPParser
from .utils.limits import LimitType, unlimit
from .utils.logging import debug, error, event, exception, info, logged, warning


@dataclass(slots=True)
class ServerState:
	isRunning: bool = True

	def stop(self) -> None:
		info("Server stopping…")
		self.isRunning = False

	def onException(
		self, loop: asyncio.AbstractEventLoop, context: dict[str, Any]
	) -> None:
		e = context.get("exception")
		if e:
			exception(e)
		else:
			warning("Event loop error", Message=str(context.get("message")))


class ServerOptions(NamedTuple):
	host: str = "0.0.0.0"  # nosec: B104
	port: int = 8080
	backlog: int = 10_000
	# This is the polling timeout for accepting new requests, it bounds how
	# long it takes for `condition` or a stop signal to be noticed.
	polling: float = 1.0
	readsize: int = 4_096
	# Idle time after which a kept-alive connection is closed, same default
	# as Node's `server.keepAliveTimeout`.
	keepalive: float = 5.0
	maxHeadSize: int = MAX_HEAD_SIZE
	logRequests: bool = True
	condition: Callable[[], bool] | None = None
	stopSignals: bool = True


OPTIONS: ServerOptions = ServerOptions()


class AIOSocketBodyWriter(HTTPBodyWriter):
	"""Specialized body writer to work with AIO sockets."""

	__slots__ = ["client", "loop"]

	def __init__(
		self,
		client: "socket.socket",
		loop: asyncio.AbstractEventLoop,
	) -> None:
		super().__init__()
		self.client: socket.socket = client
		self.loop: asyncio.AbstractEventLoop = loop

	async def _writeBytes(self, chunk: bytes) -> bool:
		if chunk:
			try:
				await self.loop.sock_sendall(self.client, chunk)
			except OSError:
				# The client is gone, there is no point in keeping the
				# connection around.
				self.shouldClose = True
				raise
		return True


# NOTE: Driving the sockets directly from the loop, rather than through
# streams or protocols, keeps the per-connection overhead minimal.
class AIOSocketServer:
	"""AsyncIO backend using sockets directly."""

	@staticmethod
	def Bind(options: ServerOptions = OPTIONS) -> socket.socket:
		"""Creates the listening socket. The port is fixed, so failing to
		bind is fatal."""
		server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
		server.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
		server.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
		try:
			server.bind((options.host, options.port))
		except OSError as e:
			server.close()
			error(
				f"Unable to bind to {options.host}:{options.port}, aborting.",
				"HOSTPORTERR",
				Reason=str(e),
			)
			raise e
		# The argument is the backlog of connections that will be accepted before
		# they are refused.
		server.listen(options.backlog)
		# This is what we need to use it with asyncio
		server.setblocking(False)
		return server

	@classmethod
	async def OnRequest(
		cls,
		config: Configuration,
		client: socket.socket,
		*,
		loop: asyncio.AbstractEventLoop,
		options: ServerOptions,
		handler: THandler = respond,
	) -> None:
		"""Asynchronous worker, answering every request sent on the client
		connection, in order, until the connection is to be closed."""
		size: int = options.readsize
		buffer = bytearray(size)
		peer: str = f"{id(client):x}"
		keep_alive: bool = True
		iteration: int = 0
		status: HTTPProcessingStatus = HTTPProcessingStatus.Processing
		read_count: int = 0
		res_count: int = 0
		req_count: int = 0
		try:
			parser: HTTPParser = HTTPParser(options.maxHeadSize)
			writer: AIOSocketBodyWriter = AIOSocketBodyWriter(client, loop)
			# NOTE: A client may keep a single connection and send all its
			# requests through it, until `Connection: close` or until the
			# keep-alive timeout expires.
			while keep_alive and not writer.shouldClose:
				try:
					n = await asyncio.wait_for(
						loop.sock_recv_into(client, buffer),
						timeout=options.keepalive,
					)
				except asyncio.TimeoutError:
					status = HTTPProcessingStatus.Timeout
					break
				if not n:
					# A no-data means a close
					status = HTTPProcessingStatus.NoData
					break
				read_count += n
				logged(debug) and debug(
					"Reading Request(s)",
					Client=peer,
					Read=n,
					Iteration=iteration,
					Count=req_count,
				)
				# NOTE: With HTTP Pipelining, we may receive more than one
				# request in the same payload, so we need to be prepared
				# to answer more than one request.
				for atom in parser.feed(bytes(buffer[:n])):
					if atom is HTTPProcessingStatus.BadFormat:
						warning(
							"Malformed request, closing connection",
							Client=peer,
							Requests=req_count,
						)
						status = atom
						keep_alive = False
						break
					elif atom is HTTPProcessingStatus.Complete:
						status = atom
					elif isinstance(atom, HTTPRequest):
						req = atom
						status = HTTPProcessingStatus.Processing
						req_count += 1
						if options.logRequests:
							event("Request", req.target, Method=req.method, Client=peer)
						# We answer without waiting for a `100-continue`
						# body, which the client may then never send.
						if not req.keepAlive or req.expectsContinue:
							keep_alive = False
						res = await cls.SendResponse(
							req,
							config,
							handler,
							writer,
							keepalive=options.keepalive if keep_alive else None,
						)
						if res:
							res_count += 1
						else:
							keep_alive = False
						if not keep_alive:
							# Whatever was pipelined after this request
							# is discarded.
							break
				iteration += 1

			if res_count != req_count:
				warning("Incomplete responses", Requests=req_count, Responses=res_count)
			if status is HTTPProcessingStatus.NoData and read_count and not req_count:
				warning(
					"Client did not feed a complete request",
					Client=peer,
					ReadCount=read_count,
				)
			elif (
				status is HTTPProcessingStatus.Timeout
				and read_count
				and (parser.parser is not parser.message or parser.message.line.pending)
			):
				warning(
					"Client timed out in the middle of a request",
					Client=peer,
					ReadCount=read_count,
					Requests=req_count,
				)
		except OSError as e:
			# Resets and broken pipes are part of normal network life
			warning(
				"Connection error",
				Client=peer,
				Error=e.__class__.__name__,
				Requests=req_count,
				Responses=res_count,
			)
		except Exception as e:
			exception(e)
		finally:
			# NOTE: The above loop takes care of keep alive, so we always close
			# the connection on exit.
			client.close()

	@staticmethod
	async def SendResponse(
		request: HTTPRequest,
		config: Configuration,
		handler: THandler,
		writer: HTTPBodyWriter,
		*,
		keepalive: float | None = None,
	) -> HTTPResponse | None:
		"""Processes the request with the handler and sends the response
		using the given writer. Returns `None` when no response could be
		sent, in which case the connection is to be closed. `keepalive`
		is `None` when the connection closes after this response."""
		try:
			res: HTTPResponse = handler(request, config)
		except Exception as e:
			exception(e, f"Handler failed on {request.method} {request.target}")
			return None
		res.setHeaders(
			{
				"Date": formatdate(usegmt=True),
				"Connection": "close" if keepalive is None else "keep-alive",
				"Keep-Alive": None if keepalive is None else f"timeout={keepalive:g}",
			}
		)
		# A response to HEAD announces the body length but carries no body
		payload: bytes = res.head()
		if request.method != "HEAD":
			payload += res.payload
		try:
			await writer.write(payload)
		except (BrokenPipeError, ConnectionResetError):
			warning(
				"Client closed the connection before the response was sent",
				Method=request.method,
				Path=request.path,
			)
			return None
		return res

	@classmethod
	async def Serve(
		cls,
		config: Configuration,
		options: ServerOptions = OPTIONS,
		handler: THandler = respond,
		*,
		server: socket.socket | None = None,
	) -> None:
		"""Main server coroutine, answers requests until a stop signal is
		received or the `condition` option returns false. The listening
		`server` socket is created from the options when not given."""
		server = cls.Bind(options) if server is None else server
		tasks: set[asyncio.Task[None]] = set()
		loop = asyncio.get_running_loop()

		# Manage server state
		state = ServerState()
		# Registers handlers for signals and exception (so that we log them). Note
		# that we'll get a `set_wakeup_fd only works in main thread of the main interpreter`
		# when this is not run out of the main thread.
		if (
			options.stopSignals
			and threading.current_thread() is threading.main_thread()
		):
			loop.add_signal_handler(SIGINT, lambda: state.stop())
			loop.add_signal_handler(SIGTERM, lambda: state.stop())
		loop.set_exception_handler(state.onException)

		host, port = server.getsockname()[:2]
		info(
			"envreply listening",
			icon="🚀",
			Host=host,
			Port=port,
		)

		# NOTE: The pending accept outlives each polling round, cancelling it
		# on timeout could drop a connection that was just accepted.
		accepting: asyncio.Task[tuple[socket.socket, Any]] | None = None
		try:
			while state.isRunning:
				if options.condition and not options.condition():
					break
				if accepting is None:
					accepting = loop.create_task(loop.sock_accept(server))
				done, _ = await asyncio.wait(
					{accepting}, timeout=options.polling or 1.0
				)
				if not done:
					continue
				accepted, accepting = accepting, None
				try:
					client, _ = accepted.result()
				except OSError as e:
					# This can be: [OSError] [Errno 24] Too many open files
					if e.errno == errno.EMFILE:
						warning("Too many open files, delaying accept")
						await asyncio.sleep(0.1)
					else:
						exception(e)
					continue
				client.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
				task = loop.create_task(
					cls.OnRequest(
						config, client, loop=loop, options=options, handler=handler
					)
				)
				tasks.add(task)
				task.add_done_callback(tasks.discard)
		finally:
			pending: list[asyncio.Task[Any]] = list(tasks)
			if accepting is not None:
				pending.append(accepting)
			for t in pending:
				t.cancel()
			await asyncio.gather(*pending, return_exceptions=True)
			server.close()


def run(
	config: Configuration | None = None,
	*,
	host: str = HOST,
	port: int = PORT,
	backlog: int = OPTIONS.backlog,
	condition: Callable[[], bool] | None = None,
	polling: float = OPTIONS.polling,
	logRequests: bool = LOG_REQUESTS,
	keepalive: float = OPTIONS.keepalive,
	handler: THandler = respond,
) -> None:
	"""High level function to run the server. The configuration is read
	from the environment when not given, once, before anything is served."""
	config = Configuration.FromEnv() if config is None else config
	if config.isAbsent:
		warning("No response value configured", Rendered=config.responseText)
	else:
		info("Response value configured", Value=config.responseText)
	unlimit(LimitType.Files)
	options = ServerOptions(
		host=host,
		port=port,
		backlog=backlog,
		condition=condition,
		polling=polling,
		logRequests=logRequests,
		keepalive=keepalive,
	)
	try:
		asyncio.run(AIOSocketServer.Serve(config, options, handler))
	except KeyboardInterrupt:
		event("ManualShutdown")
	event("EOK")


# EOF
