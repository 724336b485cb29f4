import asyncio
import logging
import threading
from concurrent.futures import Future, wait
from types import TracebackType

from websockets.asyncio.server import Server, ServerConnection, serve
from websockets.protocol import State

from reloadlink.core.config import Config
from reloadlink.core.exception import ServerNotRunning, StartupTimeout
from reloadlink.core.handler import UpgradeHandler
from reloadlink.core.lifetime import LifetimeSignal
from reloadlink.core.model.state import Lifecycle, ServerState
from reloadlink.core.types_ import Reporter
from reloadlink.core.utils.addr import get_bound_addr, to_websocket_url
from reloadlink.core.utils.log import TRANSPORT_LOGGER


class RefreshServer:
    """
    Loopback WebSocket server pushing refresh notifications to one browser.

    The listening server runs on its own thread and event loop. The caller's
    thread only blocks inside ``start`` (bounded by ``startup_timeout``) and
    inside ``dispose`` while the host thread winds down.

    Usage::

        with RefreshServer(LoggingReporter()) as server:
            url = server.start()
            ...
            server.send_message(b"reload")
    """

    def __init__(self, reporter: Reporter, config: Config | None = None) -> None:
        self._reporter = reporter
        self._config = config or Config()
        self._lifetime = LifetimeSignal()
        self.state = ServerState()
        self._handler = UpgradeHandler(self.state, self._lifetime)

        self._thread: threading.Thread | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._main_task: asyncio.Task[None] | None = None

        self._logger = logging.getLogger("reloadlink.core.server")

    @property
    def url(self) -> str:
        if self.state.lifecycle is not Lifecycle.RUNNING or self.state.url is None:
            raise ServerNotRunning(f"Server is {self.state.lifecycle.value}")
        return self.state.url

    @property
    def connected(self) -> bool:
        connection = self.state.connection
        return connection is not None and connection.state is State.OPEN

    def start(self) -> str:
        if self.state.lifecycle is not Lifecycle.NOT_STARTED:
            raise RuntimeError(f"Server cannot be started when {self.state.lifecycle.value}")

        self.state.lifecycle = Lifecycle.STARTING
        startup: Future[str] = Future()
        self._thread = threading.Thread(
            target=self._run,
            args=(startup,),
            name="reloadlink-host",
            daemon=True,
        )
        self._thread.start()

        timeout = self._config.startup_timeout
        done, _ = wait([startup], timeout=timeout)
        if not done:
            self._abort()
            raise StartupTimeout(f"Timed out waiting to start the host after {timeout}s")

        try:
            url = startup.result()
        except Exception:
            self._abort()
            raise

        self.state.url = url
        self.state.lifecycle = Lifecycle.RUNNING
        return url

    def send_message(self, payload: bytes) -> None:
        connection = self.state.connection
        loop = self._loop
        if connection is None or loop is None or connection.state is not State.OPEN:
            return

        # fire and forget, the returned future is never awaited
        coro = self._send(connection, payload)
        try:
            asyncio.run_coroutine_threadsafe(coro, loop)
        except Exception as exc:
            coro.close()
            self._reporter.output(f"Refresh server error: {exc!r}")

    def dispose(self) -> None:
        try:
            if self._lifetime.try_set():
                self._logger.debug("Lifetime signal completed")
            self.state.lifecycle = Lifecycle.STOPPED

            thread = self._thread
            if thread is not None and thread is not threading.current_thread():
                thread.join(timeout=self._config.timeout_graceful_shutdown + 1.0)
                if thread.is_alive():
                    self._logger.warning("Host thread still running after dispose")
        except Exception as exc:
            self._logger.debug(f"Error while disposing refresh server: {exc!r}")
        finally:
            self.state.connection = None

    def __enter__(self) -> "RefreshServer":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.dispose()

    async def _send(self, connection: ServerConnection, payload: bytes) -> None:
        try:
            # one unfragmented text frame, payload is not decoded
            await connection.send(payload, text=True)
        except Exception as exc:
            self._reporter.output(f"Refresh server error: {exc!r}")

    def _abort(self) -> None:
        self.state.lifecycle = Lifecycle.STOPPED
        self._lifetime.try_set()

        loop, task = self._loop, self._main_task
        if loop is None or task is None:
            return
        try:
            loop.call_soon_threadsafe(task.cancel)
        except RuntimeError:
            # loop already closed
            pass

    def _run(self, startup: Future[str]) -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        self._loop = loop

        try:
            self._main_task = loop.create_task(self._serve(startup))
            loop.run_until_complete(self._main_task)
        except asyncio.CancelledError:
            self._logger.debug("Host task cancelled")
        except Exception as exc:
            self._logger.error("Refresh server host crashed", exc_info=exc)
        finally:
            self._close_loop(loop)

    async def _serve(self, startup: Future[str]) -> None:
        config = self._config

        try:
            server = await serve(
                self._handler,
                host=config.host,
                port=0,
                process_request=self._handler.process_request,
                ping_interval=config.ping_interval,
                ping_timeout=config.ping_timeout,
                max_size=config.max_size,
                logger=logging.getLogger(TRANSPORT_LOGGER),
            )
        except Exception as exc:
            startup.set_exception(exc)
            return

        addr = get_bound_addr(server.sockets)
        if addr is None:
            server.close()
            startup.set_exception(OSError("Listening socket has no bound address"))
            return

        url = to_websocket_url(*addr)
        self._logger.info(f"Refresh server listening at {url}")
        startup.set_result(url)

        await self._lifetime.wait()
        await self._shutdown(server)

    async def _shutdown(self, server: Server) -> None:
        server.close()
        try:
            await asyncio.wait_for(server.wait_closed(), timeout=self._config.timeout_graceful_shutdown)
        except asyncio.TimeoutError:
            self._logger.error("Timeout waiting for the refresh server to close")
        self._logger.info("Refresh server stopped")

    def _close_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        try:
            pending = asyncio.all_tasks(loop)
            for task in pending:
                task.cancel()
            if pending:
                loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
            loop.run_until_complete(loop.shutdown_asyncgens())
        finally:
            loop.close()
