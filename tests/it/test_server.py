import asyncio
import logging
import socket
import time
from urllib.parse import urlsplit

import pytest
from websockets.exceptions import ConnectionClosed, InvalidStatus
from websockets.protocol import State
from websockets.sync.client import connect

from conftest import RecordingReporter, wait_until
from reloadlink.core import server as server_module
from reloadlink.core.config import Config
from reloadlink.core.exception import ServerNotRunning, StartupTimeout
from reloadlink.core.model.state import Lifecycle
from reloadlink.core.server import RefreshServer


def http_get_status(url: str, path: str = "/") -> int:
    parts = urlsplit(url)
    with socket.create_connection((parts.hostname, parts.port), timeout=5) as sock:
        sock.sendall(f"GET {path} HTTP/1.1\r\nHost: {parts.netloc}\r\n\r\n".encode())
        status_line = sock.makefile("rb").readline()
    return int(status_line.split()[1])


@pytest.mark.it
def test_start_returns_websocket_url_with_os_assigned_port(server):
    url = server.start()

    assert url.startswith("ws://127.0.0.1:")
    assert int(urlsplit(url).port) > 0
    assert server.url == url
    assert server.state.lifecycle is Lifecycle.RUNNING


@pytest.mark.it
def test_url_unavailable_before_start(server):
    with pytest.raises(ServerNotRunning):
        _ = server.url


@pytest.mark.it
def test_start_twice_is_rejected(server):
    server.start()
    with pytest.raises(RuntimeError):
        server.start()


@pytest.mark.it
def test_plain_request_gets_400_and_server_stays_usable(server):
    url = server.start()

    assert http_get_status(url) == 400

    with connect(url, open_timeout=5):
        wait_until(lambda: server.connected)


@pytest.mark.it
def test_upgrade_on_other_path_gets_404(server):
    url = server.start()

    with pytest.raises(InvalidStatus) as exc_info:
        connect(f"{url}/other", open_timeout=5)

    assert exc_info.value.response.status_code == 404


@pytest.mark.it
def test_send_before_handshake_is_noop(server, reporter):
    server.start()
    server.send_message(b"reload")
    assert reporter.messages == []


@pytest.mark.it
def test_send_delivers_one_text_frame(server, reporter):
    url = server.start()

    with connect(url, open_timeout=5) as client:
        wait_until(lambda: server.connected)

        server.send_message(b"reload")
        server.send_message("héllo".encode())

        assert client.recv(timeout=5) == "reload"
        assert client.recv(timeout=5) == "héllo"

    assert reporter.messages == []


@pytest.mark.it
def test_second_browser_rejected_while_first_connected(server):
    url = server.start()

    with connect(url, open_timeout=5):
        wait_until(lambda: server.connected)

        with pytest.raises(InvalidStatus) as exc_info:
            connect(url, open_timeout=5)
        assert exc_info.value.response.status_code == 409

    wait_until(lambda: not server.connected)

    with connect(url, open_timeout=5) as client:
        wait_until(lambda: server.connected)
        server.send_message(b"again")
        assert client.recv(timeout=5) == "again"


@pytest.mark.it
def test_dispose_closes_accepted_connection(server):
    url = server.start()

    with connect(url, open_timeout=5) as client:
        wait_until(lambda: server.connected)

        server.dispose()

        with pytest.raises(ConnectionClosed):
            client.recv(timeout=5)

    assert server.state.lifecycle is Lifecycle.STOPPED
    assert server.state.connection is None


@pytest.mark.it
def test_dispose_is_idempotent(server, reporter):
    server.start()
    server.dispose()
    server.dispose()

    server.send_message(b"reload")
    assert reporter.messages == []


@pytest.mark.it
def test_dispose_without_start():
    server = RefreshServer(RecordingReporter())
    server.dispose()
    server.dispose()
    assert server.state.lifecycle is Lifecycle.STOPPED


@pytest.mark.it
def test_context_manager_disposes():
    with RefreshServer(RecordingReporter(), Config(startup_timeout=5.0)) as server:
        server.start()

    assert server.state.lifecycle is Lifecycle.STOPPED


@pytest.mark.it
def test_startup_failure_reraises_original_error(monkeypatch, reporter):
    error = OSError(98, "Address already in use")

    async def failing_serve(*args, **kwargs):
        raise error

    monkeypatch.setattr(server_module, "serve", failing_serve)
    server = RefreshServer(reporter, Config(startup_timeout=5.0))

    with pytest.raises(OSError) as exc_info:
        server.start()

    assert exc_info.value is error
    assert server.state.lifecycle is Lifecycle.STOPPED
    server.dispose()


@pytest.mark.it
def test_startup_timeout(monkeypatch, reporter):
    async def hanging_serve(*args, **kwargs):
        await asyncio.Event().wait()

    monkeypatch.setattr(server_module, "serve", hanging_serve)
    server = RefreshServer(reporter, Config(startup_timeout=0.3, timeout_graceful_shutdown=1.0))

    started = time.monotonic()
    with pytest.raises(StartupTimeout) as exc_info:
        server.start()
    elapsed = time.monotonic() - started

    assert isinstance(exc_info.value, TimeoutError)
    assert elapsed >= 0.29
    assert server.state.lifecycle is Lifecycle.STOPPED
    server.dispose()


class BrokenConnection:
    state = State.OPEN
    remote_address = ("127.0.0.1", 40000)

    async def send(self, message, text=None):
        raise ConnectionResetError("peer gone")


@pytest.mark.it
def test_send_failure_goes_to_reporter(server, reporter):
    server.start()
    server.state.connection = BrokenConnection()

    server.send_message(b"reload")

    wait_until(lambda: reporter.messages)
    assert reporter.messages[0].startswith("Refresh server error:")
    assert "peer gone" in reporter.messages[0]


@pytest.mark.it
def test_reload_scenario(reporter):
    server = RefreshServer(reporter)
    url = server.start()

    with connect(url, open_timeout=5) as client:
        wait_until(lambda: server.connected)
        server.send_message("reload".encode())
        assert client.recv(timeout=5) == "reload"

        server.dispose()
        with pytest.raises(ConnectionClosed):
            client.recv(timeout=5)


class RecordingConnection:
    remote_address = ("127.0.0.1", 40000)

    def __init__(self, state: State) -> None:
        self.state = state
        self.sent: list[bytes] = []

    async def send(self, message, text=None):
        self.sent.append(message)


@pytest.mark.it
@pytest.mark.parametrize("state", [State.CLOSING, State.CLOSED])
def test_send_to_closed_connection_is_noop(server, reporter, state):
    server.start()
    connection = RecordingConnection(state)
    server.state.connection = connection

    server.send_message(b"reload")
    time.sleep(0.1)

    assert connection.sent == []
    assert reporter.messages == []


@pytest.mark.it
def test_send_after_browser_disconnects_is_noop(server, reporter):
    url = server.start()

    with connect(url, open_timeout=5):
        wait_until(lambda: server.connected)

    wait_until(lambda: not server.connected)
    server.send_message(b"reload")
    time.sleep(0.1)

    assert reporter.messages == []


@pytest.mark.it
def test_send_on_closed_loop_reports_and_discards_coroutine(reporter):
    server = RefreshServer(reporter)
    closed_loop = asyncio.new_event_loop()
    closed_loop.close()
    server._loop = closed_loop
    server.state.connection = RecordingConnection(State.OPEN)

    created = []
    original_send = server._send

    def tracking_send(connection, payload):
        coro = original_send(connection, payload)
        created.append(coro)
        return coro

    server._send = tracking_send
    server.send_message(b"reload")

    assert reporter.messages and reporter.messages[0].startswith("Refresh server error:")
    assert created[0].cr_frame is None
    server.dispose()


@pytest.mark.it
def test_handler_task_ends_when_browser_disconnects(server, caplog):
    url = server.start()
    caplog.set_level(logging.DEBUG, logger="reloadlink.core.handler")

    with connect(url, open_timeout=5):
        wait_until(lambda: server.connected)

    wait_until(lambda: any(r.getMessage().startswith("Releasing connection") for r in caplog.records))
    assert server.state.lifecycle is Lifecycle.RUNNING
