import time

import pytest

from reloadlink.core.config import Config
from reloadlink.core.server import RefreshServer


class RecordingReporter:
    def __init__(self) -> None:
        self.messages: list[str] = []

    def output(self, message: str) -> None:
        self.messages.append(message)


def wait_until(predicate, timeout: float = 5.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met before timeout")
        time.sleep(0.01)


@pytest.fixture
def reporter() -> RecordingReporter:
    return RecordingReporter()


@pytest.fixture
def server(reporter):
    server = RefreshServer(reporter, Config(startup_timeout=5.0, timeout_graceful_shutdown=2.0))
    yield server
    server.dispose()
