import asyncio
import threading
from concurrent.futures import Future


class LifetimeSignal:
    """
    One-shot completion marking the end of a server's life.

    Set from any thread, awaited from any event loop. Setting an already
    completed signal is a no-op, which keeps disposal idempotent.
    """

    def __init__(self) -> None:
        self._future: Future[None] = Future()
        self._lock = threading.Lock()

    def is_set(self) -> bool:
        return self._future.done()

    def try_set(self) -> bool:
        with self._lock:
            if self._future.done():
                return False
            self._future.set_result(None)
            return True

    async def wait(self) -> None:
        # shield: a cancelled waiter would otherwise cancel the shared future
        await asyncio.shield(asyncio.wrap_future(self._future))
