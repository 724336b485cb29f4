import asyncio
import logging
from http import HTTPStatus
from urllib.parse import urlsplit

from websockets.asyncio.server import ServerConnection
from websockets.frames import CloseCode
from websockets.http11 import Request, Response
from websockets.protocol import State

from reloadlink.core.lifetime import LifetimeSignal
from reloadlink.core.model.state import ServerState


def _header_tokens(request: Request, name: str) -> set[str]:
    return {
        token.strip().lower()
        for value in request.headers.get_all(name)
        for token in value.split(",")
    }


def is_upgrade_request(request: Request) -> bool:
    return (
        "upgrade" in _header_tokens(request, "Connection")
        and "websocket" in _header_tokens(request, "Upgrade")
    )


class UpgradeHandler:
    """
    Single endpoint of the refresh server.

    Accepts one browser connection, stores it in the server state and parks
    until the lifetime signal completes. Nothing is ever read from the peer:
    holding the handler open is what keeps the connection alive.
    """

    def __init__(self, state: ServerState, lifetime: LifetimeSignal) -> None:
        self._state = state
        self._lifetime = lifetime
        self._logger = logging.getLogger("reloadlink.core.handler")

    def process_request(self, connection: ServerConnection, request: Request) -> Response | None:
        if not is_upgrade_request(request):
            self._logger.debug(f"Rejecting non-upgrade request for '{request.path}'")
            return connection.respond(HTTPStatus.BAD_REQUEST, "Expected a WebSocket upgrade request\n")

        if urlsplit(request.path).path != "/":
            return connection.respond(HTTPStatus.NOT_FOUND, "Not Found\n")

        if self._has_active_connection():
            self._logger.warning("Rejecting upgrade, a browser is already connected")
            return connection.respond(HTTPStatus.CONFLICT, "A browser is already connected\n")

        return None

    async def __call__(self, connection: ServerConnection) -> None:
        # two handshakes may both pass process_request before either lands here
        if self._has_active_connection():
            await connection.close(CloseCode.TRY_AGAIN_LATER, "a browser is already connected")
            return

        self._state.connection = connection
        self._logger.info(f"Browser connected from {connection.remote_address}")

        # parked until the server is disposed or the browser goes away
        lifetime = asyncio.ensure_future(self._lifetime.wait())
        closed = asyncio.ensure_future(connection.wait_closed())
        try:
            await asyncio.wait({lifetime, closed}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            lifetime.cancel()
            closed.cancel()

        self._logger.debug(f"Releasing connection from {connection.remote_address}")

    def _has_active_connection(self) -> bool:
        current = self._state.connection
        return current is not None and current.state is State.OPEN
