import enum
from dataclasses import dataclass
from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from websockets.asyncio.server import ServerConnection


class Lifecycle(enum.Enum):
    NOT_STARTED = "not_started"
    STARTING = "starting"
    RUNNING = "running"
    STOPPED = "stopped"


@dataclass
class ServerState:
    lifecycle: Lifecycle = Lifecycle.NOT_STARTED
    url: str | None = None
    connection: "ServerConnection | None" = None
