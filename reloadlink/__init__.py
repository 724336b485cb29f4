from reloadlink.core.config import Config
from reloadlink.core.exception import ReloadLinkError, ServerNotRunning, StartupTimeout
from reloadlink.core.model.state import Lifecycle
from reloadlink.core.reporter import LoggingReporter
from reloadlink.core.server import RefreshServer
from reloadlink.core.types_ import Reporter

__all__ = [
    "Config",
    "Lifecycle",
    "LoggingReporter",
    "RefreshServer",
    "ReloadLinkError",
    "Reporter",
    "ServerNotRunning",
    "StartupTimeout",
]
