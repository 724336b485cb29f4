import logging
import sys
from typing import TextIO

from reloadlink.bootstrap.config.settings import ReloadLinkSettings
from reloadlink.bootstrap.deps import get_settings
from reloadlink.core.reporter import LoggingReporter
from reloadlink.core.server import RefreshServer
from reloadlink.core.utils.log import setup_logging


def run(
    settings: ReloadLinkSettings,
    *,
    stdin: TextIO | None = None,
    stdout: TextIO | None = None,
) -> None:
    stdin = sys.stdin if stdin is None else stdin
    stdout = sys.stdout if stdout is None else stdout
    logger = logging.getLogger("reloadlink.bootstrap.main")

    with RefreshServer(LoggingReporter(), settings.to_config()) as server:
        url = server.start()
        print(url, file=stdout, flush=True)

        for line in stdin:
            message = line.rstrip("\r\n") or settings.message
            if not server.connected:
                logger.info("No browser connected, message dropped")
            server.send_message(message.encode())


def entrypoint() -> None:
    settings = get_settings()
    setup_logging(settings.log_level)

    try:
        run(settings)
    except KeyboardInterrupt:
        pass
