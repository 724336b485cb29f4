import logging


class LoggingReporter:
    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or logging.getLogger("reloadlink.reporter")

    def output(self, message: str) -> None:
        self._logger.warning(message)
