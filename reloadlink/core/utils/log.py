import logging

TRANSPORT_LOGGER = "reloadlink.transport"


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level,
        format='%(asctime)s [%(name)s:%(funcName)s] %(levelname)-8s : %(message)s',
    )
    # websockets reports every handshake and rejection at INFO
    transport_level = level if level == "DEBUG" else "WARNING"
    logging.getLogger(TRANSPORT_LOGGER).setLevel(transport_level)
