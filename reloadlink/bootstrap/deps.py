import argparse
from collections.abc import Sequence
from functools import lru_cache

from reloadlink.bootstrap.config.loader import get_configfile
from reloadlink.bootstrap.config.settings import ReloadLinkSettings


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="reloadlink",
        description=(
            "Start a loopback refresh server.\n\n"
            "Prints the ws:// URL a browser should connect to, then sends every\n"
            "line read from stdin as one text message to the connected browser."
        ),
        formatter_class=argparse.RawTextHelpFormatter
    )

    parser.add_argument(
        "-c", "--config",
        type=str,
        help="Path to a reloadlink YAML configuration file"
    )

    parser.add_argument(
        "--host",
        type=str,
        help="Loopback address to bind (default: 127.0.0.1)"
    )

    parser.add_argument(
        "--startup-timeout",
        type=float,
        help="Seconds to wait for the server to start (default: 30)"
    )

    parser.add_argument(
        "-m", "--message",
        type=str,
        help="Payload sent for a blank input line (default: reload)"
    )

    parser.add_argument(
        "-l", "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help=(
            "Logging verbosity.\n"
            "DEBUG    → verbose output, useful for tracing connections.\n"
            "INFO     → startup, connection and shutdown (default).\n"
            "WARNING  → only warnings and send failures.\n"
            "ERROR    → only errors.\n"
            "CRITICAL → only critical failures."
        ),
    )

    return parser.parse_args(argv)


@lru_cache
def get_cli_args() -> argparse.Namespace:
    return parse_args()


def build_settings(args: argparse.Namespace) -> ReloadLinkSettings:
    overrides = {
        "host": args.host,
        "startup_timeout": args.startup_timeout,
        "message": args.message,
        "log_level": args.log_level,
    }
    return ReloadLinkSettings.load(
        get_configfile(args.config),
        **{key: value for key, value in overrides.items() if value is not None}
    )


@lru_cache
def get_settings() -> ReloadLinkSettings:
    return build_settings(get_cli_args())
