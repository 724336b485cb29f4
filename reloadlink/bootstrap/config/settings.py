import ipaddress
from pathlib import Path
from typing import Annotated, Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict, PydanticBaseSettingsSource, YamlConfigSettingsSource

from reloadlink.core.config import Config


class ReloadLinkSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="RELOADLINK_",
        extra="ignore"
    )

    host: Annotated[
        str,
        Field(
            description=(
                "Loopback address the refresh server binds to.\n"
                "The port is always chosen by the operating system."
            ),
            default="127.0.0.1"
        )
    ]

    startup_timeout: Annotated[
        float,
        Field(
            description="Seconds to wait for the listening server to come up before failing.",
            default=30.0,
            gt=0
        )
    ]

    timeout_graceful_shutdown: Annotated[
        float,
        Field(
            description=(
                "Maximum time in seconds to wait for the server to close its\n"
                "connection when the server is disposed."
            ),
            default=5.0,
            ge=0
        )
    ]

    ping_interval: Annotated[
        float | None,
        Field(
            description="Keepalive ping interval in seconds, or null to disable pings.",
            default=20.0
        )
    ]

    ping_timeout: Annotated[
        float | None,
        Field(
            description="Seconds to wait for a pong before dropping the browser, or null.",
            default=20.0
        )
    ]

    max_size: Annotated[
        int | None,
        Field(
            description="Maximum size in bytes of frames accepted from the browser.",
            default=1 * 1024 * 1024
        )
    ]

    message: Annotated[
        str,
        Field(
            description="Payload sent by the CLI for a blank input line.",
            default="reload"
        )
    ]

    log_level: Annotated[
        str,
        Field(
            description="Logging verbosity: DEBUG, INFO, WARNING, ERROR or CRITICAL.",
            default="INFO"
        )
    ]

    @field_validator("host")
    @classmethod
    def validate_loopback(cls, v: str) -> str:
        # a hostname may resolve to several sockets, each with its own port
        try:
            address = ipaddress.ip_address(v)
        except ValueError as ex:
            raise ValueError(f"host must be a loopback IP address, got '{v}'") from ex
        if not address.is_loopback:
            raise ValueError(f"host must be a loopback address, got '{v}'")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level '{v}'")
        return level

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        sources: tuple[PydanticBaseSettingsSource, ...] = (init_settings, env_settings)
        if settings_cls.model_config.get("yaml_file"):
            sources += (YamlConfigSettingsSource(settings_cls),)
        return sources

    @classmethod
    def load(cls, yaml_file: Path | None = None, **values: Any) -> "ReloadLinkSettings":
        if yaml_file is None:
            return cls(**values)

        bound = type(
            cls.__name__,
            (cls,),
            {"__module__": cls.__module__, "model_config": SettingsConfigDict(yaml_file=yaml_file)}
        )
        return bound(**values)

    def to_config(self) -> Config:
        return Config(
            host=self.host,
            startup_timeout=self.startup_timeout,
            timeout_graceful_shutdown=self.timeout_graceful_shutdown,
            ping_interval=self.ping_interval,
            ping_timeout=self.ping_timeout,
            max_size=self.max_size,
        )
