from dataclasses import dataclass


@dataclass
class Config:
    host: str = "127.0.0.1"

    startup_timeout: float = 30.0
    timeout_graceful_shutdown: float = 5.0

    ping_interval: float | None = 20.0
    ping_timeout: float | None = 20.0
    max_size: int | None = 1 * 1024 * 1024  # 1MB, inbound frames only
