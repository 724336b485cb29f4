import socket
from collections.abc import Iterable


def get_bound_addr(sockets: Iterable[socket.socket]) -> tuple[str, int] | None:
    for sock in sockets:
        info = sock.getsockname()
        # AF_INET6 yields (host, port, flowinfo, scope_id)
        if isinstance(info, tuple) and len(info) >= 2:
            return info[0], info[1]
    return None


def to_websocket_url(host: str, port: int) -> str:
    if ":" in host:
        host = f"[{host}]"
    return f"ws://{host}:{port}"
