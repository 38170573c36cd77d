from typing import Literal, Optional, Tuple

from pydantic_settings import BaseSettings

DEFAULT_PORT = 6379
COMMANDS_PER_CYCLE = 3  # TYPE, TTL and size run side by side


class Settings(BaseSettings):
    # Redis
    redis_host: str = "127.0.0.1"
    redis_port: int = DEFAULT_PORT
    redis_db: int = 0
    redis_password: Optional[str] = None
    redis_max_connections: int = 96  # pool cap when max_in_flight is 0

    # Sampling
    sample_size: int = 10000  # RANDOMKEY draws per run
    max_in_flight: int = 32  # 0 = no throttling, commands queue on the pool
    probe_timeout_seconds: float = 5.0
    size_source: Literal["debug", "memory"] = "debug"  # DEBUG OBJECT | MEMORY USAGE
    key_delimiters: Optional[str] = None  # None = whitespace , : . "

    # Connection
    connect_retries: int = 3
    connect_base_delay: float = 0.5

    # Logging
    app_log_level: str = "WARNING"

    @property
    def pool_size(self) -> int:
        if self.max_in_flight > 0:
            return self.max_in_flight * COMMANDS_PER_CYCLE
        return max(self.redis_max_connections, 1)


def _port(value: str, target: str) -> int:
    try:
        port = int(value)
    except ValueError:
        raise ValueError(f"invalid port '{value}' in target '{target}'") from None
    if not 0 < port < 65536:
        raise ValueError(f"port out of range in target '{target}'")
    return port


def parse_target(target: str, default_host: str, default_port: int) -> Tuple[str, int]:
    """Split a ``host[:port]`` argument, falling back to the defaults.

    IPv6 addresses take a port only in bracketed form, ``[::1]:6380``; a bare
    address such as ``::1`` is read as a host without port.
    """
    if target.startswith("["):
        host, sep, rest = target[1:].partition("]")
        if not sep or not host or (rest and not rest.startswith(":")):
            raise ValueError(f"invalid bracketed address in target '{target}'")
        port = rest[1:]
        return host, _port(port, target) if port else default_port
    if target.count(":") > 1:
        return target, default_port

    host, sep, port = target.partition(":")
    if not sep or not port:
        return host or default_host, default_port
    return host or default_host, _port(port, target)


settings = Settings()
