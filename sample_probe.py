"""Per-key inspection of a live Redis node.

``StoreProbe`` is the narrow surface the sampler needs; ``RedisProbe``
implements it on top of ``redis.asyncio``. Every per-key call may race with
expiry or deletion on the server, so a vanished key surfaces as
``ProbeError`` rather than a sentinel the caller has to recognise.
"""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol, TypeVar

import redis.asyncio as redis
from redis import exceptions as redis_exceptions

from sample_config import Settings
from sample_logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

# Redis TTL: -2 missing, -1 no-expire, >=0 seconds
TTL_MISSING = -2
TTL_NO_EXPIRY = -1


class SamplerError(Exception):
    pass


class StoreConnectionError(SamplerError):
    """The store is unreachable or dropped the connection. Fatal for a run."""


class ProbeError(SamplerError):
    """A single key vanished or a single command failed mid-cycle."""


@dataclass(frozen=True)
class ObjectInfo:
    serialized_length: int
    encoding: Optional[str] = None
    fields: Dict[str, Any] = field(default_factory=dict)


class StoreProbe(Protocol):
    async def random_key(self) -> Optional[str]: ...

    async def type_of(self, key: str) -> str: ...

    async def ttl_of(self, key: str) -> int: ...

    async def size_and_meta(self, key: str) -> ObjectInfo: ...

    async def keyspace_size(self) -> int: ...

    async def server_metadata(self) -> Dict[str, Any]: ...


def _convert(value: str) -> Any:
    try:
        return int(value)
    except ValueError:
        try:
            return float(value)
        except ValueError:
            return value


def parse_object_info(reply: Any) -> ObjectInfo:
    """Build an ObjectInfo from a DEBUG OBJECT reply.

    The raw reply is a space separated run of ``name:value`` pairs, e.g.
    ``Value at:0x7f refcount:1 encoding:embstr serializedlength:6 lru:1``.
    redis-py usually parses it into a dict already; both forms are accepted.
    """
    if isinstance(reply, bytes):
        reply = reply.decode("utf-8", errors="replace")
    if isinstance(reply, str):
        fields: Dict[str, Any] = {}
        for token in reply.split(" "):
            name, sep, value = token.partition(":")
            if sep:
                fields[name] = _convert(value)
    elif isinstance(reply, dict):
        fields = dict(reply)
    else:
        raise ProbeError(f"unexpected DEBUG OBJECT reply: {reply!r}")

    length = fields.get("serializedlength")
    if not isinstance(length, int):
        raise ProbeError(f"DEBUG OBJECT reply lacks serializedlength: {reply!r}")
    encoding = fields.get("encoding")
    return ObjectInfo(
        serialized_length=length,
        encoding=str(encoding) if encoding is not None else None,
        fields=fields,
    )


def debug_disabled(exc: Optional[BaseException]) -> bool:
    """True when the server refuses DEBUG itself rather than the key.

    Redis 7 ships with enable-debug-command no, and managed services often
    rename the command or deny it through ACLs.
    """
    if isinstance(exc, redis_exceptions.NoPermissionError):
        return True
    if not isinstance(exc, redis_exceptions.ResponseError):
        return False
    message = str(exc).lower()
    return "not allowed" in message or "unknown command" in message


class RedisProbe:
    def __init__(
        self,
        client: redis.Redis,
        timeout: float = 5.0,
        size_source: str = "debug",
    ):
        if size_source not in ("debug", "memory"):
            raise ValueError(f"unknown size source '{size_source}'")
        self._client = client
        self._timeout = timeout
        self._size_source = size_source

    async def _call(self, command: str, awaitable: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(awaitable, self._timeout)
        except (redis_exceptions.ConnectionError, redis_exceptions.TimeoutError) as exc:
            raise StoreConnectionError(f"{command} failed: {exc}") from exc
        except redis_exceptions.ResponseError as exc:
            raise ProbeError(f"{command} failed: {exc}") from exc
        except asyncio.TimeoutError as exc:
            raise ProbeError(f"{command} timed out after {self._timeout}s") from exc

    async def random_key(self) -> Optional[str]:
        key = await self._call("RANDOMKEY", self._client.randomkey())
        return key or None

    async def type_of(self, key: str) -> str:
        key_type = await self._call("TYPE", self._client.type(key))
        if key_type == "none":
            raise ProbeError(f"key vanished before TYPE: {key}")
        return key_type

    async def ttl_of(self, key: str) -> int:
        ttl = await self._call("TTL", self._client.ttl(key))
        if ttl == TTL_MISSING:
            raise ProbeError(f"key vanished before TTL: {key}")
        return int(ttl)

    async def size_and_meta(self, key: str) -> ObjectInfo:
        if self._size_source == "debug":
            try:
                reply = await self._call("DEBUG OBJECT", self._client.debug_object(key))
            except ProbeError as exc:
                if not debug_disabled(exc.__cause__):
                    raise
                if self._size_source == "debug":
                    self._size_source = "memory"
                    logger.warning(
                        "debug_object_unavailable switching_to=memory_usage error=%s",
                        exc.__cause__,
                    )
            else:
                return parse_object_info(reply)
        used = await self._call("MEMORY USAGE", self._client.memory_usage(key))
        if used is None:
            raise ProbeError(f"key vanished before MEMORY USAGE: {key}")
        return ObjectInfo(serialized_length=int(used))

    async def keyspace_size(self) -> int:
        return int(await self._call("DBSIZE", self._client.dbsize()))

    async def server_metadata(self) -> Dict[str, Any]:
        return dict(await self._call("INFO", self._client.info()))


async def retry_async(
    func: Callable[[], Awaitable[T]],
    retries: int = 3,
    base_delay: float = 0.5,
    max_delay: float = 10.0,
    jitter: float = 0.1,
    retry_on: tuple = (Exception,),
) -> T:
    delay = base_delay
    for attempt in range(retries):
        try:
            return await func()
        except retry_on as exc:
            if attempt == retries - 1:
                raise
            sleep_for = min(delay, max_delay) + random.uniform(0, delay * jitter)
            logger.warning(
                "connect_retry attempt=%d error=%s sleep=%.2fs",
                attempt + 1,
                exc,
                sleep_for,
            )
            await asyncio.sleep(sleep_for)
            delay = min(delay * 2, max_delay)
    raise RuntimeError("async retry exhausted")


def make_pool(settings: Settings, **connection_kwargs) -> redis.BlockingConnectionPool:
    """Connection pool sized to the sampler's concurrency.

    redis.asyncio holds one pooled connection per outstanding command, so the
    pool is capped at what max_in_flight cycles can use; extra commands wait
    for a free connection instead of failing the run.
    """
    return redis.BlockingConnectionPool(
        max_connections=settings.pool_size,
        timeout=None,
        host=settings.redis_host,
        port=settings.redis_port,
        db=settings.redis_db,
        password=settings.redis_password,
        decode_responses=True,
        **connection_kwargs,
    )


async def connect(settings: Settings) -> redis.Redis:
    """Open a client to the configured node and make sure it answers PING."""
    client = redis.Redis.from_pool(make_pool(settings))

    async def ping():
        return await client.ping()

    try:
        await retry_async(
            ping,
            retries=max(settings.connect_retries, 1),
            base_delay=settings.connect_base_delay,
            retry_on=(redis_exceptions.ConnectionError, redis_exceptions.TimeoutError),
        )
    except (redis_exceptions.ConnectionError, redis_exceptions.TimeoutError) as exc:
        await client.aclose()
        raise StoreConnectionError(
            f"cannot reach redis at {settings.redis_host}:{settings.redis_port}: {exc}"
        ) from exc
    except redis_exceptions.ResponseError as exc:
        # e.g. NOAUTH / WRONGPASS
        await client.aclose()
        raise StoreConnectionError(f"redis refused connection: {exc}") from exc
    logger.info("connected host=%s port=%d", settings.redis_host, settings.redis_port)
    return client
