import asyncio
from typing import Dict, List, Optional

import pytest

from sample_probe import ObjectInfo, ProbeError, StoreConnectionError


class FakeProbe:
    """In-memory StoreProbe.

    ``draws`` is the sequence RANDOMKEY returns (None = empty keyspace);
    ``keys`` maps key name -> (type, ttl, size). Draws of names missing from
    ``keys`` behave like keys that vanished between draw and inspection.
    """

    def __init__(self, draws: List[Optional[str]], keys: Dict[str, tuple], delay: float = 0):
        self.draws = list(draws)
        self.keys = dict(keys)
        self.delay = delay
        self.fail_connection_on: Optional[str] = None
        self.in_flight = 0
        self.max_seen_in_flight = 0

    async def _step(self):
        self.in_flight += 1
        self.max_seen_in_flight = max(self.max_seen_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1

    def _lookup(self, key: str) -> tuple:
        if key == self.fail_connection_on:
            raise StoreConnectionError("connection reset by peer")
        if key not in self.keys:
            raise ProbeError(f"key vanished: {key}")
        return self.keys[key]

    async def random_key(self) -> Optional[str]:
        await self._step()
        return self.draws.pop(0) if self.draws else None

    async def type_of(self, key: str) -> str:
        await self._step()
        return self._lookup(key)[0]

    async def ttl_of(self, key: str) -> int:
        await self._step()
        return self._lookup(key)[1]

    async def size_and_meta(self, key: str) -> ObjectInfo:
        await self._step()
        return ObjectInfo(serialized_length=self._lookup(key)[2])

    async def keyspace_size(self) -> int:
        return len(self.keys)

    async def server_metadata(self) -> dict:
        return {"redis_version": "7.2.4"}


@pytest.fixture
def scenario_keys():
    return {
        "user:1001:profile": ("hash", -1, 100),
        "user:1001:settings": ("hash", 60, 200),
        "user:2002:profile": ("hash", 120, 300),
        "cache:abc": ("string", -1, 10),
    }


@pytest.fixture
def server_info():
    return {
        "redis_version": "7.2.4",
        "uptime_in_seconds": 3600,
        "connected_clients": 5,
        "used_memory_human": "1.50M",
        "used_memory_rss_human": "4.00M",
        "total_commands_processed": 1234567,
        "total_net_input_bytes": 2048,
        "total_net_output_bytes": 3 * 1024 * 1024,
    }


@pytest.fixture
def make_probe():
    return FakeProbe
