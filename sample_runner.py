from __future__ import annotations

import asyncio
from typing import List, Optional

from sample_logging import get_logger
from sample_probe import ProbeError, StoreConnectionError, StoreProbe
from sample_stats import Aggregator, Observation, SampleRun

logger = get_logger(__name__)


class SampleCoordinator:
    """Drives N RANDOMKEY probe cycles against one store.

    Cycles run as independent tasks and finish in any order; the run is
    complete once ``run.completed`` reaches N. A vanished key only abandons
    its own cycle, while a lost connection aborts the whole run.
    """

    def __init__(self, probe: StoreProbe, aggregator: Aggregator, max_in_flight: int = 0):
        self.probe = probe
        self.aggregator = aggregator
        self.max_in_flight = max_in_flight
        self._semaphore: Optional[asyncio.Semaphore] = None
        self._done: Optional[asyncio.Event] = None
        self._fatal: Optional[BaseException] = None
        self._target = 0

    @property
    def run(self) -> SampleRun:
        return self.aggregator.run

    async def run_sample(self, n: int) -> SampleRun:
        if n < 0:
            raise ValueError("sample size must be non-negative")
        run = self.run
        run.sample_size = n
        self._target = n
        self._fatal = None
        self._done = asyncio.Event()
        self._semaphore = (
            asyncio.Semaphore(self.max_in_flight) if self.max_in_flight > 0 else None
        )
        logger.info("sample_run_started size=%d max_in_flight=%d", n, self.max_in_flight)

        if n == 0:
            self._done.set()
        tasks: List[asyncio.Task] = [
            asyncio.create_task(self._cycle(idx)) for idx in range(n)
        ]
        try:
            await self._done.wait()
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        if self._fatal is not None:
            logger.error("sample_run_aborted completed=%d error=%s", run.completed, self._fatal)
            raise self._fatal

        if run.failed and run.failed == run.draws:
            logger.warning("sample_run_no_observations failed=%d", run.failed)
        logger.info(
            "sample_run_finished sampled=%d draws=%d duplicates=%d empty=%d failed=%d",
            run.sampled,
            run.draws,
            run.duplicates,
            run.empty_draws,
            run.failed,
        )
        return run

    async def _cycle(self, idx: int):
        try:
            if self._semaphore is None:
                await self._probe_once(idx)
            else:
                async with self._semaphore:
                    await self._probe_once(idx)
        except ProbeError as exc:
            self.run.failed += 1
            logger.debug("probe_cycle_failed idx=%d error=%s", idx, exc)
        except Exception as exc:  # StoreConnectionError or a bug: abort the run
            if self._fatal is None:
                self._fatal = exc
            self._done.set()
        finally:
            self.run.completed += 1
            if self.run.completed >= self._target:
                self._done.set()

    async def _probe_once(self, idx: int):
        key = await self.probe.random_key()
        if key is None:
            self.run.empty_draws += 1
            return
        self.run.draws += 1

        results = await asyncio.gather(
            self.probe.type_of(key),
            self.probe.ttl_of(key),
            self.probe.size_and_meta(key),
            return_exceptions=True,
        )
        # a lost connection outranks a vanished key
        for result in results:
            if isinstance(result, StoreConnectionError):
                raise result
        for result in results:
            if isinstance(result, BaseException):
                raise result

        key_type, ttl, info = results
        self.aggregator.record(
            Observation(key=key, key_type=key_type, ttl=ttl, size=info.serialized_length)
        )
