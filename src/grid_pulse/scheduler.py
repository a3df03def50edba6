"""
Dual-cadence sampling loop for grid-pulse.

This module drives all configured sources from a single cooperative loop:
- Fast sources are sampled on every tick
- Slow sources are resampled every ``slow_period`` ticks and their row-set
  is cached in between
- One fixed-width row ``[timestamp, *fast, *slow]`` is emitted per tick
"""

import asyncio
import contextlib
import time
from collections.abc import Callable, Sequence
from typing import Optional, Protocol

from .aggregator import aggregate, build_header
from .datasources.base import ReadableSource, fallback_row
from .log_handler import get_structured_logger

logger = get_structured_logger(__name__, component="scheduler")


class RowSink(Protocol):
    def write_row(self, row: Sequence[float]) -> None: ...


class DualCadenceScheduler:
    """
    Samples fast sources every tick and slow sources every ``slow_period`` ticks.

    Sources are sampled strictly in configured order, never concurrently.
    The slow-loop cache has exactly one writer and one reader (this object),
    so no locking is involved.
    """

    def __init__(
        self,
        fast: Sequence[ReadableSource],
        slow: Sequence[ReadableSource],
        tick_interval: float = 30.0,
        slow_period: int = 20,
        sink: Optional[RowSink] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the scheduler.

        Args:
            fast: Sources sampled on every tick, in order
            slow: Sources sampled on every ``slow_period``-th tick, in order
            tick_interval: Seconds slept between ticks
            slow_period: Number of ticks between slow loop resamples
            sink: Receives every emitted row (optional)
            clock: Timestamp source for the first column
        """
        if slow_period < 1:
            raise ValueError("slow_period must be at least 1")

        self.fast = list(fast)
        self.slow = list(slow)
        self.tick_interval = tick_interval
        self.slow_period = slow_period
        self._sink = sink
        self._clock = clock
        self._cache: list[float] = []
        self._tick_counter = 0
        self._stop_event = asyncio.Event()

        logger.info(
            f"Scheduler initialized with {len(self.fast)} fast and {len(self.slow)} slow source(s)",
            tick_interval=tick_interval,
            slow_period=slow_period,
        )

    @property
    def tick_counter(self) -> int:
        """Position within the current slow period (0 means resample)."""
        return self._tick_counter

    @property
    def cache(self) -> tuple[float, ...]:
        """The most recent slow loop row-set (empty before the first tick)."""
        return tuple(self._cache)

    def header(self) -> list[str]:
        """Column names matching every emitted row."""
        return build_header(self.fast, self.slow)

    async def _sample_source(self, source: ReadableSource) -> list[float]:
        """Sample one source, enforcing its row width even if it misbehaves."""
        width = len(source.names())
        try:
            row = await source.sample()
        except Exception as e:
            logger.error("Source raised from sample()", source=source.name, error=str(e))
            return fallback_row(width)

        if len(row) != width:
            logger.error(
                "Source returned a row of the wrong width",
                source=source.name,
                expected=width,
                actual=len(row),
            )
            return fallback_row(width)
        return list(row)

    async def _sample_all(self, sources: Sequence[ReadableSource]) -> list[float]:
        pairs = []
        for source in sources:
            pairs.append((source, await self._sample_source(source)))
        return aggregate(pairs)

    async def tick(self) -> list[float]:
        """
        Run one tick and emit its row.

        Returns:
            ``[timestamp, *fast_row, *slow_row]``
        """
        timestamp = self._clock()
        fast_row = await self._sample_all(self.fast)

        if self._tick_counter == 0:
            logger.debug("Resampling slow loop")
            self._cache = await self._sample_all(self.slow)

        row = [timestamp, *fast_row, *self._cache]
        if self._sink is not None:
            self._sink.write_row(row)

        self._tick_counter = (self._tick_counter + 1) % self.slow_period
        return row

    async def run(self, max_ticks: Optional[int] = None) -> None:
        """
        Tick, sleep, repeat until ``stop()`` is called.

        Args:
            max_ticks: Stop after this many ticks (runs forever if None)
        """
        logger.info("Sampling loop started")
        ticks = 0

        while not self._stop_event.is_set():
            tick_start = time.monotonic()
            await self.tick()
            ticks += 1

            if max_ticks is not None and ticks >= max_ticks:
                break

            logger.debug(f"Tick completed in {time.monotonic() - tick_start:.2f}s")
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.tick_interval)

        logger.info("Sampling loop stopped")

    def stop(self) -> None:
        """Ask the loop to exit after the current tick or sleep."""
        self._stop_event.set()
