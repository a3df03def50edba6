"""
Base interface for all telemetry sources in grid-pulse.

Every source exposes a stable list of metric names and a ``sample()``
coroutine returning exactly one float per name. ``sample()`` never raises:
failures are logged once on the diagnostic channel and the whole row is
replaced with the sentinel value, so the scheduler can always build a
fixed-width output row.
"""

import time
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Optional

from ..errors import DataShapeError, GridPulseError
from ..log_handler import get_structured_logger

logger = get_structured_logger(__name__, component="source")

SENTINEL = -1.0


@dataclass
class SourceMetadata:
    """
    Metadata describing a telemetry source.

    Attributes:
        source_id: Configured name of the source (prefix of its metric names)
        kind: Configuration type of the source (e.g. "fritz", "weather")
        description: Brief description of what this source provides
        requires_auth: Whether this source keeps an authenticated session
    """

    source_id: str
    kind: str
    description: str
    requires_auth: bool = False


@dataclass
class SourceStatus:
    """Sampling statistics for a source."""

    source_id: str
    sample_count: int = 0
    error_count: int = 0
    last_sample: Optional[float] = None
    last_success: Optional[float] = None
    last_error: Optional[str] = None


def fallback_row(width: int) -> list[float]:
    """Row of sentinel values for a source owning ``width`` metrics."""
    return [SENTINEL] * width


class ReadableSource(ABC):
    """
    Abstract base class for all telemetry sources.

    Subclasses define ``metrics`` and implement ``_measure()``; they may raise
    any ``GridPulseError`` (or anything else) from it. ``sample()`` is the
    public contract and converts every failure into a sentinel row.
    """

    kind: str = "source"

    def __init__(self, name: str):
        self.name = name
        self._status = SourceStatus(source_id=name)

    @property
    @abstractmethod
    def metrics(self) -> Sequence[str]:
        """Ordered metric identifiers produced by this source."""

    @abstractmethod
    async def _measure(self) -> Sequence[float]:
        """
        Take one measurement.

        Returns:
            One value per entry in ``metrics``, in the same order

        Raises:
            GridPulseError: On transport, protocol, data shape or auth failures
        """

    def names(self) -> list[str]:
        """Column names for this source, ``<name>_<metric>``."""
        return [f"{self.name}_{metric}" for metric in self.metrics]

    async def sample(self) -> list[float]:
        """
        Measure once, never raising.

        Returns:
            ``len(self.names())`` floats; all sentinel values on failure
        """
        now = time.time()
        self._status.sample_count += 1
        self._status.last_sample = now
        width = len(self.metrics)

        try:
            values = await self._measure()
            if len(values) != width:
                raise DataShapeError(f"expected {width} values, got {len(values)}")
            row = [float(value) for value in values]
        except GridPulseError as e:
            self._record_failure(f"{type(e).__name__}: {e}")
            return fallback_row(width)
        except Exception as e:
            self._record_failure(f"unexpected {type(e).__name__}: {e}")
            return fallback_row(width)

        self._status.last_success = now
        return row

    def _record_failure(self, cause: str) -> None:
        self._status.error_count += 1
        self._status.last_error = cause
        logger.warning("Sample failed", source=self.name, error=cause)

    def get_status(self) -> SourceStatus:
        """Get sampling statistics for this source."""
        return self._status

    @abstractmethod
    def get_metadata(self) -> SourceMetadata:
        """
        Get metadata about this source.

        This is a synchronous method that performs no I/O.
        """

    async def shutdown(self) -> None:
        """Release connections held by this source."""
