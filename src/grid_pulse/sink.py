"""Append-only CSV log of emitted rows.

Output format::

    timestamp,fritz_power,fritz_energy,fritz_temperature,owa_temperature,...
    1767261600.123,12500.0,1200.0,215.0,4.2,...

The header is written once when the file is created; an existing file is
appended to as-is.
"""

from __future__ import annotations

import csv
import logging
from collections.abc import Sequence
from pathlib import Path

logger = logging.getLogger(__name__)


class CsvLogSink:
    """Row sink that appends every tick's row to a CSV file.

    Parameters:
        path: Destination CSV file path.
        header: Column names, written only if the file does not exist yet.
    """

    def __init__(self, path: Path | str, header: Sequence[str]) -> None:
        self._path = Path(path)
        self._header = list(header)
        self._row_count: int = 0

    @property
    def log_path(self) -> Path:
        """The CSV file path."""
        return self._path

    @property
    def row_count(self) -> int:
        """Rows written by this sink."""
        return self._row_count

    def ensure_header(self) -> None:
        """Create the file with its header row unless it already exists."""
        if self._path.exists():
            return
        if self._path.parent != Path():
            self._path.parent.mkdir(parents=True, exist_ok=True)
        with open(self._path, "w", newline="", encoding="utf-8") as fh:
            csv.writer(fh).writerow(self._header)
        logger.info(f"Created log file {self._path} with {len(self._header)} columns")

    def write_row(self, row: Sequence[float]) -> None:
        """Append one row. Write errors are logged, never raised."""
        if len(row) != len(self._header):
            logger.warning(
                f"Row width {len(row)} does not match header width {len(self._header)}"
            )
        try:
            with open(self._path, "a", newline="", encoding="utf-8") as fh:
                csv.writer(fh).writerow(row)
        except OSError as e:
            logger.error(f"Couldn't write to file {self._path}: {e}")
            return
        self._row_count += 1
