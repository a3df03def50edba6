"""Concatenate per-source readings into one fixed-width row per tick."""

from collections.abc import Iterable, Sequence

from .datasources.base import ReadableSource

TIMESTAMP_COLUMN = "timestamp"


def aggregate(pairs: Iterable[tuple[ReadableSource, Sequence[float]]]) -> list[float]:
    """
    Concatenate rows preserving source order and each source's metric order.

    Args:
        pairs: ``(source, row)`` pairs in emission order

    Returns:
        A new list holding every row back to back
    """
    row: list[float] = []
    for _source, values in pairs:
        row.extend(values)
    return row


def build_header(
    fast: Sequence[ReadableSource], slow: Sequence[ReadableSource]
) -> list[str]:
    """Header for the log: timestamp, then fast metric names, then slow metric names."""
    header = [TIMESTAMP_COLUMN]
    for source in (*fast, *slow):
        header.extend(source.names())
    return header


def row_width(fast: Sequence[ReadableSource], slow: Sequence[ReadableSource]) -> int:
    """Width of every emitted row, timestamp included."""
    return len(build_header(fast, slow))
