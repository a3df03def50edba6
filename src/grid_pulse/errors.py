"""Error taxonomy for grid-pulse.

Sources raise these internally; ``ReadableSource.sample()`` catches every one
of them and degrades the row to sentinel values, so none of them escape the
polling core. Only ``ConfigError`` is fatal, and only at startup.
"""

from typing import Optional


class GridPulseError(Exception):
    """Base class for all grid-pulse errors."""


class TransportError(GridPulseError):
    """Connection failure, timeout, or non-2xx HTTP status."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ProtocolError(GridPulseError):
    """Non-zero application error code or an unparsable response body."""

    def __init__(self, message: str, errno: Optional[int] = None):
        super().__init__(message)
        self.errno = errno


class DataShapeError(GridPulseError):
    """Missing, reordered, or insufficient data points in a response."""


class AuthError(GridPulseError):
    """Session acquisition failed."""


class ConfigError(GridPulseError):
    """Invalid or unreadable configuration."""
