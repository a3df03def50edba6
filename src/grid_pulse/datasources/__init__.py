"""
Telemetry sources for grid-pulse.

Each source implements the ReadableSource contract: a stable list of metric
names and a never-raising ``sample()`` coroutine.
"""

from .base import SENTINEL, ReadableSource, SourceMetadata, SourceStatus, fallback_row
from .factory import Loops, build_loops, create_source
from .foxess_source import FoxEssCloudSource, FoxEssOpenApiSource
from .fritz_source import FritzSource
from .power_source import PowerSource
from .registry import SourceRegistry
from .weather_source import WeatherSource

__all__ = [
    "SENTINEL",
    "ReadableSource",
    "SourceMetadata",
    "SourceStatus",
    "fallback_row",
    "SourceRegistry",
    "Loops",
    "build_loops",
    "create_source",
    "FoxEssCloudSource",
    "FoxEssOpenApiSource",
    "FritzSource",
    "PowerSource",
    "WeatherSource",
]
