"""Build source instances from configuration"""

from dataclasses import dataclass, field

from ..config import (
    Config,
    FoxEssCloudSourceConfig,
    FoxEssSourceConfig,
    FritzSourceConfig,
    PowerSourceConfig,
    SourceConfig,
    WeatherSourceConfig,
)
from ..errors import ConfigError
from ..log_handler import get_structured_logger
from .base import ReadableSource
from .foxess_source import FoxEssCloudSource, FoxEssOpenApiSource
from .fritz_source import FritzSource
from .power_source import PowerSource
from .registry import SourceRegistry
from .weather_source import WeatherSource

logger = get_structured_logger(__name__, component="factory")


@dataclass
class Loops:
    """Sources split by cadence, each list in configured order."""

    fast: list[ReadableSource] = field(default_factory=list)
    slow: list[ReadableSource] = field(default_factory=list)


def create_source(
    name: str, source_config: SourceConfig, request_timeout: float = 10.0
) -> ReadableSource:
    """Instantiate the source variant matching the config record."""
    if isinstance(source_config, WeatherSourceConfig):
        return WeatherSource(name, source_config, request_timeout)
    if isinstance(source_config, PowerSourceConfig):
        return PowerSource(name, source_config)
    if isinstance(source_config, FritzSourceConfig):
        return FritzSource(name, source_config, request_timeout)
    if isinstance(source_config, FoxEssSourceConfig):
        return FoxEssOpenApiSource(name, source_config, request_timeout)
    if isinstance(source_config, FoxEssCloudSourceConfig):
        return FoxEssCloudSource(name, source_config, request_timeout)
    raise ConfigError(f"unsupported config for source '{name}': {type(source_config).__name__}")


def build_loops(config: Config, registry: SourceRegistry) -> Loops:
    """
    Create the fast and slow loop sources named in the general section.

    Names whose source type is unknown were dropped while loading the
    config and are skipped here.
    """
    loops = Loops()
    timeout = config.general.request_timeout

    for names, target in (
        (config.general.fast_loop, loops.fast),
        (config.general.slow_loop, loops.slow),
    ):
        for name in names:
            source_config = config.sources.get(name)
            if source_config is None:
                logger.warning(f"Skipping source '{name}' without a usable config")
                continue
            source = create_source(name, source_config, timeout)
            registry.register(source)
            target.append(source)

    return loops
