"""Configuration loading and validation"""

import dataclasses
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Union

import yaml

from .errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "GRID_PULSE_CONFIG"

# Default config search paths (in order)
CONFIG_PATHS = [
    Path("config.yaml"),
    Path.home() / ".config" / "grid-pulse" / "config.yaml",
    Path("/etc/grid-pulse/config.yaml"),
]

OPENWEATHER_URL = "https://api.openweathermap.org/data/2.5/weather"
FOXESS_URL = "https://www.foxesscloud.com"


@dataclass
class GeneralConfig:
    filename: str = "data.csv"
    fast_loop: list[str] = field(default_factory=list)
    slow_loop: list[str] = field(default_factory=list)
    slow_loop_delay: int = 20  # ticks between slow loop resamples
    timeout: float = 30.0  # seconds slept between ticks
    request_timeout: float = 10.0  # per HTTP request


@dataclass
class LoggingConfig:
    level: str = "INFO"
    file: Optional[str] = None


@dataclass
class WeatherSourceConfig:
    """OpenWeatherMap current weather"""
    lat: float
    long: float
    app_id: str
    url: str = OPENWEATHER_URL


@dataclass
class PowerSourceConfig:
    """INA219 current/power monitor on an I2C bus"""
    bus: str
    address: int
    expected_amps: float
    zero_on_idle: bool = True  # report 0,0,0 when measured power <= 0


@dataclass
class FritzSourceConfig:
    """FRITZ!DECT smart plug behind a FRITZ!Box"""
    url: str
    user: str
    password: str
    ain: str
    verify_tls: bool = False


@dataclass
class FoxEssSourceConfig:
    """FoxESS inverter via the signed OpenAPI"""
    api_key: str
    inverter_id: str
    variables: list[str]
    url: str = FOXESS_URL


@dataclass
class FoxEssCloudSourceConfig:
    """FoxESS inverter via the legacy login-based cloud API"""
    user: str
    password: str
    inverter_id: str
    variables: list[str]
    url: str = FOXESS_URL
    verify_tls: bool = False


SourceConfig = Union[
    WeatherSourceConfig,
    PowerSourceConfig,
    FritzSourceConfig,
    FoxEssSourceConfig,
    FoxEssCloudSourceConfig,
]

SOURCE_TYPES: dict[str, type] = {
    "weather": WeatherSourceConfig,
    "power": PowerSourceConfig,
    "fritz": FritzSourceConfig,
    "foxess": FoxEssSourceConfig,
    "foxess_cloud": FoxEssCloudSourceConfig,
}


# Source fields that are always text, even when the YAML value looks numeric
STRING_FIELDS = frozenset({"user", "password", "api_key", "app_id", "ain", "inverter_id"})


@dataclass
class Config:
    general: GeneralConfig = field(default_factory=GeneralConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    sources: dict[str, SourceConfig] = field(default_factory=dict)


def find_config_file() -> Optional[Path]:
    """Find config file via the environment or in standard locations"""
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path)
    for path in CONFIG_PATHS:
        if path.exists():
            return path
    return None


def parse_source_config(name: str, data: Any) -> Optional[SourceConfig]:
    """
    Build the typed record for one source table.

    Returns:
        The source config, or None if the type is unknown

    Raises:
        ConfigError: If the table is malformed or misses required fields
    """
    if not isinstance(data, dict):
        raise ConfigError(f"source '{name}' must be a mapping")

    kind = data.get("type")
    if kind is None:
        raise ConfigError(f"source '{name}' is missing its type")

    config_cls = SOURCE_TYPES.get(kind)
    if config_cls is None:
        logger.warning(f"Ignoring source '{name}' with unknown type '{kind}'")
        return None

    known = {f.name: f for f in dataclasses.fields(config_cls)}
    required = [
        f.name
        for f in known.values()
        if f.default is dataclasses.MISSING and f.default_factory is dataclasses.MISSING
    ]
    missing = [key for key in required if key not in data]
    if missing:
        raise ConfigError(
            f"a {kind} source requires the following fields to be set: {', '.join(required)} "
            f"(source '{name}' is missing {', '.join(missing)})"
        )

    values = {key: value for key, value in data.items() if key in known}
    for key in STRING_FIELDS.intersection(values):
        values[key] = _as_string(name, key, values[key])
    if "variables" in values:
        values["variables"] = _as_string_list(name, "variables", values["variables"])
    return config_cls(**values)


def _as_string(name: str, key: str, value: Any) -> str:
    """Credentials and identifiers YAML may have read as numbers."""
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    raise ConfigError(f"source '{name}': {key} must be a string, got {type(value).__name__}")


def _as_string_list(name: str, key: str, value: Any) -> list[str]:
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ConfigError(f"source '{name}': {key} must be a list of strings")
    return list(value)


def load_config(config_path: Optional[str] = None) -> Config:
    """Load configuration from YAML file"""
    if config_path:
        path = Path(config_path)
    else:
        path = find_config_file()

    if path is None:
        logger.warning("No config file found, using defaults")
        return Config()

    if not path.exists():
        raise ConfigError(f"could not read config file: {path}")

    logger.info(f"Loading config from: {path}")

    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"could not parse the config file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"config file {path} must contain a mapping")

    try:
        general = GeneralConfig(**data.get("general", {}))
        logging_config = LoggingConfig(**data.get("logging", {}))
    except TypeError as e:
        raise ConfigError(f"invalid config section: {e}") from e

    if general.slow_loop_delay < 1:
        raise ConfigError("general.slow_loop_delay must be at least 1")

    raw_sources = data.get("sources") or {}
    seen: set[str] = set()
    for name in [*general.fast_loop, *general.slow_loop]:
        if name not in raw_sources:
            raise ConfigError(f"no config provided for source '{name}'")
        if name in seen:
            raise ConfigError(f"source '{name}' is listed more than once in fast_loop/slow_loop")
        seen.add(name)

    sources: dict[str, SourceConfig] = {}
    for name, table in raw_sources.items():
        source_config = parse_source_config(name, table)
        if source_config is not None:
            sources[name] = source_config

    return Config(general=general, logging=logging_config, sources=sources)
