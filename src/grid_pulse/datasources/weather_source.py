"""Weather source implementation using the OpenWeatherMap current weather API"""

from typing import Optional

import httpx
from pydantic import BaseModel, ValidationError

from ..config import WeatherSourceConfig
from ..errors import DataShapeError
from ..log_handler import get_structured_logger
from .base import SENTINEL, ReadableSource, SourceMetadata
from .http import create_client, parse_json, send

logger = get_structured_logger(__name__, component="weather")

METRICS = (
    "temperature",
    "humidity",
    "pressure",
    "visibility",
    "wind_speed",
    "wind_direction",
    "cloud_coverage",
    "description",
)


class WeatherCondition(BaseModel):
    id: float


class MainData(BaseModel):
    temp: float
    pressure: float
    humidity: float


class WindData(BaseModel):
    speed: float
    deg: float


class CloudData(BaseModel):
    all: float


class WeatherInfo(BaseModel):
    """Subset of the OpenWeatherMap response; optional sections may be absent."""

    weather: list[WeatherCondition]
    main: Optional[MainData] = None
    visibility: Optional[float] = None
    wind: Optional[WindData] = None
    clouds: Optional[CloudData] = None


class WeatherSource(ReadableSource):
    """
    Current weather conditions for a fixed location.

    Sections OpenWeatherMap leaves out (e.g. ``visibility`` in fog-free
    reports) only blank their own columns; a malformed section fails the
    whole row.
    """

    kind = "weather"

    def __init__(
        self,
        name: str,
        config: WeatherSourceConfig,
        request_timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(name)
        self._config = config
        self._client = client or create_client(request_timeout)

    @property
    def metrics(self) -> tuple[str, ...]:
        return METRICS

    async def _measure(self) -> list[float]:
        params = {
            "lat": self._config.lat,
            "lon": self._config.long,
            "appid": self._config.app_id,
            "units": "metric",
        }
        logger.debug("Fetching weather", source=self.name, url=self._config.url)
        response = await send(self._client, "GET", self._config.url, params=params)
        return self._parse(parse_json(response))

    def _parse(self, doc: dict) -> list[float]:
        try:
            info = WeatherInfo.model_validate(doc)
        except ValidationError as e:
            raise DataShapeError(f"unexpected weather payload: {e.error_count()} invalid field(s)") from e

        if not info.weather:
            raise DataShapeError("weather condition list is empty")

        main = info.main or MainData(temp=SENTINEL, pressure=SENTINEL, humidity=SENTINEL)
        wind = info.wind or WindData(speed=SENTINEL, deg=SENTINEL)
        clouds = info.clouds or CloudData(all=SENTINEL)
        visibility = info.visibility if info.visibility is not None else SENTINEL

        return [
            main.temp,
            main.humidity,
            main.pressure,
            visibility,
            wind.speed,
            wind.deg,
            clouds.all,
            info.weather[0].id,
        ]

    def get_metadata(self) -> SourceMetadata:
        return SourceMetadata(
            source_id=self.name,
            kind=self.kind,
            description=f"Current weather at ({self._config.lat}, {self._config.long})",
        )

    async def shutdown(self) -> None:
        """Clean up HTTP client"""
        await self._client.aclose()
        logger.debug("Weather source shut down", source=self.name)
