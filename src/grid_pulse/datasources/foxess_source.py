"""FoxESS inverter sources: legacy login-based cloud API and signed OpenAPI"""

import hashlib
import time
from datetime import datetime, timezone
from typing import Any, Optional

import httpx
from pydantic import BaseModel, Field, ValidationError

from ..config import FoxEssCloudSourceConfig, FoxEssSourceConfig
from ..errors import DataShapeError, ProtocolError
from ..log_handler import get_structured_logger
from ..session import SessionManager
from .base import ReadableSource, SourceMetadata
from .http import check_errno, create_client, parse_json, send

logger = get_structured_logger(__name__, component="foxess")

LOGIN_PATH = "/c/v0/user/login"
STATUS_PATH = "/c/v0/device/status/all"
HISTORY_PATH = "/c/v0/device/history/raw"
REAL_QUERY_PATH = "/op/v0/device/real/query"

# The OpenAPI signs the literal characters backslash-r-backslash-n.
SIGNATURE_SEPARATOR = r"\r\n"

# errno values the cloud API uses for expired or unknown tokens
TOKEN_ERRNOS = {41808, 41809}


def md5_hex(text: str) -> str:
    return hashlib.md5(text.encode("utf-8")).hexdigest()


def sign_request(path: str, token: str, timestamp: str) -> str:
    """Signature header value for an OpenAPI request."""
    return md5_hex(SIGNATURE_SEPARATOR.join((path, token, timestamp)))


class SeriesPoint(BaseModel):
    value: float


class DataSeries(BaseModel):
    variable: str
    data: list[SeriesPoint]


class RealTimeDatum(BaseModel):
    variable: str
    value: float


class RealTimeResult(BaseModel):
    datas: list[RealTimeDatum] = Field(default_factory=list)


class FoxEssCloudSource(ReadableSource):
    """
    Inverter variables from the FoxESS cloud (``/c/v0`` API).

    Logs in with user name and MD5-hashed password, keeps the token across
    ticks and validates it with a cheap device status call before reuse.
    The history endpoint lags behind real time; the most recent point of
    each series is reported.
    """

    kind = "foxess_cloud"

    def __init__(
        self,
        name: str,
        config: FoxEssCloudSourceConfig,
        request_timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(name)
        self._config = config
        self._url = config.url.rstrip("/")
        self._variables = tuple(config.variables)
        self._client = client or create_client(request_timeout, verify=config.verify_tls)
        self.session = SessionManager(self, source=name)

    @property
    def metrics(self) -> tuple[str, ...]:
        return self._variables

    async def login(self) -> str:
        response = await send(
            self._client,
            "POST",
            f"{self._url}{LOGIN_PATH}",
            data={"user": self._config.user, "password": md5_hex(self._config.password)},
        )
        doc = parse_json(response)
        check_errno(doc)
        result = doc.get("result")
        token = result.get("token") if isinstance(result, dict) else None
        if not isinstance(token, str):
            raise ProtocolError("login response carries no token")
        return token

    async def probe(self, token: str) -> bool:
        response = await send(
            self._client, "GET", f"{self._url}{STATUS_PATH}", headers={"token": token}
        )
        doc = parse_json(response)
        return doc.get("errno") == 0

    async def _measure(self) -> list[float]:
        token = await self.session.ensure()

        now = datetime.now(timezone.utc)
        request = {
            "deviceId": self._config.inverter_id,
            "variables": list(self._variables),
            "timespan": "day",
            "BeginDate": {
                "year": now.year,
                "month": now.month,
                "day": now.day,
                "hour": 0,
                "minute": 0,
                "second": 0,
            },
        }
        response = await send(
            self._client,
            "POST",
            f"{self._url}{HISTORY_PATH}",
            json=request,
            headers={"token": token},
        )
        doc = parse_json(response)
        try:
            check_errno(doc)
        except ProtocolError as e:
            if e.errno in TOKEN_ERRNOS:
                self.session.invalidate()
            raise
        return self._parse(doc.get("result"))

    def _parse(self, result: Any) -> list[float]:
        if not isinstance(result, list):
            raise DataShapeError("history result is not a list")
        try:
            series = [DataSeries.model_validate(item) for item in result]
        except ValidationError as e:
            raise DataShapeError(f"malformed data series: {e.error_count()} invalid field(s)") from e

        if len(series) != len(self._variables):
            raise DataShapeError(
                f"number of data series ({len(series)}) does not match "
                f"number of requested variables ({len(self._variables)})"
            )

        values = []
        for expected, entry in zip(self._variables, series):
            if entry.variable != expected:
                raise DataShapeError(f"expected series {expected} but got {entry.variable}")
            if not entry.data:
                raise DataShapeError(f"expected at least one value for the series: {expected}")
            values.append(entry.data[-1].value)
        return values

    def get_metadata(self) -> SourceMetadata:
        return SourceMetadata(
            source_id=self.name,
            kind=self.kind,
            description=f"FoxESS cloud inverter {self._config.inverter_id}",
            requires_auth=True,
        )

    async def shutdown(self) -> None:
        """Clean up HTTP client"""
        await self._client.aclose()
        logger.debug("FoxESS cloud source shut down", source=self.name)


class FoxEssOpenApiSource(ReadableSource):
    """
    Real-time inverter variables from the FoxESS OpenAPI (``/op/v0``).

    Every request is signed with the static API key; there is no session.
    """

    kind = "foxess"

    def __init__(
        self,
        name: str,
        config: FoxEssSourceConfig,
        request_timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
        clock=time.time,
    ):
        super().__init__(name)
        self._config = config
        self._url = config.url.rstrip("/")
        self._variables = tuple(config.variables)
        self._client = client or create_client(request_timeout)
        self._clock = clock

    @property
    def metrics(self) -> tuple[str, ...]:
        return self._variables

    def _headers(self, path: str) -> dict[str, str]:
        timestamp = str(int(self._clock() * 1000))
        return {
            "token": self._config.api_key,
            "timestamp": timestamp,
            "signature": sign_request(path, self._config.api_key, timestamp),
            "lang": "en",
        }

    async def _measure(self) -> list[float]:
        response = await send(
            self._client,
            "POST",
            f"{self._url}{REAL_QUERY_PATH}",
            json={"sn": self._config.inverter_id, "variables": list(self._variables)},
            headers=self._headers(REAL_QUERY_PATH),
        )
        doc = parse_json(response)
        check_errno(doc)
        return self._parse(doc.get("result"))

    def _parse(self, result: Any) -> list[float]:
        if not isinstance(result, list) or not result:
            raise DataShapeError("real-time result is empty")
        try:
            device = RealTimeResult.model_validate(result[0])
        except ValidationError as e:
            raise DataShapeError(f"malformed real-time data: {e.error_count()} invalid field(s)") from e

        by_variable = {datum.variable: datum.value for datum in device.datas}
        missing = [v for v in self._variables if v not in by_variable]
        if missing:
            raise DataShapeError(f"missing variables in response: {', '.join(missing)}")
        return [by_variable[v] for v in self._variables]

    def get_metadata(self) -> SourceMetadata:
        return SourceMetadata(
            source_id=self.name,
            kind=self.kind,
            description=f"FoxESS OpenAPI inverter {self._config.inverter_id}",
        )

    async def shutdown(self) -> None:
        """Clean up HTTP client"""
        await self._client.aclose()
        logger.debug("FoxESS OpenAPI source shut down", source=self.name)
