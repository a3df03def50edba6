"""FRITZ!Box smart plug source (AHA HTTP interface)"""

import hashlib
import xml.etree.ElementTree as ET
from typing import Optional

import httpx

from ..config import FritzSourceConfig
from ..errors import AuthError, ProtocolError, TransportError
from ..log_handler import get_structured_logger
from ..session import SessionManager
from .base import ReadableSource, SourceMetadata
from .http import create_client, send

logger = get_structured_logger(__name__, component="fritz")

METRICS = ("power", "energy", "temperature")
COMMANDS = ("getswitchpower", "getswitchenergy", "gettemperature")

INVALID_SID = "0000000000000000"


def challenge_response(challenge: str, password: str) -> str:
    """MD5 challenge-response as expected by login_sid.lua (UTF-16LE encoded)."""
    digest = hashlib.md5(f"{challenge}-{password}".encode("utf-16-le")).hexdigest()
    return f"{challenge}-{digest}"


def parse_session_info(body: str) -> tuple[str, str]:
    """
    Extract SID and challenge from a SessionInfo document.

    Raises:
        ProtocolError: If the body is not a SessionInfo document
    """
    try:
        root = ET.fromstring(body)
    except ET.ParseError as e:
        raise ProtocolError(f"malformed SessionInfo: {e}") from e

    sid = root.findtext("SID")
    challenge = root.findtext("Challenge")
    if sid is None or challenge is None:
        raise ProtocolError("SessionInfo lacks SID or Challenge")
    return sid.strip(), challenge.strip()


class FritzSource(ReadableSource):
    """
    Power, energy and temperature of one FRITZ!DECT actor.

    Holds a session ID across ticks; it is validated before reuse and
    re-acquired through the challenge-response login when the box has
    dropped it.
    """

    kind = "fritz"

    def __init__(
        self,
        name: str,
        config: FritzSourceConfig,
        request_timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(name)
        self._config = config
        self._url = config.url.rstrip("/")
        self._client = client or create_client(request_timeout, verify=config.verify_tls)
        self.session = SessionManager(self, source=name)

    @property
    def metrics(self) -> tuple[str, ...]:
        return METRICS

    async def login(self) -> str:
        """Fetch a challenge and answer it to obtain a session ID."""
        response = await send(self._client, "GET", f"{self._url}/login_sid.lua")
        _, challenge = parse_session_info(response.text)

        response = await send(
            self._client,
            "GET",
            f"{self._url}/login_sid.lua",
            params={
                "username": self._config.user,
                "response": challenge_response(challenge, self._config.password),
            },
        )
        sid, _ = parse_session_info(response.text)
        if sid == INVALID_SID:
            raise AuthError("FRITZ!Box rejected the credentials")
        return sid

    async def probe(self, token: str) -> bool:
        """A valid session ID is echoed back by login_sid.lua."""
        response = await send(
            self._client, "GET", f"{self._url}/login_sid.lua", params={"sid": token}
        )
        sid, _ = parse_session_info(response.text)
        return sid == token and sid != INVALID_SID

    async def _measure(self) -> list[float]:
        sid = await self.session.ensure()
        return [await self._get_value(command, sid) for command in COMMANDS]

    async def _get_value(self, command: str, sid: str) -> float:
        try:
            response = await send(
                self._client,
                "GET",
                f"{self._url}/webservices/homeautoswitch.lua",
                params={"switchcmd": command, "ain": self._config.ain, "sid": sid},
            )
        except TransportError as e:
            if e.status_code == 403:
                self.session.invalidate()
            raise

        text = response.text.strip()
        try:
            return float(text)
        except ValueError as e:
            raise ProtocolError(f"{command} returned a non-numeric value: {text!r}") from e

    def get_metadata(self) -> SourceMetadata:
        return SourceMetadata(
            source_id=self.name,
            kind=self.kind,
            description=f"FRITZ!DECT actor {self._config.ain} via {self._url}",
            requires_auth=True,
        )

    async def shutdown(self) -> None:
        """Clean up HTTP client"""
        await self._client.aclose()
        logger.debug("Fritz source shut down", source=self.name)
