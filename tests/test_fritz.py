"""Tests for the FRITZ!Box smart plug source"""

from __future__ import annotations

import hashlib

import httpx
import pytest

from grid_pulse.config import FritzSourceConfig
from grid_pulse.datasources.fritz_source import (
    INVALID_SID,
    FritzSource,
    challenge_response,
    parse_session_info,
)
from grid_pulse.errors import ProtocolError
from grid_pulse.session import SessionState

CHALLENGE = "1234567z"
VALID_SID = "ff88e4d39354992f"

VALUES = {"getswitchpower": "12500\n", "getswitchenergy": "1200\n", "gettemperature": "215\n"}


def session_info(sid: str, challenge: str = CHALLENGE) -> str:
    return (
        '<?xml version="1.0" encoding="utf-8"?>'
        f"<SessionInfo><SID>{sid}</SID><Challenge>{challenge}</Challenge>"
        "<BlockTime>0</BlockTime><Rights></Rights></SessionInfo>"
    )


class FakeFritzBox:
    """In-memory FRITZ!Box answering login_sid.lua and homeautoswitch.lua"""

    def __init__(self, password: str = "secret"):
        self.password = password
        self.sids = [VALID_SID, "0123456789abcdef"]
        self.active_sid: str | None = None
        self.logins = 0
        self.probes = 0
        self.commands: list[str] = []
        self.forbid_next_command = False
        self.values = dict(VALUES)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        params = request.url.params
        if request.url.path == "/login_sid.lua":
            if "sid" in params:
                self.probes += 1
                sid = params["sid"] if params["sid"] == self.active_sid else INVALID_SID
                return httpx.Response(200, text=session_info(sid))
            if "response" in params:
                if params["response"] != challenge_response(CHALLENGE, self.password):
                    return httpx.Response(200, text=session_info(INVALID_SID))
                self.active_sid = self.sids[self.logins]
                self.logins += 1
                return httpx.Response(200, text=session_info(self.active_sid))
            return httpx.Response(200, text=session_info(INVALID_SID))

        if request.url.path == "/webservices/homeautoswitch.lua":
            command = params["switchcmd"]
            self.commands.append(command)
            if self.forbid_next_command or params["sid"] != self.active_sid:
                self.forbid_next_command = False
                return httpx.Response(403, text="Forbidden")
            return httpx.Response(200, text=self.values[command])

        return httpx.Response(404)


@pytest.fixture
def box() -> FakeFritzBox:
    return FakeFritzBox()


def make_source(box: FakeFritzBox, password: str = "secret") -> FritzSource:
    config = FritzSourceConfig(url="http://fritz.test/", user="admin", password=password, ain="087610000")
    client = httpx.AsyncClient(transport=httpx.MockTransport(box))
    return FritzSource("fritz", config, client=client)


class TestChallengeResponse:
    def test_known_vector(self) -> None:
        """Response is challenge-md5(utf16le(challenge-password))"""
        expected = hashlib.md5("1234567z-äbc".encode("utf-16-le")).hexdigest()
        assert challenge_response("1234567z", "äbc") == f"1234567z-{expected}"

    def test_parse_session_info(self) -> None:
        assert parse_session_info(session_info(VALID_SID)) == (VALID_SID, CHALLENGE)

    def test_parse_session_info_rejects_garbage(self) -> None:
        with pytest.raises(ProtocolError):
            parse_session_info("<html>not a fritzbox</html")

    def test_parse_session_info_requires_sid(self) -> None:
        with pytest.raises(ProtocolError):
            parse_session_info("<SessionInfo><Challenge>x</Challenge></SessionInfo>")


class TestFritzSource:
    def test_names(self, box: FakeFritzBox) -> None:
        assert make_source(box).names() == ["fritz_power", "fritz_energy", "fritz_temperature"]

    def test_metadata(self, box: FakeFritzBox) -> None:
        assert make_source(box).get_metadata().requires_auth is True

    async def test_sample(self, box: FakeFritzBox) -> None:
        source = make_source(box)
        assert await source.sample() == [12500.0, 1200.0, 215.0]
        assert box.commands == ["getswitchpower", "getswitchenergy", "gettemperature"]
        assert source.session.token == VALID_SID

    async def test_session_reused(self, box: FakeFritzBox) -> None:
        """Subsequent ticks probe the SID instead of logging in again"""
        source = make_source(box)
        for _ in range(3):
            assert await source.sample() == [12500.0, 1200.0, 215.0]

        assert box.logins == 1
        assert box.probes == 2

    async def test_expired_session_reacquired(self, box: FakeFritzBox) -> None:
        source = make_source(box)
        await source.sample()
        box.active_sid = None  # box dropped the session

        assert await source.sample() == [12500.0, 1200.0, 215.0]
        assert box.logins == 2
        assert source.session.token == "0123456789abcdef"

    async def test_wrong_password(self, box: FakeFritzBox) -> None:
        source = make_source(box, password="wrong")
        assert await source.sample() == [-1.0, -1.0, -1.0]
        assert source.session.state is SessionState.NO_SESSION

    async def test_forbidden_invalidates_session(self, box: FakeFritzBox) -> None:
        """A 403 from a command fails the row and drops the SID"""
        source = make_source(box)
        await source.sample()
        box.forbid_next_command = True

        assert await source.sample() == [-1.0, -1.0, -1.0]
        assert source.session.state is SessionState.NO_SESSION

        # The next tick logs in without probing the dropped SID
        probes = box.probes
        assert await source.sample() == [12500.0, 1200.0, 215.0]
        assert box.probes == probes
        assert box.logins == 2

    async def test_non_numeric_value(self, box: FakeFritzBox) -> None:
        source = make_source(box)
        box.values["gettemperature"] = "inval\n"
        assert await source.sample() == [-1.0, -1.0, -1.0]

    async def test_unreachable_box(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("timed out", request=request)

        config = FritzSourceConfig(url="http://fritz.test", user="admin", password="x", ain="1")
        source = FritzSource(
            "fritz", config, client=httpx.AsyncClient(transport=httpx.MockTransport(handler))
        )
        assert await source.sample() == [-1.0, -1.0, -1.0]
