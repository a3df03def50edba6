"""
Token lifecycle for sources that need authenticated access.

A session is either absent (``NO_SESSION``) or holds a token (``ACTIVE``).
Callers go through ``SessionManager.ensure()``, which reuses a held token
after a cheap validation probe and only logs in again when the probe is
negative or errors out. Nothing is persisted; a restart always starts from
``NO_SESSION``.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol

from .errors import AuthError
from .log_handler import get_structured_logger

logger = get_structured_logger(__name__, component="session")


class SessionState(Enum):
    NO_SESSION = "no_session"
    ACTIVE = "active"


@dataclass(frozen=True)
class Session:
    """Immutable snapshot of a source's session."""

    state: SessionState = SessionState.NO_SESSION
    token: Optional[str] = None

    @property
    def active(self) -> bool:
        return self.state is SessionState.ACTIVE


NO_SESSION = Session()


class SessionBackend(Protocol):
    """Source-specific login exchange and validation probe."""

    async def login(self) -> str:
        """Perform the login exchange and return a fresh token."""
        ...

    async def probe(self, token: str) -> bool:
        """Return True if ``token`` still authenticates against the backend."""
        ...


class SessionManager:
    """
    Drives the NO_SESSION / ACTIVE state machine for one source.

    Transitions:
        acquire():    NO_SESSION -> ACTIVE(token), or stays NO_SESSION and
                      raises AuthError
        validate():   ACTIVE -> ACTIVE when the probe passes; a negative or
                      failed probe drops to NO_SESSION
        invalidate(): any -> NO_SESSION
    """

    def __init__(self, backend: SessionBackend, source: str):
        self._backend = backend
        self._source = source
        self._session: Session = NO_SESSION

    @property
    def session(self) -> Session:
        return self._session

    @property
    def state(self) -> SessionState:
        return self._session.state

    @property
    def token(self) -> Optional[str]:
        return self._session.token

    async def acquire(self) -> str:
        """
        Log in and store the new token.

        Raises:
            AuthError: If the login exchange fails for any reason
        """
        self._session = NO_SESSION
        try:
            token = await self._backend.login()
        except AuthError:
            raise
        except Exception as e:
            raise AuthError(f"login failed: {e}") from e

        if not token:
            raise AuthError("login returned an empty token")

        self._session = Session(SessionState.ACTIVE, token)
        logger.debug("Session acquired", source=self._source)
        return token

    async def validate(self) -> bool:
        """
        Probe the held token.

        Returns:
            True if the session is still usable. A negative or errored probe
            invalidates the session and returns False.
        """
        if not self._session.active or self._session.token is None:
            return False

        try:
            valid = await self._backend.probe(self._session.token)
        except Exception as e:
            logger.info("Session probe failed", source=self._source, error=str(e))
            valid = False

        if not valid:
            self.invalidate()
        return valid

    def invalidate(self) -> None:
        """Drop the held token."""
        if self._session.active:
            logger.debug("Session invalidated", source=self._source)
        self._session = NO_SESSION

    async def ensure(self) -> str:
        """
        Return a usable token: reuse, else validate, else re-acquire.

        Exactly one acquire attempt is made per call when needed; there is no
        retry loop. On failure the state is NO_SESSION so the next call
        starts from scratch.

        Raises:
            AuthError: If a (re-)acquire was required and failed
        """
        token = self._session.token
        if self._session.active and token is not None:
            if await self.validate():
                return token
            logger.info("Session no longer valid, re-authenticating", source=self._source)

        return await self.acquire()
