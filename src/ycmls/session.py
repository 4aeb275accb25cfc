"""Lazy lifecycle of the ycmd session shared by every request handler.

The coordinator waits until it knows both the workspace root and usable
settings, then creates a session on first use. Creation runs under a lock so
concurrent requests share one attempt. New settings make the current session
stale; it is shut down and replaced on the next request rather than
reconfigured.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from pathlib import Path
from typing import Awaitable, Callable, Generic, Optional, Protocol, TypeVar

from ycmls.config import Settings, TomlTable, YcmdSettings, validate_settings, ycmd_defaults
from ycmls.exceptions import ConfigurationError
from ycmls.outcome import Outcome, Recoverable, Success, UserFacingFailure
from ycmls.ycmd import YcmdSession

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_SECONDS = 0.1


class ClosableSession(Protocol):
    async def shutdown(self) -> None: ...


SessionT = TypeVar("SessionT", bound=ClosableSession)
SessionFactory = Callable[[Path, YcmdSettings], Awaitable[SessionT]]
ErrorReporter = Callable[[str], None]


class SessionState(enum.Enum):
    UNINITIALIZED = "uninitialized"
    PENDING = "pending"
    READY = "ready"
    FAILED = "failed"


def _log_only(message: str) -> None:
    logger.error("%s", message)


class SessionCoordinator(Generic[SessionT]):
    def __init__(
        self,
        factory: SessionFactory = YcmdSession.start,
        *,
        report_error: ErrorReporter = _log_only,
        poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
        load_defaults: Callable[[Path], TomlTable] = ycmd_defaults,
    ) -> None:
        self._factory = factory
        self._report_error = report_error
        self._poll_interval = poll_interval
        self._load_defaults = load_defaults
        self._root: Optional[Path] = None
        self._settings: Optional[Settings] = None
        self._session: Optional[SessionT] = None
        self._stale: list[SessionT] = []
        self._failure: Optional[tuple[int, UserFacingFailure]] = None
        self._attempts = 0
        self._generation = 0
        self._pending = False
        self._lock = asyncio.Lock()

    @property
    def root(self) -> Optional[Path]:
        return self._root

    @property
    def settings(self) -> Optional[Settings]:
        return self._settings

    @property
    def state(self) -> SessionState:
        if self._root is None or self._settings is None:
            return SessionState.UNINITIALIZED
        if self._pending:
            return SessionState.PENDING
        if self._session is not None:
            return SessionState.READY
        if self._failure is not None:
            return SessionState.FAILED
        return SessionState.PENDING

    def set_root(self, root: Path | str) -> None:
        self._root = Path(root)

    def set_reporter(self, report_error: ErrorReporter) -> None:
        self._report_error = report_error

    def update_settings(self, raw: object) -> Outcome[Settings]:
        """Validate and store new client settings.

        Invalid settings are reported and leave the stored settings and the
        current session untouched.
        """
        defaults = self._load_defaults(self._root) if self._root is not None else {}
        try:
            settings = validate_settings(raw, defaults)
        except ConfigurationError as exc:
            message = str(exc)
            self._report_error(message)
            return UserFacingFailure(message)
        if settings == self._settings:
            return Success(settings)
        self._settings = settings
        if self._session is not None:
            logger.info("Settings changed; ycmd session will be recreated")
            self._stale.append(self._session)
            self._session = None
        return Success(settings)

    async def _wait_until_configured(self) -> tuple[Path, Settings]:
        while self._root is None or self._settings is None:
            await asyncio.sleep(self._poll_interval)
        return self._root, self._settings

    async def _discard_stale(self) -> None:
        while self._stale:
            session = self._stale.pop()
            await session.shutdown()

    async def get_session(self) -> Outcome[SessionT]:
        """Return the current session, creating it on first use.

        Callers already waiting when an attempt fails get that attempt's
        failure; later calls start a new attempt.
        """
        await self._wait_until_configured()
        if self._session is not None:
            return Success(self._session)
        seen = self._attempts
        async with self._lock:
            while True:
                await self._discard_stale()
                if self._session is not None:
                    return Success(self._session)
                if self._failure is not None and self._failure[0] > seen:
                    return self._failure[1]
                root, settings = await self._wait_until_configured()
                self._attempts += 1
                attempt, generation = self._attempts, self._generation
                self._pending = True
                try:
                    session = await self._factory(root, settings.ycmd)
                except Exception as exc:
                    failure = UserFacingFailure(f"Failed to start ycmd: {exc}")
                    self._failure = (attempt, failure)
                    logger.exception("%s", failure.message)
                    self._report_error(failure.message)
                    return failure
                finally:
                    self._pending = False
                if generation != self._generation:
                    logger.info("Coordinator reset while ycmd was starting; stopping it")
                    await session.shutdown()
                    return Recoverable("ycmd session was reset while starting")
                if settings is not self._settings:
                    # Replaced while starting; start again with the new settings.
                    self._stale.append(session)
                    continue
                self._failure = None
                self._session = session
                return Success(session)

    async def reset(self) -> None:
        self._generation += 1
        session, self._session = self._session, None
        self._failure = None
        stale, self._stale = self._stale, []
        if session is not None:
            stale.append(session)
        for item in stale:
            await item.shutdown()
