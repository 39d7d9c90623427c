"""Singleton session ownership.

At most one ScrapeSession is running per process. The manager is
injected into the scheduler and orchestrator instead of living as a
module-level global.
"""

import logging
import threading

from jobcurator.core.schemas import ScrapeSession, SessionStatus

logger = logging.getLogger(__name__)


class SessionManager:
    """Capacity-one lock plus a pointer to the running session."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._current: ScrapeSession | None = None
        self._last: ScrapeSession | None = None

    @property
    def current(self) -> ScrapeSession | None:
        return self._current

    @property
    def last(self) -> ScrapeSession | None:
        """Most recently finished session."""
        return self._last

    @property
    def is_running(self) -> bool:
        return self._current is not None

    def begin(self, trigger: str = "scheduled") -> tuple[ScrapeSession, bool]:
        """Start a session, or return the one already running.

        Returns:
            (session, started) where ``started`` is False if another session
            already held the lock.
        """
        if not self._lock.acquire(blocking=False):
            running = self._current
            if running is None:
                msg = "session lock held with no running session"
                raise RuntimeError(msg)
            logger.info("Session %s already running, not starting another", running.id)
            return running, False
        session = ScrapeSession(trigger=trigger)
        self._current = session
        logger.info("Session %s started (%s)", session.id, trigger)
        return session, True

    def finish(self, session: ScrapeSession, status: SessionStatus, reason: str = "") -> None:
        """Mark ``session`` terminal and release the lock."""
        if session is not self._current:
            msg = f"session {session.id} is not the running session"
            raise RuntimeError(msg)
        try:
            session.finish(status, reason)
        finally:
            self._current = None
            self._last = session
            self._lock.release()
        logger.info(
            "Session %s finished: %s%s", session.id, status.value, f" ({reason})" if reason else "",
        )
