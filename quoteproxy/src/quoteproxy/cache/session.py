import logging
import threading
import time
from typing import Callable, Optional

from ..models.session import Session

logger = logging.getLogger(__name__)

# Shorter than Yahoo's real crumb lifetime, so a stale crumb is rare.
SESSION_TTL_SECONDS = 300


class SessionCache:
    """
    Instance-local holder for at most one Yahoo session.

    Expiry is checked lazily in get(); there is no background sweep.
    Concurrent misses may each run a handshake; whichever put() lands last
    is the session later callers see.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._session: Optional[Session] = None
        self._lock = threading.Lock()

    def get(self) -> Optional[Session]:
        """Return the cached session if it has not expired."""
        with self._lock:
            session = self._session
            if session is None:
                return None
            if self._clock() >= session.expires_at:
                logger.info("Yahoo session expired")
                self._session = None
                return None
            return session

    def put(self, cookie: str, crumb: str, ttl: float = SESSION_TTL_SECONDS) -> Session:
        """Store a complete session. Raises ValueError on an empty cookie or crumb."""
        # Built before taking the lock; a failed build leaves the old entry alone.
        session = Session(cookie=cookie, crumb=crumb, expires_at=self._clock() + ttl)
        with self._lock:
            self._session = session
        return session

    def invalidate(self) -> None:
        with self._lock:
            self._session = None
