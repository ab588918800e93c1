import logging
import time
from threading import Lock
from typing import Callable, List, Optional

log = logging.getLogger(__name__)


class SessionExpiredNotifier:
    """
    Broadcasts "session expired" to listeners when the API answers 401.

    Debounced so a burst of concurrent 401s (e.g. during a bulk operation)
    triggers a single logout. Each instance carries its own debounce state.
    """

    def __init__(self, debounce_seconds: float = 2.0, clock: Callable[[], float] = time.monotonic):
        self.debounce_seconds = debounce_seconds
        self._clock = clock
        self._lock = Lock()
        self._last_posted: Optional[float] = None
        self._listeners: List[Callable[[], None]] = []

    def subscribe(self, listener: Callable[[], None]) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: Callable[[], None]) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def notify(self) -> bool:
        """Returns True when listeners were called, False when debounced."""
        with self._lock:
            now = self._clock()
            if self._last_posted is not None and now - self._last_posted < self.debounce_seconds:
                log.debug("Session expiry notification debounced")
                return False
            self._last_posted = now
            listeners = list(self._listeners)

        log.warning(f"Session expired; notifying {len(listeners)} listener(s)")
        for listener in listeners:
            try:
                listener()
            except Exception as e:
                log.error(f"Session expiry listener failed: {e}", exc_info=True)
        return True
