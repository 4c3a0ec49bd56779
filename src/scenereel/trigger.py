"""Caller-side debounce for automatic re-runs."""

import logging
import threading
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class Debouncer:
    """Calls `callback` once input has been quiet for `delay` seconds.

    Every `touch` restarts the countdown with the latest arguments; only the
    last touch in a burst fires.
    """

    def __init__(self, delay: float, callback: Callable[..., Any]) -> None:
        if delay < 0:
            raise ValueError("delay must not be negative")
        self._delay = delay
        self._callback = callback
        self._timer: Optional[threading.Timer] = None
        self._lock = threading.Lock()

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._timer is not None

    def touch(self, *args: Any, **kwargs: Any) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self._delay, self._fire, args=args, kwargs=kwargs)
            self._timer.daemon = True
            self._timer.start()

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def _fire(self, *args: Any, **kwargs: Any) -> None:
        with self._lock:
            if self._timer is None or threading.current_thread() is not self._timer:
                return
            self._timer = None
        logger.debug("Input settled; triggering")
        self._callback(*args, **kwargs)
