"""Fixed-interval notification polling bound to one signed-in session."""
from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class NotificationPoller:
    """Runs ``callback`` every ``interval`` seconds on a background thread.

    ``start`` and ``stop`` are idempotent: a poller never runs more than one
    thread, and stopping an idle poller is a no-op. When ``app`` is given the
    callback runs inside its application context so it can reach the database.
    """

    def __init__(self, callback: Callable[[], None], interval: float = 30.0, app=None) -> None:
        self.callback = callback
        self.interval = interval
        self.app = app
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._stopping: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> bool:
        with self._lock:
            if self.is_running:
                return False
            self._stop = threading.Event()
            self._thread = threading.Thread(target=self._run, name="notification-poller", daemon=True)
            self._thread.start()
        logger.info("Notification polling started (every %ss)", self.interval)
        return True

    def stop(self, wait: bool = True) -> bool:
        """Signal the thread to exit; with ``wait=False`` call :meth:`join` later."""
        with self._lock:
            thread = self._thread
            if thread is None:
                return False
            self._stop.set()
            self._thread = None
            self._stopping = thread
        if wait:
            self.join()
        logger.info("Notification polling stopped")
        return True

    def join(self) -> None:
        with self._lock:
            thread, self._stopping = self._stopping, None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=self.interval + 1)

    def _run(self) -> None:
        stop = self._stop
        while not stop.wait(self.interval):
            self.tick()

    def tick(self) -> None:
        """Run one poll; a failing poll is logged and the next one still runs."""
        try:
            if self.app is not None:
                with self.app.app_context():
                    self.callback()
            else:
                self.callback()
        except Exception as exc:  # noqa: BLE001 - keep the timer alive
            logger.exception("Notification poll failed", exc_info=exc)
