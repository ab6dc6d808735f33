import logging
import threading
from collections.abc import Callable

logger = logging.getLogger(__name__)

JOIN_TIMEOUT_S = 1.0


class LicenseCheckScheduler:
    """Runs the periodic license check on a daemon thread."""

    def __init__(self, interval_s: float):
        self.interval_s = interval_s
        self._lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self._stop_event: threading.Event | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self, check: Callable[[], None]) -> None:
        self.stop()
        with self._lock:
            stop_event = threading.Event()
            thread = threading.Thread(
                target=self._run,
                args=(check, stop_event),
                name="license-check",
                daemon=True,
            )
            self._stop_event = stop_event
            self._thread = thread
            thread.start()
        logger.info("license_check_scheduled", extra={"interval_s": self.interval_s})

    def stop(self) -> None:
        with self._lock:
            thread, stop_event = self._thread, self._stop_event
            self._thread = None
            self._stop_event = None
        if stop_event is None:
            return
        stop_event.set()
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=JOIN_TIMEOUT_S)
        logger.info("license_check_unscheduled")

    def _run(self, check: Callable[[], None], stop_event: threading.Event) -> None:
        while not stop_event.wait(self.interval_s):
            try:
                check()
            except Exception:  # noqa: BLE001
                logger.exception("license_check_failed")
