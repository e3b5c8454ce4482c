import logging
import threading
import time
from typing import Callable, Optional, Union

logger = logging.getLogger(__name__)


class SystemClock:

    def now(self) -> float:
        return time.monotonic()


class PeriodicTask:
    """Runs ``func`` on a daemon thread, waiting ``interval`` between runs.

    ``interval`` may be a callable so the delay can change between runs.
    Exceptions raised by ``func`` are logged and the loop continues.
    """

    def __init__(
        self,
        name: str,
        func: Callable[[], object],
        interval: Union[float, Callable[[], float]],
    ) -> None:
        self.name = name
        self._func = func
        self._interval = interval if callable(interval) else (lambda: interval)
        self._lock = threading.RLock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._is_running = False

    @property
    def is_running(self) -> bool:
        return self._is_running

    def start(self) -> None:
        with self._lock:
            if self._is_running:
                return

            self._stop_event.clear()
            self._is_running = True
            self._thread = threading.Thread(
                target=self._loop, name=self.name, daemon=True)
            self._thread.start()

    def stop(self, timeout: float = 2.0) -> None:
        with self._lock:
            if not self._is_running:
                return

            self._is_running = False
            self._stop_event.set()
            thread, self._thread = self._thread, None

        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)

    def run_once(self) -> None:
        try:
            self._func()
        except Exception as e:
            logger.error(f"{self.name} task error: {e}")

    def _loop(self) -> None:
        while not self._stop_event.wait(timeout=max(0.0, self._interval())):
            self.run_once()
