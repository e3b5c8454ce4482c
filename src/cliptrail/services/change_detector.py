import logging
import threading
from typing import Callable, Optional

from cliptrail.clipboard.base import ClipboardBackend
from cliptrail.services.scheduler import PeriodicTask
from cliptrail.utils.signature import SignatureEngine

logger = logging.getLogger(__name__)


class ChangeDetector:
    """Adaptive clipboard poller.

    Polls every ``base_interval`` seconds. After ``backoff_after``
    consecutive polls without a change the interval grows by
    ``backoff_factor`` per poll, capped at ``max_interval``; any change
    resets it to ``base_interval``.
    """

    def __init__(
        self,
        clipboard: ClipboardBackend,
        on_text: Callable[[str], object],
        on_image: Callable[[bytes, int, int], object],
        *,
        signatures: Optional[SignatureEngine] = None,
        base_interval: float = 2.0,
        max_interval: float = 10.0,
        backoff_after: int = 5,
        backoff_factor: float = 1.5,
        capture_initial: bool = False,
    ) -> None:
        self.clipboard = clipboard
        self._on_text = on_text
        self._on_image = on_image
        self.signatures = signatures or SignatureEngine()
        self.base_interval = base_interval
        self.max_interval = max(max_interval, base_interval)
        self.backoff_after = backoff_after
        self.backoff_factor = backoff_factor
        self._lock = threading.Lock()
        self._last_signature: Optional[str] = None
        self._primed = capture_initial
        self._idle_polls = 0
        self._interval = base_interval
        self._task = PeriodicTask("clipboard-poll", self.poll_once, lambda: self._interval)

    @property
    def current_interval(self) -> float:
        return self._interval

    @property
    def idle_polls(self) -> int:
        return self._idle_polls

    @property
    def is_running(self) -> bool:
        return self._task.is_running

    def configure(self, base_interval: float, max_interval: float) -> None:
        with self._lock:
            self.base_interval = base_interval
            self.max_interval = max(max_interval, base_interval)
            self._interval = min(max(self._interval, base_interval), self.max_interval)

    def start(self) -> None:
        self._task.start()

    def stop(self) -> None:
        self._task.stop()

    def note_self_write(self, text: Optional[str] = None,
                        image: Optional[tuple] = None) -> None:
        """Record content the application itself put on the clipboard."""
        with self._lock:
            if text is not None:
                self._last_signature = self.signatures.interim_text(text)
            elif image is not None:
                data, width, height = image
                self._last_signature = self.signatures.interim_image(data, width, height)

    def poll_once(self) -> bool:
        """Read the clipboard once; returns True when new content was forwarded."""
        try:
            image = self.clipboard.read_image()
            text = None if image else self.clipboard.read_text()
        except Exception as e:
            logger.warning(f"Clipboard read failed: {e}")
            self._record_idle()
            return False

        if image:
            data, width, height = image
            signature = self.signatures.interim_image(data, width, height)
        elif text and text.strip():
            signature = self.signatures.interim_text(text)
        else:
            with self._lock:
                self._primed = True
            self._record_idle()
            return False

        with self._lock:
            if not self._primed:
                self._primed = True
                self._last_signature = signature
                return False
            changed = signature != self._last_signature
            if changed:
                self._last_signature = signature

        if not changed:
            self._record_idle()
            return False

        self._record_change()
        try:
            if image:
                logger.info(f"Clipboard copied: image {width}x{height}")
                self._on_image(data, width, height)
            else:
                logger.info(f"Clipboard copied: text ({len(text)} chars)")
                self._on_text(text)
        except Exception as e:
            logger.error(f"Error in on_capture: {e}")
        return True

    def _record_idle(self) -> None:
        with self._lock:
            self._idle_polls += 1
            if self._idle_polls >= self.backoff_after:
                self._interval = min(self._interval * self.backoff_factor, self.max_interval)

    def _record_change(self) -> None:
        with self._lock:
            self._idle_polls = 0
            self._interval = self.base_interval
