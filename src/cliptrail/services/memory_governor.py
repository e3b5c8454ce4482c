import enum
import gc
import logging
import os
import sys
import threading
from typing import Callable, Optional

from cliptrail.services.entry_store import EntryStore
from cliptrail.services.scheduler import PeriodicTask, SystemClock
from cliptrail.utils.file_manager import ResourceManager

logger = logging.getLogger(__name__)


def process_rss_mb() -> float:
    """Resident set size of this process in MB."""
    try:
        with open("/proc/self/statm", "r", encoding="ascii") as handle:
            resident_pages = int(handle.read().split()[1])
        return resident_pages * os.sysconf("SC_PAGE_SIZE") / (1024 * 1024)
    except (OSError, ValueError, IndexError, AttributeError):
        pass

    try:
        import resource
    except ImportError:
        return 0.0
    peak = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    # ru_maxrss is bytes on macOS and kilobytes elsewhere
    divisor = 1024 * 1024 if sys.platform == "darwin" else 1024
    return peak / divisor


class GovernorState(str, enum.Enum):
    IDLE = "idle"
    CLEANING = "cleaning"
    AGGRESSIVE_CLEANING = "aggressive_cleaning"


class MemoryGovernor:

    def __init__(
        self,
        store: EntryStore,
        resources: ResourceManager,
        *,
        warn_threshold: float = 150.0,
        crit_threshold: float = 300.0,
        cooldown: float = 300.0,
        interval: float = 45.0,
        sampler: Optional[Callable[[], float]] = None,
        clock=None,
    ) -> None:
        self.store = store
        self.resources = resources
        self.warn_threshold = warn_threshold
        self.crit_threshold = crit_threshold
        self.cooldown = cooldown
        self.interval = interval
        self._sampler = sampler or process_rss_mb
        self._clock = clock or SystemClock()
        self._lock = threading.Lock()
        self._state = GovernorState.IDLE
        self._last_cleanup: Optional[float] = None
        self.last_usage: Optional[float] = None
        self.cleanups = 0
        self.aggressive_cleanups = 0
        self.state_history = []
        self._task = PeriodicTask("memory-governor", self.sample, lambda: self.interval)

    @property
    def state(self) -> GovernorState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._task.is_running

    def start(self) -> None:
        self._task.start()

    def stop(self) -> None:
        self._task.stop()

    def sample(self) -> GovernorState:
        """Take one usage sample and run a cleanup cycle if it is warranted.

        Returns the state the cycle ran in (IDLE when nothing was done).
        """
        if not self._lock.acquire(blocking=False):
            return self._state
        try:
            try:
                usage = float(self._sampler())
            except Exception as e:
                logger.warning(f"Memory sample failed: {e}")
                return GovernorState.IDLE
            self.last_usage = usage
            logger.debug(f"Memory usage {usage:.1f}MB, history {len(self.store)}")

            if usage > self.crit_threshold:
                target = GovernorState.AGGRESSIVE_CLEANING
            elif usage > self.warn_threshold and self._cooldown_elapsed():
                target = GovernorState.CLEANING
            else:
                return GovernorState.IDLE

            self._enter(target)
            try:
                self._clean(aggressive=target is GovernorState.AGGRESSIVE_CLEANING)
            finally:
                self._enter(GovernorState.IDLE)
            return target
        finally:
            self._lock.release()

    def force_cleanup(self, aggressive: bool = False) -> GovernorState:
        """Run one cleanup cycle now, whatever the usage and cooldown."""
        target = GovernorState.AGGRESSIVE_CLEANING if aggressive else GovernorState.CLEANING
        with self._lock:
            self._enter(target)
            try:
                self._clean(aggressive=aggressive)
            finally:
                self._enter(GovernorState.IDLE)
            try:
                self.last_usage = float(self._sampler())
            except Exception as e:
                logger.warning(f"Memory sample failed: {e}")
        return target

    def _cooldown_elapsed(self) -> bool:
        if self._last_cleanup is None:
            return True
        return self._clock.now() - self._last_cleanup >= self.cooldown

    def _enter(self, state: GovernorState) -> None:
        if state is not self._state:
            logger.info(f"Memory governor: {self._state.value} -> {state.value}")
        self._state = state
        self.state_history.append(state)
        del self.state_history[:-20]

    def _clean(self, aggressive: bool) -> None:
        collected = gc.collect()
        working = max(1, self.store.capacity // 2) if aggressive else None
        evicted = self.store.trim(working)
        with self.store.critical_section():
            swept = self.resources.sweep_orphans(self.store.live_refs())

        if aggressive:
            self.aggressive_cleanups += 1
        else:
            self.cleanups += 1
            self._last_cleanup = self._clock.now()
        logger.info(
            f"[memory] {'Aggressive cleanup' if aggressive else 'Cleanup'}: "
            f"gc {collected} objects, evicted {evicted}, swept {swept} files")
