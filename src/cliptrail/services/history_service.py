import logging
import threading
from concurrent.futures import CancelledError, ThreadPoolExecutor
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from pydantic import ValidationError

from cliptrail.clipboard.base import ClipboardBackend
from cliptrail.database.history_repository import HistoryRepository
from cliptrail.database.kv_store import KeyValueStore, MemoryKeyValueStore
from cliptrail.exceptions import CorruptPersistedStateError
from cliptrail.models.entry import ImageEntry, RawImage, RawItem, RawText, TextEntry
from cliptrail.models.schema import HistorySettings
from cliptrail.services.change_detector import ChangeDetector
from cliptrail.services.entry_store import EntryStore, Snapshot
from cliptrail.services.memory_governor import MemoryGovernor, process_rss_mb
from cliptrail.utils.file_manager import ResourceManager
from cliptrail.utils.signature import SignatureEngine
from cliptrail.utils.text_policy import TextPolicy

logger = logging.getLogger(__name__)


class HistoryService:
    """Owns one clipboard history and everything attached to it.

    Inserts are funnelled through a single worker thread so image decoding
    and file writes never run on the clipboard polling thread, and so
    commits happen in the order content was observed.
    """

    def __init__(
        self,
        image_dir: Optional[Path] = None,
        kv: Optional[KeyValueStore] = None,
        clipboard: Optional[ClipboardBackend] = None,
        settings: Optional[HistorySettings] = None,
        *,
        sampler: Optional[Callable[[], float]] = None,
        clock=None,
        capture_initial: bool = False,
        auto_start: bool = False,
    ) -> None:
        self.kv = kv or MemoryKeyValueStore()
        self.repository = HistoryRepository(self.kv)
        self.settings = settings or self.repository.load_settings()
        self.clipboard = clipboard
        self._lock = threading.RLock()
        self._stopped = False
        self._started = False
        self._monitoring = True
        self._sampler = sampler or process_rss_mb

        self.signatures = SignatureEngine()
        self.policy = TextPolicy(
            truncate_limit=self.settings.text_truncate_limit,
            compression_threshold=self.settings.compression_threshold,
            preview_chars=self.settings.preview_chars,
        )
        self.resources = ResourceManager(image_dir, thumb_max_dim=self.settings.thumb_max_dim)
        self.store = EntryStore(
            self.resources,
            policy=self.policy,
            signatures=self.signatures,
            capacity=self.settings.max_history,
        )
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="cliptrail-io")

        self._restore()
        self.store.add_listener(self._persist)

        self.governor = MemoryGovernor(
            self.store,
            self.resources,
            warn_threshold=self.settings.warn_threshold_mb,
            crit_threshold=self.settings.crit_threshold_mb,
            cooldown=self.settings.cleanup_cooldown,
            interval=self.settings.governor_interval,
            sampler=self._sampler,
            clock=clock,
        )
        self.detector: Optional[ChangeDetector] = None
        if clipboard is not None:
            self.detector = ChangeDetector(
                clipboard,
                on_text=lambda text: self.insert_text(text, wait=False),
                on_image=lambda data, w, h: self.insert_image(data, w, h, wait=False),
                signatures=self.signatures,
                base_interval=self.settings.base_poll_interval,
                max_interval=self.settings.max_poll_interval,
                capture_initial=capture_initial,
            )

        if auto_start:
            self.start()

    # Lifecycle

    def start(self) -> None:
        with self._lock:
            if self._stopped:
                raise RuntimeError("HistoryService cannot be restarted after stop()")
            if self.detector is not None:
                self.detector.start()
            if self._monitoring:
                self.governor.start()
            self._started = True
        logger.info(f"History service started ({len(self.store)} entries)")

    def stop(self) -> None:
        with self._lock:
            if self._stopped:
                return
            self._stopped = True

        if self.detector is not None:
            self.detector.stop()
        self.governor.stop()
        self._executor.shutdown(wait=True, cancel_futures=True)
        self.store.close()

        snapshot = self.store.snapshot()
        self.repository.save_history(list(snapshot.entries), snapshot.version)
        try:
            self.kv.close()
        except Exception as e:
            logger.warning(f"Could not close key-value store: {e}")
        logger.info("History service stopped")

    @property
    def stopped(self) -> bool:
        return self._stopped

    def __enter__(self) -> "HistoryService":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    # Exposed operations

    def insert_text(self, text: str, wait: bool = True) -> Optional[str]:
        return self._submit(RawText(text), wait)

    def insert_image(self, data: bytes, width: int, height: int, wait: bool = True) -> Optional[str]:
        return self._submit(RawImage(data, width, height), wait)

    def remove_by_id(self, entry_id: str) -> bool:
        if self._stopped:
            return False
        try:
            return self.store.remove(entry_id)
        except Exception as e:
            logger.error(f"Remove failed for {entry_id}: {e}")
            return False

    def clear(self) -> None:
        if self._stopped:
            return
        try:
            self.store.clear()
        except Exception as e:
            logger.error(f"Clear failed: {e}")

    def set_capacity(self, capacity: int) -> None:
        self.update_settings(max_history=max(1, int(capacity)))

    def get_snapshot(self) -> Snapshot:
        return self.store.snapshot()

    def get_text(self, entry_id: str) -> Optional[str]:
        try:
            return self.store.get_text(entry_id)
        except Exception as e:
            logger.error(f"Could not read text entry {entry_id}: {e}")
            return None

    def get_memory_stats(self) -> Dict[str, Any]:
        snapshot = self.store.snapshot()
        text_entries = [e for e in snapshot.entries if isinstance(e, TextEntry)]
        text_bytes = sum(
            len(e.payload) if isinstance(e.payload, bytes) else len(e.payload.encode("utf-8"))
            for e in text_entries
        )
        files, disk_bytes = self.resources.disk_usage()
        try:
            rss = round(float(self._sampler()), 1)
        except Exception as e:
            logger.warning(f"Memory sample failed: {e}")
            rss = None
        return {
            "rssMb": rss,
            "historySize": len(snapshot),
            "capacity": self.store.capacity,
            "textEntries": len(text_entries),
            "imageEntries": len(snapshot) - len(text_entries),
            "textBytes": text_bytes,
            "imageFiles": files,
            "imageBytes": disk_bytes,
            "governorState": self.governor.state.value,
            "cleanups": self.governor.cleanups,
            "aggressiveCleanups": self.governor.aggressive_cleanups,
            "pollInterval": self.detector.current_interval if self.detector else None,
            "monitoring": self._monitoring,
        }

    def force_cleanup(self, aggressive: bool = False) -> Dict[str, Any]:
        """Run a cleanup cycle now and return fresh memory stats."""
        if self._stopped:
            return self.get_memory_stats()
        try:
            self.governor.force_cleanup(aggressive=aggressive)
        except Exception as e:
            logger.error(f"Forced cleanup failed: {e}")
        return self.get_memory_stats()

    @property
    def memory_monitoring(self) -> bool:
        return self._monitoring

    def set_memory_monitoring(self, enabled: bool) -> bool:
        """Pause or resume the periodic memory governor."""
        with self._lock:
            if self._stopped:
                return False
            self._monitoring = bool(enabled)
            if self._started:
                if self._monitoring:
                    self.governor.start()
                else:
                    self.governor.stop()
        logger.info(f"[memory] Monitoring {'enabled' if self._monitoring else 'disabled'}")
        return self._monitoring

    def copy_to_clipboard(self, entry_id: str) -> bool:
        """Write a past entry back to the system clipboard and move it to the front."""
        if self._stopped:
            return False
        if self.clipboard is None:
            logger.warning("No clipboard backend configured")
            return False
        entry = self.store.get(entry_id)
        if entry is None:
            return False

        try:
            if isinstance(entry, ImageEntry):
                data = self.resources.read_full(entry.full_ref)
                if data is None:
                    return False
                if self.detector is not None:
                    self.detector.note_self_write(image=(data, entry.width, entry.height))
                ok = self.clipboard.write_image(data)
            else:
                text = self.policy.read(entry)
                if self.detector is not None:
                    self.detector.note_self_write(text=text)
                ok = self.clipboard.write_text(text)
        except Exception as e:
            logger.error(f"[copy] Failed to write to clipboard: {e}")
            return False

        if ok:
            self.store.touch(entry_id)
        return ok

    def add_sink(self, push: Callable[[Snapshot], None]) -> None:
        self.store.add_listener(push)

    def get_settings(self) -> HistorySettings:
        return self.settings

    def update_settings(self, **partial: Any) -> HistorySettings:
        if self._stopped:
            logger.warning("Ignoring settings update after stop")
            return self.settings
        unknown = sorted(set(partial) - set(HistorySettings.model_fields))
        if unknown:
            logger.error(f"Rejected settings update, unknown keys {unknown}")
            return self.settings
        try:
            updated = HistorySettings.model_validate({**self.settings.model_dump(), **partial})
        except ValidationError as e:
            logger.error(f"Rejected settings update {sorted(partial)}: {e}")
            return self.settings

        with self._lock:
            self.settings = updated
            self.policy.truncate_limit = updated.text_truncate_limit
            self.policy.compression_threshold = updated.compression_threshold
            self.policy.preview_chars = updated.preview_chars
            self.resources.thumb_max_dim = updated.thumb_max_dim
            self.governor.warn_threshold = updated.warn_threshold_mb
            self.governor.crit_threshold = updated.crit_threshold_mb
            self.governor.cooldown = updated.cleanup_cooldown
            self.governor.interval = updated.governor_interval
            if self.detector is not None:
                self.detector.configure(updated.base_poll_interval, updated.max_poll_interval)

        self.store.set_capacity(updated.max_history)
        self.repository.save_settings(updated)
        return updated

    # Internals

    def _submit(self, raw: RawItem, wait: bool) -> Optional[str]:
        with self._lock:
            if self._stopped:
                logger.debug("Ignoring insert after stop")
                return None
            try:
                future = self._executor.submit(self._insert, raw)
            except RuntimeError as e:
                logger.debug(f"Insert rejected: {e}")
                return None

        if not wait:
            return None
        try:
            return future.result()
        except CancelledError:
            return None
        except Exception as e:
            logger.error(f"Insert failed: {e}")
            return None

    def _insert(self, raw: RawItem) -> Optional[str]:
        entry = self.store.insert(raw)
        return entry.id if entry is not None else None

    def _persist(self, snapshot: Snapshot) -> None:
        self.repository.save_history(list(snapshot.entries), snapshot.version)

    def _restore(self) -> None:
        try:
            entries = self.repository.load_history()
        except CorruptPersistedStateError as e:
            logger.error(f"{e}; starting with empty history")
            self.repository.delete_history()
            entries = []
        except Exception as e:
            logger.error(f"Failed to load history; starting empty: {e}")
            entries = []

        try:
            self.store.restore(entries)
        except Exception as e:
            logger.error(f"Failed to restore history; starting empty: {e}")
            self.store.clear()

        with self.store.critical_section():
            swept = self.resources.sweep_orphans(self.store.live_refs())
        if swept:
            logger.info(f"Removed {swept} orphaned files from a previous run")
        snapshot = self.store.snapshot()
        self.repository.save_history(list(snapshot.entries), snapshot.version)
