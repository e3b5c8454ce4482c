import json
import logging
import threading
from typing import List

from pydantic import ValidationError

from cliptrail.database.kv_store import KeyValueStore
from cliptrail.exceptions import CorruptPersistedStateError
from cliptrail.models.entry import ClipboardEntry
from cliptrail.models.schema import HistorySettings, dump_entry, history_adapter

logger = logging.getLogger(__name__)

HISTORY_KEY = "clipboardHistory"
SETTINGS_KEY = "settings"


class HistoryRepository:
    """Loads and saves the history snapshot and settings through a KeyValueStore.

    Saves carry the snapshot version they were taken from; a save older
    than the last one written is dropped, so snapshots published from
    different threads can never roll the persisted history back.
    """

    def __init__(self, kv: KeyValueStore) -> None:
        self.kv = kv
        self._lock = threading.Lock()
        self._saved_version = -1

    def load_history(self) -> List[ClipboardEntry]:
        try:
            raw = self.kv.get(HISTORY_KEY, [])
            records = history_adapter.validate_python(raw or [])
            return [record.to_entry() for record in records]
        except (ValidationError, ValueError, TypeError) as e:
            raise CorruptPersistedStateError(f"Malformed history snapshot: {e}") from e

    def save_history(self, entries: List[ClipboardEntry], version: int = 0) -> bool:
        with self._lock:
            if version and version < self._saved_version:
                return False
            try:
                self.kv.set(HISTORY_KEY, [dump_entry(entry) for entry in entries])
            except Exception as e:
                logger.error(f"Failed to persist history: {e}")
                return False
            self._saved_version = max(self._saved_version, version)
            return True

    def delete_history(self) -> None:
        try:
            self.kv.delete(HISTORY_KEY)
        except Exception as e:
            logger.error(f"Failed to delete persisted history: {e}")

    def load_settings(self) -> HistorySettings:
        try:
            raw = self.kv.get(SETTINGS_KEY, {}) or {}
            if isinstance(raw, str):
                raw = json.loads(raw)
            return HistorySettings.model_validate(raw)
        except (ValidationError, ValueError, TypeError) as e:
            logger.error(f"Invalid persisted settings, using defaults: {e}")
            return HistorySettings()
        except Exception as e:
            logger.error(f"Failed to load settings, using defaults: {e}")
            return HistorySettings()

    def save_settings(self, settings: HistorySettings) -> None:
        try:
            self.kv.set(SETTINGS_KEY, settings.model_dump())
        except Exception as e:
            logger.error(f"Failed to persist settings: {e}")
