import dataclasses
import logging
import threading
import zlib
from collections.abc import Sequence
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Set, Tuple

from cliptrail.models.entry import (
    ClipboardEntry,
    EntryProjection,
    ImageEntry,
    RawImage,
    RawItem,
    RawText,
    TextEntry,
    new_entry_id,
    utcnow,
)
from cliptrail.utils.file_manager import ResourceManager
from cliptrail.utils.signature import SignatureEngine
from cliptrail.utils.text_policy import TextPolicy

logger = logging.getLogger(__name__)


class Snapshot(Sequence):
    """Immutable view of the history as of one committed mutation.

    Indexing and iteration project entries on demand, so holding a
    snapshot never decompresses or copies more than what is read.
    """

    def __init__(self, entries: Tuple[ClipboardEntry, ...], policy: TextPolicy, version: int):
        self._entries = entries
        self._policy = policy
        self.version = version

    @property
    def entries(self) -> Tuple[ClipboardEntry, ...]:
        return self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __getitem__(self, index):
        if isinstance(index, slice):
            return [self._project(entry) for entry in self._entries[index]]
        return self._project(self._entries[index])

    def __iter__(self) -> Iterator[EntryProjection]:
        for entry in self._entries:
            yield self._project(entry)

    def to_list(self) -> List[dict]:
        return [projection.to_dict() for projection in self]

    def _project(self, entry: ClipboardEntry) -> EntryProjection:
        if isinstance(entry, ImageEntry):
            return EntryProjection(
                id=entry.id,
                kind=entry.kind,
                created_at=entry.created_at,
                thumbnail_ref=entry.thumbnail_ref,
                width=entry.width,
                height=entry.height,
            )
        try:
            text, is_preview = self._policy.preview(entry)
        except (zlib.error, UnicodeDecodeError) as e:
            logger.error(f"Unreadable text entry {entry.id}: {e}")
            text, is_preview = "", True
        return EntryProjection(
            id=entry.id,
            kind=entry.kind,
            created_at=entry.created_at,
            text=text,
            truncated_preview=is_preview,
        )


Listener = Callable[[Snapshot], None]


class EntryStore:
    """Bounded, most-recent-first clipboard history.

    Every mutation runs inside one reentrant critical section and ends by
    publishing a fresh Snapshot; readers only ever see published
    snapshots. Listeners are notified after the critical section is left.
    """

    def __init__(
        self,
        resources: ResourceManager,
        policy: Optional[TextPolicy] = None,
        signatures: Optional[SignatureEngine] = None,
        capacity: int = 20,
    ) -> None:
        self.resources = resources
        self.policy = policy or TextPolicy()
        self.signatures = signatures or SignatureEngine()
        self._lock = threading.RLock()
        self._entries: List[ClipboardEntry] = []
        self._by_signature: Dict[str, ClipboardEntry] = {}
        self._capacity = max(1, int(capacity))
        self._listeners: List[Listener] = []
        self._closed = False
        self._version = 0
        self._snapshot = Snapshot((), self.policy, 0)

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def closed(self) -> bool:
        return self._closed

    def critical_section(self) -> threading.RLock:
        return self._lock

    def __len__(self) -> int:
        return len(self._snapshot)

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    def snapshot(self) -> Snapshot:
        return self._snapshot

    def get(self, entry_id: str) -> Optional[ClipboardEntry]:
        for entry in self._snapshot.entries:
            if entry.id == entry_id:
                return entry
        return None

    def get_text(self, entry_id: str) -> Optional[str]:
        entry = self.get(entry_id)
        if isinstance(entry, TextEntry):
            return self.policy.read(entry)
        return None

    def find(self, signature: str) -> Optional[ClipboardEntry]:
        return self._by_signature.get(signature)

    def live_refs(self) -> Set[str]:
        with self._lock:
            refs: Set[str] = set()
            for entry in self._entries:
                if isinstance(entry, ImageEntry):
                    refs.update(entry.resources.refs)
            return refs

    def insert(self, raw: RawItem) -> Optional[ClipboardEntry]:
        try:
            if isinstance(raw, RawText):
                return self._insert_text(raw)
            if isinstance(raw, RawImage):
                return self._insert_image(raw)
            logger.debug(f"Ignoring unsupported item: {type(raw).__name__}")
        except Exception as e:
            logger.error(f"Insert failed: {e}")
        return None

    def touch(self, entry_id: str) -> Optional[ClipboardEntry]:
        """Move an entry to the front as a fresh entry with a new timestamp."""
        with self._lock:
            if self._closed:
                return None
            current = self.get(entry_id)
            if current is None:
                return None
            entry = dataclasses.replace(current, id=new_entry_id(), created_at=utcnow())
            self._commit(entry, reuse_resources=True)
            snapshot = self._publish()
        self._notify(snapshot)
        return entry

    def remove(self, entry_id: str) -> bool:
        with self._lock:
            if self._closed:
                return False
            index = self._index_of(entry_id)
            if index is None:
                return False
            entry = self._entries.pop(index)
            self._by_signature.pop(entry.signature, None)
            self._release(entry)
            snapshot = self._publish()
        self._notify(snapshot)
        return True

    def clear(self) -> None:
        with self._lock:
            if self._closed:
                return
            entries, self._entries = self._entries, []
            self._by_signature.clear()
            for entry in entries:
                self._release(entry)
            snapshot = self._publish()
        logger.info(f"Cleared history ({len(entries)} entries)")
        self._notify(snapshot)

    def set_capacity(self, capacity: int) -> None:
        with self._lock:
            if self._closed:
                return
            self._capacity = max(1, int(capacity))
            evicted = self._evict_to(self._capacity)
            snapshot = self._publish() if evicted else None
        if snapshot is not None:
            self._notify(snapshot)

    def trim(self, capacity: Optional[int] = None) -> int:
        """Evict down to ``capacity`` (default: configured capacity)."""
        limit = self._capacity if capacity is None else max(1, min(int(capacity), self._capacity))
        with self._lock:
            if self._closed:
                return 0
            evicted = self._evict_to(limit)
            snapshot = self._publish() if evicted else None
        if snapshot is not None:
            self._notify(snapshot)
        return evicted

    def restore(self, entries: Iterable[ClipboardEntry]) -> int:
        """Load entries from a previous run, most recent first."""
        with self._lock:
            if self._closed:
                return 0
            for entry in entries:
                if entry.signature in self._by_signature:
                    continue
                entry = self._migrate(entry)
                if entry is None:
                    continue
                self._entries.append(entry)
                self._by_signature[entry.signature] = entry
                if isinstance(entry, ImageEntry):
                    self.resources.adopt(entry.resources.refs)
            self._evict_to(self._capacity)
            snapshot = self._publish()
        logger.info(f"Restored {len(snapshot)} history entries")
        self._notify(snapshot)
        return len(snapshot)

    def close(self) -> None:
        with self._lock:
            self._closed = True

    def _insert_text(self, raw: RawText) -> Optional[TextEntry]:
        if not raw.text or not raw.text.strip():
            return None
        signature = self.signatures.text(raw.text)
        payload, size, compressed = self.policy.prepare(raw.text)
        entry = TextEntry(
            signature=signature,
            payload=payload,
            original_size=size,
            compressed=compressed,
        )
        with self._lock:
            if self._closed:
                return None
            self._commit(entry)
            snapshot = self._publish()
        logger.info(f"Added text entry ({size} chars{', compressed' if compressed else ''})")
        self._notify(snapshot)
        return entry

    def _insert_image(self, raw: RawImage) -> Optional[ImageEntry]:
        if not raw.data or raw.width <= 0 or raw.height <= 0:
            return None
        signature = self.signatures.image(raw.data, raw.width, raw.height)

        with self._lock:
            if self._closed:
                return None
            existing = self._by_signature.get(signature)
            if isinstance(existing, ImageEntry) and self.resources.exists(existing.full_ref):
                entry = ImageEntry(
                    signature=signature,
                    resources=existing.resources,
                    width=raw.width,
                    height=raw.height,
                )
                self._commit(entry, reuse_resources=True)
                snapshot = self._publish()
                reused = True
            else:
                reused = False

        if reused:
            logger.info(f"Moved duplicate image {raw.width}x{raw.height} to front")
            self._notify(snapshot)
            return entry

        resources = self.resources.persist_image(raw.data, raw.width, raw.height)
        if resources is None:
            return None
        entry = ImageEntry(
            signature=signature,
            resources=resources,
            width=raw.width,
            height=raw.height,
        )
        with self._lock:
            if self._closed:
                self.resources.release(resources)
                return None
            self.resources.commit(resources)
            self._commit(entry)
            snapshot = self._publish()
        logger.info(f"Added image entry ({raw.width}x{raw.height})")
        self._notify(snapshot)
        return entry

    def _commit(self, entry: ClipboardEntry, reuse_resources: bool = False) -> None:
        existing = self._by_signature.pop(entry.signature, None)
        if existing is not None:
            index = self._index_of(existing.id)
            if index is not None:
                self._entries.pop(index)
            if not reuse_resources:
                self._release(existing)
        self._entries.insert(0, entry)
        self._by_signature[entry.signature] = entry
        self._evict_to(self._capacity)

    def _evict_to(self, limit: int) -> int:
        evicted = 0
        while len(self._entries) > limit:
            entry = self._entries.pop()
            self._by_signature.pop(entry.signature, None)
            self._release(entry)
            evicted += 1
        if evicted:
            logger.info(f"Evicted {evicted} entries (limit {limit})")
        return evicted

    def _release(self, entry: ClipboardEntry) -> None:
        if isinstance(entry, ImageEntry):
            self.resources.release(entry.resources)

    def _index_of(self, entry_id: str) -> Optional[int]:
        for index, entry in enumerate(self._entries):
            if entry.id == entry_id:
                return index
        return None

    def _migrate(self, entry: ClipboardEntry) -> Optional[ClipboardEntry]:
        if isinstance(entry, ImageEntry):
            if not self.resources.exists(entry.full_ref):
                logger.warning(f"Dropping image entry {entry.id}: file missing")
                return None
            if entry.thumbnail_ref and not self.resources.exists(entry.thumbnail_ref):
                resources = dataclasses.replace(
                    entry.resources, thumbnail_ref=None, thumb_width=0, thumb_height=0)
                return dataclasses.replace(entry, resources=resources)
            return entry
        if self.policy.is_oversized(entry):
            logger.info(f"Truncating legacy text entry {entry.id}")
            payload, size, compressed = self.policy.prepare(self.policy.read(entry))
            return dataclasses.replace(
                entry, payload=payload, original_size=size, compressed=compressed)
        return entry

    def _publish(self) -> Snapshot:
        self._version += 1
        self._snapshot = Snapshot(tuple(self._entries), self.policy, self._version)
        return self._snapshot

    def _notify(self, snapshot: Snapshot) -> None:
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                logger.error(f"History listener failed: {e}")
