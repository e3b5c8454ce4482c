from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Tuple, Union

import ulid


def new_entry_id() -> str:
    return f"i_{ulid.new()}"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class RawText:
    """Text as read from the clipboard, before any storage policy."""
    text: str


@dataclass(frozen=True)
class RawImage:
    """Encoded image bytes as read from the clipboard."""
    data: bytes
    width: int
    height: int


RawItem = Union[RawText, RawImage]


@dataclass(frozen=True)
class ImageResources:
    """File names of the persisted full image and its thumbnail."""
    full_ref: str
    thumbnail_ref: Optional[str]
    thumb_width: int = 0
    thumb_height: int = 0

    @property
    def refs(self) -> Tuple[str, ...]:
        if self.thumbnail_ref:
            return (self.full_ref, self.thumbnail_ref)
        return (self.full_ref,)


@dataclass(frozen=True)
class TextEntry:
    signature: str
    payload: Union[str, bytes]
    original_size: int
    compressed: bool = False
    id: str = field(default_factory=new_entry_id)
    created_at: datetime = field(default_factory=utcnow)

    kind = "text"


@dataclass(frozen=True)
class ImageEntry:
    signature: str
    resources: ImageResources
    width: int
    height: int
    id: str = field(default_factory=new_entry_id)
    created_at: datetime = field(default_factory=utcnow)

    kind = "image"

    @property
    def full_ref(self) -> str:
        return self.resources.full_ref

    @property
    def thumbnail_ref(self) -> Optional[str]:
        return self.resources.thumbnail_ref


ClipboardEntry = Union[TextEntry, ImageEntry]


@dataclass(frozen=True)
class EntryProjection:
    """Read-only view of an entry handed to presentation.

    Never carries compressed blobs or full-resolution image data: text is
    plaintext (a preview for large entries) and images are represented by
    their thumbnail reference only.
    """
    id: str
    kind: str
    created_at: datetime
    text: Optional[str] = None
    truncated_preview: bool = False
    thumbnail_ref: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "kind": self.kind,
            "createdAt": self.created_at.isoformat(),
        }
        if self.kind == "text":
            data["text"] = self.text
            data["preview"] = self.truncated_preview
        else:
            data["thumbnailRef"] = self.thumbnail_ref
            data["width"] = self.width
            data["height"] = self.height
        return data
