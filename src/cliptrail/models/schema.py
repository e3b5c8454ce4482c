import base64
import binascii
import zlib
from datetime import datetime
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, model_validator

from cliptrail.models.entry import (
    ClipboardEntry,
    ImageEntry,
    ImageResources,
    TextEntry,
)

# ----------settings----------


class HistorySettings(BaseModel):
    max_history: int = Field(default=20, ge=1)
    thumb_max_dim: int = Field(default=150, ge=150, le=320)
    text_truncate_limit: int = Field(default=50_000, ge=10_000, le=50_000)
    compression_threshold: int = Field(default=8_192, ge=1)
    preview_chars: int = Field(default=200, ge=1)
    base_poll_interval: float = Field(default=2.0, gt=0)
    max_poll_interval: float = Field(default=10.0, gt=0)
    governor_interval: float = Field(default=45.0, gt=0)
    warn_threshold_mb: float = Field(default=150.0, gt=0)
    crit_threshold_mb: float = Field(default=300.0, gt=0)
    cleanup_cooldown: float = Field(default=300.0, ge=0)

    @model_validator(mode="after")
    def _check_ordering(self) -> "HistorySettings":
        if self.compression_threshold >= self.text_truncate_limit:
            raise ValueError(
                "compression_threshold must be smaller than text_truncate_limit")
        if self.max_poll_interval < self.base_poll_interval:
            raise ValueError(
                "max_poll_interval must not be smaller than base_poll_interval")
        if self.crit_threshold_mb < self.warn_threshold_mb:
            raise ValueError(
                "crit_threshold_mb must not be smaller than warn_threshold_mb")
        return self


# ----------persisted history----------


class PersistedTextEntry(BaseModel):
    kind: Literal["text"] = "text"
    id: str
    signature: str
    created_at: datetime
    payload: str  # base64 when compressed
    original_size: int
    compressed: bool = False

    @model_validator(mode="after")
    def _check_payload(self) -> "PersistedTextEntry":
        if self.compressed:
            try:
                blob = base64.b64decode(self.payload, validate=True)
                zlib.decompress(blob).decode("utf-8", errors="surrogatepass")
            except (binascii.Error, zlib.error, UnicodeDecodeError) as e:
                raise ValueError(f"compressed payload is unreadable: {e}") from e
        return self

    @classmethod
    def from_entry(cls, entry: TextEntry) -> "PersistedTextEntry":
        if entry.compressed:
            payload = base64.b64encode(entry.payload).decode("ascii")
        else:
            payload = entry.payload
        return cls.model_construct(
            id=entry.id,
            signature=entry.signature,
            created_at=entry.created_at,
            payload=payload,
            original_size=entry.original_size,
            compressed=entry.compressed,
        )

    def to_entry(self) -> TextEntry:
        payload: Union[str, bytes] = self.payload
        if self.compressed:
            payload = base64.b64decode(self.payload, validate=True)
        return TextEntry(
            id=self.id,
            signature=self.signature,
            created_at=self.created_at,
            payload=payload,
            original_size=self.original_size,
            compressed=self.compressed,
        )


class PersistedImageEntry(BaseModel):
    kind: Literal["image"] = "image"
    id: str
    signature: str
    created_at: datetime
    full_ref: str
    thumbnail_ref: Optional[str] = None
    width: int = Field(gt=0)
    height: int = Field(gt=0)
    thumb_width: int = 0
    thumb_height: int = 0

    @classmethod
    def from_entry(cls, entry: ImageEntry) -> "PersistedImageEntry":
        return cls(
            id=entry.id,
            signature=entry.signature,
            created_at=entry.created_at,
            full_ref=entry.resources.full_ref,
            thumbnail_ref=entry.resources.thumbnail_ref,
            width=entry.width,
            height=entry.height,
            thumb_width=entry.resources.thumb_width,
            thumb_height=entry.resources.thumb_height,
        )

    def to_entry(self) -> ImageEntry:
        return ImageEntry(
            id=self.id,
            signature=self.signature,
            created_at=self.created_at,
            resources=ImageResources(
                full_ref=self.full_ref,
                thumbnail_ref=self.thumbnail_ref,
                thumb_width=self.thumb_width,
                thumb_height=self.thumb_height,
            ),
            width=self.width,
            height=self.height,
        )


PersistedEntry = Annotated[
    Union[PersistedTextEntry, PersistedImageEntry],
    Field(discriminator="kind"),
]

history_adapter = TypeAdapter(List[PersistedEntry])


def dump_entry(entry: ClipboardEntry) -> dict:
    if isinstance(entry, ImageEntry):
        return PersistedImageEntry.from_entry(entry).model_dump(mode="json")
    return PersistedTextEntry.from_entry(entry).model_dump(mode="json")
