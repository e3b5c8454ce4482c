from cliptrail.models.entry import (
    ClipboardEntry,
    EntryProjection,
    ImageEntry,
    ImageResources,
    RawImage,
    RawItem,
    RawText,
    TextEntry,
)
from cliptrail.models.schema import HistorySettings

__all__ = [
    'ClipboardEntry',
    'EntryProjection',
    'HistorySettings',
    'ImageEntry',
    'ImageResources',
    'RawImage',
    'RawItem',
    'RawText',
    'TextEntry',
]
