import logging
import zlib
from typing import Optional, Tuple, Union

from cliptrail.models.entry import TextEntry

logger = logging.getLogger(__name__)

TRUNCATION_MARKER = "\n\n[... text truncated]"


class TextPolicy:

    def __init__(self, truncate_limit: int = 50_000, compression_threshold: int = 8_192,
                 preview_chars: int = 200):
        if compression_threshold >= truncate_limit:
            raise ValueError(
                "compression threshold must be smaller than the truncation limit")
        self.truncate_limit = truncate_limit
        self.compression_threshold = compression_threshold
        self.preview_chars = preview_chars

    def truncate(self, text: str, limit: Optional[int] = None) -> str:
        limit = self.truncate_limit if limit is None else limit
        if len(text) <= limit:
            return text
        logger.info(f"Text truncated from {len(text)} to {limit} characters")
        return text[:limit] + TRUNCATION_MARKER

    @staticmethod
    def compress(text: str) -> bytes:
        return zlib.compress(text.encode("utf-8", errors="surrogatepass"), 6)

    @staticmethod
    def decompress(blob: bytes) -> str:
        return zlib.decompress(blob).decode("utf-8", errors="surrogatepass")

    def prepare(self, text: str) -> Tuple[Union[str, bytes], int, bool]:
        """Apply truncation then compression; returns (payload, size, compressed)."""
        stored = self.truncate(text)
        if len(stored) > self.compression_threshold:
            return self.compress(stored), len(stored), True
        return stored, len(stored), False

    def read(self, entry: TextEntry) -> str:
        if entry.compressed:
            return self.decompress(entry.payload)
        return entry.payload

    def preview(self, entry: TextEntry) -> Tuple[str, bool]:
        text = self.read(entry)
        if entry.compressed and len(text) > self.preview_chars:
            return text[:self.preview_chars], True
        return text, False

    def is_oversized(self, entry: TextEntry) -> bool:
        """True for stored text longer than any truncated value could be."""
        return entry.original_size > self.truncate_limit + len(TRUNCATION_MARKER)
