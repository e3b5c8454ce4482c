from abc import ABC, abstractmethod
from typing import Optional, Tuple

ImageRead = Tuple[bytes, int, int]


class ClipboardBackend(ABC):
    """Synchronous access to the system clipboard.

    Reads may raise on transient failures; callers are expected to log
    and retry on the next poll.
    """

    @abstractmethod
    def read_text(self) -> Optional[str]:
        pass

    @abstractmethod
    def read_image(self) -> Optional[ImageRead]:
        pass

    @abstractmethod
    def write_text(self, text: str) -> bool:
        pass

    @abstractmethod
    def write_image(self, png_bytes: bytes) -> bool:
        pass
