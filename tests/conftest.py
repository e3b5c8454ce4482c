import io
from typing import List, Optional, Tuple

import pytest
from PIL import Image

from cliptrail.clipboard.base import ClipboardBackend
from cliptrail.services.entry_store import EntryStore
from cliptrail.utils.file_manager import ResourceManager
from cliptrail.utils.text_policy import TextPolicy


def make_png(width: int, height: int, color=(200, 30, 30)) -> bytes:
    output = io.BytesIO()
    Image.new("RGB", (width, height), color).save(output, format="PNG")
    return output.getvalue()


class FakeClipboard(ClipboardBackend):
    def __init__(self):
        self.text: Optional[str] = None
        self.image: Optional[Tuple[bytes, int, int]] = None
        self.fail_reads = 0
        self.written: List[tuple] = []

    def read_text(self):
        if self.fail_reads:
            self.fail_reads -= 1
            raise OSError("clipboard busy")
        return self.text

    def read_image(self):
        if self.fail_reads:
            self.fail_reads -= 1
            raise OSError("clipboard busy")
        return self.image

    def write_text(self, text):
        self.written.append(("text", text))
        self.text, self.image = text, None
        return True

    def write_image(self, png_bytes):
        self.written.append(("image", png_bytes))
        with Image.open(io.BytesIO(png_bytes)) as image:
            self.image = (png_bytes, image.width, image.height)
        return True


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.value = start

    def now(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


@pytest.fixture
def image_dir(tmp_path):
    return tmp_path / "images"


@pytest.fixture
def resources(image_dir):
    return ResourceManager(image_dir, thumb_max_dim=150)


@pytest.fixture
def policy():
    return TextPolicy(truncate_limit=10_000, compression_threshold=1_000, preview_chars=50)


@pytest.fixture
def store(resources, policy):
    return EntryStore(resources, policy=policy, capacity=20)


@pytest.fixture
def clipboard():
    return FakeClipboard()


@pytest.fixture
def clock():
    return FakeClock()
