import io
import logging
import shutil
import threading
from pathlib import Path
from typing import Iterable, Optional, Set, Tuple

import ulid
from PIL import Image, UnidentifiedImageError

from cliptrail.exceptions import TransientIOError
from cliptrail.models.entry import ImageResources

logger = logging.getLogger(__name__)

MIN_THUMB_DIM = 150
MAX_THUMB_DIM = 320
THUMBNAIL_QUALITY = 80


def thumbnail_size(width: int, height: int, max_dim: int) -> Tuple[int, int]:
    if width <= max_dim and height <= max_dim:
        return width, height
    scale = min(max_dim / width, max_dim / height)
    return max(1, round(width * scale)), max(1, round(height * scale))


class ResourceManager:
    """Owns the image and thumbnail files backing history entries.

    Files are tracked in two sets: ``pending`` holds files that have been
    written but not yet committed to the history, ``owned`` holds files
    that belong to a live entry. A file leaves both sets the moment it is
    deleted, so a second delete for the same name is a no-op.
    """

    def __init__(self, base_dir: Optional[Path] = None, thumb_max_dim: int = MIN_THUMB_DIM):
        if base_dir is None:
            base_dir = Path.home() / ".cliptrail" / "images"
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self.thumb_max_dim = thumb_max_dim
        self._lock = threading.Lock()
        self._owned: Set[str] = set()
        self._pending: Set[str] = set()

    @property
    def thumb_max_dim(self) -> int:
        return self._thumb_max_dim

    @thumb_max_dim.setter
    def thumb_max_dim(self, value: int) -> None:
        self._thumb_max_dim = min(MAX_THUMB_DIM, max(MIN_THUMB_DIM, int(value)))

    def path_for(self, ref: str) -> Path:
        return self.base_dir / Path(ref).name

    def exists(self, ref: Optional[str]) -> bool:
        return bool(ref) and self.path_for(ref).is_file()

    def persist_image(self, data: bytes, width: int, height: int) -> Optional[ImageResources]:
        """Write the full image and its thumbnail; returns None if the full image fails."""
        try:
            with Image.open(io.BytesIO(data)) as source:
                source.load()
                image = source.copy()
        except (UnidentifiedImageError, OSError, ValueError) as e:
            logger.error(f"Failed to decode clipboard image ({width}x{height}): {e}")
            return None

        full_ref = f"{ulid.new()}.png"
        try:
            self._write_with_retry(full_ref, self._encode_png(image))
        except TransientIOError as e:
            logger.error(f"Failed to save image: {e}")
            return None

        thumb_ref: Optional[str] = f"thumb-{ulid.new()}.jpg"
        thumb_w, thumb_h = thumbnail_size(image.width, image.height, self.thumb_max_dim)
        try:
            self._write_with_retry(thumb_ref, self._encode_thumbnail(image, thumb_w, thumb_h))
        except Exception as e:
            logger.warning(f"Thumbnail unavailable for {full_ref}, keeping metadata only: {e}")
            thumb_ref, thumb_w, thumb_h = None, 0, 0

        logger.info(f"Saved image {full_ref} ({image.width}x{image.height})")
        return ImageResources(
            full_ref=full_ref,
            thumbnail_ref=thumb_ref,
            thumb_width=thumb_w,
            thumb_height=thumb_h,
        )

    def commit(self, resources: ImageResources) -> None:
        with self._lock:
            for ref in resources.refs:
                self._pending.discard(ref)
                self._owned.add(ref)

    def adopt(self, refs: Iterable[str]) -> None:
        """Take ownership of files restored from a previous run."""
        with self._lock:
            self._owned.update(ref for ref in refs if ref)

    def release(self, resources: Optional[ImageResources]) -> None:
        if resources is None:
            return
        for ref in resources.refs:
            self.delete(ref)

    def delete(self, ref: Optional[str]) -> bool:
        if not ref:
            return False
        with self._lock:
            if ref not in self._owned and ref not in self._pending:
                logger.debug(f"Skip delete of untracked file {ref}")
                return False
            self._owned.discard(ref)
            self._pending.discard(ref)
        try:
            self._unlink(ref)
        except TransientIOError as e:
            logger.warning(f"Failed to delete file: {e}")
            return False
        return True

    def sweep_orphans(self, live_refs: Iterable[str]) -> int:
        """Delete every stored file that no live entry references."""
        live = set(live_refs)
        removed = 0
        try:
            candidates = [p for p in self.base_dir.iterdir() if p.is_file()]
        except OSError as e:
            logger.error(f"Sweep error: {e}")
            return 0

        for path in candidates:
            ref = path.name
            with self._lock:
                if ref in live or ref in self._pending:
                    continue
                self._owned.discard(ref)
            try:
                self._unlink(ref)
                removed += 1
                logger.info(f"Swept orphan file: {ref}")
            except TransientIOError as e:
                logger.warning(f"Failed to sweep orphan: {e}")
        return removed

    def read_full(self, ref: str) -> Optional[bytes]:
        try:
            return self.path_for(ref).read_bytes()
        except OSError as e:
            logger.error(f"Failed to read {ref}: {e}")
            return None

    def disk_usage(self) -> Tuple[int, int]:
        files, size = 0, 0
        try:
            for path in self.base_dir.iterdir():
                if path.is_file():
                    files += 1
                    size += path.stat().st_size
        except OSError as e:
            logger.warning(f"Disk usage scan failed: {e}")
        return files, size

    def stored_refs(self) -> Set[str]:
        try:
            return {p.name for p in self.base_dir.iterdir() if p.is_file()}
        except OSError:
            return set()

    def cleanup_all_files(self) -> None:
        try:
            with self._lock:
                self._owned.clear()
                self._pending.clear()
            if self.base_dir.exists():
                shutil.rmtree(self.base_dir)
                logger.info(f"Cleaned up all files in {self.base_dir}")
            self.base_dir.mkdir(parents=True, exist_ok=True)
        except Exception as e:
            logger.error(f"Cleanup all error: {e}")

    def _write_with_retry(self, ref: str, payload: bytes) -> None:
        path = self.path_for(ref)
        with self._lock:
            self._pending.add(ref)
        last_error: Optional[OSError] = None
        for _ in range(2):
            try:
                path.write_bytes(payload)
                return
            except OSError as e:
                last_error = e
        with self._lock:
            self._pending.discard(ref)
        try:
            path.unlink(missing_ok=True)
        except OSError:
            pass
        raise TransientIOError(f"{path}: {last_error}")

    def _unlink(self, ref: str) -> None:
        path = self.path_for(ref)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise TransientIOError(f"{path}: {e}") from e

    @staticmethod
    def _encode_png(image: Image.Image) -> bytes:
        output = io.BytesIO()
        image.save(output, format="PNG", optimize=True)
        return output.getvalue()

    @staticmethod
    def _encode_thumbnail(image: Image.Image, width: int, height: int) -> bytes:
        thumb = image
        if (width, height) != image.size:
            thumb = image.resize((width, height), Image.Resampling.LANCZOS)
        if thumb.mode in ("RGBA", "LA", "P"):
            thumb = thumb.convert("RGBA")
            background = Image.new("RGB", thumb.size, (255, 255, 255))
            background.paste(thumb, mask=thumb.split()[-1])
            thumb = background
        elif thumb.mode != "RGB":
            thumb = thumb.convert("RGB")
        output = io.BytesIO()
        thumb.save(output, format="JPEG", quality=THUMBNAIL_QUALITY, optimize=True)
        return output.getvalue()
