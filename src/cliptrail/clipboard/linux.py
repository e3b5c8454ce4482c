import io
import logging
import os
import shutil
import subprocess
from typing import Callable, List, Optional

from PIL import Image, UnidentifiedImageError

from cliptrail.clipboard.base import ClipboardBackend, ImageRead

logger = logging.getLogger(__name__)


class LinuxClipboard(ClipboardBackend):
    """Clipboard access through wl-clipboard (Wayland) or xclip (X11)."""

    _IMAGE_TARGETS = (
        "image/png",
        "image/jpeg",
        "image/jpg",
        "image/bmp",
        "image/x-ms-bmp",
        "image/webp",
    )
    _TEXT_TARGETS = (
        "text/plain;charset=utf-8",
        "text/plain;charset=utf8",
        "utf8_string",
        "text/plain",
        "string",
    )

    def __init__(self, timeout: float = 1.5):
        self.timeout = timeout

    def read_text(self) -> Optional[str]:
        reader = self._reader()
        if reader is None:
            return None
        types = self._list_types()
        for target in self._TEXT_TARGETS:
            if target in types:
                data = reader(target)
                if data:
                    return data.decode("utf-8", errors="ignore")
        data = reader(None)
        if data:
            return data.decode("utf-8", errors="ignore")
        return None

    def read_image(self) -> Optional[ImageRead]:
        reader = self._reader()
        if reader is None:
            return None
        types = self._list_types()
        for target in self._IMAGE_TARGETS:
            if target not in types:
                continue
            data = reader(target)
            if not data:
                continue
            size = self._image_size(data)
            if size is not None:
                return data, size[0], size[1]
        return None

    def write_text(self, text: str) -> bool:
        return self._write(text.encode("utf-8"), None)

    def write_image(self, png_bytes: bytes) -> bool:
        return self._write(png_bytes, "image/png")

    def _use_wayland(self) -> bool:
        return bool(os.environ.get("WAYLAND_DISPLAY")) and bool(shutil.which("wl-paste"))

    def _reader(self) -> Optional[Callable[[Optional[str]], Optional[bytes]]]:
        if self._use_wayland():
            def reader(target: Optional[str]) -> Optional[bytes]:
                command = ["wl-paste"]
                if target is None or target.startswith("text/"):
                    command.append("--no-newline")
                if target is not None:
                    command.extend(["--type", target])
                return self._run_command(command)
            return reader

        if shutil.which("xclip"):
            def reader(target: Optional[str]) -> Optional[bytes]:
                command = ["xclip", "-selection", "clipboard"]
                if target is not None:
                    command.extend(["-t", target])
                command.append("-o")
                return self._run_command(command)
            return reader

        return None

    def _list_types(self) -> List[str]:
        if self._use_wayland():
            data = self._run_command(["wl-paste", "--list-types"])
        elif shutil.which("xclip"):
            data = self._run_command(
                ["xclip", "-selection", "clipboard", "-t", "TARGETS", "-o"])
        else:
            data = None
        return self._parse_type_list(data)

    def _write(self, payload: bytes, mime: Optional[str]) -> bool:
        if shutil.which("wl-copy") and os.environ.get("WAYLAND_DISPLAY"):
            command = ["wl-copy"]
            if mime:
                command.extend(["--type", mime])
        elif shutil.which("xclip"):
            command = ["xclip", "-selection", "clipboard"]
            if mime:
                command.extend(["-t", mime])
        else:
            logger.warning("No clipboard writer available (install wl-clipboard or xclip)")
            return False

        try:
            subprocess.run(command, input=payload, check=True, timeout=2.0)
            return True
        except (subprocess.CalledProcessError, subprocess.TimeoutExpired, OSError) as e:
            logger.error(f"Clipboard write failed: {e}")
            return False

    @staticmethod
    def _image_size(data: bytes) -> Optional[tuple]:
        try:
            with Image.open(io.BytesIO(data)) as image:
                return image.size
        except (UnidentifiedImageError, OSError, ValueError):
            return None

    @staticmethod
    def _parse_type_list(data: Optional[bytes]) -> List[str]:
        if not data:
            return []
        text = data.decode("utf-8", errors="ignore")
        return [line.strip().lower() for line in text.splitlines() if line.strip()]

    def _run_command(self, command: List[str]) -> Optional[bytes]:
        try:
            result = subprocess.run(
                command,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                check=True,
                timeout=self.timeout,
            )
            return result.stdout
        except (subprocess.CalledProcessError, subprocess.TimeoutExpired, FileNotFoundError):
            return None
