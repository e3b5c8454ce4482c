import subprocess

import pytest

from conftest import make_png
from cliptrail.clipboard import linux
from cliptrail.clipboard.linux import LinuxClipboard


class CommandLog:
    """Canned outputs keyed by the command line, recording every call."""

    def __init__(self, outputs):
        self.outputs = outputs
        self.calls = []

    def __call__(self, command):
        self.calls.append(tuple(command))
        return self.outputs.get(tuple(command))


@pytest.fixture
def wayland(monkeypatch):
    monkeypatch.setenv("WAYLAND_DISPLAY", "wayland-0")
    monkeypatch.setattr(linux.shutil, "which", lambda name: f"/usr/bin/{name}")


@pytest.fixture
def x11(monkeypatch):
    monkeypatch.delenv("WAYLAND_DISPLAY", raising=False)
    monkeypatch.setattr(linux.shutil, "which",
                        lambda name: "/usr/bin/xclip" if name == "xclip" else None)


def install(monkeypatch, clipboard, outputs):
    log = CommandLog(outputs)
    monkeypatch.setattr(clipboard, "_run_command", log)
    return log


def test_wayland_text(wayland, monkeypatch):
    cb = LinuxClipboard()
    install(monkeypatch, cb, {
        ("wl-paste", "--list-types"): b"TEXT\ntext/plain;charset=utf-8\n",
        ("wl-paste", "--no-newline", "--type", "text/plain;charset=utf-8"): "héllo".encode(),
    })
    assert cb.read_text() == "héllo"
    assert cb.read_image() is None


def test_wayland_image(wayland, monkeypatch):
    png = make_png(48, 32)
    cb = LinuxClipboard()
    install(monkeypatch, cb, {
        ("wl-paste", "--list-types"): b"image/png\n",
        ("wl-paste", "--type", "image/png"): png,
    })
    assert cb.read_image() == (png, 48, 32)


def test_x11_text_falls_back_to_untyped_read(x11, monkeypatch):
    cb = LinuxClipboard()
    log = install(monkeypatch, cb, {
        ("xclip", "-selection", "clipboard", "-t", "TARGETS", "-o"): b"TIMESTAMP\n",
        ("xclip", "-selection", "clipboard", "-o"): b"plain",
    })
    assert cb.read_text() == "plain"
    assert log.calls[-1] == ("xclip", "-selection", "clipboard", "-o")


def test_x11_unreadable_image_is_skipped(x11, monkeypatch):
    cb = LinuxClipboard()
    install(monkeypatch, cb, {
        ("xclip", "-selection", "clipboard", "-t", "TARGETS", "-o"): b"image/png\nUTF8_STRING\n",
        ("xclip", "-selection", "clipboard", "-t", "image/png", "-o"): b"broken",
    })
    assert cb.read_image() is None


def test_no_tools_available(monkeypatch):
    monkeypatch.delenv("WAYLAND_DISPLAY", raising=False)
    monkeypatch.setattr(linux.shutil, "which", lambda name: None)
    cb = LinuxClipboard()
    assert cb.read_text() is None
    assert cb.read_image() is None
    assert cb.write_text("x") is False


def test_write_uses_mime_type(wayland, monkeypatch):
    runs = []

    def fake_run(command, input=None, check=False, timeout=None):
        runs.append((command, input))

    monkeypatch.setattr(linux.subprocess, "run", fake_run)
    cb = LinuxClipboard()
    assert cb.write_text("hi") is True
    assert cb.write_image(b"png-bytes") is True
    assert runs == [
        (["wl-copy"], b"hi"),
        (["wl-copy", "--type", "image/png"], b"png-bytes"),
    ]


def test_write_failure_reports_false(x11, monkeypatch):
    def failing_run(command, **kwargs):
        raise subprocess.CalledProcessError(1, command)

    monkeypatch.setattr(linux.subprocess, "run", failing_run)
    assert LinuxClipboard().write_text("hi") is False


def test_parse_type_list():
    assert LinuxClipboard._parse_type_list(b"Image/PNG\n\n TEXT \n") == ["image/png", "text"]
    assert LinuxClipboard._parse_type_list(None) == []
