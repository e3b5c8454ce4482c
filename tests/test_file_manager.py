import io
from pathlib import Path

from PIL import Image

from conftest import make_png
from cliptrail.models.entry import RawImage
from cliptrail.utils.file_manager import ResourceManager, thumbnail_size


def test_thumbnail_size_preserves_aspect_ratio():
    assert thumbnail_size(1000, 1000, 150) == (150, 150)
    assert thumbnail_size(1000, 500, 150) == (150, 75)
    assert thumbnail_size(300, 1200, 320) == (80, 320)
    assert thumbnail_size(100, 120, 150) == (100, 120)


def test_thumb_max_dim_is_clamped(image_dir):
    assert ResourceManager(image_dir, thumb_max_dim=40).thumb_max_dim == 150
    assert ResourceManager(image_dir, thumb_max_dim=999).thumb_max_dim == 320


def test_persist_image_writes_full_and_thumbnail(resources):
    res = resources.persist_image(make_png(1000, 1000), 1000, 1000)
    assert res is not None
    assert res.full_ref.endswith(".png")
    assert res.thumbnail_ref.startswith("thumb-") and res.thumbnail_ref.endswith(".jpg")
    assert resources.exists(res.full_ref) and resources.exists(res.thumbnail_ref)

    with Image.open(resources.path_for(res.thumbnail_ref)) as thumb:
        assert thumb.size == (150, 150)
        assert thumb.format == "JPEG"
    with Image.open(resources.path_for(res.full_ref)) as full:
        assert full.size == (1000, 1000)
    assert (res.thumb_width, res.thumb_height) == (150, 150)


def test_transparent_image_thumbnail(resources):
    output = io.BytesIO()
    Image.new("RGBA", (400, 200), (0, 0, 0, 0)).save(output, format="PNG")
    res = resources.persist_image(output.getvalue(), 400, 200)
    assert res is not None and res.thumbnail_ref is not None
    assert (res.thumb_width, res.thumb_height) == (150, 75)


def test_undecodable_image_is_rejected(resources):
    assert resources.persist_image(b"not an image", 10, 10) is None
    assert resources.stored_refs() == set()


def test_delete_happens_once(resources):
    res = resources.persist_image(make_png(20, 20), 20, 20)
    resources.commit(res)
    assert resources.delete(res.full_ref) is True
    assert not resources.exists(res.full_ref)
    assert resources.delete(res.full_ref) is False


def test_delete_ignores_untracked_files(resources):
    stray = resources.base_dir / "stray.png"
    stray.write_bytes(b"x")
    assert resources.delete("stray.png") is False
    assert stray.exists()


def test_sweep_orphans_keeps_live_and_pending(resources):
    live = resources.persist_image(make_png(30, 30), 30, 30)
    resources.commit(live)
    pending = resources.persist_image(make_png(40, 40, (0, 0, 255)), 40, 40)
    (resources.base_dir / "leftover.png").write_bytes(b"old")

    removed = resources.sweep_orphans(live.refs)

    assert removed == 1
    assert resources.stored_refs() == set(live.refs) | set(pending.refs)


def test_failed_thumbnail_degrades_to_metadata_only(resources, monkeypatch):
    def broken(image, width, height):
        raise OSError("encoder unavailable")

    monkeypatch.setattr(ResourceManager, "_encode_thumbnail", staticmethod(broken))
    res = resources.persist_image(make_png(200, 200), 200, 200)

    assert res is not None
    assert res.thumbnail_ref is None
    assert res.refs == (res.full_ref,)
    assert resources.stored_refs() == {res.full_ref}


def test_failed_full_write_is_retried_once(resources, monkeypatch):
    calls = []
    real_write = Path.write_bytes

    def flaky(self, data):
        calls.append(self.name)
        if len(calls) == 1:
            raise OSError("disk hiccup")
        return real_write(self, data)

    monkeypatch.setattr(Path, "write_bytes", flaky)
    res = resources.persist_image(make_png(10, 10), 10, 10)

    assert res is not None
    assert calls[0] == calls[1] == res.full_ref
    assert resources.exists(res.full_ref)


def test_disk_usage_and_cleanup(resources):
    resources.persist_image(make_png(50, 50), 50, 50)
    files, size = resources.disk_usage()
    assert files == 2 and size > 0
    resources.cleanup_all_files()
    assert resources.disk_usage() == (0, 0)
    assert resources.base_dir.exists()


def test_unexpected_thumbnail_error_still_hands_back_full_image(store, resources, monkeypatch):
    def broken(image, width, height):
        raise RuntimeError("codec crashed")

    monkeypatch.setattr(ResourceManager, "_encode_thumbnail", staticmethod(broken))
    entry = store.insert(RawImage(make_png(60, 60), 60, 60))

    assert entry is not None and entry.thumbnail_ref is None
    store.remove(entry.id)
    assert resources.stored_refs() == set()
