"""Tests for framer.batch — batch framing and archive packaging."""

import io
import os
import zipfile

import cv2
import pytest

from conftest import make_frame, solid
from framer.assets import AssetStore
from framer.batch import (
    ARCHIVE_NAME,
    KIND_IMAGE,
    KIND_VIDEO,
    MediaItem,
    archive_bytes,
    export_all,
    write_archive,
)
from framer.errors import AssetLoadError


@pytest.fixture
def shots(tmp_path):
    """Three readable screenshots and one path that does not exist."""
    paths = []
    for name in ("home", "settings", "profile"):
        path = str(tmp_path / f"{name}.png")
        cv2.imwrite(path, solid(20, 30, (0, 0, 255, 255)))
        paths.append(path)
    paths.append(str(tmp_path / "deleted.png"))
    return paths


class TestMediaItem:
    def test_from_path(self) -> None:
        assert MediaItem.from_path("a.png").kind == KIND_IMAGE
        assert MediaItem.from_path("a.jpeg").kind == KIND_IMAGE
        assert MediaItem.from_path("clip.mp4").kind == KIND_VIDEO

    def test_unsupported(self) -> None:
        with pytest.raises(ValueError, match="Unsupported"):
            MediaItem.from_path("notes.txt")


class TestExportAll:
    def test_continues_past_failures(self, shots, phone_frame, assets) -> None:
        result = export_all([MediaItem(p) for p in shots], phone_frame, assets)
        assert [name for name, _ in result.entries] == [
            "framed-home.png", "framed-settings.png", "framed-profile.png",
        ]
        assert len(result.failures) == 1
        assert result.failures[0].name == "framed-deleted.png"
        assert isinstance(result.failures[0].error, AssetLoadError)
        assert not result.ok

    def test_artwork_removed_mid_batch(self, shots, tmp_path, phone_frame, asset_dir) -> None:
        fourth = str(tmp_path / "search.png")
        cv2.imwrite(fourth, solid(20, 30, (0, 0, 255, 255)))
        store = AssetStore(asset_dir)
        load_frame = store.load_frame
        calls = []

        def flaky_load_frame(frame):
            calls.append(frame.id)
            if len(calls) == 4:
                os.remove(store.frame_path(frame.name))
            return load_frame(frame)

        store.load_frame = flaky_load_frame
        items = [MediaItem(p) for p in shots[:3] + [fourth]]
        result = export_all(items, phone_frame, store)
        assert len(result.entries) == 3
        assert [f.name for f in result.failures] == ["framed-search.png"]
        assert isinstance(result.failures[0].error, AssetLoadError)

    def test_entries_are_png(self, shots, phone_frame, assets) -> None:
        result = export_all([MediaItem(shots[0])], phone_frame, assets)
        assert result.ok
        assert result.entries[0][1][:8] == b"\x89PNG\r\n\x1a\n"

    def test_missing_artwork_fails_every_item(self, shots, assets) -> None:
        result = export_all([MediaItem(p) for p in shots[:3]], make_frame("absent"), assets)
        assert result.entries == []
        assert len(result.failures) == 3

    def test_videos_skipped(self, shots, phone_frame, assets) -> None:
        items = [MediaItem("clip.mp4", KIND_VIDEO), MediaItem(shots[0])]
        result = export_all(items, phone_frame, assets)
        assert [name for name, _ in result.entries] == ["framed-home.png"]
        assert result.failures == []


class TestArchive:
    def test_archive_bytes(self) -> None:
        data = archive_bytes([("framed-a.png", b"one"), ("framed-b.png", b"two")])
        with zipfile.ZipFile(io.BytesIO(data)) as zf:
            assert zf.namelist() == ["framed-a.png", "framed-b.png"]
            assert zf.read("framed-b.png") == b"two"

    def test_write_archive_appends_extension(self, tmp_path) -> None:
        out = write_archive([("x.png", b"x")], str(tmp_path / "bundle"))
        assert out.endswith("bundle.zip")
        assert zipfile.is_zipfile(out)

    def test_default_name(self, tmp_path) -> None:
        out = write_archive([], os.path.join(str(tmp_path), ARCHIVE_NAME))
        assert os.path.basename(out) == "framed-screenshots.zip"
