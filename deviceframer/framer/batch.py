"""Batch export — frames every queued screenshot and zips the results.

A ``.zip`` archive containing one ``framed-{name}.png`` per screenshot.
Videos are exported one at a time through the video exporter and are
skipped here.
"""

import io
import logging
import mimetypes
import zipfile
from dataclasses import dataclass, field
from typing import Iterable, List, Tuple

from .assets import AssetStore, load_raster
from .compositor import render_export
from .errors import AssetLoadError, CanvasContextError, FramerError
from .models import Frame
from .utils import framed_name

logger = logging.getLogger(__name__)

ARCHIVE_NAME = "framed-screenshots.zip"

KIND_IMAGE = "image"
KIND_VIDEO = "video"


@dataclass(frozen=True)
class MediaItem:
    """A queued input file."""
    path: str
    kind: str = KIND_IMAGE  # "image" or "video"

    @staticmethod
    def from_path(path: str) -> "MediaItem":
        mime, _ = mimetypes.guess_type(path)
        if mime and mime.startswith("video/"):
            return MediaItem(path, KIND_VIDEO)
        if mime and mime.startswith("image/"):
            return MediaItem(path, KIND_IMAGE)
        raise ValueError(f"Unsupported media type: {path}")


@dataclass(frozen=True)
class BatchFailure:
    name: str
    error: FramerError


@dataclass
class BatchResult:
    entries: List[Tuple[str, bytes]] = field(default_factory=list)
    failures: List[BatchFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


def export_all(items: Iterable[MediaItem], frame: Frame, assets: AssetStore) -> BatchResult:
    """Frame every image item with *frame* at full resolution.

    A failing item is recorded in ``failures`` and the batch continues.
    """
    result = BatchResult()
    for item in items:
        if item.kind != KIND_IMAGE:
            logger.info("Skipping %s item in batch: %s", item.kind, item.path)
            continue
        name = framed_name(item.path, "png")
        try:
            png = render_export(load_raster(item.path), frame, assets)
        except (AssetLoadError, CanvasContextError) as exc:
            logger.warning("Batch item %s failed: %s", item.path, exc)
            result.failures.append(BatchFailure(name, exc))
            continue
        result.entries.append((name, png))

    logger.info(
        "Batch export: %d framed, %d failed (frame=%s)",
        len(result.entries), len(result.failures), frame.id,
    )
    return result


def archive_bytes(entries: Iterable[Tuple[str, bytes]]) -> bytes:
    """Zip ``(filename, png_bytes)`` pairs in memory."""
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", zipfile.ZIP_STORED) as zf:
        for name, data in entries:
            zf.writestr(name, data)
    return buf.getvalue()


def write_archive(entries: Iterable[Tuple[str, bytes]], output_path: str) -> str:
    """Write the archive to *output_path* (``.zip`` appended if missing)."""
    if not output_path.lower().endswith(".zip"):
        output_path += ".zip"
    with open(output_path, "wb") as f:
        f.write(archive_bytes(entries))
    return output_path
