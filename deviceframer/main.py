"""deviceframer — frame screenshots and screen recordings in device artwork."""

import argparse
import logging
import os
import sys
from typing import List, Optional

from framer.assets import AssetStore, encode_png, load_raster
from framer.batch import ARCHIVE_NAME, KIND_VIDEO, MediaItem, export_all, write_archive
from framer.catalog import FrameCatalog
from framer.compositor import render_preview
from framer.config import FramerConfig, load_config
from framer.engine import LogEvent, ProgressEvent
from framer.errors import ConfigError, FramerError
from framer.matcher import detect_frame, match_frame
from framer.models import Frame
from framer.selection import resolve_selection
from framer.utils import base_name, best_hw_encoder, encoder_display_name, framed_name
from framer.video_exporter import VideoExporter

logging.basicConfig(
    level=logging.INFO,
    format="%(name)s | %(levelname)s | %(message)s",
)

_logger = logging.getLogger(__name__)


def _global_exception_handler(exc_type, exc_value, exc_tb):
    """Log unhandled exceptions instead of crashing silently."""
    if issubclass(exc_type, KeyboardInterrupt):
        sys.__excepthook__(exc_type, exc_value, exc_tb)
        return
    _logger.critical("Unhandled exception", exc_info=(exc_type, exc_value, exc_tb))


# ── Frame selection ─────────────────────────────────────────────────

def _select_frame(catalog: FrameCatalog, args, items: List[MediaItem],
                  cfg: FramerConfig, exporter: VideoExporter) -> Frame:
    """Explicit --frame / --device wins, then auto-detection, then the
    first catalog entry."""
    if args.frame:
        return catalog.get(args.frame)
    if args.device:
        parts = args.device.split("/") + [None] * 5
        frame = resolve_selection(catalog.frames, *parts[:5])
        if frame is None:
            raise ConfigError(f"No frame for device path {args.device!r}")
        return frame

    first = items[0]
    if first.kind == KIND_VIDEO:
        raster = exporter.extract_first_frame(first.path)
    else:
        raster = load_raster(first.path)
    frame = detect_frame(catalog.frames, raster, cfg.tolerance)
    if frame is not None:
        return frame
    _logger.warning("Falling back to %s", catalog.frames[0].id)
    return catalog.frames[0]


def _log_event(event) -> None:
    if isinstance(event, ProgressEvent):
        _logger.info("Progress: %3.0f%%", event.fraction * 100)
    elif isinstance(event, LogEvent):
        _logger.debug("ffmpeg: %s", event.message)


# ── Commands ────────────────────────────────────────────────────────

def cmd_list(catalog: FrameCatalog, args, cfg: FramerConfig) -> int:
    for f in catalog:
        c = f.coordinates
        size = (f"{c.screenshot_width:g}x{c.screenshot_height:g}"
                if c.has_screenshot_size else "-")
        print(f"{f.id}\t{f.label}\t{size}")
    return 0


def cmd_detect(catalog: FrameCatalog, args, cfg: FramerConfig) -> int:
    exporter = _exporter(cfg)
    missing = 0
    for path in args.files:
        item = MediaItem.from_path(path)
        if item.kind == KIND_VIDEO:
            raster = exporter.extract_first_frame(path)
        else:
            raster = load_raster(path)
        h, w = raster.shape[:2]
        frame = match_frame(catalog.frames, w, h, cfg.tolerance)
        if frame is None:
            print(f"{path}\t{w}x{h}\tno matching device")
            missing += 1
        else:
            print(f"{path}\t{w}x{h}\t{frame.id}")
    return 1 if missing else 0


def cmd_frame(catalog: FrameCatalog, args, cfg: FramerConfig) -> int:
    assets = AssetStore(cfg.asset_root)
    exporter = _exporter(cfg)
    items = [MediaItem.from_path(p) for p in args.files]
    frame = _select_frame(catalog, args, items, cfg, exporter)
    out_dir = args.out or os.getcwd()
    os.makedirs(out_dir, exist_ok=True)

    status = 0
    for item in items:
        if item.kind == KIND_VIDEO:
            out = os.path.join(out_dir, framed_name(item.path, "mp4"))
            exporter.export(item.path, frame, out, on_event=_log_event)
            print(out)

    images = [i for i in items if i.kind != KIND_VIDEO]
    if not images:
        return status

    result = export_all(images, frame, assets)
    for failure in result.failures:
        _logger.error("%s: %s", failure.name, failure.error)
        status = 1
    if args.zip or len(images) > 1:
        out = write_archive(result.entries, os.path.join(out_dir, args.archive))
        print(out)
    else:
        for name, data in result.entries:
            out = os.path.join(out_dir, name)
            with open(out, "wb") as f:
                f.write(data)
            print(out)
    return status


def cmd_preview(catalog: FrameCatalog, args, cfg: FramerConfig) -> int:
    assets = AssetStore(cfg.asset_root)
    exporter = _exporter(cfg)
    items = [MediaItem.from_path(args.file)]
    frame = _select_frame(catalog, args, items, cfg, exporter)
    if items[0].kind == KIND_VIDEO:
        raster = exporter.extract_first_frame(args.file)
    else:
        raster = load_raster(args.file)
    preview = render_preview(raster, frame, assets, args.width, cfg.preview_max_width)
    out = os.path.join(args.out or os.getcwd(), f"preview-{base_name(args.file)}.png")
    with open(out, "wb") as f:
        f.write(encode_png(preview))
    print(out)
    return 0


def _exporter(cfg: FramerConfig) -> VideoExporter:
    encoder = best_hw_encoder() if cfg.encoder_id == "auto" else cfg.encoder_id
    _logger.debug("Video encoder: %s", encoder_display_name(encoder))
    return VideoExporter(AssetStore(cfg.asset_root), encoder, log_lines=cfg.log_lines)


# ── Entry point ─────────────────────────────────────────────────────

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="deviceframer", description=__doc__)
    parser.add_argument("--config", help="JSON config file")
    parser.add_argument("--assets", help="frame asset directory (Frames.json + PNGs)")
    parser.add_argument("--encoder", help="video encoder id, or 'auto'")
    parser.add_argument("-v", "--verbose", action="store_true")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("list", help="list catalog frames")

    p = sub.add_parser("detect", help="auto-detect the device for each file")
    p.add_argument("files", nargs="+")

    def _selection_args(p: argparse.ArgumentParser) -> None:
        p.add_argument("--frame", help="frame id (see 'list')")
        p.add_argument("--device",
                       help="CATEGORY/MODEL[/VERSION[/VARIANT[/ORIENTATION]]]")
        p.add_argument("--out", help="output directory")

    p = sub.add_parser("frame", help="frame screenshots and videos")
    p.add_argument("files", nargs="+")
    p.add_argument("--zip", action="store_true", help="always write an archive")
    p.add_argument("--archive", default=ARCHIVE_NAME, help="archive file name")
    _selection_args(p)

    p = sub.add_parser("preview", help="render a downscaled preview")
    p.add_argument("file")
    p.add_argument("--width", type=int, default=800, help="available width in px")
    _selection_args(p)
    return parser


_COMMANDS = {
    "list": cmd_list,
    "detect": cmd_detect,
    "frame": cmd_frame,
    "preview": cmd_preview,
}


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point — loads config and catalog, dispatches the command."""
    sys.excepthook = _global_exception_handler
    args = build_parser().parse_args(argv)
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        cfg = load_config(args.config)
        if args.assets:
            cfg.asset_root = args.assets
        if args.encoder:
            cfg.encoder_id = args.encoder
        catalog = FrameCatalog.load(cfg.catalog_path)
        if not len(catalog):
            _logger.error("Frame catalog %s is empty", cfg.catalog_path)
            return 1
        return _COMMANDS[args.command](catalog, args, cfg)
    except FramerError as exc:
        _logger.error("%s", exc)
        log = getattr(exc, "log", "")
        if log:
            _logger.debug("ffmpeg log:\n%s", log)
        return 1
    except KeyError as exc:
        _logger.error("Unknown frame id: %s", exc)
        return 1
    except ValueError as exc:
        _logger.error("%s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
