"""Compositor — renders a screenshot inside device frame artwork.

Used by the preview path (scaled to fit) and by export (``scale=1``) so
the exported PNG matches the preview.  Layer order is fixed: masked
screenshot first, frame artwork last so the bezel hides any overflow.
"""

import logging
from typing import Optional

import cv2
import numpy as np

from .assets import AssetStore, encode_png
from .errors import CanvasContextError
from .models import Frame

logger = logging.getLogger(__name__)

# Upper bound for preview width in pixels
PREVIEW_MAX_WIDTH = 800


# ── Pixel helpers ───────────────────────────────────────────────────

def _resize(img: np.ndarray, w: int, h: int,
            interpolation: Optional[int] = None) -> np.ndarray:
    ih, iw = img.shape[:2]
    if (iw, ih) == (w, h):
        return img
    if interpolation is None:
        interpolation = cv2.INTER_AREA if (w < iw and h < ih) else cv2.INTER_LINEAR
    try:
        return cv2.resize(img, (w, h), interpolation=interpolation)
    except cv2.error as exc:
        raise CanvasContextError(f"Resize to {w}x{h} failed: {exc}") from exc


def cut_region(mask: np.ndarray) -> np.ndarray:
    """Boolean map of mask pixels that discard the screenshot.

    A pixel cuts when its RGB is exactly (0, 0, 0).  Fully transparent
    mask pixels read back as black and cut as well.
    """
    return np.all(mask[:, :, :3] == 0, axis=2) | (mask[:, :, 3] == 0)


def apply_mask(screenshot: np.ndarray, mask: np.ndarray) -> np.ndarray:
    """Return a copy of *screenshot* with alpha forced to 0 under black
    mask pixels.  The mask is resampled (bilinear) to the screenshot size;
    every other pixel keeps its original alpha (hard cut, no blending).
    """
    h, w = screenshot.shape[:2]
    fitted = _resize(mask, w, h, interpolation=cv2.INTER_LINEAR)
    out = screenshot.copy()
    out[cut_region(fitted), 3] = 0
    return out


def alpha_over(top: np.ndarray, bottom: np.ndarray) -> np.ndarray:
    """Porter-Duff source-over of two same-sized BGRA rasters."""
    ta = top[:, :, 3:4].astype(np.float32) / 255.0
    ba = bottom[:, :, 3:4].astype(np.float32) / 255.0
    out_a = ta + ba * (1.0 - ta)
    num = (top[:, :, :3].astype(np.float32) * ta
           + bottom[:, :, :3].astype(np.float32) * ba * (1.0 - ta))
    rgb = np.divide(num, out_a, out=np.zeros_like(num), where=out_a > 0)

    out = np.empty_like(top)
    out[:, :, :3] = np.clip(np.rint(rgb), 0, 255).astype(np.uint8)
    out[:, :, 3] = np.clip(np.rint(out_a[:, :, 0] * 255.0), 0, 255).astype(np.uint8)
    return out


def paste(canvas: np.ndarray, layer: np.ndarray, x: int, y: int) -> None:
    """Copy *layer* onto a transparent *canvas* at (x, y), clipped."""
    H, W = canvas.shape[:2]
    h, w = layer.shape[:2]
    x0, y0 = max(x, 0), max(y, 0)
    x1, y1 = min(x + w, W), min(y + h, H)
    if x1 <= x0 or y1 <= y0:
        return
    canvas[y0:y1, x0:x1] = layer[y0 - y:y1 - y, x0 - x:x1 - x]


def fit_scale(frame_width: int, available_width: float,
              max_width: float = PREVIEW_MAX_WIDTH) -> float:
    """Preview ratio: artwork width fits ``min(max_width, available_width)``.

    Never upscales.
    """
    if frame_width <= 0:
        return 1.0
    bound = min(max_width, available_width)
    return min(1.0, bound / frame_width)


# ── Public API ──────────────────────────────────────────────────────

def compose_layers(
    screenshot: np.ndarray,
    artwork: np.ndarray,
    mask: Optional[np.ndarray],
    x: int,
    y: int,
    scale: float = 1.0,
) -> np.ndarray:
    """Composite already-decoded layers into a new BGRA raster.

    The output is the artwork size times *scale*.  The screenshot is
    drawn at ``(x*scale, y*scale)`` at its own size times *scale*; frame,
    mask and screenshot share the same ratio so registration holds.
    """
    fh, fw = artwork.shape[:2]
    canvas_w, canvas_h = int(fw * scale), int(fh * scale)
    if canvas_w <= 0 or canvas_h <= 0:
        raise CanvasContextError(
            f"Canvas size {canvas_w}x{canvas_h} is empty (scale={scale})"
        )

    sh, sw = screenshot.shape[:2]
    shot_w, shot_h = int(sw * scale), int(sh * scale)
    origin_x, origin_y = int(x * scale), int(y * scale)

    layer = np.zeros((canvas_h, canvas_w, 4), dtype=np.uint8)
    if shot_w > 0 and shot_h > 0:
        shot = _resize(screenshot, shot_w, shot_h)
        if mask is not None:
            shot = apply_mask(shot, mask)
        paste(layer, shot, origin_x, origin_y)

    frame_layer = _resize(artwork, canvas_w, canvas_h)
    return alpha_over(frame_layer, layer)


def compose(
    screenshot: np.ndarray,
    frame: Frame,
    assets: AssetStore,
    scale: float = 1.0,
) -> np.ndarray:
    """Composite *screenshot* into *frame*'s artwork.

    Raises :class:`AssetLoadError` when the artwork is missing; a missing
    mask just means unmasked compositing.
    """
    artwork = assets.load_frame(frame)
    mask = assets.load_mask(frame)
    c = frame.coordinates
    logger.debug(
        "Compose %s: shot=%dx%d at (%s, %s) scale=%.3f mask=%s",
        frame.id, screenshot.shape[1], screenshot.shape[0],
        c.x, c.y, scale, mask is not None,
    )
    return compose_layers(screenshot, artwork, mask, c.offset_x, c.offset_y, scale)


def render_preview(
    screenshot: np.ndarray,
    frame: Frame,
    assets: AssetStore,
    available_width: float,
    max_width: float = PREVIEW_MAX_WIDTH,
) -> np.ndarray:
    """Downscaled composite for on-screen display."""
    artwork = assets.load_frame(frame)
    scale = fit_scale(artwork.shape[1], available_width, max_width)
    c = frame.coordinates
    return compose_layers(screenshot, artwork, assets.load_mask(frame),
                          c.offset_x, c.offset_y, scale)


def render_export(screenshot: np.ndarray, frame: Frame, assets: AssetStore) -> bytes:
    """Full-resolution composite encoded as PNG."""
    return encode_png(compose(screenshot, frame, assets, scale=1.0))
