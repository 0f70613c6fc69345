"""Frame artwork lookup and raster decode / encode.

All rasters are ``uint8`` numpy arrays in OpenCV BGRA order, shape
``(h, w, 4)``.
"""

import logging
import os
from typing import Optional

import cv2
import numpy as np

from .errors import AssetLoadError, CanvasContextError
from .models import Frame

logger = logging.getLogger(__name__)

MASK_SUFFIX = "_mask"


def to_bgra(img: np.ndarray) -> np.ndarray:
    """Normalise a decoded image (gray / BGR / BGRA, 8 or 16 bit) to BGRA8."""
    if img.dtype == np.uint16:
        img = (img // 257).astype(np.uint8)
    elif img.dtype != np.uint8:
        img = np.clip(img, 0, 255).astype(np.uint8)

    if img.ndim == 2:
        return cv2.cvtColor(img, cv2.COLOR_GRAY2BGRA)
    channels = img.shape[2]
    if channels == 1:
        return cv2.cvtColor(img[:, :, 0], cv2.COLOR_GRAY2BGRA)
    if channels == 2:  # gray + alpha
        out = cv2.cvtColor(img[:, :, 0], cv2.COLOR_GRAY2BGRA)
        out[:, :, 3] = img[:, :, 1]
        return out
    if channels == 3:
        return cv2.cvtColor(img, cv2.COLOR_BGR2BGRA)
    return img[:, :, :4].copy()


def decode_raster(data: bytes, label: str = "image") -> np.ndarray:
    """Decode encoded image bytes (PNG, JPEG, …) to BGRA."""
    buf = np.frombuffer(data, dtype=np.uint8)
    img = cv2.imdecode(buf, cv2.IMREAD_UNCHANGED) if buf.size else None
    if img is None:
        raise AssetLoadError(f"Cannot decode {label}")
    return to_bgra(img)


def load_raster(path: str) -> np.ndarray:
    """Read and decode an image file to BGRA."""
    try:
        with open(path, "rb") as f:
            data = f.read()
    except OSError as exc:
        raise AssetLoadError(f"Cannot read {path}: {exc}") from exc
    return decode_raster(data, path)


def encode_png(raster: np.ndarray) -> bytes:
    """Encode a BGRA raster as PNG bytes."""
    try:
        ok, buf = cv2.imencode(".png", raster)
    except cv2.error as exc:
        raise CanvasContextError(f"PNG encode failed: {exc}") from exc
    if not ok:
        raise CanvasContextError("PNG encode failed")
    return buf.tobytes()


class AssetStore:
    """Locates frame artwork and masks under one asset root.

    For a frame named ``N`` the artwork is ``{root}/N.png`` and the
    optional mask ``{root}/N_mask.png``.
    """

    def __init__(self, root: str) -> None:
        self.root = root

    def frame_path(self, name: str) -> str:
        return os.path.join(self.root, f"{name}.png")

    def mask_path(self, name: str) -> str:
        return os.path.join(self.root, f"{name}{MASK_SUFFIX}.png")

    def has_mask(self, frame: Frame) -> bool:
        return os.path.isfile(self.mask_path(frame.name))

    def read_bytes(self, path: str) -> bytes:
        try:
            with open(path, "rb") as f:
                return f.read()
        except OSError as exc:
            raise AssetLoadError(f"Cannot read asset {path}: {exc}") from exc

    def frame_bytes(self, frame: Frame) -> bytes:
        return self.read_bytes(self.frame_path(frame.name))

    def mask_bytes(self, frame: Frame) -> Optional[bytes]:
        """Raw mask bytes, or ``None`` when the frame has no mask."""
        if not self.has_mask(frame):
            return None
        return self.read_bytes(self.mask_path(frame.name))

    def load_frame(self, frame: Frame) -> np.ndarray:
        """Decode the frame artwork; missing or broken artwork is fatal."""
        path = self.frame_path(frame.name)
        return decode_raster(self.read_bytes(path), path)

    def load_mask(self, frame: Frame) -> Optional[np.ndarray]:
        """Decode the frame's mask, or ``None`` when it has none."""
        data = self.mask_bytes(frame)
        if data is None:
            return None
        try:
            return decode_raster(data, self.mask_path(frame.name))
        except AssetLoadError as exc:
            logger.warning("Ignoring unreadable mask for %s: %s", frame.name, exc)
            return None
