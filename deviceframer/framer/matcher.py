"""Auto-detection of the device frame from screenshot pixel size."""

import logging
from typing import Iterable, Optional

import numpy as np

from .errors import NoMatchingFrame
from .models import Frame

logger = logging.getLogger(__name__)

# Max per-axis difference in pixels between observed and expected size
TOLERANCE = 2


def match_frame(
    frames: Iterable[Frame],
    width: float,
    height: float,
    tolerance: float = TOLERANCE,
) -> Optional[Frame]:
    """Return the first frame (catalog order) whose expected screenshot
    size is within *tolerance* of ``width`` x ``height`` on both axes.

    Frames without ``screenshotWidth`` / ``screenshotHeight`` never match.
    """
    for frame in frames:
        c = frame.coordinates
        if not c.has_screenshot_size:
            continue
        if (abs(c.screenshot_width - width) <= tolerance
                and abs(c.screenshot_height - height) <= tolerance):
            return frame
    return None


def require_frame(
    frames: Iterable[Frame],
    width: float,
    height: float,
    tolerance: float = TOLERANCE,
) -> Frame:
    """Like :func:`match_frame` but raises :class:`NoMatchingFrame`."""
    frame = match_frame(frames, width, height, tolerance)
    if frame is None:
        raise NoMatchingFrame(f"No matching device found for size {width}x{height}px")
    return frame


def detect_frame(
    frames: Iterable[Frame],
    raster: np.ndarray,
    tolerance: float = TOLERANCE,
) -> Optional[Frame]:
    """Match a decoded raster's pixel size against the catalog."""
    h, w = raster.shape[:2]
    frame = match_frame(frames, w, h, tolerance)
    if frame is None:
        logger.warning("No matching device found for size %dx%dpx", w, h)
    else:
        logger.info("Auto-detected: %s (%dx%dpx)", frame.name, w, h)
    return frame
