"""Shared utilities used by multiple modules."""

import logging
import os
import re
import subprocess
import sys
from typing import Dict, List, Tuple

logger = logging.getLogger(__name__)

OUTPUT_PREFIX = "framed-"
_EXTENSION = re.compile(r"\.[^/.]+$")


def ffmpeg_exe() -> str:
    """Return path to the ffmpeg binary bundled via imageio-ffmpeg."""
    import imageio_ffmpeg
    return imageio_ffmpeg.get_ffmpeg_exe()


def subprocess_kwargs() -> dict:
    """Extra kwargs to hide the console window on Windows."""
    kw: dict = {}
    if sys.platform == "win32":
        si = subprocess.STARTUPINFO()
        si.dwFlags |= subprocess.STARTF_USESHOWWINDOW
        kw["startupinfo"] = si
        kw["creationflags"] = subprocess.CREATE_NO_WINDOW
    return kw


# ── Output naming ───────────────────────────────────────────────────

def base_name(path: str) -> str:
    """File name without directory and without its last extension."""
    return _EXTENSION.sub("", os.path.basename(path))


def framed_name(path: str, ext: str) -> str:
    """``photo.jpeg`` → ``framed-photo.png`` (for ``ext="png"``)."""
    return f"{OUTPUT_PREFIX}{base_name(path)}.{ext}"


def fmt_seconds(seconds: float) -> str:
    """Format a duration for ffmpeg arguments: ``12.5`` → ``"12.5"``."""
    text = f"{seconds:.3f}".rstrip("0").rstrip(".")
    return text or "0"


# ── Hardware-accelerated encoder support ────────────────────────────

# Encoder ID → (display name, ffmpeg codec name, quality args)
# Quality args approximate CRF 18 equivalent for each encoder.
ENCODER_PROFILES: Dict[str, Tuple[str, str, List[str]]] = {
    "h264_nvenc":  ("NVIDIA NVENC",   "h264_nvenc",  ["-preset", "p4", "-cq", "18", "-b:v", "0"]),
    "h264_qsv":    ("Intel QuickSync", "h264_qsv",   ["-preset", "medium", "-global_quality", "18"]),
    "h264_amf":    ("AMD AMF",         "h264_amf",    ["-quality", "quality", "-qp_i", "18", "-qp_p", "18"]),
    "libx264":     ("Software (x264)", "libx264",     ["-preset", "medium", "-crf", "18"]),
}

# Order of preference for auto-detection
_HW_ENCODER_ORDER = ["h264_nvenc", "h264_qsv", "h264_amf"]

# Cached result so we only probe once per process
_available_encoders: List[str] | None = None


def detect_available_encoders() -> List[str]:
    """Probe ffmpeg for available H.264 encoders.

    Returns a list of encoder IDs (e.g. ``["h264_nvenc", "libx264"]``)
    in preference order.  The software fallback ``libx264`` is always
    included last.  Results are cached after the first call.
    """
    global _available_encoders
    if _available_encoders is not None:
        return _available_encoders

    available: List[str] = []
    try:
        result = subprocess.run(
            [ffmpeg_exe(), "-hide_banner", "-encoders"],
            capture_output=True, timeout=10,
            **subprocess_kwargs(),
        )
        output = result.stdout.decode(errors="replace")
        for enc_id in _HW_ENCODER_ORDER:
            if enc_id in output:
                available.append(enc_id)
    except Exception as exc:
        logger.warning("Encoder probe failed: %s", exc)

    available.append("libx264")
    _available_encoders = available
    return available


def best_hw_encoder() -> str:
    """Best available encoder ID, preferring HW acceleration."""
    encoders = detect_available_encoders()
    return encoders[0] if encoders else "libx264"


def encoder_display_name(enc_id: str) -> str:
    """Human-readable name for an encoder ID."""
    profile = ENCODER_PROFILES.get(enc_id)
    return profile[0] if profile else enc_id


def build_encoder_args(enc_id: str) -> List[str]:
    """Return ffmpeg arguments for the given encoder ID.

    Returns ``["-c:v", "<codec>", ...quality_args..., "-pix_fmt", "yuv420p"]``.
    Unknown IDs fall back to ``libx264``.
    """
    profile = ENCODER_PROFILES.get(enc_id)
    if profile is None:
        profile = ENCODER_PROFILES["libx264"]
    _, codec, quality_args = profile
    return ["-c:v", codec] + quality_args + ["-pix_fmt", "yuv420p"]
