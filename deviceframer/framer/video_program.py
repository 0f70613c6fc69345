"""ffmpeg programs for framing a video.

Builds, but never runs, the argument lists that reproduce the image
compositor over every video frame: optional binary mask → placement on a
transparent canvas → frame artwork on top → even-sized pad.  Programs
refer to files by their names inside the engine session's working
directory.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from .errors import ConfigError
from .models import Frame
from .utils import build_encoder_args, fmt_seconds

INPUT_NAME = "input.mp4"
FRAME_NAME = "frame.png"
MASK_NAME = "mask.png"
OUTPUT_NAME = "output.mp4"
STILL_NAME = "video.png"

TRANSPARENT = "0x00000000"

# Keeps a mask pixel only when it is not exactly RGB black and not fully
# transparent; same rule as compositor.cut_region.
_KEEP = "255*gt(r(X,Y)+g(X,Y)+b(X,Y),0)*gt(alpha(X,Y),0)"


@dataclass
class VideoProgram:
    """An ffmpeg argument list plus the session files it reads / writes."""
    args: List[str]
    inputs: List[str] = field(default_factory=list)
    output: str = ""
    filter_graph: str = ""


def build_extract_first_frame_program(input_name: str = INPUT_NAME) -> VideoProgram:
    """Single still PNG from the first video frame (for auto-detection)."""
    return VideoProgram(
        args=["-i", input_name, "-vframes", "1", "-f", "image2", STILL_NAME],
        inputs=[input_name],
        output=STILL_NAME,
    )


def _canvas_size(frame: Frame, frame_size: Optional[Tuple[int, int]]) -> Tuple[int, int]:
    c = frame.coordinates
    w = int(c.screenshot_width) + c.offset_x
    h = int(c.screenshot_height) + c.offset_y
    if frame_size is not None:
        w = max(w, int(frame_size[0]))
        h = max(h, int(frame_size[1]))
    return w, h


def build_filter_graph(
    frame: Frame,
    duration: float,
    has_mask: bool,
    frame_size: Optional[Tuple[int, int]] = None,
) -> str:
    """Filter graph for ``-filter_complex``.

    Inputs: ``0`` video, ``1`` frame artwork, ``2`` mask (when *has_mask*).
    Output label: ``[out]``.
    """
    c = frame.coordinates
    x, y = c.offset_x, c.offset_y
    cw, ch = _canvas_size(frame, frame_size)
    d = fmt_seconds(duration)

    steps = ["[0:v]format=rgba[vid]"]
    placed = "vid"
    if has_mask:
        steps += [
            "[2:v][vid]scale2ref[mask_fit][vid_ref]",
            f"[mask_fit]format=rgba,geq=r='{_KEEP}':g='{_KEEP}':b='{_KEEP}':a=255,"
            "format=gray[cut]",
            "[vid_ref][cut]alphamerge[masked]",
        ]
        placed = "masked"
    steps += [
        f"color=color={TRANSPARENT}:size={cw}x{ch}:d={d},format=rgba[canvas]",
        f"[canvas][{placed}]overlay={x}:{y}[screenshot_on_canvas]",
        "[screenshot_on_canvas][1:v]overlay=0:0:format=auto[final]",
        "[final]pad=width=ceil(iw/2)*2:height=ceil(ih/2)*2[out]",
    ]
    return "; ".join(steps)


def build_overlay_program(
    input_name: str,
    frame: Frame,
    duration: float,
    has_mask: bool = False,
    frame_size: Optional[Tuple[int, int]] = None,
    encoder_id: str = "libx264",
) -> VideoProgram:
    """Program that frames the whole clip and keeps its audio untouched.

    *frame_size* is the artwork's (width, height); when given the canvas
    grows to hold the full artwork.  Raises :class:`ConfigError` when the
    frame has no ``screenshotWidth`` / ``screenshotHeight``.
    """
    if not frame.coordinates.has_screenshot_size:
        raise ConfigError(
            f"Frame {frame.id} is missing screenshotWidth or screenshotHeight"
        )
    if not duration or duration <= 0:
        raise ConfigError(f"Invalid clip duration: {duration!r}")

    graph = build_filter_graph(frame, duration, has_mask, frame_size)

    inputs = [input_name, FRAME_NAME]
    args = ["-i", input_name, "-i", FRAME_NAME]
    if has_mask:
        inputs.append(MASK_NAME)
        args += ["-loop", "1", "-i", MASK_NAME]

    args += [
        "-filter_complex", graph,
        "-map", "[out]",
        "-map", "0:a?",
    ] + build_encoder_args(encoder_id) + [
        "-c:a", "copy",
        "-shortest",
        "-t", fmt_seconds(duration),
        OUTPUT_NAME,
    ]
    return VideoProgram(args=args, inputs=inputs, output=OUTPUT_NAME, filter_graph=graph)
