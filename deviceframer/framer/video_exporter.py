"""Frame a video clip with ffmpeg — produces H.264 MP4.

Each operation starts from a fresh engine session (new working
directory) and discards it afterwards, so only one job's files are ever
in flight.
"""

import logging
import os
from typing import Callable, Optional, Sequence, Tuple

import cv2
import numpy as np

from .assets import AssetStore, decode_raster
from .engine import DEFAULT_LOG_LINES, CancelToken, Event, FFmpegSession
from .errors import AssetLoadError, VideoEngineError
from .matcher import detect_frame
from .models import Frame
from .utils import framed_name
from .video_program import (
    FRAME_NAME,
    INPUT_NAME,
    MASK_NAME,
    build_extract_first_frame_program,
    build_overlay_program,
)

logger = logging.getLogger(__name__)


def probe_duration(path: str) -> float:
    """Clip duration in seconds from the container's frame count and fps."""
    cap = cv2.VideoCapture(path)
    if not cap.isOpened():
        raise VideoEngineError(f"Cannot open {path}")
    try:
        fps = cap.get(cv2.CAP_PROP_FPS)
        frame_count = cap.get(cv2.CAP_PROP_FRAME_COUNT)
    finally:
        cap.release()
    if fps <= 0 or frame_count <= 0:
        raise VideoEngineError(f"Cannot determine duration of {path}")
    return frame_count / fps


def _read_video(path: str) -> bytes:
    try:
        with open(path, "rb") as f:
            return f.read()
    except OSError as exc:
        raise AssetLoadError(f"Cannot read {path}: {exc}") from exc


class VideoExporter:
    """Runs the first-frame and overlay programs against ffmpeg."""

    def __init__(
        self,
        assets: AssetStore,
        encoder_id: str = "libx264",
        session_factory: Callable[..., FFmpegSession] = FFmpegSession,
        log_lines: int = DEFAULT_LOG_LINES,
    ) -> None:
        self.assets = assets
        self.encoder_id = encoder_id
        self._session_factory = session_factory
        self._log_lines = log_lines

    def _new_session(self) -> FFmpegSession:
        session = self._session_factory(log_lines=self._log_lines)
        session.load()
        return session

    @staticmethod
    def _execute(session: FFmpegSession, program, duration: Optional[float],
                 on_event: Optional[Callable[[Event], None]],
                 cancel: Optional[CancelToken]) -> None:
        job = session.run(program, duration=duration, cancel=cancel)
        for event in job:
            if on_event is not None:
                on_event(event)
        job.wait()

    # ── public API ──────────────────────────────────────────────────

    def extract_first_frame(
        self,
        video_path: str,
        on_event: Optional[Callable[[Event], None]] = None,
        cancel: Optional[CancelToken] = None,
    ) -> np.ndarray:
        """Decode the clip's first frame to a BGRA raster."""
        cancel = cancel or CancelToken()
        data = _read_video(video_path)
        program = build_extract_first_frame_program(INPUT_NAME)

        session = self._new_session()
        try:
            session.write_file(INPUT_NAME, data)
            cancel.raise_if_cancelled()
            self._execute(session, program, None, on_event, cancel)
            png = session.read_file(program.output)
        finally:
            session.close()
        return decode_raster(png, "first video frame")

    def detect(self, video_path: str,
               frames: Sequence[Frame]) -> Tuple[np.ndarray, Optional[Frame]]:
        """First frame of the clip plus the auto-detected device frame."""
        still = self.extract_first_frame(video_path)
        return still, detect_frame(frames, still)

    def export(
        self,
        video_path: str,
        frame: Frame,
        output_path: Optional[str] = None,
        duration: Optional[float] = None,
        on_event: Optional[Callable[[Event], None]] = None,
        cancel: Optional[CancelToken] = None,
    ) -> str:
        """Frame the whole clip and write an MP4; returns the output path.

        Raises :class:`ConfigError` when *frame* lacks screenshot size
        metadata, :class:`AssetLoadError` when its artwork is missing and
        :class:`VideoEngineError` when ffmpeg fails.
        """
        cancel = cancel or CancelToken()
        artwork_bytes = self.assets.frame_bytes(frame)
        artwork = decode_raster(artwork_bytes, self.assets.frame_path(frame.name))
        has_mask = self.assets.load_mask(frame) is not None
        if duration is None:
            duration = probe_duration(video_path)

        program = build_overlay_program(
            INPUT_NAME, frame, duration,
            has_mask=has_mask,
            frame_size=(artwork.shape[1], artwork.shape[0]),
            encoder_id=self.encoder_id,
        )
        if output_path is None:
            output_path = os.path.join(
                os.path.dirname(video_path), framed_name(video_path, "mp4")
            )

        session = self._new_session()
        try:
            session.write_file(INPUT_NAME, _read_video(video_path))
            session.write_file(FRAME_NAME, artwork_bytes)
            if has_mask:
                session.write_file(MASK_NAME, self.assets.mask_bytes(frame))
            cancel.raise_if_cancelled()
            self._execute(session, program, duration, on_event, cancel)
            cancel.raise_if_cancelled()
            data = session.read_file(program.output)
        finally:
            session.close()

        with open(output_path, "wb") as f:
            f.write(data)
        logger.info("Framed video written: %s (%.1fs, mask=%s)", output_path, duration, has_mask)
        return output_path
