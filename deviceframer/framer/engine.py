"""ffmpeg engine session — private working directory + one job at a time.

A session owns a scratch directory that stands in for the engine's
virtual filesystem: callers write named inputs, run a
:class:`~framer.video_program.VideoProgram`, and read the named output
back.  Sessions are not reusable after :meth:`FFmpegSession.close`;
"reset" means closing the old session and loading a new one.

Jobs report progress and log lines as a stream of events::

    job = session.run(program, duration=12.0)
    for event in job:
        ...
    job.wait()  # raises VideoEngineError on failure
"""

import enum
import logging
import os
import queue
import shutil
import subprocess
import tempfile
import threading
from collections import deque
from dataclasses import dataclass
from typing import Iterator, List, Optional, Union

from .errors import VideoEngineError, VideoJobCancelled
from .utils import ffmpeg_exe as _ffmpeg_exe, subprocess_kwargs as _subprocess_kwargs
from .video_program import VideoProgram

logger = logging.getLogger(__name__)

# Max log lines kept per job
DEFAULT_LOG_LINES = 500

# Only one video job may run per process
_ENGINE_LOCK = threading.Lock()


class SessionState(enum.Enum):
    UNLOADED = "unloaded"
    LOADING = "loading"
    READY = "ready"
    BUSY = "busy"


# ── Events ──────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ProgressEvent:
    fraction: float  # 0.0–1.0


@dataclass(frozen=True)
class LogEvent:
    message: str


Event = Union[ProgressEvent, LogEvent]

_DONE = object()


class LogBuffer:
    """Bounded in-memory log (oldest lines are dropped)."""

    def __init__(self, max_lines: int = DEFAULT_LOG_LINES) -> None:
        self._lines: deque = deque(maxlen=max_lines)
        self._lock = threading.Lock()

    def append(self, line: str) -> None:
        with self._lock:
            self._lines.append(line)

    @property
    def lines(self) -> List[str]:
        with self._lock:
            return list(self._lines)

    def text(self) -> str:
        return "\n".join(self.lines)

    def clear(self) -> None:
        with self._lock:
            self._lines.clear()

    def __len__(self) -> int:
        return len(self._lines)


class CancelToken:
    """Cooperative cancellation flag checked between blocking steps."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise VideoJobCancelled("Video job cancelled")


def parse_progress_line(line: str, duration: Optional[float]) -> Optional[float]:
    """Map one ``-progress`` key=value line to a completion fraction."""
    key, _, value = line.strip().partition("=")
    if key == "progress" and value == "end":
        return 1.0
    if key != "out_time_us" or not duration or duration <= 0:
        return None
    try:
        seconds = int(value) / 1_000_000
    except ValueError:  # "N/A" before the first frame
        return None
    return max(0.0, min(1.0, seconds / duration))


# ── Job ─────────────────────────────────────────────────────────────

class VideoJob:
    """One running ffmpeg process and its event stream."""

    def __init__(
        self,
        cmd: List[str],
        cwd: str,
        duration: Optional[float] = None,
        cancel: Optional[CancelToken] = None,
        log_lines: int = DEFAULT_LOG_LINES,
        on_finish=None,
    ) -> None:
        self.cmd = cmd
        self.duration = duration
        self.log = LogBuffer(log_lines)
        self.returncode: Optional[int] = None
        self._cwd = cwd
        self._cancel = cancel or CancelToken()
        self._on_finish = on_finish
        self._events: "queue.Queue" = queue.Queue()
        self._finished = threading.Event()
        self._stream_closed = False
        self._proc: Optional[subprocess.Popen] = None

    # ── lifecycle ───────────────────────────────────────────────────

    def start(self) -> None:
        try:
            self._proc = subprocess.Popen(
                self.cmd,
                cwd=self._cwd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                **_subprocess_kwargs(),
            )
        except OSError as exc:
            raise VideoEngineError(f"Cannot launch ffmpeg: {exc}") from exc

        readers = [
            threading.Thread(target=self._read_progress, daemon=True),
            threading.Thread(target=self._read_log, daemon=True),
        ]
        for t in readers:
            t.start()
        threading.Thread(target=self._wait_process, args=(readers,), daemon=True).start()

    def _read_progress(self) -> None:
        for raw in self._proc.stdout:
            fraction = parse_progress_line(raw.decode(errors="replace"), self.duration)
            if fraction is not None:
                self._events.put(ProgressEvent(fraction))

    def _read_log(self) -> None:
        for raw in self._proc.stderr:
            line = raw.decode(errors="replace").rstrip()
            if not line:
                continue
            self.log.append(line)
            self._events.put(LogEvent(line))

    def _wait_process(self, readers: List[threading.Thread]) -> None:
        self.returncode = self._proc.wait()
        for t in readers:
            t.join()
        if self._on_finish is not None:
            self._on_finish(self)
        self._finished.set()
        self._events.put(_DONE)

    # ── public API ──────────────────────────────────────────────────

    @property
    def done(self) -> bool:
        return self._finished.is_set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.cancelled

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for the process to exit without raising."""
        return self._finished.wait(timeout)

    def cancel(self) -> None:
        """Kill the process; :meth:`wait` then raises ``VideoJobCancelled``."""
        self._cancel.cancel()
        if self._proc is not None and self._proc.poll() is None:
            logger.info("Cancelling ffmpeg job")
            self._proc.kill()

    def __iter__(self) -> Iterator[Event]:
        """Yield events until the process exits, then close the stream."""
        while not self._stream_closed:
            if self._cancel.cancelled and not self.done:
                self.cancel()
            try:
                event = self._events.get(timeout=0.25)
            except queue.Empty:
                continue
            if event is _DONE:
                self._stream_closed = True
                break
            yield event

    def wait(self, timeout: Optional[float] = None) -> None:
        """Block until the process exits; raise on failure or cancellation."""
        if not self._finished.wait(timeout):
            raise VideoEngineError("Timed out waiting for ffmpeg", self.log.text())
        if self._cancel.cancelled:
            raise VideoJobCancelled("Video job cancelled", self.log.text())
        if self.returncode != 0:
            tail = self.log.lines[-1] if len(self.log) else "Unknown ffmpeg error"
            logger.error("ffmpeg failed (rc=%s): %s", self.returncode, tail)
            raise VideoEngineError(
                f"ffmpeg exited with code {self.returncode}: {tail}", self.log.text()
            )


# ── Session ─────────────────────────────────────────────────────────

class FFmpegSession:
    """Scratch directory + ffmpeg binary for one video operation."""

    def __init__(self, ffmpeg_path: Optional[str] = None,
                 log_lines: int = DEFAULT_LOG_LINES) -> None:
        self.state = SessionState.UNLOADED
        self.log_lines = log_lines
        self._ffmpeg_path = ffmpeg_path
        self._workdir: Optional[str] = None
        self._job: Optional[VideoJob] = None
        self._discarded = False

    def __enter__(self) -> "FFmpegSession":
        self.load()
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    @property
    def workdir(self) -> Optional[str]:
        return self._workdir

    def load(self) -> None:
        """Resolve the ffmpeg binary and create the working directory."""
        if self._discarded:
            raise VideoEngineError("Session was closed; create a new one")
        if self.state is not SessionState.UNLOADED:
            return
        self.state = SessionState.LOADING
        try:
            if self._ffmpeg_path is None:
                self._ffmpeg_path = _ffmpeg_exe()
            self._workdir = tempfile.mkdtemp(prefix="deviceframer_vfs_")
        except Exception as exc:
            self.state = SessionState.UNLOADED
            raise VideoEngineError(f"Cannot load ffmpeg: {exc}") from exc
        self.state = SessionState.READY
        logger.debug("ffmpeg session ready: %s", self._workdir)

    def _require(self, *states: SessionState) -> None:
        if self.state not in states:
            raise VideoEngineError(f"Session is {self.state.value}")

    def _path(self, name: str) -> str:
        if not name or name in (".", "..") or os.path.basename(name) != name:
            raise VideoEngineError(f"Invalid session file name: {name!r}")
        return os.path.join(self._workdir, name)

    def write_file(self, name: str, data: bytes) -> None:
        self._require(SessionState.READY)
        with open(self._path(name), "wb") as f:
            f.write(data)

    def read_file(self, name: str) -> bytes:
        self._require(SessionState.READY)
        path = self._path(name)
        if not os.path.isfile(path):
            raise VideoEngineError(f"ffmpeg produced no {name}")
        with open(path, "rb") as f:
            return f.read()

    def unlink(self, name: str) -> None:
        self._require(SessionState.READY)
        path = self._path(name)
        if os.path.isfile(path):
            os.remove(path)

    def list_files(self) -> List[str]:
        self._require(SessionState.READY, SessionState.BUSY)
        return sorted(os.listdir(self._workdir))

    def run(self, program: VideoProgram, duration: Optional[float] = None,
            cancel: Optional[CancelToken] = None) -> VideoJob:
        """Start *program*; the session is busy until the job finishes."""
        self._require(SessionState.READY)
        missing = [n for n in program.inputs if not os.path.isfile(self._path(n))]
        if missing:
            raise VideoEngineError(f"Program inputs not written: {', '.join(missing)}")
        if not _ENGINE_LOCK.acquire(blocking=False):
            raise VideoEngineError("Another video job is already running")

        cmd = [
            self._ffmpeg_path, "-hide_banner", "-nostdin", "-y",
            "-progress", "pipe:1", "-nostats",
        ] + program.args
        logger.info("Launching ffmpeg: %s", " ".join(cmd))

        self.state = SessionState.BUSY
        job = VideoJob(cmd, self._workdir, duration, cancel,
                       self.log_lines, on_finish=self._job_finished)
        self._job = job
        try:
            job.start()
        except VideoEngineError:
            self._job_finished(job)
            raise
        return job

    def _job_finished(self, job: VideoJob) -> None:
        if self._job is job:
            self._job = None
            if self.state is SessionState.BUSY:
                self.state = SessionState.READY
            _ENGINE_LOCK.release()

    def close(self) -> None:
        """Stop any running job and discard the working directory."""
        job = self._job
        if job is not None:
            job.cancel()
            job.join(10)
        if self._workdir is not None:
            shutil.rmtree(self._workdir, ignore_errors=True)
            self._workdir = None
        self.state = SessionState.UNLOADED
        self._discarded = True


def reset(session: Optional[FFmpegSession] = None) -> FFmpegSession:
    """Discard *session* (if any) and return a freshly loaded one."""
    ffmpeg_path = None
    log_lines = DEFAULT_LOG_LINES
    if session is not None:
        ffmpeg_path = session._ffmpeg_path
        log_lines = session.log_lines
        session.close()
    fresh = FFmpegSession(ffmpeg_path, log_lines)
    fresh.load()
    return fresh
