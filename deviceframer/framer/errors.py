"""Exception types raised by the framing engine."""


class FramerError(Exception):
    """Base class for every error raised by this package."""


class CatalogFormatError(FramerError):
    """The device-frame descriptor is malformed, ambiguous or has duplicate ids."""


class NoMatchingFrame(FramerError):
    """No catalog frame matches the observed screenshot size.

    Advisory only: callers keep their previous selection.
    """


class AssetLoadError(FramerError):
    """Frame artwork or a screenshot could not be read or decoded."""


class CanvasContextError(FramerError):
    """The output raster could not be allocated or encoded."""


class ConfigError(FramerError):
    """Configuration or frame metadata is missing or invalid."""


class VideoEngineError(FramerError):
    """ffmpeg failed.  ``log`` carries the engine's diagnostic output."""

    def __init__(self, message: str, log: str = "") -> None:
        super().__init__(message)
        self.log = log


class VideoJobCancelled(VideoEngineError):
    """The video job was cancelled before it completed."""
