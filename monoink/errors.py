"""Exception hierarchy shared by the pipeline, session and HTTP layers."""

from __future__ import annotations


class MonoInkError(Exception):
    """Base class for every error raised by this package."""


class ConfigError(MonoInkError, ValueError):
    """A render setting was rejected before any frame was processed."""


class PixelBufferError(MonoInkError):
    """Buffer dimensions or channel data are inconsistent."""


class PixelIndexError(PixelBufferError, IndexError):
    """A pixel coordinate fell outside the buffer."""


class CaptureError(MonoInkError):
    """A single capture layer could not be produced."""


class RenderError(MonoInkError):
    def __init__(self, stage: str, message: str | None = None) -> None:
        self.stage = stage
        super().__init__(message or f"{stage} stage failed")
