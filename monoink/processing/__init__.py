"""Pixel pipeline components for the ink renderer."""

from .backlight import apply_backlight
from .buffer import PixelBuffer
from .contrast import process_high_contrast
from .dither import (
    apply_block_dithering,
    apply_regular_dithering,
    diffuse_errors,
    dither_block,
    luminance,
    threshold_luminance,
)
from .geometry import FrameGeometry, round_half_up
from .pipeline import run_pipeline
from .scale import expand_blocks, scale

__all__ = [
    "apply_backlight",
    "PixelBuffer",
    "process_high_contrast",
    "apply_block_dithering",
    "apply_regular_dithering",
    "diffuse_errors",
    "dither_block",
    "luminance",
    "threshold_luminance",
    "FrameGeometry",
    "round_half_up",
    "run_pipeline",
    "expand_blocks",
    "scale",
]
