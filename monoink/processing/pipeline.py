from __future__ import annotations

import logging
import time
from typing import Callable, Optional, Tuple

from .backlight import apply_backlight
from .buffer import PixelBuffer
from .contrast import process_high_contrast
from .dither import apply_block_dithering, apply_regular_dithering
from .geometry import FrameGeometry
from .scale import scale
from ..config import RenderSettings
from ..errors import RenderError

log = logging.getLogger("monoink.pipeline")

Stage = Callable[[PixelBuffer], PixelBuffer]


def _run_stage(name: str, stage: Stage, buf: PixelBuffer) -> PixelBuffer:
    started = time.perf_counter()
    try:
        out = stage(buf)
    except Exception as exc:
        raise RenderError(name, f"{name} stage failed: {exc}") from exc
    log.debug(
        "%s: %dx%d -> %dx%d in %.1f ms",
        name,
        buf.width,
        buf.height,
        out.width,
        out.height,
        (time.perf_counter() - started) * 1000,
    )
    return out


def run_pipeline(
    frame: PixelBuffer,
    settings: RenderSettings,
    geometry: FrameGeometry,
    display_size: Optional[Tuple[int, int]] = None,
) -> Optional[PixelBuffer]:
    """Turn a captured frame into the finished ink rendering.

    Stages run in a fixed order: downsample (pixelation), high contrast,
    dithering (block-confined when pixelated, regular otherwise), backlight,
    then a nearest-neighbour upscale to ``display_size`` (defaults to the
    frame size). Returns ``None`` when no effect is enabled, meaning the
    overlay should not be shown at all.

    ``frame`` itself is never modified. Any stage failure surfaces as
    :class:`RenderError` and no partially processed buffer is returned.
    """

    if not settings.has_effects:
        return None

    target_w, target_h = display_size or frame.size

    if settings.pixelation:
        process_w, process_h = geometry.process_size
        buf = _run_stage("downsample", lambda b: scale(b, process_w, process_h), frame)
    else:
        buf = frame.copy()

    if settings.high_contrast:
        buf = _run_stage("high_contrast", process_high_contrast, buf)

    if settings.dithering:
        if settings.pixelation:
            subdivisions = geometry.subdivisions
            buf = _run_stage(
                "block_dither", lambda b: apply_block_dithering(b, subdivisions), buf
            )
        else:
            density = settings.dither_density
            buf = _run_stage("dither", lambda b: apply_regular_dithering(b, density), buf)

    if settings.backlight:
        color = settings.backlight_color
        buf = _run_stage("backlight", lambda b: apply_backlight(b, color), buf)

    if buf.size != (target_w, target_h):
        buf = _run_stage("upscale", lambda b: scale(b, target_w, target_h), buf)
    return buf
