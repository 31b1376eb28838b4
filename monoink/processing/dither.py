from __future__ import annotations

import math
from typing import List, Optional

from .buffer import PixelBuffer
from .scale import expand_blocks, scale

THRESHOLD = 128

# Floyd-Steinberg weights: right, lower-left, below, lower-right
_RIGHT = 7 / 16
_LOWER_LEFT = 3 / 16
_BELOW = 5 / 16
_LOWER_RIGHT = 1 / 16


def luminance(r: float, g: float, b: float) -> float:
    return 0.299 * r + 0.587 * g + 0.114 * b


def _clamp(value: float) -> float:
    return 0.0 if value < 0.0 else 255.0 if value > 255.0 else value


def diffuse_errors(
    values: List[float], width: int, height: int, block: Optional[int] = None
) -> List[float]:
    """Floyd-Steinberg error diffusion over a row-major list of luminance values.

    Every value ends up as exactly ``0.0`` or ``255.0``. Neighbour updates are
    clamped to ``[0, 255]`` as they are written, so later pixels read the
    clamped value. The scan is strictly left-to-right, top-to-bottom; the
    output depends on that order.

    With ``block`` set, the image is treated as a grid of ``block`` x
    ``block`` cells and no error is pushed across a cell edge.
    """

    for y in range(height):
        if block:
            y_end = min(height, (y // block) * block + block)
        else:
            y_end = height
        has_below = y + 1 < y_end
        row = y * width
        for x in range(width):
            if block:
                x_start = (x // block) * block
                x_end = min(width, x_start + block)
            else:
                x_start, x_end = 0, width

            i = row + x
            old = values[i]
            new = 255.0 if old > THRESHOLD else 0.0
            values[i] = new
            error = old - new

            has_right = x + 1 < x_end
            if has_right:
                values[i + 1] = _clamp(values[i + 1] + error * _RIGHT)
            if has_below:
                j = i + width
                if x - 1 >= x_start:
                    values[j - 1] = _clamp(values[j - 1] + error * _LOWER_LEFT)
                values[j] = _clamp(values[j] + error * _BELOW)
                if has_right:
                    values[j + 1] = _clamp(values[j + 1] + error * _LOWER_RIGHT)
    return values


def _luminance_values(buf: PixelBuffer) -> List[float]:
    data = buf.data
    return [luminance(data[i], data[i + 1], data[i + 2]) for i in range(0, len(data), 4)]


def _write_binary(buf: PixelBuffer, values: List[float]) -> PixelBuffer:
    data = buf.data
    for index, value in enumerate(values):
        i = index * 4
        level = 255 if value > THRESHOLD else 0
        data[i] = data[i + 1] = data[i + 2] = level
    return buf


def apply_regular_dithering(buf: PixelBuffer, dither_density: float) -> PixelBuffer:
    """Dither the whole buffer at a resolution reduced by ``dither_density``.

    The buffer is sampled down (nearest neighbour), diffused without any
    boundary restriction, then sampled back up to its original size. A new
    buffer is returned; ``buf`` is left alone.
    """

    width, height = buf.size
    dither_w = max(1, math.floor(width / dither_density))
    dither_h = max(1, math.floor(height / dither_density))

    small = scale(buf, dither_w, dither_h)
    values = diffuse_errors(_luminance_values(small), dither_w, dither_h)
    _write_binary(small, values)
    return scale(small, width, height)


def threshold_luminance(buf: PixelBuffer) -> PixelBuffer:
    values = _luminance_values(buf)
    return _write_binary(buf, values)


def apply_block_dithering(buf: PixelBuffer, subdivisions: int) -> PixelBuffer:
    """Dither each pixelation block on its own ``subdivisions``-square grid.

    Every process pixel is expanded into a ``subdivisions`` x ``subdivisions``
    block of its luminance and diffused strictly inside that block, so noise
    never bleeds between neighbouring blocks. The expanded buffer is
    returned. With ``subdivisions <= 1`` there is no room to diffuse and the
    buffer is simply thresholded in place.
    """

    if subdivisions <= 1:
        return threshold_luminance(buf)

    expanded = expand_blocks(buf, subdivisions)
    values = diffuse_errors(
        _luminance_values(expanded), expanded.width, expanded.height, block=subdivisions
    )
    return _write_binary(expanded, values)


def dither_block(gray: float, size: int) -> List[int]:
    """Return the 0/255 pattern one isolated ``size``-square block of ``gray`` dithers to."""

    values = diffuse_errors([float(gray)] * (size * size), size, size)
    return [int(value) for value in values]
