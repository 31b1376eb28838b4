from __future__ import annotations

from typing import Tuple

from .buffer import PixelBuffer


def apply_backlight(buf: PixelBuffer, color: Tuple[int, int, int]) -> PixelBuffer:
    """Tint every ink pixel with ``color``.

    Ink is anything that is neither fully transparent nor pure black; the
    black "page" and transparent pixels keep their values. Must run after
    binarization since it relies on exact black equality.
    """

    r, g, b = color
    tint = bytes((r, g, b))
    data = buf.data
    for i in range(0, len(data), 4):
        if data[i + 3] != 0 and (data[i] or data[i + 1] or data[i + 2]):
            data[i : i + 3] = tint
    return buf
