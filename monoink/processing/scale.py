from __future__ import annotations

from .buffer import PixelBuffer
from ..errors import PixelBufferError


def scale(src: PixelBuffer, width: int, height: int) -> PixelBuffer:
    """Nearest-neighbour resample of ``src`` into a new ``width`` x ``height`` buffer.

    Destination pixel ``(x, y)`` copies source pixel
    ``(x * src_w // width, y * src_h // height)``. No interpolation happens,
    so scaling is bit-exact and blocks stay hard-edged.
    """

    if width < 1 or height < 1:
        raise PixelBufferError(f"Scale target must be at least 1x1, got {width}x{height}")

    dst = src.resize(width, height)
    src_w, src_h = src.size
    src_data = src.data
    dst_data = dst.data
    src_stride = src_w * 4
    dst_stride = width * 4

    # Column offsets are the same for every row
    columns = [(x * src_w // width) * 4 for x in range(width)]
    for y in range(height):
        src_row = (y * src_h // height) * src_stride
        row = bytearray(dst_stride)
        i = 0
        for offset in columns:
            start = src_row + offset
            row[i : i + 4] = src_data[start : start + 4]
            i += 4
        dst_data[y * dst_stride : (y + 1) * dst_stride] = row
    return dst


def expand_blocks(src: PixelBuffer, factor: int) -> PixelBuffer:
    """Blow every pixel of ``src`` up into a ``factor`` x ``factor`` block."""

    if factor < 1:
        raise PixelBufferError(f"Block factor must be at least 1, got {factor}")
    return scale(src, src.width * factor, src.height * factor)
