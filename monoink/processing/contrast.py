from __future__ import annotations

from .buffer import PixelBuffer

# Channel spread below which a pixel counts as "gray enough" to binarize
CHROMA_TOLERANCE = 30
MIDPOINT = 128


def process_high_contrast(buf: PixelBuffer) -> PixelBuffer:
    """Flatten near-gray pixels to pure black or white, sparing colored ones.

    Pixels whose channels differ by less than ``CHROMA_TOLERANCE`` become
    white when their plain channel average exceeds ``MIDPOINT`` and black
    otherwise. Chromatic pixels (highlights, colored text) are kept as-is so
    accents survive. Alpha is never touched. The buffer is modified in place
    and returned.
    """

    data = buf.data
    for i in range(0, len(data), 4):
        r, g, b = data[i], data[i + 1], data[i + 2]
        max_diff = max(abs(r - g), abs(g - b), abs(b - r))
        if max_diff < CHROMA_TOLERANCE:
            color = 255 if (r + g + b) / 3 > MIDPOINT else 0
            data[i] = data[i + 1] = data[i + 2] = color
    return buf
