from __future__ import annotations

from typing import Optional, Tuple

from PIL import Image

from ..errors import PixelBufferError, PixelIndexError


RGBA = Tuple[int, int, int, int]


class PixelBuffer:
    """Fixed-size RGBA byte grid, row-major, four bytes per pixel.

    ``data`` always holds exactly ``width * height * 4`` bytes. Buffers are
    never reshaped in place: :meth:`resize` hands back a new, blank buffer.
    """

    __slots__ = ("width", "height", "data")

    def __init__(self, width: int, height: int, data: Optional[bytearray] = None) -> None:
        if width < 1 or height < 1:
            raise PixelBufferError(f"Buffer must be at least 1x1, got {width}x{height}")
        expected = width * height * 4
        if data is None:
            data = bytearray(expected)
        elif len(data) != expected:
            raise PixelBufferError(
                f"Expected {expected} bytes for {width}x{height}, got {len(data)}"
            )
        self.width = width
        self.height = height
        self.data = data if isinstance(data, bytearray) else bytearray(data)

    @classmethod
    def filled(cls, width: int, height: int, rgba: RGBA) -> "PixelBuffer":
        _check_channels(rgba)
        return cls(width, height, bytearray(bytes(rgba) * (width * height)))

    @classmethod
    def from_image(cls, img: Image.Image) -> "PixelBuffer":
        rgba = img.convert("RGBA")
        width, height = rgba.size
        return cls(width, height, bytearray(rgba.tobytes()))

    def to_image(self) -> Image.Image:
        return Image.frombytes("RGBA", (self.width, self.height), bytes(self.data))

    @property
    def size(self) -> Tuple[int, int]:
        return self.width, self.height

    @property
    def stride(self) -> int:
        return self.width * 4

    def _offset(self, x: int, y: int) -> int:
        if not (0 <= x < self.width and 0 <= y < self.height):
            raise PixelIndexError(
                f"Pixel ({x}, {y}) outside {self.width}x{self.height} buffer"
            )
        return (y * self.width + x) * 4

    def get(self, x: int, y: int) -> RGBA:
        i = self._offset(x, y)
        data = self.data
        return data[i], data[i + 1], data[i + 2], data[i + 3]

    def set(self, x: int, y: int, rgba: RGBA) -> None:
        _check_channels(rgba)
        i = self._offset(x, y)
        self.data[i : i + 4] = bytes(rgba)

    def resize(self, width: int, height: int) -> "PixelBuffer":
        return PixelBuffer(width, height)

    def copy(self) -> "PixelBuffer":
        return PixelBuffer(self.width, self.height, bytearray(self.data))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PixelBuffer):
            return NotImplemented
        return self.size == other.size and self.data == other.data

    def __repr__(self) -> str:
        return f"PixelBuffer({self.width}x{self.height})"


def _check_channels(rgba: RGBA) -> None:
    if len(rgba) != 4 or any(not 0 <= int(c) <= 255 for c in rgba):
        raise PixelBufferError(f"Expected four channels in 0..255, got {rgba!r}")
