import pytest

from monoink.processing.buffer import PixelBuffer


def make_buffer(rows):
    """Build a PixelBuffer from a list of rows of RGBA tuples."""
    height = len(rows)
    width = len(rows[0])
    buf = PixelBuffer(width, height)
    for y, row in enumerate(rows):
        for x, rgba in enumerate(row):
            buf.set(x, y, rgba)
    return buf


@pytest.fixture
def checkerboard():
    white = (255, 255, 255, 255)
    black = (0, 0, 0, 255)
    return make_buffer(
        [[white if (x + y) % 2 == 0 else black for x in range(4)] for y in range(4)]
    )


@pytest.fixture
def buffer_from_rows():
    return make_buffer
