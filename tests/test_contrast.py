from monoink.processing.buffer import PixelBuffer
from monoink.processing.contrast import process_high_contrast


def test_near_gray_pixel_binarizes_on_channel_average(buffer_from_rows):
    buf = buffer_from_rows([[(100, 120, 110, 255), (140, 150, 160, 255)]])

    process_high_contrast(buf)

    # (100 + 120 + 110) / 3 == 110 -> black; (140 + 150 + 160) / 3 == 150 -> white
    assert buf.get(0, 0) == (0, 0, 0, 255)
    assert buf.get(1, 0) == (255, 255, 255, 255)


def test_chromatic_pixel_is_left_untouched(buffer_from_rows):
    buf = buffer_from_rows([[(200, 10, 10, 255), (100, 130, 115, 255)]])

    process_high_contrast(buf)

    assert buf.get(0, 0) == (200, 10, 10, 255)
    # max channel spread of exactly 30 is already chromatic
    assert buf.get(1, 0) == (100, 130, 115, 255)


def test_average_of_exactly_128_goes_black(buffer_from_rows):
    buf = buffer_from_rows([[(128, 128, 128, 255)]])

    process_high_contrast(buf)

    assert buf.get(0, 0) == (0, 0, 0, 255)


def test_alpha_is_preserved(buffer_from_rows):
    buf = buffer_from_rows([[(200, 200, 200, 77), (20, 20, 20, 0)]])

    process_high_contrast(buf)

    assert buf.get(0, 0) == (255, 255, 255, 77)
    assert buf.get(1, 0) == (0, 0, 0, 0)


def test_thresholding_is_idempotent():
    buf = PixelBuffer(16, 16)
    for y in range(16):
        for x in range(16):
            buf.set(x, y, ((x * 17) % 256, (y * 13) % 256, ((x + y) * 7) % 256, 255))

    once = process_high_contrast(buf.copy())
    twice = process_high_contrast(process_high_contrast(buf.copy()))

    assert once == twice
