from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Tuple

from PIL import Image

from .errors import CaptureError
from .processing.buffer import PixelBuffer

log = logging.getLogger("monoink.capture")

Box = Tuple[float, float, float, float]
ImageLoader = Callable[[], Image.Image]


@dataclass(frozen=True)
class CaptureLayer:
    """One already-rendered piece of content to draw into the frame.

    ``box`` is ``(left, top, width, height)`` in CSS pixels; ``None`` means the
    whole viewport. A ``required`` layer is the frame's content: if it fails,
    the whole capture fails.
    """

    load: ImageLoader
    box: Optional[Box] = None
    name: str = "layer"
    required: bool = False


def parse_layer_spec(spec: str) -> Tuple[Box, str]:
    """Parse ``"left,top,width,height,url"`` as used by the ``layer`` query argument."""

    parts = spec.split(",", 4)
    if len(parts) != 5:
        raise ValueError(f"Expected 'left,top,width,height,url', got {spec!r}")
    left, top, width, height = (float(part) for part in parts[:4])
    return (left, top, width, height), parts[4]


class FrameCapture:
    def __init__(
        self,
        viewport: Tuple[int, int],
        background: Tuple[int, int, int] = (255, 255, 255),
    ) -> None:
        self.viewport = viewport
        self.background = background

    def capture_size(self, device_pixel_ratio: float) -> Tuple[int, int]:
        width, height = self.viewport
        return (
            max(1, int(width * device_pixel_ratio)),
            max(1, int(height * device_pixel_ratio)),
        )

    def capture(self, layers: Iterable[CaptureLayer], device_pixel_ratio: float = 1.0) -> PixelBuffer:
        """Compose ``layers`` over the background into a device-resolution frame.

        Optional layers are best-effort: one that fails to load or decode is
        logged and skipped, and the frame is still produced from the rest.
        A failing required layer raises :class:`CaptureError`.
        """

        size = self.capture_size(device_pixel_ratio)
        canvas = Image.new("RGBA", size, (*self.background, 255))

        for layer in layers:
            try:
                self._draw_layer(canvas, layer, device_pixel_ratio)
            except CaptureError as exc:
                if layer.required:
                    raise
                log.warning("Skipping capture layer %s: %s", layer.name, exc)

        return PixelBuffer.from_image(canvas)

    def _draw_layer(self, canvas: Image.Image, layer: CaptureLayer, dpr: float) -> None:
        try:
            img = layer.load().convert("RGBA")
        except CaptureError:
            raise
        except (OSError, ValueError) as exc:
            raise CaptureError(f"could not decode {layer.name}: {exc}") from exc

        if layer.box is None:
            left, top = 0, 0
            width, height = canvas.size
        else:
            box_left, box_top, box_width, box_height = layer.box
            left, top = int(box_left * dpr), int(box_top * dpr)
            width, height = int(box_width * dpr), int(box_height * dpr)

        if width <= 0 or height <= 0:
            raise CaptureError(f"{layer.name} has an empty box")

        if img.size != (width, height):
            img = img.resize((width, height), Image.NEAREST)
        # paste() clips at the canvas edge, so partially off-screen layers are fine
        canvas.paste(img, (left, top), img)
