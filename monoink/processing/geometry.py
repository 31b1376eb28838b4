from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Tuple

from ..config import RenderSettings
from ..errors import ConfigError


def round_half_up(value: float) -> int:
    # Browser Math.round semantics; Python's round() goes to even on .5
    return int(math.floor(value + 0.5))


@dataclass(frozen=True)
class FrameGeometry:
    capture_size: Tuple[int, int]
    process_size: Tuple[int, int]
    physical_pixel_density: int
    subdivisions: int

    @classmethod
    def compute(
        cls,
        capture_size: Tuple[int, int],
        device_pixel_ratio: float,
        settings: RenderSettings,
    ) -> "FrameGeometry":
        if device_pixel_ratio <= 0:
            raise ConfigError("device_pixel_ratio must be positive")

        capture_w, capture_h = capture_size
        physical = max(1, round_half_up(settings.pixel_density * device_pixel_ratio))
        if settings.pixelation:
            process_size = (max(1, capture_w // physical), max(1, capture_h // physical))
        else:
            process_size = (capture_w, capture_h)
        subdivisions = max(1, round_half_up(physical / settings.dither_density))
        return cls(
            capture_size=(capture_w, capture_h),
            process_size=process_size,
            physical_pixel_density=physical,
            subdivisions=subdivisions,
        )
