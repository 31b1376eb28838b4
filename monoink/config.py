import logging
import math
import os
from dataclasses import dataclass, replace
from numbers import Real
from typing import Mapping, Tuple

from .errors import ConfigError


RGB = Tuple[int, int, int]

PIXEL_DENSITY_RANGE = (1.0, 100.0)
DITHER_DENSITY_RANGE = (1.0, 10.0)


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


def _parse_rgb(raw: str) -> RGB:
    parts = [part.strip() for part in raw.split(",")]
    if len(parts) != 3:
        raise ConfigError(f"Expected 'r,g,b', got {raw!r}")
    try:
        r, g, b = (int(part) for part in parts)
    except ValueError as exc:
        raise ConfigError(f"Expected 'r,g,b', got {raw!r}") from exc
    return (r, g, b)


def _parse_viewport(raw: str) -> Tuple[int, int]:
    width, _, height = raw.lower().partition("x")
    try:
        size = (int(width), int(height))
    except ValueError as exc:
        raise ConfigError(f"Expected 'WIDTHxHEIGHT', got {raw!r}") from exc
    if size[0] < 1 or size[1] < 1:
        raise ConfigError(f"Viewport must be at least 1x1, got {raw!r}")
    return size


@dataclass(frozen=True)
class ServiceSettings:
    source_url: str
    port: int
    timeout: float
    retries: int
    cache_ttl: float
    log_level: str
    viewport: Tuple[int, int]
    device_pixel_ratio: float
    background_color: RGB

    @classmethod
    def from_env(cls) -> "ServiceSettings":
        return cls(
            source_url=os.getenv(
                "SOURCE_URL",
                "http://192.168.1.199:10000/lovelace-main/einkpanel?viewport=800x480",
            ),
            port=int(os.getenv("PORT", "5500")),
            timeout=float(os.getenv("SOURCE_TIMEOUT", "10.0")),
            retries=int(os.getenv("SOURCE_RETRIES", "2")),
            cache_ttl=float(os.getenv("CACHE_TTL", "5")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            viewport=_parse_viewport(os.getenv("VIEWPORT", "800x480")),
            device_pixel_ratio=float(os.getenv("DEVICE_PIXEL_RATIO", "1.0")),
            background_color=_parse_rgb(os.getenv("BACKGROUND_COLOR", "255,255,255")),
        )


def _positive_density(name: str, value: object, bounds: Tuple[float, float]) -> float:
    # bool is a Real subclass, but True is not a density
    if isinstance(value, bool) or not isinstance(value, Real):
        raise ConfigError(f"{name} must be a positive number")
    value = float(value)
    if not math.isfinite(value) or value <= 0:
        raise ConfigError(f"{name} must be a positive number")
    low, high = bounds
    return max(low, min(value, high))


def _channel(name: str, value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, Real):
        raise ConfigError("backlight_color must have numeric r, g, b channels")
    if not math.isfinite(float(value)):
        raise ConfigError(f"backlight_color.{name} must be finite")
    return max(0, min(255, int(math.floor(float(value) + 0.5))))


def _coerce_color(value: object) -> RGB:
    if isinstance(value, Mapping):
        try:
            channels = (value["r"], value["g"], value["b"])
        except KeyError as exc:
            raise ConfigError("backlight_color must have r, g, b properties") from exc
    elif isinstance(value, (tuple, list)) and len(value) == 3:
        channels = tuple(value)
    else:
        raise ConfigError("backlight_color must be an {r, g, b} mapping or a 3-sequence")
    return tuple(_channel(name, channel) for name, channel in zip("rgb", channels))  # type: ignore[return-value]


@dataclass(frozen=True)
class RenderSettings:
    """Effect toggles and densities for one pipeline run.

    Instances are immutable; a run always sees a single consistent snapshot.
    Use :meth:`create` or :meth:`updated` rather than the raw constructor so
    that values are validated and clamped.
    """

    pixel_density: float = 4.0
    dither_density: float = 2.0
    pixelation: bool = False
    dithering: bool = False
    high_contrast: bool = True
    backlight: bool = False
    backlight_color: RGB = (255, 165, 0)

    @classmethod
    def create(cls, **values: object) -> "RenderSettings":
        return cls().updated(**values)

    @classmethod
    def from_env(cls) -> "RenderSettings":
        return cls.create(
            pixel_density=float(os.getenv("PIXEL_DENSITY", "4")),
            dither_density=float(os.getenv("DITHER_DENSITY", "2")),
            pixelation=_env_flag("PIXELATION", "false"),
            dithering=_env_flag("DITHERING", "false"),
            high_contrast=_env_flag("HIGH_CONTRAST", "true"),
            backlight=_env_flag("BACKLIGHT", "false"),
            backlight_color=_parse_rgb(os.getenv("BACKLIGHT_COLOR", "255,165,0")),
        )

    def updated(self, **changes: object) -> "RenderSettings":
        unknown = set(changes) - set(RENDER_SETTING_NAMES)
        if unknown:
            raise ConfigError(f"Unknown render setting(s): {', '.join(sorted(unknown))}")

        coerced: dict = {}
        for name, value in changes.items():
            if name == "pixel_density":
                coerced[name] = _positive_density(name, value, PIXEL_DENSITY_RANGE)
            elif name == "dither_density":
                coerced[name] = _positive_density(name, value, DITHER_DENSITY_RANGE)
            elif name == "backlight_color":
                coerced[name] = _coerce_color(value)
            else:
                if not isinstance(value, bool):
                    raise ConfigError(f"{name} must be a boolean")
                coerced[name] = value
        return replace(self, **coerced)

    @property
    def has_effects(self) -> bool:
        return self.pixelation or self.dithering or self.high_contrast or self.backlight


RENDER_SETTING_NAMES = (
    "pixel_density",
    "dither_density",
    "pixelation",
    "dithering",
    "high_contrast",
    "backlight",
    "backlight_color",
)


SETTINGS = ServiceSettings.from_env()


def configure_logging() -> logging.Logger:
    logging.basicConfig(level=SETTINGS.log_level)
    return logging.getLogger("monoink")
