from __future__ import annotations

import logging
import threading
from typing import Mapping, Optional, Tuple

from .config import RENDER_SETTING_NAMES, RenderSettings
from .errors import ConfigError, RenderError
from .processing.buffer import PixelBuffer
from .processing.geometry import FrameGeometry
from .processing.pipeline import run_pipeline

log = logging.getLogger("monoink.session")

# Block geometry is derived from these
_GEOMETRY_KEYS = ("pixel_density", "pixelation", "dither_density")


class InkSession:
    """Owns the render settings and the most recent overlay frame.

    The pipeline functions are pure; everything that outlives a single run
    (settings, the cached block geometry, the frame currently on display)
    lives here instead of in module globals.
    """

    def __init__(self, settings: Optional[RenderSettings] = None) -> None:
        self._settings = settings or RenderSettings()
        self._lock = threading.Lock()
        self._geometry: Optional[FrameGeometry] = None
        self._geometry_key: Optional[Tuple[Tuple[int, int], float]] = None
        self.overlay: Optional[PixelBuffer] = None
        self.last_error: Optional[RenderError] = None
        self.destroyed = False

    @property
    def settings(self) -> RenderSettings:
        with self._lock:
            return self._settings

    def geometry_for(self, capture_size: Tuple[int, int], device_pixel_ratio: float) -> FrameGeometry:
        with self._lock:
            return self._geometry_locked(self._settings, capture_size, device_pixel_ratio)

    def _geometry_locked(
        self, settings: RenderSettings, capture_size: Tuple[int, int], device_pixel_ratio: float
    ) -> FrameGeometry:
        key = (tuple(capture_size), float(device_pixel_ratio))
        if self._geometry is None or self._geometry_key != key:
            self._geometry = FrameGeometry.compute(capture_size, device_pixel_ratio, settings)
            self._geometry_key = key
        return self._geometry

    def _invalidate_geometry(self) -> None:
        self._geometry = None
        self._geometry_key = None

    def render(
        self,
        frame: PixelBuffer,
        device_pixel_ratio: float = 1.0,
        display_size: Optional[Tuple[int, int]] = None,
        settings: Optional[RenderSettings] = None,
    ) -> Optional[PixelBuffer]:
        """Run the pipeline over ``frame`` and publish the result as the overlay.

        ``settings`` may supply a one-off snapshot; otherwise the session's
        current settings are used. Returns ``None`` when nothing should be
        shown, either because no effect is enabled or because the run failed
        (see :attr:`last_error`). A failed run hides the overlay rather than
        leaving a stale or partial frame up.
        """

        if self.destroyed:
            return None

        with self._lock:
            current = self._settings
            if settings is None or settings == current:
                snapshot = current
                geometry = self._geometry_locked(current, frame.size, device_pixel_ratio)
            else:
                snapshot = settings
                geometry = FrameGeometry.compute(frame.size, device_pixel_ratio, settings)

        if not snapshot.has_effects:
            self.hide()
            return None

        try:
            result = run_pipeline(frame, snapshot, geometry, display_size)
        except RenderError as exc:
            log.exception("Render failed in %s stage", exc.stage)
            with self._lock:
                self.overlay = None
                self.last_error = exc
            return None

        with self._lock:
            self.overlay = result
            self.last_error = None
        return result

    def hide(self) -> None:
        """Drop the overlay without counting it as a failure."""

        with self._lock:
            self.overlay = None
            self.last_error = None

    def update_settings(self, changes: Mapping[str, object]) -> bool:
        """Apply ``changes`` atomically; return True if a re-render is needed.

        Unknown keys and invalid values raise :class:`ConfigError` and leave the
        current settings untouched.
        """

        if self.destroyed:
            return False

        unknown = set(changes) - set(RENDER_SETTING_NAMES)
        if unknown:
            raise ConfigError(f"Unknown render setting(s): {', '.join(sorted(unknown))}")

        with self._lock:
            before = self._settings
            after = before.updated(**changes)
            if after == before:
                return False
            self._settings = after
            if any(getattr(before, key) != getattr(after, key) for key in _GEOMETRY_KEYS):
                self._invalidate_geometry()

        log.info("Render settings updated: %s", ", ".join(sorted(changes)))
        return True

    def toggle_backlight(self) -> bool:
        if self.destroyed:
            return False
        with self._lock:
            self._settings = self._settings.updated(backlight=not self._settings.backlight)
            return self._settings.backlight

    def destroy(self) -> None:
        with self._lock:
            self.destroyed = True
            self.overlay = None
            self._invalidate_geometry()
