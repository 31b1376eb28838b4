from __future__ import annotations

import json
import logging
from dataclasses import asdict
from html import escape
from string import Template
from typing import Dict, List, Mapping, Optional

from flask import Flask, jsonify, request

from .capture import CaptureLayer, FrameCapture, parse_layer_spec
from .config import RENDER_SETTING_NAMES, SETTINGS, RenderSettings, configure_logging
from .errors import CaptureError, ConfigError
from .infrastructure.cache import CACHE, ResponseCache, last_good_png, remember_last_good
from .infrastructure.network import FETCHER, SourceFetcher, _apply_base_and_path, _merge_query_params
from .infrastructure.responses import encode_png, send_png, send_png_bytes
from .session import InkSession

APP_VERSION = "1.0.0"

log = logging.getLogger("monoink.app")

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}
_FLAG_NAMES = ("pixelation", "dithering", "high_contrast", "backlight")
_DENSITY_NAMES = ("pixel_density", "dither_density")

_INDEX_TEMPLATE = Template(
    """<!doctype html>
<html>
<head><meta charset="utf-8"><title>MonoInk Proxy $APP_VERSION</title></head>
<body>
<h1>MonoInk Proxy <small>$APP_VERSION</small></h1>
<ul>
$endpoint_items
</ul>
<h2>Current settings</h2>
<pre>$settings_json</pre>
</body>
</html>
"""
)


def _query_overrides(args) -> Dict[str, Optional[str]]:
    """Collect repeated ``source_param=key=value`` arguments; a bare ``key`` drops it."""

    specs = args.getlist("source_param") if hasattr(args, "getlist") else []
    overrides: Dict[str, Optional[str]] = {}
    for spec in specs:
        key, sep, value = spec.partition("=")
        if not key:
            raise ConfigError(f"source_param must be 'key=value' or 'key', got {spec!r}")
        overrides[key] = value if sep else None
    return overrides


def resolve_source_url(args: Mapping[str, str]) -> str:
    """Build the source URL for a request.

    ``source_url`` replaces the configured URL outright. ``source_base`` and
    ``source_path`` then swap its host and path while keeping its query, and
    ``source_param`` entries are merged into that query last.
    """

    source_url = args.get("source_url") or SETTINGS.source_url
    try:
        url = _apply_base_and_path(
            source_url,
            base_url=args.get("source_base") or None,
            path_override=args.get("source_path") or None,
        )
    except ValueError as exc:
        raise ConfigError(str(exc)) from exc
    return _merge_query_params(url, _query_overrides(args))


def _coerce_setting(name: str, raw: object) -> object:
    if name in _FLAG_NAMES:
        if isinstance(raw, bool):
            return raw
        text = str(raw).strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
        raise ConfigError(f"{name} must be a boolean")
    if name in _DENSITY_NAMES and isinstance(raw, str):
        try:
            return float(raw)
        except ValueError as exc:
            raise ConfigError(f"{name} must be a positive number") from exc
    if name == "backlight_color" and isinstance(raw, str):
        parts = raw.split(",")
        if len(parts) != 3:
            raise ConfigError("backlight_color must be 'r,g,b'")
        try:
            return tuple(float(part) for part in parts)
        except ValueError as exc:
            raise ConfigError("backlight_color must be 'r,g,b'") from exc
    return raw


def _validate_changes(base: RenderSettings, payload: Mapping[str, object]):
    """Split ``payload`` into coerced values and per-field error messages."""

    applied: Dict[str, object] = {}
    errors: Dict[str, str] = {}
    for name, raw in payload.items():
        if name not in RENDER_SETTING_NAMES:
            errors[name] = "Unknown setting"
            continue
        try:
            value = _coerce_setting(name, raw)
            base.updated(**{name: value})
        except ConfigError as exc:
            errors[name] = str(exc)
            continue
        applied[name] = value
    return applied, errors


def _settings_payload(settings: RenderSettings) -> Dict[str, object]:
    payload = asdict(settings)
    r, g, b = settings.backlight_color
    payload["backlight_color"] = {"r": r, "g": g, "b": b}
    return payload


def _layers_from_args(fetcher: SourceFetcher, source_url: str, args) -> List[CaptureLayer]:
    layers = [
        CaptureLayer(
            load=lambda: fetcher.fetch_source(source_url=source_url),
            name="source",
            required=True,
        )
    ]
    for spec in args.getlist("layer"):
        try:
            box, url = parse_layer_spec(spec)
        except ValueError as exc:
            raise ConfigError(str(exc)) from exc
        layers.append(
            CaptureLayer(load=lambda url=url: fetcher.fetch_source(source_url=url), box=box, name=url)
        )
    return layers


def _device_pixel_ratio(args) -> float:
    raw = args.get("dpr")
    if raw is None:
        return SETTINGS.device_pixel_ratio
    try:
        dpr = float(raw)
    except ValueError as exc:
        raise ConfigError("dpr must be a number") from exc
    if not dpr > 0:
        raise ConfigError("dpr must be positive")
    return dpr


def create_app(
    session: Optional[InkSession] = None,
    fetcher: Optional[SourceFetcher] = None,
    capture: Optional[FrameCapture] = None,
    cache: Optional[ResponseCache] = None,
) -> Flask:
    configure_logging()
    app = Flask(__name__)

    session = session or InkSession(RenderSettings.from_env())
    fetcher = fetcher or FETCHER
    capture = capture or FrameCapture(SETTINGS.viewport, SETTINGS.background_color)
    cache = cache if cache is not None else CACHE
    app.config["INK_SESSION"] = session

    def serve_fallback(key: str, reason: str):
        fallback = last_good_png(key)
        if fallback:
            log.warning("Serving last good frame instead of: %s", reason)
            return send_png_bytes(fallback)
        return (reason, 500)

    @app.errorhandler(ConfigError)
    def config_error(exc: ConfigError):
        return jsonify(error=str(exc)), 400

    @app.route("/ink-image")
    def ink_image():
        args = request.args
        dpr = _device_pixel_ratio(args)
        overrides, errors = _validate_changes(
            session.settings,
            {name: args[name] for name in RENDER_SETTING_NAMES if name in args},
        )
        if errors:
            return jsonify(errors=errors), 400
        snapshot = session.settings.updated(**overrides)
        if not snapshot.has_effects:
            session.hide()
            return ("", 204)

        source_url = resolve_source_url(args)
        layers = _layers_from_args(fetcher, source_url, args)
        key = "|".join([source_url, repr(dpr), *args.getlist("layer"), repr(snapshot)])
        cached = cache.get(key)
        if cached:
            return send_png_bytes(cached)

        try:
            frame = capture.capture(layers, dpr)
        except CaptureError as exc:
            log.error("Source capture failed: %s", exc)
            return serve_fallback(key, f"Source Error: {exc}")

        out = session.render(frame, dpr, settings=snapshot)
        if out is None:
            if session.last_error is None:
                return ("", 204)
            return serve_fallback(key, f"Render Error: {session.last_error}")

        data = encode_png(out.to_image())
        remember_last_good(key, data)
        cache.put(key, data)
        return send_png_bytes(data)

    @app.route("/raw")
    def raw():
        args = request.args
        dpr = _device_pixel_ratio(args)
        layers = _layers_from_args(fetcher, resolve_source_url(args), args)
        try:
            frame = capture.capture(layers, dpr)
        except CaptureError as exc:
            log.error("Source capture failed: %s", exc)
            return (f"Source Error: {exc}", 500)
        return send_png(frame.to_image())

    @app.route("/health")
    def health():
        settings = session.settings
        return jsonify(
            ok=True,
            version=APP_VERSION,
            effects=settings.has_effects,
            pixelation=settings.pixelation,
            dithering=settings.dithering,
            high_contrast=settings.high_contrast,
            backlight=settings.backlight,
            last_error=str(session.last_error) if session.last_error else None,
        )

    @app.route("/settings", methods=["GET", "PATCH"])
    def settings_view():
        if request.method == "GET":
            return jsonify(_settings_payload(session.settings))

        payload = request.get_json(silent=True) or {}
        if not isinstance(payload, dict):
            return jsonify(updated={}, errors={"_": "Expected a JSON object"}), 400

        applied, errors = _validate_changes(session.settings, payload)
        if errors:
            return (
                jsonify(updated={}, errors=errors, settings=_settings_payload(session.settings)),
                400,
            )

        changed = session.update_settings(applied)
        if changed:
            cache.clear()
        return jsonify(
            updated=applied if changed else {},
            errors={},
            settings=_settings_payload(session.settings),
        )

    @app.route("/backlight/toggle", methods=["POST"])
    def toggle_backlight():
        enabled = session.toggle_backlight()
        cache.clear()
        return jsonify(backlight=enabled)

    @app.route("/")
    def index():
        endpoints = [
            ("/ink-image", "Rendered ink frame (PNG, 204 when all effects are off)"),
            ("/ink-image?pixelation=1&dithering=1", "Pixelated, block-dithered"),
            ("/ink-image?dithering=1&backlight=1", "Dithered with backlight"),
            ("/raw", "Captured source frame"),
            ("/settings", "Render settings (GET / PATCH)"),
            ("/health", "Service health"),
        ]
        items = "\n".join(
            f'<li><a href="{escape(href)}">{escape(href)}</a> {escape(desc)}</li>'
            for href, desc in endpoints
        )
        return _INDEX_TEMPLATE.substitute(
            APP_VERSION=APP_VERSION,
            endpoint_items=items,
            settings_json=escape(json.dumps(_settings_payload(session.settings), indent=2)),
        )

    return app


# Expose a module-level Flask application for Gunicorn import paths like ``monoink.app:app``
# and provide a conventional ``application`` alias for WSGI servers that default to that name.
app = create_app()
application = app
