import io

import pytest
from PIL import Image

from monoink import session as session_module
from monoink.app import create_app, resolve_source_url
from monoink.capture import FrameCapture
from monoink.config import SETTINGS, RenderSettings
from monoink.errors import CaptureError, ConfigError, RenderError
from monoink.infrastructure.cache import ResponseCache, forget_last_good
from monoink.session import InkSession


class FakeFetcher:
    def __init__(self, color=(90, 90, 90), fail=False):
        self.color = color
        self.fail = fail
        self.urls = []

    def fetch_source(self, source_url=None):
        self.urls.append(source_url)
        if self.fail:
            raise CaptureError("source offline")
        return Image.new("RGBA", (2, 2), (*self.color, 255))


@pytest.fixture(autouse=True)
def no_last_good_frames():
    forget_last_good()
    yield
    forget_last_good()


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def session():
    return InkSession(RenderSettings.create(high_contrast=True))


@pytest.fixture
def cache():
    return ResponseCache(ttl=60)


@pytest.fixture
def client(session, fetcher, cache):
    app = create_app(
        session=session,
        fetcher=fetcher,
        capture=FrameCapture((4, 4)),
        cache=cache,
    )
    return app.test_client()


def _image(response):
    return Image.open(io.BytesIO(response.data)).convert("RGBA")


def test_resolve_source_url_defaults_to_settings() -> None:
    assert resolve_source_url({}) == SETTINGS.source_url


def test_resolve_source_url_accepts_direct_override() -> None:
    override = "http://example.com/image.png"
    assert resolve_source_url({"source_url": override}) == override


def test_resolve_source_url_swaps_host_and_path_but_keeps_query() -> None:
    args = {
        "source_url": "http://panel.local/render?viewport=800x480",
        "source_base": "http://foo:1234",
        "source_path": "abc/def.png",
    }

    assert resolve_source_url(args) == "http://foo:1234/abc/def.png?viewport=800x480"


def test_resolve_source_url_normalizes_slashes() -> None:
    args = {
        "source_url": "http://panel.local/render",
        "source_base": "http://foo:1234/",
        "source_path": "/abc/def.png",
    }

    assert resolve_source_url(args) == "http://foo:1234/abc/def.png"


def test_resolve_source_url_rejects_invalid_base() -> None:
    with pytest.raises(ConfigError, match="not-a-url"):
        resolve_source_url({"source_base": "not-a-url"})


def test_source_params_are_merged_into_source_query(client, fetcher):
    response = client.get(
        "/raw?source_url=http://panel.local/render?viewport%3D800x480%26theme%3Dlight"
        "&source_param=theme=dark&source_param=viewport"
    )

    assert response.status_code == 200
    assert fetcher.urls == ["http://panel.local/render?theme=dark"]


def test_invalid_source_arguments_are_bad_requests(client, fetcher):
    assert client.get("/ink-image?source_base=not-a-url").status_code == 400
    assert client.get("/raw?source_base=not-a-url").status_code == 400
    assert client.get("/ink-image?source_param==dark").status_code == 400
    assert fetcher.urls == []


def test_ink_image_renders_png(client, session):
    response = client.get("/ink-image")

    assert response.status_code == 200
    assert response.mimetype == "image/png"
    img = _image(response)
    assert img.size == (4, 4)
    assert img.getpixel((0, 0)) == (0, 0, 0, 255)
    assert session.overlay is not None


def test_ink_image_with_no_effects_is_suppressed(client, session):
    response = client.get("/ink-image?high_contrast=0")

    assert response.status_code == 204
    assert session.overlay is None


def test_ink_image_applies_query_overrides_once(client, session):
    response = client.get("/ink-image?backlight=1&backlight_color=10,20,30&high_contrast=0")

    assert response.status_code == 200
    assert _image(response).getpixel((1, 1)) == (10, 20, 30, 255)
    assert session.settings.backlight is False


def test_ink_image_rejects_bad_query_values(client):
    assert client.get("/ink-image?pixel_density=-3").status_code == 400
    assert client.get("/ink-image?dithering=maybe").status_code == 400
    assert client.get("/ink-image?dpr=zero").status_code == 400


def test_source_outage_serves_last_good_frame(client, fetcher, cache):
    good = client.get("/ink-image")
    assert _image(good).getpixel((0, 0)) == (0, 0, 0, 255)

    cache.clear()
    fetcher.fail = True
    outage = client.get("/ink-image")

    assert outage.status_code == 200
    assert outage.data == good.data

    # the outage response is neither cached nor remembered
    fetcher.fail = False
    fetcher.color = (200, 200, 200)
    recovered = client.get("/ink-image")
    assert _image(recovered).getpixel((0, 0)) == (255, 255, 255, 255)
    assert len(fetcher.urls) == 3


def test_source_outage_without_fallback_returns_500(session):
    app = create_app(
        session=session,
        fetcher=FakeFetcher(fail=True),
        capture=FrameCapture((2, 2), background=(255, 255, 255)),
        cache=ResponseCache(ttl=60),
    )

    response = app.test_client().get("/ink-image")

    assert response.status_code == 500
    assert b"source offline" in response.data


def test_last_good_frame_is_not_shared_across_sources(client, fetcher):
    assert client.get("/ink-image").status_code == 200

    fetcher.fail = True
    response = client.get("/ink-image?source_url=http://other.local/render")

    assert response.status_code == 500


def test_failed_extra_layer_is_skipped(client, fetcher):
    calls = []

    def fetch_source(source_url=None):
        calls.append(source_url)
        if source_url == "http://broken.local/a.png":
            raise CaptureError("layer offline")
        return Image.new("RGBA", (2, 2), (90, 90, 90, 255))

    fetcher.fetch_source = fetch_source
    response = client.get("/ink-image?layer=0,0,2,2,http://broken.local/a.png")

    assert response.status_code == 200
    assert _image(response).getpixel((0, 0)) == (0, 0, 0, 255)
    assert calls[-1] == "http://broken.local/a.png"


def test_raw_returns_500_when_source_fails(session):
    app = create_app(
        session=session,
        fetcher=FakeFetcher(fail=True),
        capture=FrameCapture((2, 2)),
        cache=ResponseCache(ttl=60),
    )

    response = app.test_client().get("/raw")

    assert response.status_code == 500
    assert b"source offline" in response.data


def test_render_failure_without_fallback_returns_500(client, monkeypatch):
    def failing_pipeline(*args, **kwargs):
        raise RenderError("dither")

    monkeypatch.setattr(session_module, "run_pipeline", failing_pipeline)

    response = client.get("/ink-image")

    assert response.status_code == 500
    assert b"dither" in response.data


def test_render_failure_serves_last_good_frame(client, cache, monkeypatch):
    good = client.get("/ink-image")
    cache.clear()

    def failing_pipeline(*args, **kwargs):
        raise RenderError("backlight")

    monkeypatch.setattr(session_module, "run_pipeline", failing_pipeline)

    response = client.get("/ink-image")

    assert response.status_code == 200
    assert response.data == good.data


def test_repeated_requests_are_served_from_cache(client, fetcher):
    first = client.get("/ink-image")
    second = client.get("/ink-image")

    assert first.data == second.data
    assert len(fetcher.urls) == 1


def test_raw_returns_unprocessed_capture(client):
    response = client.get("/raw")

    assert response.status_code == 200
    assert _image(response).getpixel((0, 0)) == (90, 90, 90, 255)


def test_settings_get_returns_current_values(client):
    payload = client.get("/settings").get_json()

    assert payload["high_contrast"] is True
    assert payload["backlight_color"] == {"r": 255, "g": 165, "b": 0}


def test_settings_patch_updates_session(client, session):
    response = client.patch("/settings", json={"pixelation": True, "pixel_density": "8"})

    assert response.status_code == 200
    body = response.get_json()
    assert body["errors"] == {}
    assert body["settings"]["pixel_density"] == 8.0
    assert session.settings.pixelation is True


def test_settings_patch_rejects_invalid_values_atomically(client, session):
    before = session.settings

    response = client.patch(
        "/settings", json={"dithering": True, "dither_density": 0, "target": "body"}
    )

    assert response.status_code == 400
    errors = response.get_json()["errors"]
    assert set(errors) == {"dither_density", "target"}
    assert session.settings == before


def test_backlight_toggle(client, session):
    response = client.post("/backlight/toggle")

    assert response.get_json() == {"backlight": True}
    assert session.settings.backlight is True


def test_health_and_index(client):
    health = client.get("/health").get_json()
    assert health["ok"] is True
    assert health["effects"] is True

    index = client.get("/")
    assert index.status_code == 200
    assert b"/ink-image" in index.data
