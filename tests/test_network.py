"""Tests for the network helper utilities."""

import io
from dataclasses import replace

import pytest
import requests
from PIL import Image

from monoink.errors import CaptureError
from monoink.infrastructure import network
from monoink.infrastructure.network import (
    SourceFetcher,
    _apply_base_and_path,
    _merge_query_params,
)


def test_merge_query_params_no_overrides():
    url = "http://example.com/render?dashboard=main"
    assert _merge_query_params(url, None) == url


def test_merge_query_params_overrides_existing_values():
    url = "http://example.com/render?dashboard=main&puppet=default"
    merged = _merge_query_params(url, {"dashboard": "kitchen", "puppet": "night"})
    assert merged == "http://example.com/render?dashboard=kitchen&puppet=night"


def test_merge_query_params_adds_new_keys_and_removes_none_values():
    url = "http://example.com/render"
    merged = _merge_query_params(url, {"dashboard": "office", "puppet": None, "theme": "dark"})
    assert merged == "http://example.com/render?dashboard=office&theme=dark"


@pytest.mark.parametrize(
    "base_url, path_override, expected",
    [
        ("https://override.local:8123", None, "https://override.local:8123/render?dashboard=main"),
        ("https://override.local:8123/base", "night", "https://override.local:8123/base/night?dashboard=main"),
        ("https://override.local:8123/base/", "night", "https://override.local:8123/base/night?dashboard=main"),
        ("https://override.local:8123/base", "/alt/path", "https://override.local:8123/alt/path?dashboard=main"),
    ],
)
def test_apply_base_and_path(base_url, path_override, expected):
    url = "http://default/render?dashboard=main"
    assert _apply_base_and_path(url, base_url=base_url, path_override=path_override) == expected


def test_apply_base_and_path_with_path_override_only():
    url = "http://default/render?dashboard=main"
    assert _apply_base_and_path(url, path_override="alt") == "http://default/alt?dashboard=main"


def test_apply_base_and_path_rejects_invalid_base():
    with pytest.raises(ValueError):
        _apply_base_and_path("http://default/render?dashboard=main", base_url="not-a-valid-base")


def _png_bytes(color=(1, 2, 3)):
    buffer = io.BytesIO()
    Image.new("RGB", (2, 2), color).save(buffer, "PNG")
    return buffer.getvalue()


class FakeResponse:
    def __init__(self, content):
        self.content = content

    def raise_for_status(self):
        return None


class FakeSession:
    def __init__(self, outcomes):
        self.headers = {}
        self.outcomes = list(outcomes)
        self.calls = []

    def get(self, url, timeout=None):
        self.calls.append(url)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return FakeResponse(outcome)


@pytest.fixture
def two_retries(monkeypatch):
    monkeypatch.setattr(network, "SETTINGS", replace(network.SETTINGS, retries=2, timeout=1.0))


def test_fetch_source_returns_rgba_image(two_retries):
    session = FakeSession([_png_bytes((9, 8, 7))])
    fetcher = SourceFetcher(session_factory=lambda: session, sleep=lambda _: None)

    img = fetcher.fetch_source(source_url="http://example.com/a.png?v=2")

    assert img.mode == "RGBA"
    assert img.getpixel((0, 0)) == (9, 8, 7, 255)
    assert session.calls == ["http://example.com/a.png?v=2"]
    assert session.headers["User-Agent"].startswith("monoink-proxy")


def test_fetch_source_retries_then_succeeds(two_retries):
    session = FakeSession([requests.ConnectionError("down"), _png_bytes()])
    sleeps = []
    fetcher = SourceFetcher(session_factory=lambda: session, sleep=sleeps.append)

    fetcher.fetch_source(source_url="http://example.com/a.png")

    assert sleeps == [0.4]
    assert len(session.calls) == 2


def test_fetch_source_raises_capture_error_when_exhausted(two_retries):
    session = FakeSession([requests.ConnectionError("down")] * 3)
    sleeps = []
    fetcher = SourceFetcher(session_factory=lambda: session, sleep=sleeps.append)

    with pytest.raises(CaptureError) as excinfo:
        fetcher.fetch_source(source_url="http://example.com/a.png")

    assert sleeps == [0.4, 0.8]
    assert isinstance(excinfo.value.__cause__, requests.ConnectionError)


def test_undecodable_payload_is_a_capture_error(two_retries):
    session = FakeSession([b"not an image"] * 3)
    fetcher = SourceFetcher(session_factory=lambda: session, sleep=lambda _: None)

    with pytest.raises(CaptureError):
        fetcher.fetch_source(source_url="http://example.com/a.png")
