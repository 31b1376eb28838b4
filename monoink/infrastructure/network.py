from __future__ import annotations

import io
import logging
import posixpath
import time
from typing import Callable, Mapping
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import requests
from PIL import Image

from ..config import SETTINGS
from ..errors import CaptureError

log = logging.getLogger("monoink.network")

SessionFactory = Callable[[], requests.Session]
USER_AGENT = "monoink-proxy/1.0"


def _merge_query_params(url: str, overrides: Mapping[str, str | None] | None) -> str:
    """Return ``url`` with ``overrides`` merged into its query string.

    A ``None`` value drops that key. Values are passed through as opaque
    strings.
    """

    if not overrides:
        return url

    parts = urlsplit(url)
    query = dict(parse_qsl(parts.query, keep_blank_values=True))
    for key, value in overrides.items():
        if value is None:
            query.pop(key, None)
        else:
            query[key] = value
    return urlunsplit(parts._replace(query=urlencode(query, doseq=True)))


def _join_relative(base_path: str, relative: str) -> str:
    base = base_path if base_path.endswith("/") else f"{base_path or ''}/"
    joined = posixpath.normpath(f"{base}{relative}")
    return joined if joined.startswith("/") else f"/{joined}"


def _apply_base_and_path(
    url: str,
    *,
    base_url: str | None = None,
    path_override: str | None = None,
) -> str:
    """Swap the scheme/host (``base_url``) and/or path of ``url``.

    Relative override paths are resolved against the base's path; the query
    and fragment of ``url`` are always kept.
    """

    if not base_url and path_override is None:
        return url

    parts = urlsplit(url)
    path = parts.path if path_override is None else path_override

    if not base_url:
        return urlunsplit(parts._replace(path=path))

    base = urlsplit(base_url)
    if not base.scheme or not base.netloc:
        raise ValueError(f"Invalid source_base override: {base_url}")

    if path and not path.startswith("/"):
        path = _join_relative(base.path or "/", path)
    elif not path:
        path = base.path

    return urlunsplit(base._replace(path=path or "", query=parts.query, fragment=parts.fragment))


class SourceFetcher:
    def __init__(
        self,
        session_factory: SessionFactory | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._session_factory = session_factory or requests.Session
        self._session = self._create_session()
        self._sleep = sleep

    def _create_session(self) -> requests.Session:
        session = self._session_factory()
        session.headers.update({"User-Agent": USER_AGENT})
        return session

    def fetch_source(self, *, source_url: str | None = None) -> Image.Image:
        target_url = source_url or SETTINGS.source_url

        last_exception: Exception | None = None
        attempts = SETTINGS.retries + 1
        for attempt in range(1, attempts + 1):
            try:
                response = self._session.get(target_url, timeout=SETTINGS.timeout)
                response.raise_for_status()
                return Image.open(io.BytesIO(response.content)).convert("RGBA")
            except (requests.RequestException, OSError) as exc:
                last_exception = exc
                log.debug("Fetch attempt %d/%d for %s failed: %s", attempt, attempts, target_url, exc)
                if attempt < attempts:
                    self._sleep(0.4 * attempt)
        raise CaptureError(f"Could not fetch {target_url}: {last_exception}") from last_exception


FETCHER = SourceFetcher()
