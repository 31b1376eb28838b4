"""Infrastructure helpers for networking, caching and responses."""

from .cache import CACHE, ResponseCache, forget_last_good, last_good_png, remember_last_good
from .network import FETCHER, SourceFetcher
from .responses import encode_png, send_png, send_png_bytes

__all__ = [
    "CACHE",
    "ResponseCache",
    "forget_last_good",
    "last_good_png",
    "remember_last_good",
    "FETCHER",
    "SourceFetcher",
    "encode_png",
    "send_png",
    "send_png_bytes",
]
