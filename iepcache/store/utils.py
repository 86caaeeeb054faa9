from __future__ import annotations

import datetime as dt
from collections.abc import Iterable, Mapping
from urllib.parse import urlsplit, urlunsplit

from .types import CacheKey

DEFAULT_PORTS = {"http": 80, "https": 443}

STORED_HEADERS = (
    "content-type",
    "content-language",
    "cache-control",
    "etag",
    "last-modified",
)


def now_iso() -> str:
    return dt.datetime.now(dt.UTC).isoformat()


def normalize_url(url: str) -> str:
    parts = urlsplit(str(url).strip())
    scheme = parts.scheme.lower()
    if not parts.hostname:
        raise ValueError("missing hostname")
    host = parts.hostname.lower()
    if ":" in host:
        host = f"[{host}]"
    port = parts.port
    netloc = host if port is None or DEFAULT_PORTS.get(scheme) == port else f"{host}:{port}"
    path = parts.path or "/"
    return urlunsplit((scheme, netloc, path, parts.query, ""))


def cache_key(method: str, url: str) -> CacheKey:
    return CacheKey(method=method.upper(), url=normalize_url(url))


def header_subset(
    headers: Mapping[str, str] | Iterable[tuple[str, str]],
    allowed: Iterable[str] = STORED_HEADERS,
) -> dict[str, str]:
    keep = {name.lower() for name in allowed}
    items = headers.items() if isinstance(headers, Mapping) else headers
    subset: dict[str, str] = {}
    for name, value in items:
        lowered = name.lower()
        if lowered in keep:
            subset[lowered] = value
    return subset
