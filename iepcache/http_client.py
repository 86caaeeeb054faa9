from __future__ import annotations

import json
from typing import Any
from urllib.parse import urljoin, urlparse

import httpx

NAVIGATE = "navigate"


def build_base_url(address: str) -> str:
    trimmed = address.strip().rstrip("/")
    if not trimmed:
        return ""
    if "://" in trimmed:
        return trimmed
    return f"http://{trimmed}"


def resolve_url(origin: str, url: str) -> str:
    """Resolve a manifest path or relative URL against the origin."""
    base = build_base_url(origin)
    if urlparse(url).scheme:
        return url
    return urljoin(f"{base}/", url.lstrip("/"))


def is_http_url(url: str | httpx.URL) -> bool:
    return str(url).startswith(("http://", "https://"))


def make_request(
    method: str,
    url: str,
    *,
    headers: dict[str, str] | None = None,
    content: bytes | None = None,
    json_body: Any = None,
    navigate: bool = False,
) -> httpx.Request:
    if json_body is not None and content is None:
        content = json.dumps(json_body, ensure_ascii=False).encode("utf-8")
        headers = {"Content-Type": "application/json", **(headers or {})}
    extensions = {"mode": NAVIGATE} if navigate else {}
    return httpx.Request(
        method.upper(), url, headers=headers, content=content, extensions=extensions
    )


def is_navigation(request: httpx.Request) -> bool:
    return request.extensions.get("mode") == NAVIGATE


class Fetcher:
    """Blocking network access shared by the interceptor and the reconciler."""

    def __init__(
        self,
        *,
        timeout_s: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.timeout = httpx.Timeout(timeout_s)
        self._client = httpx.Client(transport=transport, timeout=self.timeout)

    def fetch(self, request: httpx.Request) -> httpx.Response:
        # Requests built outside the client carry no timeout of their own.
        if "timeout" not in request.extensions:
            request.extensions = {**request.extensions, "timeout": self.timeout.as_dict()}
        return self._client.send(request)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> Fetcher:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
