from __future__ import annotations

import json
import logging
from collections.abc import Iterable

import httpx

from .http_client import Fetcher, is_http_url, is_navigation, resolve_url
from .store import CACHE_HIT_HEADER, CachedResponse, CacheStore, cache_key
from .tasks import BackgroundTasks

logger = logging.getLogger(__name__)

OFFLINE_ERROR = "Offline - resource not available"


def offline_response(request: httpx.Request | None = None) -> httpx.Response:
    body = json.dumps({"error": OFFLINE_ERROR, "offline": True}).encode("utf-8")
    return httpx.Response(
        503,
        headers={"Content-Type": "application/json", CACHE_HIT_HEADER: "offline"},
        content=body,
        request=request,
    )


class NetworkFirstInterceptor:
    """Network first, then the cache store, then a synthetic offline reply."""

    def __init__(
        self,
        store: CacheStore,
        fetcher: Fetcher,
        *,
        origin: str,
        tasks: BackgroundTasks,
        cacheable_methods: Iterable[str] = ("GET",),
    ) -> None:
        self.store = store
        self.fetcher = fetcher
        self.origin = origin
        self.tasks = tasks
        self.cacheable_methods = {m.upper() for m in cacheable_methods}
        self.shell_key = cache_key("GET", resolve_url(origin, "/"))

    def handle(self, request: httpx.Request) -> httpx.Response | None:
        """Return the response for ``request``, or None when it is not intercepted."""
        if not is_http_url(request.url):
            return None
        try:
            response = self.fetcher.fetch(request)
        except httpx.TransportError as exc:
            logger.info("network failed for %s %s: %s", request.method, request.url, exc)
            return self._fallback(request)
        if response.status_code == 200 and request.method.upper() in self.cacheable_methods:
            snapshot = CachedResponse.from_response(response, url=str(request.url))
            self.tasks.spawn("cache-put", self._write, request, snapshot)
        return response

    def _write(self, request: httpx.Request, snapshot: CachedResponse) -> None:
        try:
            self.store.put(request, snapshot)
        except Exception:
            logger.exception("cache write failed for %s %s", request.method, request.url)

    def _match(self, request: httpx.Request | None) -> CachedResponse | None:
        try:
            return self.store.match(request if request is not None else self.shell_key)
        except Exception:
            logger.exception("cache lookup failed")
            return None

    def _fallback(self, request: httpx.Request) -> httpx.Response:
        cached = self._match(request)
        if cached is not None:
            logger.debug("serving %s from cache", request.url)
            return cached.to_response(request)
        if is_navigation(request):
            shell = self._match(None)
            if shell is not None:
                logger.debug("serving app shell for %s", request.url)
                return shell.to_response(request)
            logger.warning("no cached app shell for navigation to %s", request.url)
        return offline_response(request)
