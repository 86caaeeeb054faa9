from __future__ import annotations

from dataclasses import dataclass, field
from typing import TypedDict

import httpx

CACHE_HIT_HEADER = "x-iepcache"


@dataclass(frozen=True)
class CacheKey:
    method: str
    url: str


@dataclass
class CachedResponse:
    """A response captured as a single unit: status, header subset and body."""

    status: int
    headers: dict[str, str]
    body: bytes
    url: str
    stored_at: str = ""

    @classmethod
    def from_response(cls, response: httpx.Response, *, url: str) -> CachedResponse:
        from .utils import header_subset

        return cls(
            status=response.status_code,
            headers=header_subset(response.headers.multi_items()),
            body=response.content,
            url=url,
        )

    def to_response(self, request: httpx.Request | None = None) -> httpx.Response:
        headers = {**self.headers, CACHE_HIT_HEADER: "hit"}
        return httpx.Response(self.status, headers=headers, content=self.body, request=request)


@dataclass
class PendingAction:
    id: int
    tag: str
    namespace: str
    method: str
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes | None = None
    enqueued_at: str = ""

    def to_request(self) -> httpx.Request:
        return httpx.Request(self.method, self.url, headers=self.headers, content=self.body)


class SyncAttempt(TypedDict):
    id: int
    tag: str
    started_at: str
    finished_at: str | None
    ok: bool
    attempted: int
    synced: int
    failed: int
    error: str | None
