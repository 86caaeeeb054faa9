from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import httpx
import pytest

from iepcache.config import CONFIG_ENV_OVERRIDES, OfflineCacheConfig
from iepcache.worker import OfflineWorker

ORIGIN = "http://app.test"


class FakeOrigin:
    """Programmable upstream behind an httpx.MockTransport."""

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], tuple[int, bytes, dict[str, str]]] = {}
        self.offline = False
        self.down_paths: set[str] = set()
        self.requests: list[httpx.Request] = []

    def route(
        self,
        method: str,
        path: str,
        *,
        status: int = 200,
        body: bytes | str = b"",
        content_type: str = "text/plain",
    ) -> None:
        raw = body.encode("utf-8") if isinstance(body, str) else body
        self.routes[(method.upper(), path)] = (status, raw, {"Content-Type": content_type})

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.offline or request.url.path in self.down_paths:
            raise httpx.ConnectError("network unreachable", request=request)
        key = (request.method, request.url.path)
        if key not in self.routes:
            return httpx.Response(404, json={"error": "not_found"})
        status, body, headers = self.routes[key]
        return httpx.Response(status, content=body, headers=headers)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    for env_var in CONFIG_ENV_OVERRIDES.values():
        monkeypatch.delenv(env_var, raising=False)
    monkeypatch.setenv("IEPCACHE_CONFIG", str(tmp_path / "missing-config.json"))


@pytest.fixture
def origin() -> FakeOrigin:
    fake = FakeOrigin()
    fake.route("GET", "/", body="<html>shell</html>", content_type="text/html")
    fake.route("GET", "/dashboard", body="<html>dashboard</html>", content_type="text/html")
    fake.route("GET", "/static/js/bundle.js", body="console.log(1)", content_type="text/javascript")
    return fake


@pytest.fixture
def config(tmp_path: Path) -> OfflineCacheConfig:
    return OfflineCacheConfig(
        origin=ORIGIN,
        cache_version="v1",
        install_manifest=["/", "/dashboard", "/static/js/bundle.js"],
        db_path=str(tmp_path / "cache.sqlite"),
    )


@pytest.fixture
def worker(config: OfflineCacheConfig, origin: FakeOrigin) -> Iterator[OfflineWorker]:
    instance = OfflineWorker(config, transport=origin.transport)
    try:
        yield instance
    finally:
        instance.close()


@pytest.fixture
def active_worker(worker: OfflineWorker) -> OfflineWorker:
    worker.install()
    worker.activate()
    return worker
