from __future__ import annotations

import json
import logging
import os
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any
from urllib.parse import urlparse

import httpx

from .config import OfflineCacheConfig
from .http_client import Fetcher, make_request, resolve_url
from .lifecycle import Registration
from .sync import submit_or_defer
from .sync.monitor import ConnectivityMonitor, start_monitor
from .worker import OfflineWorker

logger = logging.getLogger(__name__)

STATUS_PATH = "/__iepcache/status"
SYNC_PATH = "/__iepcache/sync"
SYNC_TAG_HEADER = "X-IEPCache-Sync-Tag"
MAX_BODY_BYTES = 10 * 1024 * 1024

HOP_BY_HOP = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailers",
    "transfer-encoding",
    "upgrade",
    "host",
    "content-length",
    "content-encoding",
    "accept-encoding",
}


class BodyError(ValueError):
    def __init__(self, status: int, error: str) -> None:
        super().__init__(error)
        self.status = status
        self.error = error


def _send_json(
    handler: BaseHTTPRequestHandler, payload: dict[str, Any], status: int = 200
) -> None:
    body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
    handler.send_response(status)
    handler.send_header("Content-Type", "application/json; charset=utf-8")
    handler.send_header("Content-Length", str(len(body)))
    handler.end_headers()
    handler.wfile.write(body)


def _send_response(handler: BaseHTTPRequestHandler, response: httpx.Response) -> None:
    body = response.content
    handler.send_response(response.status_code)
    for name, value in response.headers.multi_items():
        if name.lower() in HOP_BY_HOP:
            continue
        handler.send_header(name, value)
    handler.send_header("Content-Length", str(len(body)))
    handler.end_headers()
    if handler.command != "HEAD":
        handler.wfile.write(body)


def is_navigation_request(method: str, headers: Any) -> bool:
    mode = (headers.get("Sec-Fetch-Mode") or "").strip().lower()
    if mode:
        return mode == "navigate"
    return method == "GET" and "text/html" in (headers.get("Accept") or "")


def build_proxy_handler(
    registration: Registration,
    config: OfflineCacheConfig,
    fetcher: Fetcher,
):
    cacheable = {m.upper() for m in config.cacheable_methods}

    class ProxyHandler(BaseHTTPRequestHandler):
        protocol_version = "HTTP/1.1"

        def log_message(self, format: str, *args: object) -> None:  # noqa: A003
            if os.environ.get("IEPCACHE_PROXY_LOGS") == "1":
                super().log_message(format, *args)

        def _read_body(self) -> bytes | None:
            raw = (self.headers.get("Content-Length") or "0").strip()
            try:
                length = int(raw)
            except ValueError:
                raise BodyError(400, "invalid_content_length") from None
            if length <= 0:
                return None
            if length > MAX_BODY_BYTES:
                raise BodyError(413, "payload_too_large")
            return self.rfile.read(length)

        def _status(self) -> None:
            worker = registration.active
            payload: dict[str, Any] = {
                "origin": config.origin,
                "active": worker.cache_name if worker else None,
                "waiting": registration.waiting.cache_name if registration.waiting else None,
            }
            if worker is not None:
                payload["state"] = str(worker.state)
                payload["entries"] = worker.store.count()
                payload["sync_tags"] = worker.queue.registered_tags()
            _send_json(self, payload)

        def _sync(self) -> None:
            worker = registration.active
            if worker is None:
                _send_json(self, {"error": "no_active_worker"}, status=503)
                return
            results = [result.to_dict() for result in worker.sync_all()]
            _send_json(self, {"results": results})

        def _handle(self) -> None:
            path = urlparse(self.path).path
            if path == STATUS_PATH and self.command == "GET":
                self._status()
                return
            if path == SYNC_PATH and self.command == "POST":
                self._sync()
                return
            try:
                body = self._read_body()
            except BodyError as exc:
                self.close_connection = True
                _send_json(self, {"error": exc.error}, status=exc.status)
                return
            headers = {
                name: value
                for name, value in self.headers.items()
                if name.lower() not in HOP_BY_HOP and name.lower() != SYNC_TAG_HEADER.lower()
            }
            request = make_request(
                self.command,
                resolve_url(config.origin, self.path),
                headers=headers,
                content=body,
                navigate=is_navigation_request(self.command, self.headers),
            )
            tag = (self.headers.get(SYNC_TAG_HEADER) or "").strip()
            worker = registration.active
            if tag and worker is not None and self.command not in cacheable:
                self._submit_or_defer(worker, request, tag)
                return
            response = registration.fetch(request)
            if response is None:
                try:
                    response = fetcher.fetch(request)
                except httpx.TransportError as exc:
                    _send_json(self, {"error": f"upstream_unreachable: {exc}"}, status=502)
                    return
            _send_response(self, response)

        def _submit_or_defer(
            self, worker: OfflineWorker, request: httpx.Request, tag: str
        ) -> None:
            try:
                response = submit_or_defer(
                    request, tag, fetcher=worker.fetcher, queue=worker.queue
                )
            except ValueError as exc:
                _send_json(self, {"error": str(exc)}, status=400)
                return
            if response is None:
                _send_json(self, {"queued": True, "tag": tag, "offline": True}, status=202)
                return
            _send_response(self, response)

        do_GET = _handle  # noqa: N815
        do_HEAD = _handle  # noqa: N815
        do_POST = _handle  # noqa: N815
        do_PUT = _handle  # noqa: N815
        do_PATCH = _handle  # noqa: N815
        do_DELETE = _handle  # noqa: N815

    return ProxyHandler


def start_proxy(
    registration: Registration,
    config: OfflineCacheConfig,
    fetcher: Fetcher,
    *,
    host: str | None = None,
    port: int | None = None,
) -> tuple[ThreadingHTTPServer, threading.Thread]:
    handler = build_proxy_handler(registration, config, fetcher)
    bind_host = host if host is not None else config.proxy_host
    bind_port = port if port is not None else config.proxy_port
    server = ThreadingHTTPServer((bind_host, bind_port), handler)
    thread = threading.Thread(target=server.serve_forever, name="iepcache:proxy", daemon=True)
    thread.start()
    return server, thread


def serve(
    config: OfflineCacheConfig,
    *,
    transport: httpx.BaseTransport | None = None,
    stop_event: threading.Event | None = None,
) -> None:
    """Install and activate the worker, then proxy the origin until stopped."""
    worker = OfflineWorker(config, transport=transport)
    registration = Registration()
    stop = stop_event or threading.Event()
    server: ThreadingHTTPServer | None = None
    try:
        report = registration.update(worker)
        if report.failed:
            logger.warning("install left %d resources uncached", len(report.failed))
        server, _thread = start_proxy(registration, config, worker.fetcher)
        logger.info(
            "proxying %s on http://%s:%s",
            config.origin,
            *server.server_address[:2],
        )
        monitor = ConnectivityMonitor(worker, interval_s=config.monitor_interval_s)
        start_monitor(monitor, stop)
        stop.wait()
    finally:
        stop.set()
        if server is not None:
            server.shutdown()
            server.server_close()
        worker.close()
