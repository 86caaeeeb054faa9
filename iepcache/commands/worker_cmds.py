from __future__ import annotations

import typer
from rich import print
from rich.markup import escape

from iepcache.http_client import make_request, resolve_url
from iepcache.lifecycle import LifecycleError, WorkerState
from iepcache.store import CACHE_HIT_HEADER
from iepcache.worker import OfflineWorker

from .common import parse_json_or_exit, preview_body


def install_cmd(worker: OfflineWorker) -> None:
    """Precache the install manifest into the current cache version."""

    try:
        report = worker.install()
    except LifecycleError as exc:
        print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1) from exc
    print(f"[green]Cached {len(report.cached)} resources into {report.cache_name}[/green]")
    for path, error in report.failed.items():
        print(f"[yellow]- {path}: {escape(error)}[/yellow]")


def activate_cmd(worker: OfflineWorker) -> None:
    """Activate the installed cache version and drop older ones."""

    if worker.state is WorkerState.UNINITIALIZED:
        print("[yellow]Nothing installed for this version; run install first[/yellow]")
        raise typer.Exit(code=1)
    if worker.state is WorkerState.ACTIVE:
        print(f"{worker.cache_name} is already active")
        return
    try:
        deleted = worker.activate()
    except LifecycleError as exc:
        print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1) from exc
    print(f"[green]Activated {worker.cache_name}[/green]")
    for name in deleted:
        print(f"- deleted {name}")


def status_cmd(worker: OfflineWorker, *, attempts: int) -> None:
    """Show lifecycle state, cache namespaces and pending actions."""

    print(f"origin: {worker.config.origin}")
    print(f"cache: {worker.cache_name} ({worker.state})")
    print(f"entries: {worker.store.count()}")
    namespaces = worker.store.namespaces()
    print(f"namespaces: {', '.join(namespaces) if namespaces else '-'}")
    for item in worker.queue.tags:
        print(f"queue {item.tag}: {worker.queue.count(item.tag)} pending")
    registered = worker.queue.registered_tags()
    print(f"sync registrations: {', '.join(registered) if registered else '-'}")
    for attempt in worker.store.sync_attempts(limit=attempts):
        state = "ok" if attempt["ok"] else "error"
        suffix = f" | {attempt['error']}" if attempt["error"] else ""
        print(
            f"{attempt['tag']}|{state}|synced={attempt['synced']}|failed={attempt['failed']}"
            f"|{attempt['finished_at'] or attempt['started_at']}{suffix}"
        )


def fetch_cmd(
    worker: OfflineWorker,
    *,
    url: str,
    method: str,
    navigate: bool,
    data: str | None,
) -> None:
    """Send one request through the interceptor."""

    if worker.state is not WorkerState.ACTIVE:
        print("[yellow]Worker is not active; run install and activate first[/yellow]")
        raise typer.Exit(code=1)
    request = make_request(
        method,
        resolve_url(worker.config.origin, url),
        json_body=parse_json_or_exit(data),
        navigate=navigate,
    )
    response = worker.handle_fetch(request)
    worker.wait_idle(timeout=5.0)
    if response is None:
        print("[yellow]Request not intercepted[/yellow]")
        raise typer.Exit(code=1)
    source = response.headers.get(CACHE_HIT_HEADER) or "network"
    print(f"{response.status_code} ({source})")
    print(escape(preview_body(response.content)))


def push_cmd(worker: OfflineWorker, *, payload: str | None, action: str | None) -> None:
    """Show a push notification, optionally clicking one of its actions."""

    notification = worker.handle_push(payload)
    print(f"[bold]{escape(notification.title)}[/bold]")
    print(escape(notification.body))
    for item in notification.actions:
        print(f"- {item.action}: {item.title}")
    if action is not None:
        target = worker.handle_notification_click(notification, action or None)
        print(f"opened {target}" if target else "closed")
