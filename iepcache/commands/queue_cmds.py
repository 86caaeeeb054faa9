from __future__ import annotations

import json

import typer
from rich import print
from rich.markup import escape

from iepcache.http_client import make_request, resolve_url
from iepcache.worker import OfflineWorker

from .common import parse_json_or_exit, preview_body


def _require_tag(worker: OfflineWorker, tag: str) -> None:
    if tag not in worker.queue.tags:
        known = ", ".join(item.tag for item in worker.queue.tags)
        print(f"[red]Unknown sync tag {tag!r} (known: {known})[/red]")
        raise typer.Exit(code=1)


def queue_list_cmd(worker: OfflineWorker, *, tag: str | None) -> None:
    """List deferred actions, optionally for a single tag."""

    tags = [tag] if tag else [item.tag for item in worker.queue.tags]
    if tag:
        _require_tag(worker, tag)
    empty = True
    for name in tags:
        for action in worker.queue.pending(name):
            empty = False
            body = preview_body(action.body or b"", limit=80)
            print(
                f"{action.id}|{name}|{action.method} {action.url}|{action.enqueued_at}"
                f"|{escape(body)}"
            )
    if empty:
        print("No pending actions")


def queue_add_cmd(
    worker: OfflineWorker,
    *,
    tag: str,
    method: str,
    url: str,
    data: str | None,
) -> None:
    """Queue a mutation for replay on the next background sync."""

    _require_tag(worker, tag)
    request = make_request(
        method,
        resolve_url(worker.config.origin, url),
        json_body=parse_json_or_exit(data),
    )
    action = worker.defer(tag, request)
    print(f"[green]Queued action {action.id} under {tag}[/green]")


def queue_clear_cmd(worker: OfflineWorker, *, tag: str) -> None:
    """Drop every pending action for a tag."""

    _require_tag(worker, tag)
    removed = worker.queue.clear(tag)
    print(f"Removed {removed} pending actions from {tag}")


def sync_cmd(worker: OfflineWorker, *, tag: str | None, as_json: bool) -> None:
    """Run background sync for one tag or every registered tag."""

    if tag:
        _require_tag(worker, tag)
        results = [worker.handle_sync(tag)]
    else:
        results = worker.sync_all()
    if as_json:
        typer.echo(json.dumps([result.to_dict() for result in results], indent=2))
        return
    if not results:
        print("Nothing to sync")
        return
    for result in results:
        state = "ok" if result.ok and not result.failed else "pending"
        suffix = f" | {result.error}" if result.error else ""
        print(
            f"{result.tag}|{state}|attempted={result.attempted}|synced={result.synced}"
            f"|failed={result.failed}{suffix}"
        )
