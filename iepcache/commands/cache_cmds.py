from __future__ import annotations

import typer
from rich import print

from iepcache.worker import OfflineWorker


def cache_list_cmd(worker: OfflineWorker, *, namespace: str | None) -> None:
    """List cached keys for a namespace (current version by default)."""

    name = namespace or worker.cache_name
    keys = worker.store.keys(name)
    if not keys:
        print(f"{name} is empty")
        return
    for key in keys:
        print(f"{key.method} {key.url}")


def cache_clear_cmd(worker: OfflineWorker, *, namespace: str | None, all_: bool) -> None:
    """Delete one namespace, or every namespace with --all."""

    if all_:
        names = worker.store.namespaces()
    elif namespace:
        names = [namespace]
    else:
        print("[yellow]Pass a namespace or --all[/yellow]")
        raise typer.Exit(code=1)
    for name in names:
        if worker.store.delete_namespace(name):
            print(f"- deleted {name}")
        else:
            print(f"- {name} not found")
