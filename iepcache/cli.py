from __future__ import annotations

import contextlib
from collections.abc import Iterator
from pathlib import Path

import typer
from rich import print

from . import __version__
from .commands.cache_cmds import cache_clear_cmd, cache_list_cmd
from .commands.common import configure_logging, load_config_or_exit
from .commands.queue_cmds import queue_add_cmd, queue_clear_cmd, queue_list_cmd, sync_cmd
from .commands.worker_cmds import activate_cmd, fetch_cmd, install_cmd, push_cmd, status_cmd
from .config import OfflineCacheConfig
from .worker import OfflineWorker

app = typer.Typer(help="iepcache: offline cache and background sync for My IEP Hero")
cache_app = typer.Typer(help="Inspect and clear cache namespaces")
queue_app = typer.Typer(help="Deferred actions waiting for background sync")
app.add_typer(cache_app, name="cache")
app.add_typer(queue_app, name="queue")

_state: dict[str, object] = {"config_path": None}


def _make_worker(config: OfflineCacheConfig) -> OfflineWorker:
    return OfflineWorker(config)


def _config() -> OfflineCacheConfig:
    path = _state.get("config_path")
    return load_config_or_exit(path if isinstance(path, Path) else None)


@contextlib.contextmanager
def _worker() -> Iterator[OfflineWorker]:
    worker = _make_worker(_config())
    try:
        yield worker
    finally:
        worker.close()


@app.callback()
def main(
    config: Path = typer.Option(None, "--config", help="Path to config JSON"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    _state["config_path"] = config
    configure_logging(verbose)


@app.command()
def install() -> None:
    """Precache the install manifest for the configured cache version."""

    with _worker() as worker:
        install_cmd(worker)


@app.command()
def activate() -> None:
    """Activate the installed cache version and delete older caches."""

    with _worker() as worker:
        activate_cmd(worker)


@app.command()
def status(
    attempts: int = typer.Option(5, help="Number of sync attempts to show"),
) -> None:
    """Show cache state, queues and recent sync attempts."""

    with _worker() as worker:
        status_cmd(worker, attempts=attempts)


@app.command()
def fetch(
    url: str = typer.Argument(..., help="Absolute URL or path under the origin"),
    method: str = typer.Option("GET", "--method", "-X", help="HTTP method"),
    navigate: bool = typer.Option(False, help="Treat as a page navigation"),
    data: str = typer.Option(None, help="JSON request body"),
) -> None:
    """Fetch a URL network-first with cache fallback."""

    with _worker() as worker:
        fetch_cmd(worker, url=url, method=method, navigate=navigate, data=data)


@app.command()
def sync(
    tag: str = typer.Argument(None, help="Sync tag (default: every registered tag)"),
    as_json: bool = typer.Option(False, "--json", help="Print results as JSON"),
) -> None:
    """Replay deferred actions now."""

    with _worker() as worker:
        sync_cmd(worker, tag=tag, as_json=as_json)


@app.command()
def push(
    payload: str = typer.Argument(None, help="Push payload JSON"),
    click: str = typer.Option(None, help="Click an action (explore, close, or '' for body)"),
) -> None:
    """Show a push notification."""

    with _worker() as worker:
        push_cmd(worker, payload=payload, action=click)


@app.command()
def serve(
    host: str = typer.Option(None, help="Proxy bind host"),
    port: int = typer.Option(None, help="Proxy bind port"),
) -> None:
    """Run the offline proxy and connectivity monitor in the foreground."""

    from .proxy import serve as run_proxy

    config = _config()
    if host:
        config.proxy_host = host
    if port:
        config.proxy_port = port
    try:
        run_proxy(config)
    except OSError as exc:
        print(f"[red]Failed to start proxy: {exc}[/red]")
        raise typer.Exit(code=1) from exc
    except KeyboardInterrupt:
        print("stopped")


@app.command()
def version() -> None:
    """Print the version."""

    print(__version__)


@cache_app.command("list")
def cache_list(
    namespace: str = typer.Option(None, help="Namespace (default: current version)"),
) -> None:
    """List cached request keys."""

    with _worker() as worker:
        cache_list_cmd(worker, namespace=namespace)


@cache_app.command("clear")
def cache_clear(
    namespace: str = typer.Argument(None, help="Namespace to delete"),
    all_: bool = typer.Option(False, "--all", help="Delete every namespace"),
) -> None:
    """Delete cache namespaces."""

    with _worker() as worker:
        cache_clear_cmd(worker, namespace=namespace, all_=all_)


@queue_app.command("list")
def queue_list(tag: str = typer.Argument(None, help="Sync tag")) -> None:
    """List pending actions."""

    with _worker() as worker:
        queue_list_cmd(worker, tag=tag)


@queue_app.command("add")
def queue_add(
    tag: str = typer.Argument(..., help="Sync tag"),
    url: str = typer.Argument(..., help="Absolute URL or path under the origin"),
    method: str = typer.Option("POST", "--method", "-X", help="HTTP method"),
    data: str = typer.Option(None, help="JSON request body"),
) -> None:
    """Queue a request for the next background sync."""

    with _worker() as worker:
        queue_add_cmd(worker, tag=tag, method=method, url=url, data=data)


@queue_app.command("clear")
def queue_clear(tag: str = typer.Argument(..., help="Sync tag")) -> None:
    """Drop all pending actions for a tag."""

    with _worker() as worker:
        queue_clear_cmd(worker, tag=tag)


if __name__ == "__main__":
    app()
