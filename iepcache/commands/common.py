from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import typer
from rich import print
from rich.console import Console
from rich.logging import RichHandler

from iepcache.config import OfflineCacheConfig, load_config, read_config_file


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False, rich_tracebacks=True)],
        force=True,
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def load_config_or_exit(path: Path | None) -> OfflineCacheConfig:
    try:
        read_config_file(path)
    except ValueError as exc:
        print(f"[red]Invalid config file: {exc}[/red]")
        raise typer.Exit(code=1) from exc
    return load_config(path)


def parse_json_or_exit(raw: str | None) -> Any:
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        print(f"[red]Invalid JSON: {exc.msg}[/red]")
        raise typer.Exit(code=1) from exc


def preview_body(body: bytes, limit: int = 400) -> str:
    text = body[:limit].decode("utf-8", errors="replace")
    if len(body) > limit:
        text += "…"
    return text
