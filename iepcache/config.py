from __future__ import annotations

import json
import os
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

DEFAULT_CONFIG_PATH = Path("~/.config/iepcache/config.json").expanduser()
DEFAULT_DB_PATH = Path.home() / ".iepcache.sqlite"

DEFAULT_INSTALL_MANIFEST = [
    "/",
    "/dashboard",
    "/documents",
    "/goals",
    "/login",
    "/static/js/bundle.js",
    "/static/css/main.css",
    "/manifest.json",
]

CONFIG_ENV_OVERRIDES = {
    "origin": "IEPCACHE_ORIGIN",
    "cache_prefix": "IEPCACHE_CACHE_PREFIX",
    "cache_version": "IEPCACHE_CACHE_VERSION",
    "install_manifest": "IEPCACHE_INSTALL_MANIFEST",
    "db_path": "IEPCACHE_DB",
    "network_timeout_s": "IEPCACHE_NETWORK_TIMEOUT_S",
    "cacheable_methods": "IEPCACHE_CACHEABLE_METHODS",
    "preserve_queues_on_activate": "IEPCACHE_PRESERVE_QUEUES",
    "app_name": "IEPCACHE_APP_NAME",
    "proxy_host": "IEPCACHE_PROXY_HOST",
    "proxy_port": "IEPCACHE_PROXY_PORT",
    "monitor_interval_s": "IEPCACHE_MONITOR_INTERVAL_S",
}


def get_config_path(path: Path | None = None) -> Path:
    candidate = path or Path(os.getenv("IEPCACHE_CONFIG", DEFAULT_CONFIG_PATH))
    return candidate.expanduser()


def _strip_json_comments(text: str) -> str:
    """Strip `//` line comments outside of strings (JSONC support)."""
    lines = []
    for line in text.splitlines():
        result = []
        in_string = False
        escape_next = False
        i = 0
        while i < len(line):
            char = line[i]
            if escape_next:
                result.append(char)
                escape_next = False
                i += 1
                continue
            if char == "\\" and in_string:
                result.append(char)
                escape_next = True
                i += 1
                continue
            if char == '"':
                in_string = not in_string
            elif not in_string and line.startswith("//", i):
                break
            result.append(char)
            i += 1
        lines.append("".join(result))
    return "\n".join(lines)


def _strip_trailing_commas(text: str) -> str:
    result: list[str] = []
    in_string = False
    escape_next = False
    for i, char in enumerate(text):
        if escape_next:
            escape_next = False
        elif char == "\\" and in_string:
            escape_next = True
        elif char == '"':
            in_string = not in_string
        elif not in_string and char == ",":
            rest = text[i + 1 :].lstrip()
            if rest[:1] in {"]", "}"}:
                continue
        result.append(char)
    return "".join(result)


def _loads_jsonc(raw: str) -> Any:
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        pass
    return json.loads(_strip_trailing_commas(_strip_json_comments(raw)))


def read_config_file(path: Path | None = None) -> dict[str, Any]:
    config_path = get_config_path(path)
    if not config_path.exists():
        return {}
    raw = config_path.read_text()
    if not raw.strip():
        return {}
    try:
        data = _loads_jsonc(raw)
    except json.JSONDecodeError as exc:
        raise ValueError("invalid config json") from exc
    if not isinstance(data, dict):
        raise ValueError("config must be an object")
    return data


def write_config_file(data: dict[str, Any], path: Path | None = None) -> Path:
    config_path = get_config_path(path)
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(json.dumps(data, ensure_ascii=False, indent=2) + "\n")
    return config_path


@dataclass
class OfflineCacheConfig:
    origin: str = "http://127.0.0.1:5000"
    cache_prefix: str = "iep-hero"
    cache_version: str = "v1.0.0"
    install_manifest: list[str] = field(default_factory=lambda: list(DEFAULT_INSTALL_MANIFEST))
    db_path: str = str(DEFAULT_DB_PATH)
    # None means the network attempt is never cut short before falling back.
    network_timeout_s: float | None = None
    cacheable_methods: list[str] = field(default_factory=lambda: ["GET"])
    preserve_queues_on_activate: bool = False
    app_name: str = "My IEP Hero"
    notification_body: str = "You have new updates in your IEP dashboard"
    notification_icon: str = "/pwa-192x192.png"
    notification_badge: str = "/pwa-64x64.png"
    dashboard_path: str = "/dashboard"
    proxy_host: str = "127.0.0.1"
    proxy_port: int = 38890
    monitor_interval_s: int = 15

    @property
    def cache_name(self) -> str:
        return f"{self.cache_prefix}-{self.cache_version}"


def _parse_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    if value.lower() in {"1", "true", "yes", "on"}:
        return True
    if value.lower() in {"0", "false", "off", "no"}:
        return False
    return default


def _parse_int(value: object, default: int, *, key: str) -> int:
    if value is None:
        return default
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        warnings.warn(f"Invalid int for {key}: {value!r}", RuntimeWarning, stacklevel=2)
        return default


def _parse_timeout(value: object, default: float | None, *, key: str) -> float | None:
    if value is None:
        return default
    if isinstance(value, str) and value.strip().lower() in {"", "none", "off", "0"}:
        return None
    try:
        parsed = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        warnings.warn(f"Invalid timeout for {key}: {value!r}", RuntimeWarning, stacklevel=2)
        return default
    return parsed if parsed > 0 else None


def _coerce_bool(value: object, default: bool, *, key: str) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        return _parse_bool(value, default)
    warnings.warn(f"Invalid bool for {key}: {value!r}", RuntimeWarning, stacklevel=2)
    return default


def _coerce_str_list(value: object, *, key: str) -> list[str] | None:
    if value is None:
        return None
    if isinstance(value, list):
        items: list[str] = []
        for item in value:
            if isinstance(item, str) and item.strip():
                items.append(item.strip())
        return items
    if isinstance(value, str):
        return [p.strip() for p in value.split(",") if p.strip()]
    warnings.warn(f"Invalid list for {key}: {value!r}", RuntimeWarning, stacklevel=2)
    return None


_INT_KEYS = {"proxy_port", "monitor_interval_s"}
_LIST_KEYS = {"install_manifest", "cacheable_methods"}


def load_config(path: Path | None = None) -> OfflineCacheConfig:
    cfg = OfflineCacheConfig()
    config_path = get_config_path(path)
    if config_path.exists():
        try:
            data = _loads_jsonc(config_path.read_text() or "{}")
        except json.JSONDecodeError:
            data = {}
        if isinstance(data, dict):
            cfg = _apply_dict(cfg, data)
    cfg = _apply_env(cfg)
    return cfg


def _apply_dict(cfg: OfflineCacheConfig, data: dict[str, Any]) -> OfflineCacheConfig:
    for key, value in data.items():
        if not hasattr(cfg, key) or key == "cache_name":
            continue
        if key in _INT_KEYS:
            setattr(cfg, key, _parse_int(value, getattr(cfg, key), key=key))
            continue
        if key == "network_timeout_s":
            cfg.network_timeout_s = _parse_timeout(value, cfg.network_timeout_s, key=key)
            continue
        if key == "preserve_queues_on_activate":
            cfg.preserve_queues_on_activate = _coerce_bool(
                value, cfg.preserve_queues_on_activate, key=key
            )
            continue
        if key in _LIST_KEYS:
            parsed = _coerce_str_list(value, key=key)
            if parsed is not None:
                setattr(cfg, key, parsed)
            continue
        setattr(cfg, key, value)
    cfg.cacheable_methods = [m.upper() for m in cfg.cacheable_methods]
    return cfg


def _apply_env(cfg: OfflineCacheConfig) -> OfflineCacheConfig:
    cfg.origin = os.getenv("IEPCACHE_ORIGIN", cfg.origin)
    cfg.cache_prefix = os.getenv("IEPCACHE_CACHE_PREFIX", cfg.cache_prefix)
    cfg.cache_version = os.getenv("IEPCACHE_CACHE_VERSION", cfg.cache_version)
    manifest = _coerce_str_list(
        os.getenv("IEPCACHE_INSTALL_MANIFEST"), key="install_manifest"
    )
    if manifest is not None:
        cfg.install_manifest = manifest
    cfg.db_path = os.getenv("IEPCACHE_DB", cfg.db_path)
    cfg.network_timeout_s = _parse_timeout(
        os.getenv("IEPCACHE_NETWORK_TIMEOUT_S"),
        cfg.network_timeout_s,
        key="network_timeout_s",
    )
    methods = _coerce_str_list(os.getenv("IEPCACHE_CACHEABLE_METHODS"), key="cacheable_methods")
    if methods is not None:
        cfg.cacheable_methods = [m.upper() for m in methods]
    cfg.preserve_queues_on_activate = _parse_bool(
        os.getenv("IEPCACHE_PRESERVE_QUEUES"), cfg.preserve_queues_on_activate
    )
    cfg.app_name = os.getenv("IEPCACHE_APP_NAME", cfg.app_name)
    cfg.proxy_host = os.getenv("IEPCACHE_PROXY_HOST", cfg.proxy_host)
    cfg.proxy_port = _parse_int(os.getenv("IEPCACHE_PROXY_PORT"), cfg.proxy_port, key="proxy_port")
    cfg.monitor_interval_s = _parse_int(
        os.getenv("IEPCACHE_MONITOR_INTERVAL_S"),
        cfg.monitor_interval_s,
        key="monitor_interval_s",
    )
    return cfg
