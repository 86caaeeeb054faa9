from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

from iepcache import cli
from iepcache.cli import app
from iepcache.config import OfflineCacheConfig
from iepcache.worker import OfflineWorker

runner = CliRunner()


@pytest.fixture
def cli_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, origin):
    monkeypatch.setenv("IEPCACHE_DB", str(tmp_path / "cli.sqlite"))
    monkeypatch.setenv("IEPCACHE_ORIGIN", "http://app.test")
    monkeypatch.setenv("IEPCACHE_CACHE_VERSION", "v1")
    monkeypatch.setenv("IEPCACHE_INSTALL_MANIFEST", "/,/dashboard,/static/js/bundle.js")

    def _make_worker(config: OfflineCacheConfig) -> OfflineWorker:
        return OfflineWorker(config, transport=origin.transport)

    monkeypatch.setattr(cli, "_make_worker", _make_worker)
    return origin


def test_root_help_lists_commands() -> None:
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    for name in ("install", "activate", "fetch", "sync", "push", "serve", "cache", "queue"):
        assert name in result.stdout


def test_queue_help_lists_subcommands() -> None:
    result = runner.invoke(app, ["queue", "--help"])
    assert result.exit_code == 0
    assert "add" in result.stdout
    assert "clear" in result.stdout


def test_version_command() -> None:
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert result.stdout.strip()


def test_install_activate_and_fetch(cli_env) -> None:
    result = runner.invoke(app, ["fetch", "/dashboard"])
    assert result.exit_code == 1
    assert "not active" in result.stdout

    result = runner.invoke(app, ["activate"])
    assert result.exit_code == 1

    result = runner.invoke(app, ["install"])
    assert result.exit_code == 0
    assert "Cached 3 resources into iep-hero-v1" in result.stdout

    result = runner.invoke(app, ["activate"])
    assert result.exit_code == 0
    assert "Activated iep-hero-v1" in result.stdout

    result = runner.invoke(app, ["fetch", "/dashboard"])
    assert result.exit_code == 0
    assert "200 (network)" in result.stdout

    cli_env.offline = True
    result = runner.invoke(app, ["fetch", "/goals/3", "--navigate"])
    assert result.exit_code == 0
    assert "200 (hit)" in result.stdout
    assert "shell" in result.stdout

    result = runner.invoke(app, ["fetch", "/api/unknown"])
    assert result.exit_code == 0
    assert "503 (offline)" in result.stdout


def test_install_reports_failed_resources(cli_env) -> None:
    cli_env.down_paths.add("/dashboard")

    result = runner.invoke(app, ["install"])

    assert result.exit_code == 0
    assert "Cached 2 resources" in result.stdout
    assert "/dashboard" in result.stdout


def test_queue_and_sync_flow(cli_env) -> None:
    result = runner.invoke(
        app, ["queue", "add", "background-sync-goals", "/api/goals", "--data", '{"p": 1}']
    )
    assert result.exit_code == 0
    assert "Queued action 1 under background-sync-goals" in result.stdout

    result = runner.invoke(app, ["queue", "list"])
    assert result.exit_code == 0
    assert "1|background-sync-goals|POST" in result.stdout

    result = runner.invoke(app, ["sync"])
    assert result.exit_code == 0
    assert "background-sync-goals|pending" in result.stdout

    cli_env.route("POST", "/api/goals", body="{}", content_type="application/json")
    result = runner.invoke(app, ["sync", "background-sync-goals", "--json"])
    assert result.exit_code == 0
    assert '"synced": 1' in result.stdout

    result = runner.invoke(app, ["sync"])
    assert result.exit_code == 0
    assert "Nothing to sync" in result.stdout

    result = runner.invoke(app, ["queue", "list"])
    assert "No pending actions" in result.stdout


def test_queue_rejects_unknown_tag(cli_env) -> None:
    result = runner.invoke(app, ["queue", "add", "background-sync-notes", "/api/notes"])
    assert result.exit_code == 1
    assert "Unknown sync tag" in result.stdout


def test_queue_clear(cli_env) -> None:
    runner.invoke(app, ["queue", "add", "background-sync-memory-qa", "/api/memory"])
    runner.invoke(app, ["queue", "add", "background-sync-memory-qa", "/api/memory"])

    result = runner.invoke(app, ["queue", "clear", "background-sync-memory-qa"])

    assert result.exit_code == 0
    assert "Removed 2 pending actions" in result.stdout


def test_push_and_click(cli_env) -> None:
    result = runner.invoke(app, ["push", '{"title": "Goal met"}', "--click", "explore"])

    assert result.exit_code == 0
    assert "Goal met" in result.stdout
    assert "You have new updates" in result.stdout
    assert "opened /dashboard" in result.stdout


def test_push_with_bad_payload_uses_defaults(cli_env) -> None:
    result = runner.invoke(app, ["push", "not json"])

    assert result.exit_code == 0
    assert "My IEP Hero" in result.stdout


def test_cache_list_and_clear(cli_env) -> None:
    runner.invoke(app, ["install"])

    result = runner.invoke(app, ["cache", "list"])
    assert result.exit_code == 0
    assert "GET http://app.test/dashboard" in result.stdout

    result = runner.invoke(app, ["cache", "clear"])
    assert result.exit_code == 1

    result = runner.invoke(app, ["cache", "clear", "--all"])
    assert result.exit_code == 0
    assert "deleted iep-hero-v1" in result.stdout

    result = runner.invoke(app, ["cache", "list"])
    assert "iep-hero-v1 is empty" in result.stdout


def test_status_shows_queues_and_attempts(cli_env) -> None:
    runner.invoke(app, ["install"])
    runner.invoke(app, ["queue", "add", "background-sync-goals", "/api/goals"])
    runner.invoke(app, ["sync"])

    result = runner.invoke(app, ["status"])

    assert result.exit_code == 0
    assert "iep-hero-v1 (waiting)" in result.stdout
    assert "queue background-sync-goals: 1 pending" in result.stdout
    assert "background-sync-goals|error|synced=0|failed=1" in result.stdout


def test_invalid_config_file_exits(tmp_path: Path) -> None:
    config_path = tmp_path / "bad.json"
    config_path.write_text("{nope")

    result = runner.invoke(app, ["--config", str(config_path), "status"])

    assert result.exit_code == 1
    assert "Invalid config file" in result.stdout


def test_invalid_json_data_exits(cli_env) -> None:
    result = runner.invoke(app, ["queue", "add", "background-sync-goals", "/x", "--data", "{"])
    assert result.exit_code == 1
    assert "Invalid JSON" in result.stdout
