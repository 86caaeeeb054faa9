from __future__ import annotations

import threading
from dataclasses import replace

import pytest

from iepcache.http_client import make_request
from iepcache.lifecycle import LifecycleError, Registration, WorkerState
from iepcache.store import cache_key
from iepcache.sync import GOALS_TAG
from iepcache.worker import OfflineWorker

ORIGIN = "http://app.test"


def test_install_precaches_manifest_and_waits(worker: OfflineWorker) -> None:
    report = worker.install()

    assert report.ok
    assert report.cache_name == "iep-hero-v1"
    assert report.cached == ["/", "/dashboard", "/static/js/bundle.js"]
    assert worker.state is WorkerState.WAITING
    assert worker.store.count() == 3
    assert worker.store.match(cache_key("GET", f"{ORIGIN}/static/js/bundle.js")) is not None


def test_install_twice_is_idempotent(worker: OfflineWorker) -> None:
    worker.install()
    worker.install()

    assert worker.state is WorkerState.WAITING
    assert worker.store.count() == 3


def test_install_skips_unreachable_resources(worker: OfflineWorker, origin) -> None:
    origin.down_paths.add("/dashboard")

    report = worker.install()

    assert not report.ok
    assert report.cached == ["/", "/static/js/bundle.js"]
    assert set(report.failed) == {"/dashboard"}
    assert worker.state is WorkerState.WAITING
    assert worker.store.count() == 2


def test_install_records_http_errors(worker: OfflineWorker, origin) -> None:
    origin.route("GET", "/dashboard", status=500, body="boom")

    report = worker.install()

    assert report.failed == {"/dashboard": "status 500"}


def test_activate_without_install_is_rejected(worker: OfflineWorker) -> None:
    with pytest.raises(LifecycleError):
        worker.activate()
    assert worker.state is WorkerState.UNINITIALIZED


def test_activate_deletes_other_namespaces(config, origin) -> None:
    with OfflineWorker(config, transport=origin.transport) as v1:
        v1.install()
        v1.activate()
        v1.defer(GOALS_TAG, make_request("POST", f"{ORIGIN}/api/goals", json_body={"a": 1}))

    v2_config = replace(config, cache_version="v2")
    with OfflineWorker(v2_config, transport=origin.transport) as v2:
        v2.install()
        assert v2.store.namespaces() == ["iep-hero-v1", "iep-hero-v2", "offline-goal-updates"]

        deleted = v2.activate()

        assert set(deleted) == {"iep-hero-v1", "offline-goal-updates"}
        assert v2.store.namespaces() == ["iep-hero-v2"]
        assert v2.store.count("iep-hero-v1") == 0


def test_activate_can_preserve_queue_namespaces(config, origin) -> None:
    with OfflineWorker(config, transport=origin.transport) as v1:
        v1.install()
        v1.activate()
        v1.defer(GOALS_TAG, make_request("POST", f"{ORIGIN}/api/goals", json_body={"a": 1}))

    v2_config = replace(config, cache_version="v2", preserve_queues_on_activate=True)
    with OfflineWorker(v2_config, transport=origin.transport) as v2:
        v2.install()
        deleted = v2.activate()

        assert deleted == ["iep-hero-v1"]
        assert v2.queue.count(GOALS_TAG) == 1


def test_preserved_queues_are_limited_to_known_sync_tags(config, origin) -> None:
    preserve = replace(config, preserve_queues_on_activate=True)
    with OfflineWorker(preserve, transport=origin.transport) as worker:
        worker.install()
        worker.defer(GOALS_TAG, make_request("POST", f"{ORIGIN}/api/goals", json_body={"a": 1}))
        worker.store.add_pending_action(
            namespace="offline-retired-notes",
            tag="background-sync-notes",
            request=make_request("POST", f"{ORIGIN}/api/notes", json_body={}),
        )

        deleted = worker.activate()

        assert deleted == ["offline-retired-notes"]
        assert worker.store.namespaces() == ["iep-hero-v1", "offline-goal-updates"]


def test_new_version_does_not_serve_previous_version_entries(config, origin) -> None:
    origin.route("GET", "/api/goals", body="old goals")
    with OfflineWorker(config, transport=origin.transport) as v1:
        v1.install()
        v1.activate()
        v1.handle_fetch(make_request("GET", f"{ORIGIN}/api/goals"))
        assert v1.wait_idle(timeout=5)

    v2_config = replace(config, cache_version="v2")
    with OfflineWorker(v2_config, transport=origin.transport) as v2:
        v2.install()
        v2.activate()
        origin.offline = True
        response = v2.handle_fetch(make_request("GET", f"{ORIGIN}/api/goals"))

    assert response is not None
    assert response.status_code == 503


def test_state_is_restored_for_same_version(config, origin) -> None:
    with OfflineWorker(config, transport=origin.transport) as first:
        first.install()
        first.activate()

    with OfflineWorker(config, transport=origin.transport) as again:
        assert again.state is WorkerState.ACTIVE
        again.install()
        assert again.state is WorkerState.ACTIVE

    with OfflineWorker(replace(config, cache_version="v2"), transport=origin.transport) as other:
        assert other.state is WorkerState.UNINITIALIZED


def test_superseded_worker_stops_intercepting(active_worker: OfflineWorker) -> None:
    active_worker.supersede()
    active_worker.supersede()

    assert active_worker.state is WorkerState.SUPERSEDED
    assert active_worker.handle_fetch(make_request("GET", f"{ORIGIN}/")) is None
    with pytest.raises(LifecycleError):
        active_worker.install()


def test_dispatch_rejects_unknown_event(worker: OfflineWorker) -> None:
    with pytest.raises(ValueError, match="unknown event"):
        worker.dispatch("message")


def test_registration_activates_first_worker_immediately(worker: OfflineWorker) -> None:
    registration = Registration()

    registration.update(worker)

    assert registration.active is worker
    assert registration.waiting is None
    assert worker.state is WorkerState.ACTIVE


def test_registration_waits_while_old_worker_is_busy(config, origin) -> None:
    registration = Registration()
    v1 = OfflineWorker(config, transport=origin.transport)
    v2 = OfflineWorker(replace(config, cache_version="v2"), transport=origin.transport)
    try:
        registration.update(v1)

        released = threading.Event()
        entered = threading.Event()

        def _hold() -> None:
            with v1.tasks.extend():
                entered.set()
                released.wait(5)

        holder = threading.Thread(target=_hold)
        holder.start()
        assert entered.wait(5)

        registration.update(v2)
        assert registration.active is v1
        assert registration.waiting is v2
        assert v2.state is WorkerState.WAITING

        released.set()
        holder.join(5)
        assert registration.try_activate()
        assert registration.active is v2
        assert v1.state is WorkerState.SUPERSEDED
        assert v2.state is WorkerState.ACTIVE
    finally:
        v2.close()
        v1.close()


def test_skip_waiting_forces_handover(config, origin) -> None:
    registration = Registration()
    v1 = OfflineWorker(config, transport=origin.transport)
    v2 = OfflineWorker(replace(config, cache_version="v2"), transport=origin.transport)
    try:
        registration.update(v1)
        v1.tasks._enter()
        registration.update(v2)
        assert registration.waiting is v2
        v1.tasks._exit()

        assert registration.skip_waiting()
        assert registration.active is v2
        assert v1.state is WorkerState.SUPERSEDED
        assert registration.skip_waiting() is False
    finally:
        v2.close()
        v1.close()


def test_registration_fetch_without_active_worker_returns_none() -> None:
    assert Registration().fetch(make_request("GET", f"{ORIGIN}/")) is None
