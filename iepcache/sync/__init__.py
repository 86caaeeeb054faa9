from __future__ import annotations

from .queue import DeferredActionQueue
from .reconciler import ReconcileResult, SyncReconciler, submit_or_defer
from .tags import DEFAULT_SYNC_TAGS, GOALS_TAG, MEMORY_QA_TAG, SyncTag, SyncTagRegistry

__all__ = [
    "DEFAULT_SYNC_TAGS",
    "GOALS_TAG",
    "MEMORY_QA_TAG",
    "DeferredActionQueue",
    "ReconcileResult",
    "SyncReconciler",
    "SyncTag",
    "SyncTagRegistry",
    "submit_or_defer",
]
