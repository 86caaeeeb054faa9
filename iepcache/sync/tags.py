from __future__ import annotations

from dataclasses import dataclass

MEMORY_QA_TAG = "background-sync-memory-qa"
GOALS_TAG = "background-sync-goals"


@dataclass(frozen=True)
class SyncTag:
    tag: str
    namespace: str
    label: str


DEFAULT_SYNC_TAGS = (
    SyncTag(MEMORY_QA_TAG, "offline-memory-questions", "memory question"),
    SyncTag(GOALS_TAG, "offline-goal-updates", "goal update"),
)


class SyncTagRegistry:
    def __init__(self, tags: tuple[SyncTag, ...] = DEFAULT_SYNC_TAGS) -> None:
        self._tags: dict[str, SyncTag] = {}
        for item in tags:
            self.register(item)

    def register(self, item: SyncTag) -> None:
        tag = item.tag.strip()
        if not tag:
            raise ValueError("sync tag must not be empty")
        self._tags[tag] = item

    def get(self, tag: str) -> SyncTag | None:
        return self._tags.get(tag)

    def require(self, tag: str) -> SyncTag:
        item = self._tags.get(tag)
        if item is None:
            raise ValueError(f"unknown sync tag: {tag}")
        return item

    def namespaces(self) -> set[str]:
        return {item.namespace for item in self._tags.values()}

    def __iter__(self):
        return iter(self._tags.values())

    def __contains__(self, tag: object) -> bool:
        return tag in self._tags
