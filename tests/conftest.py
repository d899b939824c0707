# watch-tagger test fixtures
from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from watchtagger.config import TaggingConfig  # noqa: E402
from watchtagger.core.context import ServerContext  # noqa: E402
from watchtagger.core.errors import FetchFailed  # noqa: E402
from watchtagger.core.models import (  # noqa: E402
    MOVIE,
    Collection,
    CollectionOptions,
    DrainResult,
    Label,
    ManagedMediaRecord,
    MediaItem,
    RequestRecord,
    Section,
    WatchSession,
)

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def days_ago(days: int) -> datetime:
    return NOW - timedelta(days=days)


class FakeRequests:
    def __init__(self, requests: Optional[List[RequestRecord]] = None, partial: bool = False, error: bool = False):
        self.requests = requests or []
        self.partial = partial
        self.error = error

    async def list_all_requests(self, filter: str = "available") -> DrainResult[RequestRecord]:
        if self.error:
            raise FetchFailed("overseerr down")
        return DrainResult(items=list(self.requests), total_count=len(self.requests), partial=self.partial)


class FakeLibrary:
    """In-memory Plex: label writes mutate the items, collections and section labels."""

    def __init__(
        self,
        sections: List[Section],
        items: Dict[str, List[MediaItem]],
        fail_collection_labels: bool = False,
    ):
        self.sections = sections
        self.fail_collection_labels = fail_collection_labels
        self.items = items
        self.labels: Dict[str, List[Label]] = {s.id: [] for s in sections}
        self.collections: Dict[str, List[Collection]] = {s.id: [] for s in sections}
        self.created: List[CollectionOptions] = []
        self.writes: List[tuple] = []

    def _item(self, item_id: str) -> MediaItem:
        for items in self.items.values():
            for item in items:
                if item.library_id == item_id:
                    return item
        raise FetchFailed(f"item {item_id} not found")

    def _remember_label(self, section_id: str, label: str) -> None:
        known = self.labels.setdefault(section_id, [])
        if not any(existing.title == label for existing in known):
            known.append(Label(key=str(len(known) + 1), title=label))

    async def list_sections(self) -> List[Section]:
        return list(self.sections)

    async def list_items(self, section_id: str) -> List[MediaItem]:
        return list(self.items.get(section_id, []))

    async def get_item(self, item_id: str) -> Optional[MediaItem]:
        try:
            return self._item(item_id)
        except FetchFailed:
            return None

    async def list_labels(self, section_id: str) -> List[Label]:
        return list(self.labels.get(section_id, []))

    async def list_collections(self, section_id: str) -> List[Collection]:
        return list(self.collections.get(section_id, []))

    async def add_label(self, section_id: str, item_type: str, item_id: str, label: str) -> None:
        if item_type == "collection" and self.fail_collection_labels:
            raise FetchFailed(f"cannot label collection {item_id}")
        self.writes.append(("add", item_type, item_id, label))
        if item_type == "collection":
            for collection in self.collections[section_id]:
                if collection.id == item_id:
                    collection.labels.append(label)
        else:
            item = self._item(item_id)
            if label not in item.labels:
                item.labels.append(label)
        self._remember_label(section_id, label)

    async def remove_label(self, section_id: str, item_type: str, item_id: str, label: str) -> None:
        self.writes.append(("remove", item_type, item_id, label))
        item = self._item(item_id)
        item.labels = [existing for existing in item.labels if existing != label]

    async def create_smart_collection(self, options: CollectionOptions) -> Optional[Collection]:
        self.created.append(options)
        collection = Collection(id=f"c{len(self.created)}", title=options.title)
        self.collections.setdefault(options.section_id, []).append(collection)
        return collection


class FakeHistory:
    def __init__(self, sessions: Optional[List[WatchSession]] = None, failing: Iterable[str] = ()):
        self.sessions = sessions or []
        self.failing = set(failing)
        self.calls: List[Dict[str, Any]] = []

    async def list_all_history(self, filters: Dict[str, Any]) -> List[WatchSession]:
        self.calls.append(filters)
        key = str(filters.get("grandparent_rating_key") or filters.get("rating_key"))
        if key in self.failing:
            raise FetchFailed(f"tautulli failed for {key}")
        return [s for s in self.sessions if s.media_library_id == key]


class FakeManager:
    """In-memory Radarr/Sonarr keyed by manager ID."""

    def __init__(self, kind: str = MOVIE, records: Optional[List[ManagedMediaRecord]] = None, error: bool = False):
        self.kind = kind
        self.records = {r.manager_id: r for r in records or []}
        self.error = error
        self.apply_calls: List[tuple] = []

    async def list_items(self, external_id: Optional[str] = None) -> List[ManagedMediaRecord]:
        if self.error:
            raise FetchFailed("radarr down")
        records = list(self.records.values())
        if external_id:
            records = [r for r in records if r.external_id == external_id]
        return records

    async def get_item(self, manager_id: int) -> ManagedMediaRecord:
        return self.records[manager_id]

    async def update_item(self, manager_id: int, record: ManagedMediaRecord) -> ManagedMediaRecord:
        self.records[manager_id] = record
        return record

    async def apply_tags(self, manager_id: int, add: Iterable[str], remove: Iterable[str]) -> ManagedMediaRecord:
        add, remove = list(add), list(remove)
        self.apply_calls.append((manager_id, add, remove))
        record = self.records[manager_id]
        record.tags = [t for t in record.tags if t not in remove] + [t for t in add if t not in record.tags]
        return record


def make_context(
    requests: FakeRequests,
    library: FakeLibrary,
    history: Optional[FakeHistory] = None,
    managers: Optional[Dict[str, FakeManager]] = None,
    settings: Optional[TaggingConfig] = None,
    dry_run: bool = False,
) -> ServerContext:
    return ServerContext(
        requests=requests,
        library=library,
        history=history or FakeHistory(),
        settings=settings or TaggingConfig(),
        now=NOW,
        managers=managers or {},
        dry_run=dry_run,
    )


@pytest.fixture()
def movie_section() -> Section:
    return Section(id="1", title="Movies", kind=MOVIE)


def movie_item(library_id: str, section_id: str = "1") -> MediaItem:
    return MediaItem(
        library_id=library_id,
        section_id=section_id,
        kind=MOVIE,
        title=f"Movie {library_id}",
        added_at=days_ago(10),
    )
