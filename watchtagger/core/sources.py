"""Capability interfaces the pipeline needs from each collaborator."""
from typing import Any, Dict, Iterable, List, Optional, Protocol

from watchtagger.core.models import (
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


class RequestSource(Protocol):
    async def list_all_requests(self, filter: str = "available") -> DrainResult[RequestRecord]:
        ...


class LibrarySource(Protocol):
    async def list_sections(self) -> List[Section]:
        ...

    async def list_items(self, section_id: str) -> List[MediaItem]:
        ...

    async def get_item(self, item_id: str) -> Optional[MediaItem]:
        ...

    async def list_labels(self, section_id: str) -> List[Label]:
        ...

    async def list_collections(self, section_id: str) -> List[Collection]:
        ...

    async def add_label(self, section_id: str, item_type: str, item_id: str, label: str) -> None:
        ...

    async def remove_label(self, section_id: str, item_type: str, item_id: str, label: str) -> None:
        ...

    async def create_smart_collection(self, options: CollectionOptions) -> Optional[Collection]:
        ...


class HistorySource(Protocol):
    async def list_all_history(self, filters: Dict[str, Any]) -> List[WatchSession]:
        ...


class ManagerSource(Protocol):
    kind: str

    async def list_items(self, external_id: Optional[str] = None) -> List[ManagedMediaRecord]:
        ...

    async def get_item(self, manager_id: int) -> ManagedMediaRecord:
        ...

    async def update_item(self, manager_id: int, record: ManagedMediaRecord) -> ManagedMediaRecord:
        ...

    async def apply_tags(
        self, manager_id: int, add: Iterable[str], remove: Iterable[str]
    ) -> ManagedMediaRecord:
        ...
