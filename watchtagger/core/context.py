"""Per-run and per-section state passed explicitly through the pipeline."""
import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

import structlog

from watchtagger.config import TaggingConfig
from watchtagger.core.models import Collection, Label, Section
from watchtagger.core.sources import HistorySource, LibrarySource, ManagerSource, RequestSource
from watchtagger.core.tags import normalize_tag

logger = structlog.get_logger(__name__)


@dataclass
class ServerContext:
    """Collaborators and settings for one reconciliation run."""
    requests: RequestSource
    library: LibrarySource
    history: HistorySource
    settings: TaggingConfig
    now: datetime
    managers: Dict[str, ManagerSource] = field(default_factory=dict)
    dry_run: bool = False
    request_filter: str = "available"


@dataclass
class SectionCache:
    """Labels and collections of one section, rebuilt at the start of each section.

    ``collection_lock`` serialises collection creation so two workers never
    create the same title.
    """
    section: Section
    labels: List[Label] = field(default_factory=list)
    collections: List[Collection] = field(default_factory=list)
    labels_stale: bool = True
    collection_lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    async def refresh_labels(self, library: LibrarySource) -> None:
        self.labels = await library.list_labels(self.section.id)
        self.labels_stale = False
        logger.debug("section_labels_cached", section=self.section.title, count=len(self.labels))

    async def refresh_collections(self, library: LibrarySource) -> None:
        self.collections = await library.list_collections(self.section.id)
        logger.debug(
            "section_collections_cached", section=self.section.title, count=len(self.collections)
        )

    def label_key(self, title: str) -> Optional[str]:
        wanted = normalize_tag(title)
        for label in self.labels:
            if normalize_tag(label.title) == wanted:
                return label.key
        return None

    def collection(self, title: str) -> Optional[Collection]:
        return next((c for c in self.collections if c.title == title), None)

    def has_collection(self, title: str) -> bool:
        return self.collection(title) is not None
