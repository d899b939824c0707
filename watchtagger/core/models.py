"""Core business models."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Generic, List, Optional, TypeVar

T = TypeVar("T")

MOVIE = "movie"
SHOW = "show"

# Schéma d'ID externe utilisé par le content manager de chaque type
MANAGED_SCHEME = {MOVIE: "tmdb", SHOW: "tvdb"}

# Préfixe des titres de collections
KIND_PREFIX = {MOVIE: "Movies", SHOW: "TV Shows"}


@dataclass
class Page(Generic[T]):
    """One page of a paginated collaborator response."""
    items: List[T]
    total_count: int
    page_size: int
    current_offset: int


@dataclass
class DrainResult(Generic[T]):
    items: List[T]
    total_count: int = 0
    partial: bool = False


@dataclass
class Section:
    id: str
    title: str
    kind: str  # movie, show (autres types ignorés)


@dataclass
class Label:
    key: str
    title: str


@dataclass
class Collection:
    id: str
    title: str
    labels: List[str] = field(default_factory=list)


@dataclass
class MediaItem:
    """Item de bibliothèque Plex (film ou série)."""
    library_id: str
    section_id: str
    kind: str
    title: str
    added_at: Optional[datetime] = None
    external_ids: Dict[str, str] = field(default_factory=dict)  # {"tmdb": "123", "imdb": "tt..."}
    labels: List[str] = field(default_factory=list)


@dataclass
class RequestRecord:
    """Demande Overseerr."""
    id: int
    media_library_id: Optional[str]
    requester_username: str
    requester_display_name: Optional[str] = None
    media_added_at: Optional[datetime] = None
    kind: Optional[str] = None

    @property
    def requester_label(self) -> str:
        return self.requester_display_name or self.requester_username


@dataclass
class EpisodeStatistics:
    episode_count: int
    percent_complete: float


@dataclass
class ManagedMediaRecord:
    """Radarr movie or Sonarr series, with the raw payload kept for full-record PUTs."""
    manager_id: int
    external_id: Optional[str]
    title: str = ""
    tags: List[str] = field(default_factory=list)
    episode_statistics: Optional[EpisodeStatistics] = None
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass
class WatchSession:
    """Session de lecture Tautulli."""
    username: str
    media_library_id: str  # rating_key du film, ou grandparent_rating_key pour un épisode
    watched: bool
    timestamp: datetime
    episode_key: Optional[str] = None
    session_id: Optional[str] = None


@dataclass
class WatchFacts:
    requester_fully_watched: bool = False
    others_watching: bool = False
    is_stale: bool = False


@dataclass
class MutationOp:
    """A single label/tag/collection write computed by the reconciler."""
    action: str  # add, remove, create_collection (collection targets: add = owner label)
    target: str  # library, manager, collection
    tag: str
    item_id: Optional[str] = None
    section_id: Optional[str] = None
    kind: Optional[str] = None
    title: Optional[str] = None  # collection title
    owner_tag: Optional[str] = None
    new_label: bool = False

    def describe(self) -> str:
        if self.action == "create_collection":
            return f"create_collection({self.title!r}, label={self.tag})"
        return f"{self.action}({self.tag})@{self.target}:{self.item_id}"


@dataclass
class SectionSummary:
    title: str
    processed: int = 0
    skipped: int = 0
    errored: int = 0
    mutations: int = 0
    collections_created: int = 0
    collections_failed: int = 0
    status: str = "processed"  # processed, skipped, errored

    def as_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "status": self.status,
            "processed": self.processed,
            "skipped": self.skipped,
            "errored": self.errored,
            "mutations": self.mutations,
            "collections_created": self.collections_created,
            "collections_failed": self.collections_failed,
        }


@dataclass
class RunSummary:
    started_at: datetime
    finished_at: Optional[datetime] = None
    dry_run: bool = False
    requests_count: int = 0
    requests_partial: bool = False
    sections: Dict[str, SectionSummary] = field(default_factory=dict)

    def totals(self) -> Dict[str, int]:
        return {
            "processed": sum(s.processed for s in self.sections.values()),
            "skipped": sum(s.skipped for s in self.sections.values()),
            "errored": sum(s.errored for s in self.sections.values()),
            "mutations": sum(s.mutations for s in self.sections.values()),
        }

    def as_dict(self) -> Dict[str, Any]:
        return {
            "dry_run": self.dry_run,
            "requests_count": self.requests_count,
            "requests_partial": self.requests_partial,
            "totals": self.totals(),
            "sections": {key: s.as_dict() for key, s in self.sections.items()},
        }


@dataclass
class CollectionOptions:
    """Options de création d'une smart collection Plex."""
    section_id: str
    title: str
    kind: str
    label_key: str
    sort: str = "titleSort"
    title_sort: Optional[str] = None
