"""Plex API client."""
import asyncio
from datetime import datetime, timezone
from typing import Any, List, Optional

import requests
import structlog
from plexapi.exceptions import NotFound, PlexApiException
from plexapi.server import PlexServer

from watchtagger.config import PlexConfig, get_config
from watchtagger.core.errors import FetchFailed
from watchtagger.core.identity import IdentityResolver
from watchtagger.core.models import Collection, CollectionOptions, Label, MediaItem, Section

logger = structlog.get_logger(__name__)


def to_utc(value: Optional[datetime]) -> Optional[datetime]:
    """plexapi returns naive local datetimes."""
    if value is None:
        return None
    return value.astimezone(timezone.utc)


class PlexService:
    """Service pour interagir avec Plex.

    plexapi est synchrone : chaque appel passe par ``asyncio.to_thread``.
    """

    def __init__(self, settings: Optional[PlexConfig] = None):
        settings = settings or get_config().plex
        if not settings:
            raise ValueError("Plex configuration not found")
        self.base_url = settings.url
        self.token = settings.token
        self.verify_ssl = settings.verify_ssl
        self.timeout = settings.timeout
        self._server: Optional[PlexServer] = None

    def _get_server(self) -> PlexServer:
        """Get or create Plex server connection."""
        if self._server is None:
            session = requests.Session()
            # Certificats auto-signés si verify_ssl: false (déconseillé)
            session.verify = self.verify_ssl
            self._server = PlexServer(self.base_url, self.token, session=session, timeout=self.timeout)
        return self._server

    async def _run(self, action: str, func, *args) -> Any:
        try:
            return await asyncio.to_thread(func, *args)
        except (PlexApiException, requests.RequestException) as e:
            raise FetchFailed(f"Error during Plex {action}: {str(e)}") from e

    @staticmethod
    def to_media_item(item: Any, section_id: str) -> MediaItem:
        guids = [guid.id for guid in getattr(item, "guids", None) or []]
        return MediaItem(
            library_id=str(item.ratingKey),
            section_id=str(section_id),
            kind=item.type,
            title=item.title,
            added_at=to_utc(getattr(item, "addedAt", None)),
            external_ids=IdentityResolver.external_ids_from_guids(guids),
            labels=[label.tag.lower() for label in getattr(item, "labels", None) or []],
        )

    @staticmethod
    def to_collection(collection: Any) -> Collection:
        return Collection(
            id=str(collection.ratingKey),
            title=collection.title,
            labels=[label.tag.lower() for label in getattr(collection, "labels", None) or []],
        )

    def _section(self, section_id: str):
        return self._get_server().library.sectionByID(int(section_id))

    async def get_identity(self) -> str:
        """Machine identifier of the server, also proves the token works."""
        return await self._run("identity", lambda: self._get_server().machineIdentifier)

    async def list_sections(self) -> List[Section]:
        def fetch():
            return [
                Section(id=str(section.key), title=section.title, kind=section.type)
                for section in self._get_server().library.sections()
            ]

        return await self._run("list_sections", fetch)

    async def list_items(self, section_id: str) -> List[MediaItem]:
        """Récupère tous les films/séries d'une section."""
        def fetch():
            return [self.to_media_item(item, section_id) for item in self._section(section_id).all()]

        items = await self._run("list_items", fetch)
        logger.info("plex_items_fetched", section_id=section_id, count=len(items))
        return items

    async def get_item(self, item_id: str) -> Optional[MediaItem]:
        def fetch():
            try:
                item = self._get_server().fetchItem(int(item_id))
            except NotFound:
                return None
            return self.to_media_item(item, item.librarySectionID)

        return await self._run("get_item", fetch)

    async def list_labels(self, section_id: str) -> List[Label]:
        def fetch():
            return [
                Label(key=str(choice.key), title=choice.title)
                for choice in self._section(section_id).listFilterChoices("label")
            ]

        return await self._run("list_labels", fetch)

    async def list_collections(self, section_id: str) -> List[Collection]:
        def fetch():
            return [self.to_collection(c) for c in self._section(section_id).collections()]

        return await self._run("list_collections", fetch)

    async def add_label(self, section_id: str, item_type: str, item_id: str, label: str) -> None:
        # addLabel verrouille le champ label (équivalent de label.locked=1)
        await self._run(
            "add_label", lambda: self._get_server().fetchItem(int(item_id)).addLabel(label.lower())
        )

    async def remove_label(self, section_id: str, item_type: str, item_id: str, label: str) -> None:
        await self._run(
            "remove_label", lambda: self._get_server().fetchItem(int(item_id)).removeLabel(label.lower())
        )

    async def create_smart_collection(self, options: CollectionOptions) -> Optional[Collection]:
        """Crée une smart collection filtrée sur un label."""
        def create():
            collection = self._get_server().createCollection(
                title=options.title,
                section=self._section(options.section_id),
                smart=True,
                libtype=options.kind,
                sort=options.sort,
                filters={"label": options.label_key},
            )
            if collection is None:
                return None
            if options.title_sort and options.title_sort != options.title:
                collection.editSortTitle(options.title_sort)
            return self.to_collection(collection)

        return await self._run("create_smart_collection", create)
