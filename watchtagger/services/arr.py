"""Shared Radarr/Sonarr v3 client (content managers)."""
from typing import Any, Dict, Iterable, List, Optional

import httpx
import structlog

from watchtagger.core.errors import FetchFailed
from watchtagger.core.models import EpisodeStatistics, ManagedMediaRecord
from watchtagger.core.tags import normalize_tag
from watchtagger.utils.http_client import get_http_client

logger = structlog.get_logger(__name__)


class ArrService:
    """Base pour Radarr et Sonarr : même API v3, ressource et ID externe différents.

    Les tags sont des IDs côté API ; ce service les expose sous forme de labels.
    """

    service_name = "arr"
    resource = ""
    external_key = ""
    kind = ""

    def __init__(self, url: str, api_key: str):
        self.base_url = url.rstrip("/")
        self.api_key = api_key
        self._tag_cache: Dict[int, str] = {}  # tag ID -> label
        self.http = get_http_client()

    def _get_headers(self) -> Dict[str, str]:
        """Get API headers."""
        return {"X-Api-Key": self.api_key}

    async def _call(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Any] = None,
    ) -> Any:
        try:
            response = await self.http.request_async(
                method,
                f"{self.base_url}/api/v3{path}",
                service_name=self.service_name,
                headers=self._get_headers(),
                params=params,
                json=json,
            )
            return response.json() if response.content else None
        except (httpx.HTTPError, ValueError) as e:
            raise FetchFailed(f"Error calling {method} {path} on {self.service_name}: {str(e)}") from e

    async def get_health(self) -> List[Dict[str, Any]]:
        return await self._call("GET", "/health")

    async def _get_tag_labels(self, refresh: bool = False) -> Dict[int, str]:
        """Récupère les labels des tags."""
        if self._tag_cache and not refresh:
            return self._tag_cache
        tags = await self._call("GET", "/tag") or []
        self._tag_cache = {tag.get("id"): tag.get("label", "") for tag in tags}
        return self._tag_cache

    async def _tag_id(self, label: str) -> int:
        """ID du tag, créé s'il n'existe pas encore."""
        label = normalize_tag(label)
        for refresh in (False, True):
            for tag_id, tag_label in (await self._get_tag_labels(refresh=refresh)).items():
                if normalize_tag(tag_label) == label:
                    return tag_id
        created = await self._call("POST", "/tag", json={"label": label})
        self._tag_cache[created["id"]] = created.get("label", label)
        logger.info("manager_tag_created", service=self.service_name, label=label, tag_id=created["id"])
        return created["id"]

    def to_record(self, raw: Dict[str, Any], tag_labels: Dict[int, str]) -> ManagedMediaRecord:
        """Tag IDs missing from ``tag_labels`` stay in ``raw`` only."""
        external_id = raw.get(self.external_key)
        tags = [tag_labels[tag_id] for tag_id in raw.get("tags") or [] if tag_id in tag_labels]
        return ManagedMediaRecord(
            manager_id=raw.get("id"),
            external_id=str(external_id) if external_id else None,
            title=raw.get("title", ""),
            tags=[normalize_tag(t) for t in tags],
            episode_statistics=self.episode_statistics(raw),
            raw=raw,
        )

    def episode_statistics(self, raw: Dict[str, Any]) -> Optional[EpisodeStatistics]:
        return None

    async def list_items(self, external_id: Optional[str] = None) -> List[ManagedMediaRecord]:
        """Liste tous les enregistrements, ou ceux d'un ID externe donné."""
        params = {self.external_key: external_id} if external_id else None
        data = await self._call("GET", f"/{self.resource}", params=params) or []
        tag_labels = await self._get_tag_labels()
        records = [self.to_record(raw, tag_labels) for raw in data]
        logger.info("manager_items_fetched", service=self.service_name, count=len(records))
        return records

    async def get_item(self, manager_id: int) -> ManagedMediaRecord:
        raw = await self._call("GET", f"/{self.resource}/{manager_id}") or {}
        tag_labels = await self._get_tag_labels()
        if any(tag_id not in tag_labels for tag_id in raw.get("tags") or []):
            tag_labels = await self._get_tag_labels(refresh=True)
        return self.to_record(raw, tag_labels)

    async def update_item(self, manager_id: int, record: ManagedMediaRecord) -> ManagedMediaRecord:
        """PUT the whole record; the API has no partial tag update.

        Labels always go through the tag list, even numeric ones like ``2160``.
        Tag IDs of the original record that have no known label are kept as is.
        """
        known = await self._get_tag_labels()
        tag_ids: List[int] = [
            tag_id for tag_id in record.raw.get("tags") or [] if tag_id not in known
        ]
        for label in record.tags:
            tag_id = await self._tag_id(label)
            if tag_id not in tag_ids:
                tag_ids.append(tag_id)
        body = dict(record.raw)
        body["tags"] = tag_ids
        raw = await self._call("PUT", f"/{self.resource}/{manager_id}", json=body)
        return self.to_record(raw or body, await self._get_tag_labels())

    async def apply_tags(
        self, manager_id: int, add: Iterable[str], remove: Iterable[str]
    ) -> ManagedMediaRecord:
        """Read-modify-write on a fresh read. Best effort: no conditional update exists."""
        record = await self.get_item(manager_id)
        to_remove = {normalize_tag(t) for t in remove}
        tags = [t for t in record.tags if t not in to_remove]
        for tag in add:
            tag = normalize_tag(tag)
            if tag not in tags:
                tags.append(tag)
        record.tags = tags
        return await self.update_item(manager_id, record)
