"""Matching cross-services : Plex rating key, IDs externes, IDs Radarr/Sonarr."""
from typing import Dict, Iterable, List, Optional, Tuple

import structlog

from watchtagger.core.models import MANAGED_SCHEME, ManagedMediaRecord, MediaItem, RequestRecord

logger = structlog.get_logger(__name__)

KNOWN_SCHEMES = ("tmdb", "tvdb", "imdb")


class IdentityResolver:
    """Resolve a library item against requests and content-manager records."""

    @staticmethod
    def parse_guid(guid: str) -> Optional[Tuple[str, str]]:
        """``tmdb://123`` -> ``("tmdb", "123")``. Plex agent guids are ignored."""
        if not guid or "://" not in guid:
            return None
        scheme, _, value = guid.partition("://")
        scheme = scheme.lower().strip()
        value = value.strip().split("?")[0]
        if scheme not in KNOWN_SCHEMES or not value:
            return None
        return scheme, value

    @staticmethod
    def external_ids_from_guids(guids: Iterable[str]) -> Dict[str, str]:
        """Build the scheme -> value map, keeping the first value per scheme."""
        external_ids: Dict[str, str] = {}
        for guid in guids:
            parsed = IdentityResolver.parse_guid(guid)
            if parsed and parsed[0] not in external_ids:
                external_ids[parsed[0]] = parsed[1]
        return external_ids

    @staticmethod
    def build_managed_index(records: Iterable[ManagedMediaRecord]) -> Dict[str, ManagedMediaRecord]:
        index: Dict[str, ManagedMediaRecord] = {}
        for record in records:
            if not record.external_id:
                continue
            if record.external_id in index:
                logger.warning(
                    "managed_duplicate_external_id",
                    external_id=record.external_id,
                    kept=index[record.external_id].manager_id,
                    ignored=record.manager_id,
                )
                continue
            index[record.external_id] = record
        return index

    @staticmethod
    def resolve(
        item: MediaItem, managed_index: Dict[str, ManagedMediaRecord]
    ) -> Optional[ManagedMediaRecord]:
        """Match par ID externe uniquement (tmdb pour les films, tvdb pour les séries)."""
        scheme = MANAGED_SCHEME.get(item.kind)
        if not scheme:
            return None
        value = item.external_ids.get(scheme)
        if not value:
            return None
        return managed_index.get(str(value))

    @staticmethod
    def request_for(item: MediaItem, requests: List[RequestRecord]) -> Optional[RequestRecord]:
        # First match wins when several requests point at the same item
        for request in requests:
            if request.media_library_id and str(request.media_library_id) == str(item.library_id):
                return request
        return None
