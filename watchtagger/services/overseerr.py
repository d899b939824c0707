"""Overseerr API client."""
from datetime import datetime
from typing import Any, Dict, Optional

import httpx
import structlog

from watchtagger.config import OverseerrConfig, get_config
from watchtagger.core.errors import FetchFailed
from watchtagger.core.models import MOVIE, SHOW, DrainResult, Page, RequestRecord
from watchtagger.core.pagination import PAGINATION_MAX_SIZE, drain, page_from_overseerr
from watchtagger.utils.http_client import get_http_client

logger = structlog.get_logger(__name__)


def parse_iso(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except (ValueError, AttributeError):
        return None


class OverseerrService:
    """Service pour interagir avec Overseerr."""

    def __init__(self, settings: Optional[OverseerrConfig] = None, page_size: int = PAGINATION_MAX_SIZE):
        settings = settings or get_config().overseerr
        if not settings:
            raise ValueError("Overseerr configuration not found")
        self.base_url = settings.url.rstrip("/")
        self.api_key = settings.api_key
        self.request_sort = settings.request_sort
        self.page_size = page_size
        self.http = get_http_client()

    def _get_headers(self) -> Dict[str, str]:
        """Get API headers."""
        return {"X-Api-Key": self.api_key}

    async def _call(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        try:
            response = await self.http.get_async(
                f"{self.base_url}/api/v1{path}",
                service_name="overseerr",
                headers=self._get_headers(),
                params=params,
            )
            return response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise FetchFailed(f"Error fetching {path} from Overseerr: {str(e)}") from e

    async def get_status(self) -> Dict[str, Any]:
        """Retourne le statut de l'instance Overseerr."""
        return await self._call("/status")

    async def get_requests_page(self, skip: int, take: int, filter: str = "available") -> Page[RequestRecord]:
        """Récupère une page de demandes (``skip`` est un nombre d'items, pas de pages)."""
        data = await self._call(
            "/request",
            params={"take": take, "skip": skip, "filter": filter, "sort": self.request_sort},
        )
        return page_from_overseerr(data, self.parse_request)

    async def list_all_requests(self, filter: str = "available") -> DrainResult[RequestRecord]:
        """Récupère toutes les demandes correspondant au filtre."""

        async def fetch_page(offset: int, limit: int) -> Page[RequestRecord]:
            return await self.get_requests_page(offset, limit, filter)

        result = await drain(fetch_page, key=lambda r: r.id, page_size=self.page_size, source="overseerr")
        logger.info(
            "overseerr_requests_fetched",
            count=len(result.items),
            total=result.total_count,
            partial=result.partial,
            filter=filter,
        )
        return result

    @staticmethod
    def parse_request(raw: Dict[str, Any]) -> RequestRecord:
        media = raw.get("media") or {}
        requested_by = raw.get("requestedBy") or {}
        rating_key = media.get("ratingKey")
        kind = {"movie": MOVIE, "tv": SHOW}.get(raw.get("type") or media.get("mediaType"))
        username = (
            requested_by.get("plexUsername")
            or requested_by.get("username")
            or requested_by.get("email")
            or ""
        )
        return RequestRecord(
            id=raw.get("id"),
            media_library_id=str(rating_key) if rating_key else None,
            requester_username=username,
            requester_display_name=requested_by.get("displayName"),
            media_added_at=parse_iso(media.get("mediaAddedAt")),
            kind=kind,
        )
