"""Tautulli API client."""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx
import structlog

from watchtagger.config import TautulliConfig, get_config
from watchtagger.core.errors import FetchFailed
from watchtagger.core.models import Page, WatchSession
from watchtagger.core.pagination import PAGINATION_MAX_SIZE, drain, page_from_tautulli
from watchtagger.utils.http_client import get_http_client

logger = structlog.get_logger(__name__)


class TautulliService:
    """Service pour interagir avec Tautulli."""

    def __init__(self, settings: Optional[TautulliConfig] = None, page_size: int = PAGINATION_MAX_SIZE):
        settings = settings or get_config().tautulli
        if not settings:
            raise ValueError("Tautulli configuration not found")
        self.base_url = settings.url.rstrip("/")
        self.api_key = settings.api_key
        self.page_size = page_size
        self.http = get_http_client()

    def _get_params(self) -> Dict[str, Any]:
        """Get base API parameters."""
        return {"apikey": self.api_key}

    async def _call(self, cmd: str, **params) -> Any:
        query = self._get_params()
        query["cmd"] = cmd
        query.update({k: v for k, v in params.items() if v is not None})
        try:
            response = await self.http.get_async(
                f"{self.base_url}/api/v2",
                service_name="tautulli",
                params=query,
                timeout=60.0,
            )
            body = response.json().get("response", {})
        except (httpx.HTTPError, ValueError) as e:
            raise FetchFailed(f"Error calling {cmd} on Tautulli: {str(e)}") from e
        if body.get("result") not in (None, "success"):
            raise FetchFailed(f"Tautulli {cmd} failed: {body.get('message')}")
        return body.get("data")

    async def get_status(self) -> Any:
        return await self._call("status")

    async def get_history_page(self, start: int, length: int, filters: Dict[str, Any]) -> Page[WatchSession]:
        """Récupère une page de l'historique de visionnage."""
        data = await self._call("get_history", start=start, length=length, **filters)
        return page_from_tautulli(data, start, self.parse_session)

    async def list_all_history(self, filters: Dict[str, Any]) -> List[WatchSession]:
        """Historique complet pour un filtre (rating_key, grandparent_rating_key, user...)."""

        async def fetch_page(offset: int, limit: int) -> Page[WatchSession]:
            return await self.get_history_page(offset, limit, filters)

        result = await drain(
            fetch_page,
            key=lambda s: s.session_id,
            page_size=self.page_size,
            source="tautulli",
        )
        return result.items

    @staticmethod
    def parse_session(row: Dict[str, Any]) -> WatchSession:
        """Convert a history row. Episodes are keyed on their show."""
        is_episode = row.get("media_type") == "episode"
        show_key = row.get("grandparent_rating_key")
        rating_key = row.get("rating_key")
        library_id = show_key if is_episode and show_key else rating_key

        timestamp = row.get("stopped") or row.get("date") or 0
        try:
            when = datetime.fromtimestamp(int(timestamp), tz=timezone.utc)
        except (TypeError, ValueError, OSError):
            when = datetime.fromtimestamp(0, tz=timezone.utc)

        session_id = row.get("id") or row.get("row_id") or row.get("reference_id")
        if session_id is None:
            session_id = f"{rating_key}:{row.get('user')}:{row.get('date')}"

        return WatchSession(
            username=row.get("user") or "",
            media_library_id=str(library_id) if library_id is not None else "",
            watched=float(row.get("watched_status") or 0) >= 1,
            timestamp=when,
            episode_key=str(rating_key) if is_episode and rating_key is not None else None,
            session_id=str(session_id),
        )
