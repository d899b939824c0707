"""Sonarr API client."""
from typing import Any, Dict, Optional

from watchtagger.config import SonarrConfig, get_config
from watchtagger.core.models import SHOW, EpisodeStatistics
from watchtagger.services.arr import ArrService


class SonarrService(ArrService):
    """Service pour interagir avec Sonarr."""

    service_name = "sonarr"
    resource = "series"
    external_key = "tvdbId"
    kind = SHOW

    def __init__(self, settings: Optional[SonarrConfig] = None):
        settings = settings or get_config().sonarr
        if not settings:
            raise ValueError("Sonarr configuration not found")
        super().__init__(settings.url, settings.api_key)

    def episode_statistics(self, raw: Dict[str, Any]) -> Optional[EpisodeStatistics]:
        stats = raw.get("statistics")
        if not stats:
            return None
        return EpisodeStatistics(
            episode_count=int(stats.get("episodeCount") or 0),
            percent_complete=float(stats.get("percentOfEpisodes") or 0),
        )
