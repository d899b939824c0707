"""Radarr API client."""
from typing import Optional

from watchtagger.config import RadarrConfig, get_config
from watchtagger.core.models import MOVIE
from watchtagger.services.arr import ArrService


class RadarrService(ArrService):
    """Service pour interagir avec Radarr."""

    service_name = "radarr"
    resource = "movie"
    external_key = "tmdbId"
    kind = MOVIE

    def __init__(self, settings: Optional[RadarrConfig] = None):
        settings = settings or get_config().radarr
        if not settings:
            raise ValueError("Radarr configuration not found")
        super().__init__(settings.url, settings.api_key)
