"""Configuration management with YAML and environment variables."""
import os
from datetime import timedelta
from pathlib import Path
from typing import List, Optional, Union

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class PlexConfig(BaseModel):
    url: str
    token: str
    verify_ssl: bool = True
    timeout: int = 30


class TautulliConfig(BaseModel):
    url: str
    api_key: str


class OverseerrConfig(BaseModel):
    url: str
    api_key: str
    request_filter: str = "available"  # all|approved|available|pending|processing|unavailable|failed
    request_sort: str = "added"  # added|modified


class RadarrConfig(BaseModel):
    url: str
    api_key: str


class SonarrConfig(BaseModel):
    url: str
    api_key: str


class TaggingConfig(BaseModel):
    movies_enabled: bool = True
    shows_enabled: bool = True
    movie_collections: bool = True
    show_collections: bool = True
    sections: List[Union[int, str]] = Field(default_factory=list)  # Titres ou IDs de sections, vide = toutes
    stale_added_days: int = 180
    stale_view_days: int = 90
    page_size: int = 100
    max_concurrent_items: int = 1
    collection_sort_prefix: str = ""  # ex. "!" : collections triées en tête de la section

    @property
    def stale_added_threshold(self) -> timedelta:
        return timedelta(days=self.stale_added_days)

    @property
    def stale_view_threshold(self) -> timedelta:
        return timedelta(days=self.stale_view_days)

    def kind_enabled(self, kind: str) -> bool:
        if kind == "movie":
            return self.movies_enabled
        if kind == "show":
            return self.shows_enabled
        return False

    def collections_enabled(self, kind: str) -> bool:
        if kind == "movie":
            return self.movie_collections
        if kind == "show":
            return self.show_collections
        return False

    def section_allowed(self, section_id: str, title: str) -> bool:
        if not self.sections:
            return True
        allowed = {str(s).strip().lower() for s in self.sections}
        return str(section_id).lower() in allowed or title.strip().lower() in allowed


class SchedulerConfig(BaseModel):
    enabled: bool = True
    interval_hours: int = 24
    run_on_startup: bool = False
    timezone: str = "UTC"


class AppConfig(BaseModel):
    dry_run: bool = False
    data_dir: str = "/data"
    log_level: str = "INFO"


class Config(BaseSettings):
    plex: Optional[PlexConfig] = None
    tautulli: Optional[TautulliConfig] = None
    overseerr: Optional[OverseerrConfig] = None
    radarr: Optional[RadarrConfig] = None
    sonarr: Optional[SonarrConfig] = None
    tagging: TaggingConfig = Field(default_factory=TaggingConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    app: AppConfig = Field(default_factory=AppConfig)

    model_config = SettingsConfigDict(env_file=".env", env_nested_delimiter="__", extra="ignore")

    @classmethod
    def load_from_yaml(cls, yaml_path: str) -> "Config":
        """Load configuration from YAML file, override with env vars."""
        config_path = Path(yaml_path)
        if not config_path.exists():
            raise FileNotFoundError(
                f"Config file not found: {yaml_path}\n"
                f"Please create config/config.yaml from config.example.yaml\n"
                f"Make sure the volume is mounted: -v ./config:/config:ro"
            )

        with open(config_path, "r", encoding="utf-8") as f:
            yaml_data = yaml.safe_load(f) or {}

        # Override with environment variables (PLEX__TOKEN, TAGGING__STALE_VIEW_DAYS, ...)
        for key in ["plex", "tautulli", "overseerr", "radarr", "sonarr", "tagging", "scheduler", "app"]:
            section = yaml_data.get(key)
            if not isinstance(section, dict):
                continue
            for subkey in list(section.keys()):
                env_value = os.getenv(f"{key.upper()}__{subkey.upper()}")
                if env_value:
                    section[subkey] = env_value

        return cls(**yaml_data)


# Global config instance (will be initialized in main.py)
config: Optional[Config] = None


def get_config() -> Config:
    """Get the global config instance."""
    if config is None:
        raise RuntimeError("Config not initialized. Call init_config() first.")
    return config


def init_config(config_path: str = "/config/config.yaml") -> Config:
    """Initialize global config from YAML file."""
    global config
    config = Config.load_from_yaml(config_path)
    return config


def set_config(new_config: Optional[Config]) -> None:
    """Remplace la config globale (tests, rechargement)."""
    global config
    config = new_config
