from __future__ import annotations

from datetime import timedelta
from pathlib import Path

import pytest

from watchtagger.config import Config, TaggingConfig


def _write(tmp_path: Path, body: str) -> str:
    path = tmp_path / "config.yaml"
    path.write_text(body, encoding="utf-8")
    return str(path)


class TestTaggingConfig:
    def test_defaults(self) -> None:
        settings = TaggingConfig()

        assert settings.stale_added_threshold == timedelta(days=180)
        assert settings.stale_view_threshold == timedelta(days=90)
        assert settings.page_size == 100
        assert settings.max_concurrent_items == 1

    def test_section_allow_list_matches_id_or_title(self) -> None:
        settings = TaggingConfig(sections=["Movies", "7"])

        assert settings.section_allowed("1", "movies") is True
        assert settings.section_allowed("7", "Anime") is True
        assert settings.section_allowed("2", "TV Shows") is False
        assert TaggingConfig().section_allowed("2", "TV Shows") is True

    def test_kind_switches(self) -> None:
        settings = TaggingConfig(shows_enabled=False, movie_collections=False)

        assert settings.kind_enabled("movie") is True
        assert settings.kind_enabled("show") is False
        assert settings.kind_enabled("artist") is False
        assert settings.collections_enabled("movie") is False
        assert settings.collections_enabled("show") is True


class TestLoadFromYaml:
    def test_yaml_sections_and_env_override(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TAGGING__STALE_VIEW_DAYS", "30")
        path = _write(
            tmp_path,
            """
plex:
  url: http://plex:32400
  token: secret
overseerr:
  url: http://overseerr:5055
  api_key: key
tagging:
  stale_view_days: 90
  sections: [Movies]
app:
  dry_run: true
""",
        )

        config = Config.load_from_yaml(path)

        assert config.plex.token == "secret"
        assert config.overseerr.request_filter == "available"
        assert config.tautulli is None
        assert config.tagging.stale_view_days == 30
        assert config.tagging.sections == ["Movies"]
        assert config.app.dry_run is True
        assert config.scheduler.interval_hours == 24

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            Config.load_from_yaml(str(tmp_path / "nope.yaml"))
