from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from watchtagger.main import create_app


@pytest.fixture()
def client(tmp_path: Path):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        f"""
plex:
  url: http://plex:32400
  token: super-secret-token
scheduler:
  enabled: false
app:
  data_dir: {tmp_path / "data"}
""",
        encoding="utf-8",
    )
    with TestClient(create_app(str(config_path))) as test_client:
        yield test_client


class TestApi:
    def test_root(self, client: TestClient) -> None:
        assert client.get("/").json() == {"message": "Watch Tagger API"}

    def test_runs_empty(self, client: TestClient) -> None:
        response = client.get("/api/runs")

        assert response.status_code == 200
        assert response.json() == {"running": False, "runs": []}

    def test_unknown_run(self, client: TestClient) -> None:
        assert client.get("/api/runs/999").status_code == 404

    def test_config_hides_secrets(self, client: TestClient) -> None:
        response = client.get("/api/config")

        assert response.status_code == 200
        assert "super-secret-token" not in response.text
        body = response.json()
        assert body["plex"]["url"] == "http://plex:32400"
        assert body["tagging"]["stale_added_days"] == 180
        assert body["scheduler"]["enabled"] is False

    def test_trigger_without_required_services_is_aborted(self, client: TestClient) -> None:
        response = client.post("/api/run")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ABORTED"

        runs = client.get("/api/runs").json()["runs"]
        assert [run["id"] for run in runs] == [body["run_id"]]
        assert "overseerr" in runs[0]["error"]
