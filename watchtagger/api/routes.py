"""API routes."""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
import logging

from watchtagger.api.models import DiagnosticsResponse, RunListResponse, RunResponse, TriggerResponse
from watchtagger.config import get_config
from watchtagger.core.runner import Runner, is_running
from watchtagger.db.database import get_db
from watchtagger.db.models import Run
from watchtagger.services.overseerr import OverseerrService
from watchtagger.services.plex import PlexService
from watchtagger.services.radarr import RadarrService
from watchtagger.services.sonarr import SonarrService
from watchtagger.services.tautulli import TautulliService

logger = logging.getLogger(__name__)
router = APIRouter()


def _run_response(run: Run) -> RunResponse:
    return RunResponse(
        id=run.id,
        started_at=run.started_at,
        finished_at=run.finished_at,
        status=run.status,
        trigger=run.trigger,
        dry_run=run.dry_run,
        summary=run.summary_json or {},
        error=run.error,
    )


@router.post("/api/run", response_model=TriggerResponse)
async def trigger_run(db: Session = Depends(get_db)):
    """Lance une réconciliation immédiate."""
    logger.info("=== Manual reconciliation requested ===")
    run_id = await Runner().run(trigger="api")
    if run_id is None:
        raise HTTPException(status_code=409, detail="A reconciliation run is already in progress")

    run = db.query(Run).filter(Run.id == run_id).first()
    return TriggerResponse(run_id=run_id, status=run.status, summary=run.summary_json or {})


@router.get("/api/runs", response_model=RunListResponse)
async def list_runs(limit: int = 20, db: Session = Depends(get_db)):
    """Liste les derniers runs."""
    runs = db.query(Run).order_by(Run.id.desc()).limit(limit).all()
    return RunListResponse(running=is_running(), runs=[_run_response(run) for run in runs])


@router.get("/api/runs/{run_id}", response_model=RunResponse)
async def get_run(run_id: int, db: Session = Depends(get_db)):
    """Récupère le résultat d'un run."""
    run = db.query(Run).filter(Run.id == run_id).first()
    if not run:
        raise HTTPException(status_code=404, detail="Run not found")
    return _run_response(run)


@router.get("/api/diagnostics", response_model=DiagnosticsResponse)
async def diagnostics():
    """Vérifie les connexions aux APIs."""
    config = get_config()
    results = {
        name: {"configured": getattr(config, name) is not None, "connected": False, "error": None}
        for name in ("plex", "tautulli", "overseerr", "radarr", "sonarr")
    }

    checks = {
        "plex": lambda: PlexService(config.plex).get_identity(),
        "tautulli": lambda: TautulliService(config.tautulli).get_status(),
        "overseerr": lambda: OverseerrService(config.overseerr).get_status(),
        "radarr": lambda: RadarrService(config.radarr).get_health(),
        "sonarr": lambda: SonarrService(config.sonarr).get_health(),
    }
    for name, check in checks.items():
        if not results[name]["configured"]:
            continue
        try:
            await check()
            results[name]["connected"] = True
        except Exception as e:
            results[name]["error"] = str(e)

    return DiagnosticsResponse(**results)


@router.get("/api/config")
async def get_config_endpoint():
    """Récupère la configuration actuelle (sans secrets)."""
    config = get_config()
    return {
        "plex": {"url": config.plex.url if config.plex else None},
        "tautulli": {"url": config.tautulli.url if config.tautulli else None},
        "overseerr": {
            "url": config.overseerr.url if config.overseerr else None,
            "request_filter": config.overseerr.request_filter if config.overseerr else None,
        },
        "radarr": {"url": config.radarr.url if config.radarr else None},
        "sonarr": {"url": config.sonarr.url if config.sonarr else None},
        "tagging": config.tagging.model_dump(),
        "scheduler": config.scheduler.model_dump(),
        "app": config.app.model_dump(),
    }
