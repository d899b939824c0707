"""Lance une réconciliation complète et l'enregistre en base."""
import asyncio
from datetime import datetime, timezone
from typing import Callable, Optional

import structlog

from watchtagger.config import Config, get_config
from watchtagger.core.context import ServerContext
from watchtagger.core.errors import ConfigurationError, RunAborted
from watchtagger.core.models import MOVIE, SHOW
from watchtagger.core.orchestrator import SectionOrchestrator
from watchtagger.db.database import session_scope
from watchtagger.db.models import Run
from watchtagger.services.overseerr import OverseerrService
from watchtagger.services.plex import PlexService
from watchtagger.services.radarr import RadarrService
from watchtagger.services.sonarr import SonarrService
from watchtagger.services.tautulli import TautulliService

logger = structlog.get_logger(__name__)

# Un seul run à la fois dans le process
_run_lock = asyncio.Lock()

REQUIRED_SERVICES = ("plex", "overseerr", "tautulli")


def is_running() -> bool:
    return _run_lock.locked()


def build_context(config: Config) -> ServerContext:
    """Instantiate the collaborators from config. Plex, Overseerr and Tautulli are required."""
    missing = [name for name in REQUIRED_SERVICES if getattr(config, name) is None]
    if missing:
        raise ConfigurationError(f"Missing configuration for: {', '.join(missing)}")

    page_size = config.tagging.page_size
    managers = {}
    if config.radarr:
        managers[MOVIE] = RadarrService(config.radarr)
    if config.sonarr:
        managers[SHOW] = SonarrService(config.sonarr)

    return ServerContext(
        requests=OverseerrService(config.overseerr, page_size=page_size),
        library=PlexService(config.plex),
        history=TautulliService(config.tautulli, page_size=page_size),
        settings=config.tagging,
        now=datetime.now(timezone.utc),
        managers=managers,
        dry_run=config.app.dry_run,
        request_filter=config.overseerr.request_filter,
    )


class Runner:
    """Wraps one orchestrator run with the overlap guard and the run history."""

    def __init__(
        self,
        config: Optional[Config] = None,
        context_factory: Callable[[Config], ServerContext] = build_context,
    ):
        self.config = config or get_config()
        self.context_factory = context_factory

    async def run(self, trigger: str = "scheduler") -> Optional[int]:
        """Retourne l'ID du run, ou None si un run est déjà en cours."""
        if _run_lock.locked():
            logger.warning("run_skipped_in_progress", trigger=trigger)
            return None

        async with _run_lock:
            with session_scope() as db:
                run = Run(status="RUNNING", trigger=trigger, dry_run=self.config.app.dry_run)
                db.add(run)
                db.commit()
                db.refresh(run)
                logger.info("run_created", run_id=run.id, trigger=trigger)

                try:
                    ctx = self.context_factory(self.config)
                    summary = await SectionOrchestrator(ctx).run()
                    run.status = "COMPLETED"
                    run.summary_json = summary.as_dict()
                except (ConfigurationError, RunAborted) as e:
                    run.status = "ABORTED"
                    run.error = str(e)
                    logger.error("run_aborted", run_id=run.id, error=str(e))
                except Exception as e:
                    run.status = "FAILED"
                    run.error = str(e)
                    logger.exception("run_failed", run_id=run.id)

                run.finished_at = datetime.utcnow()
                db.commit()
                logger.info("run_finished", run_id=run.id, status=run.status)
                return run.id
