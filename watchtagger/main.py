"""FastAPI main application."""
from contextlib import asynccontextmanager
from typing import Optional
import logging
import os

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from watchtagger.api.routes import router
from watchtagger.config import init_config
from watchtagger.db.database import init_db
from watchtagger.scheduler import start_scheduler, stop_scheduler

# Setup logging (level adjusted from config after init)
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger(__name__)


CONFIG_CANDIDATES = (
    "/config/config.yaml",  # Docker
    "./config/config.yaml",  # dev local
)


def find_config_path(config_path: Optional[str] = None) -> str:
    """Explicit path, then CONFIG_PATH, then the usual locations."""
    candidates = [p for p in (config_path, os.getenv("CONFIG_PATH")) if p]
    candidates.extend(CONFIG_CANDIDATES)
    for path in candidates:
        if os.path.exists(path):
            return path

    tried = ", ".join(candidates)
    logger.error(
        f"No configuration file found (tried: {tried}). "
        "Copy config.example.yaml to config/config.yaml or set CONFIG_PATH."
    )
    raise FileNotFoundError(f"Configuration file not found, tried: {tried}")


def create_app(config_path: Optional[str] = None) -> FastAPI:
    """Charge la config, initialise la base et monte les routes."""
    config_path_found = find_config_path(config_path)
    logger.info(f"Loading configuration from: {config_path_found}")
    config = init_config(config_path_found)
    logging.getLogger().setLevel(config.app.log_level.upper())

    # DATA_DIR l'emporte sur app.data_dir (volume Docker)
    db_path = init_db(os.getenv("DATA_DIR", config.app.data_dir))
    logger.info(f"Run history stored in {db_path}")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        start_scheduler()
        yield
        stop_scheduler()

    app = FastAPI(title="Watch Tagger", version="1.0.0", lifespan=lifespan)
    app.include_router(router)

    @app.exception_handler(Exception)
    async def unhandled_exception(request: Request, exc: Exception):
        # Traceback in the logs only, the client gets the error type
        logger.exception(f"Unhandled exception in {request.method} {request.url.path}")
        return JSONResponse(
            status_code=500,
            content={"error": exc.__class__.__name__, "detail": str(exc), "path": request.url.path},
        )

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {"message": "Watch Tagger API"}

    return app


def run():
    """Entry point: ``watch-tagger`` serves the API and the scheduler."""
    import uvicorn

    uvicorn.run(
        "watchtagger.main:create_app",
        factory=True,
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8080")),
    )
