"""SQLite run history: engine, sessions."""
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Iterator
import logging

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)

DB_FILENAME = "watch_tagger.db"

engine = None
SessionLocal = None


def _ensure_writable(data_dir: str) -> Path:
    """Le volume /data doit exister et être inscriptible avant de créer la base."""
    data_path = Path(data_dir)
    try:
        data_path.mkdir(parents=True, exist_ok=True)
        marker = data_path / ".write_test"
        marker.touch()
        marker.unlink()
    except OSError as e:
        logger.error(f"Data directory {data_dir} is not writable: {str(e)}")
        raise PermissionError(f"Cannot write to {data_dir}: {str(e)}") from e
    return data_path


def init_db(data_dir: str = "/data") -> Path:
    """Create (or open) the run history database and return its path."""
    global engine, SessionLocal

    db_path = _ensure_writable(data_dir) / DB_FILENAME
    logger.info(f"Opening run history at: {db_path}")

    # Un seul fichier partagé entre le scheduler et les requêtes FastAPI
    engine = create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    from watchtagger.db.models import Base
    Base.metadata.create_all(bind=engine)
    return db_path


def _session() -> Session:
    if SessionLocal is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return SessionLocal()


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency."""
    db = _session()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def session_scope() -> Iterator[Session]:
    """Session closed on exit; the caller commits."""
    db = _session()
    try:
        yield db
    finally:
        db.close()
