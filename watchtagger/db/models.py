"""SQLAlchemy models for database."""
from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text, JSON
from sqlalchemy.orm import declarative_base
from datetime import datetime

Base = declarative_base()


class Run(Base):
    """Exécution d'une réconciliation (planifiée ou manuelle)."""
    __tablename__ = "runs"

    id = Column(Integer, primary_key=True, index=True)
    started_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    finished_at = Column(DateTime, nullable=True)
    status = Column(String, default="RUNNING", nullable=False)  # RUNNING, COMPLETED, FAILED, ABORTED
    trigger = Column(String, default="scheduler", nullable=False)  # scheduler, api
    dry_run = Column(Boolean, default=False, nullable=False)
    summary_json = Column(JSON, default=dict)  # {totals, sections: {id: {processed, skipped, errored, ...}}}
    error = Column(Text, nullable=True)
