"""Pydantic models for API requests/responses."""
from pydantic import BaseModel
from typing import Optional, List, Dict, Any
from datetime import datetime


class TriggerResponse(BaseModel):
    run_id: int
    status: str
    summary: Dict[str, Any]


class RunResponse(BaseModel):
    id: int
    started_at: datetime
    finished_at: Optional[datetime]
    status: str
    trigger: str
    dry_run: bool
    summary: Dict[str, Any]
    error: Optional[str] = None


class RunListResponse(BaseModel):
    running: bool
    runs: List[RunResponse]


class DiagnosticsResponse(BaseModel):
    plex: Dict[str, Any]
    tautulli: Dict[str, Any]
    overseerr: Dict[str, Any]
    radarr: Dict[str, Any]
    sonarr: Dict[str, Any]
