"""Error taxonomy for the reconciliation pipeline."""
from typing import Any, List, Optional


class WatchTaggerError(Exception):
    """Base error."""


class ConfigurationError(WatchTaggerError):
    """Service obligatoire non configuré : le run est annulé avant toute écriture."""


class FetchFailed(WatchTaggerError):
    """A collaborator call failed or timed out.

    ``partial`` holds whatever was collected before the failure (pagination
    drains), so callers can decide whether partial data is usable.
    """

    def __init__(self, message: str, partial: Optional[List[Any]] = None):
        super().__init__(message)
        self.partial = partial if partial is not None else []


class CollectionCreateFailed(WatchTaggerError):
    """Plex did not return the smart collection we asked for."""


class RunAborted(WatchTaggerError):
    """Nothing reachable at the start of the run, no write was attempted."""
