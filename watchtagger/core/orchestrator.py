"""Pipeline de réconciliation : sections -> items -> identité -> visionnage -> tags."""
import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import structlog

from watchtagger.core.context import SectionCache, ServerContext
from watchtagger.core.errors import FetchFailed, RunAborted
from watchtagger.core.executor import MutationExecutor
from watchtagger.core.identity import IdentityResolver
from watchtagger.core.models import (
    MOVIE,
    SHOW,
    ManagedMediaRecord,
    MediaItem,
    RequestRecord,
    RunSummary,
    Section,
    SectionSummary,
)
from watchtagger.core.tags import TagReconciler
from watchtagger.core.watch_status import WatchStatusEvaluator

logger = structlog.get_logger(__name__)

SUPPORTED_KINDS = (MOVIE, SHOW)


def history_filter(item: MediaItem) -> Dict[str, Any]:
    """Episodes are grouped under the show's rating key."""
    if item.kind == SHOW:
        return {"grandparent_rating_key": item.library_id}
    return {"rating_key": item.library_id}


class SectionOrchestrator:
    """Drives one reconciliation run over every reachable library section.

    Collaborator failures never escape this class except at the very start of
    the run (requests or sections unavailable), before anything is written.
    """

    def __init__(self, ctx: ServerContext):
        self.ctx = ctx
        self.settings = ctx.settings

    async def run(self) -> RunSummary:
        summary = RunSummary(started_at=self.ctx.now, dry_run=self.ctx.dry_run)

        try:
            drained = await self.ctx.requests.list_all_requests(self.ctx.request_filter)
            sections = await self.ctx.library.list_sections()
        except FetchFailed as e:
            logger.error("run_aborted", error=str(e))
            raise RunAborted(f"Cannot start run: {e}") from e

        requests = drained.items
        summary.requests_count = len(requests)
        summary.requests_partial = drained.partial
        logger.info(
            "run_started",
            requests=len(requests),
            requests_partial=drained.partial,
            sections=len(sections),
            dry_run=self.ctx.dry_run,
        )

        for section in sections:
            section_summary = SectionSummary(title=section.title)
            summary.sections[section.id] = section_summary

            reason = self._skip_reason(section)
            if reason:
                section_summary.status = "skipped"
                logger.info("section_skipped", section=section.title, reason=reason)
                continue

            try:
                await self.process_section(section, requests, section_summary)
            except FetchFailed as e:
                section_summary.status = "errored"
                logger.error("section_failed", section=section.title, error=str(e))

        summary.finished_at = datetime.now(timezone.utc)
        for section_summary in summary.sections.values():
            logger.info("section_summary", **section_summary.as_dict())
        logger.info("run_summary", dry_run=self.ctx.dry_run, **summary.totals())
        return summary

    def _skip_reason(self, section: Section) -> Optional[str]:
        if section.kind not in SUPPORTED_KINDS:
            return f"unsupported section type {section.kind}"
        if not self.settings.kind_enabled(section.kind):
            return f"{section.kind} tagging disabled"
        if not self.settings.section_allowed(section.id, section.title):
            return "not in section allow-list"
        return None

    async def _managed_index(self, section: Section) -> Dict[str, ManagedMediaRecord]:
        manager = self.ctx.managers.get(section.kind)
        if manager is None:
            return {}
        try:
            records = await manager.list_items()
        except FetchFailed as e:
            # Sans Radarr/Sonarr, les items restent "non gérés" pour ce run
            logger.warning("manager_unavailable", section=section.title, kind=section.kind, error=str(e))
            return {}
        return IdentityResolver.build_managed_index(records)

    async def process_section(
        self,
        section: Section,
        requests: List[RequestRecord],
        section_summary: SectionSummary,
    ) -> None:
        library = self.ctx.library
        cache = SectionCache(section=section)
        await cache.refresh_labels(library)
        await cache.refresh_collections(library)

        items = await library.list_items(section.id)
        managed_index = await self._managed_index(section)
        executor = MutationExecutor(self.ctx, cache)
        semaphore = asyncio.Semaphore(max(1, self.settings.max_concurrent_items))
        logger.info(
            "section_started",
            section=section.title,
            items=len(items),
            managed=len(managed_index),
            collections=len(cache.collections),
        )

        async def worker(item: MediaItem) -> None:
            async with semaphore:
                await self.process_item(item, section, requests, managed_index, cache, executor, section_summary)

        await asyncio.gather(*(worker(item) for item in items))

    async def process_item(
        self,
        item: MediaItem,
        section: Section,
        requests: List[RequestRecord],
        managed_index: Dict[str, ManagedMediaRecord],
        cache: SectionCache,
        executor: MutationExecutor,
        section_summary: SectionSummary,
    ) -> None:
        if not item.library_id or item.kind not in SUPPORTED_KINDS:
            section_summary.skipped += 1
            return

        try:
            request = IdentityResolver.request_for(item, requests)
            managed = IdentityResolver.resolve(item, managed_index)

            facts = None
            if request is not None:
                sessions = await self.ctx.history.list_all_history(history_filter(item))
                facts = WatchStatusEvaluator.evaluate(
                    item,
                    request,
                    sessions,
                    managed,
                    self.ctx.now,
                    self.settings.stale_added_threshold,
                    self.settings.stale_view_threshold,
                )

            ops = TagReconciler.reconcile(
                item,
                managed,
                request,
                facts,
                cache.collections,
                cache.labels,
                collections_enabled=self.settings.collections_enabled(section.kind),
            )
            result = await executor.apply(ops)
        except FetchFailed as e:
            section_summary.errored += 1
            logger.warning("item_failed", section=section.title, item=item.title, error=str(e))
            return
        except Exception:
            section_summary.errored += 1
            logger.exception("item_failed_unexpected", section=section.title, item=item.title)
            return

        section_summary.processed += 1
        section_summary.mutations += result.mutations
        section_summary.collections_created += result.collections_created
        section_summary.collections_failed += result.collections_failed
        logger.debug(
            "item_reconciled",
            item=item.title,
            requested=request is not None,
            managed=managed is not None,
            mutations=result.mutations,
        )
