"""Applique les mutations calculées par le TagReconciler."""
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import structlog

from watchtagger.core.context import SectionCache, ServerContext
from watchtagger.core.errors import CollectionCreateFailed, FetchFailed
from watchtagger.core.models import Collection, CollectionOptions, MutationOp
from watchtagger.core.tags import COLLECTION, LIBRARY, MANAGER

logger = structlog.get_logger(__name__)


@dataclass
class ExecutionResult:
    mutations: int = 0
    collections_created: int = 0
    collections_failed: int = 0


class MutationExecutor:
    """Exécute les ops d'un item : labels Plex, tags Radarr/Sonarr, puis collections.

    In dry-run mode every op is logged and nothing is written.
    """

    def __init__(self, ctx: ServerContext, cache: SectionCache):
        self.ctx = ctx
        self.cache = cache

    async def apply(self, ops: List[MutationOp]) -> ExecutionResult:
        result = ExecutionResult()
        library_ops = [op for op in ops if op.target == LIBRARY]
        manager_ops = [op for op in ops if op.target == MANAGER]
        collection_ops = [op for op in ops if op.target == COLLECTION]

        for op in library_ops:
            await self._apply_library(op)
            result.mutations += 1

        result.mutations += await self._apply_manager(manager_ops)

        # Collections last: the smart filter needs the requester label to exist
        for op in collection_ops:
            try:
                if op.action == "create_collection":
                    if await self._create_collection(op):
                        result.collections_created += 1
                        result.mutations += 1
                elif await self._add_owner_label(op):
                    result.mutations += 1
            except (CollectionCreateFailed, FetchFailed) as e:
                result.collections_failed += 1
                logger.warning(
                    "collection_write_failed",
                    section=self.cache.section.title,
                    action=op.action,
                    title=op.title,
                    error=str(e),
                )

        return result

    async def _apply_library(self, op: MutationOp) -> None:
        if self.ctx.dry_run:
            logger.info("mutation_planned", op=op.describe())
            return

        library = self.ctx.library
        if op.action == "add":
            await library.add_label(op.section_id, op.kind, op.item_id, op.tag)
            if op.new_label:
                self.cache.labels_stale = True
        else:
            await library.remove_label(op.section_id, op.kind, op.item_id, op.tag)
        logger.info("library_label_updated", action=op.action, label=op.tag, item_id=op.item_id)

    async def _apply_manager(self, ops: List[MutationOp]) -> int:
        if not ops:
            return 0

        # Un seul read-modify-write par enregistrement
        grouped: Dict[Tuple[str, str], Dict[str, List[str]]] = defaultdict(
            lambda: {"add": [], "remove": []}
        )
        for op in ops:
            grouped[(op.kind, op.item_id)][op.action].append(op.tag)

        count = 0
        for (kind, manager_id), changes in grouped.items():
            count += len(changes["add"]) + len(changes["remove"])
            if self.ctx.dry_run:
                logger.info(
                    "mutation_planned",
                    target=MANAGER,
                    manager_id=manager_id,
                    add=changes["add"],
                    remove=changes["remove"],
                )
                continue
            manager = self.ctx.managers.get(kind)
            if manager is None:
                logger.warning("manager_missing_for_kind", kind=kind, manager_id=manager_id)
                continue
            await manager.apply_tags(int(manager_id), changes["add"], changes["remove"])
            logger.info(
                "manager_tags_updated",
                kind=kind,
                manager_id=manager_id,
                add=changes["add"],
                remove=changes["remove"],
            )
        return count

    async def _create_collection(self, op: MutationOp) -> bool:
        library = self.ctx.library
        async with self.cache.collection_lock:
            # Another worker may have created it since the reconciler looked
            if self.cache.has_collection(op.title):
                return False

            if self.ctx.dry_run:
                logger.info("mutation_planned", op=op.describe())
                labels = [op.owner_tag] if op.owner_tag else []
                self.cache.collections.append(Collection(id="dry-run", title=op.title, labels=labels))
                return True

            if self.cache.labels_stale or self.cache.label_key(op.tag) is None:
                await self.cache.refresh_labels(library)
            label_key = self.cache.label_key(op.tag)
            if label_key is None:
                raise CollectionCreateFailed(f"Label {op.tag!r} not found in section {op.section_id}")

            collection = await library.create_smart_collection(CollectionOptions(
                section_id=op.section_id,
                title=op.title,
                kind=op.kind,
                label_key=label_key,
                title_sort=self._sort_title(op.title),
            ))
            if collection is None:
                raise CollectionCreateFailed(f"Plex returned no collection for {op.title!r}")
            self.cache.collections.append(collection)
            logger.info(
                "collection_created",
                section=self.cache.section.title,
                title=op.title,
                collection_id=collection.id,
            )

            if op.owner_tag:
                try:
                    await self._label_collection(collection, op.owner_tag)
                except FetchFailed as e:
                    # La collection existe : le prochain passage reposera le label
                    logger.warning(
                        "collection_owner_label_failed",
                        section=self.cache.section.title,
                        title=op.title,
                        label=op.owner_tag,
                        error=str(e),
                    )
            return True

    def _sort_title(self, title: str) -> Optional[str]:
        prefix = self.ctx.settings.collection_sort_prefix
        return f"{prefix}{title}" if prefix else None

    async def _add_owner_label(self, op: MutationOp) -> bool:
        """Pose le label owner sur une collection existante qui ne l'a pas."""
        async with self.cache.collection_lock:
            collection = self.cache.collection(op.title)
            if collection is None or op.tag in collection.labels:
                return False

            if self.ctx.dry_run:
                logger.info("mutation_planned", op=op.describe())
                collection.labels.append(op.tag)
                return True

            await self._label_collection(collection, op.tag)
            return True

    async def _label_collection(self, collection: Collection, label: str) -> None:
        await self.ctx.library.add_label(self.cache.section.id, COLLECTION, collection.id, label)
        if label not in collection.labels:
            collection.labels.append(label)
        self.cache.labels_stale = True
        logger.info("collection_labeled", title=collection.title, label=label, collection_id=collection.id)
