"""Idempotent label/tag reconciliation.

Every add/remove is a set difference against the current tags, so running the
reconciler again on the mutated state yields no operation.
"""
import re
from typing import Callable, Iterable, List, Optional, Set

from watchtagger.core.models import (
    KIND_PREFIX,
    Collection,
    Label,
    ManagedMediaRecord,
    MediaItem,
    MutationOp,
    RequestRecord,
    WatchFacts,
)

NOT_REQUESTED = "not_requested"
REQUESTER_WATCHED = "requester_watched"
OTHERS_WATCHING = "others_watching"
STALE_REQUEST = "stale_request"
REQUESTER_PREFIX = "requester:"
OWNER_PREFIX = "owner:"

STATUS_TAGS = (NOT_REQUESTED, REQUESTER_WATCHED, OTHERS_WATCHING, STALE_REQUEST)

LIBRARY = "library"
MANAGER = "manager"
COLLECTION = "collection"


def normalize_tag(tag: str) -> str:
    return (tag or "").strip().lower()


def manager_tag(tag: str) -> str:
    """Radarr/Sonarr only accept ``[a-z0-9-]`` in tag labels.

    ``:`` becomes ``--`` so ``requester:watched`` and ``requester_watched`` stay
    distinct. Other punctuation collapses to a single ``-``: ``requester:a.b``
    and ``requester:a_b`` both give ``requester--a-b``.
    """
    return re.sub(r"[^a-z0-9-]+", "-", normalize_tag(tag).replace(":", "--")).strip("-")


def requester_tag(username: str) -> str:
    return normalize_tag(f"{REQUESTER_PREFIX}{username}")


def owner_tag(username: str) -> str:
    return normalize_tag(f"{OWNER_PREFIX}{username}")


def collection_title(kind: str, request: RequestRecord) -> str:
    prefix = KIND_PREFIX.get(kind, "Movies")
    return f"{prefix} Requested by {request.requester_label}"


def desired_tags(request: Optional[RequestRecord], facts: Optional[WatchFacts]) -> Set[str]:
    """Tags de statut qui doivent être présents sur l'item."""
    if request is None:
        return {NOT_REQUESTED}

    wanted = {requester_tag(request.requester_username)}
    if facts is not None:
        if facts.requester_fully_watched:
            wanted.add(REQUESTER_WATCHED)
        if facts.others_watching:
            wanted.add(OTHERS_WATCHING)
        if facts.is_stale:
            wanted.add(STALE_REQUEST)
    return wanted


class TagReconciler:
    """Turns request/watch facts into the minimal set of label and tag writes."""

    @staticmethod
    def _diff(
        current: Iterable[str],
        wanted: Set[str],
        owned: Callable[[str], bool],
    ):
        current_set = {normalize_tag(t) for t in current if t}
        to_add = sorted(wanted - current_set)
        to_remove = sorted(t for t in current_set if owned(t) and t not in wanted)
        return to_add, to_remove

    @staticmethod
    def _library_owned(tag: str) -> bool:
        return tag in STATUS_TAGS or tag.startswith(REQUESTER_PREFIX)

    @staticmethod
    def _manager_owned(tag: str) -> bool:
        # "requester-" covers "requester--<user>" and the older single-dash form
        return tag in {manager_tag(t) for t in STATUS_TAGS} or tag.startswith("requester-")

    @classmethod
    def reconcile(
        cls,
        item: MediaItem,
        managed: Optional[ManagedMediaRecord],
        request: Optional[RequestRecord],
        facts: Optional[WatchFacts],
        existing_collections: Iterable[Collection],
        existing_labels: Iterable[Label],
        collections_enabled: bool = False,
    ) -> List[MutationOp]:
        wanted = desired_tags(request, facts)
        known_labels = {normalize_tag(label.title) for label in existing_labels}
        ops: List[MutationOp] = []

        to_add, to_remove = cls._diff(item.labels, wanted, cls._library_owned)
        for tag in to_add:
            ops.append(MutationOp(
                action="add",
                target=LIBRARY,
                tag=tag,
                item_id=item.library_id,
                section_id=item.section_id,
                kind=item.kind,
                new_label=tag not in known_labels,
            ))
        for tag in to_remove:
            ops.append(MutationOp(
                action="remove",
                target=LIBRARY,
                tag=tag,
                item_id=item.library_id,
                section_id=item.section_id,
                kind=item.kind,
            ))

        if managed is not None:
            wanted_managed = {manager_tag(t) for t in wanted}
            to_add, to_remove = cls._diff(
                [manager_tag(t) for t in managed.tags], wanted_managed, cls._manager_owned
            )
            for tag in to_add:
                ops.append(MutationOp(
                    action="add", target=MANAGER, tag=tag,
                    item_id=str(managed.manager_id), kind=item.kind,
                ))
            for tag in to_remove:
                ops.append(MutationOp(
                    action="remove", target=MANAGER, tag=tag,
                    item_id=str(managed.manager_id), kind=item.kind,
                ))

        if request is not None and collections_enabled:
            title = collection_title(item.kind, request)
            owner = owner_tag(request.requester_username)
            existing = next((c for c in existing_collections if c.title == title), None)
            if existing is None:
                ops.append(MutationOp(
                    action="create_collection",
                    target=COLLECTION,
                    tag=requester_tag(request.requester_username),
                    section_id=item.section_id,
                    kind=item.kind,
                    title=title,
                    owner_tag=owner,
                ))
            elif owner not in {normalize_tag(label) for label in existing.labels}:
                # Collection créée mais label owner perdu (écriture échouée)
                ops.append(MutationOp(
                    action="add",
                    target=COLLECTION,
                    tag=owner,
                    item_id=existing.id,
                    section_id=item.section_id,
                    kind=item.kind,
                    title=title,
                ))

        return ops
