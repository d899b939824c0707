from __future__ import annotations

from typing import List, Optional

from watchtagger.core.models import (
    MOVIE,
    SHOW,
    Collection,
    Label,
    ManagedMediaRecord,
    MediaItem,
    MutationOp,
    RequestRecord,
    WatchFacts,
)
from watchtagger.core.tags import (
    COLLECTION,
    LIBRARY,
    MANAGER,
    TagReconciler,
    collection_title,
    manager_tag,
)


def _apply(
    ops: List[MutationOp],
    item: MediaItem,
    managed: Optional[ManagedMediaRecord],
    collections: List[Collection],
) -> None:
    for op in ops:
        if op.target == LIBRARY:
            if op.action == "add":
                item.labels.append(op.tag)
            else:
                item.labels.remove(op.tag)
        elif op.target == MANAGER:
            if op.action == "add":
                managed.tags.append(op.tag)
            else:
                managed.tags.remove(op.tag)
        elif op.action == "create_collection":
            collections.append(Collection(id=str(len(collections) + 1), title=op.title, labels=[op.owner_tag]))
        else:
            next(c for c in collections if c.id == op.item_id).labels.append(op.tag)


def _summary(ops: List[MutationOp]) -> List[tuple]:
    return [(op.action, op.target, op.tag) for op in ops]


def _alice_request(display_name: Optional[str] = None) -> RequestRecord:
    return RequestRecord(id=1, media_library_id="42", requester_username="alice", requester_display_name=display_name)


class TestManagerTag:
    def test_maps_forbidden_characters(self) -> None:
        assert manager_tag("requester:Alice") == "requester--alice"
        assert manager_tag("requester_watched") == "requester-watched"
        assert manager_tag("requester:john.doe@mail") == "requester--john-doe-mail"

    def test_colon_does_not_collide_with_underscore(self) -> None:
        assert manager_tag("requester:watched") == "requester--watched"
        assert manager_tag("requester:watched") != manager_tag("requester_watched")

    def test_mapping_is_stable_on_mapped_tags(self) -> None:
        assert manager_tag(manager_tag("requester:Alice")) == "requester--alice"


class TestScenarios:
    def test_not_requested_item(self) -> None:
        item = MediaItem(library_id="42", section_id="1", kind=MOVIE, title="Movie")

        ops = TagReconciler.reconcile(item, None, None, None, [], [], collections_enabled=True)

        assert _summary(ops) == [("add", LIBRARY, "not_requested")]
        assert ops[0].new_label is True

    def test_not_requested_also_tags_managed_record(self) -> None:
        item = MediaItem(library_id="42", section_id="1", kind=MOVIE, title="Movie", labels=["not_requested"])
        managed = ManagedMediaRecord(manager_id=7, external_id="123", tags=["keep-me"])

        ops = TagReconciler.reconcile(item, managed, None, None, [], [Label("1", "not_requested")])

        assert _summary(ops) == [("add", MANAGER, "not-requested")]
        assert ops[0].item_id == "7"

    def test_fully_watched_movie(self) -> None:
        item = MediaItem(
            library_id="42", section_id="1", kind=MOVIE, title="Movie",
            external_ids={"tmdb": "123"}, labels=["not_requested", "4k"],
        )
        managed = ManagedMediaRecord(manager_id=7, external_id="123", tags=["not-requested"])
        facts = WatchFacts(requester_fully_watched=True)

        ops = TagReconciler.reconcile(
            item, managed, _alice_request("Alice"), facts, [], [Label("9", "requester:alice")],
            collections_enabled=True,
        )

        assert _summary(ops) == [
            ("add", LIBRARY, "requester:alice"),
            ("add", LIBRARY, "requester_watched"),
            ("remove", LIBRARY, "not_requested"),
            ("add", MANAGER, "requester--alice"),
            ("add", MANAGER, "requester-watched"),
            ("remove", MANAGER, "not-requested"),
            ("create_collection", COLLECTION, "requester:alice"),
        ]
        assert ops[0].new_label is False
        assert ops[1].new_label is True
        assert ops[-1].title == "Movies Requested by Alice"
        assert ops[-1].owner_tag == "owner:alice"

    def test_previous_requester_tag_is_replaced(self) -> None:
        item = MediaItem(library_id="42", section_id="1", kind=SHOW, title="Show", labels=["requester:bob", "stale_request"])

        ops = TagReconciler.reconcile(item, None, _alice_request(), WatchFacts(others_watching=True), [], [])

        assert _summary(ops) == [
            ("add", LIBRARY, "others_watching"),
            ("add", LIBRARY, "requester:alice"),
            ("remove", LIBRARY, "requester:bob"),
            ("remove", LIBRARY, "stale_request"),
        ]

    def test_existing_collection_is_not_recreated(self) -> None:
        item = MediaItem(library_id="42", section_id="2", kind=SHOW, title="Show")
        existing = [Collection(id="5", title=collection_title(SHOW, _alice_request()))]

        ops = TagReconciler.reconcile(item, None, _alice_request(), WatchFacts(), existing, [], collections_enabled=True)

        assert existing[0].title == "TV Shows Requested by alice"
        assert all(op.action != "create_collection" for op in ops)

    def test_collection_missing_its_owner_label_is_repaired(self) -> None:
        item = MediaItem(library_id="42", section_id="2", kind=SHOW, title="Show")
        existing = [Collection(id="5", title=collection_title(SHOW, _alice_request()), labels=["other"])]

        ops = TagReconciler.reconcile(item, None, _alice_request(), WatchFacts(), existing, [], collections_enabled=True)

        repair = [op for op in ops if op.target == COLLECTION]
        assert _summary(repair) == [("add", COLLECTION, "owner:alice")]
        assert repair[0].item_id == "5"
        assert repair[0].title == "TV Shows Requested by alice"

    def test_labelled_collection_needs_nothing(self) -> None:
        item = MediaItem(library_id="42", section_id="2", kind=SHOW, title="Show")
        existing = [Collection(id="5", title=collection_title(SHOW, _alice_request()), labels=["Owner:Alice"])]

        ops = TagReconciler.reconcile(item, None, _alice_request(), WatchFacts(), existing, [], collections_enabled=True)

        assert all(op.target != COLLECTION for op in ops)

    def test_collections_disabled(self) -> None:
        item = MediaItem(library_id="42", section_id="1", kind=MOVIE, title="Movie")

        ops = TagReconciler.reconcile(item, None, _alice_request(), WatchFacts(), [], [], collections_enabled=False)

        assert all(op.target != COLLECTION for op in ops)


class TestIdempotency:
    def test_second_pass_on_mutated_state_is_empty(self) -> None:
        cases = [
            (None, None),
            (_alice_request("Alice"), WatchFacts(requester_fully_watched=True, others_watching=True)),
            (_alice_request(), WatchFacts(is_stale=True)),
            (_alice_request(), WatchFacts()),
        ]
        for request, facts in cases:
            item = MediaItem(
                library_id="42", section_id="1", kind=MOVIE, title="Movie",
                labels=["requester:bob", "others_watching", "4k"],
            )
            managed = ManagedMediaRecord(manager_id=7, external_id="123", tags=["requester-bob", "keep"])
            collections: List[Collection] = []

            first = TagReconciler.reconcile(item, managed, request, facts, collections, [], collections_enabled=True)
            _apply(first, item, managed, collections)
            second = TagReconciler.reconcile(item, managed, request, facts, collections, [], collections_enabled=True)

            assert first
            assert second == []
            assert "4k" in item.labels
            assert "keep" in managed.tags
