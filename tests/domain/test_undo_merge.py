from __future__ import annotations

from datetime import UTC, datetime

import pytest

from commonplace.domain.merging import (
    MergeNotFoundError,
    MergePreconditionError,
    RecordNotFoundError,
    merge_records,
    undo_merge,
)
from commonplace.domain.model import (
    AirtableExtract,
    ChildType,
    IndexEntry,
    IndexMainType,
    IndexRole,
    IntegrationSource,
    Media,
    MergeSnapshot,
    Record,
    RecordExternalId,
    RecordIndexEntry,
    RecordType,
    record_from_state,
    record_state,
)
from tests.support.graph import FakeGraphUnitOfWork, InMemoryGraph

MERGED_AT = datetime(2024, 6, 1, tzinfo=UTC)
UNDONE_AT = datetime(2024, 6, 2, tzinfo=UTC)


@pytest.fixture
def graph() -> InMemoryGraph:
    return InMemoryGraph()


@pytest.fixture
def uow(graph: InMemoryGraph) -> FakeGraphUnitOfWork:
    return FakeGraphUnitOfWork(graph)


def _merge(uow: FakeGraphUnitOfWork, source: Record, target: Record) -> int:
    assert source.id is not None
    assert target.id is not None
    outcome = merge_records(uow, source_id=source.id, target_id=target.id, now=MERGED_AT)
    assert outcome.merge is not None
    assert outcome.merge.id is not None
    return outcome.merge.id


def test_record_state_survives_a_json_shaped_copy() -> None:
    record = Record(
        id=4,
        type=RecordType.CONCEPT,
        title="Essay",
        rating=2,
        sources={IntegrationSource.READWISE, IntegrationSource.AIRTABLE},
        parent_id=1,
        child_type=ChildType.PART_OF,
        order_key="a0",
        text_embedding=[0.5],
        record_created_at=MERGED_AT,
        content_created_at=None,
    )

    state = record_state(record)
    restored = record_from_state(state)

    assert state["sources"] == ["airtable", "readwise"]
    assert state["record_created_at"] == MERGED_AT.isoformat()
    assert "text_embedding" not in state
    assert restored.type is RecordType.CONCEPT
    assert restored.child_type is ChildType.PART_OF
    assert restored.sources == {IntegrationSource.READWISE, IntegrationSource.AIRTABLE}
    assert restored.record_created_at == MERGED_AT
    assert restored.text_embedding is None


def test_merge_stores_a_snapshot_that_serialises(
    uow: FakeGraphUnitOfWork, graph: InMemoryGraph
) -> None:
    source = graph.add_record(title="Source")
    target = graph.add_record(title="Target")
    assert source.id and target.id
    related = uow.repositories.predicates.id_for("related_to")
    uow.repositories.links.add_if_absent(source.id, target.id, related)

    _merge(uow, source, target)

    [audit] = graph.merges
    assert audit.snapshot is not None
    assert audit.snapshot.source["title"] == "Source"
    assert MergeSnapshot.from_dict(audit.snapshot.to_dict()) == audit.snapshot


def test_undo_restores_source_fields_and_target_fields(
    uow: FakeGraphUnitOfWork, graph: InMemoryGraph
) -> None:
    source = graph.add_record(
        title="Source", summary="from source", rating=3, sources={IntegrationSource.GITHUB}
    )
    target = graph.add_record(
        title="Target", summary="from target", rating=1, sources={IntegrationSource.AIRTABLE}
    )
    source_id = source.id
    assert source_id is not None
    merge_id = _merge(uow, source, target)

    outcome = undo_merge(uow, merge_id=merge_id, now=UNDONE_AT)

    restored = graph.records[source_id]
    assert outcome.record is restored
    assert (restored.title, restored.summary, restored.rating) == ("Source", "from source", 3)
    assert restored.sources == {IntegrationSource.GITHUB}
    assert (target.summary, target.rating) == ("from target", 1)
    assert target.sources == {IntegrationSource.AIRTABLE}
    assert target.text_embedding is None
    assert graph.merges[0].undone_at == UNDONE_AT


def test_undo_hands_back_links_assignments_media_staging_and_provenance(
    uow: FakeGraphUnitOfWork, graph: InMemoryGraph
) -> None:
    source = graph.add_record(title="Source")
    target = graph.add_record(title="Target")
    neighbour = graph.add_record(title="Neighbour")
    assert source.id and target.id and neighbour.id
    related = uow.repositories.predicates.id_for("related_to")
    uow.repositories.links.add_if_absent(source.id, neighbour.id, related)
    uow.repositories.links.add_if_absent(target.id, neighbour.id, related)
    uow.repositories.links.add_if_absent(source.id, target.id, related)
    graph.index_entries[50] = IndexEntry(id=50, main_type=IndexMainType.CATEGORY, name="python")
    graph.record_index_entries.extend(
        [
            RecordIndexEntry(id=60, record_id=source.id, index_entry_id=50, role=IndexRole.TAG),
            RecordIndexEntry(id=61, record_id=target.id, index_entry_id=50, role=IndexRole.TAG),
        ]
    )
    graph.media[70] = Media(id=70, url="https://img.example/a.png", record_id=source.id)
    graph.external_ids.append(
        RecordExternalId(
            source=IntegrationSource.AIRTABLE,
            namespace="airtable_extracts",
            external_id="rec1",
            record_id=source.id,
        )
    )
    row = AirtableExtract(external_id="rec1", canonical_id=source.id)
    kept = AirtableExtract(external_id="rec2", canonical_id=target.id)
    graph.add_staging(row, kept)
    merge_id = _merge(uow, source, target)

    undo_merge(uow, merge_id=merge_id, now=UNDONE_AT)

    assert graph.link_keys() == {
        (source.id, neighbour.id, "related_to"),
        (target.id, neighbour.id, "related_to"),
        (source.id, target.id, "related_to"),
    }
    assignments = {
        (item.record_id, item.index_entry_id, item.role) for item in graph.record_index_entries
    }
    assert assignments == {(source.id, 50, IndexRole.TAG), (target.id, 50, IndexRole.TAG)}
    assert graph.media[70].record_id == source.id
    assert row.canonical_id == source.id
    assert kept.canonical_id == target.id
    assert graph.external_ids[0].record_id == source.id


def test_undo_keeps_what_the_target_gained_after_the_merge(
    uow: FakeGraphUnitOfWork, graph: InMemoryGraph
) -> None:
    source = graph.add_record(title="Source")
    target = graph.add_record(title="Target")
    later = graph.add_record(title="Later")
    assert source.id and target.id and later.id
    merge_id = _merge(uow, source, target)
    related = uow.repositories.predicates.id_for("related_to")
    uow.repositories.links.add_if_absent(target.id, later.id, related)

    undo_merge(uow, merge_id=merge_id)

    assert graph.link_keys() == {(target.id, later.id, "related_to")}


def test_undo_puts_children_back_in_their_old_slots(
    uow: FakeGraphUnitOfWork, graph: InMemoryGraph
) -> None:
    source = graph.add_record(title="Source")
    target = graph.add_record(title="Target")
    assert source.id and target.id
    own = graph.add_record(parent_id=target.id, child_type=ChildType.PART_OF, order_key="a")
    moved = graph.add_record(parent_id=source.id, child_type=ChildType.REPLY_TO, order_key="c")
    merge_id = _merge(uow, source, target)
    assert moved.parent_id == target.id

    undo_merge(uow, merge_id=merge_id)

    assert (moved.parent_id, moved.child_type, moved.order_key) == (
        source.id,
        ChildType.REPLY_TO,
        "c",
    )
    assert (own.parent_id, own.order_key) == (target.id, "a")


def test_undo_of_an_ancestor_merge_rebuilds_the_chain(
    uow: FakeGraphUnitOfWork, graph: InMemoryGraph
) -> None:
    top = graph.add_record(title="Top")
    assert top.id is not None
    middle = graph.add_record(
        title="Middle", parent_id=top.id, child_type=ChildType.PART_OF, order_key="a"
    )
    assert middle.id is not None
    leaf = graph.add_record(
        title="Leaf", parent_id=middle.id, child_type=ChildType.PART_OF, order_key="b"
    )
    top_id = top.id
    merge_id = _merge(uow, top, leaf)

    undo_merge(uow, merge_id=merge_id)

    assert (middle.parent_id, middle.order_key) == (top_id, "a")
    assert (leaf.parent_id, leaf.order_key) == (middle.id, "b")
    assert graph.records[top_id].parent_id is None


def test_undo_refuses_when_source_id_exists_again(
    uow: FakeGraphUnitOfWork, graph: InMemoryGraph
) -> None:
    source = graph.add_record(title="Source")
    target = graph.add_record(title="Target")
    source_id = source.id
    merge_id = _merge(uow, source, target)
    graph.add_record(Record(id=source_id, title="Squatter"))

    with pytest.raises(MergePreconditionError):
        undo_merge(uow, merge_id=merge_id)

    assert graph.merges[0].undone_at is None


def test_undo_twice_is_refused(uow: FakeGraphUnitOfWork, graph: InMemoryGraph) -> None:
    merge_id = _merge(uow, graph.add_record(title="Source"), graph.add_record(title="Target"))
    undo_merge(uow, merge_id=merge_id)

    with pytest.raises(MergePreconditionError, match="already undone"):
        undo_merge(uow, merge_id=merge_id)


def test_undo_of_unknown_merge_is_refused(uow: FakeGraphUnitOfWork) -> None:
    with pytest.raises(MergeNotFoundError) as excinfo:
        undo_merge(uow, merge_id=404)

    assert excinfo.value.merge_id == 404


def test_undo_needs_the_surviving_target(
    uow: FakeGraphUnitOfWork, graph: InMemoryGraph
) -> None:
    target = graph.add_record(title="Target")
    target_id = target.id
    merge_id = _merge(uow, graph.add_record(title="Source"), target)
    uow.repositories.records.remove(target)

    with pytest.raises(RecordNotFoundError) as excinfo:
        undo_merge(uow, merge_id=merge_id)

    assert excinfo.value.record_id == target_id
