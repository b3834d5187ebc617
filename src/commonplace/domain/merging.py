"""Fold a duplicate record into a surviving record.

``merge_record_fields`` is the pure field policy. ``merge_records`` runs it
inside the caller's unit of work and moves everything that referenced the
discarded record over to the survivor.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING, Final

from commonplace.domain.model import (
    AssignmentState,
    CanonicalKind,
    ChildState,
    ChildType,
    ExternalIdState,
    IntegrationSource,
    LinkState,
    MergeReason,
    MergeSnapshot,
    Record,
    RecordMerge,
    RecordType,
    StagingPointer,
    record_from_state,
    record_state,
)
from commonplace.domain.ordering import generate_order_key

if TYPE_CHECKING:
    from collections.abc import Sequence

    from commonplace.domain.ports.persistence import (
        LinkRepository,
        MediaRepository,
        RecordIndexEntryRepository,
        RecordRepository,
    )
    from commonplace.domain.ports.unit_of_work import GraphRepositories, GraphUnitOfWork

log = getLogger(__name__)

TEXT_SEPARATOR: Final[str] = "\n---\n"


class MergePreconditionError(ValueError):
    """Raised before any mutation when a merge request is not valid."""


class RecordNotFoundError(MergePreconditionError):
    def __init__(self, record_id: int) -> None:
        super().__init__(f"Record {record_id} does not exist")
        self.record_id = record_id


class MergeNotFoundError(MergePreconditionError):
    def __init__(self, merge_id: int) -> None:
        super().__init__(f"Merge {merge_id} does not exist")
        self.merge_id = merge_id


@dataclass(frozen=True, slots=True, kw_only=True)
class MergedRecordFields:
    """Field values the surviving record adopts."""

    type: RecordType
    title: str | None
    url: str | None
    summary: str | None
    content: str | None
    notes: str | None
    media_caption: str | None
    avatar_url: str | None
    rating: int
    is_private: bool
    is_curated: bool
    sources: frozenset[IntegrationSource]
    parent_id: int | None
    child_type: ChildType | None
    order_key: str | None
    text_embedding: None = None
    record_created_at: datetime
    record_updated_at: datetime
    content_created_at: datetime | None
    content_updated_at: datetime | None

    def apply_to(self, record: Record) -> None:
        for item in fields(self):
            value = getattr(self, item.name)
            if item.name == "sources":
                value = set(value)
            setattr(record, item.name, value)


def _is_blank(value: object) -> bool:
    return value is None or value == ""


def _prefer_target[T](target: T, source: T) -> T:
    return source if _is_blank(target) else target


def _concat_text(target: str | None, source: str | None) -> str | None:
    if not _is_blank(target) and not _is_blank(source):
        return f"{target}{TEXT_SEPARATOR}{source}"
    if not _is_blank(target):
        return target
    if not _is_blank(source):
        return source
    return None


def _earliest(first: datetime | None, second: datetime | None) -> datetime | None:
    if first is None:
        return second
    if second is None:
        return first
    return min(first, second)


def _latest(first: datetime | None, second: datetime | None) -> datetime | None:
    if first is None:
        return second
    if second is None:
        return first
    return max(first, second)


def _placement(
    source: Record, target: Record, *, target_under_source: bool
) -> tuple[int | None, ChildType | None, str | None]:
    # parent, child type and order key only make sense together
    placement = (target.parent_id, target.child_type, target.order_key)
    if target.parent_id is None or target_under_source:
        placement = (source.parent_id, source.child_type, source.order_key)
    if placement[0] is None or placement[0] == target.id:
        return (None, None, None)
    return placement


def merge_record_fields(
    source: Record, target: Record, *, now: datetime, target_under_source: bool | None = None
) -> MergedRecordFields:
    """Compute the fields ``target`` adopts when ``source`` is merged into it.

    Not commutative: scalar fields prefer the target's non-empty value. When the
    target sits anywhere below the source it takes over the source's placement;
    ``target_under_source`` defaults to checking the direct parent only.
    """

    if target_under_source is None:
        target_under_source = target.parent_id == source.id
    parent_id, child_type, order_key = _placement(
        source, target, target_under_source=target_under_source
    )
    record_created_at = _earliest(source.record_created_at, target.record_created_at)
    return MergedRecordFields(
        type=target.type,
        title=_prefer_target(target.title, source.title),
        url=_prefer_target(target.url, source.url),
        summary=_concat_text(target.summary, source.summary),
        content=_concat_text(target.content, source.content),
        notes=_concat_text(target.notes, source.notes),
        media_caption=_prefer_target(target.media_caption, source.media_caption),
        avatar_url=_prefer_target(target.avatar_url, source.avatar_url),
        rating=max(source.rating, target.rating),
        is_private=source.is_private or target.is_private,
        is_curated=source.is_curated or target.is_curated,
        sources=frozenset(target.sources | source.sources),
        parent_id=parent_id,
        child_type=child_type,
        order_key=order_key,
        record_created_at=record_created_at or now,
        record_updated_at=now,
        content_created_at=_earliest(source.content_created_at, target.content_created_at),
        content_updated_at=_latest(source.content_updated_at, target.content_updated_at),
    )


@dataclass(slots=True)
class MergeOutcome:
    record: Record
    deleted_record_id: int
    touched_ids: set[int] = field(default_factory=set)
    merge: RecordMerge | None = None


def merge_records(
    unit_of_work: GraphUnitOfWork,
    *,
    source_id: int,
    target_id: int,
    now: datetime | None = None,
    reason: MergeReason = MergeReason.MANUAL,
    created_by: str | None = None,
) -> MergeOutcome:
    """Merge ``source_id`` into ``target_id`` within an open unit of work.

    The caller commits. Links, index entry assignments, media, staging pointers,
    provenance rows and children move to the target; the source is deleted.
    """

    if source_id == target_id:
        raise MergePreconditionError(f"Cannot merge record {source_id} into itself")

    repositories = unit_of_work.repositories
    source = repositories.records.get(source_id)
    if source is None:
        raise RecordNotFoundError(source_id)
    target = repositories.records.get(target_id)
    if target is None:
        raise RecordNotFoundError(target_id)

    moment = now or datetime.now(tz=UTC)
    snapshot = capture_snapshot(repositories, source, target)
    merged = merge_record_fields(
        source,
        target,
        now=moment,
        target_under_source=_is_ancestor(repositories.records, source_id, target),
    )

    touched = _repoint_links(repositories.links, source_id, target_id)
    _repoint_index_entries(repositories.record_index_entries, source_id, target_id)
    moved_media = repositories.media.reassign_owner(source_id, target_id)
    moved_staging = repositories.staging.repoint(CanonicalKind.RECORD, source_id, target_id)
    repositories.records.repoint_external_ids(source_id, target_id)
    touched |= _adopt_children(repositories.records, source_id, target_id)

    repositories.records.remove(source)
    merged.apply_to(target)
    audit = RecordMerge(
        source_id=source_id,
        target_id=target_id,
        reason=reason,
        merged_at=moment,
        created_by=created_by,
        snapshot=snapshot,
    )
    repositories.merges.add(audit)

    touched.discard(source_id)
    touched.discard(target_id)
    repositories.records.invalidate_embeddings(touched)
    log.info(
        "Merged record %s into %s: neighbours=%s, media=%s, staging_rows=%s",
        source_id,
        target_id,
        len(touched),
        moved_media,
        moved_staging,
    )
    return MergeOutcome(
        record=target, deleted_record_id=source_id, touched_ids=touched, merge=audit
    )


def _repoint_links(links: LinkRepository, source_id: int, target_id: int) -> set[int]:
    neighbours: set[int] = set()
    for link in list(links.touching(source_id)):
        new_source = target_id if link.source_id == source_id else link.source_id
        new_target = target_id if link.target_id == source_id else link.target_id
        neighbours.update((new_source, new_target))
        if new_source == new_target or links.exists(new_source, new_target, link.predicate_id):
            links.remove(link)
            continue
        link.source_id = new_source
        link.target_id = new_target
    return neighbours


def _repoint_index_entries(
    assignments: RecordIndexEntryRepository, source_id: int, target_id: int
) -> None:
    for row in list(assignments.for_record(source_id)):
        if assignments.exists(target_id, row.index_entry_id, row.role):
            assignments.remove(row)
            continue
        row.record_id = target_id


def _adopt_children(records: RecordRepository, source_id: int, target_id: int) -> set[int]:
    children = [child for child in records.children_of(source_id) if child.id != target_id]
    last_key = records.last_child_order_key(target_id)
    adopted: set[int] = set()
    for child in children:
        last_key = generate_order_key(last_key, None)
        child.place_under(target_id, child.child_type or ChildType.PART_OF, last_key)
        if child.id is not None:
            adopted.add(child.id)
    return adopted


def _is_ancestor(records: RecordRepository, ancestor_id: int, record: Record) -> bool:
    seen: set[int] = set()
    parent_id = record.parent_id
    while parent_id is not None and parent_id not in seen:
        if parent_id == ancestor_id:
            return True
        seen.add(parent_id)
        parent = records.get(parent_id)
        parent_id = parent.parent_id if parent is not None else None
    return False


# Undo -----------------------------------------------------------------------------


def capture_snapshot(
    repositories: GraphRepositories, source: Record, target: Record
) -> MergeSnapshot:
    """Record what a merge of ``source`` into ``target`` is about to change."""

    if source.id is None or target.id is None:
        raise MergePreconditionError("Only stored records can be merged")

    links: dict[tuple[int, int, int], LinkState] = {}
    for record_id in (source.id, target.id):
        for link in repositories.links.touching(record_id):
            links.setdefault(link.key, LinkState(*link.key))
    assignments = [
        AssignmentState(row.record_id, row.index_entry_id, row.role)
        for record_id in (source.id, target.id)
        for row in repositories.record_index_entries.for_record(record_id)
    ]
    return MergeSnapshot(
        source=record_state(source),
        target=record_state(target),
        links=tuple(links.values()),
        assignments=tuple(assignments),
        media_ids=tuple(
            media.id for media in repositories.media.for_record(source.id) if media.id is not None
        ),
        staging=tuple(
            StagingPointer(row.NAMESPACE, row.external_id)
            for row in repositories.staging.pointing_at(CanonicalKind.RECORD, source.id)
        ),
        external_ids=tuple(
            ExternalIdState(external.source, external.namespace, external.external_id)
            for external in repositories.records.external_ids_for(source.id)
        ),
        children=tuple(
            ChildState(child.id, child.child_type, child.order_key)
            for child in repositories.records.children_of(source.id)
            if child.id is not None and child.id != target.id
        ),
    )


@dataclass(slots=True)
class UndoOutcome:
    record: Record
    target: Record
    merge: RecordMerge
    touched_ids: set[int] = field(default_factory=set)


def undo_merge(
    unit_of_work: GraphUnitOfWork, *, merge_id: int, now: datetime | None = None
) -> UndoOutcome:
    """Recreate the source of merge ``merge_id`` and hand back what it owned.

    Refuses when the source id has been reused. Links, index entries and
    provenance the target gained after the merge stay with the target. The
    caller commits.
    """

    repositories = unit_of_work.repositories
    merge = repositories.merges.get(merge_id)
    if merge is None:
        raise MergeNotFoundError(merge_id)
    if merge.undone_at is not None:
        raise MergePreconditionError(f"Merge {merge_id} was already undone")
    snapshot = merge.snapshot
    if snapshot is None:
        raise MergePreconditionError(f"Merge {merge_id} has no snapshot to restore")
    source_id, target_id = merge.source_id, merge.target_id
    if repositories.records.get(source_id) is not None:
        raise MergePreconditionError(
            f"Cannot undo merge {merge_id}: record {source_id} exists again"
        )
    target = repositories.records.get(target_id)
    if target is None:
        raise RecordNotFoundError(target_id)

    source = record_from_state(snapshot.source)
    placement = (source.parent_id, source.child_type, source.order_key)
    # the target may hold the source's old slot until its own fields come back
    source.parent_id, source.child_type, source.order_key = None, None, None
    repositories.records.add(source)

    external_keys = set(snapshot.external_ids)
    for external in repositories.records.external_ids_for(target_id):
        key = ExternalIdState(external.source, external.namespace, external.external_id)
        if key in external_keys:
            external.record_id = source_id

    _restore_fields(target, record_from_state(snapshot.target))
    touched = _restore_children(repositories.records, snapshot.children, target_id, source_id)
    source.parent_id, source.child_type, source.order_key = placement

    pointers = set(snapshot.staging)
    restored_staging = 0
    for row in repositories.staging.pointing_at(CanonicalKind.RECORD, target_id):
        if StagingPointer(row.NAMESPACE, row.external_id) in pointers:
            repositories.staging.write_back(row, source_id)
            restored_staging += 1

    restored_media = _restore_media(repositories.media, snapshot.media_ids, target_id, source_id)
    _restore_assignments(
        repositories.record_index_entries, snapshot.assignments, target_id, source_id
    )
    touched |= _restore_links(repositories, snapshot.links, target_id, source_id)

    merge.undone_at = now or datetime.now(tz=UTC)
    touched -= {source_id, target_id}
    repositories.records.invalidate_embeddings(touched)
    log.info(
        "Undid merge %s: restored record %s from %s, neighbours=%s, media=%s, staging_rows=%s",
        merge_id,
        source_id,
        target_id,
        len(touched),
        restored_media,
        restored_staging,
    )
    return UndoOutcome(record=source, target=target, merge=merge, touched_ids=touched)


def _restore_fields(target: Record, previous: Record) -> None:
    for item in fields(Record):
        if item.name in {"id", "text_embedding"}:
            continue
        setattr(target, item.name, getattr(previous, item.name))
    target.invalidate_embedding()


def _restore_children(
    records: RecordRepository, children: Sequence[ChildState], target_id: int, source_id: int
) -> set[int]:
    placements = {child.record_id: child for child in children}
    restored: set[int] = set()
    for child in records.children_of(target_id):
        state = placements.get(child.id) if child.id is not None else None
        if state is None:
            continue
        child.parent_id = source_id
        child.child_type = state.child_type
        child.order_key = state.order_key
        child.invalidate_embedding()
        restored.add(state.record_id)
    return restored


def _restore_media(
    media: MediaRepository, media_ids: Sequence[int], target_id: int, source_id: int
) -> int:
    owned_by_target = {item.id for item in media.for_record(target_id)}
    return sum(
        media.assign_owner(media_id, source_id)
        for media_id in media_ids
        if media_id in owned_by_target
    )


def _restore_assignments(
    assignments: RecordIndexEntryRepository,
    previous: Sequence[AssignmentState],
    target_id: int,
    source_id: int,
) -> None:
    kept = {state for state in previous if state.record_id == target_id}
    moved = {
        (state.index_entry_id, state.role) for state in previous if state.record_id == source_id
    }
    for row in list(assignments.for_record(target_id)):
        state = AssignmentState(row.record_id, row.index_entry_id, row.role)
        if state not in kept and (row.index_entry_id, row.role) in moved:
            assignments.remove(row)
    for state in previous:
        assignments.add_if_absent(state.record_id, state.index_entry_id, state.role)


def _restore_links(
    repositories: GraphRepositories,
    previous: Sequence[LinkState],
    target_id: int,
    source_id: int,
) -> set[int]:
    keys = {(state.source_id, state.target_id, state.predicate_id) for state in previous}

    def as_source(record_id: int) -> tuple[int, ...]:
        return (record_id, source_id) if record_id == target_id else (record_id,)

    for link in list(repositories.links.touching(target_id)):
        if link.key in keys:
            continue
        candidates = {
            (link_source, link_target, link.predicate_id)
            for link_source in as_source(link.source_id)
            for link_target in as_source(link.target_id)
        }
        if candidates & keys:
            repositories.links.remove(link)

    neighbours: set[int] = set()
    for state in previous:
        endpoints = (state.source_id, state.target_id)
        if any(repositories.records.get(record_id) is None for record_id in endpoints):
            continue
        repositories.links.add_if_absent(*endpoints, state.predicate_id)
        neighbours.update(endpoints)
    return neighbours
