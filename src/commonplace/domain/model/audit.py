"""Audit records for merge decisions."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Final

from .enums import ChildType, IndexRole, IntegrationSource, MergeReason, RecordType
from .record import Record

if TYPE_CHECKING:
    from collections.abc import Mapping

_STATE_FIELDS: Final[tuple[str, ...]] = tuple(
    item.name for item in fields(Record) if item.name != "text_embedding"
)
_DATETIME_FIELDS: Final[frozenset[str]] = frozenset(
    {"record_created_at", "record_updated_at", "content_created_at", "content_updated_at"}
)


def record_state(record: Record) -> dict[str, Any]:
    """JSON-ready copy of a record's columns, without the embedding."""

    state: dict[str, Any] = {}
    for name in _STATE_FIELDS:
        value = getattr(record, name)
        if isinstance(value, datetime):
            value = value.isoformat()
        elif isinstance(value, Enum):
            value = value.value
        elif isinstance(value, set):
            value = sorted(source.value for source in value)
        state[name] = value
    return state


def record_from_state(state: Mapping[str, Any]) -> Record:
    values = {name: state[name] for name in _STATE_FIELDS if name in state}
    values["type"] = RecordType(values["type"])
    if values.get("child_type") is not None:
        values["child_type"] = ChildType(values["child_type"])
    values["sources"] = {IntegrationSource(source) for source in values.get("sources", ())}
    for name in _DATETIME_FIELDS:
        if values.get(name) is not None:
            values[name] = datetime.fromisoformat(values[name])
    return Record(**values)


@dataclass(frozen=True, slots=True)
class LinkState:
    source_id: int
    target_id: int
    predicate_id: int


@dataclass(frozen=True, slots=True)
class AssignmentState:
    record_id: int
    index_entry_id: int
    role: IndexRole


@dataclass(frozen=True, slots=True)
class ChildState:
    record_id: int
    child_type: ChildType | None
    order_key: str | None


@dataclass(frozen=True, slots=True)
class ExternalIdState:
    source: IntegrationSource
    namespace: str
    external_id: str


@dataclass(frozen=True, slots=True)
class StagingPointer:
    namespace: str
    external_id: str


@dataclass(frozen=True, slots=True, kw_only=True)
class MergeSnapshot:
    """State of both records and their surroundings right before a merge.

    ``source`` and ``target`` hold :func:`record_state` dictionaries; the rest
    lists what referenced the two records so an undo can put it back.
    """

    source: dict[str, Any]
    target: dict[str, Any]
    links: tuple[LinkState, ...] = ()
    assignments: tuple[AssignmentState, ...] = ()
    media_ids: tuple[int, ...] = ()
    staging: tuple[StagingPointer, ...] = ()
    external_ids: tuple[ExternalIdState, ...] = ()
    children: tuple[ChildState, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "target": self.target,
            "links": [[link.source_id, link.target_id, link.predicate_id] for link in self.links],
            "assignments": [
                [row.record_id, row.index_entry_id, row.role.value] for row in self.assignments
            ],
            "media_ids": list(self.media_ids),
            "staging": [[pointer.namespace, pointer.external_id] for pointer in self.staging],
            "external_ids": [
                [external.source.value, external.namespace, external.external_id]
                for external in self.external_ids
            ],
            "children": [
                [
                    child.record_id,
                    child.child_type.value if child.child_type is not None else None,
                    child.order_key,
                ]
                for child in self.children
            ],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> MergeSnapshot:
        return cls(
            source=dict(data["source"]),
            target=dict(data["target"]),
            links=tuple(LinkState(*values) for values in data.get("links", ())),
            assignments=tuple(
                AssignmentState(record_id, entry_id, IndexRole(role))
                for record_id, entry_id, role in data.get("assignments", ())
            ),
            media_ids=tuple(data.get("media_ids", ())),
            staging=tuple(StagingPointer(*values) for values in data.get("staging", ())),
            external_ids=tuple(
                ExternalIdState(IntegrationSource(source), namespace, external_id)
                for source, namespace, external_id in data.get("external_ids", ())
            ),
            children=tuple(
                ChildState(
                    record_id,
                    ChildType(child_type) if child_type is not None else None,
                    order_key,
                )
                for record_id, child_type, order_key in data.get("children", ())
            ),
        )


@dataclass(eq=False, kw_only=True)
class RecordMerge:
    """Audit record for folding a duplicate record into its surviving counterpart.

    ``source_id`` no longer exists once the merge commits, unless the merge is
    undone, which sets ``undone_at``.
    """

    id: int | None = None
    source_id: int
    target_id: int
    reason: MergeReason = MergeReason.MANUAL
    merged_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))
    created_by: str | None = None
    snapshot: MergeSnapshot | None = None
    undone_at: datetime | None = None
