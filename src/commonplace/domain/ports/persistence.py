"""Ports for persisting the canonical graph and the staging tables."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from commonplace.domain.model import (
    CanonicalKind,
    IndexEntry,
    IndexRole,
    Link,
    Media,
    Predicate,
    Record,
    RecordExternalId,
    RecordIndexEntry,
    RecordMerge,
    StagingRow,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence
    from datetime import datetime

    from commonplace.domain.mapping.contracts import (
        IndexEntryInsert,
        MediaInsert,
        RecordInsert,
        RecordKey,
    )


@dataclass(frozen=True, slots=True)
class UpsertResult:
    """Id of the row matching a natural key and whether this call created it."""

    id: int
    created: bool


@runtime_checkable
class Repository[TEntity](Protocol):
    """Minimal repository contract for a persistent aggregate store."""

    def add(self, entity: TEntity) -> None: ...


@runtime_checkable
class RecordRepository(Repository[Record], Protocol):
    def get(self, record_id: int) -> Record | None: ...

    def upsert_by_natural_key(
        self, key: RecordKey, insert: RecordInsert, *, now: datetime
    ) -> UpsertResult: ...

    def list_all(self) -> Sequence[Record]: ...

    def children_of(self, parent_id: int) -> Sequence[Record]: ...

    def last_child_order_key(self, parent_id: int) -> str | None: ...

    def remove(self, record: Record) -> None: ...

    def repoint_external_ids(self, from_record_id: int, to_record_id: int) -> int: ...

    def external_ids_for(self, record_id: int) -> Sequence[RecordExternalId]: ...

    def invalidate_embeddings(self, record_ids: Iterable[int]) -> int: ...

    def pending_embeddings(self, *, limit: int | None = None) -> Sequence[Record]: ...


@runtime_checkable
class IndexEntryRepository(Protocol):
    def get(self, entry_id: int) -> IndexEntry | None: ...

    def upsert_by_natural_key(self, insert: IndexEntryInsert, *, now: datetime) -> UpsertResult: ...


@runtime_checkable
class MediaRepository(Protocol):
    def upsert_by_natural_key(self, insert: MediaInsert, *, now: datetime) -> UpsertResult: ...

    def assign_owner(self, media_id: int, record_id: int) -> bool: ...

    def reassign_owner(self, from_record_id: int, to_record_id: int) -> int: ...

    def for_record(self, record_id: int) -> Sequence[Media]: ...


@runtime_checkable
class LinkRepository(Protocol):
    def add_if_absent(self, source_id: int, target_id: int, predicate_id: int) -> bool:
        """Insert the link unless ``(source, target, predicate)`` exists; return if inserted."""
        ...

    def exists(self, source_id: int, target_id: int, predicate_id: int) -> bool: ...

    def touching(self, record_id: int) -> Sequence[Link]: ...

    def remove(self, link: Link) -> None: ...


@runtime_checkable
class RecordIndexEntryRepository(Protocol):
    def add_if_absent(self, record_id: int, index_entry_id: int, role: IndexRole) -> bool: ...

    def exists(self, record_id: int, index_entry_id: int, role: IndexRole) -> bool: ...

    def for_record(self, record_id: int) -> Sequence[RecordIndexEntry]: ...

    def remove(self, row: RecordIndexEntry) -> None: ...


@runtime_checkable
class PredicateRepository(Protocol):
    def id_for(self, slug: str) -> int:
        """Return the stored id of the predicate ``slug``, seeding the taxonomy if needed."""
        ...

    def get(self, predicate_id: int) -> Predicate | None: ...


@runtime_checkable
class StagingRepository(Protocol):
    def add(self, row: StagingRow) -> None: ...

    def get[TRow: StagingRow](self, row_type: type[TRow], external_id: str) -> TRow | None: ...

    def get_many[TRow: StagingRow](
        self, row_type: type[TRow], external_ids: Sequence[str]
    ) -> Sequence[TRow]: ...

    def unmapped_ids(self, row_type: type[StagingRow]) -> Sequence[str]:
        """External ids of live rows with no canonical id, in insertion order."""
        ...

    def mapped_ids(self, row_type: type[StagingRow]) -> Sequence[str]: ...

    def canonical_id_for(self, row_type: type[StagingRow], external_id: str) -> int | None: ...

    def write_back(self, row: StagingRow, canonical_id: int) -> None: ...

    def repoint(self, kind: CanonicalKind, from_id: int, to_id: int) -> int:
        """Point every staging row mapped to ``from_id`` at ``to_id``."""
        ...

    def pointing_at(self, kind: CanonicalKind, canonical_id: int) -> Sequence[StagingRow]:
        """Staging rows of every table targeting ``kind`` that map to ``canonical_id``."""
        ...


@runtime_checkable
class MergeAuditRepository(Repository[RecordMerge], Protocol):
    """Persistence contract for merge audit rows."""

    def get(self, merge_id: int) -> RecordMerge | None: ...
