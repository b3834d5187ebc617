"""Repository implementations backed by SQLAlchemy sessions."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import Table, or_, select, update
from sqlalchemy.dialects import postgresql, sqlite

from commonplace.adapters.sqlalchemy.mappings import (
    STAGING_TABLES,
    index_entry_table,
    link_table,
    media_table,
    predicate_table,
    record_external_id_table,
    record_index_entry_table,
    record_table,
)
from commonplace.domain.model import (
    PREDICATES,
    IndexEntry,
    Link,
    Media,
    Predicate,
    Record,
    RecordExternalId,
    RecordIndexEntry,
    RecordMerge,
    predicate_spec,
)
from commonplace.domain.ports.persistence import UpsertResult

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence
    from datetime import datetime

    from sqlalchemy.orm import Session

    from commonplace.domain.mapping.contracts import (
        IndexEntryInsert,
        MediaInsert,
        RecordInsert,
        RecordKey,
    )
    from commonplace.domain.model import CanonicalKind, IndexRole, StagingRow


class UnsupportedDialectError(RuntimeError):
    """Raised when an upsert is attempted on a database without ON CONFLICT support."""


def _upsert_insert(session: Session, table: Table) -> Any:
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(table)
    if dialect == "sqlite":
        return sqlite.insert(table)
    raise UnsupportedDialectError(f"Upserts are not supported on {dialect}")


class SqlAlchemyRecordRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, entity: Record) -> None:
        self.session.add(entity)

    def get(self, record_id: int) -> Record | None:
        return self.session.get(Record, record_id)

    def upsert_by_natural_key(
        self, key: RecordKey, insert: RecordInsert, *, now: datetime
    ) -> UpsertResult:
        # Core selects do not autoflush
        self.session.flush()
        stmt = (
            select(record_external_id_table.c.record_id)
            .where(record_external_id_table.c.source == key.source)
            .where(record_external_id_table.c.namespace == key.namespace)
            .where(record_external_id_table.c.external_id == key.external_id)
        )
        record_id = self.session.execute(stmt).scalar_one_or_none()
        if record_id is not None:
            existing = self.session.get(Record, record_id)
            if existing is not None:
                existing.add_source(insert.source)
                existing.touch(now)
                return UpsertResult(id=record_id, created=False)

        record = Record(
            sources={insert.source},
            record_created_at=now,
            record_updated_at=now,
            **insert.record_fields(),  # pyright: ignore[reportArgumentType]
        )
        self.session.add(record)
        self.session.flush()
        record_id = record.id
        if record_id is None:
            raise RuntimeError(f"Flush did not assign an id to the record for {key}")
        self.session.add(
            RecordExternalId(
                source=key.source,
                namespace=key.namespace,
                external_id=key.external_id,
                record_id=record_id,
            )
        )
        return UpsertResult(id=record_id, created=True)

    def list_all(self) -> Sequence[Record]:
        stmt = select(Record).order_by(record_table.c.id)
        return self.session.execute(stmt).scalars().all()

    def children_of(self, parent_id: int) -> Sequence[Record]:
        stmt = select(Record).where(record_table.c.parent_id == parent_id)
        children = self.session.execute(stmt).scalars().all()
        # sorted here: database collations may not compare order keys bytewise
        return sorted(children, key=lambda child: (child.order_key is None, child.order_key or ""))

    def last_child_order_key(self, parent_id: int) -> str | None:
        self.session.flush()
        stmt = (
            select(record_table.c.order_key)
            .where(record_table.c.parent_id == parent_id)
            .where(record_table.c.order_key.is_not(None))
        )
        return max(self.session.execute(stmt).scalars(), default=None)

    def remove(self, record: Record) -> None:
        # pending repoints must reach the database before the row goes away
        self.session.flush()
        self.session.delete(record)
        self.session.flush()

    def repoint_external_ids(self, from_record_id: int, to_record_id: int) -> int:
        stmt = select(RecordExternalId).where(
            record_external_id_table.c.record_id == from_record_id
        )
        rows = self.session.execute(stmt).scalars().all()
        for row in rows:
            row.record_id = to_record_id
        return len(rows)

    def external_ids_for(self, record_id: int) -> Sequence[RecordExternalId]:
        stmt = (
            select(RecordExternalId)
            .where(record_external_id_table.c.record_id == record_id)
            .order_by(record_external_id_table.c.id)
        )
        return self.session.execute(stmt).scalars().all()

    def invalidate_embeddings(self, record_ids: Iterable[int]) -> int:
        invalidated = 0
        for record_id in set(record_ids):
            record = self.session.get(Record, record_id)
            if record is None or record.text_embedding is None:
                continue
            record.invalidate_embedding()
            invalidated += 1
        return invalidated

    def pending_embeddings(self, *, limit: int | None = None) -> Sequence[Record]:
        stmt = (
            select(Record)
            .where(record_table.c.text_embedding.is_(None))
            .order_by(record_table.c.id)
            .limit(limit)
        )
        return self.session.execute(stmt).scalars().all()


class SqlAlchemyIndexEntryRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, entry_id: int) -> IndexEntry | None:
        return self.session.get(IndexEntry, entry_id)

    def upsert_by_natural_key(self, insert: IndexEntryInsert, *, now: datetime) -> UpsertResult:
        existing = (
            select(index_entry_table.c.id)
            .where(index_entry_table.c.main_type == insert.main_type)
            .where(index_entry_table.c.name == insert.name)
            .where(index_entry_table.c.sense == insert.sense)
        )
        created = self.session.execute(existing).scalar_one_or_none() is None
        stmt = (
            _upsert_insert(self.session, index_entry_table)
            .values(
                main_type=insert.main_type,
                name=insert.name,
                sense=insert.sense,
                canonical_url=insert.canonical_url,
                media_url=insert.media_url,
                notes=insert.notes,
                created_at=now,
                updated_at=now,
            )
            .on_conflict_do_update(
                index_elements=[
                    index_entry_table.c.main_type,
                    index_entry_table.c.name,
                    index_entry_table.c.sense,
                ],
                set_={"updated_at": now},
            )
            .returning(index_entry_table.c.id)
        )
        entry_id = self.session.execute(stmt).scalar_one()
        return UpsertResult(id=entry_id, created=created)


class SqlAlchemyMediaRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def upsert_by_natural_key(self, insert: MediaInsert, *, now: datetime) -> UpsertResult:
        created = (
            self.session.execute(
                select(media_table.c.id).where(media_table.c.url == insert.url)
            ).scalar_one_or_none()
            is None
        )
        stmt = (
            _upsert_insert(self.session, media_table)
            .values(
                url=insert.url,
                media_type=insert.media_type,
                media_format=insert.media_format,
                content_type=insert.content_type,
                file_size=insert.file_size,
                alt_text=insert.alt_text,
                created_at=now,
                updated_at=now,
            )
            .on_conflict_do_update(
                index_elements=[media_table.c.url],
                set_={"updated_at": now},
            )
            .returning(media_table.c.id)
        )
        media_id = self.session.execute(stmt).scalar_one()
        return UpsertResult(id=media_id, created=created)

    def assign_owner(self, media_id: int, record_id: int) -> bool:
        media = self.session.get(Media, media_id)
        if media is None or media.record_id == record_id:
            return False
        media.record_id = record_id
        return True

    def reassign_owner(self, from_record_id: int, to_record_id: int) -> int:
        owned = self.for_record(from_record_id)
        for media in owned:
            media.record_id = to_record_id
        return len(owned)

    def for_record(self, record_id: int) -> Sequence[Media]:
        stmt = (
            select(Media)
            .where(media_table.c.record_id == record_id)
            .order_by(media_table.c.id)
        )
        return self.session.execute(stmt).scalars().all()


class SqlAlchemyLinkRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add_if_absent(self, source_id: int, target_id: int, predicate_id: int) -> bool:
        self.session.flush()
        stmt = (
            _upsert_insert(self.session, link_table)
            .values(source_id=source_id, target_id=target_id, predicate_id=predicate_id)
            .on_conflict_do_nothing(
                index_elements=[
                    link_table.c.source_id,
                    link_table.c.target_id,
                    link_table.c.predicate_id,
                ]
            )
            .returning(link_table.c.id)
        )
        return self.session.execute(stmt).scalar_one_or_none() is not None

    def exists(self, source_id: int, target_id: int, predicate_id: int) -> bool:
        self.session.flush()
        stmt = (
            select(link_table.c.id)
            .where(link_table.c.source_id == source_id)
            .where(link_table.c.target_id == target_id)
            .where(link_table.c.predicate_id == predicate_id)
            .limit(1)
        )
        return self.session.execute(stmt).scalar_one_or_none() is not None

    def touching(self, record_id: int) -> Sequence[Link]:
        stmt = (
            select(Link)
            .where(or_(link_table.c.source_id == record_id, link_table.c.target_id == record_id))
            .order_by(link_table.c.id)
        )
        return self.session.execute(stmt).scalars().all()

    def remove(self, link: Link) -> None:
        self.session.delete(link)


class SqlAlchemyRecordIndexEntryRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add_if_absent(self, record_id: int, index_entry_id: int, role: IndexRole) -> bool:
        self.session.flush()
        stmt = (
            _upsert_insert(self.session, record_index_entry_table)
            .values(record_id=record_id, index_entry_id=index_entry_id, role=role)
            .on_conflict_do_nothing(
                index_elements=[
                    record_index_entry_table.c.record_id,
                    record_index_entry_table.c.index_entry_id,
                    record_index_entry_table.c.role,
                ]
            )
            .returning(record_index_entry_table.c.id)
        )
        return self.session.execute(stmt).scalar_one_or_none() is not None

    def exists(self, record_id: int, index_entry_id: int, role: IndexRole) -> bool:
        self.session.flush()
        stmt = (
            select(record_index_entry_table.c.id)
            .where(record_index_entry_table.c.record_id == record_id)
            .where(record_index_entry_table.c.index_entry_id == index_entry_id)
            .where(record_index_entry_table.c.role == role)
            .limit(1)
        )
        return self.session.execute(stmt).scalar_one_or_none() is not None

    def for_record(self, record_id: int) -> Sequence[RecordIndexEntry]:
        stmt = (
            select(RecordIndexEntry)
            .where(record_index_entry_table.c.record_id == record_id)
            .order_by(record_index_entry_table.c.id)
        )
        return self.session.execute(stmt).scalars().all()

    def remove(self, row: RecordIndexEntry) -> None:
        self.session.delete(row)


class SqlAlchemyPredicateRepository:
    """Predicates are seeded from the fixed taxonomy on first use."""

    def __init__(self, session: Session) -> None:
        self.session = session
        self._ids: dict[str, int] = {}

    def id_for(self, slug: str) -> int:
        predicate_spec(slug)
        cached = self._ids.get(slug)
        if cached is not None:
            return cached
        predicate_id = self._lookup(slug)
        if predicate_id is None:
            self._seed()
            predicate_id = self._lookup(slug)
        if predicate_id is None:
            raise LookupError(f"Predicate {slug!r} could not be seeded")
        self._ids[slug] = predicate_id
        return predicate_id

    def get(self, predicate_id: int) -> Predicate | None:
        return self.session.get(Predicate, predicate_id)

    def _lookup(self, slug: str) -> int | None:
        stmt = select(predicate_table.c.id).where(predicate_table.c.slug == slug)
        return self.session.execute(stmt).scalar_one_or_none()

    def _seed(self) -> None:
        stmt = (
            _upsert_insert(self.session, predicate_table)
            .values(
                [
                    {
                        "slug": spec.slug,
                        "name": spec.name,
                        "type": spec.type,
                        "inverse_slug": spec.inverse_slug,
                        "canonical": spec.canonical,
                    }
                    for spec in PREDICATES
                ]
            )
            .on_conflict_do_nothing(index_elements=[predicate_table.c.slug])
        )
        self.session.execute(stmt)


class SqlAlchemyStagingRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    @staticmethod
    def _table(row_type: type[StagingRow]) -> Table:
        return STAGING_TABLES[row_type]

    def add(self, row: StagingRow) -> None:
        self.session.add(row)

    def get[TRow: StagingRow](self, row_type: type[TRow], external_id: str) -> TRow | None:
        table = self._table(row_type)
        stmt = select(row_type).where(table.c.external_id == external_id)
        return self.session.execute(stmt).scalar_one_or_none()

    def get_many[TRow: StagingRow](
        self, row_type: type[TRow], external_ids: Sequence[str]
    ) -> Sequence[TRow]:
        if not external_ids:
            return []
        table = self._table(row_type)
        stmt = select(row_type).where(table.c.external_id.in_(external_ids))
        rows = {row.external_id: row for row in self.session.execute(stmt).scalars()}
        return [rows[external_id] for external_id in external_ids if external_id in rows]

    def unmapped_ids(self, row_type: type[StagingRow]) -> Sequence[str]:
        table = self._table(row_type)
        stmt = (
            select(table.c.external_id)
            .where(table.c.canonical_id.is_(None))
            .where(table.c.deleted_at.is_(None))
            .order_by(table.c.id)
        )
        return self.session.execute(stmt).scalars().all()

    def mapped_ids(self, row_type: type[StagingRow]) -> Sequence[str]:
        table = self._table(row_type)
        stmt = (
            select(table.c.external_id)
            .where(table.c.canonical_id.is_not(None))
            .where(table.c.deleted_at.is_(None))
            .order_by(table.c.id)
        )
        return self.session.execute(stmt).scalars().all()

    def canonical_id_for(self, row_type: type[StagingRow], external_id: str) -> int | None:
        self.session.flush()
        table = self._table(row_type)
        stmt = select(table.c.canonical_id).where(table.c.external_id == external_id)
        return self.session.execute(stmt).scalar_one_or_none()

    def write_back(self, row: StagingRow, canonical_id: int) -> None:
        row.canonical_id = canonical_id

    def repoint(self, kind: CanonicalKind, from_id: int, to_id: int) -> int:
        self.session.flush()
        repointed = 0
        for row_type, table in STAGING_TABLES.items():
            if row_type.TARGET is not kind:
                continue
            result = self.session.execute(
                update(table).where(table.c.canonical_id == from_id).values(canonical_id=to_id)
            )
            repointed += result.rowcount
        return repointed

    def pointing_at(self, kind: CanonicalKind, canonical_id: int) -> Sequence[StagingRow]:
        rows: list[StagingRow] = []
        for row_type, table in STAGING_TABLES.items():
            if row_type.TARGET is not kind:
                continue
            stmt = select(row_type).where(table.c.canonical_id == canonical_id)
            rows.extend(self.session.execute(stmt).scalars())
        return rows


class SqlAlchemyMergeAuditRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, entity: RecordMerge) -> None:
        self.session.add(entity)

    def get(self, merge_id: int) -> RecordMerge | None:
        return self.session.get(RecordMerge, merge_id)


if TYPE_CHECKING:
    from commonplace.domain.ports.persistence import (
        IndexEntryRepository,
        LinkRepository,
        MediaRepository,
        MergeAuditRepository,
        PredicateRepository,
        RecordIndexEntryRepository,
        RecordRepository,
        StagingRepository,
    )

    def _protocol_checks(session: Session) -> None:
        _records: RecordRepository = SqlAlchemyRecordRepository(session)
        _entries: IndexEntryRepository = SqlAlchemyIndexEntryRepository(session)
        _media: MediaRepository = SqlAlchemyMediaRepository(session)
        _links: LinkRepository = SqlAlchemyLinkRepository(session)
        _assignments: RecordIndexEntryRepository = SqlAlchemyRecordIndexEntryRepository(session)
        _predicates: PredicateRepository = SqlAlchemyPredicateRepository(session)
        _staging: StagingRepository = SqlAlchemyStagingRepository(session)
        _merges: MergeAuditRepository = SqlAlchemyMergeAuditRepository(session)
