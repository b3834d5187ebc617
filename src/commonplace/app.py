"""Application orchestration entry points."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING

from commonplace.adapters.media_inspector import HttpMediaInspector
from commonplace.adapters.sqlalchemy.migrations import upgrade_head
from commonplace.adapters.sqlalchemy.unit_of_work import (
    SqlAlchemyUnitOfWork,
    is_started,
    startup,
)
from commonplace.adapters.staging_payloads import parse_staging_lines
from commonplace.config import get_duplicate_thresholds, get_sync_config
from commonplace.domain import merging
from commonplace.domain.embedding_text import PendingEmbedding, pending_embeddings
from commonplace.domain.mapping import (
    MappingContext,
    MappingRunResult,
    rules_for,
    run_mapping_rules,
)
from commonplace.domain.merging import MergeOutcome, RecordNotFoundError, UndoOutcome
from commonplace.domain.model import IntegrationSource, MergeReason, Record
from commonplace.domain.ports.unit_of_work import GraphUnitOfWork
from commonplace.domain.similarity import (
    DuplicateCandidate,
    find_duplicate_candidates,
    scan_duplicate_pairs,
    seriate,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence
    from pathlib import Path

    from commonplace.config import DuplicateThresholds
    from commonplace.domain.ports.media import MediaInspector

UnitOfWorkFactory = Callable[[], GraphUnitOfWork]


log = getLogger(__name__)


def _unit_of_work_factory(factory: UnitOfWorkFactory | None) -> UnitOfWorkFactory:
    if factory is not None:
        return factory
    if not is_started():
        startup()
    return SqlAlchemyUnitOfWork


# Mapping --------------------------------------------------------------------------


def sync_source(
    source: IntegrationSource | str,
    *,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
    media_inspector: MediaInspector | None = None,
    batch_size: int | None = None,
    relink: bool = False,
    now: datetime | None = None,
) -> list[MappingRunResult]:
    """Fold the staging tables of ``source`` into the canonical graph."""

    rules = rules_for(source)
    effective_uow = _unit_of_work_factory(unit_of_work_factory)
    effective_batch_size = batch_size or get_sync_config().batch_size
    log.info(
        "Starting %s sync: rules=%s, batch_size=%s, relink=%s",
        source,
        len(rules),
        effective_batch_size,
        relink,
    )

    owned_inspector = HttpMediaInspector() if media_inspector is None else None
    try:
        context = MappingContext(
            now=now or datetime.now(tz=UTC),
            media_inspector=media_inspector or owned_inspector,
        )
        results = run_mapping_rules(
            rules,
            unit_of_work_factory=effective_uow,
            context=context,
            batch_size=effective_batch_size,
            relink=relink,
        )
    finally:
        if owned_inspector is not None:
            owned_inspector.close()

    log.info(
        "Finished %s sync: created=%s, failed=%s, unresolved=%s",
        source,
        sum(result.created for result in results),
        sum(result.failed for result in results),
        sum(result.unresolved for result in results),
    )
    return results


def sync_sources(
    sources: Iterable[IntegrationSource | str],
    *,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
    media_inspector: MediaInspector | None = None,
    batch_size: int | None = None,
    relink: bool = False,
) -> dict[IntegrationSource, list[MappingRunResult]]:
    """Run :func:`sync_source` for each source in order."""

    return {
        IntegrationSource(source): sync_source(
            source,
            unit_of_work_factory=unit_of_work_factory,
            media_inspector=media_inspector,
            batch_size=batch_size,
            relink=relink,
        )
        for source in sources
    }


# Merging and duplicates ---------------------------------------------------------


def merge_records(
    source_id: int,
    target_id: int,
    *,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
    reason: MergeReason = MergeReason.MANUAL,
    created_by: str | None = None,
) -> MergeOutcome:
    """Merge ``source_id`` into ``target_id`` and commit."""

    effective_uow = _unit_of_work_factory(unit_of_work_factory)
    log.info("Merging record %s into %s (%s)", source_id, target_id, reason)
    with effective_uow() as uow:
        outcome = merging.merge_records(
            uow,
            source_id=source_id,
            target_id=target_id,
            reason=reason,
            created_by=created_by,
        )
        uow.commit()
    return outcome


def undo_merge(
    merge_id: int, *, unit_of_work_factory: UnitOfWorkFactory | None = None
) -> UndoOutcome:
    """Restore the record removed by merge ``merge_id`` and commit."""

    effective_uow = _unit_of_work_factory(unit_of_work_factory)
    log.info("Undoing merge %s", merge_id)
    with effective_uow() as uow:
        outcome = merging.undo_merge(uow, merge_id=merge_id)
        uow.commit()
    return outcome


def find_duplicates(
    record_id: int,
    *,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
    thresholds: DuplicateThresholds | None = None,
    limit: int | None = None,
) -> list[DuplicateCandidate]:
    effective_uow = _unit_of_work_factory(unit_of_work_factory)
    with effective_uow() as uow:
        record = uow.repositories.records.get(record_id)
        if record is None:
            raise RecordNotFoundError(record_id)
        return find_duplicate_candidates(
            record,
            uow.repositories.records.list_all(),
            thresholds or get_duplicate_thresholds(),
            limit=limit,
        )


def scan_duplicates(
    *,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
    thresholds: DuplicateThresholds | None = None,
) -> list[DuplicateCandidate]:
    effective_uow = _unit_of_work_factory(unit_of_work_factory)
    with effective_uow() as uow:
        records = uow.repositories.records.list_all()
        log.info("Scanning %s records for duplicates", len(records))
        return scan_duplicate_pairs(records, thresholds or get_duplicate_thresholds())


def seriate_records(
    record_ids: Sequence[int],
    *,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> list[int]:
    """Reorder ``record_ids`` into a chain of similar neighbours."""

    effective_uow = _unit_of_work_factory(unit_of_work_factory)
    with effective_uow() as uow:
        records: list[Record] = []
        for record_id in record_ids:
            record = uow.repositories.records.get(record_id)
            if record is None:
                raise RecordNotFoundError(record_id)
            records.append(record)
        return [record.id for record in seriate(records) if record.id is not None]


# Embeddings -----------------------------------------------------------------------


def list_pending_embeddings(
    *,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
    limit: int | None = None,
) -> list[PendingEmbedding]:
    effective_uow = _unit_of_work_factory(unit_of_work_factory)
    with effective_uow() as uow:
        return pending_embeddings(uow.repositories, limit=limit)


def store_embedding(
    record_id: int,
    vector: Sequence[float],
    *,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> None:
    """Write back an embedding computed by an external worker."""

    if not vector:
        raise ValueError("Embedding vector must not be empty")
    effective_uow = _unit_of_work_factory(unit_of_work_factory)
    with effective_uow() as uow:
        record = uow.repositories.records.get(record_id)
        if record is None:
            raise RecordNotFoundError(record_id)
        record.text_embedding = [float(value) for value in vector]
        uow.commit()


# Staging import -------------------------------------------------------------------


@dataclass(slots=True)
class ImportResult:
    added: int = 0
    refreshed: int = 0
    unchanged: int = 0


def import_staging(
    source: IntegrationSource | str,
    path: Path,
    *,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> ImportResult:
    """Load a JSON-lines staging export, upserting rows by external id."""

    integration = IntegrationSource(source)
    effective_uow = _unit_of_work_factory(unit_of_work_factory)
    result = ImportResult()
    log.info("Importing %s staging rows from %s", integration, path)
    with path.open(encoding="utf-8") as handle, effective_uow() as uow:
        staging = uow.repositories.staging
        for row in parse_staging_lines(handle, source=integration):
            existing = staging.get(type(row), row.external_id)
            if existing is None:
                staging.add(row)
                result.added += 1
            elif existing.refresh_from(row):
                result.refreshed += 1
            else:
                result.unchanged += 1
        uow.commit()
    log.info(
        "Finished %s import: added=%s, refreshed=%s, unchanged=%s",
        integration,
        result.added,
        result.refreshed,
        result.unchanged,
    )
    return result


def upgrade_database(*, database_uri: str | None = None) -> None:
    """Apply pending schema migrations."""

    log.info("Upgrading database schema")
    upgrade_head(database_uri=database_uri)
