"""Two-pass runner folding one staging table into the canonical graph.

Pass one creates (or refreshes) the canonical row for every unmapped staging
row and writes its id back. Pass two, once every row of the run has an id,
resolves parents and applies link intents. Both passes commit per batch.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import UTC, datetime
from itertools import batched
from logging import getLogger
from typing import TYPE_CHECKING

from commonplace.config.sync import DEFAULT_MAPPING_BATCH_SIZE
from commonplace.domain.mapping.contracts import (
    IndexEntryInsert,
    IndexLinkIntent,
    MappingContext,
    MappingError,
    MediaOwnerIntent,
    RecordInsert,
    RecordKey,
    RecordLinkIntent,
    StagingRef,
)
from commonplace.domain.model import canonical_predicate_spec, predicate_spec
from commonplace.domain.ordering import generate_order_key, generate_order_prefix

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from commonplace.domain.mapping.contracts import CanonicalInsert, LinkIntent, MappingRule
    from commonplace.domain.model import ChildType, Record, StagingRow
    from commonplace.domain.ports.persistence import RecordRepository, UpsertResult
    from commonplace.domain.ports.unit_of_work import GraphRepositories, GraphUnitOfWork

    type UnitOfWorkFactory = Callable[[], GraphUnitOfWork]


log = getLogger(__name__)


@dataclass(slots=True)
class MappingRunResult:
    """Counts reported by one mapping run over one staging table."""

    namespace: str
    processed: int = 0
    created: int = 0
    refreshed: int = 0
    skipped: int = 0
    failed: int = 0
    linked: int = 0
    unresolved: int = 0


class MappingRunner[TRow: StagingRow]:
    def __init__(
        self,
        rule: MappingRule[TRow],
        *,
        unit_of_work_factory: UnitOfWorkFactory,
        context: MappingContext | None = None,
        batch_size: int = DEFAULT_MAPPING_BATCH_SIZE,
        relink: bool = False,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be positive")
        self.rule = rule
        self.unit_of_work_factory = unit_of_work_factory
        self.context = context or MappingContext(now=datetime.now(tz=UTC))
        self.batch_size = batch_size
        self.relink = relink
        self._write_back: dict[tuple[str, str], int] = {}

    @property
    def namespace(self) -> str:
        return self.rule.row_type.NAMESPACE

    def run(self) -> MappingRunResult:
        result = MappingRunResult(namespace=self.namespace)
        row_type = self.rule.row_type
        log.info(
            "Mapping %s: batch_size=%s, relink=%s", self.namespace, self.batch_size, self.relink
        )

        with self.unit_of_work_factory() as uow:
            pending = list(uow.repositories.staging.unmapped_ids(row_type))

        mapped: list[str] = []
        for batch in batched(pending, self.batch_size):
            with self.unit_of_work_factory() as uow:
                mapped.extend(self._map_batch(uow.repositories, batch, result))
                uow.commit()

        to_resolve = mapped
        if self.relink:
            with self.unit_of_work_factory() as uow:
                to_resolve = list(uow.repositories.staging.mapped_ids(row_type))

        for batch in batched(to_resolve, self.batch_size):
            with self.unit_of_work_factory() as uow:
                self._resolve_batch(uow.repositories, batch, result)
                uow.commit()

        log.info(
            "Finished mapping %s: processed=%s, created=%s, refreshed=%s, skipped=%s, "
            "failed=%s, linked=%s, unresolved=%s",
            self.namespace,
            result.processed,
            result.created,
            result.refreshed,
            result.skipped,
            result.failed,
            result.linked,
            result.unresolved,
        )
        return result

    # pass one ------------------------------------------------------------------

    def _map_batch(
        self,
        repositories: GraphRepositories,
        external_ids: Sequence[str],
        result: MappingRunResult,
    ) -> list[str]:
        mapped: list[str] = []
        for row in repositories.staging.get_many(self.rule.row_type, external_ids):
            result.processed += 1
            if not self.rule.eligible(row):
                result.skipped += 1
                continue
            try:
                insert = self.rule.map_row(row, self.context)
            except MappingError as exc:
                result.failed += 1
                log.warning("Skipping %s:%s: %s", self.namespace, row.external_id, exc)
                continue

            outcome = self._upsert(repositories, row, insert)
            repositories.staging.write_back(row, outcome.id)
            self._write_back[(self.namespace, row.external_id)] = outcome.id
            if outcome.created:
                result.created += 1
            else:
                result.refreshed += 1
            mapped.append(row.external_id)
        return mapped

    def _upsert(
        self,
        repositories: GraphRepositories,
        row: TRow,
        insert: CanonicalInsert,
    ) -> UpsertResult:
        if insert.KIND is not row.TARGET:
            raise TypeError(
                f"{self.rule!r} produced a {insert.KIND} insert for a {row.TARGET} staging table"
            )
        now = self.context.now
        if isinstance(insert, RecordInsert):
            outcome = repositories.records.upsert_by_natural_key(
                RecordKey.for_row(row), insert, now=now
            )
            for media in insert.attached_media:
                media_outcome = repositories.media.upsert_by_natural_key(media, now=now)
                if repositories.media.assign_owner(media_outcome.id, outcome.id):
                    repositories.records.invalidate_embeddings((outcome.id,))
            return outcome
        if isinstance(insert, IndexEntryInsert):
            return repositories.index_entries.upsert_by_natural_key(insert, now=now)
        return repositories.media.upsert_by_natural_key(insert, now=now)

    # pass two ------------------------------------------------------------------

    def _resolve_batch(
        self,
        repositories: GraphRepositories,
        external_ids: Sequence[str],
        result: MappingRunResult,
    ) -> None:
        placements: dict[int, list[tuple[TRow, Record]]] = defaultdict(list)
        pending_parents: dict[int, int] = {}
        child_type = self.rule.child_type
        for row in repositories.staging.get_many(self.rule.row_type, external_ids):
            canonical_id = row.canonical_id
            if canonical_id is None:
                continue
            if child_type is not None and row.parent_external_id:
                parent_ref = StagingRef(self.rule.row_type, row.parent_external_id)
                self._collect_placement(
                    repositories, row, canonical_id, parent_ref, placements, pending_parents, result
                )
            for intent in self.rule.links(row):
                self._apply_link(repositories, row, canonical_id, intent, result)

        if child_type is None:
            return
        for parent_id, children in placements.items():
            self._place_children(repositories.records, parent_id, child_type, children)

    def _resolve(self, repositories: GraphRepositories, ref: StagingRef) -> int | None:
        canonical_id = self._write_back.get((ref.row_type.NAMESPACE, ref.external_id))
        if canonical_id is not None:
            return canonical_id
        return repositories.staging.canonical_id_for(ref.row_type, ref.external_id)

    def _collect_placement(
        self,
        repositories: GraphRepositories,
        row: TRow,
        canonical_id: int,
        parent_ref: StagingRef,
        placements: dict[int, list[tuple[TRow, Record]]],
        pending_parents: dict[int, int],
        result: MappingRunResult,
    ) -> None:
        parent_id = self._resolve(repositories, parent_ref)
        if parent_id is None:
            result.unresolved += 1
            log.warning(
                "Parent %s of %s:%s is not mapped", parent_ref, self.namespace, row.external_id
            )
            return

        child = repositories.records.get(canonical_id)
        if child is None or child.parent_id == parent_id:
            return
        if _creates_cycle(
            repositories.records,
            child_id=canonical_id,
            parent_id=parent_id,
            pending_parents=pending_parents,
        ):
            result.unresolved += 1
            log.warning(
                "Refusing parent %s for record %s: it would create a cycle", parent_id, canonical_id
            )
            return
        placements[parent_id].append((row, child))
        pending_parents[canonical_id] = parent_id

    def _place_children(
        self,
        records: RecordRepository,
        parent_id: int,
        child_type: ChildType,
        children: list[tuple[TRow, Record]],
    ) -> None:
        children.sort(key=lambda item: self.rule.order_hint(item[0]))
        existing = records.last_child_order_key(parent_id)
        for index, (_row, child) in enumerate(children):
            if existing is None:
                key = generate_order_prefix(index)
            else:
                key = existing = generate_order_key(existing, None)
            child.place_under(parent_id, child_type, key)

    def _apply_link(
        self,
        repositories: GraphRepositories,
        row: TRow,
        canonical_id: int,
        intent: LinkIntent,
        result: MappingRunResult,
    ) -> None:
        if isinstance(intent, RecordLinkIntent):
            target_id = self._resolve(repositories, intent.target)
            if target_id is None:
                self._unresolved(row, intent.target, result)
                return
            if target_id == canonical_id:
                return
            source_id = canonical_id
            spec = canonical_predicate_spec(intent.predicate)
            if spec.slug != predicate_spec(intent.predicate).slug:
                source_id, target_id = target_id, source_id
            predicate_id = repositories.predicates.id_for(spec.slug)
            if repositories.links.add_if_absent(source_id, target_id, predicate_id):
                result.linked += 1
                repositories.records.invalidate_embeddings((source_id, target_id))
            return

        if isinstance(intent, IndexLinkIntent):
            if isinstance(intent.target, StagingRef):
                entry_id = self._resolve(repositories, intent.target)
                if entry_id is None:
                    self._unresolved(row, intent.target, result)
                    return
            else:
                entry_id = repositories.index_entries.upsert_by_natural_key(
                    intent.target, now=self.context.now
                ).id
            if repositories.record_index_entries.add_if_absent(canonical_id, entry_id, intent.role):
                result.linked += 1
                repositories.records.invalidate_embeddings((canonical_id,))
            return

        self._apply_media_owner(repositories, row, canonical_id, intent, result)

    def _apply_media_owner(
        self,
        repositories: GraphRepositories,
        row: TRow,
        media_id: int,
        intent: MediaOwnerIntent,
        result: MappingRunResult,
    ) -> None:
        owner_id = self._resolve(repositories, intent.owner)
        if owner_id is None:
            self._unresolved(row, intent.owner, result)
            return
        if repositories.media.assign_owner(media_id, owner_id):
            result.linked += 1
            repositories.records.invalidate_embeddings((owner_id,))

    def _unresolved(self, row: TRow, target: StagingRef, result: MappingRunResult) -> None:
        result.unresolved += 1
        log.warning(
            "Link target %s of %s:%s is not mapped", target, self.namespace, row.external_id
        )


def _creates_cycle(
    records: RecordRepository,
    *,
    child_id: int,
    parent_id: int,
    pending_parents: dict[int, int],
) -> bool:
    """Whether placing ``child_id`` under ``parent_id`` closes a loop.

    ``pending_parents`` holds placements decided in this batch but not applied yet.
    """

    seen: set[int] = set()
    current: int | None = parent_id
    while current is not None and current not in seen:
        if current == child_id:
            return True
        seen.add(current)
        if current in pending_parents:
            current = pending_parents[current]
            continue
        ancestor = records.get(current)
        current = ancestor.parent_id if ancestor is not None else None
    return False


def run_mapping_rule[TRow: StagingRow](
    rule: MappingRule[TRow],
    *,
    unit_of_work_factory: UnitOfWorkFactory,
    context: MappingContext | None = None,
    batch_size: int = DEFAULT_MAPPING_BATCH_SIZE,
    relink: bool = False,
) -> MappingRunResult:
    return MappingRunner(
        rule,
        unit_of_work_factory=unit_of_work_factory,
        context=context,
        batch_size=batch_size,
        relink=relink,
    ).run()


def run_mapping_rules(
    rules: Sequence[MappingRule[StagingRow]],
    *,
    unit_of_work_factory: UnitOfWorkFactory,
    context: MappingContext | None = None,
    batch_size: int = DEFAULT_MAPPING_BATCH_SIZE,
    relink: bool = False,
) -> list[MappingRunResult]:
    """Run ``rules`` in order, sharing one clock and media inspector."""

    effective_context = context or MappingContext(now=datetime.now(tz=UTC))
    return [
        run_mapping_rule(
            rule,
            unit_of_work_factory=unit_of_work_factory,
            context=effective_context,
            batch_size=batch_size,
            relink=relink,
        )
        for rule in rules
    ]

