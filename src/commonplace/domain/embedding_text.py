"""Text handed to the external embedding worker for a record."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from commonplace.domain.model import predicate_spec

if TYPE_CHECKING:
    from collections.abc import Sequence

    from commonplace.domain.model import IndexRole, Media, Record
    from commonplace.domain.ports.unit_of_work import GraphRepositories

# describes form rather than meaning
_EXCLUDED_PREDICATES = frozenset({"has_format", "format_of"})


@dataclass(frozen=True, slots=True)
class Neighbour:
    label: str
    title: str


@dataclass(frozen=True, slots=True)
class PendingEmbedding:
    record_id: int
    text: str


def record_embedding_text(
    record: Record,
    *,
    neighbours: Sequence[Neighbour] = (),
    index_entries: Sequence[tuple[IndexRole, str]] = (),
    media: Sequence[Media] = (),
) -> str:
    lines: list[str] = [f"Type: {record.type}"]
    for label, value in (
        ("Title", record.title),
        ("Summary", record.summary),
        ("Content", record.content),
        ("Notes", record.notes),
        ("Media caption", record.media_caption),
    ):
        if value:
            lines.append(f"{label}: {value}")
    lines.extend(f"{role.capitalize()}: {name}" for role, name in index_entries)
    lines.extend(f"{neighbour.label}: {neighbour.title}" for neighbour in neighbours)
    lines.extend(f"Alt text: {item.alt_text}" for item in media if item.alt_text)
    return "\n".join(lines)


def _neighbours(repositories: GraphRepositories, record_id: int) -> list[Neighbour]:
    neighbours: list[Neighbour] = []
    for link in repositories.links.touching(record_id):
        predicate = repositories.predicates.get(link.predicate_id)
        if predicate is None:
            continue
        outgoing = link.source_id == record_id
        slug = predicate.slug if outgoing else predicate.inverse_slug
        if slug in _EXCLUDED_PREDICATES:
            continue
        other = repositories.records.get(link.target_id if outgoing else link.source_id)
        if other is None or not other.title:
            continue
        neighbours.append(Neighbour(label=predicate_spec(slug).name, title=other.title))
    return neighbours


def pending_embeddings(
    repositories: GraphRepositories, *, limit: int | None = None
) -> list[PendingEmbedding]:
    """Records whose embedding is stale, with the text to embed."""

    pending: list[PendingEmbedding] = []
    for record in repositories.records.pending_embeddings(limit=limit):
        record_id = record.id
        if record_id is None:
            continue
        entries: list[tuple[IndexRole, str]] = []
        for assignment in repositories.record_index_entries.for_record(record_id):
            entry = repositories.index_entries.get(assignment.index_entry_id)
            if entry is not None:
                entries.append((assignment.role, entry.name))
        text = record_embedding_text(
            record,
            neighbours=_neighbours(repositories, record_id),
            index_entries=entries,
            media=repositories.media.for_record(record_id),
        )
        pending.append(PendingEmbedding(record_id=record_id, text=text))
    return pending
