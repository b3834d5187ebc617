"""Edges and satellite rows of the canonical graph."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime

from .enums import IndexMainType, IndexRole, IntegrationSource, MediaType, PredicateType


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


@dataclass(eq=False, kw_only=True)
class Predicate:
    id: int | None = None
    slug: str
    name: str
    type: PredicateType
    inverse_slug: str
    canonical: bool


@dataclass(eq=False, kw_only=True)
class Link:
    """Directed, typed edge between two records."""

    id: int | None = None
    source_id: int
    target_id: int
    predicate_id: int
    created_at: datetime = field(default_factory=_utcnow)

    @property
    def key(self) -> tuple[int, int, int]:
        return (self.source_id, self.target_id, self.predicate_id)


@dataclass(eq=False, kw_only=True)
class IndexEntry:
    """Normalized entity, category or format that records point at.

    ``(main_type, name, sense)`` is the natural key; ``sense`` is an empty
    string when the name needs no disambiguation.
    """

    id: int | None = None
    main_type: IndexMainType
    name: str
    sense: str = ""
    canonical_url: str | None = None
    media_url: str | None = None
    notes: str | None = None
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)


@dataclass(eq=False, kw_only=True)
class RecordIndexEntry:
    id: int | None = None
    record_id: int
    index_entry_id: int
    role: IndexRole


@dataclass(eq=False, kw_only=True)
class Media:
    id: int | None = None
    url: str
    media_type: MediaType = MediaType.UNKNOWN
    media_format: str | None = None
    content_type: str | None = None
    file_size: int | None = None
    alt_text: str | None = None
    record_id: int | None = None
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)


@dataclass(eq=False, kw_only=True)
class RecordExternalId:
    """Provenance of a record: the staging row it was first created from."""

    id: int | None = None
    source: IntegrationSource
    namespace: str
    external_id: str
    record_id: int
