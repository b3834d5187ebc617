"""Canonical record aggregate."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Final

from .enums import ChildType, IntegrationSource, RecordType

EMBEDDING_FIELDS: Final[frozenset[str]] = frozenset(
    {"title", "summary", "content", "notes", "media_caption"}
)
"""Fields whose change makes a stored text embedding stale."""

UPDATABLE_FIELDS: Final[frozenset[str]] = EMBEDDING_FIELDS | {
    "type",
    "url",
    "avatar_url",
    "rating",
    "is_private",
    "is_curated",
    "content_created_at",
    "content_updated_at",
}

MAX_RATING: Final[int] = 3


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


def clamp_rating(value: int | None) -> int:
    if value is None:
        return 0
    return max(0, min(MAX_RATING, value))


@dataclass(eq=False, kw_only=True)
class Record:
    """A node in the canonical knowledge graph (a bookmark, document, tweet, ...)."""

    id: int | None = None
    type: RecordType = RecordType.ARTIFACT
    title: str | None = None
    url: str | None = None
    summary: str | None = None
    content: str | None = None
    notes: str | None = None
    media_caption: str | None = None
    avatar_url: str | None = None
    rating: int = 0
    is_private: bool = False
    is_curated: bool = False
    sources: set[IntegrationSource] = field(default_factory=set)

    parent_id: int | None = None
    child_type: ChildType | None = None
    order_key: str | None = None

    text_embedding: list[float] | None = None

    record_created_at: datetime = field(default_factory=_utcnow)
    record_updated_at: datetime = field(default_factory=_utcnow)
    content_created_at: datetime | None = None
    content_updated_at: datetime | None = None

    def update_fields(self, **changes: object) -> bool:
        """Assign ``changes`` and drop the embedding if embedded text changed.

        Returns whether any field actually changed.
        """

        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise TypeError(f"Unknown record fields: {', '.join(sorted(unknown))}")

        changed = False
        for name, value in changes.items():
            if getattr(self, name) == value:
                continue
            setattr(self, name, value)
            changed = True
            if name in EMBEDDING_FIELDS:
                self.invalidate_embedding()
        return changed

    def invalidate_embedding(self) -> None:
        self.text_embedding = None

    def add_source(self, source: IntegrationSource) -> None:
        if source in self.sources:
            return
        # reassigned so the ORM sees the change
        self.sources = self.sources | {source}

    def place_under(self, parent_id: int, child_type: ChildType, order_key: str) -> None:
        self.parent_id = parent_id
        self.child_type = child_type
        self.order_key = order_key
        self.invalidate_embedding()

    def touch(self, now: datetime | None = None) -> None:
        self.record_updated_at = now or _utcnow()

    @property
    def needs_embedding(self) -> bool:
        return self.text_embedding is None
