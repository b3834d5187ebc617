"""Contracts shared by the staging-to-canonical mapping rules and the runner."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, ClassVar, Protocol, runtime_checkable

from commonplace.domain.model import (
    CanonicalKind,
    IndexMainType,
    IndexRole,
    IntegrationSource,
    MediaType,
    RecordType,
    StagingRow,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

    from commonplace.domain.model import ChildType
    from commonplace.domain.ports.media import MediaInspector, MediaMetadata

_EPOCH = datetime.min.replace(tzinfo=UTC)


class MappingError(RuntimeError):
    """Raised by a mapping rule when a single staging row cannot be mapped."""

    def __init__(
        self,
        message: str,
        *,
        namespace: str | None = None,
        external_id: str | None = None,
    ) -> None:
        super().__init__(message)
        self.namespace = namespace
        self.external_id = external_id


class MediaMetadataError(MappingError):
    """Raised when media metadata needed to classify a row cannot be fetched."""


# Canonical inserts ---------------------------------------------------------------


@dataclass(frozen=True, slots=True, kw_only=True)
class MediaInsert:
    KIND: ClassVar[CanonicalKind] = CanonicalKind.MEDIA

    url: str
    media_type: MediaType = MediaType.UNKNOWN
    media_format: str | None = None
    content_type: str | None = None
    file_size: int | None = None
    alt_text: str | None = None


@dataclass(frozen=True, slots=True, kw_only=True)
class IndexEntryInsert:
    KIND: ClassVar[CanonicalKind] = CanonicalKind.INDEX_ENTRY

    main_type: IndexMainType
    name: str
    sense: str = ""
    canonical_url: str | None = None
    media_url: str | None = None
    notes: str | None = None

    @property
    def natural_key(self) -> tuple[IndexMainType, str, str]:
        return (self.main_type, self.name, self.sense)


@dataclass(frozen=True, slots=True, kw_only=True)
class RecordInsert:
    KIND: ClassVar[CanonicalKind] = CanonicalKind.RECORD

    source: IntegrationSource
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
    content_created_at: datetime | None = None
    content_updated_at: datetime | None = None
    attached_media: tuple[MediaInsert, ...] = ()

    def record_fields(self) -> dict[str, object]:
        return {
            "type": self.type,
            "title": self.title,
            "url": self.url,
            "summary": self.summary,
            "content": self.content,
            "notes": self.notes,
            "media_caption": self.media_caption,
            "avatar_url": self.avatar_url,
            "rating": self.rating,
            "is_private": self.is_private,
            "content_created_at": self.content_created_at,
            "content_updated_at": self.content_updated_at,
        }


type CanonicalInsert = RecordInsert | IndexEntryInsert | MediaInsert


@dataclass(frozen=True, slots=True)
class RecordKey:
    """Natural key of a record: the staging row it was first created from."""

    source: IntegrationSource
    namespace: str
    external_id: str

    @classmethod
    def for_row(cls, row: StagingRow) -> RecordKey:
        return cls(row.SOURCE, row.NAMESPACE, row.external_id)


# Link intents --------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class StagingRef:
    """Reference to another staging row whose canonical id is resolved later."""

    row_type: type[StagingRow]
    external_id: str

    def __str__(self) -> str:
        return f"{self.row_type.NAMESPACE}:{self.external_id}"


@dataclass(frozen=True, slots=True)
class RecordLinkIntent:
    predicate: str
    target: StagingRef


@dataclass(frozen=True, slots=True)
class IndexLinkIntent:
    role: IndexRole
    target: StagingRef | IndexEntryInsert


@dataclass(frozen=True, slots=True)
class MediaOwnerIntent:
    owner: StagingRef


type LinkIntent = RecordLinkIntent | IndexLinkIntent | MediaOwnerIntent


# Rules ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class MappingContext:
    now: datetime
    media_inspector: MediaInspector | None = None

    def inspect_media(self, url: str) -> MediaMetadata:
        if self.media_inspector is None:
            raise MediaMetadataError(f"No media inspector configured to classify {url}")
        return self.media_inspector.inspect(url)


@runtime_checkable
class MappingRule[TRow: StagingRow](Protocol):
    """Deterministic ``StagingRow -> CanonicalInsert`` rule for one staging table."""

    @property
    def row_type(self) -> type[TRow]: ...

    @property
    def child_type(self) -> ChildType | None: ...

    def eligible(self, row: TRow) -> bool: ...

    def map_row(self, row: TRow, context: MappingContext) -> CanonicalInsert: ...

    def links(self, row: TRow) -> Iterable[LinkIntent]: ...

    def order_hint(self, row: TRow) -> tuple[datetime, str]: ...


class BaseMappingRule[TRow: StagingRow](ABC):
    """Defaults for rules: live rows are eligible, no links, no hierarchy."""

    row_type: type[TRow]
    child_type: ChildType | None = None

    def eligible(self, row: TRow) -> bool:
        return not row.is_deleted

    @abstractmethod
    def map_row(self, row: TRow, context: MappingContext) -> CanonicalInsert: ...

    def links(self, row: TRow) -> Iterable[LinkIntent]:
        _ = row
        return ()

    def order_hint(self, row: TRow) -> tuple[datetime, str]:
        return (row.content_created_at or _EPOCH, row.external_id)

    def fail(self, row: TRow, message: str) -> MappingError:
        return MappingError(message, namespace=row.NAMESPACE, external_id=row.external_id)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.row_type.NAMESPACE})"
