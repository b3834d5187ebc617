"""SQLAlchemy mapping metadata for the Commonplace domain model."""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from functools import cache
from typing import TYPE_CHECKING, Any, Final, cast

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Dialect,
    Enum,
    ForeignKey,
    Index,
    Integer,
    SmallInteger,
    String,
    Table,
    Text,
    TypeDecorator,
    UniqueConstraint,
    orm,
)
from sqlalchemy.orm import configure_mappers

from commonplace.domain.model import (
    STAGING_ROW_TYPES,
    AirtableAttachment,
    AirtableCreator,
    AirtableExtract,
    AirtableFormat,
    AirtableSpace,
    BrowserHistoryPage,
    ChildType,
    GithubRepository,
    GithubUser,
    IndexEntry,
    IndexMainType,
    IndexRole,
    IntegrationSource,
    LightroomImage,
    Link,
    Media,
    MediaType,
    MergeReason,
    MergeSnapshot,
    Predicate,
    PredicateType,
    RaindropBookmark,
    RaindropCollection,
    ReadwiseDocument,
    Record,
    RecordExternalId,
    RecordIndexEntry,
    RecordMerge,
    RecordType,
    StagingRow,
    TwitterMedia,
    TwitterTweet,
    TwitterUser,
)

if TYPE_CHECKING:
    from sqlalchemy.engine import Connection, Engine
    from sqlalchemy.types import TypeEngine

log = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class UTCDateTime(TypeDecorator[datetime]):
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        return value if value.tzinfo else value.replace(tzinfo=UTC)


class SourceSetType(TypeDecorator[set[IntegrationSource]]):
    impl = String
    cache_ok = True

    def process_bind_param(
        self, value: set[IntegrationSource] | None, dialect: Dialect
    ) -> str | None:
        _ = dialect
        if value is None:
            return None
        payload = sorted(source.value for source in value)
        return json.dumps(payload)

    def process_result_value(self, value: str | None, dialect: Dialect) -> set[IntegrationSource]:
        _ = dialect
        if value is None:
            return set()
        loaded = json.loads(value)
        if not isinstance(loaded, list):
            return set()
        items = cast(list[Any], loaded)
        sources: set[IntegrationSource] = set()
        for item in items:
            if isinstance(item, str):
                sources.add(IntegrationSource(item))
        return sources


class StringListType(TypeDecorator[list[str]]):
    impl = Text
    cache_ok = True

    def process_bind_param(self, value: list[str] | None, dialect: Dialect) -> str:
        _ = dialect
        return json.dumps(list(value or []))

    def process_result_value(self, value: str | None, dialect: Dialect) -> list[str]:
        _ = dialect
        if not value:
            return []
        loaded = json.loads(value)
        if not isinstance(loaded, list):
            return []
        return [item for item in cast(list[Any], loaded) if isinstance(item, str)]


class EmbeddingType(TypeDecorator[list[float]]):
    """Embedding vector stored as a JSON array; NULL marks it stale."""

    impl = Text
    cache_ok = True

    def process_bind_param(self, value: list[float] | None, dialect: Dialect) -> str | None:
        _ = dialect
        if value is None:
            return None
        return json.dumps([float(item) for item in value])

    def process_result_value(self, value: str | None, dialect: Dialect) -> list[float] | None:
        _ = dialect
        if value is None:
            return None
        loaded = json.loads(value)
        if not isinstance(loaded, list):
            return None
        return [float(item) for item in cast(list[Any], loaded)]


class MergeSnapshotType(TypeDecorator[MergeSnapshot]):
    impl = Text
    cache_ok = True

    def process_bind_param(self, value: MergeSnapshot | None, dialect: Dialect) -> str | None:
        _ = dialect
        if value is None:
            return None
        return json.dumps(value.to_dict(), sort_keys=True)

    def process_result_value(self, value: str | None, dialect: Dialect) -> MergeSnapshot | None:
        _ = dialect
        if not value:
            return None
        loaded = json.loads(value)
        if not isinstance(loaded, dict):
            return None
        return MergeSnapshot.from_dict(cast(dict[str, Any], loaded))


mapper_registry = orm.registry()
mapper_registry.metadata.naming_convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_label)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_label)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

# Canonical graph --------------------------------------------------------------

record_table = Table(
    "records",
    mapper_registry.metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("type", Enum(RecordType, native_enum=False), nullable=False),
    Column("title", Text, nullable=True),
    Column("url", Text, nullable=True),
    Column("summary", Text, nullable=True),
    Column("content", Text, nullable=True),
    Column("notes", Text, nullable=True),
    Column("media_caption", Text, nullable=True),
    Column("avatar_url", Text, nullable=True),
    Column("rating", SmallInteger, nullable=False, default=0),
    Column("is_private", Boolean, nullable=False, default=False),
    Column("is_curated", Boolean, nullable=False, default=False),
    Column("sources", SourceSetType, nullable=False),
    Column("parent_id", Integer, ForeignKey("records.id", ondelete="SET NULL"), nullable=True),
    Column("child_type", Enum(ChildType, native_enum=False), nullable=True),
    Column("order_key", String(255), nullable=True),
    Column("text_embedding", EmbeddingType, nullable=True),
    Column("record_created_at", UTCDateTime, nullable=False, default=_utcnow),
    Column("record_updated_at", UTCDateTime, nullable=False, default=_utcnow),
    Column("content_created_at", UTCDateTime, nullable=True),
    Column("content_updated_at", UTCDateTime, nullable=True),
    CheckConstraint("rating BETWEEN 0 AND 3", name="rating_range"),
    UniqueConstraint("parent_id", "order_key"),
    Index("ix_records_url", "url"),
)

record_external_id_table = Table(
    "record_external_ids",
    mapper_registry.metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("source", Enum(IntegrationSource, native_enum=False), nullable=False),
    Column("namespace", String(64), nullable=False),
    Column("external_id", String(255), nullable=False),
    Column(
        "record_id",
        Integer,
        ForeignKey("records.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    UniqueConstraint("source", "namespace", "external_id"),
)

predicate_table = Table(
    "predicates",
    mapper_registry.metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("slug", String(64), nullable=False, unique=True),
    Column("name", String(128), nullable=False),
    Column("type", Enum(PredicateType, native_enum=False), nullable=False),
    Column("inverse_slug", String(64), nullable=False),
    Column("canonical", Boolean, nullable=False),
)

link_table = Table(
    "links",
    mapper_registry.metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column(
        "source_id",
        Integer,
        ForeignKey("records.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    Column(
        "target_id",
        Integer,
        ForeignKey("records.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    Column("predicate_id", Integer, ForeignKey("predicates.id"), nullable=False),
    Column("created_at", UTCDateTime, nullable=False, default=_utcnow),
    UniqueConstraint("source_id", "target_id", "predicate_id"),
)

index_entry_table = Table(
    "index_entries",
    mapper_registry.metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("main_type", Enum(IndexMainType, native_enum=False), nullable=False),
    Column("name", String(512), nullable=False),
    Column("sense", String(255), nullable=False, default=""),
    Column("canonical_url", Text, nullable=True),
    Column("media_url", Text, nullable=True),
    Column("notes", Text, nullable=True),
    Column("created_at", UTCDateTime, nullable=False, default=_utcnow),
    Column("updated_at", UTCDateTime, nullable=False, default=_utcnow),
    UniqueConstraint("main_type", "name", "sense"),
)

record_index_entry_table = Table(
    "record_index_entries",
    mapper_registry.metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column(
        "record_id",
        Integer,
        ForeignKey("records.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    Column(
        "index_entry_id",
        Integer,
        ForeignKey("index_entries.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("role", Enum(IndexRole, native_enum=False), nullable=False),
    UniqueConstraint("record_id", "index_entry_id", "role"),
)

media_table = Table(
    "media",
    mapper_registry.metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("url", Text, nullable=False, unique=True),
    Column("media_type", Enum(MediaType, native_enum=False), nullable=False),
    Column("media_format", String(32), nullable=True),
    Column("content_type", String(128), nullable=True),
    Column("file_size", Integer, nullable=True),
    Column("alt_text", Text, nullable=True),
    Column(
        "record_id",
        Integer,
        ForeignKey("records.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    ),
    Column("created_at", UTCDateTime, nullable=False, default=_utcnow),
    Column("updated_at", UTCDateTime, nullable=False, default=_utcnow),
)

record_merge_table = Table(
    "record_merges",
    mapper_registry.metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("source_id", Integer, nullable=False),
    Column("target_id", Integer, nullable=False, index=True),
    Column("reason", Enum(MergeReason, native_enum=False), nullable=False),
    Column("merged_at", UTCDateTime, nullable=False),
    Column("created_by", String(255), nullable=True),
    Column("snapshot", MergeSnapshotType, nullable=True),
    Column("undone_at", UTCDateTime, nullable=True),
)

# Staging ----------------------------------------------------------------------


def _staging_table(
    row_type: type[StagingRow],
    *columns: Column[Any],
    external_id_type: TypeEngine[Any] | type[TypeEngine[Any]] | None = None,
) -> Table:
    name = row_type.NAMESPACE
    return Table(
        name,
        mapper_registry.metadata,
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("external_id", external_id_type or String(255), nullable=False, unique=True),
        Column("canonical_id", Integer, nullable=True, index=True),
        Column("parent_external_id", String(255), nullable=True),
        Column("content_created_at", UTCDateTime, nullable=True),
        Column("content_updated_at", UTCDateTime, nullable=True),
        Column("deleted_at", UTCDateTime, nullable=True),
        Column("imported_at", UTCDateTime, nullable=False, default=_utcnow),
        *columns,
    )


STAGING_TABLES: Final[dict[type[StagingRow], Table]] = {
    AirtableFormat: _staging_table(AirtableFormat, Column("name", Text, nullable=False)),
    AirtableCreator: _staging_table(
        AirtableCreator,
        Column("name", Text, nullable=False),
        Column("creator_type", String(64), nullable=True),
        Column("website", Text, nullable=True),
    ),
    AirtableSpace: _staging_table(
        AirtableSpace,
        Column("name", Text, nullable=False),
        Column("full_name", Text, nullable=True),
        Column("icon", String(32), nullable=True),
    ),
    AirtableExtract: _staging_table(
        AirtableExtract,
        Column("title", Text, nullable=True),
        Column("source_url", Text, nullable=True),
        Column("content", Text, nullable=True),
        Column("notes", Text, nullable=True),
        Column("attachment_caption", Text, nullable=True),
        Column("michelin_stars", SmallInteger, nullable=True),
        Column("published_at", UTCDateTime, nullable=True),
        Column("format_id", String(255), nullable=True),
        Column("creator_ids", StringListType, nullable=False),
        Column("space_ids", StringListType, nullable=False),
        Column("connection_ids", StringListType, nullable=False),
    ),
    AirtableAttachment: _staging_table(
        AirtableAttachment,
        Column("url", Text, nullable=False),
        Column("filename", Text, nullable=True),
        Column("mime_type", String(128), nullable=True),
        Column("size", Integer, nullable=True),
        Column("extract_id", String(255), nullable=True),
    ),
    GithubUser: _staging_table(
        GithubUser,
        Column("login", String(255), nullable=False),
        Column("name", Text, nullable=True),
        Column("account_type", String(32), nullable=False),
        Column("blog", Text, nullable=True),
        Column("html_url", Text, nullable=True),
        Column("avatar_url", Text, nullable=True),
        Column("bio", Text, nullable=True),
    ),
    GithubRepository: _staging_table(
        GithubRepository,
        Column("name", Text, nullable=False),
        Column("full_name", Text, nullable=True),
        Column("description", Text, nullable=True),
        Column("html_url", Text, nullable=True),
        Column("homepage", Text, nullable=True),
        Column("is_private", Boolean, nullable=False),
        Column("owner_id", String(255), nullable=True),
        Column("language", String(64), nullable=True),
        Column("topics", StringListType, nullable=False),
    ),
    ReadwiseDocument: _staging_table(
        ReadwiseDocument,
        Column("title", Text, nullable=True),
        Column("author", Text, nullable=True),
        Column("source_url", Text, nullable=True),
        Column("content", Text, nullable=True),
        Column("summary", Text, nullable=True),
        Column("notes", Text, nullable=True),
        Column("category", String(32), nullable=True),
        Column("location", String(32), nullable=True),
        Column("site_name", Text, nullable=True),
        Column("image_url", Text, nullable=True),
        Column("tags", StringListType, nullable=False),
    ),
    TwitterUser: _staging_table(
        TwitterUser,
        Column("username", String(255), nullable=False),
        Column("display_name", Text, nullable=True),
        Column("description", Text, nullable=True),
        Column("url", Text, nullable=True),
        Column("profile_image_url", Text, nullable=True),
    ),
    TwitterTweet: _staging_table(
        TwitterTweet,
        Column("text", Text, nullable=False),
        Column("url", Text, nullable=True),
        Column("author_id", String(255), nullable=True),
        Column("quoted_tweet_id", String(255), nullable=True),
    ),
    TwitterMedia: _staging_table(
        TwitterMedia,
        Column("url", Text, nullable=False),
        Column("media_kind", String(32), nullable=False),
        Column("alt_text", Text, nullable=True),
        Column("tweet_id", String(255), nullable=True),
    ),
    LightroomImage: _staging_table(
        LightroomImage,
        Column("url", Text, nullable=False),
        Column("title", Text, nullable=True),
        Column("caption", Text, nullable=True),
        Column("file_name", Text, nullable=True),
        Column("keywords", StringListType, nullable=False),
    ),
    BrowserHistoryPage: _staging_table(
        BrowserHistoryPage,
        Column("url", Text, nullable=False),
        Column("page_title", Text, nullable=True),
        Column("browser", String(32), nullable=True),
        Column("hostname", String(255), nullable=True),
        Column("visit_count", Integer, nullable=False, default=1),
        external_id_type=Text,
    ),
    RaindropCollection: _staging_table(
        RaindropCollection,
        Column("title", Text, nullable=False),
        Column("color_hex", String(16), nullable=True),
        Column("cover_url", Text, nullable=True),
    ),
    RaindropBookmark: _staging_table(
        RaindropBookmark,
        Column("link_url", Text, nullable=False),
        Column("title", Text, nullable=True),
        Column("excerpt", Text, nullable=True),
        Column("note", Text, nullable=True),
        Column("bookmark_type", String(32), nullable=True),
        Column("domain", String(255), nullable=True),
        Column("important", Boolean, nullable=False),
        Column("collection_id", String(255), nullable=True),
        Column("cover_url", Text, nullable=True),
        Column("tags", StringListType, nullable=False),
    ),
}

if set(STAGING_TABLES) != set(STAGING_ROW_TYPES):
    raise RuntimeError("Every staging row type needs a staging table")


@cache
def start_mappers() -> orm.registry:
    """Configure SQLAlchemy mappers for the domain model."""

    log.info("Starting SQLAlchemy mappers")

    mapper_registry.map_imperatively(Record, record_table)
    mapper_registry.map_imperatively(RecordExternalId, record_external_id_table)
    mapper_registry.map_imperatively(Predicate, predicate_table)
    mapper_registry.map_imperatively(Link, link_table)
    mapper_registry.map_imperatively(IndexEntry, index_entry_table)
    mapper_registry.map_imperatively(RecordIndexEntry, record_index_entry_table)
    mapper_registry.map_imperatively(Media, media_table)
    mapper_registry.map_imperatively(RecordMerge, record_merge_table)
    for row_type, table in STAGING_TABLES.items():
        mapper_registry.map_imperatively(row_type, table)

    configure_mappers()
    return mapper_registry


def create_all_tables(bind: Engine | Connection) -> None:
    """Create database tables for the mapped metadata."""

    log.info("Creating all tables")
    mapper_registry.metadata.create_all(bind)
