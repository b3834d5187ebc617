"""Staging rows: raw per-source records awaiting entity resolution.

Each staging table stores the source's native fields plus the bookkeeping the
mapper relies on: ``external_id`` (the source's own identifier),
``canonical_id`` (written back once the row is mapped) and an optional
``parent_external_id`` naming another row of the same table.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import UTC, datetime
from typing import ClassVar, Final, Self

from .enums import CanonicalKind, IntegrationSource


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


_BOOKKEEPING_FIELDS: Final[frozenset[str]] = frozenset(
    {"id", "external_id", "canonical_id", "imported_at"}
)


@dataclass(eq=False, kw_only=True)
class StagingRow:
    NAMESPACE: ClassVar[str]
    SOURCE: ClassVar[IntegrationSource]
    TARGET: ClassVar[CanonicalKind]

    id: int | None = None
    external_id: str
    canonical_id: int | None = None
    parent_external_id: str | None = None
    content_created_at: datetime | None = None
    content_updated_at: datetime | None = None
    deleted_at: datetime | None = None
    imported_at: datetime = field(default_factory=_utcnow)

    @property
    def is_mapped(self) -> bool:
        return self.canonical_id is not None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def refresh_from(self, other: Self) -> bool:
        """Copy the source fields of a re-imported row; return whether any changed.

        The canonical pointer and the import bookkeeping are left untouched.
        """

        if type(other) is not type(self):
            raise TypeError(f"Cannot refresh {type(self).__name__} from {type(other).__name__}")
        if other.external_id != self.external_id:
            raise ValueError(f"External id mismatch: {self.external_id} != {other.external_id}")
        changed = False
        for item in fields(self):
            if item.name in _BOOKKEEPING_FIELDS:
                continue
            value = getattr(other, item.name)
            if getattr(self, item.name) != value:
                setattr(self, item.name, value)
                changed = True
        return changed


# Airtable ---------------------------------------------------------------------


@dataclass(eq=False, kw_only=True)
class AirtableFormat(StagingRow):
    NAMESPACE: ClassVar[str] = "airtable_formats"
    SOURCE: ClassVar[IntegrationSource] = IntegrationSource.AIRTABLE
    TARGET: ClassVar[CanonicalKind] = CanonicalKind.INDEX_ENTRY

    name: str


@dataclass(eq=False, kw_only=True)
class AirtableCreator(StagingRow):
    NAMESPACE: ClassVar[str] = "airtable_creators"
    SOURCE: ClassVar[IntegrationSource] = IntegrationSource.AIRTABLE
    TARGET: ClassVar[CanonicalKind] = CanonicalKind.INDEX_ENTRY

    name: str
    creator_type: str | None = None
    website: str | None = None


@dataclass(eq=False, kw_only=True)
class AirtableSpace(StagingRow):
    NAMESPACE: ClassVar[str] = "airtable_spaces"
    SOURCE: ClassVar[IntegrationSource] = IntegrationSource.AIRTABLE
    TARGET: ClassVar[CanonicalKind] = CanonicalKind.INDEX_ENTRY

    name: str
    full_name: str | None = None
    icon: str | None = None


@dataclass(eq=False, kw_only=True)
class AirtableExtract(StagingRow):
    NAMESPACE: ClassVar[str] = "airtable_extracts"
    SOURCE: ClassVar[IntegrationSource] = IntegrationSource.AIRTABLE
    TARGET: ClassVar[CanonicalKind] = CanonicalKind.RECORD

    title: str | None = None
    source_url: str | None = None
    content: str | None = None
    notes: str | None = None
    attachment_caption: str | None = None
    michelin_stars: int | None = None
    published_at: datetime | None = None
    format_id: str | None = None
    creator_ids: list[str] = field(default_factory=list)
    space_ids: list[str] = field(default_factory=list)
    connection_ids: list[str] = field(default_factory=list)


@dataclass(eq=False, kw_only=True)
class AirtableAttachment(StagingRow):
    NAMESPACE: ClassVar[str] = "airtable_attachments"
    SOURCE: ClassVar[IntegrationSource] = IntegrationSource.AIRTABLE
    TARGET: ClassVar[CanonicalKind] = CanonicalKind.MEDIA

    url: str
    filename: str | None = None
    mime_type: str | None = None
    size: int | None = None
    extract_id: str | None = None


# GitHub -----------------------------------------------------------------------


@dataclass(eq=False, kw_only=True)
class GithubUser(StagingRow):
    NAMESPACE: ClassVar[str] = "github_users"
    SOURCE: ClassVar[IntegrationSource] = IntegrationSource.GITHUB
    TARGET: ClassVar[CanonicalKind] = CanonicalKind.INDEX_ENTRY

    login: str
    name: str | None = None
    account_type: str = "User"
    blog: str | None = None
    html_url: str | None = None
    avatar_url: str | None = None
    bio: str | None = None


@dataclass(eq=False, kw_only=True)
class GithubRepository(StagingRow):
    NAMESPACE: ClassVar[str] = "github_repositories"
    SOURCE: ClassVar[IntegrationSource] = IntegrationSource.GITHUB
    TARGET: ClassVar[CanonicalKind] = CanonicalKind.RECORD

    name: str
    full_name: str | None = None
    description: str | None = None
    html_url: str | None = None
    homepage: str | None = None
    is_private: bool = False
    owner_id: str | None = None
    language: str | None = None
    topics: list[str] = field(default_factory=list)


# Readwise ---------------------------------------------------------------------


@dataclass(eq=False, kw_only=True)
class ReadwiseDocument(StagingRow):
    NAMESPACE: ClassVar[str] = "readwise_documents"
    SOURCE: ClassVar[IntegrationSource] = IntegrationSource.READWISE
    TARGET: ClassVar[CanonicalKind] = CanonicalKind.RECORD

    title: str | None = None
    author: str | None = None
    source_url: str | None = None
    content: str | None = None
    summary: str | None = None
    notes: str | None = None
    category: str | None = None
    location: str | None = None
    site_name: str | None = None
    image_url: str | None = None
    tags: list[str] = field(default_factory=list)


# Twitter ----------------------------------------------------------------------


@dataclass(eq=False, kw_only=True)
class TwitterUser(StagingRow):
    NAMESPACE: ClassVar[str] = "twitter_users"
    SOURCE: ClassVar[IntegrationSource] = IntegrationSource.TWITTER
    TARGET: ClassVar[CanonicalKind] = CanonicalKind.INDEX_ENTRY

    username: str
    display_name: str | None = None
    description: str | None = None
    url: str | None = None
    profile_image_url: str | None = None


@dataclass(eq=False, kw_only=True)
class TwitterTweet(StagingRow):
    NAMESPACE: ClassVar[str] = "twitter_tweets"
    SOURCE: ClassVar[IntegrationSource] = IntegrationSource.TWITTER
    TARGET: ClassVar[CanonicalKind] = CanonicalKind.RECORD

    text: str
    url: str | None = None
    author_id: str | None = None
    quoted_tweet_id: str | None = None


@dataclass(eq=False, kw_only=True)
class TwitterMedia(StagingRow):
    NAMESPACE: ClassVar[str] = "twitter_media"
    SOURCE: ClassVar[IntegrationSource] = IntegrationSource.TWITTER
    TARGET: ClassVar[CanonicalKind] = CanonicalKind.MEDIA

    url: str
    media_kind: str = "photo"
    alt_text: str | None = None
    tweet_id: str | None = None


# Lightroom --------------------------------------------------------------------


@dataclass(eq=False, kw_only=True)
class LightroomImage(StagingRow):
    NAMESPACE: ClassVar[str] = "lightroom_images"
    SOURCE: ClassVar[IntegrationSource] = IntegrationSource.LIGHTROOM
    TARGET: ClassVar[CanonicalKind] = CanonicalKind.RECORD

    url: str
    title: str | None = None
    caption: str | None = None
    file_name: str | None = None
    keywords: list[str] = field(default_factory=list)


# Browser history --------------------------------------------------------------


@dataclass(eq=False, kw_only=True)
class BrowserHistoryPage(StagingRow):
    """A visited page, keyed by its URL across every visit and browser.

    ``content_created_at`` is the first visit and ``content_updated_at`` the last.
    """

    NAMESPACE: ClassVar[str] = "browser_history_pages"
    SOURCE: ClassVar[IntegrationSource] = IntegrationSource.BROWSER_HISTORY
    TARGET: ClassVar[CanonicalKind] = CanonicalKind.RECORD

    url: str
    page_title: str | None = None
    browser: str | None = None
    hostname: str | None = None
    visit_count: int = 1


# Raindrop ---------------------------------------------------------------------


@dataclass(eq=False, kw_only=True)
class RaindropCollection(StagingRow):
    NAMESPACE: ClassVar[str] = "raindrop_collections"
    SOURCE: ClassVar[IntegrationSource] = IntegrationSource.RAINDROP
    TARGET: ClassVar[CanonicalKind] = CanonicalKind.INDEX_ENTRY

    title: str
    color_hex: str | None = None
    cover_url: str | None = None


@dataclass(eq=False, kw_only=True)
class RaindropBookmark(StagingRow):
    NAMESPACE: ClassVar[str] = "raindrop_bookmarks"
    SOURCE: ClassVar[IntegrationSource] = IntegrationSource.RAINDROP
    TARGET: ClassVar[CanonicalKind] = CanonicalKind.RECORD

    link_url: str
    title: str | None = None
    excerpt: str | None = None
    note: str | None = None
    bookmark_type: str | None = None
    domain: str | None = None
    important: bool = False
    collection_id: str | None = None
    cover_url: str | None = None
    tags: list[str] = field(default_factory=list)


STAGING_ROW_TYPES: Final[tuple[type[StagingRow], ...]] = (
    AirtableFormat,
    AirtableCreator,
    AirtableSpace,
    AirtableExtract,
    AirtableAttachment,
    GithubUser,
    GithubRepository,
    ReadwiseDocument,
    TwitterUser,
    TwitterTweet,
    TwitterMedia,
    LightroomImage,
    BrowserHistoryPage,
    RaindropCollection,
    RaindropBookmark,
)

STAGING_ROW_TYPES_BY_NAMESPACE: Final[dict[str, type[StagingRow]]] = {
    row_type.NAMESPACE: row_type for row_type in STAGING_ROW_TYPES
}
