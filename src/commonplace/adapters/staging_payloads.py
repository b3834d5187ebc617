"""Pydantic models describing staging exports, one JSON object per line.

Every line names its staging table in ``kind`` (the table's namespace, e.g.
``airtable_extracts``). Field names follow the staging rows; the camelCase
spellings of the original exports are accepted as aliases.
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Annotated, ClassVar, Literal

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
)
from pydantic.alias_generators import to_camel

from commonplace.domain.model import (
    AirtableAttachment,
    AirtableCreator,
    AirtableExtract,
    AirtableFormat,
    AirtableSpace,
    BrowserHistoryPage,
    GithubRepository,
    GithubUser,
    IntegrationSource,
    LightroomImage,
    RaindropBookmark,
    RaindropCollection,
    ReadwiseDocument,
    StagingRow,
    TwitterMedia,
    TwitterTweet,
    TwitterUser,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator


class StagingPayloadError(ValueError):
    """Raised when a line of a staging export cannot be parsed."""

    def __init__(self, message: str, *, line_number: int | None = None) -> None:
        prefix = f"line {line_number}: " if line_number is not None else ""
        super().__init__(f"{prefix}{message}")
        self.line_number = line_number


def _blank_to_none(value: object) -> object:
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return value


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


class StagingPayload(BaseModel):
    ROW_TYPE: ClassVar[type[StagingRow]]

    model_config = ConfigDict(
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
        coerce_numbers_to_str=True,
    )

    external_id: str = Field(validation_alias=AliasChoices("id", "external_id", "externalId"))
    parent_external_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("parentId", "parent_external_id", "parentExternalId"),
    )
    content_created_at: datetime | None = Field(
        default=None,
        validation_alias=AliasChoices("createdAt", "content_created_at", "contentCreatedAt"),
    )
    content_updated_at: datetime | None = Field(
        default=None,
        validation_alias=AliasChoices("updatedAt", "content_updated_at", "contentUpdatedAt"),
    )
    deleted_at: datetime | None = None

    _normalize_parent = field_validator("parent_external_id", mode="before")(_blank_to_none)

    @field_validator("content_created_at", "content_updated_at", "deleted_at", mode="after")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value)

    def to_row(self) -> StagingRow:
        return self.ROW_TYPE(**self.model_dump(exclude={"kind"}))


# Airtable ---------------------------------------------------------------------


class AirtableFormatPayload(StagingPayload):
    ROW_TYPE: ClassVar[type[StagingRow]] = AirtableFormat

    kind: Literal["airtable_formats"]
    name: str


class AirtableCreatorPayload(StagingPayload):
    ROW_TYPE: ClassVar[type[StagingRow]] = AirtableCreator

    kind: Literal["airtable_creators"]
    name: str
    creator_type: str | None = Field(
        default=None, validation_alias=AliasChoices("type", "creator_type", "creatorType")
    )
    website: str | None = None

    _normalize_optional = field_validator("creator_type", "website", mode="before")(
        _blank_to_none
    )


class AirtableSpacePayload(StagingPayload):
    ROW_TYPE: ClassVar[type[StagingRow]] = AirtableSpace

    kind: Literal["airtable_spaces"]
    name: str
    full_name: str | None = None
    icon: str | None = None


class AirtableExtractPayload(StagingPayload):
    ROW_TYPE: ClassVar[type[StagingRow]] = AirtableExtract

    kind: Literal["airtable_extracts"]
    title: str | None = None
    source_url: str | None = Field(
        default=None, validation_alias=AliasChoices("source", "source_url", "sourceUrl")
    )
    content: str | None = Field(
        default=None, validation_alias=AliasChoices("extract", "content")
    )
    notes: str | None = None
    attachment_caption: str | None = None
    michelin_stars: int | None = None
    published_at: datetime | None = None
    format_id: str | None = None
    creator_ids: list[str] = Field(default_factory=list)
    space_ids: list[str] = Field(default_factory=list)
    connection_ids: list[str] = Field(default_factory=list)

    _normalize_optional = field_validator(
        "title", "source_url", "content", "notes", "attachment_caption", "format_id", mode="before"
    )(_blank_to_none)

    @field_validator("published_at", mode="after")
    @classmethod
    def _assume_utc_published(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value)


class AirtableAttachmentPayload(StagingPayload):
    ROW_TYPE: ClassVar[type[StagingRow]] = AirtableAttachment

    kind: Literal["airtable_attachments"]
    url: str
    filename: str | None = None
    mime_type: str | None = Field(
        default=None, validation_alias=AliasChoices("type", "mime_type", "mimeType")
    )
    size: int | None = None
    extract_id: str | None = None

    _normalize_optional = field_validator("mime_type", "extract_id", mode="before")(
        _blank_to_none
    )


# GitHub -----------------------------------------------------------------------


class GithubUserPayload(StagingPayload):
    ROW_TYPE: ClassVar[type[StagingRow]] = GithubUser

    kind: Literal["github_users"]
    login: str
    name: str | None = None
    account_type: str = Field(
        default="User", validation_alias=AliasChoices("type", "account_type", "accountType")
    )
    blog: str | None = None
    html_url: str | None = None
    avatar_url: str | None = None
    bio: str | None = None

    _normalize_optional = field_validator("name", "blog", "bio", mode="before")(_blank_to_none)


class GithubRepositoryPayload(StagingPayload):
    ROW_TYPE: ClassVar[type[StagingRow]] = GithubRepository

    kind: Literal["github_repositories"]
    name: str
    full_name: str | None = None
    description: str | None = None
    html_url: str | None = None
    homepage: str | None = None
    is_private: bool = Field(
        default=False, validation_alias=AliasChoices("private", "is_private", "isPrivate")
    )
    owner_id: str | None = None
    language: str | None = None
    topics: list[str] = Field(default_factory=list)

    _normalize_optional = field_validator("description", "homepage", "language", mode="before")(
        _blank_to_none
    )


# Readwise ---------------------------------------------------------------------


class ReadwiseDocumentPayload(StagingPayload):
    ROW_TYPE: ClassVar[type[StagingRow]] = ReadwiseDocument

    kind: Literal["readwise_documents"]
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
    tags: list[str] = Field(default_factory=list)

    _normalize_optional = field_validator(
        "title", "author", "source_url", "content", "summary", "notes", "image_url", mode="before"
    )(_blank_to_none)


# Twitter ----------------------------------------------------------------------


class TwitterUserPayload(StagingPayload):
    ROW_TYPE: ClassVar[type[StagingRow]] = TwitterUser

    kind: Literal["twitter_users"]
    username: str
    display_name: str | None = Field(
        default=None, validation_alias=AliasChoices("name", "display_name", "displayName")
    )
    description: str | None = None
    url: str | None = None
    profile_image_url: str | None = None

    _normalize_optional = field_validator("display_name", "description", "url", mode="before")(
        _blank_to_none
    )


class TwitterTweetPayload(StagingPayload):
    ROW_TYPE: ClassVar[type[StagingRow]] = TwitterTweet

    kind: Literal["twitter_tweets"]
    text: str = Field(validation_alias=AliasChoices("fullText", "text", "full_text"))
    url: str | None = None
    author_id: str | None = None
    quoted_tweet_id: str | None = None

    _normalize_optional = field_validator("author_id", "quoted_tweet_id", mode="before")(
        _blank_to_none
    )


class TwitterMediaPayload(StagingPayload):
    ROW_TYPE: ClassVar[type[StagingRow]] = TwitterMedia

    kind: Literal["twitter_media"]
    url: str = Field(validation_alias=AliasChoices("mediaUrl", "url", "media_url"))
    media_kind: str = Field(
        default="photo", validation_alias=AliasChoices("type", "media_kind", "mediaKind")
    )
    alt_text: str | None = None
    tweet_id: str | None = None


# Lightroom --------------------------------------------------------------------


class LightroomImagePayload(StagingPayload):
    ROW_TYPE: ClassVar[type[StagingRow]] = LightroomImage

    kind: Literal["lightroom_images"]
    url: str
    title: str | None = None
    caption: str | None = None
    file_name: str | None = None
    keywords: list[str] = Field(default_factory=list)

    _normalize_optional = field_validator("title", "caption", mode="before")(_blank_to_none)


# Browser history --------------------------------------------------------------


class BrowserHistoryPagePayload(StagingPayload):
    """A history entry; the URL doubles as the external id unless one is given."""

    ROW_TYPE: ClassVar[type[StagingRow]] = BrowserHistoryPage

    kind: Literal["browser_history_pages"]
    external_id: str = Field(
        validation_alias=AliasChoices("id", "external_id", "externalId", "url")
    )
    content_created_at: datetime | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "firstVisitedAt", "viewTime", "createdAt", "content_created_at"
        ),
    )
    content_updated_at: datetime | None = Field(
        default=None,
        validation_alias=AliasChoices("lastVisitedAt", "updatedAt", "content_updated_at"),
    )
    url: str
    page_title: str | None = Field(
        default=None, validation_alias=AliasChoices("title", "pageTitle", "page_title")
    )
    browser: str | None = None
    hostname: str | None = None
    visit_count: int = 1

    _normalize_optional = field_validator("page_title", "browser", "hostname", mode="before")(
        _blank_to_none
    )


# Raindrop ---------------------------------------------------------------------


class RaindropCollectionPayload(StagingPayload):
    ROW_TYPE: ClassVar[type[StagingRow]] = RaindropCollection

    kind: Literal["raindrop_collections"]
    external_id: str = Field(validation_alias=AliasChoices("_id", "id", "external_id"))
    title: str
    color_hex: str | None = Field(
        default=None, validation_alias=AliasChoices("color", "color_hex", "colorHex")
    )
    cover_url: str | None = Field(
        default=None, validation_alias=AliasChoices("cover", "cover_url", "coverUrl")
    )

    _normalize_optional = field_validator("color_hex", "cover_url", mode="before")(
        _blank_to_none
    )


class RaindropBookmarkPayload(StagingPayload):
    ROW_TYPE: ClassVar[type[StagingRow]] = RaindropBookmark

    kind: Literal["raindrop_bookmarks"]
    external_id: str = Field(validation_alias=AliasChoices("_id", "id", "external_id"))
    content_created_at: datetime | None = Field(
        default=None, validation_alias=AliasChoices("created", "createdAt", "content_created_at")
    )
    content_updated_at: datetime | None = Field(
        default=None,
        validation_alias=AliasChoices("lastUpdate", "updatedAt", "content_updated_at"),
    )
    link_url: str = Field(validation_alias=AliasChoices("link", "link_url", "linkUrl"))
    title: str | None = None
    excerpt: str | None = None
    note: str | None = None
    bookmark_type: str | None = Field(
        default=None, validation_alias=AliasChoices("type", "bookmark_type", "bookmarkType")
    )
    domain: str | None = None
    important: bool = False
    collection_id: str | None = None
    cover_url: str | None = Field(
        default=None, validation_alias=AliasChoices("cover", "cover_url", "coverUrl")
    )
    tags: list[str] = Field(default_factory=list)

    _normalize_optional = field_validator(
        "title", "excerpt", "note", "bookmark_type", "collection_id", "cover_url", mode="before"
    )(_blank_to_none)


AnyStagingPayload = Annotated[
    AirtableFormatPayload
    | AirtableCreatorPayload
    | AirtableSpacePayload
    | AirtableExtractPayload
    | AirtableAttachmentPayload
    | GithubUserPayload
    | GithubRepositoryPayload
    | ReadwiseDocumentPayload
    | TwitterUserPayload
    | TwitterTweetPayload
    | TwitterMediaPayload
    | LightroomImagePayload
    | BrowserHistoryPagePayload
    | RaindropCollectionPayload
    | RaindropBookmarkPayload,
    Field(discriminator="kind"),
]

_PAYLOAD_ADAPTER = TypeAdapter(AnyStagingPayload)


def parse_staging_payload(data: object, *, line_number: int | None = None) -> StagingPayload:
    try:
        return _PAYLOAD_ADAPTER.validate_python(data)
    except ValidationError as exc:
        raise StagingPayloadError(str(exc), line_number=line_number) from exc


def parse_staging_lines(
    lines: Iterable[str], *, source: IntegrationSource | None = None
) -> Iterator[StagingRow]:
    """Yield staging rows from JSON lines, skipping blank lines.

    With ``source`` given, every line must belong to one of that source's tables.
    """

    for line_number, line in enumerate(lines, start=1):
        if not line.strip():
            continue
        try:
            data = json.loads(line)
        except json.JSONDecodeError as exc:
            raise StagingPayloadError(f"invalid JSON: {exc.msg}", line_number=line_number) from exc
        payload = parse_staging_payload(data, line_number=line_number)
        row = payload.to_row()
        if source is not None and row.SOURCE is not source:
            raise StagingPayloadError(
                f"{row.NAMESPACE} rows do not belong to {source}", line_number=line_number
            )
        yield row
