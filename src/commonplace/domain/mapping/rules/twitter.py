"""Twitter users, tweets and tweet media."""

from __future__ import annotations

from typing import TYPE_CHECKING, Final

from commonplace.domain.mapping.contracts import (
    BaseMappingRule,
    IndexEntryInsert,
    IndexLinkIntent,
    MediaInsert,
    MediaOwnerIntent,
    RecordInsert,
    RecordLinkIntent,
    StagingRef,
)
from commonplace.domain.model import (
    ChildType,
    IndexMainType,
    IndexRole,
    IntegrationSource,
    MediaType,
    RecordType,
    TwitterMedia,
    TwitterTweet,
    TwitterUser,
)

from ._text import clean, format_from_path

if TYPE_CHECKING:
    from collections.abc import Iterator

    from commonplace.domain.mapping.contracts import LinkIntent, MappingContext

PROFILE_URL: Final[str] = "https://x.com/{username}"

_MEDIA_TYPES: Final[dict[str, MediaType]] = {
    "photo": MediaType.IMAGE,
    "video": MediaType.VIDEO,
    "animated_gif": MediaType.VIDEO,
}


class TwitterUserRule(BaseMappingRule[TwitterUser]):
    row_type = TwitterUser

    def map_row(self, row: TwitterUser, context: MappingContext) -> IndexEntryInsert:
        username = clean(row.username)
        if username is None:
            raise self.fail(row, "user has no username")
        return IndexEntryInsert(
            main_type=IndexMainType.ENTITY,
            name=clean(row.display_name) or username,
            canonical_url=clean(row.url) or PROFILE_URL.format(username=username),
            media_url=clean(row.profile_image_url),
            notes=clean(row.description),
        )


class TwitterTweetRule(BaseMappingRule[TwitterTweet]):
    row_type = TwitterTweet
    child_type = ChildType.REPLY_TO

    def map_row(self, row: TwitterTweet, context: MappingContext) -> RecordInsert:
        text = clean(row.text)
        if text is None:
            raise self.fail(row, "tweet has no text")
        return RecordInsert(
            source=IntegrationSource.TWITTER,
            type=RecordType.ARTIFACT,
            url=clean(row.url),
            content=text,
            content_created_at=row.content_created_at,
            content_updated_at=row.content_updated_at,
        )

    def links(self, row: TwitterTweet) -> Iterator[LinkIntent]:
        if row.author_id:
            yield IndexLinkIntent(IndexRole.CREATOR, StagingRef(TwitterUser, row.author_id))
        if row.quoted_tweet_id:
            yield RecordLinkIntent("quotes", StagingRef(TwitterTweet, row.quoted_tweet_id))


class TwitterMediaRule(BaseMappingRule[TwitterMedia]):
    row_type = TwitterMedia

    def map_row(self, row: TwitterMedia, context: MappingContext) -> MediaInsert:
        url = clean(row.url)
        if url is None:
            raise self.fail(row, "media has no url")
        media_type = _MEDIA_TYPES.get(row.media_kind, MediaType.UNKNOWN)
        media_format = format_from_path(url)
        content_type = (
            f"{media_type}/{media_format}"
            if media_format and media_type is not MediaType.UNKNOWN
            else None
        )
        return MediaInsert(
            url=url,
            media_type=media_type,
            media_format=media_format,
            content_type=content_type,
            alt_text=clean(row.alt_text),
        )

    def links(self, row: TwitterMedia) -> Iterator[LinkIntent]:
        if row.tweet_id:
            yield MediaOwnerIntent(StagingRef(TwitterTweet, row.tweet_id))
