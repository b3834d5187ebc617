from __future__ import annotations

from datetime import UTC, datetime

import pytest

from commonplace.domain.mapping import (
    IndexEntryInsert,
    IndexLinkIntent,
    MappingContext,
    MappingError,
    MediaMetadataError,
    MediaOwnerIntent,
    RecordLinkIntent,
    StagingRef,
    UnknownSourceError,
    mappable_sources,
    rules_for,
)
from commonplace.domain.mapping.rules import (
    AirtableAttachmentRule,
    AirtableExtractRule,
    AirtableSpaceRule,
    BrowserHistoryPageRule,
    GithubRepositoryRule,
    GithubUserRule,
    LightroomImageRule,
    RaindropBookmarkRule,
    RaindropCollectionRule,
    ReadwiseDocumentRule,
    TwitterMediaRule,
    TwitterTweetRule,
    TwitterUserRule,
)
from commonplace.domain.mapping.rules.browser_history import MAX_URL_LENGTH, sanitize_url
from commonplace.domain.mapping.rules.readwise import rating_from_tags
from commonplace.domain.model import (
    AirtableAttachment,
    AirtableCreator,
    AirtableExtract,
    AirtableFormat,
    AirtableSpace,
    BrowserHistoryPage,
    CanonicalKind,
    GithubRepository,
    GithubUser,
    IndexMainType,
    IndexRole,
    IntegrationSource,
    LightroomImage,
    MediaType,
    RaindropBookmark,
    RaindropCollection,
    ReadwiseDocument,
    RecordType,
    TwitterMedia,
    TwitterTweet,
    TwitterUser,
)
from tests.support.media import StubMediaInspector

CREATED = datetime(2022, 3, 4, 5, 6, tzinfo=UTC)


# Airtable ------------------------------------------------------------------------


def test_airtable_extract_is_private_until_published(mapping_context: MappingContext) -> None:
    rule = AirtableExtractRule()
    draft = AirtableExtract(external_id="rec1", title="  Draft  ", michelin_stars=7)
    published = AirtableExtract(
        external_id="rec2",
        content="Body",
        published_at=CREATED,
        michelin_stars=-2,
    )

    draft_insert = rule.map_row(draft, mapping_context)
    published_insert = rule.map_row(published, mapping_context)

    assert draft_insert.title == "Draft"
    assert draft_insert.is_private is True
    assert draft_insert.rating == 3
    assert published_insert.is_private is False
    assert published_insert.rating == 0


def test_airtable_extract_without_any_content_fails(mapping_context: MappingContext) -> None:
    rule = AirtableExtractRule()
    row = AirtableExtract(external_id="rec1", title="  ", content=None)

    with pytest.raises(MappingError) as excinfo:
        rule.map_row(row, mapping_context)

    assert excinfo.value.namespace == "airtable_extracts"
    assert excinfo.value.external_id == "rec1"


def test_airtable_extract_links_to_format_creators_spaces_and_connections() -> None:
    rule = AirtableExtractRule()
    row = AirtableExtract(
        external_id="rec1",
        title="Essay",
        format_id="fmt1",
        creator_ids=["cr1", "cr2"],
        space_ids=["sp1"],
        connection_ids=["rec9"],
    )

    links = list(rule.links(row))

    assert links == [
        IndexLinkIntent(IndexRole.FORMAT, StagingRef(AirtableFormat, "fmt1")),
        IndexLinkIntent(IndexRole.CREATOR, StagingRef(AirtableCreator, "cr1")),
        IndexLinkIntent(IndexRole.CREATOR, StagingRef(AirtableCreator, "cr2")),
        IndexLinkIntent(IndexRole.TAG, StagingRef(AirtableSpace, "sp1")),
        RecordLinkIntent("related_to", StagingRef(AirtableExtract, "rec9")),
    ]


def test_airtable_space_notes_combine_icon_and_full_name(
    mapping_context: MappingContext,
) -> None:
    row = AirtableSpace(external_id="sp1", name="Art", icon="🎨", full_name="Art & Design")

    insert = AirtableSpaceRule().map_row(row, mapping_context)

    assert insert.main_type is IndexMainType.CATEGORY
    assert insert.name == "Art"
    assert insert.notes == "🎨 Art & Design"


def test_airtable_attachment_uses_declared_mime_type_without_probing(
    mapping_context: MappingContext,
    media_inspector: StubMediaInspector,
) -> None:
    row = AirtableAttachment(
        external_id="att1",
        url="https://dl.airtable.com/a.pdf",
        mime_type="application/pdf",
        size=2048,
        extract_id="rec1",
    )
    rule = AirtableAttachmentRule()

    insert = rule.map_row(row, mapping_context)

    assert insert.media_type is MediaType.APPLICATION
    assert insert.media_format == "pdf"
    assert insert.file_size == 2048
    assert media_inspector.calls == []
    assert list(rule.links(row)) == [MediaOwnerIntent(StagingRef(AirtableExtract, "rec1"))]


def test_airtable_attachment_inspects_url_when_mime_type_is_missing(now: datetime) -> None:
    url = "https://dl.airtable.com/photo"
    inspector = StubMediaInspector({url: "image/jpeg"})
    context = MappingContext(now=now, media_inspector=inspector)
    row = AirtableAttachment(external_id="att1", url=url)

    insert = AirtableAttachmentRule().map_row(row, context)

    assert inspector.calls == [url]
    assert insert.media_type is MediaType.IMAGE
    assert insert.media_format == "jpeg"
    assert insert.file_size == 1024


def test_airtable_attachment_inspection_failure_propagates(mapping_context: MappingContext) -> None:
    row = AirtableAttachment(external_id="att1", url="https://dl.airtable.com/gone")

    with pytest.raises(MediaMetadataError):
        AirtableAttachmentRule().map_row(row, mapping_context)


def test_missing_inspector_is_a_media_error(now: datetime) -> None:
    row = AirtableAttachment(external_id="att1", url="https://dl.airtable.com/file")

    with pytest.raises(MediaMetadataError, match="No media inspector"):
        AirtableAttachmentRule().map_row(row, MappingContext(now=now))


# GitHub --------------------------------------------------------------------------


def test_github_user_falls_back_to_login(mapping_context: MappingContext) -> None:
    row = GithubUser(
        external_id="u1",
        login="octocat",
        html_url="https://github.com/octocat",
        avatar_url="https://avatars.example/octocat.png",
    )

    insert = GithubUserRule().map_row(row, mapping_context)

    assert insert.name == "octocat"
    assert insert.sense == ""
    assert insert.canonical_url == "https://github.com/octocat"
    assert insert.media_url == "https://avatars.example/octocat.png"


def test_github_user_prefers_blog_over_profile(mapping_context: MappingContext) -> None:
    row = GithubUser(
        external_id="u1",
        login="octocat",
        name="The Octocat",
        blog="https://octo.blog",
        html_url="https://github.com/octocat",
    )

    insert = GithubUserRule().map_row(row, mapping_context)

    assert insert.name == "The Octocat"
    assert insert.canonical_url == "https://octo.blog"


def test_github_repository_tags_come_from_language_and_topics() -> None:
    row = GithubRepository(
        external_id="r1",
        name="hello",
        owner_id="u1",
        language="Python",
        topics=["python", "Python", " cli "],
    )

    links = list(GithubRepositoryRule().links(row))

    assert links[0] == IndexLinkIntent(IndexRole.CREATOR, StagingRef(GithubUser, "u1"))
    tag_names = [
        link.target.name for link in links[1:] if isinstance(link.target, IndexEntryInsert)
    ]
    assert tag_names == ["Python", "python", "cli"]


def test_github_repository_keeps_privacy_flag(mapping_context: MappingContext) -> None:
    row = GithubRepository(
        external_id="r1",
        name="secret",
        is_private=True,
        description="Hidden",
        content_created_at=CREATED,
    )

    insert = GithubRepositoryRule().map_row(row, mapping_context)

    assert insert.source is IntegrationSource.GITHUB
    assert insert.title == "secret"
    assert insert.summary == "Hidden"
    assert insert.is_private is True
    assert insert.content_created_at == CREATED


# Readwise ------------------------------------------------------------------------


@pytest.mark.parametrize(
    ("values", "expected"),
    [
        ({"location": "archive"}, True),
        ({"location": "new"}, False),
        ({"location": "new", "parent_external_id": "doc1"}, True),
        ({"location": "archive", "category": "note"}, False),
        ({"location": "archive", "deleted_at": CREATED}, False),
    ],
)
def test_readwise_eligibility(values: dict[str, object], expected: bool) -> None:
    row = ReadwiseDocument(external_id="d1", title="Doc", **values)  # type: ignore[arg-type]

    assert ReadwiseDocumentRule().eligible(row) is expected


def test_readwise_document_doubles_single_newlines(mapping_context: MappingContext) -> None:
    row = ReadwiseDocument(
        external_id="d1",
        location="archive",
        content="first line\nsecond line\n\nthird paragraph",
    )

    insert = ReadwiseDocumentRule().map_row(row, mapping_context)

    assert insert.content == "first line\n\nsecond line\n\nthird paragraph"


def test_readwise_document_drops_placeholder_images(mapping_context: MappingContext) -> None:
    rule = ReadwiseDocumentRule()
    placeholder = ReadwiseDocument(
        external_id="d1",
        title="Doc",
        image_url="https://images.feedbin.com/placeholder.png",
    )
    real = ReadwiseDocument(external_id="d2", title="Doc", image_url="https://cdn.example/a.png")

    assert rule.map_row(placeholder, mapping_context).avatar_url is None
    assert rule.map_row(real, mapping_context).avatar_url == "https://cdn.example/a.png"


def test_readwise_star_tags_set_rating_and_are_not_tags(
    mapping_context: MappingContext,
) -> None:
    rule = ReadwiseDocumentRule()
    row = ReadwiseDocument(
        external_id="d1",
        title="Doc",
        author="Ada Lovelace",
        source_url="https://blog.example.com/post/1",
        tags=["⭐⭐", "history", "⭐", "history"],
    )

    insert = rule.map_row(row, mapping_context)
    links = list(rule.links(row))

    assert insert.rating == 2
    assert links == [
        IndexLinkIntent(
            IndexRole.CREATOR,
            IndexEntryInsert(
                main_type=IndexMainType.ENTITY,
                name="Ada Lovelace",
                canonical_url="https://blog.example.com",
            ),
        ),
        IndexLinkIntent(
            IndexRole.TAG,
            IndexEntryInsert(main_type=IndexMainType.CATEGORY, name="history"),
        ),
    ]


def test_rating_from_tags_clamps_to_maximum() -> None:
    assert rating_from_tags(["⭐⭐⭐⭐⭐"]) == 3
    assert rating_from_tags(["⭐️"]) == 1
    assert rating_from_tags(["star"]) == 0
    assert rating_from_tags([]) == 0


# Twitter -------------------------------------------------------------------------


def test_twitter_user_defaults_to_profile_url(mapping_context: MappingContext) -> None:
    row = TwitterUser(external_id="t1", username="jack")

    insert = TwitterUserRule().map_row(row, mapping_context)

    assert insert.name == "jack"
    assert insert.canonical_url == "https://x.com/jack"


def test_twitter_tweet_links_author_and_quote() -> None:
    rule = TwitterTweetRule()
    row = TwitterTweet(external_id="tw2", text="quoting", author_id="t1", quoted_tweet_id="tw1")

    assert list(rule.links(row)) == [
        IndexLinkIntent(IndexRole.CREATOR, StagingRef(TwitterUser, "t1")),
        RecordLinkIntent("quotes", StagingRef(TwitterTweet, "tw1")),
    ]


@pytest.mark.parametrize(
    ("kind", "url", "media_type", "content_type"),
    [
        ("photo", "https://pbs.twimg.com/media/a.JPG", MediaType.IMAGE, "image/jpg"),
        ("video", "https://video.twimg.com/v.mp4", MediaType.VIDEO, "video/mp4"),
        ("animated_gif", "https://video.twimg.com/g", MediaType.VIDEO, None),
        ("sticker", "https://pbs.twimg.com/s.png", MediaType.UNKNOWN, None),
    ],
)
def test_twitter_media_type_and_format(
    mapping_context: MappingContext,
    kind: str,
    url: str,
    media_type: MediaType,
    content_type: str | None,
) -> None:
    row = TwitterMedia(external_id="m1", url=url, media_kind=kind, tweet_id="tw1")

    insert = TwitterMediaRule().map_row(row, mapping_context)

    assert insert.media_type is media_type
    assert insert.content_type == content_type


# Lightroom -----------------------------------------------------------------------


def test_lightroom_image_with_extension_is_not_inspected(
    mapping_context: MappingContext,
    media_inspector: StubMediaInspector,
) -> None:
    row = LightroomImage(
        external_id="img1",
        url="https://lr.example/assets/img1",
        file_name="DSC_0001.NEF",
        caption="Harbour at dusk",
    )

    insert = LightroomImageRule().map_row(row, mapping_context)

    assert media_inspector.calls == []
    assert insert.title == "DSC_0001.NEF"
    assert insert.media_caption == "Harbour at dusk"
    (image,) = insert.attached_media
    assert image.media_format == "nef"
    assert image.content_type == "image/nef"
    assert image.alt_text == "Harbour at dusk"


def test_lightroom_image_inspects_url_when_extension_is_unknown(now: datetime) -> None:
    url = "https://lr.example/assets/img2"
    inspector = StubMediaInspector({url: "image/webp"})
    row = LightroomImage(external_id="img2", url=url, title="Fog")

    insert = LightroomImageRule().map_row(row, MappingContext(now=now, media_inspector=inspector))

    (image,) = insert.attached_media
    assert inspector.calls == [url]
    assert image.media_format == "webp"
    assert image.file_size == 1024


def test_lightroom_image_that_is_not_an_image_fails(now: datetime) -> None:
    url = "https://lr.example/assets/img3"
    inspector = StubMediaInspector({url: "text/html"})
    row = LightroomImage(external_id="img3", url=url)

    with pytest.raises(MappingError, match="is not an image"):
        LightroomImageRule().map_row(row, MappingContext(now=now, media_inspector=inspector))


# Browser history -----------------------------------------------------------------


def test_browser_history_page_is_an_artifact_titled_by_page(
    mapping_context: MappingContext,
) -> None:
    url = "https://docs.python.org/3/library/urllib.parse.html"
    row = BrowserHistoryPage(
        external_id=url,
        url=url,
        page_title="urllib.parse",
        content_created_at=CREATED,
    )

    insert = BrowserHistoryPageRule().map_row(row, mapping_context)

    assert insert.source is IntegrationSource.BROWSER_HISTORY
    assert insert.type is RecordType.ARTIFACT
    assert (insert.title, insert.url) == ("urllib.parse", url)
    assert insert.content_created_at == CREATED


def test_browser_history_page_without_title_uses_url(mapping_context: MappingContext) -> None:
    row = BrowserHistoryPage(external_id="https://example.com/", url="https://example.com/")

    assert BrowserHistoryPageRule().map_row(row, mapping_context).title == "https://example.com/"


def test_sanitize_url_drops_auth_params_from_long_urls() -> None:
    base = "https://login.example.com/callback?page=2"
    url = f"{base}&state={'s' * MAX_URL_LENGTH}&nonce=abc"

    assert sanitize_url(base) == base
    assert sanitize_url(url) == base


def test_overlong_history_url_is_skipped() -> None:
    url = f"https://example.com/?q={'x' * MAX_URL_LENGTH}"
    row = BrowserHistoryPage(external_id=url, url=url)

    assert sanitize_url(url) is None
    assert not BrowserHistoryPageRule().eligible(row)


# Raindrop ------------------------------------------------------------------------


def test_raindrop_collection_becomes_a_category(mapping_context: MappingContext) -> None:
    row = RaindropCollection(
        external_id="101", title=" Reading ", cover_url="https://up.raindrop.io/c.png"
    )

    insert = RaindropCollectionRule().map_row(row, mapping_context)

    assert insert.main_type is IndexMainType.CATEGORY
    assert insert.name == "Reading"
    assert insert.media_url == "https://up.raindrop.io/c.png"


def test_raindrop_bookmark_maps_to_record_with_cover(mapping_context: MappingContext) -> None:
    row = RaindropBookmark(
        external_id="9001",
        link_url="https://example.com/post",
        title="A post",
        excerpt="First lines",
        note="worth rereading",
        important=True,
        cover_url="https://rdl.ink/render/cover.jpg",
    )

    insert = RaindropBookmarkRule().map_row(row, mapping_context)

    assert insert.source is IntegrationSource.RAINDROP
    assert (insert.title, insert.url) == ("A post", "https://example.com/post")
    assert (insert.content, insert.notes, insert.rating) == ("First lines", "worth rereading", 1)
    (cover,) = insert.attached_media
    assert cover.media_type is MediaType.IMAGE
    assert cover.content_type == "image/jpg"


def test_raindrop_bookmark_links_collection_and_tags() -> None:
    row = RaindropBookmark(
        external_id="9002",
        link_url="https://example.com/",
        collection_id="101",
        tags=["python", " python ", "web"],
    )

    assert list(RaindropBookmarkRule().links(row)) == [
        IndexLinkIntent(IndexRole.TAG, StagingRef(RaindropCollection, "101")),
        IndexLinkIntent(
            IndexRole.TAG, IndexEntryInsert(main_type=IndexMainType.CATEGORY, name="python")
        ),
        IndexLinkIntent(
            IndexRole.TAG, IndexEntryInsert(main_type=IndexMainType.CATEGORY, name="web")
        ),
    ]


def test_unsorted_raindrop_bookmark_has_no_collection_link() -> None:
    row = RaindropBookmark(external_id="9003", link_url="https://example.com/", collection_id="-1")

    assert list(RaindropBookmarkRule().links(row)) == []


def test_trashed_raindrop_bookmark_is_not_eligible() -> None:
    rule = RaindropBookmarkRule()
    trashed = RaindropBookmark(external_id="9004", link_url="https://a.ex", collection_id="-99")
    kept = RaindropBookmark(external_id="9005", link_url="https://a.ex", collection_id="1")

    assert not rule.eligible(trashed)
    assert rule.eligible(kept)


# Registry ------------------------------------------------------------------------


def test_every_source_registers_rules_in_dependency_order() -> None:
    assert IntegrationSource.MANUAL not in mappable_sources()
    for source in mappable_sources():
        rules = rules_for(source)
        assert rules
        assert all(rule.row_type.SOURCE is source for rule in rules)
        seen: set[str] = set()
        for rule in rules:
            for dependency in _link_dependencies(rule.row_type):
                assert dependency in seen or dependency == rule.row_type.NAMESPACE
            seen.add(rule.row_type.NAMESPACE)


def test_rules_for_accepts_plain_strings_and_rejects_unknown() -> None:
    assert rules_for("github") == rules_for(IntegrationSource.GITHUB)
    with pytest.raises(UnknownSourceError):
        rules_for("myspace")


def test_record_rules_declare_record_targets() -> None:
    for source in mappable_sources():
        for rule in rules_for(source):
            if rule.child_type is not None:
                assert rule.row_type.TARGET is CanonicalKind.RECORD


def _link_dependencies(row_type: type) -> set[str]:
    return {
        AirtableExtract: {"airtable_formats", "airtable_creators", "airtable_spaces"},
        AirtableAttachment: {"airtable_extracts"},
        GithubRepository: {"github_users"},
        TwitterTweet: {"twitter_users"},
        TwitterMedia: {"twitter_tweets"},
        RaindropBookmark: {"raindrop_collections"},
    }.get(row_type, set())
