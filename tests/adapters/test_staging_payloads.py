"""Parsing of JSON-lines staging exports."""

from __future__ import annotations

import json
from datetime import UTC, datetime

import pytest

from commonplace.adapters.staging_payloads import (
    StagingPayloadError,
    parse_staging_lines,
    parse_staging_payload,
)
from commonplace.domain.model import (
    AirtableAttachment,
    AirtableExtract,
    BrowserHistoryPage,
    GithubRepository,
    IntegrationSource,
    RaindropBookmark,
    RaindropCollection,
    ReadwiseDocument,
    TwitterMedia,
    TwitterTweet,
    TwitterUser,
)


def _lines(*payloads: dict[str, object]) -> list[str]:
    return [json.dumps(payload) for payload in payloads]


def test_camel_case_export_maps_to_staging_row() -> None:
    payload = parse_staging_payload(
        {
            "kind": "airtable_extracts",
            "id": "rec1",
            "title": "  ",
            "source": "https://example.com/essay",
            "extract": "Body text",
            "michelinStars": 2,
            "publishedAt": "2023-04-05T06:07:08",
            "creatorIds": ["cr1"],
            "createdAt": "2023-01-01T00:00:00+02:00",
        }
    )

    row = payload.to_row()

    assert isinstance(row, AirtableExtract)
    assert row.external_id == "rec1"
    assert row.title is None
    assert row.source_url == "https://example.com/essay"
    assert row.content == "Body text"
    assert row.michelin_stars == 2
    assert row.published_at == datetime(2023, 4, 5, 6, 7, 8, tzinfo=UTC)
    assert row.creator_ids == ["cr1"]
    assert row.space_ids == []
    assert row.content_created_at == datetime(2022, 12, 31, 22, 0, tzinfo=UTC)
    assert row.canonical_id is None


def test_snake_case_field_names_are_accepted() -> None:
    row = parse_staging_payload(
        {
            "kind": "readwise_documents",
            "external_id": "d1",
            "parent_external_id": "d0",
            "source_url": "https://example.com",
            "tags": ["history"],
        }
    ).to_row()

    assert isinstance(row, ReadwiseDocument)
    assert row.parent_external_id == "d0"
    assert row.tags == ["history"]


def test_numeric_ids_become_strings() -> None:
    row = parse_staging_payload(
        {"kind": "twitter_tweets", "id": 1234567890, "fullText": "hi", "authorId": 42}
    ).to_row()

    assert isinstance(row, TwitterTweet)
    assert row.external_id == "1234567890"
    assert row.text == "hi"
    assert row.author_id == "42"


@pytest.mark.parametrize(
    ("payload", "row_type", "field", "expected"),
    [
        (
            {"kind": "airtable_attachments", "id": "a1", "url": "u", "type": "image/png"},
            AirtableAttachment,
            "mime_type",
            "image/png",
        ),
        (
            {"kind": "github_repositories", "id": "r1", "name": "n", "private": True},
            GithubRepository,
            "is_private",
            True,
        ),
        (
            {"kind": "twitter_users", "id": "u1", "username": "jack", "name": "Jack"},
            TwitterUser,
            "display_name",
            "Jack",
        ),
        (
            {"kind": "twitter_media", "id": "m1", "mediaUrl": "u", "type": "video"},
            TwitterMedia,
            "media_kind",
            "video",
        ),
    ],
)
def test_export_specific_aliases(
    payload: dict[str, object], row_type: type, field: str, expected: object
) -> None:
    row = parse_staging_payload(payload).to_row()

    assert isinstance(row, row_type)
    assert getattr(row, field) == expected


def test_unknown_kind_is_rejected() -> None:
    with pytest.raises(StagingPayloadError, match="line 3"):
        parse_staging_payload({"kind": "myspace_posts", "id": "1"}, line_number=3)


def test_missing_required_field_is_rejected() -> None:
    with pytest.raises(StagingPayloadError):
        parse_staging_payload({"kind": "github_users", "id": "u1"})


def test_lines_skip_blanks_and_report_bad_json() -> None:
    lines = [
        *_lines({"kind": "github_users", "id": "u1", "login": "octocat"}),
        "   ",
        "{not json",
    ]
    rows = parse_staging_lines(lines)

    first = next(rows)
    assert first.external_id == "u1"
    with pytest.raises(StagingPayloadError, match="line 3: invalid JSON"):
        next(rows)


def test_lines_must_belong_to_the_requested_source() -> None:
    lines = _lines(
        {"kind": "github_users", "id": "u1", "login": "octocat"},
        {"kind": "twitter_users", "id": "t1", "username": "jack"},
    )

    with pytest.raises(StagingPayloadError, match="line 2: twitter_users"):
        list(parse_staging_lines(lines, source=IntegrationSource.GITHUB))


def test_deleted_marker_is_kept() -> None:
    (row,) = parse_staging_lines(
        _lines(
            {
                "kind": "readwise_documents",
                "id": "d1",
                "deletedAt": "2024-02-03T00:00:00Z",
            }
        )
    )

    assert row.is_deleted
    assert row.deleted_at == datetime(2024, 2, 3, tzinfo=UTC)


def test_history_entry_is_keyed_by_its_url() -> None:
    row = parse_staging_payload(
        {
            "kind": "browser_history_pages",
            "url": "https://example.com/a",
            "pageTitle": "A page",
            "firstVisitedAt": "2024-01-01T08:00:00Z",
            "lastVisitedAt": "2024-01-03T09:30:00Z",
            "visitCount": 3,
        }
    ).to_row()

    assert isinstance(row, BrowserHistoryPage)
    assert row.external_id == "https://example.com/a"
    assert row.page_title == "A page"
    assert row.visit_count == 3
    assert row.content_created_at == datetime(2024, 1, 1, 8, tzinfo=UTC)
    assert row.content_updated_at == datetime(2024, 1, 3, 9, 30, tzinfo=UTC)


def test_raindrop_export_fields_map_to_staging_rows() -> None:
    collection, bookmark = parse_staging_lines(
        _lines(
            {"kind": "raindrop_collections", "_id": 101, "title": "Reading", "color": "#ff0000"},
            {
                "kind": "raindrop_bookmarks",
                "_id": 9001,
                "link": "https://example.com/post",
                "title": "A post",
                "type": "article",
                "cover": "",
                "collectionId": 101,
                "important": True,
                "tags": ["python"],
                "created": "2024-03-01T10:00:00Z",
                "lastUpdate": "2024-03-02T10:00:00Z",
            },
        ),
        source=IntegrationSource.RAINDROP,
    )

    assert isinstance(collection, RaindropCollection)
    assert (collection.external_id, collection.color_hex) == ("101", "#ff0000")
    assert isinstance(bookmark, RaindropBookmark)
    assert bookmark.external_id == "9001"
    assert bookmark.link_url == "https://example.com/post"
    assert bookmark.bookmark_type == "article"
    assert bookmark.cover_url is None
    assert bookmark.collection_id == "101"
    assert bookmark.important
    assert bookmark.content_created_at == datetime(2024, 3, 1, 10, tzinfo=UTC)
    assert bookmark.content_updated_at == datetime(2024, 3, 2, 10, tzinfo=UTC)
