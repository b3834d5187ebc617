"""Raindrop.io collections and bookmarks."""

from __future__ import annotations

from typing import TYPE_CHECKING, Final

from commonplace.domain.mapping.contracts import (
    BaseMappingRule,
    IndexEntryInsert,
    IndexLinkIntent,
    MediaInsert,
    RecordInsert,
    StagingRef,
)
from commonplace.domain.model import (
    IndexMainType,
    IndexRole,
    IntegrationSource,
    MediaType,
    RaindropBookmark,
    RaindropCollection,
    RecordType,
)

from ._text import clean, format_from_path

if TYPE_CHECKING:
    from collections.abc import Iterator

    from commonplace.domain.mapping.contracts import LinkIntent, MappingContext

# Raindrop's system collections, not real collection rows.
UNSORTED_COLLECTION_ID: Final[str] = "-1"
TRASH_COLLECTION_ID: Final[str] = "-99"


class RaindropCollectionRule(BaseMappingRule[RaindropCollection]):
    row_type = RaindropCollection

    def map_row(self, row: RaindropCollection, context: MappingContext) -> IndexEntryInsert:
        title = clean(row.title)
        if title is None:
            raise self.fail(row, "collection has no title")
        return IndexEntryInsert(
            main_type=IndexMainType.CATEGORY,
            name=title,
            media_url=clean(row.cover_url),
        )


class RaindropBookmarkRule(BaseMappingRule[RaindropBookmark]):
    row_type = RaindropBookmark

    def eligible(self, row: RaindropBookmark) -> bool:
        return not row.is_deleted and row.collection_id != TRASH_COLLECTION_ID

    def map_row(self, row: RaindropBookmark, context: MappingContext) -> RecordInsert:
        url = clean(row.link_url)
        if url is None:
            raise self.fail(row, "bookmark has no link")
        attached: tuple[MediaInsert, ...] = ()
        cover_url = clean(row.cover_url)
        if cover_url:
            media_format = format_from_path(cover_url)
            attached = (
                MediaInsert(
                    url=cover_url,
                    media_type=MediaType.IMAGE,
                    media_format=media_format,
                    content_type=f"image/{media_format}" if media_format else None,
                ),
            )
        return RecordInsert(
            source=IntegrationSource.RAINDROP,
            type=RecordType.ARTIFACT,
            title=clean(row.title) or url,
            url=url,
            content=clean(row.excerpt),
            notes=clean(row.note),
            rating=1 if row.important else 0,
            content_created_at=row.content_created_at,
            content_updated_at=row.content_updated_at,
            attached_media=attached,
        )

    def links(self, row: RaindropBookmark) -> Iterator[LinkIntent]:
        collection_id = clean(row.collection_id)
        if collection_id and collection_id not in (UNSORTED_COLLECTION_ID, TRASH_COLLECTION_ID):
            yield IndexLinkIntent(IndexRole.TAG, StagingRef(RaindropCollection, collection_id))
        for tag in dict.fromkeys(clean(tag) for tag in row.tags):
            if tag:
                yield IndexLinkIntent(
                    IndexRole.TAG,
                    IndexEntryInsert(main_type=IndexMainType.CATEGORY, name=tag),
                )
