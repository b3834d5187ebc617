"""Readwise Reader documents and their highlights."""

from __future__ import annotations

from typing import TYPE_CHECKING, Final

from commonplace.domain.mapping.contracts import (
    BaseMappingRule,
    IndexEntryInsert,
    IndexLinkIntent,
    RecordInsert,
)
from commonplace.domain.model import (
    ChildType,
    IndexMainType,
    IndexRole,
    IntegrationSource,
    ReadwiseDocument,
    RecordType,
    clamp_rating,
)

from ._text import clean, origin, paragraphs

if TYPE_CHECKING:
    from collections.abc import Iterator

    from commonplace.domain.mapping.contracts import LinkIntent, MappingContext

RATING_STAR: Final[str] = "\N{WHITE MEDIUM STAR}"
ARCHIVE_LOCATION: Final[str] = "archive"
NOTE_CATEGORY: Final[str] = "note"
_PLACEHOLDER_IMAGE_HOSTS: Final[tuple[str, ...]] = ("feedbin",)


def _star_count(tag: str) -> int:
    stripped = tag.strip().replace("\N{VARIATION SELECTOR-16}", "")
    if stripped and set(stripped) == {RATING_STAR}:
        return len(stripped)
    return 0


def _is_rating_tag(tag: str) -> bool:
    return _star_count(tag) > 0


def rating_from_tags(tags: list[str]) -> int:
    """Star tags (``⭐``, ``⭐⭐``, ...) carry the rating; the highest wins."""

    return clamp_rating(max((_star_count(tag) for tag in tags), default=0))


class ReadwiseDocumentRule(BaseMappingRule[ReadwiseDocument]):
    row_type = ReadwiseDocument
    child_type = ChildType.PART_OF

    def eligible(self, row: ReadwiseDocument) -> bool:
        if row.is_deleted or row.category == NOTE_CATEGORY:
            return False
        # top-level documents are only taken once archived
        return row.location == ARCHIVE_LOCATION or row.parent_external_id is not None

    def map_row(self, row: ReadwiseDocument, context: MappingContext) -> RecordInsert:
        title = clean(row.title)
        content = paragraphs(row.content)
        if title is None and content is None:
            raise self.fail(row, "document has neither title nor content")
        image_url = clean(row.image_url)
        if image_url and any(host in image_url for host in _PLACEHOLDER_IMAGE_HOSTS):
            image_url = None
        return RecordInsert(
            source=IntegrationSource.READWISE,
            type=RecordType.ARTIFACT,
            title=title,
            url=clean(row.source_url),
            summary=clean(row.summary),
            content=content,
            notes=clean(row.notes),
            avatar_url=image_url,
            rating=rating_from_tags(row.tags),
            content_created_at=row.content_created_at,
            content_updated_at=row.content_updated_at,
        )

    def links(self, row: ReadwiseDocument) -> Iterator[LinkIntent]:
        author = clean(row.author)
        if author:
            yield IndexLinkIntent(
                IndexRole.CREATOR,
                IndexEntryInsert(
                    main_type=IndexMainType.ENTITY,
                    name=author,
                    canonical_url=origin(row.source_url),
                ),
            )
        for tag in dict.fromkeys(clean(tag) for tag in row.tags):
            if tag and not _is_rating_tag(tag):
                yield IndexLinkIntent(
                    IndexRole.TAG,
                    IndexEntryInsert(main_type=IndexMainType.CATEGORY, name=tag),
                )
