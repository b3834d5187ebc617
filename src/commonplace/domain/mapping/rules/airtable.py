"""Airtable formats, creators, spaces, extracts and attachments."""

from __future__ import annotations

from typing import TYPE_CHECKING

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
    AirtableAttachment,
    AirtableCreator,
    AirtableExtract,
    AirtableFormat,
    AirtableSpace,
    ChildType,
    IndexMainType,
    IndexRole,
    IntegrationSource,
    RecordType,
    clamp_rating,
)
from commonplace.domain.ports.media import MediaMetadata

from ._text import clean

if TYPE_CHECKING:
    from collections.abc import Iterator

    from commonplace.domain.mapping.contracts import LinkIntent, MappingContext


class AirtableFormatRule(BaseMappingRule[AirtableFormat]):
    row_type = AirtableFormat

    def map_row(self, row: AirtableFormat, context: MappingContext) -> IndexEntryInsert:
        name = clean(row.name)
        if name is None:
            raise self.fail(row, "format has no name")
        return IndexEntryInsert(main_type=IndexMainType.FORMAT, name=name)


class AirtableCreatorRule(BaseMappingRule[AirtableCreator]):
    row_type = AirtableCreator

    def map_row(self, row: AirtableCreator, context: MappingContext) -> IndexEntryInsert:
        name = clean(row.name)
        if name is None:
            raise self.fail(row, "creator has no name")
        return IndexEntryInsert(
            main_type=IndexMainType.ENTITY,
            name=name,
            canonical_url=clean(row.website),
        )


class AirtableSpaceRule(BaseMappingRule[AirtableSpace]):
    row_type = AirtableSpace

    def map_row(self, row: AirtableSpace, context: MappingContext) -> IndexEntryInsert:
        name = clean(row.name)
        if name is None:
            raise self.fail(row, "space has no name")
        description = " ".join(part for part in (clean(row.icon), clean(row.full_name)) if part)
        return IndexEntryInsert(
            main_type=IndexMainType.CATEGORY,
            name=name,
            notes=description or None,
        )


class AirtableExtractRule(BaseMappingRule[AirtableExtract]):
    row_type = AirtableExtract
    child_type = ChildType.PART_OF

    def map_row(self, row: AirtableExtract, context: MappingContext) -> RecordInsert:
        title = clean(row.title)
        content = clean(row.content)
        url = clean(row.source_url)
        if title is None and content is None and url is None:
            raise self.fail(row, "extract has no title, content or source")
        return RecordInsert(
            source=IntegrationSource.AIRTABLE,
            type=RecordType.ARTIFACT,
            title=title,
            url=url,
            content=content,
            notes=clean(row.notes),
            media_caption=clean(row.attachment_caption),
            rating=clamp_rating(row.michelin_stars),
            is_private=row.published_at is None,
            content_created_at=row.content_created_at,
            content_updated_at=row.content_updated_at,
        )

    def links(self, row: AirtableExtract) -> Iterator[LinkIntent]:
        if row.format_id:
            yield IndexLinkIntent(IndexRole.FORMAT, StagingRef(AirtableFormat, row.format_id))
        for creator_id in row.creator_ids:
            yield IndexLinkIntent(IndexRole.CREATOR, StagingRef(AirtableCreator, creator_id))
        for space_id in row.space_ids:
            yield IndexLinkIntent(IndexRole.TAG, StagingRef(AirtableSpace, space_id))
        for connection_id in row.connection_ids:
            yield RecordLinkIntent("related_to", StagingRef(AirtableExtract, connection_id))


class AirtableAttachmentRule(BaseMappingRule[AirtableAttachment]):
    row_type = AirtableAttachment

    def map_row(self, row: AirtableAttachment, context: MappingContext) -> MediaInsert:
        url = clean(row.url)
        if url is None:
            raise self.fail(row, "attachment has no url")
        metadata = MediaMetadata(content_type=clean(row.mime_type), file_size=row.size)
        if metadata.content_type is None:
            inspected = context.inspect_media(url)
            metadata = MediaMetadata(
                content_type=inspected.content_type,
                file_size=row.size if row.size is not None else inspected.file_size,
            )
        return MediaInsert(
            url=url,
            media_type=metadata.media_type,
            media_format=metadata.media_format,
            content_type=metadata.content_type,
            file_size=metadata.file_size,
        )

    def links(self, row: AirtableAttachment) -> Iterator[LinkIntent]:
        if row.extract_id:
            yield MediaOwnerIntent(StagingRef(AirtableExtract, row.extract_id))
