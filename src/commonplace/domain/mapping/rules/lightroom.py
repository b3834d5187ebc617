"""Lightroom images: a record per photo with the image attached as media."""

from __future__ import annotations

from typing import TYPE_CHECKING

from commonplace.domain.mapping.contracts import (
    BaseMappingRule,
    IndexEntryInsert,
    IndexLinkIntent,
    MediaInsert,
    RecordInsert,
)
from commonplace.domain.model import (
    IndexMainType,
    IndexRole,
    IntegrationSource,
    LightroomImage,
    MediaType,
    RecordType,
)

from ._text import clean, format_from_path

if TYPE_CHECKING:
    from collections.abc import Iterator

    from commonplace.domain.mapping.contracts import LinkIntent, MappingContext


class LightroomImageRule(BaseMappingRule[LightroomImage]):
    row_type = LightroomImage

    def map_row(self, row: LightroomImage, context: MappingContext) -> RecordInsert:
        url = clean(row.url)
        if url is None:
            raise self.fail(row, "image has no url")

        media_format = format_from_path(row.file_name) or format_from_path(url)
        content_type = f"image/{media_format}" if media_format else None
        file_size: int | None = None
        if media_format is None:
            metadata = context.inspect_media(url)
            if metadata.media_type is not MediaType.IMAGE:
                raise self.fail(row, f"{url} is not an image ({metadata.content_type})")
            media_format, content_type = metadata.media_format, metadata.content_type
            file_size = metadata.file_size

        caption = clean(row.caption)
        image = MediaInsert(
            url=url,
            media_type=MediaType.IMAGE,
            media_format=media_format,
            content_type=content_type,
            file_size=file_size,
            alt_text=caption,
        )
        return RecordInsert(
            source=IntegrationSource.LIGHTROOM,
            type=RecordType.ARTIFACT,
            title=clean(row.title) or clean(row.file_name),
            url=url,
            media_caption=caption,
            content_created_at=row.content_created_at,
            content_updated_at=row.content_updated_at,
            attached_media=(image,),
        )

    def links(self, row: LightroomImage) -> Iterator[LinkIntent]:
        for keyword in dict.fromkeys(clean(keyword) for keyword in row.keywords):
            if keyword:
                yield IndexLinkIntent(
                    IndexRole.TAG,
                    IndexEntryInsert(main_type=IndexMainType.CATEGORY, name=keyword),
                )
