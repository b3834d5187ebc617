"""Port for classifying media by URL."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from commonplace.domain.model import MediaType


@dataclass(frozen=True, slots=True)
class MediaMetadata:
    content_type: str | None
    file_size: int | None = None

    @property
    def media_type(self) -> MediaType:
        return MediaType.from_content_type(self.content_type)

    @property
    def media_format(self) -> str | None:
        if not self.content_type or "/" not in self.content_type:
            return None
        subtype = self.content_type.split("/", 1)[1]
        return subtype.split(";", 1)[0].strip().lower() or None


@runtime_checkable
class MediaInspector(Protocol):
    """Looks up content type and size for a media URL.

    Implementations raise ``MediaMetadataError`` when the lookup fails.
    """

    def inspect(self, url: str) -> MediaMetadata: ...
