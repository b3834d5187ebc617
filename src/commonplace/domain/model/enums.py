"""Domain enums (pure, dependency-light)."""

from __future__ import annotations

from enum import StrEnum


class IntegrationSource(StrEnum):
    AIRTABLE = "airtable"
    GITHUB = "github"
    READWISE = "readwise"
    TWITTER = "twitter"
    LIGHTROOM = "lightroom"
    BROWSER_HISTORY = "browser_history"
    RAINDROP = "raindrop"
    MANUAL = "manual"


class RecordType(StrEnum):
    ENTITY = "entity"
    CONCEPT = "concept"
    ARTIFACT = "artifact"
    EVENT = "event"
    PLACE = "place"
    SYSTEM = "system"


class ChildType(StrEnum):
    """How a child record relates to its parent in the containment hierarchy."""

    PART_OF = "part_of"
    REPLY_TO = "reply_to"
    VERSION_OF = "version_of"


class PredicateType(StrEnum):
    CREATION = "creation"
    CONTAINMENT = "containment"
    FORM = "form"
    DESCRIPTION = "description"
    REFERENCE = "reference"
    ASSOCIATION = "association"
    IDENTITY = "identity"


class IndexMainType(StrEnum):
    ENTITY = "entity"
    CATEGORY = "category"
    FORMAT = "format"


class IndexRole(StrEnum):
    """Role of an index entry on a record (record_index_entries.role)."""

    CREATOR = "creator"
    OWNER = "owner"
    TAG = "tag"
    FORMAT = "format"


class MediaType(StrEnum):
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    TEXT = "text"
    APPLICATION = "application"
    UNKNOWN = "unknown"

    @classmethod
    def from_content_type(cls, content_type: str | None) -> MediaType:
        if not content_type:
            return cls.UNKNOWN
        major = content_type.split("/", 1)[0].strip().lower()
        try:
            return cls(major)
        except ValueError:
            return cls.UNKNOWN


class CanonicalKind(StrEnum):
    """Canonical table a staging table maps into."""

    RECORD = "record"
    INDEX_ENTRY = "index_entry"
    MEDIA = "media"


class MergeReason(StrEnum):
    MANUAL = "manual"
    DUPLICATE = "duplicate"
