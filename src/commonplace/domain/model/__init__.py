"""Domain model for the canonical record graph and its staging inputs."""

from __future__ import annotations

from .audit import (
    AssignmentState,
    ChildState,
    ExternalIdState,
    LinkState,
    MergeSnapshot,
    RecordMerge,
    StagingPointer,
    record_from_state,
    record_state,
)
from .enums import (
    CanonicalKind,
    ChildType,
    IndexMainType,
    IndexRole,
    IntegrationSource,
    MediaType,
    MergeReason,
    PredicateType,
    RecordType,
)
from .graph import IndexEntry, Link, Media, Predicate, RecordExternalId, RecordIndexEntry
from .predicates import (
    PREDICATES,
    PREDICATES_BY_SLUG,
    PredicateSpec,
    UnknownPredicateError,
    canonical_predicate_spec,
    predicate_spec,
)
from .record import EMBEDDING_FIELDS, MAX_RATING, Record, clamp_rating
from .staging import (
    STAGING_ROW_TYPES,
    STAGING_ROW_TYPES_BY_NAMESPACE,
    AirtableAttachment,
    AirtableCreator,
    AirtableExtract,
    AirtableFormat,
    AirtableSpace,
    BrowserHistoryPage,
    GithubRepository,
    GithubUser,
    LightroomImage,
    RaindropBookmark,
    RaindropCollection,
    ReadwiseDocument,
    StagingRow,
    TwitterMedia,
    TwitterTweet,
    TwitterUser,
)

__all__ = [
    "EMBEDDING_FIELDS",
    "MAX_RATING",
    "PREDICATES",
    "PREDICATES_BY_SLUG",
    "STAGING_ROW_TYPES",
    "STAGING_ROW_TYPES_BY_NAMESPACE",
    "AirtableAttachment",
    "AirtableCreator",
    "AirtableExtract",
    "AirtableFormat",
    "AirtableSpace",
    "AssignmentState",
    "BrowserHistoryPage",
    "CanonicalKind",
    "ChildState",
    "ChildType",
    "ExternalIdState",
    "GithubRepository",
    "GithubUser",
    "IndexEntry",
    "IndexMainType",
    "IndexRole",
    "IntegrationSource",
    "LightroomImage",
    "Link",
    "LinkState",
    "Media",
    "MediaType",
    "MergeReason",
    "MergeSnapshot",
    "Predicate",
    "PredicateSpec",
    "PredicateType",
    "RaindropBookmark",
    "RaindropCollection",
    "ReadwiseDocument",
    "Record",
    "RecordExternalId",
    "RecordIndexEntry",
    "RecordMerge",
    "RecordType",
    "StagingPointer",
    "StagingRow",
    "TwitterMedia",
    "TwitterTweet",
    "TwitterUser",
    "UnknownPredicateError",
    "canonical_predicate_spec",
    "clamp_rating",
    "predicate_spec",
    "record_from_state",
    "record_state",
]
