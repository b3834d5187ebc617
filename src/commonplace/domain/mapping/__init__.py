"""Entity-resolution mapping from staging tables into the canonical graph."""

from __future__ import annotations

from .contracts import (
    BaseMappingRule,
    CanonicalInsert,
    IndexEntryInsert,
    IndexLinkIntent,
    LinkIntent,
    MappingContext,
    MappingError,
    MappingRule,
    MediaInsert,
    MediaMetadataError,
    MediaOwnerIntent,
    RecordInsert,
    RecordKey,
    RecordLinkIntent,
    StagingRef,
)
from .registry import MAPPING_RULES, UnknownSourceError, mappable_sources, rules_for
from .runner import MappingRunner, MappingRunResult, run_mapping_rule, run_mapping_rules

__all__ = [
    "MAPPING_RULES",
    "BaseMappingRule",
    "CanonicalInsert",
    "IndexEntryInsert",
    "IndexLinkIntent",
    "LinkIntent",
    "MappingContext",
    "MappingError",
    "MappingRule",
    "MappingRunResult",
    "MappingRunner",
    "MediaInsert",
    "MediaMetadataError",
    "MediaOwnerIntent",
    "RecordInsert",
    "RecordKey",
    "RecordLinkIntent",
    "StagingRef",
    "UnknownSourceError",
    "mappable_sources",
    "rules_for",
    "run_mapping_rule",
    "run_mapping_rules",
]
