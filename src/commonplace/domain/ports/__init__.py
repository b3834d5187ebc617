"""Domain port definitions for adapters."""

from __future__ import annotations

from .media import MediaInspector, MediaMetadata
from .persistence import (
    IndexEntryRepository,
    LinkRepository,
    MediaRepository,
    MergeAuditRepository,
    PredicateRepository,
    RecordIndexEntryRepository,
    RecordRepository,
    Repository,
    StagingRepository,
    UpsertResult,
)
from .unit_of_work import GraphRepositories, GraphUnitOfWork, RepositoryCollection, UnitOfWork

__all__ = [
    "GraphRepositories",
    "GraphUnitOfWork",
    "IndexEntryRepository",
    "LinkRepository",
    "MediaInspector",
    "MediaMetadata",
    "MediaRepository",
    "MergeAuditRepository",
    "PredicateRepository",
    "RecordIndexEntryRepository",
    "RecordRepository",
    "Repository",
    "RepositoryCollection",
    "StagingRepository",
    "UnitOfWork",
    "UpsertResult",
]
