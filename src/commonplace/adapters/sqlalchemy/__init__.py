"""SQLAlchemy adapter package for commonplace."""

from __future__ import annotations

from .mappings import STAGING_TABLES, create_all_tables, mapper_registry, start_mappers
from .repositories import (
    SqlAlchemyIndexEntryRepository,
    SqlAlchemyLinkRepository,
    SqlAlchemyMediaRepository,
    SqlAlchemyMergeAuditRepository,
    SqlAlchemyPredicateRepository,
    SqlAlchemyRecordIndexEntryRepository,
    SqlAlchemyRecordRepository,
    SqlAlchemyStagingRepository,
    UnsupportedDialectError,
)
from .unit_of_work import (
    SqlAlchemyUnitOfWork,
    StartupError,
    build_unit_of_work_factory,
    shutdown,
    startup,
)

__all__ = [
    "STAGING_TABLES",
    "SqlAlchemyUnitOfWork",
    "SqlAlchemyIndexEntryRepository",
    "SqlAlchemyLinkRepository",
    "SqlAlchemyMediaRepository",
    "SqlAlchemyMergeAuditRepository",
    "SqlAlchemyPredicateRepository",
    "SqlAlchemyRecordIndexEntryRepository",
    "SqlAlchemyRecordRepository",
    "SqlAlchemyStagingRepository",
    "StartupError",
    "UnsupportedDialectError",
    "build_unit_of_work_factory",
    "create_all_tables",
    "mapper_registry",
    "shutdown",
    "startup",
]
