"""SQLAlchemy-backed units of work for the staging tables and the canonical graph."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING, Literal

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from commonplace.adapters.sqlalchemy.mappings import start_mappers
from commonplace.adapters.sqlalchemy.migrations import upgrade_head
from commonplace.adapters.sqlalchemy.repositories import (
    SqlAlchemyIndexEntryRepository,
    SqlAlchemyLinkRepository,
    SqlAlchemyMediaRepository,
    SqlAlchemyMergeAuditRepository,
    SqlAlchemyPredicateRepository,
    SqlAlchemyRecordIndexEntryRepository,
    SqlAlchemyRecordRepository,
    SqlAlchemyStagingRepository,
)
from commonplace.config import auto_migrate_enabled, get_database_config
from commonplace.domain.ports.unit_of_work import GraphRepositories, RepositoryCollection

if TYPE_CHECKING:
    from collections.abc import Callable
    from types import TracebackType

    from sqlalchemy.engine import Engine

log = getLogger(__name__)


class StartupError(RuntimeError):
    """Raised when a SQLAlchemy unit of work is used before initialisation."""


@dataclass(slots=True)
class _AdapterState:
    _engine: Engine | None = None
    _session_factory: sessionmaker[Session] | None = None

    @property
    def engine(self) -> Engine | None:
        return self._engine

    @engine.setter
    def engine(self, value: Engine | None) -> None:
        self._session_factory = None
        self._engine = value

    @property
    def session_factory(self) -> sessionmaker[Session]:
        if self._engine is None:
            raise StartupError(
                "SQLAlchemy adapter not initialised. Call commonplace.adapters.sqlalchemy."
                "unit_of_work.startup() or pass a session_factory to the unit of work."
            )
        if self._session_factory is None:
            self._session_factory = build_session_factory(self._engine)
        return self._session_factory


_STATE = _AdapterState()


def build_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, expire_on_commit=False)


def startup(
    *,
    engine: Engine | None = None,
    database_uri: str | None = None,
    force: bool = False,
    migrate: bool | None = None,
) -> Engine:
    """Initialise the SQLAlchemy engine, metadata, and session factory.

    ``migrate`` defaults to the ``COMMONPLACE_AUTO_MIGRATE`` setting; when it is
    off the schema is left to ``commonplace db upgrade``.
    """

    if _STATE.engine is not None and not force:
        raise StartupError(
            "SQLAlchemy adapter already initialised. Pass force=True to reconfigure."
        )

    resolved_engine = engine or create_engine(
        database_uri or get_database_config().uri, future=True
    )
    start_mappers()
    if migrate is None:
        migrate = auto_migrate_enabled()
    if migrate:
        upgrade_head(engine=resolved_engine)
    else:
        log.info("Skipping schema migrations on startup")

    _STATE.engine = resolved_engine
    return resolved_engine


def configured_engine() -> Engine | None:
    """Return the engine currently managed by the adapter (if any)."""

    return _STATE.engine


def is_started() -> bool:
    """Return whether the adapter has been initialised."""

    return _STATE.engine is not None


def shutdown() -> None:
    """Dispose the managed engine and reset state (primarily for tests)."""

    if _STATE.engine is not None:
        _STATE.engine.dispose()
    _STATE.engine = None


class BaseSqlAlchemyUnitOfWork[TRepositories: RepositoryCollection](ABC):
    """Generic SQLAlchemy unit of work with pluggable repository collections.

    Without an explicit ``session_factory`` the adapter-wide factory configured by
    :func:`startup` is used.
    """

    def __init__(self, session_factory: sessionmaker[Session] | None = None) -> None:
        self.session_factory: sessionmaker[Session] = session_factory or _STATE.session_factory
        self._session: Session | None = None

    @abstractmethod
    def _build_repositories(self, session: Session) -> TRepositories: ...

    def __enter__(self) -> BaseSqlAlchemyUnitOfWork[TRepositories]:
        self.session = self.session_factory()
        self._repositories = self._build_repositories(self.session)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> Literal[False]:
        if exc_type is not None:
            self.rollback()
        self.session.close()
        self.session = None
        return False

    def commit(self) -> None:
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()

    @property
    def repositories(self) -> TRepositories:
        if self._session is None:
            raise StartupError("Unit of work session not initialised")
        return self._repositories

    @property
    def session(self) -> Session:
        if self._session is None:
            raise StartupError("Unit of work session not initialised")
        return self._session

    @session.setter
    def session(self, session: Session | None) -> None:
        if self._session is not None and session is not None:
            raise StartupError("Unit of work session already initialised")
        self._session = session


class SqlAlchemyUnitOfWork(BaseSqlAlchemyUnitOfWork[GraphRepositories]):
    """Unit of work over the staging tables and the canonical graph."""

    def _build_repositories(self, session: Session) -> GraphRepositories:
        return GraphRepositories(
            records=SqlAlchemyRecordRepository(session),
            index_entries=SqlAlchemyIndexEntryRepository(session),
            media=SqlAlchemyMediaRepository(session),
            links=SqlAlchemyLinkRepository(session),
            record_index_entries=SqlAlchemyRecordIndexEntryRepository(session),
            predicates=SqlAlchemyPredicateRepository(session),
            staging=SqlAlchemyStagingRepository(session),
            merges=SqlAlchemyMergeAuditRepository(session),
        )


def build_unit_of_work_factory(
    engine: Engine | None = None,
) -> Callable[[], SqlAlchemyUnitOfWork]:
    """Return a factory of graph units of work bound to ``engine``.

    Without an engine the factory defers to the adapter-wide state set by :func:`startup`.
    """

    if engine is None:
        return SqlAlchemyUnitOfWork
    session_factory = build_session_factory(engine)

    def factory() -> SqlAlchemyUnitOfWork:
        return SqlAlchemyUnitOfWork(session_factory)

    return factory


if TYPE_CHECKING:
    from commonplace.domain.ports.unit_of_work import GraphUnitOfWork

    _uow_check: GraphUnitOfWork = SqlAlchemyUnitOfWork()
