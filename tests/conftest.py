from __future__ import annotations

import os
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine  # noqa: TC002
from sqlalchemy.orm import Session, sessionmaker

from commonplace.adapters.sqlalchemy import start_mappers
from commonplace.adapters.sqlalchemy.migrations import upgrade_head
from commonplace.adapters.sqlalchemy.unit_of_work import (
    SqlAlchemyUnitOfWork,
    build_unit_of_work_factory,
    shutdown,
    startup,
)
from commonplace.domain.mapping import MappingContext
from tests.support.graph import FakeUnitOfWorkFactory
from tests.support.media import StubMediaInspector

os.environ.setdefault("DATABASE_URI", "sqlite+pysqlite:///:memory:")

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator


@pytest.fixture
def now() -> datetime:
    return datetime(2024, 5, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
def media_inspector() -> StubMediaInspector:
    return StubMediaInspector()


@pytest.fixture
def mapping_context(now: datetime, media_inspector: StubMediaInspector) -> MappingContext:
    return MappingContext(now=now, media_inspector=media_inspector)


@pytest.fixture
def fake_unit_of_work() -> FakeUnitOfWorkFactory:
    return FakeUnitOfWorkFactory()


@pytest.fixture
def sqlite_engine() -> Iterator[Engine]:
    engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
    start_mappers()
    upgrade_head(engine=engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def sqlite_session(sqlite_engine: Engine) -> Iterator[Session]:
    session_factory = sessionmaker(bind=sqlite_engine, future=True)
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def sqlite_unit_of_work(
    sqlite_engine: Engine,
) -> Iterator[Callable[[], SqlAlchemyUnitOfWork]]:
    startup(engine=sqlite_engine, force=True, migrate=False)
    try:
        yield build_unit_of_work_factory(sqlite_engine)
    finally:
        shutdown()
