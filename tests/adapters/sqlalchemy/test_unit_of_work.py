from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from sqlalchemy import create_engine, inspect

from commonplace.adapters.sqlalchemy.unit_of_work import (
    SqlAlchemyUnitOfWork,
    StartupError,
    build_unit_of_work_factory,
    configured_engine,
    is_started,
    shutdown,
    startup,
)
from commonplace.domain.model import GithubUser, Record

if TYPE_CHECKING:
    from collections.abc import Iterator

    from sqlalchemy.engine import Engine


@pytest.fixture(autouse=True)
def reset_unit_of_work_state() -> Iterator[None]:
    shutdown()
    yield
    shutdown()


def test_sqlalchemy_unit_of_work_requires_startup() -> None:
    with pytest.raises(StartupError):
        SqlAlchemyUnitOfWork()


def test_startup_requires_force_for_reconfiguration() -> None:
    engine_a = create_engine("sqlite+pysqlite:///:memory:", future=True)
    engine_b = create_engine("sqlite+pysqlite:///:memory:", future=True)

    startup(engine=engine_a, force=True)

    with pytest.raises(StartupError):
        startup(engine=engine_b)

    startup(engine=engine_b, force=True)
    assert configured_engine() is engine_b
    assert is_started()


@pytest.mark.parametrize(("setting", "expected"), [("false", False), ("yes", True), ("", True)])
def test_startup_migrates_according_to_environment(
    monkeypatch: pytest.MonkeyPatch, setting: str, expected: bool
) -> None:
    monkeypatch.setenv("COMMONPLACE_AUTO_MIGRATE", setting)
    engine = create_engine("sqlite+pysqlite:///:memory:", future=True)

    startup(engine=engine, force=True)

    assert ("records" in inspect(engine).get_table_names()) is expected


def test_explicit_migrate_flag_overrides_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("COMMONPLACE_AUTO_MIGRATE", "off")
    engine = create_engine("sqlite+pysqlite:///:memory:", future=True)

    startup(engine=engine, force=True, migrate=True)

    assert "records" in inspect(engine).get_table_names()


def test_repositories_unavailable_outside_context(sqlite_engine: Engine) -> None:
    startup(engine=sqlite_engine, force=True, migrate=False)
    uow = SqlAlchemyUnitOfWork()

    with pytest.raises(StartupError):
        _ = uow.repositories


def test_unit_of_work_commits_staging_and_records(sqlite_engine: Engine) -> None:
    startup(engine=sqlite_engine, force=True, migrate=False)

    with SqlAlchemyUnitOfWork() as uow:
        uow.repositories.staging.add(GithubUser(external_id="u1", login="octocat"))
        uow.repositories.records.add(Record(title="Kept"))
        uow.commit()

    with SqlAlchemyUnitOfWork() as uow:
        assert uow.repositories.staging.get(GithubUser, "u1") is not None
        assert [record.title for record in uow.repositories.records.list_all()] == ["Kept"]


def test_unit_of_work_rolls_back_on_error(sqlite_engine: Engine) -> None:
    factory = build_unit_of_work_factory(sqlite_engine)

    with pytest.raises(RuntimeError, match="boom"), factory() as uow:
        uow.repositories.records.add(Record(title="Discarded"))
        uow.session.flush()
        raise RuntimeError("boom")

    with factory() as uow:
        assert uow.repositories.records.list_all() == []


def test_factory_bound_to_engine_needs_no_startup(sqlite_engine: Engine) -> None:
    factory = build_unit_of_work_factory(sqlite_engine)

    with factory() as uow:
        uow.repositories.records.add(Record(title="Bound"))
        uow.commit()

    assert not is_started()
    with factory() as uow:
        assert len(uow.repositories.records.list_all()) == 1
