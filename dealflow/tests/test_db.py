from __future__ import annotations

import pytest
from sqlalchemy import func, inspect, select

from dealflow import db
from dealflow.models import Partner


@pytest.fixture()
def file_db(tmp_path, monkeypatch):
    url = f"sqlite:///{tmp_path / 'test.db'}"
    monkeypatch.setenv("DEALFLOW_DB_URL", url)
    return db.init_db()


def _partners() -> int:
    session = db.get_session()
    try:
        return session.execute(select(func.count()).select_from(Partner)).scalar_one()
    finally:
        session.close()


def test_env_url_wins(monkeypatch):
    monkeypatch.setenv("DEALFLOW_DB_URL", "  postgresql://localhost/dealflow ")
    assert db.default_db_url() == "postgresql://localhost/dealflow"


def test_init_db_creates_tables(file_db):
    tables = set(inspect(file_db).get_table_names())
    assert {"fundraisers", "capital_providers", "partners", "funds",
            "opportunities", "opportunity_events"} <= tables


def test_session_scope_commits(file_db):
    with db.session_scope() as session:
        session.add(Partner(name="Kept"))
    assert _partners() == 1


def test_session_scope_rolls_back_on_error(file_db):
    with pytest.raises(RuntimeError):
        with db.session_scope() as session:
            session.add(Partner(name="Dropped"))
            session.flush()
            raise RuntimeError("boom")
    assert _partners() == 0
