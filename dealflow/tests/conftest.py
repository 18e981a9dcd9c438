from __future__ import annotations

from datetime import UTC, datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from dealflow.models import Base, CapitalProvider, Fund, Fundraiser, Partner

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=UTC)


# ---------------------------------------------------------------------------
# Fixtures: in-memory SQLite database
# ---------------------------------------------------------------------------


@pytest.fixture()
def engine():
    eng = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    return eng


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture()
def session(session_factory):
    sess = session_factory()
    try:
        yield sess
    finally:
        sess.close()


@pytest.fixture()
def now() -> datetime:
    return NOW


# ---------------------------------------------------------------------------
# Sample entities (the worked example: SaaS/AI fundraiser vs AI/fintech investor)
# ---------------------------------------------------------------------------


@pytest.fixture()
def fundraiser(session: Session) -> Fundraiser:
    f = Fundraiser(
        name="Lumen", sector="SaaS", description="AI",
        maturity="growth", needs=None, address="12 rue de Rivoli, Paris, France",
        ask_min=200_000, ask_max=800_000,
        views_count=0, likes_count=0, bookmarks_count=0,
        created_at=datetime(2025, 5, 1),
    )
    session.add(f)
    session.flush()
    return f


@pytest.fixture()
def provider(session: Session) -> CapitalProvider:
    p = CapitalProvider(
        name="Northwind Ventures", investor_type="VC",
        investment_focus="AI", description="Fintech",
        address="Unter den Linden 1, Berlin, Germany",
    )
    session.add(p)
    session.flush()
    return p


@pytest.fixture()
def fund(session: Session, provider: CapitalProvider) -> Fund:
    f = Fund(
        provider_id=provider.id, name="Northwind Seed I",
        ticket_min=150_000, ticket_max=1_000_000,
        total_capital=10_000_000, uncommitted_capital=5_000_000,
        investment_period_start=datetime(2024, 1, 1),
        investment_period_end=datetime(2027, 1, 1),
        stage_focus_json='["seed"]',
    )
    session.add(f)
    session.flush()
    return f


@pytest.fixture()
def empty_partner(session: Session) -> Partner:
    """A partner with no text at all, located elsewhere."""
    p = Partner(name="Quiet Co", partnership_type=None, description="", address="Madrid, Spain")
    session.add(p)
    session.flush()
    return p
