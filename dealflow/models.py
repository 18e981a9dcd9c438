from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from sqlalchemy import (
    CheckConstraint, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint, func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


# ---------------------------------------------------------------------------
# Enumerations (stored as plain strings)
# ---------------------------------------------------------------------------


class EntityKind(StrEnum):
    FUNDRAISER = "FUNDRAISER"
    CAPITAL_PROVIDER = "CAPITAL_PROVIDER"
    PARTNER = "PARTNER"


class Direction(StrEnum):
    FUNDRAISER_TO_CAPITAL = "F->C"
    FUNDRAISER_TO_PARTNER = "F->P"
    CAPITAL_TO_FUNDRAISER = "C->F"
    PARTNER_TO_FUNDRAISER = "P->F"


class OpportunityStatus(StrEnum):
    NEW = "NEW"
    QUALIFIED = "QUALIFIED"
    CONTACTED = "CONTACTED"
    IN_DISCUSSION = "IN_DISCUSSION"
    PILOT = "PILOT"
    DEAL = "DEAL"
    LOST = "LOST"


class EventType(StrEnum):
    AUTO_CREATED = "auto_created"
    RESCORED = "rescored"
    STATUS_CHANGED = "status_changed"
    NOTE = "note"
    EMAIL_SENT = "email_sent"
    MEETING = "meeting"
    PILOT_STARTED = "pilot_started"
    DEAL_SIGNED = "deal_signed"


# ---------------------------------------------------------------------------
# Entities read by the matching engine
# ---------------------------------------------------------------------------


class Fundraiser(Base):
    __tablename__ = "fundraisers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(300), nullable=False)
    sector: Mapped[str] = mapped_column(String(200), default="")
    description: Mapped[str] = mapped_column(Text, default="")
    maturity: Mapped[str | None] = mapped_column(String(100), nullable=True)  # idea | mvp | early | growth ...
    needs: Mapped[str | None] = mapped_column(Text, nullable=True)
    address: Mapped[str] = mapped_column(String(500), default="")
    ask_min: Mapped[float | None] = mapped_column(Float, nullable=True)
    ask_max: Mapped[float | None] = mapped_column(Float, nullable=True)
    funding_round: Mapped[str | None] = mapped_column(String(50), nullable=True)
    views_count: Mapped[int] = mapped_column(Integer, default=0)
    likes_count: Mapped[int] = mapped_column(Integer, default=0)
    bookmarks_count: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class CapitalProvider(Base):
    __tablename__ = "capital_providers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(300), nullable=False)
    investor_type: Mapped[str] = mapped_column(String(100), default="")
    investment_focus: Mapped[str | None] = mapped_column(Text, nullable=True)
    description: Mapped[str] = mapped_column(Text, default="")
    address: Mapped[str] = mapped_column(String(500), default="")
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    funds: Mapped[list[Fund]] = relationship("Fund", back_populates="provider", cascade="all, delete-orphan")


class Partner(Base):
    __tablename__ = "partners"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(300), nullable=False)
    partnership_type: Mapped[str | None] = mapped_column(String(200), nullable=True)
    description: Mapped[str] = mapped_column(Text, default="")
    address: Mapped[str] = mapped_column(String(500), default="")
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class Fund(Base):
    __tablename__ = "funds"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    provider_id: Mapped[int] = mapped_column(Integer, ForeignKey("capital_providers.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(300), default="")
    vintage: Mapped[int | None] = mapped_column(Integer, nullable=True)
    ticket_min: Mapped[float | None] = mapped_column(Float, nullable=True)
    ticket_max: Mapped[float | None] = mapped_column(Float, nullable=True)
    total_capital: Mapped[float | None] = mapped_column(Float, nullable=True)
    uncommitted_capital: Mapped[float | None] = mapped_column(Float, nullable=True)  # dry powder
    investment_period_start: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    investment_period_end: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    sector_focus_json: Mapped[str] = mapped_column(Text, default="[]")
    geo_focus_json: Mapped[str] = mapped_column(Text, default="[]")
    stage_focus_json: Mapped[str] = mapped_column(Text, default="[]")

    provider: Mapped[CapitalProvider] = relationship("CapitalProvider", back_populates="funds")


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


class Opportunity(Base):
    __tablename__ = "opportunities"
    __table_args__ = (
        UniqueConstraint(
            "direction", "source_kind", "source_id", "target_kind", "target_id",
            name="uq_opportunity_identity",
        ),
        CheckConstraint("score >= 0 AND score <= 100", name="ck_opportunity_score_range"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    direction: Mapped[str] = mapped_column(String(10), nullable=False)
    source_kind: Mapped[str] = mapped_column(String(30), nullable=False)
    source_id: Mapped[int] = mapped_column(Integer, nullable=False)
    target_kind: Mapped[str] = mapped_column(String(30), nullable=False)
    target_id: Mapped[int] = mapped_column(Integer, nullable=False)
    score: Mapped[float] = mapped_column(Float, default=0.0)
    score_breakdown_json: Mapped[str] = mapped_column(Text, default="{}")
    status: Mapped[str] = mapped_column(String(30), default=OpportunityStatus.NEW.value)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    next_action: Mapped[str | None] = mapped_column(Text, nullable=True)
    owner_user_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Deal economics, filled by workflow/enrichment rather than by the scorer
    deal_type: Mapped[str | None] = mapped_column(String(30), nullable=True)
    funding_round: Mapped[str | None] = mapped_column(String(30), nullable=True)
    proposed_amount: Mapped[float | None] = mapped_column(Float, nullable=True)
    valuation_pre_money: Mapped[float | None] = mapped_column(Float, nullable=True)
    ownership_target_pct: Mapped[float | None] = mapped_column(Float, nullable=True)
    fund_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("funds.id"), nullable=True)
    budget_fit: Mapped[str | None] = mapped_column(String(30), nullable=True)
    budget_fit_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    pilot_estimated_cost: Mapped[float | None] = mapped_column(Float, nullable=True)
    pilot_budget_fit: Mapped[str | None] = mapped_column(String(30), nullable=True)
    term_deadline: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    events: Mapped[list[OpportunityEvent]] = relationship(
        "OpportunityEvent", back_populates="opportunity", order_by="OpportunityEvent.id",
    )


class OpportunityEvent(Base):
    __tablename__ = "opportunity_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    opportunity_id: Mapped[int] = mapped_column(Integer, ForeignKey("opportunities.id"), nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    type: Mapped[str] = mapped_column(String(30), nullable=False)  # see EventType
    payload_json: Mapped[str] = mapped_column(Text, default="{}")

    opportunity: Mapped[Opportunity] = relationship("Opportunity", back_populates="events")
