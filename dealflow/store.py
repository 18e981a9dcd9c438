"""Opportunity persistence: idempotent upsert, status lifecycle, audit log.

Every write goes through the session handed in by the caller; nothing here
commits.  The uniqueness of ``(direction, source_kind, source_id, target_kind,
target_id)`` is enforced by the database and upserts resolve conflicts with
``INSERT ... ON CONFLICT DO UPDATE``, so concurrent regenerations of the same
pair converge on one row without application locks.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import case, func, or_, select
from sqlalchemy.orm import Session

from dealflow.models import (
    Direction, EntityKind, EventType, Opportunity, OpportunityEvent, OpportunityStatus,
)
from dealflow.utils import json_dump, utcnow

log = logging.getLogger(__name__)

QUALIFIED_THRESHOLD = 70.0

# Statuses the scorer may overwrite; anything later in the pipeline was set by a person
AUTOMATIC_STATUSES = (OpportunityStatus.NEW.value, OpportunityStatus.QUALIFIED.value)

IDENTITY_COLUMNS = ("direction", "source_kind", "source_id", "target_kind", "target_id")

DEAL_FIELDS = (
    "deal_type", "funding_round", "proposed_amount", "valuation_pre_money",
    "ownership_target_pct", "fund_id", "budget_fit", "budget_fit_score",
    "pilot_estimated_cost", "pilot_budget_fit", "term_deadline",
)


@dataclass(frozen=True)
class UpsertResult:
    opportunity: Opportunity
    inserted: bool


def automatic_status(score: float) -> OpportunityStatus:
    return OpportunityStatus.QUALIFIED if score >= QUALIFIED_THRESHOLD else OpportunityStatus.NEW


def _dialect_insert(session: Session):
    dialect = session.get_bind().dialect.name
    if dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    elif dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    else:
        raise NotImplementedError(f"Upsert is not supported on {dialect!r}")
    return insert


class OpportunityStore:
    def __init__(self, session: Session):
        self.session = session

    # -- writes -------------------------------------------------------------

    def upsert_unique(
        self,
        direction: Direction,
        source_kind: EntityKind,
        source_id: int,
        target_kind: EntityKind,
        target_id: int,
        score: float,
        breakdown: dict[str, float],
    ) -> UpsertResult:
        """Insert or update the opportunity for this identity key.

        On conflict the score, breakdown and ``updated_at`` are overwritten.
        The status follows the score (QUALIFIED at 70+, else NEW) unless the
        row already carries a manual status, which is kept.  Whether the row
        was inserted is read off the returned row, so a concurrent writer that
        got there first is reported as an update.
        """
        score = round(max(0.0, min(100.0, score)), 2)
        now = utcnow()
        identity = {
            "direction": Direction(direction).value,
            "source_kind": EntityKind(source_kind).value,
            "source_id": source_id,
            "target_kind": EntityKind(target_kind).value,
            "target_id": target_id,
        }
        insert = _dialect_insert(self.session)
        stmt = insert(Opportunity).values(
            **identity,
            score=score,
            score_breakdown_json=json_dump(breakdown),
            status=automatic_status(score).value,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=list(IDENTITY_COLUMNS),
            set_={
                "score": stmt.excluded.score,
                "score_breakdown_json": stmt.excluded.score_breakdown_json,
                "status": case(
                    (Opportunity.status.in_(AUTOMATIC_STATUSES), stmt.excluded.status),
                    else_=Opportunity.status,
                ),
                "updated_at": stmt.excluded.updated_at,
            },
        )
        opp = self.session.scalars(
            stmt.returning(Opportunity), execution_options={"populate_existing": True},
        ).one()
        # created_at is not in set_, so only a fresh insert carries this call's timestamp
        return UpsertResult(opportunity=opp, inserted=opp.created_at == now)

    def update_status(
        self, opportunity_id: int, status: OpportunityStatus | str, reason: str | None = None,
    ) -> Opportunity | None:
        """Move to any status (no transition rules) and log ``status_changed``."""
        new_status = OpportunityStatus(status)
        opp = self.session.get(Opportunity, opportunity_id)
        if opp is None:
            return None
        previous = opp.status
        if previous in (OpportunityStatus.DEAL, OpportunityStatus.LOST) and previous != new_status:
            log.info("Opportunity %s reopened: %s -> %s", opportunity_id, previous, new_status.value)
        opp.status = new_status.value
        opp.reason = reason
        opp.updated_at = utcnow()
        self.session.flush()
        self.log_event(opp.id, EventType.STATUS_CHANGED, {
            "from": previous, "to": new_status.value, "reason": reason,
        })
        return opp

    def update_fields(self, opportunity_id: int, fields: dict[str, Any]) -> Opportunity | None:
        """Set deal-economics attributes and log a ``rescored`` event listing them."""
        unknown = set(fields) - set(DEAL_FIELDS)
        if unknown:
            raise ValueError(f"Not a deal field: {', '.join(sorted(unknown))}")
        opp = self.session.get(Opportunity, opportunity_id)
        if opp is None:
            return None
        for name, value in fields.items():
            setattr(opp, name, value)
        opp.updated_at = utcnow()
        self.session.flush()
        self.log_event(opp.id, EventType.RESCORED, {"fields": fields})
        return opp

    def log_event(
        self,
        opportunity_id: int,
        event_type: EventType | str,
        payload: dict[str, Any] | None = None,
        occurred_at: datetime | None = None,
    ) -> OpportunityEvent:
        """Append to the audit log. Events are never updated or deleted."""
        event = OpportunityEvent(
            opportunity_id=opportunity_id,
            type=EventType(event_type).value,
            payload_json=json_dump(payload or {}),
            occurred_at=occurred_at or utcnow(),
        )
        self.session.add(event)
        self.session.flush()
        return event

    # -- reads --------------------------------------------------------------

    def get(self, opportunity_id: int) -> Opportunity | None:
        return self.session.get(Opportunity, opportunity_id)

    def list_events(self, opportunity_id: int) -> list[OpportunityEvent]:
        return list(self.session.execute(
            select(OpportunityEvent)
            .where(OpportunityEvent.opportunity_id == opportunity_id)
            .order_by(OpportunityEvent.id)
        ).scalars().all())

    def list_for_entity(
        self, kind: EntityKind | str, entity_id: int, page: int = 1, limit: int = 10,
    ) -> tuple[list[Opportunity], int]:
        """Opportunities where the entity is either source or target."""
        kind = EntityKind(kind).value
        where = or_(
            (Opportunity.source_kind == kind) & (Opportunity.source_id == entity_id),
            (Opportunity.target_kind == kind) & (Opportunity.target_id == entity_id),
        )
        return self._paginate(where, page, limit)

    def list_by_status(
        self, status: OpportunityStatus | str, page: int = 1, limit: int = 10,
    ) -> tuple[list[Opportunity], int]:
        return self._paginate(Opportunity.status == OpportunityStatus(status).value, page, limit)

    def _paginate(self, where, page: int, limit: int) -> tuple[list[Opportunity], int]:
        if page < 1 or limit < 1:
            raise ValueError("page and limit must be >= 1")
        total = self.session.execute(
            select(func.count()).select_from(Opportunity).where(where)
        ).scalar_one()
        rows = self.session.execute(
            select(Opportunity).where(where)
            .order_by(Opportunity.updated_at.desc(), Opportunity.id.desc())
            .offset((page - 1) * limit).limit(limit)
        ).scalars().all()
        return list(rows), total
