"""Pydantic request/response schemas for the dealflow API."""
from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator

from dealflow.matching import DEFAULT_MIN_SCORE, DEFAULT_TOP_K
from dealflow.models import EntityKind, EventType, OpportunityStatus


class GenerateRequest(BaseModel):
    kind: EntityKind
    anchor_id: int = Field(..., ge=1)
    top_k: int = Field(DEFAULT_TOP_K, ge=1)
    min_score: float = Field(DEFAULT_MIN_SCORE, ge=0, le=100)


class GenerateResult(BaseModel):
    created: int


class RegenerateRequest(BaseModel):
    kind: EntityKind = EntityKind.FUNDRAISER
    top_k: int = Field(DEFAULT_TOP_K, ge=1)
    min_score: float = Field(DEFAULT_MIN_SCORE, ge=0, le=100)


class OpportunityOut(BaseModel):
    id: int
    direction: str
    source_kind: str
    source_id: int
    target_kind: str
    target_id: int
    score: float
    score_breakdown: dict[str, float] = {}
    status: str
    reason: str | None = None
    next_action: str | None = None
    owner_user_id: int | None = None
    deal_type: str | None = None
    funding_round: str | None = None
    proposed_amount: float | None = None
    valuation_pre_money: float | None = None
    ownership_target_pct: float | None = None
    fund_id: int | None = None
    budget_fit: str | None = None
    budget_fit_score: float | None = None
    pilot_estimated_cost: float | None = None
    pilot_budget_fit: str | None = None
    term_deadline: str | None = None
    created_at: str
    updated_at: str


class OpportunityListResponse(BaseModel):
    items: list[OpportunityOut]
    total: int
    page: int
    limit: int


class StatusUpdate(BaseModel):
    status: OpportunityStatus
    reason: str | None = None


class DealFieldsUpdate(BaseModel):
    deal_type: str | None = None
    funding_round: str | None = None
    proposed_amount: float | None = Field(None, ge=0)
    valuation_pre_money: float | None = Field(None, ge=0)
    ownership_target_pct: float | None = Field(None, ge=0, le=100)
    fund_id: int | None = None
    budget_fit: str | None = None
    budget_fit_score: float | None = Field(None, ge=0, le=20)
    pilot_estimated_cost: float | None = Field(None, ge=0)
    pilot_budget_fit: str | None = None
    term_deadline: datetime | None = None


class EventCreate(BaseModel):
    type: EventType
    payload: dict[str, Any] = {}

    @field_validator("type")
    @classmethod
    def not_automatic(cls, v: EventType) -> EventType:
        if v in (EventType.AUTO_CREATED, EventType.RESCORED, EventType.STATUS_CHANGED):
            raise ValueError(f"'{v.value}' events are written by the system")
        return v


class EventOut(BaseModel):
    id: int
    opportunity_id: int
    occurred_at: str
    type: str
    payload: dict[str, Any] = {}
