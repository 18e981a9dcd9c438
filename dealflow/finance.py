"""Deal-economics enrichment for capital opportunities.

Fills the deal fields the scorer leaves empty, using simple heuristics on the
fundraiser's ask: funding round, deal type, proposed amount, and the budget
fit of the provider's best fund.  Only fields that are still ``None`` are
written, and the write goes through ``OpportunityStore.update_fields`` so it
shows up in the audit log.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from dealflow.budget import best_fund_fit
from dealflow.models import EntityKind, Fundraiser, Opportunity
from dealflow.repositories import SqlFundReader
from dealflow.store import OpportunityStore

log = logging.getLogger(__name__)

# (upper bound of the ask midpoint, round)
ROUND_BY_AMOUNT: list[tuple[float, str]] = [
    (400_000, "PRE_SEED"),
    (1_500_000, "SEED"),
    (5_000_000, "A"),
    (12_000_000, "B"),
    (30_000_000, "C"),
]

DEFAULT_AMOUNT = {
    "PRE_SEED": 200_000,
    "SEED": 800_000,
    "A": 3_000_000,
    "B": 8_000_000,
    "C": 20_000_000,
    "GROWTH": 50_000_000,
}


def parse_round(text: str | None) -> str | None:
    """Map free-text round names ("Series A", "pre-seed", ...) to a round code."""
    if not text:
        return None
    s = text.strip().lower()
    if "pre" in s:
        return "PRE_SEED"
    if s.startswith("seed"):
        return "SEED"
    for code in ("a", "b", "c"):
        if s == code or f"series {code}" in s:
            return code.upper()
    if "growth" in s or "late" in s:
        return "GROWTH"
    return None


def _midpoint(ask_min: float | None, ask_max: float | None) -> float | None:
    if ask_min is not None and ask_max is not None:
        return (ask_min + ask_max) / 2
    return ask_max if ask_max is not None else ask_min


def infer_round(round_text: str | None, ask_min: float | None, ask_max: float | None) -> str | None:
    code = parse_round(round_text)
    if code:
        return code
    mid = _midpoint(ask_min, ask_max)
    if mid is None:
        return None
    for bound, code in ROUND_BY_AMOUNT:
        if mid < bound:
            return code
    return "GROWTH"


def deal_type_for_round(round_code: str | None) -> str | None:
    if round_code is None:
        return None
    return "SAFE" if round_code == "PRE_SEED" else "EQUITY"


def proposed_amount(ask_min: float | None, ask_max: float | None, round_code: str | None) -> float | None:
    mid = _midpoint(ask_min, ask_max)
    if mid is not None:
        return mid
    return DEFAULT_AMOUNT.get(round_code or "")


def _fundraiser_and_provider(opp: Opportunity) -> tuple[int, int] | None:
    if opp.source_kind == EntityKind.FUNDRAISER and opp.target_kind == EntityKind.CAPITAL_PROVIDER:
        return opp.source_id, opp.target_id
    if opp.source_kind == EntityKind.CAPITAL_PROVIDER and opp.target_kind == EntityKind.FUNDRAISER:
        return opp.target_id, opp.source_id
    return None


def suggest_deal_fields(
    fundraiser: Fundraiser, funds: list[Any], now: datetime | None = None,
) -> dict[str, Any]:
    """Heuristic deal fields for a fundraiser / provider pair."""
    round_code = infer_round(fundraiser.funding_round, fundraiser.ask_min, fundraiser.ask_max)
    fields: dict[str, Any] = {
        "funding_round": round_code,
        "deal_type": deal_type_for_round(round_code),
        "proposed_amount": proposed_amount(fundraiser.ask_min, fundraiser.ask_max, round_code),
    }
    fit = best_fund_fit(fundraiser.ask_min, fundraiser.ask_max, funds, now=now)
    if fit is not None:
        fields.update(budget_fit=fit.label, budget_fit_score=round(fit.score, 2), fund_id=fit.fund.id)
    return fields


def enrich_deal_fields(session: Session, opportunity_id: int, now: datetime | None = None) -> Opportunity | None:
    """Fill missing deal fields on a capital opportunity (caller must commit).

    Returns the opportunity (unchanged when nothing was missing or it is not a
    capital opportunity), or None if it does not exist.
    """
    store = OpportunityStore(session)
    opp = store.get(opportunity_id)
    if opp is None:
        return None
    pair = _fundraiser_and_provider(opp)
    if pair is None:
        log.debug("Opportunity %s is not a capital opportunity, skipping", opportunity_id)
        return opp
    fundraiser_id, provider_id = pair
    fundraiser = session.get(Fundraiser, fundraiser_id)
    if fundraiser is None:
        return opp

    funds = list(SqlFundReader(session).get_funds_for_provider(provider_id))
    suggested = suggest_deal_fields(fundraiser, funds, now=now)
    missing = {k: v for k, v in suggested.items() if v is not None and getattr(opp, k) is None}
    if not missing:
        return opp
    log.info("Enriching opportunity %s with %s", opportunity_id, ", ".join(sorted(missing)))
    return store.update_fields(opportunity_id, missing)
