"""Opportunity generation: score an anchor against its counterparties and persist the best.

For an anchor entity every counterparty of the complementary kind is scored
(pair score, plus budget fit whenever a capital provider is involved).
Candidates below ``min_score`` are dropped *before* ranking, the rest are
sorted by score (ties keep enumeration order) and the first ``top_k`` are
upserted as opportunities, each with one audit event.

The caller owns the transaction: the functions flush but never commit, so a
storage failure half-way through leaves nothing behind once the caller rolls
back.  ``regenerate_all`` is the batch driver and commits per anchor.

Entities and funds are read through ``EntityReader`` / ``FundReader``; unless
the caller passes its own, the SQL readers on the same session are used.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Callable, Iterable, Iterator, Mapping, Sequence

from sqlalchemy.orm import Session

from dealflow.budget import budget_fit
from dealflow.features import FeatureBundle, extract_features
from dealflow.models import Direction, EntityKind, EventType
from dealflow.repositories import EntityReader, FundReader, SqlFundReader, reader_for
from dealflow.scorer import MAX_SCORE, score_pair
from dealflow.store import OpportunityStore

log = logging.getLogger(__name__)

DEFAULT_TOP_K = int(os.environ.get("DEALFLOW_TOP_K", "10"))
DEFAULT_MIN_SCORE = float(os.environ.get("DEALFLOW_MIN_SCORE", "45"))


@dataclass
class Candidate:
    direction: Direction
    target_kind: EntityKind
    target_id: int
    score: float
    breakdown: dict[str, float]


def validate_params(top_k: int, min_score: float) -> None:
    if top_k < 1:
        raise ValueError("top_k must be >= 1")
    if not 0 <= min_score <= MAX_SCORE:
        raise ValueError("min_score must be within [0, 100]")


def select_top(candidates: Sequence[Candidate], top_k: int, min_score: float) -> list[Candidate]:
    """Threshold first, then rank; ``sorted`` is stable so ties keep input order."""
    kept = [c for c in candidates if c.score >= min_score]
    return sorted(kept, key=lambda c: c.score, reverse=True)[:top_k]


def _with_budget(
    fundraiser: Any, pair: FeatureBundle, other: FeatureBundle, funds: Sequence[Any], now: datetime,
) -> tuple[float, dict[str, float]]:
    result = score_pair(pair, other, now=now)
    bonus = budget_fit(getattr(fundraiser, "ask_min", None), getattr(fundraiser, "ask_max", None), funds, now=now)
    breakdown = {**result.breakdown, "budget": bonus}
    return min(MAX_SCORE, result.score + bonus), breakdown


def _reader(
    session: Session, readers: Mapping[EntityKind, EntityReader] | None, kind: EntityKind,
) -> EntityReader:
    """Caller-supplied reader for ``kind``, else the SQL reader on ``session``."""
    if readers is not None and kind in readers:
        return readers[kind]
    return reader_for(session, kind)


def _persist(
    store: OpportunityStore, source_kind: EntityKind, source_id: int, selected: list[Candidate], origin: str,
) -> int:
    created = 0
    for c in selected:
        res = store.upsert_unique(
            c.direction, source_kind, source_id, c.target_kind, c.target_id, c.score, c.breakdown,
        )
        opp = res.opportunity
        log.debug("%s %s -> %s %s scored %.2f", source_kind.value, source_id, c.target_kind.value, c.target_id, c.score)
        store.log_event(
            opp.id,
            EventType.AUTO_CREATED if res.inserted else EventType.RESCORED,
            {"score": opp.score, "breakdown": c.breakdown, "status": opp.status, "source": origin},
        )
        created += 1
    return created


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


def generate_for_fundraiser(
    session: Session,
    fundraiser_id: int,
    top_k: int = DEFAULT_TOP_K,
    min_score: float = DEFAULT_MIN_SCORE,
    now: datetime | None = None,
    *,
    readers: Mapping[EntityKind, EntityReader] | None = None,
    fund_reader: FundReader | None = None,
) -> dict[str, int]:
    """Match a fundraiser against every capital provider and partner."""
    validate_params(top_k, min_score)
    now = now or datetime.now(UTC)
    fundraiser = _reader(session, readers, EntityKind.FUNDRAISER).get_by_id(fundraiser_id)
    if fundraiser is None:
        log.info("Fundraiser %s not found, nothing to generate", fundraiser_id)
        return {"created": 0}
    f_feat = extract_features(EntityKind.FUNDRAISER, fundraiser, now=now)
    funds = fund_reader if fund_reader is not None else SqlFundReader(session)

    candidates: list[Candidate] = []
    for provider in _reader(session, readers, EntityKind.CAPITAL_PROVIDER).get_all():
        c_feat = extract_features(EntityKind.CAPITAL_PROVIDER, provider)
        score, breakdown = _with_budget(
            fundraiser, f_feat, c_feat, funds.get_funds_for_provider(provider.id), now,
        )
        candidates.append(Candidate(
            Direction.FUNDRAISER_TO_CAPITAL, EntityKind.CAPITAL_PROVIDER, provider.id, score, breakdown,
        ))
    for partner in _reader(session, readers, EntityKind.PARTNER).get_all():
        result = score_pair(f_feat, extract_features(EntityKind.PARTNER, partner), now=now)
        candidates.append(Candidate(
            Direction.FUNDRAISER_TO_PARTNER, EntityKind.PARTNER, partner.id, result.score, result.breakdown,
        ))

    selected = select_top(candidates, top_k, min_score)
    created = _persist(
        OpportunityStore(session), EntityKind.FUNDRAISER, fundraiser_id, selected, "generate_for_fundraiser",
    )
    log.info("Fundraiser %s: %d candidates, %d opportunities", fundraiser_id, len(candidates), created)
    return {"created": created}


def generate_for_capital_provider(
    session: Session,
    provider_id: int,
    top_k: int = DEFAULT_TOP_K,
    min_score: float = DEFAULT_MIN_SCORE,
    now: datetime | None = None,
    *,
    readers: Mapping[EntityKind, EntityReader] | None = None,
    fund_reader: FundReader | None = None,
) -> dict[str, int]:
    """Match a capital provider against every fundraiser, with fund fit."""
    validate_params(top_k, min_score)
    now = now or datetime.now(UTC)
    provider = _reader(session, readers, EntityKind.CAPITAL_PROVIDER).get_by_id(provider_id)
    if provider is None:
        log.info("Capital provider %s not found, nothing to generate", provider_id)
        return {"created": 0}
    c_feat = extract_features(EntityKind.CAPITAL_PROVIDER, provider)
    if fund_reader is None:
        fund_reader = SqlFundReader(session)
    funds = fund_reader.get_funds_for_provider(provider_id)

    candidates: list[Candidate] = []
    for fundraiser in _reader(session, readers, EntityKind.FUNDRAISER).get_all():
        f_feat = extract_features(EntityKind.FUNDRAISER, fundraiser, now=now)
        score, breakdown = _with_budget(fundraiser, f_feat, c_feat, funds, now)
        candidates.append(Candidate(
            Direction.CAPITAL_TO_FUNDRAISER, EntityKind.FUNDRAISER, fundraiser.id, score, breakdown,
        ))

    selected = select_top(candidates, top_k, min_score)
    created = _persist(
        OpportunityStore(session), EntityKind.CAPITAL_PROVIDER, provider_id, selected,
        "generate_for_capital_provider",
    )
    log.info("Capital provider %s: %d candidates, %d opportunities", provider_id, len(candidates), created)
    return {"created": created}


def generate_for_partner(
    session: Session,
    partner_id: int,
    top_k: int = DEFAULT_TOP_K,
    min_score: float = DEFAULT_MIN_SCORE,
    now: datetime | None = None,
    *,
    readers: Mapping[EntityKind, EntityReader] | None = None,
) -> dict[str, int]:
    """Match a partner against every fundraiser (no budget term)."""
    validate_params(top_k, min_score)
    now = now or datetime.now(UTC)
    partner = _reader(session, readers, EntityKind.PARTNER).get_by_id(partner_id)
    if partner is None:
        log.info("Partner %s not found, nothing to generate", partner_id)
        return {"created": 0}
    p_feat = extract_features(EntityKind.PARTNER, partner)

    candidates: list[Candidate] = []
    for fundraiser in _reader(session, readers, EntityKind.FUNDRAISER).get_all():
        result = score_pair(extract_features(EntityKind.FUNDRAISER, fundraiser, now=now), p_feat, now=now)
        candidates.append(Candidate(
            Direction.PARTNER_TO_FUNDRAISER, EntityKind.FUNDRAISER, fundraiser.id, result.score, result.breakdown,
        ))

    selected = select_top(candidates, top_k, min_score)
    created = _persist(
        OpportunityStore(session), EntityKind.PARTNER, partner_id, selected, "generate_for_partner",
    )
    log.info("Partner %s: %d candidates, %d opportunities", partner_id, len(candidates), created)
    return {"created": created}


GENERATORS: dict[EntityKind, Callable[..., dict[str, int]]] = {
    EntityKind.FUNDRAISER: generate_for_fundraiser,
    EntityKind.CAPITAL_PROVIDER: generate_for_capital_provider,
    EntityKind.PARTNER: generate_for_partner,
}


# ---------------------------------------------------------------------------
# Batch driver
# ---------------------------------------------------------------------------


def anchor_ids(session: Session, kind: EntityKind) -> list[int]:
    return [e.id for e in reader_for(session, kind).get_all()]


def regenerate_anchor(
    session_factory: Callable[[], Session],
    kind: EntityKind,
    anchor_id: int,
    top_k: int = DEFAULT_TOP_K,
    min_score: float = DEFAULT_MIN_SCORE,
) -> dict[str, int]:
    """Run one anchor in its own session and transaction."""
    session = session_factory()
    try:
        result = GENERATORS[EntityKind(kind)](session, anchor_id, top_k, min_score)
        session.commit()
        return result
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def load_anchor_ids(session_factory: Callable[[], Session], kind: EntityKind) -> list[int]:
    session = session_factory()
    try:
        return anchor_ids(session, EntityKind(kind))
    finally:
        session.close()


def iter_regenerate(
    session_factory: Callable[[], Session],
    kind: EntityKind,
    ids: Iterable[int],
    top_k: int = DEFAULT_TOP_K,
    min_score: float = DEFAULT_MIN_SCORE,
) -> Iterator[tuple[int, int | None]]:
    """Regenerate anchor by anchor, yielding ``(anchor_id, created)``.

    ``created`` is None for an anchor that failed; its transaction was rolled
    back, the failure logged, and the loop moves on to the next anchor.
    """
    kind = EntityKind(kind)
    for anchor_id in ids:
        try:
            created = regenerate_anchor(session_factory, kind, anchor_id, top_k, min_score)["created"]
        except Exception as exc:
            log.warning("Regeneration failed for %s %s: %s", kind.value, anchor_id, exc)
            created = None
        yield anchor_id, created


def regenerate_all(
    session_factory: Callable[[], Session],
    kind: EntityKind,
    top_k: int = DEFAULT_TOP_K,
    min_score: float = DEFAULT_MIN_SCORE,
) -> dict[str, int]:
    """Regenerate for every anchor of a kind; one failing anchor never stops the batch.

    ``anchors`` counts every anchor attempted, ``failed`` those rolled back.
    """
    kind = EntityKind(kind)
    validate_params(top_k, min_score)
    ids = load_anchor_ids(session_factory, kind)
    stats = {"anchors": len(ids), "created": 0, "failed": 0}
    for _, created in iter_regenerate(session_factory, kind, ids, top_k, min_score):
        if created is None:
            stats["failed"] += 1
        else:
            stats["created"] += created
    log.info("Regenerated %d %s anchors: %d opportunities, %d failed",
             stats["anchors"], kind.value, stats["created"], stats["failed"])
    return stats
