"""Budget fit between a fundraiser's ask and a capital provider's funds.

Per fund the bonus is ``range (0-15) + availability (0-5)``; the provider's
bonus is the best fund's.  Unknown bounds are treated as open-ended, an
entirely unknown ask or an empty fund list scores 0.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Iterable

from dealflow.utils import as_utc

RANGE_WEIGHT = 15.0
WINDOW_BONUS = 3.0
DRY_POWDER_WEIGHT = 2.0
MAX_BUDGET_SCORE = RANGE_WEIGHT + WINDOW_BONUS + DRY_POWDER_WEIGHT

# Range labels, as shown on the investor dashboard
WITHIN_RANGE = "WITHIN_RANGE"
ABOVE_RANGE = "ABOVE_RANGE"
BELOW_RANGE = "BELOW_RANGE"
UNKNOWN = "UNKNOWN"


@dataclass(frozen=True)
class FundFit:
    fund: Any
    score: float
    range_score: float
    availability: float
    label: str


def _clamp(x: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, x))


def range_fit(
    ask_min: float | None, ask_max: float | None,
    ticket_min: float | None, ticket_max: float | None,
) -> tuple[float, str]:
    """Range compatibility in [0, 15] and its label."""
    if (ask_min is None and ask_max is None) or (ticket_min is None and ticket_max is None):
        return 0.0, UNKNOWN
    ask_lo = ask_min if ask_min is not None else 0.0
    ask_hi = ask_max if ask_max is not None else math.inf
    fund_lo = ticket_min if ticket_min is not None else 0.0
    fund_hi = ticket_max if ticket_max is not None else math.inf

    if ask_hi < fund_lo:
        ratio = ask_hi / fund_lo if fund_lo > 0 else 0.0
        return _clamp(RANGE_WEIGHT * ratio, 0.0, RANGE_WEIGHT), BELOW_RANGE
    if ask_lo > fund_hi:
        return _clamp(RANGE_WEIGHT * fund_hi / ask_lo, 0.0, RANGE_WEIGHT), ABOVE_RANGE
    return RANGE_WEIGHT, WITHIN_RANGE


def availability_bonus(fund: Any, now: datetime | None = None) -> float:
    """Investment-window bonus (3) plus dry-powder ratio bonus (up to 2)."""
    now = as_utc(now or datetime.now(UTC))
    bonus = 0.0
    start = getattr(fund, "investment_period_start", None)
    end = getattr(fund, "investment_period_end", None)
    if start is not None or end is not None:
        after_start = start is None or as_utc(start) <= now
        before_end = end is None or now <= as_utc(end)
        if after_start and before_end:
            bonus += WINDOW_BONUS

    total = getattr(fund, "total_capital", None)
    uncommitted = getattr(fund, "uncommitted_capital", None)
    if total and uncommitted is not None:
        bonus += DRY_POWDER_WEIGHT * _clamp(uncommitted / total, 0.0, 1.0)
    return bonus


def best_fund_fit(
    ask_min: float | None, ask_max: float | None, funds: Iterable[Any], now: datetime | None = None,
) -> FundFit | None:
    """Best-scoring fund for the ask, or None when there is nothing to compare."""
    if ask_min is None and ask_max is None:
        return None
    best: FundFit | None = None
    for fund in funds:
        r_score, label = range_fit(
            ask_min, ask_max, getattr(fund, "ticket_min", None), getattr(fund, "ticket_max", None),
        )
        avail = availability_bonus(fund, now=now)
        total = _clamp(r_score + avail, 0.0, MAX_BUDGET_SCORE)
        if best is None or total > best.score:
            best = FundFit(fund=fund, score=total, range_score=r_score, availability=avail, label=label)
    return best


def budget_fit(
    ask_min: float | None, ask_max: float | None, funds: Iterable[Any], now: datetime | None = None,
) -> float:
    """Budget bonus in [0, 20]: the maximum over the provider's funds."""
    fit = best_fund_fit(ask_min, ask_max, funds, now=now)
    return fit.score if fit is not None else 0.0
