"""Pair scoring engine: five weighted signals with a capped sum.

Architecture
------------
Two feature bundles of complementary kinds are compared on:

- **tags** (40): Jaccard similarity of the tag sets
- **text** (25): cosine similarity of the pseudo-vectors
- **stage** (15): keyword overlap between the fundraiser's needs and the
  counterpart's focus, with a weaker early-stage fallback
- **geo** (up to 10): same location token, or both in the adjacent-country set
- **engagement** (up to 10): log-dampened views/likes/bookmarks of the fundraiser,
  decayed exponentially with the age of its profile

The final ``score`` is ``min(100, sum)``; the breakdown keeps every unrounded
term.  A missing input yields a zero term, never an error.
"""
from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import UTC, datetime

from dealflow.features import EngagementSignals, FeatureBundle
from dealflow.models import EntityKind
from dealflow.utils import as_utc

MAX_SCORE = 100.0

TAG_WEIGHT = 40.0
TEXT_WEIGHT = 25.0
STAGE_WEIGHT = 15.0
STAGE_EARLY_SCORE = 8.0
GEO_SAME = 10.0
GEO_ADJACENT = 5.0
ENGAGEMENT_WEIGHT = 10.0

STAGE_KEYWORDS = ("seed", "pre-seed", "series a", "pilot", "gtm", "distribution", "integration")
_EARLY_MATURITY_RE = re.compile(r"early|mvp|idea")
_EARLY_FOCUS_RE = re.compile(r"early|seed")

ADJACENT_COUNTRIES = frozenset({"France", "Belgium", "Switzerland", "Luxembourg", "Canada"})

# views / likes / bookmarks sub-weights
ENGAGEMENT_SUBWEIGHTS = (0.5, 1.0, 1.5)
ENGAGEMENT_DECAY_PER_DAY = 0.02
_ENGAGEMENT_NORM = math.log(101)


@dataclass(frozen=True)
class ScoreResult:
    score: float
    breakdown: dict[str, float]


# ---------------------------------------------------------------------------
# Similarity terms
# ---------------------------------------------------------------------------


def jaccard(a: frozenset[str] | set[str], b: frozenset[str] | set[str]) -> float:
    if not a and not b:
        return 0.0
    return len(a & b) / len(a | b)


def cosine(a: tuple[float, ...] | list[float], b: tuple[float, ...] | list[float]) -> float:
    n = min(len(a), len(b))
    dot = sum(a[i] * b[i] for i in range(n))
    na = sum(a[i] * a[i] for i in range(n))
    nb = sum(b[i] * b[i] for i in range(n))
    if not na or not nb:
        return 0.0
    return dot / (math.sqrt(na) * math.sqrt(nb))


def stage_fit(needs: str | None, maturity: str | None, focus: str | None) -> float:
    needs_l = (needs or "").lower()
    focus_l = (focus or "").lower()
    if any(k in needs_l and k in focus_l for k in STAGE_KEYWORDS):
        return STAGE_WEIGHT
    if maturity and _EARLY_MATURITY_RE.search(maturity.lower()) and _EARLY_FOCUS_RE.search(focus_l):
        return STAGE_EARLY_SCORE
    return 0.0


def geo_fit(a: str | None, b: str | None) -> float:
    if not a or not b:
        return 0.0
    if a == b:
        return GEO_SAME
    if a in ADJACENT_COUNTRIES and b in ADJACENT_COUNTRIES:
        return GEO_ADJACENT
    return 0.0


def _dampen(x: int) -> float:
    return min(1.0, math.log1p(max(0, x)) / _ENGAGEMENT_NORM)


def engagement_bonus(signals: EngagementSignals | None, now: datetime | None = None) -> float:
    """Engagement term in [0, 10], non-increasing with profile age."""
    if signals is None:
        return 0.0
    now = as_utc(now or datetime.now(UTC))
    wv, wl, wb = ENGAGEMENT_SUBWEIGHTS
    z = wv * _dampen(signals.views) + wl * _dampen(signals.likes) + wb * _dampen(signals.bookmarks)
    age_days = (now - as_utc(signals.created_at)).total_seconds() / 86400
    decay = math.exp(-ENGAGEMENT_DECAY_PER_DAY * max(0.0, age_days))
    return min(ENGAGEMENT_WEIGHT, ENGAGEMENT_WEIGHT * z * decay)


# ---------------------------------------------------------------------------
# Pair score
# ---------------------------------------------------------------------------


def score_pair(a: FeatureBundle, b: FeatureBundle, now: datetime | None = None) -> ScoreResult:
    """Score two bundles; argument order does not change the result."""
    fundraiser = other = None
    if (a.entity_kind == EntityKind.FUNDRAISER) != (b.entity_kind == EntityKind.FUNDRAISER):
        fundraiser, other = (a, b) if a.entity_kind == EntityKind.FUNDRAISER else (b, a)

    s_tags = TAG_WEIGHT * jaccard(a.tags, b.tags)
    s_text = TEXT_WEIGHT * cosine(a.vector, b.vector)
    s_geo = geo_fit(a.location, b.location)
    if fundraiser is not None:
        s_stage = stage_fit(fundraiser.needs_text, fundraiser.maturity, other.focus_text)
        s_eng = engagement_bonus(fundraiser.engagement, now=now)
    else:
        s_stage = s_eng = 0.0

    breakdown = {"tags": s_tags, "text": s_text, "stage": s_stage, "geo": s_geo, "engagement": s_eng}
    return ScoreResult(score=capped_total(breakdown), breakdown=breakdown)


def capped_total(breakdown: dict[str, float]) -> float:
    return min(MAX_SCORE, sum(breakdown.values()))
