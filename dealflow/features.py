"""Feature extraction: turn raw entity records into comparable feature bundles.

Each record (fundraiser, capital provider, partner) is reduced to:

- **tags**: lower-cased tokens of its category/focus field and description
- **vector**: a 32-dimension pseudo-vector derived from character codes of
  the same text (a deterministic stand-in for a text embedding)
- **location**: the last comma-separated segment of the address
- **maturity / needs / engagement** for fundraisers, **focus** for the others

Extraction never touches the database; records are read with ``getattr`` so
ORM rows and plain objects both work.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from dealflow.models import EntityKind

VECTOR_DIM = 32

# Per-kind modulus for the character-code vector
_VECTOR_MODULUS = {
    EntityKind.FUNDRAISER: 17,
    EntityKind.CAPITAL_PROVIDER: 13,
    EntityKind.PARTNER: 11,
}

_TOKEN_SPLIT_RE = re.compile(r"[^a-z0-9+]+")


@dataclass(frozen=True)
class EngagementSignals:
    views: int
    likes: int
    bookmarks: int
    created_at: datetime


@dataclass(frozen=True)
class FeatureBundle:
    entity_kind: EntityKind
    entity_id: int | None
    tags: frozenset[str]
    vector: tuple[float, ...]
    location: str | None = None
    maturity: str | None = None
    needs_text: str | None = None
    focus_text: str | None = None
    engagement: EngagementSignals | None = field(default=None)


# ---------------------------------------------------------------------------
# Primitives
# ---------------------------------------------------------------------------


def _join_text(*parts: str | None) -> str:
    return " ".join(p.strip() for p in parts if p and p.strip()).lower()


def tokenize(text: str) -> frozenset[str]:
    """Split lower-cased text on runs of anything but ``[a-z0-9+]``."""
    return frozenset(t for t in _TOKEN_SPLIT_RE.split(text.lower()) if t)


def pseudo_vector(text: str, modulus: int, dim: int = VECTOR_DIM) -> tuple[float, ...]:
    """Deterministic fixed-length vector from character codes; all zeros for empty text."""
    if not text:
        return (0.0,) * dim
    n = len(text)
    return tuple((ord(text[i % n]) % modulus) / modulus for i in range(dim))


def location_token(address: str | None) -> str | None:
    if not address:
        return None
    token = address.rsplit(",", 1)[-1].strip()
    return token or None


def _count(value: Any) -> int:
    try:
        return max(0, int(value or 0))
    except (TypeError, ValueError):
        return 0


# ---------------------------------------------------------------------------
# Extractors
# ---------------------------------------------------------------------------


def extract_fundraiser(record: Any, now: datetime | None = None) -> FeatureBundle:
    needs = getattr(record, "needs", None) or None
    text = _join_text(getattr(record, "sector", None), getattr(record, "description", None), needs)
    created_at = getattr(record, "created_at", None) or now or datetime.now(UTC)
    return FeatureBundle(
        entity_kind=EntityKind.FUNDRAISER,
        entity_id=getattr(record, "id", None),
        tags=tokenize(text),
        vector=pseudo_vector(text, _VECTOR_MODULUS[EntityKind.FUNDRAISER]),
        location=location_token(getattr(record, "address", None)),
        maturity=getattr(record, "maturity", None) or None,
        needs_text=needs,
        engagement=EngagementSignals(
            views=_count(getattr(record, "views_count", 0)),
            likes=_count(getattr(record, "likes_count", 0)),
            bookmarks=_count(getattr(record, "bookmarks_count", 0)),
            created_at=created_at,
        ),
    )


def extract_capital_provider(record: Any) -> FeatureBundle:
    focus = getattr(record, "investment_focus", None) or None
    text = _join_text(focus, getattr(record, "description", None))
    return FeatureBundle(
        entity_kind=EntityKind.CAPITAL_PROVIDER,
        entity_id=getattr(record, "id", None),
        tags=tokenize(text),
        vector=pseudo_vector(text, _VECTOR_MODULUS[EntityKind.CAPITAL_PROVIDER]),
        location=location_token(getattr(record, "address", None)),
        focus_text=focus,
    )


def extract_partner(record: Any) -> FeatureBundle:
    focus = getattr(record, "partnership_type", None) or None
    text = _join_text(focus, getattr(record, "description", None))
    return FeatureBundle(
        entity_kind=EntityKind.PARTNER,
        entity_id=getattr(record, "id", None),
        tags=tokenize(text),
        vector=pseudo_vector(text, _VECTOR_MODULUS[EntityKind.PARTNER]),
        location=location_token(getattr(record, "address", None)),
        focus_text=focus,
    )


def extract_features(kind: EntityKind, record: Any, now: datetime | None = None) -> FeatureBundle:
    """Dispatch on entity kind."""
    if kind == EntityKind.FUNDRAISER:
        return extract_fundraiser(record, now=now)
    if kind == EntityKind.CAPITAL_PROVIDER:
        return extract_capital_provider(record)
    if kind == EntityKind.PARTNER:
        return extract_partner(record)
    raise ValueError(f"Unknown entity kind: {kind!r}")
