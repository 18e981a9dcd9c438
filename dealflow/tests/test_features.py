from __future__ import annotations

from datetime import datetime

import pytest

from dealflow.features import (
    VECTOR_DIM,
    extract_capital_provider,
    extract_features,
    extract_fundraiser,
    extract_partner,
    location_token,
    pseudo_vector,
    tokenize,
)
from dealflow.models import CapitalProvider, EntityKind, Fundraiser, Partner


class TestTokenize:
    def test_splits_on_non_alphanumerics_but_keeps_plus(self):
        assert tokenize("B2B SaaS, AI/ML & C++ tools") == {"b2b", "saas", "ai", "ml", "c++", "tools"}

    def test_discards_empty_tokens(self):
        assert tokenize("  --  ") == frozenset()

    def test_lower_cases(self):
        assert tokenize("FinTech") == {"fintech"}


class TestPseudoVector:
    def test_fixed_length(self):
        assert len(pseudo_vector("ai", 17)) == VECTOR_DIM

    def test_empty_text_is_all_zero(self):
        assert pseudo_vector("", 17) == (0.0,) * VECTOR_DIM

    def test_deterministic(self):
        assert pseudo_vector("saas ai", 17) == pseudo_vector("saas ai", 17)

    def test_values_from_character_codes(self):
        vec = pseudo_vector("a", 13)
        assert vec[0] == pytest.approx((ord("a") % 13) / 13)
        assert len(set(vec)) == 1


class TestLocationToken:
    def test_last_comma_segment(self):
        assert location_token("12 rue de Rivoli, Paris, France") == "France"

    def test_no_comma_uses_whole_address(self):
        assert location_token("  Belgium ") == "Belgium"

    def test_missing_or_blank(self):
        assert location_token(None) is None
        assert location_token("") is None
        assert location_token("Paris, ") is None


class TestExtractors:
    def test_fundraiser_bundle(self):
        f = Fundraiser(
            id=3, name="X", sector="SaaS", description="AI", needs="Seed round",
            maturity="MVP", address="Lyon, France",
            views_count=5, likes_count=2, bookmarks_count=None,
            created_at=datetime(2025, 1, 1),
        )
        b = extract_fundraiser(f)
        assert b.entity_kind == EntityKind.FUNDRAISER
        assert b.entity_id == 3
        assert b.tags == {"saas", "ai", "seed", "round"}
        assert b.location == "France"
        assert b.maturity == "MVP"
        assert b.needs_text == "Seed round"
        assert b.engagement.views == 5
        assert b.engagement.bookmarks == 0
        assert b.engagement.created_at == datetime(2025, 1, 1)

    def test_fundraiser_without_created_at_uses_now(self, now):
        b = extract_fundraiser(Fundraiser(name="X", sector="", description=""), now=now)
        assert b.engagement.created_at == now
        assert b.tags == frozenset()
        assert not any(b.vector)

    def test_capital_provider_focus(self):
        b = extract_capital_provider(CapitalProvider(
            name="Y", investment_focus="Early stage seed", description="Deep tech", address="",
        ))
        assert b.focus_text == "Early stage seed"
        assert b.tags == {"early", "stage", "seed", "deep", "tech"}
        assert b.engagement is None
        assert b.location is None

    def test_partner_focus(self):
        b = extract_partner(Partner(name="Z", partnership_type="Distribution", description="Retail"))
        assert b.focus_text == "Distribution"
        assert b.tags == {"distribution", "retail"}

    def test_vectors_differ_per_kind(self):
        text_fields = {"description": "ai"}
        c = extract_capital_provider(CapitalProvider(name="c", **text_fields))
        p = extract_partner(Partner(name="p", **text_fields))
        assert c.tags == p.tags
        assert c.vector != p.vector

    def test_dispatch_is_pure(self):
        rec = Partner(name="p", partnership_type="Pilot", description="Energy", address="Bern, Switzerland")
        assert extract_features(EntityKind.PARTNER, rec) == extract_features(EntityKind.PARTNER, rec)

    def test_dispatch_unknown_kind(self):
        with pytest.raises(ValueError):
            extract_features("INVESTOR", object())
