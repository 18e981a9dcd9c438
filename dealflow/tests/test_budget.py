from __future__ import annotations

from datetime import UTC, datetime

import pytest

from dealflow.budget import (
    ABOVE_RANGE,
    BELOW_RANGE,
    UNKNOWN,
    WITHIN_RANGE,
    availability_bonus,
    best_fund_fit,
    budget_fit,
    range_fit,
)
from dealflow.models import Fund

NOW = datetime(2025, 6, 1, tzinfo=UTC)


def _fund(**kw) -> Fund:
    return Fund(name=kw.pop("name", "F"), **kw)


class TestRangeFit:
    def test_overlap(self):
        assert range_fit(200_000, 800_000, 150_000, 1_000_000) == (15, WITHIN_RANGE)

    def test_ask_below_fund_min(self):
        score, label = range_fit(100_000, 250_000, 500_000, 2_000_000)
        assert score == pytest.approx(15 * 250_000 / 500_000)
        assert label == BELOW_RANGE

    def test_ask_above_fund_max(self):
        score, label = range_fit(4_000_000, 6_000_000, 500_000, 1_000_000)
        assert score == pytest.approx(15 * 1_000_000 / 4_000_000)
        assert label == ABOVE_RANGE

    def test_partial_bounds_are_open(self):
        # fund with only a minimum accepts anything above it
        assert range_fit(5_000_000, None, 1_000_000, None) == (15, WITHIN_RANGE)
        # ask with only a maximum below the fund minimum
        score, label = range_fit(None, 100_000, 400_000, None)
        assert score == pytest.approx(15 * 100_000 / 400_000)
        assert label == BELOW_RANGE

    def test_unknown_fund_range(self):
        assert range_fit(200_000, 800_000, None, None) == (0, UNKNOWN)

    def test_unknown_ask(self):
        assert range_fit(None, None, 150_000, 1_000_000) == (0, UNKNOWN)


class TestAvailability:
    def test_window_and_half_dry_powder(self):
        fund = _fund(
            investment_period_start=datetime(2024, 1, 1), investment_period_end=datetime(2027, 1, 1),
            total_capital=10_000_000, uncommitted_capital=5_000_000,
        )
        assert availability_bonus(fund, now=NOW) == pytest.approx(3 + 1)

    def test_outside_window(self):
        fund = _fund(investment_period_start=datetime(2020, 1, 1), investment_period_end=datetime(2023, 1, 1))
        assert availability_bonus(fund, now=NOW) == 0

    def test_open_ended_window(self):
        assert availability_bonus(_fund(investment_period_start=datetime(2024, 1, 1)), now=NOW) == 3

    def test_zero_or_unknown_total_capital(self):
        assert availability_bonus(_fund(total_capital=0, uncommitted_capital=5), now=NOW) == 0
        assert availability_bonus(_fund(uncommitted_capital=5), now=NOW) == 0

    def test_dry_powder_ratio_is_clamped(self):
        assert availability_bonus(_fund(total_capital=10, uncommitted_capital=50), now=NOW) == 2


class TestBudgetFit:
    def test_example_nineteen(self):
        fund = _fund(
            ticket_min=150_000, ticket_max=1_000_000,
            investment_period_start=datetime(2024, 1, 1), investment_period_end=datetime(2027, 1, 1),
            total_capital=10_000_000, uncommitted_capital=5_000_000,
        )
        assert budget_fit(200_000, 800_000, [fund], now=NOW) == pytest.approx(19)

    def test_no_funds_is_zero_whatever_the_ask(self):
        assert budget_fit(200_000, 800_000, [], now=NOW) == 0
        assert budget_fit(None, 5, [], now=NOW) == 0

    def test_unknown_ask_is_zero(self):
        fund = _fund(ticket_min=1, ticket_max=2, total_capital=10, uncommitted_capital=10)
        assert budget_fit(None, None, [fund], now=NOW) == 0

    def test_best_fund_wins(self):
        small = _fund(name="small", ticket_min=10_000, ticket_max=50_000)
        right = _fund(name="right", ticket_min=100_000, ticket_max=900_000)
        fit = best_fund_fit(200_000, 800_000, [small, right], now=NOW)
        assert fit.fund is right
        assert fit.label == WITHIN_RANGE
        assert fit.score == 15

    def test_bounded_to_twenty(self):
        fund = _fund(
            ticket_min=1, ticket_max=10**9, investment_period_start=datetime(2024, 1, 1),
            total_capital=1, uncommitted_capital=1,
        )
        assert 0 <= budget_fit(5, 5, [fund], now=NOW) <= 20
