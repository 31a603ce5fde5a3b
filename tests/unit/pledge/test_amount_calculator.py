"""
Unit Tests for Pledge Amount Calculation

Covers the per-thousand billing rule, the campaign views cap, the donor cap
and the $1 minimum for non-zero charges.
"""

import pytest

from microservices.pledge_service.amount_calculator import compute_amount
from microservices.pledge_service.models import AmountComputation

pytestmark = pytest.mark.unit


class TestAmountScenarios:
    """Worked examples"""

    def test_views_below_cap_bill_whole_thousands(self):
        # Given: 15000 views, cap 20000, $5 per 1000
        # When: Computing the amount
        result = compute_amount(15000, 20000, 500)

        # Then: 15 units at $5
        assert result == AmountComputation(counted_views=15000, amount_cents=7500)

    def test_fewer_than_thousand_views_owe_nothing(self):
        result = compute_amount(500, 20000, 1000)

        assert result.counted_views == 500
        assert result.amount_cents == 0

    def test_small_nonzero_amount_is_raised_to_minimum(self):
        # Given: one unit at 50 cents
        result = compute_amount(1000, 20000, 50)

        # Then: forced up to $1
        assert result.amount_cents == 100

    def test_views_cap_and_donor_cap_both_apply(self):
        # Given: 30000 views over a 20000 cap, donor cap $60
        result = compute_amount(30000, 20000, 500, 6000)

        # Then: 20 units = $100, capped to $60
        assert result.counted_views == 20000
        assert result.amount_cents == 6000

    def test_partial_thousand_is_truncated(self):
        result = compute_amount(2999, 20000, 300)

        assert result.amount_cents == 600

    def test_donor_cap_above_raw_amount_has_no_effect(self):
        result = compute_amount(4000, 20000, 500, 10000)

        assert result.amount_cents == 2000

    def test_zero_views(self):
        result = compute_amount(0, 20000, 500, 1000)

        assert result == AmountComputation(counted_views=0, amount_cents=0)


class TestAmountProperties:
    """Laws that hold across inputs"""

    @pytest.mark.parametrize("final_views,views_cap", [
        (0, 20000),
        (999, 1000),
        (20000, 20000),
        (50000, 20000),
        (12345, 30000),
    ])
    def test_counted_views_is_min_of_inputs(self, final_views, views_cap):
        result = compute_amount(final_views, views_cap, 500)

        assert result.counted_views == min(final_views, views_cap)
        assert result.counted_views <= final_views
        assert result.counted_views <= views_cap

    @pytest.mark.parametrize("rate", [100, 250, 500, 1000])
    def test_uncapped_amount_is_units_times_rate(self, rate):
        for views in (2000, 7500, 19999):
            result = compute_amount(views, 20000, rate)
            assert result.amount_cents == (views // 1000) * rate

    def test_amount_is_monotonic_in_views(self):
        previous = 0
        for views in range(0, 25001, 250):
            amount = compute_amount(views, 20000, 75, 1200).amount_cents
            assert amount >= previous
            previous = amount

    @pytest.mark.parametrize("donor_cap", [100, 150, 999, 5000])
    def test_amount_never_exceeds_donor_cap(self, donor_cap):
        for views in (1000, 5000, 20000, 90000):
            result = compute_amount(views, 20000, 400, donor_cap)
            assert result.amount_cents <= donor_cap

    def test_same_inputs_same_output(self):
        first = compute_amount(17321, 15000, 333, 4000)
        second = compute_amount(17321, 15000, 333, 4000)

        assert first == second

    @pytest.mark.parametrize("final_views,rate,expected", [
        (1000, 1, 100),
        (1000, 99, 100),
        (2000, 40, 100),
        (999, 99, 0),
        (3000, 34, 102),
    ])
    def test_minimum_charge_law(self, final_views, rate, expected):
        result = compute_amount(final_views, 20000, rate)

        assert result.amount_cents == expected
