"""
Pledge amount calculation

A pledge is billed per whole thousand views, capped both by the campaign's
views cap and by the donor's own dollar cap, with a $1 floor on any non-zero
charge.
"""

from typing import Optional

from .models import AmountComputation, MINIMUM_CHARGE_CENTS, VIEWS_PER_BILLING_UNIT


def compute_amount(
    final_views: int,
    views_cap: int,
    rate_per_1000_cents: int,
    donor_cap_cents: Optional[int] = None,
) -> AmountComputation:
    """
    Compute what a pledge owes for a campaign's final view count.

    Args:
        final_views: Final view count recorded for the campaign
        views_cap: Maximum views that count toward the charge
        rate_per_1000_cents: Pledged amount per 1000 views, in cents
        donor_cap_cents: Optional donor ceiling, in cents

    Returns:
        AmountComputation with the counted views and the amount in cents
    """
    counted_views = min(final_views, views_cap)
    units = counted_views // VIEWS_PER_BILLING_UNIT
    amount_cents = units * rate_per_1000_cents

    if donor_cap_cents is not None:
        amount_cents = min(amount_cents, donor_cap_cents)

    if 0 < amount_cents < MINIMUM_CHARGE_CENTS:
        amount_cents = MINIMUM_CHARGE_CENTS

    return AmountComputation(counted_views=counted_views, amount_cents=amount_cents)


__all__ = ["compute_amount"]
