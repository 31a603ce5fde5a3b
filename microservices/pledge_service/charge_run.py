"""
Charge Run Orchestrator

Charges every eligible pledge of a locked campaign against its saved payment
method, one pledge at a time, then marks the campaign charged.
"""

import logging
from typing import Optional

from .amount_calculator import compute_amount
from .models import (
    Campaign,
    CampaignStatus,
    ChargeRunSummary,
    ChargeStatus,
    Pledge,
    PLEDGE_CURRENCY,
)
from .protocols import (
    CampaignNotFoundError,
    ChargeDeclinedError,
    FinalViewsNotSetError,
    InvalidCampaignStateError,
    InvalidStatusTransitionError,
    PaymentProviderProtocol,
    PledgeRepositoryProtocol,
    PledgeStoreError,
)
from .status_transitions import can_transition

logger = logging.getLogger(__name__)

MISSING_PAYMENT_REFS = "Missing Stripe customer or payment method"


def charge_idempotency_key(pledge_id: str) -> str:
    """Idempotency key for the off-session charge of a pledge"""
    return f"pledge-charge-{pledge_id}"


def charge_description(campaign: Campaign) -> str:
    return f"Donation pledge charge ({campaign.name or 'Campaign'})"


class ChargeRunOrchestrator:
    """Runs the charge pass of a campaign"""

    def __init__(
        self,
        repository: PledgeRepositoryProtocol,
        payment_provider: PaymentProviderProtocol,
        currency: str = PLEDGE_CURRENCY,
    ):
        self.repository = repository
        self.payment_provider = payment_provider
        self.currency = currency

    async def run(self, campaign_id: str) -> ChargeRunSummary:
        """
        Charge all eligible pledges of a campaign.

        Precondition failures raise before anything is written. Failures of a
        single pledge are recorded on that pledge and the run continues.

        Returns:
            ChargeRunSummary with per-outcome counts

        Raises:
            CampaignNotFoundError: Campaign does not exist
            FinalViewsNotSetError: Final views were never recorded
            InvalidCampaignStateError: Campaign cannot move to charged
        """
        campaign = await self.repository.get_campaign(campaign_id)
        if campaign is None:
            raise CampaignNotFoundError("Campaign not found")
        if campaign.final_views is None:
            raise FinalViewsNotSetError("final_views not set yet")
        if not can_transition(campaign.status, CampaignStatus.CHARGED):
            raise InvalidCampaignStateError(
                f"Campaign cannot be charged from status {campaign.status.value}",
                current_status=campaign.status,
            )

        summary = ChargeRunSummary(campaign_id=campaign_id)
        pledges = await self.repository.list_chargeable_pledges(campaign_id)
        logger.info(
            f"Charge run for campaign {campaign_id}: {len(pledges)} eligible pledges, "
            f"final_views={campaign.final_views}"
        )

        for pledge in pledges:
            status = await self._process_pledge(campaign, pledge)
            if status is not None:
                summary.record(status)

        await self.repository.update_campaign_status(campaign_id, CampaignStatus.CHARGED)

        logger.info(
            f"Charge run for campaign {campaign_id} finished: charged={summary.charged} "
            f"skipped={summary.skipped} failed={summary.failed} "
            f"requires_action={summary.requires_action}"
        )
        return summary

    async def _process_pledge(self, campaign: Campaign, pledge: Pledge) -> Optional[ChargeStatus]:
        """Compute, charge and record one pledge. Returns the recorded status."""
        computation = compute_amount(
            campaign.final_views,
            campaign.effective_views_cap,
            pledge.rate_per_1000_cents,
            pledge.cap_amount_cents,
        )

        try:
            await self.repository.update_pledge_fields(
                pledge.id,
                {
                    "computed_views": computation.counted_views,
                    "computed_amount_cents": computation.amount_cents,
                },
            )
        except PledgeStoreError as e:
            logger.error(f"Failed to store computed amount for pledge {pledge.id}: {e}")

        if computation.amount_cents <= 0:
            return await self._finish(pledge.id, ChargeStatus.SKIPPED)

        if not pledge.stripe_customer_id or not pledge.stripe_payment_method_id:
            return await self._finish(
                pledge.id, ChargeStatus.FAILED, error_message=MISSING_PAYMENT_REFS
            )

        try:
            result = await self.payment_provider.create_off_session_charge(
                amount_cents=computation.amount_cents,
                currency=self.currency,
                customer_id=pledge.stripe_customer_id,
                payment_method_id=pledge.stripe_payment_method_id,
                description=charge_description(campaign),
                metadata={
                    "pledge_id": pledge.id,
                    "campaign_id": campaign.id,
                    "computed_views": str(computation.counted_views),
                },
                idempotency_key=charge_idempotency_key(pledge.id),
            )
        except ChargeDeclinedError as e:
            status = ChargeStatus.REQUIRES_ACTION if e.requires_action else ChargeStatus.FAILED
            logger.warning(f"Charge for pledge {pledge.id} not completed ({status.value}): {e}")
            return await self._finish(
                pledge.id,
                status,
                stripe_payment_intent_id=e.payment_intent_id,
                error_message=str(e),
            )
        except Exception as e:
            logger.exception(f"Charge for pledge {pledge.id} failed: {e}")
            return await self._finish(
                pledge.id, ChargeStatus.FAILED, error_message=str(e) or "Charge failed"
            )

        return await self._finish(
            pledge.id,
            ChargeStatus.CHARGED,
            stripe_payment_intent_id=result.payment_intent_id,
            error_message=None,
        )

    async def _finish(self, pledge_id: str, status: ChargeStatus, **fields) -> Optional[ChargeStatus]:
        """Write a pledge's charge outcome from not_charged"""
        try:
            updated = await self.repository.transition_charge_status(pledge_id, status, **fields)
        except InvalidStatusTransitionError as e:
            logger.warning(f"Pledge {pledge_id} already settled, outcome {status.value} dropped: {e}")
            return None
        except PledgeStoreError as e:
            logger.error(f"Failed to record {status.value} for pledge {pledge_id}: {e}")
            return status
        if updated is None:
            logger.warning(f"Pledge {pledge_id} disappeared during charge run")
            return None
        return status


__all__ = [
    "ChargeRunOrchestrator",
    "MISSING_PAYMENT_REFS",
    "charge_idempotency_key",
    "charge_description",
]
