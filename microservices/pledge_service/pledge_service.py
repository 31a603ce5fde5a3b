"""
Pledge Service Business Logic

Pay-per-view donation pledges: donors save a card against a campaign, an
operator records the campaign's final view count, and the charge run bills
each pledge off-session.
"""

import logging
import math
import uuid
from typing import Any, Dict, Optional

from .charge_run import ChargeRunOrchestrator
from .models import (
    Campaign,
    CampaignStatus,
    ChargeRunSummary,
    CheckoutFlow,
    CheckoutSessionInfo,
    CheckoutUrlResponse,
    ConfirmPledgeRequest,
    CreatePledgeRequest,
    MINIMUM_CHARGE_CENTS,
    Pledge,
    PledgeCheckoutResponse,
    PLEDGE_CURRENCY,
    ReconcileResult,
    WebhookResponse,
)
from .protocols import (
    CampaignNotFoundError,
    InvalidCampaignStateError,
    PaymentProviderError,
    PaymentProviderProtocol,
    PaymentProviderUnavailableError,
    PledgeRepositoryProtocol,
    PledgeStoreError,
    PledgeValidationError,
    WebhookVerificationError,
)
from .setup_reconciler import SetupReconciler
from .stripe_provider import checkout_session_info

logger = logging.getLogger(__name__)

CHECKOUT_COMPLETED_EVENT = "checkout.session.completed"


def dollars_to_cents(amount: float) -> int:
    return int(round(amount * 100))


def friendly_checkout_error(error: PaymentProviderError) -> str:
    """Operator-facing message for a failed checkout session creation"""
    if isinstance(error, PaymentProviderUnavailableError):
        return "Stripe request failed due to a network error"

    raw = str(error).lower()
    if "invalid url" in raw or "success_url" in raw or "cancel_url" in raw:
        return "Backend has invalid SUCCESS_URL or CANCEL_URL"
    if "invalid api key" in raw or "api key provided" in raw or "secret key" in raw:
        return "Backend Stripe secret key is invalid"
    if "payment_method_types" in raw:
        return "Stripe setup session requires payment_method_types"
    return "Stripe checkout session creation failed"


def _is_blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


def _stripped(value: Optional[str]) -> Optional[str]:
    return None if _is_blank(value) else value.strip()


def _is_valid_amount(value: Optional[float]) -> bool:
    return value is not None and math.isfinite(value) and value >= 1


class PledgeService:
    """Pledge service business logic layer"""

    def __init__(
        self,
        repository: PledgeRepositoryProtocol,
        payment_provider: PaymentProviderProtocol,
        success_url: str,
        cancel_url: str,
        webhook_secret: Optional[str] = None,
        currency: str = PLEDGE_CURRENCY,
    ):
        self.repository = repository
        self.payment_provider = payment_provider
        self.success_url = success_url
        self.cancel_url = cancel_url
        self.webhook_secret = webhook_secret
        self.currency = currency

        self.reconciler = SetupReconciler(repository, payment_provider)
        self.charge_run = ChargeRunOrchestrator(repository, payment_provider, currency=currency)

    # ====================
    # Pledge creation
    # ====================

    async def create_pledge_and_setup_session(
        self,
        request: CreatePledgeRequest,
        request_id: Optional[str] = None,
    ) -> PledgeCheckoutResponse:
        """
        Create a pending pledge and a setup-mode checkout session for it.

        Args:
            request: Donor details and dollar amounts
            request_id: Correlation id echoed in the response

        Returns:
            PledgeCheckoutResponse with the checkout url

        Raises:
            PledgeValidationError: Invalid donor input
            CampaignNotFoundError: Unknown campaign
            InvalidCampaignStateError: Campaign no longer takes pledges
            PaymentProviderError: Stripe customer or session creation failed
        """
        request_id = request_id or str(uuid.uuid4())
        self._validate_create_request(request)

        campaign = await self.repository.get_campaign(request.campaign_id)
        if campaign is None:
            raise CampaignNotFoundError("Campaign not found")
        if campaign.status != CampaignStatus.OPEN:
            raise InvalidCampaignStateError(
                "Campaign is not accepting new pledges",
                current_status=campaign.status,
            )

        pledge = Pledge(
            id=str(uuid.uuid4()),
            campaign_id=campaign.id,
            name=request.name.strip(),
            email=request.email.strip(),
            rate_per_1000_cents=dollars_to_cents(request.rate_per_1000),
            cap_amount_cents=(
                dollars_to_cents(request.cap_amount) if request.cap_amount is not None else None
            ),
            views_cap=campaign.effective_views_cap,
        )
        pledge = await self.repository.create_pledge(pledge)
        logger.info(f"[{request_id}] Created pledge {pledge.id} for campaign {campaign.id}")

        try:
            customer_id = await self.payment_provider.create_customer(
                email=pledge.email,
                name=pledge.name,
                metadata={"pledge_id": pledge.id, "campaign_id": campaign.id},
            )
        except PaymentProviderError as e:
            logger.error(f"[{request_id}] Stripe customer creation failed for pledge {pledge.id}: {e}")
            raise type(e)("Stripe customer creation failed", code=e.code) from e

        try:
            session = await self.payment_provider.create_setup_session(
                customer_id=customer_id,
                success_url=self.success_url,
                cancel_url=self.cancel_url,
                metadata={
                    "pledge_id": pledge.id,
                    "campaign_id": campaign.id,
                    "flow": CheckoutFlow.PLEDGE_SETUP.value,
                },
            )
        except PaymentProviderError as e:
            logger.error(f"[{request_id}] Setup session creation failed for pledge {pledge.id}: {e}")
            raise type(e)(friendly_checkout_error(e), code=e.code) from e

        try:
            await self.repository.update_pledge_fields(
                pledge.id, {"stripe_customer_id": customer_id}
            )
        except PledgeStoreError as e:
            logger.error(f"[{request_id}] Failed to store customer for pledge {pledge.id}: {e}")

        return PledgeCheckoutResponse(url=session.url, pledge_id=pledge.id, request_id=request_id)

    def _validate_create_request(self, request: CreatePledgeRequest) -> None:
        if _is_blank(request.campaign_id) or _is_blank(request.name) or _is_blank(request.email):
            raise PledgeValidationError("Missing required fields")
        if not _is_valid_amount(request.rate_per_1000):
            raise PledgeValidationError("rate_per_1000 must be at least $1", field="rate_per_1000")
        if request.cap_amount is not None and not _is_valid_amount(request.cap_amount):
            raise PledgeValidationError(
                "cap_amount must be at least $1 when provided", field="cap_amount"
            )

    # ====================
    # Donate now
    # ====================

    async def create_donation_session(
        self,
        amount: Optional[float],
        name: Optional[str] = None,
        email: Optional[str] = None,
    ) -> CheckoutUrlResponse:
        """One-off donation through a payment-mode checkout session"""
        if not _is_valid_amount(amount):
            raise PledgeValidationError("Minimum donation is $1", field="amount")

        amount_cents = max(dollars_to_cents(amount), MINIMUM_CHARGE_CENTS)
        metadata = {"flow": CheckoutFlow.DONATE_NOW.value}
        if not _is_blank(name):
            metadata["donor_name"] = name.strip()

        session = await self.payment_provider.create_payment_session(
            amount_cents=amount_cents,
            currency=self.currency,
            success_url=self.success_url,
            cancel_url=self.cancel_url,
            customer_email=email,
            metadata=metadata,
        )
        logger.info(f"Created donation session {session.id} for {amount_cents} cents")
        return CheckoutUrlResponse(url=session.url)

    # ====================
    # Setup reconciliation
    # ====================

    async def reconcile_setup(
        self,
        session: Optional[CheckoutSessionInfo] = None,
        session_id: Optional[str] = None,
        setup_intent_id: Optional[str] = None,
    ) -> ReconcileResult:
        return await self.reconciler.reconcile(
            session=session,
            session_id=session_id,
            setup_intent_id=setup_intent_id,
        )

    async def confirm_pledge(self, request: ConfirmPledgeRequest) -> ReconcileResult:
        """Client callback after the checkout redirect"""
        if _is_blank(request.session_id) and _is_blank(request.setup_intent):
            raise PledgeValidationError("session_id or setup_intent is required")
        return await self.reconcile_setup(
            session_id=_stripped(request.session_id),
            setup_intent_id=_stripped(request.setup_intent),
        )

    async def handle_stripe_webhook(
        self, payload: bytes, signature: Optional[str]
    ) -> WebhookResponse:
        """
        Verify and dispatch a Stripe webhook.

        Completed checkout sessions are reconciled. Other event types are
        acknowledged without action.
        """
        if not signature:
            raise WebhookVerificationError("Missing signature")

        event: Dict[str, Any] = self.payment_provider.construct_webhook_event(
            payload, signature, self.webhook_secret
        )
        event_type = event.get("type")
        logger.info(f"Received Stripe webhook {event.get('id')} ({event_type})")

        if event_type != CHECKOUT_COMPLETED_EVENT:
            return WebhookResponse()

        session = checkout_session_info(event["data"]["object"])
        result = await self.reconcile_setup(session=session)
        return WebhookResponse(outcome=result.outcome)

    # ====================
    # Admin operations
    # ====================

    async def set_final_views(self, campaign_id: Optional[str], final_views: Optional[float]) -> Campaign:
        """
        Record a campaign's final view count and lock it.

        Raises:
            PledgeValidationError: Missing campaign id or invalid view count
            CampaignNotFoundError: Unknown campaign
            InvalidCampaignStateError: Campaign was already charged
        """
        if _is_blank(campaign_id) or final_views is None:
            raise PledgeValidationError("Invalid input")
        if not math.isfinite(final_views) or final_views < 0:
            raise PledgeValidationError("Invalid input", field="final_views")

        views = math.floor(final_views)
        campaign = await self.repository.get_campaign(campaign_id)
        if campaign is None:
            raise CampaignNotFoundError("Campaign not found")
        if campaign.status == CampaignStatus.CHARGED:
            raise InvalidCampaignStateError(
                "Campaign is already charged", current_status=campaign.status
            )

        updated = await self.repository.set_final_views(campaign_id, views)
        if updated is None:
            raise CampaignNotFoundError("Campaign not found")

        logger.info(f"Campaign {campaign_id} locked with final_views={views}")
        return updated

    async def run_charges(self, campaign_id: Optional[str]) -> ChargeRunSummary:
        if _is_blank(campaign_id):
            raise PledgeValidationError("Invalid input")
        return await self.charge_run.run(campaign_id)


__all__ = ["PledgeService", "dollars_to_cents", "friendly_checkout_error"]
