"""
Setup Reconciler

Binds a completed card-setup flow to its pledge. The same logic serves the
Stripe webhook (which carries the checkout session) and the client-side
confirmation callback (which carries a session id or a setup intent id).
"""

import logging
from typing import Optional

from .models import (
    CheckoutFlow,
    CheckoutSessionInfo,
    ReconcileOutcome,
    ReconcileResult,
    SetupStatus,
)
from .protocols import (
    InvalidStatusTransitionError,
    PaymentProviderError,
    PaymentProviderProtocol,
    PledgeRepositoryProtocol,
)

logger = logging.getLogger(__name__)

PLEDGE_NOT_FOUND = "Unable to locate pledge for this setup"
MISSING_PAYMENT_REFS = "missing payment method/customer"
NOT_RECONCILABLE = "Pledge setup can no longer be changed"


class SetupReconciler:
    """Resolves a pledge from a setup flow and records its payment method"""

    def __init__(
        self,
        repository: PledgeRepositoryProtocol,
        payment_provider: PaymentProviderProtocol,
    ):
        self.repository = repository
        self.payment_provider = payment_provider

    async def reconcile(
        self,
        session: Optional[CheckoutSessionInfo] = None,
        session_id: Optional[str] = None,
        setup_intent_id: Optional[str] = None,
    ) -> ReconcileResult:
        """
        Reconcile a setup flow with its pledge.

        The pledge is located from, in order: the session object, the session
        fetched by id, the setup intent's metadata, and finally the most recent
        pledge owned by the resolved customer.

        Provider errors propagate before any pledge is written.
        """
        if session is None and session_id:
            try:
                session = await self.payment_provider.retrieve_checkout_session(session_id)
            except PaymentProviderError as e:
                logger.error(f"Checkout session lookup failed for {session_id}: {e}")
                raise type(e)("Unable to retrieve checkout session", code=e.code) from e

        pledge_id: Optional[str] = None
        customer_id: Optional[str] = None
        payment_method_id: Optional[str] = None

        if session is not None:
            if session.flow and session.flow != CheckoutFlow.PLEDGE_SETUP.value:
                logger.info(f"Ignoring checkout session {session.id} with flow {session.flow}")
                return ReconcileResult(outcome=ReconcileOutcome.IGNORED)
            pledge_id = session.pledge_id
            customer_id = session.customer_id
            setup_intent_id = session.setup_intent_id or setup_intent_id

        if setup_intent_id:
            try:
                intent = await self.payment_provider.retrieve_setup_intent(setup_intent_id)
            except PaymentProviderError as e:
                logger.error(f"Setup intent lookup failed for {setup_intent_id}: {e}")
                raise type(e)("Unable to retrieve setup intent", code=e.code) from e
            customer_id = customer_id or intent.customer_id
            payment_method_id = intent.payment_method_id
            pledge_id = pledge_id or intent.pledge_id

        if not pledge_id and customer_id:
            latest = await self.repository.find_latest_pledge_by_customer(customer_id)
            if latest is not None:
                logger.info(f"Resolved pledge {latest.id} from customer {customer_id}")
                pledge_id = latest.id

        if not pledge_id:
            logger.warning(
                f"No pledge for setup (session={session.id if session else session_id}, "
                f"setup_intent={setup_intent_id})"
            )
            return ReconcileResult(outcome=ReconcileOutcome.CONFLICT, reason=PLEDGE_NOT_FOUND)

        if not payment_method_id or not customer_id:
            return await self._record(
                pledge_id,
                SetupStatus.FAILED,
                reason=MISSING_PAYMENT_REFS,
                error_message=MISSING_PAYMENT_REFS,
            )

        return await self._record(
            pledge_id,
            SetupStatus.COMPLETE,
            stripe_customer_id=customer_id,
            stripe_payment_method_id=payment_method_id,
            error_message=None,
        )

    async def _record(
        self,
        pledge_id: str,
        status: SetupStatus,
        reason: Optional[str] = None,
        **fields,
    ) -> ReconcileResult:
        """Apply the single setup-status update of this reconciliation"""
        try:
            updated = await self.repository.transition_setup_status(pledge_id, status, **fields)
        except InvalidStatusTransitionError as e:
            logger.warning(f"Pledge {pledge_id} setup not updated: {e}")
            return ReconcileResult(
                outcome=ReconcileOutcome.CONFLICT,
                pledge_id=pledge_id,
                reason=NOT_RECONCILABLE,
            )

        if updated is None:
            logger.warning(f"Pledge {pledge_id} from setup metadata does not exist")
            return ReconcileResult(outcome=ReconcileOutcome.CONFLICT, reason=PLEDGE_NOT_FOUND)

        if status == SetupStatus.COMPLETE:
            logger.info(f"Pledge {pledge_id} setup complete (customer={updated.stripe_customer_id})")
            return ReconcileResult(outcome=ReconcileOutcome.OK, pledge_id=pledge_id)

        logger.warning(f"Pledge {pledge_id} setup failed: {reason}")
        return ReconcileResult(
            outcome=ReconcileOutcome.CONFLICT,
            pledge_id=pledge_id,
            reason=reason,
        )


__all__ = ["SetupReconciler", "PLEDGE_NOT_FOUND", "MISSING_PAYMENT_REFS", "NOT_RECONCILABLE"]
