"""
Stripe Payment Provider

PaymentProviderProtocol implementation over the official stripe SDK.
Every call goes through an explicitly constructed StripeClient using its
async methods. Stripe errors are translated into the service's exceptions.
"""

import logging
from typing import Any, Dict, Mapping, Optional

import stripe

from .models import ChargeResult, CheckoutSessionInfo, SetupIntentInfo
from .protocols import (
    ChargeDeclinedError,
    PaymentProviderError,
    PaymentProviderUnavailableError,
    WebhookVerificationError,
)

logger = logging.getLogger(__name__)

# PaymentIntent statuses that leave an off-session charge unpaid
UNPAID_INTENT_STATUSES = {"requires_action", "requires_payment_method", "canceled"}


def _ref_id(value: Any) -> Optional[str]:
    """Id of a field that may be a plain id or an expanded object"""
    if value is None:
        return None
    if isinstance(value, str):
        return value or None
    if isinstance(value, Mapping):
        return value.get("id")
    return getattr(value, "id", None)


def _as_dict(obj: Any) -> Dict[str, Any]:
    if isinstance(obj, stripe.StripeObject):
        return obj.to_dict()
    return dict(obj or {})


def _metadata(data: Mapping) -> Dict[str, str]:
    return {str(k): str(v) for k, v in (data.get("metadata") or {}).items()}


def checkout_session_info(session: Any) -> CheckoutSessionInfo:
    """Build CheckoutSessionInfo from a Stripe session or a webhook payload"""
    data = _as_dict(session)
    return CheckoutSessionInfo(
        id=data["id"],
        url=data.get("url"),
        mode=data.get("mode"),
        setup_intent_id=_ref_id(data.get("setup_intent")),
        customer_id=_ref_id(data.get("customer")),
        metadata=_metadata(data),
    )


def setup_intent_info(intent: Any) -> SetupIntentInfo:
    """Build SetupIntentInfo from a Stripe setup intent"""
    data = _as_dict(intent)
    return SetupIntentInfo(
        id=data["id"],
        status=data.get("status"),
        customer_id=_ref_id(data.get("customer")),
        payment_method_id=_ref_id(data.get("payment_method")),
        metadata=_metadata(data),
    )


def _provider_error(e: stripe.StripeError) -> PaymentProviderError:
    """Translate a Stripe SDK error"""
    message = e.user_message or str(e) or "Stripe request failed"
    if isinstance(e, stripe.APIConnectionError):
        return PaymentProviderUnavailableError(message, code=e.code)
    return PaymentProviderError(message, code=e.code)


def _declined_error(e: stripe.StripeError) -> ChargeDeclinedError:
    """Translate a failed charge, keeping the partial PaymentIntent"""
    intent = getattr(e.error, "payment_intent", None) if e.error is not None else None
    intent_id = _ref_id(intent)
    intent_status = getattr(intent, "status", None)
    if intent_status is None and isinstance(intent, Mapping):
        intent_status = intent.get("status")
    return ChargeDeclinedError(
        e.user_message or str(e) or "Charge failed",
        code=e.code,
        payment_intent_id=intent_id,
        payment_intent_status=intent_status,
    )


class StripePaymentProvider:
    """Stripe-backed payment provider"""

    def __init__(
        self,
        secret_key: str,
        max_network_retries: int = 0,
        client: Optional[stripe.StripeClient] = None,
    ):
        if client is None:
            client = stripe.StripeClient(
                secret_key,
                http_client=stripe.HTTPXClient(),
                max_network_retries=max_network_retries,
            )
        self.client = client
        self.is_test_mode = secret_key.startswith("sk_test_")

        if self.is_test_mode:
            logger.info("Stripe TEST MODE active - no real charges")
        else:
            logger.warning("Stripe LIVE MODE active - processing real charges")

    async def retrieve_checkout_session(self, session_id: str) -> CheckoutSessionInfo:
        try:
            session = await self.client.checkout.sessions.retrieve_async(session_id)
        except stripe.StripeError as e:
            logger.error(f"Failed to retrieve checkout session {session_id}: {e}")
            raise _provider_error(e) from e
        return checkout_session_info(session)

    async def retrieve_setup_intent(self, setup_intent_id: str) -> SetupIntentInfo:
        try:
            intent = await self.client.setup_intents.retrieve_async(setup_intent_id)
        except stripe.StripeError as e:
            logger.error(f"Failed to retrieve setup intent {setup_intent_id}: {e}")
            raise _provider_error(e) from e
        return setup_intent_info(intent)

    async def create_customer(
        self, email: str, name: str, metadata: Dict[str, str]
    ) -> str:
        try:
            customer = await self.client.customers.create_async(
                params={"email": email, "name": name, "metadata": metadata}
            )
        except stripe.StripeError as e:
            logger.error(f"Failed to create Stripe customer: {e}")
            raise _provider_error(e) from e
        return customer.id

    async def create_setup_session(
        self,
        customer_id: str,
        success_url: str,
        cancel_url: str,
        metadata: Dict[str, str],
    ) -> CheckoutSessionInfo:
        try:
            session = await self.client.checkout.sessions.create_async(
                params={
                    "mode": "setup",
                    "payment_method_types": ["card"],
                    "customer": customer_id,
                    "success_url": success_url,
                    "cancel_url": cancel_url,
                    "metadata": metadata,
                }
            )
        except stripe.StripeError as e:
            logger.error(f"Failed to create setup checkout session: {e}")
            raise _provider_error(e) from e
        return checkout_session_info(session)

    async def create_payment_session(
        self,
        amount_cents: int,
        currency: str,
        success_url: str,
        cancel_url: str,
        customer_email: Optional[str],
        metadata: Dict[str, str],
    ) -> CheckoutSessionInfo:
        params: Dict[str, Any] = {
            "mode": "payment",
            "success_url": success_url,
            "cancel_url": cancel_url,
            "line_items": [
                {
                    "price_data": {
                        "currency": currency,
                        "product_data": {"name": "Donation"},
                        "unit_amount": amount_cents,
                    },
                    "quantity": 1,
                }
            ],
            "metadata": metadata,
        }
        if customer_email:
            params["customer_email"] = customer_email

        try:
            session = await self.client.checkout.sessions.create_async(params=params)
        except stripe.StripeError as e:
            logger.error(f"Failed to create payment checkout session: {e}")
            raise _provider_error(e) from e
        return checkout_session_info(session)

    async def create_off_session_charge(
        self,
        amount_cents: int,
        currency: str,
        customer_id: str,
        payment_method_id: str,
        description: str,
        metadata: Dict[str, str],
        idempotency_key: Optional[str] = None,
    ) -> ChargeResult:
        options: Dict[str, Any] = {}
        if idempotency_key:
            options["idempotency_key"] = idempotency_key

        try:
            intent = await self.client.payment_intents.create_async(
                params={
                    "amount": amount_cents,
                    "currency": currency,
                    "customer": customer_id,
                    "payment_method": payment_method_id,
                    "off_session": True,
                    "confirm": True,
                    "description": description,
                    "metadata": metadata,
                },
                options=options,
            )
        except stripe.CardError as e:
            raise _declined_error(e) from e
        except stripe.APIConnectionError as e:
            raise _provider_error(e) from e
        except stripe.StripeError as e:
            raise _declined_error(e) from e

        if intent.status in UNPAID_INTENT_STATUSES:
            raise ChargeDeclinedError(
                f"Payment not completed (status {intent.status})",
                code=None,
                payment_intent_id=intent.id,
                payment_intent_status=intent.status,
            )

        return ChargeResult(
            payment_intent_id=intent.id,
            status=intent.status,
            amount_cents=intent.amount,
        )

    def construct_webhook_event(
        self, payload: bytes, signature: str, secret: str
    ) -> Dict[str, Any]:
        try:
            event = stripe.Webhook.construct_event(payload, signature, secret)
        except ValueError as e:
            raise WebhookVerificationError("Invalid payload") from e
        except stripe.SignatureVerificationError as e:
            raise WebhookVerificationError("Invalid signature") from e
        return event.to_dict()


__all__ = [
    "StripePaymentProvider",
    "checkout_session_info",
    "setup_intent_info",
]
