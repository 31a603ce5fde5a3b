"""
Pledge Service Protocols

Defines interfaces for dependency injection and testing.
Following the protocol-based architecture pattern.
"""

from typing import Any, Dict, List, Optional, Protocol

from .models import (
    Campaign,
    CampaignStatus,
    ChargeResult,
    ChargeStatus,
    CheckoutSessionInfo,
    Pledge,
    SetupIntentInfo,
    SetupStatus,
)


# ====================
# Repository Protocol
# ====================


class PledgeRepositoryProtocol(Protocol):
    """Protocol for the campaign/pledge record store"""

    async def initialize(self) -> None:
        """Initialize repository connection"""
        ...

    async def close(self) -> None:
        """Close repository connection"""
        ...

    async def health_check(self) -> bool:
        """Check repository health"""
        ...

    # Campaigns
    async def get_campaign(self, campaign_id: str) -> Optional[Campaign]:
        """Get campaign by ID"""
        ...

    async def set_final_views(
        self, campaign_id: str, final_views: int
    ) -> Optional[Campaign]:
        """Store final views and lock the campaign"""
        ...

    async def update_campaign_status(
        self, campaign_id: str, status: CampaignStatus
    ) -> Optional[Campaign]:
        """Move campaign status when the transition is legal"""
        ...

    # Pledges
    async def create_pledge(self, pledge: Pledge) -> Pledge:
        """Insert a new pledge"""
        ...

    async def get_pledge(self, pledge_id: str) -> Optional[Pledge]:
        """Get pledge by ID"""
        ...

    async def list_chargeable_pledges(self, campaign_id: str) -> List[Pledge]:
        """Pledges with setup complete and charge not yet attempted"""
        ...

    async def find_latest_pledge_by_customer(
        self, customer_id: str
    ) -> Optional[Pledge]:
        """Most recently created pledge with this Stripe customer"""
        ...

    async def update_pledge_fields(
        self, pledge_id: str, updates: Dict[str, Any]
    ) -> Optional[Pledge]:
        """Update non-status pledge fields"""
        ...

    async def transition_setup_status(
        self, pledge_id: str, status: SetupStatus, **fields
    ) -> Optional[Pledge]:
        """Conditionally move setup_status, writing extra fields in the same update"""
        ...

    async def transition_charge_status(
        self, pledge_id: str, status: ChargeStatus, **fields
    ) -> Optional[Pledge]:
        """Conditionally move charge_status, writing extra fields in the same update"""
        ...


# ====================
# Payment Provider Protocol
# ====================


class PaymentProviderProtocol(Protocol):
    """Protocol for the payment provider (Stripe)"""

    async def retrieve_checkout_session(self, session_id: str) -> CheckoutSessionInfo:
        ...

    async def retrieve_setup_intent(self, setup_intent_id: str) -> SetupIntentInfo:
        ...

    async def create_customer(
        self, email: str, name: str, metadata: Dict[str, str]
    ) -> str:
        """Create a customer and return its id"""
        ...

    async def create_setup_session(
        self,
        customer_id: str,
        success_url: str,
        cancel_url: str,
        metadata: Dict[str, str],
    ) -> CheckoutSessionInfo:
        """Create a setup-mode checkout session to save a card"""
        ...

    async def create_payment_session(
        self,
        amount_cents: int,
        currency: str,
        success_url: str,
        cancel_url: str,
        customer_email: Optional[str],
        metadata: Dict[str, str],
    ) -> CheckoutSessionInfo:
        """Create a one-off payment-mode checkout session"""
        ...

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
        """Charge a saved payment method. Raises ChargeDeclinedError when not paid."""
        ...

    def construct_webhook_event(
        self, payload: bytes, signature: str, secret: str
    ) -> Dict[str, Any]:
        """Verify a webhook signature and return the event"""
        ...


# ====================
# Custom Exceptions
# ====================


class PledgeServiceError(Exception):
    """Base exception for pledge service errors"""
    pass


class PledgeValidationError(PledgeServiceError):
    """Raised when request input is invalid"""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class CampaignNotFoundError(PledgeServiceError):
    """Raised when campaign is not found"""
    pass


class InvalidCampaignStateError(PledgeServiceError):
    """Raised when campaign is in invalid state for operation"""

    def __init__(self, message: str, current_status: Optional[CampaignStatus] = None):
        super().__init__(message)
        self.current_status = current_status


class FinalViewsNotSetError(PledgeServiceError):
    """Raised when a charge run is requested before final views are recorded"""
    pass


class InvalidStatusTransitionError(PledgeServiceError):
    """Raised when a status write is not allowed by the transition table"""

    def __init__(self, message: str, current: Any = None, target: Any = None):
        super().__init__(message)
        self.current = current
        self.target = target


class PaymentProviderError(PledgeServiceError):
    """Raised when the payment provider rejects or fails a request"""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code


class PaymentProviderUnavailableError(PaymentProviderError):
    """Raised when the payment provider cannot be reached"""
    pass


class ChargeDeclinedError(PaymentProviderError):
    """Raised when an off-session charge does not succeed"""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        payment_intent_id: Optional[str] = None,
        payment_intent_status: Optional[str] = None,
    ):
        super().__init__(message, code=code)
        self.payment_intent_id = payment_intent_id
        self.payment_intent_status = payment_intent_status

    @property
    def requires_action(self) -> bool:
        return (
            self.code == "authentication_required"
            or self.payment_intent_status == "requires_action"
        )


class PledgeStoreError(PledgeServiceError):
    """Raised when the record store fails"""
    pass


class WebhookVerificationError(PledgeServiceError):
    """Raised when a webhook payload cannot be verified"""
    pass


class AdminAuthError(PledgeServiceError):
    """Raised when the admin password does not match"""
    pass


class ConfigurationError(PledgeServiceError):
    """Raised when required settings are missing at startup"""

    def __init__(self, message: str, missing: Optional[List[str]] = None):
        super().__init__(message)
        self.missing = missing or []


__all__ = [
    "PledgeRepositoryProtocol",
    "PaymentProviderProtocol",
    "PledgeServiceError",
    "PledgeValidationError",
    "CampaignNotFoundError",
    "InvalidCampaignStateError",
    "FinalViewsNotSetError",
    "InvalidStatusTransitionError",
    "PaymentProviderError",
    "PaymentProviderUnavailableError",
    "ChargeDeclinedError",
    "PledgeStoreError",
    "WebhookVerificationError",
    "AdminAuthError",
    "ConfigurationError",
]
