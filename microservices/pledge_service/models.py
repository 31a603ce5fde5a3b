"""
Pledge Service Data Models

Campaigns, pledges, provider value objects and API request/response models
for pay-per-view donation pledges.
"""

from enum import Enum
from typing import Optional, Dict
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field, field_validator


# ====================
# Constants
# ====================

DEFAULT_VIEWS_CAP = 20000
VIEWS_PER_BILLING_UNIT = 1000
MINIMUM_CHARGE_CENTS = 100
PLEDGE_CURRENCY = "usd"


# ====================
# Enums
# ====================

class CampaignStatus(str, Enum):
    """Campaign lifecycle status"""
    OPEN = "open"
    LOCKED = "locked"
    CHARGED = "charged"


class SetupStatus(str, Enum):
    """Payment-method setup status of a pledge"""
    PENDING = "pending"
    COMPLETE = "complete"
    FAILED = "failed"


class ChargeStatus(str, Enum):
    """Charge status of a pledge"""
    NOT_CHARGED = "not_charged"
    CHARGED = "charged"
    SKIPPED = "skipped"
    FAILED = "failed"
    REQUIRES_ACTION = "requires_action"


class CheckoutFlow(str, Enum):
    """Value of the ``flow`` metadata key on checkout sessions"""
    PLEDGE_SETUP = "pledge_setup"
    DONATE_NOW = "donate_now"


class ReconcileOutcome(str, Enum):
    """Result of a setup reconciliation"""
    OK = "ok"
    CONFLICT = "conflict"
    IGNORED = "ignored"


# ====================
# Core data models
# ====================

class Campaign(BaseModel):
    """Campaign row"""
    id: str
    name: Optional[str] = None
    views_cap: Optional[int] = None
    final_views: Optional[int] = None
    status: CampaignStatus = CampaignStatus.OPEN
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def effective_views_cap(self) -> int:
        """views_cap, or the default when unset or not positive"""
        if self.views_cap is None or self.views_cap <= 0:
            return DEFAULT_VIEWS_CAP
        return self.views_cap


class Pledge(BaseModel):
    """Pledge row"""
    id: str
    campaign_id: str
    name: str
    email: str
    rate_per_1000_cents: int = Field(..., ge=MINIMUM_CHARGE_CENTS)
    cap_amount_cents: Optional[int] = Field(None, ge=MINIMUM_CHARGE_CENTS)
    views_cap: int = DEFAULT_VIEWS_CAP

    setup_status: SetupStatus = SetupStatus.PENDING
    charge_status: ChargeStatus = ChargeStatus.NOT_CHARGED

    # Stripe references
    stripe_customer_id: Optional[str] = None
    stripe_payment_method_id: Optional[str] = None
    stripe_payment_intent_id: Optional[str] = None

    # Populated by the charge run
    computed_views: Optional[int] = None
    computed_amount_cents: Optional[int] = None
    error_message: Optional[str] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_chargeable(self) -> bool:
        return (
            self.setup_status == SetupStatus.COMPLETE
            and self.charge_status == ChargeStatus.NOT_CHARGED
        )


# ====================
# Provider value objects
# ====================

class CheckoutSessionInfo(BaseModel):
    """The parts of a checkout session this service reads"""
    id: str
    url: Optional[str] = None
    mode: Optional[str] = None
    setup_intent_id: Optional[str] = None
    customer_id: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)

    @property
    def flow(self) -> Optional[str]:
        return self.metadata.get("flow")

    @property
    def pledge_id(self) -> Optional[str]:
        return self.metadata.get("pledge_id") or None


class SetupIntentInfo(BaseModel):
    """The parts of a setup intent this service reads"""
    id: str
    status: Optional[str] = None
    customer_id: Optional[str] = None
    payment_method_id: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)

    @property
    def pledge_id(self) -> Optional[str]:
        return self.metadata.get("pledge_id") or None


class ChargeResult(BaseModel):
    """Successful off-session charge"""
    payment_intent_id: str
    status: str
    amount_cents: int


# ====================
# Core results
# ====================

class AmountComputation(BaseModel):
    """Output of the amount calculator"""
    counted_views: int
    amount_cents: int


class ReconcileResult(BaseModel):
    """Outcome of binding a completed setup flow to a pledge"""
    outcome: ReconcileOutcome
    pledge_id: Optional[str] = None
    reason: Optional[str] = None


class ChargeRunSummary(BaseModel):
    """Aggregate counts of one charge run"""
    campaign_id: str
    charged: int = 0
    skipped: int = 0
    failed: int = 0
    requires_action: int = 0

    def record(self, status: ChargeStatus) -> None:
        """Count one pledge outcome"""
        if status == ChargeStatus.CHARGED:
            self.charged += 1
        elif status == ChargeStatus.SKIPPED:
            self.skipped += 1
        elif status == ChargeStatus.REQUIRES_ACTION:
            self.requires_action += 1
        elif status == ChargeStatus.FAILED:
            self.failed += 1
        else:
            raise ValueError(f"Not a charge outcome: {status}")

    @property
    def total(self) -> int:
        return self.charged + self.skipped + self.failed + self.requires_action


# ====================
# Request models
# ====================

class CreatePledgeRequest(BaseModel):
    """Pledge creation request (amounts in dollars)"""
    campaign_id: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None
    rate_per_1000: Optional[float] = None
    cap_amount: Optional[float] = None

    @field_validator("cap_amount", mode="before")
    @classmethod
    def blank_cap_is_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v


class ConfirmPledgeRequest(BaseModel):
    """Client-side confirmation after checkout redirect"""
    session_id: Optional[str] = None
    setup_intent: Optional[str] = None


class DonateNowRequest(BaseModel):
    """One-off donation request (amount in dollars)"""
    amount: Optional[float] = None
    name: Optional[str] = None
    email: Optional[str] = None


class AdminRequest(BaseModel):
    """Base for password-gated admin requests"""
    password: Optional[str] = None
    campaign_id: Optional[str] = None


class SetViewsRequest(AdminRequest):
    """Record a campaign's final view count"""
    final_views: Optional[float] = None


class RunChargesRequest(AdminRequest):
    """Trigger the charge run of one campaign"""
    pass


# ====================
# Response models
# ====================

class PledgeCheckoutResponse(BaseModel):
    """Checkout url for a freshly created pledge"""
    url: Optional[str] = None
    pledge_id: str
    request_id: str


class CheckoutUrlResponse(BaseModel):
    """Checkout url"""
    url: Optional[str] = None


class ConfirmPledgeResponse(BaseModel):
    """Successful pledge confirmation"""
    ok: bool = True
    pledge_id: str
    request_id: str


class SetViewsResponse(BaseModel):
    ok: bool = True
    campaign_id: str
    final_views: int


class ChargeRunResponse(BaseModel):
    """Charge run counts"""
    ok: bool = True
    charged: int
    skipped: int
    failed: int
    requires_action: int = Field(..., alias="requiresAction")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_summary(cls, summary: ChargeRunSummary) -> "ChargeRunResponse":
        return cls(
            charged=summary.charged,
            skipped=summary.skipped,
            failed=summary.failed,
            requires_action=summary.requires_action,
        )


class WebhookResponse(BaseModel):
    received: bool = True
    outcome: Optional[ReconcileOutcome] = None


class HealthResponse(BaseModel):
    """Health check response"""
    status: str
    service: str
    port: int
    version: str
    dependencies: Dict[str, str] = Field(default_factory=dict)


class ReadinessResponse(BaseModel):
    """Readiness check response"""
    ready: bool
    checks: Dict[str, bool] = Field(default_factory=dict)
    details: Dict[str, str] = Field(default_factory=dict)


class LivenessResponse(BaseModel):
    """Liveness check response"""
    alive: bool
    uptime_seconds: float


__all__ = [
    # Constants
    "DEFAULT_VIEWS_CAP",
    "VIEWS_PER_BILLING_UNIT",
    "MINIMUM_CHARGE_CENTS",
    "PLEDGE_CURRENCY",
    # Enums
    "CampaignStatus",
    "SetupStatus",
    "ChargeStatus",
    "CheckoutFlow",
    "ReconcileOutcome",
    # Core Models
    "Campaign",
    "Pledge",
    "CheckoutSessionInfo",
    "SetupIntentInfo",
    "ChargeResult",
    "AmountComputation",
    "ReconcileResult",
    "ChargeRunSummary",
    # Requests
    "CreatePledgeRequest",
    "ConfirmPledgeRequest",
    "DonateNowRequest",
    "AdminRequest",
    "SetViewsRequest",
    "RunChargesRequest",
    # Responses
    "PledgeCheckoutResponse",
    "CheckoutUrlResponse",
    "ConfirmPledgeResponse",
    "SetViewsResponse",
    "ChargeRunResponse",
    "WebhookResponse",
    "HealthResponse",
    "ReadinessResponse",
    "LivenessResponse",
]
