"""
Pledge Service Component Mocks

In-memory repository, Stripe provider and PostgreSQL client used to
exercise the reconciler, the charge run, the repository SQL and the service
facade without PostgreSQL or Stripe.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from microservices.pledge_service.models import (
    Campaign,
    CampaignStatus,
    ChargeResult,
    ChargeStatus,
    CheckoutSessionInfo,
    Pledge,
    SetupIntentInfo,
    SetupStatus,
)
from microservices.pledge_service.protocols import (
    PaymentProviderError,
    WebhookVerificationError,
)
from microservices.pledge_service.status_transitions import ensure_transition


# ====================
# Mock Repository
# ====================


class MockPledgeRepository:
    """Mock repository for component testing"""

    def __init__(self):
        self.campaigns: Dict[str, Campaign] = {}
        self.pledges: Dict[str, Pledge] = {}
        self.calls: List[tuple] = []
        self.fail_on: Dict[str, Exception] = {}

    def _record_call(self, name: str, *args):
        self.calls.append((name, *args))
        if name in self.fail_on:
            raise self.fail_on[name]

    def calls_to(self, name: str) -> List[tuple]:
        return [c for c in self.calls if c[0] == name]

    def add_campaign(self, campaign: Campaign) -> Campaign:
        self.campaigns[campaign.id] = campaign
        return campaign

    def add_pledge(self, pledge: Pledge) -> Pledge:
        self.pledges[pledge.id] = pledge
        return pledge

    async def initialize(self):
        pass

    async def close(self):
        pass

    async def health_check(self) -> bool:
        return True

    # Campaigns
    async def get_campaign(self, campaign_id: str) -> Optional[Campaign]:
        self._record_call("get_campaign", campaign_id)
        campaign = self.campaigns.get(campaign_id)
        return campaign.model_copy() if campaign else None

    async def set_final_views(self, campaign_id: str, final_views: int) -> Optional[Campaign]:
        self._record_call("set_final_views", campaign_id, final_views)
        campaign = self.campaigns.get(campaign_id)
        if campaign is None:
            return None
        ensure_transition(campaign.status, CampaignStatus.LOCKED)
        campaign.final_views = final_views
        campaign.status = CampaignStatus.LOCKED
        return campaign.model_copy()

    async def update_campaign_status(self, campaign_id: str, status: CampaignStatus) -> Optional[Campaign]:
        self._record_call("update_campaign_status", campaign_id, status)
        campaign = self.campaigns.get(campaign_id)
        if campaign is None:
            return None
        ensure_transition(campaign.status, status)
        campaign.status = status
        return campaign.model_copy()

    # Pledges
    async def create_pledge(self, pledge: Pledge) -> Pledge:
        self._record_call("create_pledge", pledge.id)
        stored = pledge.model_copy(update={"created_at": datetime.now(timezone.utc)})
        self.pledges[stored.id] = stored
        return stored.model_copy()

    async def get_pledge(self, pledge_id: str) -> Optional[Pledge]:
        pledge = self.pledges.get(pledge_id)
        return pledge.model_copy() if pledge else None

    async def list_chargeable_pledges(self, campaign_id: str) -> List[Pledge]:
        self._record_call("list_chargeable_pledges", campaign_id)
        pledges = [
            p for p in self.pledges.values()
            if p.campaign_id == campaign_id and p.is_chargeable
        ]
        pledges.sort(key=lambda p: p.created_at or datetime.min.replace(tzinfo=timezone.utc))
        return [p.model_copy() for p in pledges]

    async def find_latest_pledge_by_customer(self, customer_id: str) -> Optional[Pledge]:
        self._record_call("find_latest_pledge_by_customer", customer_id)
        matches = [p for p in self.pledges.values() if p.stripe_customer_id == customer_id]
        if not matches:
            return None
        latest = max(matches, key=lambda p: p.created_at)
        return latest.model_copy()

    async def update_pledge_fields(self, pledge_id: str, updates: Dict[str, Any]) -> Optional[Pledge]:
        self._record_call("update_pledge_fields", pledge_id, dict(updates))
        pledge = self.pledges.get(pledge_id)
        if pledge is None:
            return None
        for key, value in updates.items():
            setattr(pledge, key, value)
        return pledge.model_copy()

    async def transition_setup_status(self, pledge_id: str, status: SetupStatus, **fields) -> Optional[Pledge]:
        self._record_call("transition_setup_status", pledge_id, status, dict(fields))
        return self._transition(pledge_id, "setup_status", status, fields)

    async def transition_charge_status(self, pledge_id: str, status: ChargeStatus, **fields) -> Optional[Pledge]:
        self._record_call("transition_charge_status", pledge_id, status, dict(fields))
        return self._transition(pledge_id, "charge_status", status, fields)

    def _transition(self, pledge_id: str, column: str, status, fields: Dict[str, Any]) -> Optional[Pledge]:
        pledge = self.pledges.get(pledge_id)
        if pledge is None:
            return None
        ensure_transition(getattr(pledge, column), status)
        setattr(pledge, column, status)
        for key, value in fields.items():
            setattr(pledge, key, value)
        pledge.updated_at = datetime.now(timezone.utc)
        return pledge.model_copy()


# ====================
# Mock Payment Provider
# ====================


class MockPaymentProvider:
    """Mock Stripe provider recording every call"""

    def __init__(self):
        self.sessions: Dict[str, CheckoutSessionInfo] = {}
        self.setup_intents: Dict[str, SetupIntentInfo] = {}
        self.charge_outcomes: Dict[str, Exception] = {}
        self.errors: Dict[str, Exception] = {}
        self.webhook_event: Optional[Dict[str, Any]] = None
        self.calls: List[tuple] = []
        self._counter = 0

    def _record_call(self, name: str, *args):
        self.calls.append((name, *args))
        if name in self.errors:
            raise self.errors[name]

    def calls_to(self, name: str) -> List[tuple]:
        return [c for c in self.calls if c[0] == name]

    def _next(self, prefix: str) -> str:
        self._counter += 1
        return f"{prefix}_{self._counter:04d}"

    async def retrieve_checkout_session(self, session_id: str) -> CheckoutSessionInfo:
        self._record_call("retrieve_checkout_session", session_id)
        if session_id not in self.sessions:
            raise PaymentProviderError(f"No such checkout.session: {session_id}", code="resource_missing")
        return self.sessions[session_id]

    async def retrieve_setup_intent(self, setup_intent_id: str) -> SetupIntentInfo:
        self._record_call("retrieve_setup_intent", setup_intent_id)
        if setup_intent_id not in self.setup_intents:
            raise PaymentProviderError(f"No such setupintent: {setup_intent_id}", code="resource_missing")
        return self.setup_intents[setup_intent_id]

    async def create_customer(self, email: str, name: str, metadata: Dict[str, str]) -> str:
        self._record_call("create_customer", email, name, dict(metadata))
        return self._next("cus")

    async def create_setup_session(self, customer_id, success_url, cancel_url, metadata) -> CheckoutSessionInfo:
        self._record_call("create_setup_session", customer_id, success_url, cancel_url, dict(metadata))
        session_id = self._next("cs_setup")
        session = CheckoutSessionInfo(
            id=session_id,
            url=f"https://checkout.stripe.com/c/pay/{session_id}",
            mode="setup",
            customer_id=customer_id,
            metadata=dict(metadata),
        )
        self.sessions[session_id] = session
        return session

    async def create_payment_session(
        self, amount_cents, currency, success_url, cancel_url, customer_email, metadata
    ) -> CheckoutSessionInfo:
        self._record_call(
            "create_payment_session", amount_cents, currency, success_url, cancel_url, customer_email, dict(metadata)
        )
        session_id = self._next("cs_pay")
        return CheckoutSessionInfo(
            id=session_id,
            url=f"https://checkout.stripe.com/c/pay/{session_id}",
            mode="payment",
            metadata=dict(metadata),
        )

    async def create_off_session_charge(
        self,
        amount_cents,
        currency,
        customer_id,
        payment_method_id,
        description,
        metadata,
        idempotency_key=None,
    ) -> ChargeResult:
        self._record_call(
            "create_off_session_charge",
            {
                "amount_cents": amount_cents,
                "currency": currency,
                "customer_id": customer_id,
                "payment_method_id": payment_method_id,
                "description": description,
                "metadata": dict(metadata),
                "idempotency_key": idempotency_key,
            },
        )
        outcome = self.charge_outcomes.get(metadata.get("pledge_id"))
        if outcome is not None:
            raise outcome
        return ChargeResult(payment_intent_id=self._next("pi"), status="succeeded", amount_cents=amount_cents)

    def construct_webhook_event(self, payload: bytes, signature: str, secret: str) -> Dict[str, Any]:
        self._record_call("construct_webhook_event", payload, signature, secret)
        if signature != "valid-signature" or self.webhook_event is None:
            raise WebhookVerificationError("Invalid signature")
        return self.webhook_event



# ====================
# Mock PostgreSQL Client
# ====================


class MockAsyncPostgresClient:
    """Mock for AsyncPostgresClient returning scripted rows in call order"""

    def __init__(self):
        self.queries: List[tuple] = []
        self._responses: List[Any] = []
        self._should_raise: Optional[Exception] = None
        self.connected = False
        self.closed = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return False

    async def connect(self):
        if self._should_raise:
            raise self._should_raise
        self.connected = True

    async def close(self):
        self.closed = True

    def _next_response(self, default):
        if self._should_raise:
            raise self._should_raise
        if self._responses:
            response = self._responses.pop(0)
            if isinstance(response, Exception):
                raise response
            return response
        return default

    async def query(self, query: str, params: List[Any] = None) -> List[Dict[str, Any]]:
        self.queries.append(("query", query, params or []))
        return self._next_response([])

    async def query_row(self, query: str, params: List[Any] = None) -> Optional[Dict[str, Any]]:
        self.queries.append(("query_row", query, params or []))
        return self._next_response(None)

    async def execute(self, query: str, params: List[Any] = None) -> str:
        self.queries.append(("execute", query, params or []))
        return self._next_response("OK")

    # Test helper methods

    def queue(self, *responses):
        """Queue responses consumed by the next calls, oldest first. Exceptions are raised."""
        self._responses.extend(responses)

    def set_error(self, error: Exception):
        self._should_raise = error

    def get_queries(self, method: Optional[str] = None) -> List[tuple]:
        if method:
            return [q for q in self.queries if q[0] == method]
        return self.queries

    def get_last_query(self) -> Optional[tuple]:
        return self.queries[-1] if self.queries else None

    def assert_no_queries(self):
        assert len(self.queries) == 0, f"Expected no queries, but got: {self.queries}"
