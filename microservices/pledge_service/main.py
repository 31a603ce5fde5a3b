"""
Pledge Service Main Application

FastAPI application for pay-per-view donation pledges.
Port: 8260
"""

import hmac
import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, Optional, Type, TypeVar

from fastapi import FastAPI, HTTPException, Depends, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from core.config import get_settings

from .models import (
    AdminRequest,
    ChargeRunResponse,
    CheckoutUrlResponse,
    ConfirmPledgeRequest,
    ConfirmPledgeResponse,
    CreatePledgeRequest,
    DonateNowRequest,
    HealthResponse,
    LivenessResponse,
    PledgeCheckoutResponse,
    ReadinessResponse,
    ReconcileOutcome,
    RunChargesRequest,
    SetViewsRequest,
    SetViewsResponse,
    WebhookResponse,
)
from .factory import PledgeServiceFactory
from .pledge_service import PledgeService
from .protocols import (
    AdminAuthError,
    CampaignNotFoundError,
    FinalViewsNotSetError,
    InvalidCampaignStateError,
    InvalidStatusTransitionError,
    PaymentProviderError,
    PledgeStoreError,
    PledgeValidationError,
    WebhookVerificationError,
)

settings = get_settings()

# Configure logging
settings.logging.apply()
logger = logging.getLogger(__name__)

# Service configuration
SERVICE_NAME = "pledge_service"
SERVICE_PORT = settings.port
SERVICE_VERSION = "1.0.0"

# Track startup time for uptime calculation
startup_time = time.time()

# Global factory instance
factory: Optional[PledgeServiceFactory] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    global factory

    logger.info(f"Starting {SERVICE_NAME} on port {SERVICE_PORT}")

    factory = PledgeServiceFactory(settings)
    await factory.initialize()

    yield

    logger.info(f"Shutting down {SERVICE_NAME}")
    await factory.close()
    factory = None


# Create FastAPI application
app = FastAPI(
    title="Pledge Service",
    description="Pay-per-view donation pledges: card setup, final view counts and off-session charge runs",
    version=SERVICE_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allowed_origins,
    allow_methods=["POST", "OPTIONS"],
    allow_headers=["*"],
    max_age=86400,
)


@app.middleware("http")
async def assign_request_id(request: Request, call_next):
    """Attach a correlation id to every request"""
    request.state.request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    return await call_next(request)


def _request_id(request: Request) -> Optional[str]:
    return getattr(request.state, "request_id", None)


def _error(request: Request, status_code: int, message: str) -> JSONResponse:
    content = {"error": message}
    request_id = _request_id(request)
    if request_id:
        content["request_id"] = request_id
    return JSONResponse(status_code=status_code, content=content)


# ====================
# Exception Handlers
# ====================


@app.exception_handler(PledgeValidationError)
async def validation_error_handler(request: Request, exc: PledgeValidationError):
    return _error(request, status.HTTP_400_BAD_REQUEST, str(exc))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    logger.info(f"[{_request_id(request)}] Rejected request body: {exc.errors()}")
    return _error(request, status.HTTP_400_BAD_REQUEST, "Invalid input")


@app.exception_handler(CampaignNotFoundError)
async def campaign_not_found_handler(request: Request, exc: CampaignNotFoundError):
    return _error(request, status.HTTP_404_NOT_FOUND, str(exc))


@app.exception_handler(InvalidCampaignStateError)
async def invalid_state_handler(request: Request, exc: InvalidCampaignStateError):
    return _error(request, status.HTTP_400_BAD_REQUEST, str(exc))


@app.exception_handler(FinalViewsNotSetError)
async def final_views_not_set_handler(request: Request, exc: FinalViewsNotSetError):
    return _error(request, status.HTTP_400_BAD_REQUEST, str(exc))


@app.exception_handler(InvalidStatusTransitionError)
async def invalid_transition_handler(request: Request, exc: InvalidStatusTransitionError):
    return _error(request, status.HTTP_409_CONFLICT, str(exc))


@app.exception_handler(PaymentProviderError)
async def payment_provider_handler(request: Request, exc: PaymentProviderError):
    logger.error(f"[{_request_id(request)}] Payment provider error: {exc}")
    return _error(request, status.HTTP_502_BAD_GATEWAY, str(exc))


@app.exception_handler(PledgeStoreError)
async def store_error_handler(request: Request, exc: PledgeStoreError):
    logger.error(f"[{_request_id(request)}] Record store error: {exc}")
    return _error(request, status.HTTP_502_BAD_GATEWAY, "Record store request failed")


@app.exception_handler(WebhookVerificationError)
async def webhook_verification_handler(request: Request, exc: WebhookVerificationError):
    return _error(request, status.HTTP_400_BAD_REQUEST, str(exc))


@app.exception_handler(AdminAuthError)
async def admin_auth_handler(request: Request, exc: AdminAuthError):
    return _error(request, status.HTTP_401_UNAUTHORIZED, "Unauthorized")


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Catch-all exception handler"""
    logger.exception(f"[{_request_id(request)}] Unhandled exception: {exc}")
    return _error(request, status.HTTP_500_INTERNAL_SERVER_ERROR, "Request failed")


# ====================
# Dependencies
# ====================


def get_service() -> PledgeService:
    """Get pledge service from factory"""
    if not factory:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service not initialized",
        )
    return factory.service


def require_admin(password: Any) -> None:
    """Compare the supplied admin password in constant time"""
    expected = factory.config.admin_password if factory else None
    if not expected or not isinstance(password, str) or not password:
        raise AdminAuthError("Unauthorized")
    if not hmac.compare_digest(password.encode("utf-8"), expected.encode("utf-8")):
        raise AdminAuthError("Unauthorized")


AdminRequestT = TypeVar("AdminRequestT", bound=AdminRequest)


async def read_admin_request(request: Request, model: Type[AdminRequestT]) -> AdminRequestT:
    """Check the admin password, then validate the body against model"""
    try:
        body = await request.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}

    require_admin(body.get("password"))
    try:
        return model(**body)
    except ValidationError:
        raise PledgeValidationError("Invalid input")


# ====================
# Health Endpoints
# ====================


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """Health check endpoint"""
    dependencies = {}

    if factory:
        try:
            db_healthy = await factory.repository.health_check()
            dependencies["postgres"] = "healthy" if db_healthy else "unhealthy"
        except RuntimeError:
            dependencies["postgres"] = "not_initialized"
        dependencies["stripe"] = "configured" if factory.config.stripe.secret_key else "not_configured"

    return HealthResponse(
        status="healthy",
        service=SERVICE_NAME,
        port=SERVICE_PORT,
        version=SERVICE_VERSION,
        dependencies=dependencies,
    )


@app.get("/health/ready", response_model=ReadinessResponse, tags=["Health"])
async def readiness_check():
    """Readiness check endpoint"""
    checks = {}
    details = {}

    if factory:
        try:
            checks["postgres"] = await factory.repository.health_check()
        except RuntimeError as e:
            checks["postgres"] = False
            details["postgres"] = str(e)
        checks["stripe"] = bool(factory.config.stripe.secret_key)
    else:
        checks["factory"] = False
        details["factory"] = "Service not initialized"

    ready = bool(checks) and all(checks.values())
    response = ReadinessResponse(ready=ready, checks=checks, details=details)
    if not ready:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=response.model_dump(),
        )
    return response


@app.get("/health/live", response_model=LivenessResponse, tags=["Health"])
async def liveness_check():
    """Liveness check endpoint"""
    return LivenessResponse(alive=True, uptime_seconds=time.time() - startup_time)


# ====================
# Pledge Endpoints
# ====================


@app.post("/api/pledge/create", response_model=PledgeCheckoutResponse, tags=["Pledges"])
async def create_pledge(
    body: CreatePledgeRequest,
    request: Request,
    service: PledgeService = Depends(get_service),
):
    """Create a pledge and return the card-setup checkout url"""
    return await service.create_pledge_and_setup_session(body, request_id=_request_id(request))


@app.post("/api/pledge/confirm", response_model=ConfirmPledgeResponse, tags=["Pledges"])
async def confirm_pledge(
    body: ConfirmPledgeRequest,
    request: Request,
    service: PledgeService = Depends(get_service),
):
    """Confirm a pledge after the checkout redirect"""
    result = await service.confirm_pledge(body)

    if result.outcome == ReconcileOutcome.IGNORED:
        return _error(request, status.HTTP_400_BAD_REQUEST, "Session is not a pledge setup")
    if result.outcome == ReconcileOutcome.CONFLICT:
        return _error(request, status.HTTP_409_CONFLICT, result.reason or "Pledge setup conflict")

    return ConfirmPledgeResponse(pledge_id=result.pledge_id, request_id=_request_id(request))


@app.post("/api/donate-now/create", response_model=CheckoutUrlResponse, tags=["Donations"])
async def create_donation(
    body: DonateNowRequest,
    service: PledgeService = Depends(get_service),
):
    """Create a one-off donation checkout session"""
    return await service.create_donation_session(body.amount, name=body.name, email=body.email)


@app.post("/api/stripe/webhook", response_model=WebhookResponse, tags=["Webhooks"])
async def stripe_webhook(
    request: Request,
    service: PledgeService = Depends(get_service),
):
    """Stripe webhook receiver"""
    payload = await request.body()
    signature = request.headers.get("stripe-signature")
    return await service.handle_stripe_webhook(payload, signature)


# ====================
# Admin Endpoints
# ====================


@app.post("/api/admin/set-views", response_model=SetViewsResponse, tags=["Admin"])
async def set_views(
    request: Request,
    service: PledgeService = Depends(get_service),
):
    """Record final views and lock the campaign"""
    body = await read_admin_request(request, SetViewsRequest)
    campaign = await service.set_final_views(body.campaign_id, body.final_views)
    return SetViewsResponse(campaign_id=campaign.id, final_views=campaign.final_views)


@app.post("/api/admin/run-charges", response_model=ChargeRunResponse, tags=["Admin"])
async def run_charges(
    request: Request,
    service: PledgeService = Depends(get_service),
):
    """Charge all eligible pledges of a campaign"""
    body = await read_admin_request(request, RunChargesRequest)
    summary = await service.run_charges(body.campaign_id)
    return ChargeRunResponse.from_summary(summary)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.host, port=SERVICE_PORT)
