"""
API Test Fixtures for Pledge Service

Drives the FastAPI app in-process. The global factory is replaced with a
stub wired to the in-memory repository and payment provider.
"""

from unittest.mock import patch

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from core.config import PledgeConfig, StripeConfig
from microservices.pledge_service.main import app
from microservices.pledge_service.pledge_service import PledgeService

from tests.component.pledge.mocks import MockPaymentProvider, MockPledgeRepository

ADMIN_PASSWORD = "test-admin-password"


class StubFactory:
    """Stands in for PledgeServiceFactory after initialize()"""

    def __init__(self, repository, payment_provider):
        self.config = PledgeConfig(
            success_url="https://example.com/success",
            cancel_url="https://example.com/cancel",
            admin_password=ADMIN_PASSWORD,
            stripe=StripeConfig(secret_key="sk_test_pledge", webhook_secret="whsec_test"),
        )
        self.repository = repository
        self.payment_provider = payment_provider
        self.service = PledgeService(
            repository=repository,
            payment_provider=payment_provider,
            success_url=self.config.success_url,
            cancel_url=self.config.cancel_url,
            webhook_secret=self.config.stripe.webhook_secret,
        )


@pytest.fixture
def mock_repository() -> MockPledgeRepository:
    return MockPledgeRepository()


@pytest.fixture
def mock_provider() -> MockPaymentProvider:
    return MockPaymentProvider()


@pytest.fixture
def stub_factory(mock_repository, mock_provider):
    stub = StubFactory(mock_repository, mock_provider)
    with patch("microservices.pledge_service.main.factory", stub):
        yield stub


@pytest_asyncio.fixture
async def client(stub_factory):
    """Async HTTP client for the FastAPI app"""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def unguarded_client(stub_factory):
    """Client that returns 500 responses instead of re-raising app errors"""
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def uninitialized_client():
    """Client for an app whose factory never initialized"""
    with patch("microservices.pledge_service.main.factory", None):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            yield ac
