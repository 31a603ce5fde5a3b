"""
Component Test Fixtures for Pledge Service
"""

import pytest

from microservices.pledge_service.charge_run import ChargeRunOrchestrator
from microservices.pledge_service.pledge_service import PledgeService
from microservices.pledge_service.protocols import PledgeStoreError
from microservices.pledge_service.setup_reconciler import SetupReconciler

from tests.component.pledge.mocks import (
    MockAsyncPostgresClient,
    MockPaymentProvider,
    MockPledgeRepository,
)


@pytest.fixture
def mock_repository() -> MockPledgeRepository:
    return MockPledgeRepository()


@pytest.fixture
def mock_provider() -> MockPaymentProvider:
    return MockPaymentProvider()


@pytest.fixture
def mock_db() -> MockAsyncPostgresClient:
    return MockAsyncPostgresClient()


@pytest.fixture
def reconciler(mock_repository, mock_provider) -> SetupReconciler:
    return SetupReconciler(mock_repository, mock_provider)


@pytest.fixture
def charge_run(mock_repository, mock_provider) -> ChargeRunOrchestrator:
    return ChargeRunOrchestrator(mock_repository, mock_provider)


@pytest.fixture
def pledge_service(mock_repository, mock_provider) -> PledgeService:
    return PledgeService(
        repository=mock_repository,
        payment_provider=mock_provider,
        success_url="https://example.com/success",
        cancel_url="https://example.com/cancel",
        webhook_secret="whsec_test",
    )


@pytest.fixture
def store_error() -> PledgeStoreError:
    return PledgeStoreError("connection reset")
