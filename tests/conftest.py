"""
Root conftest.py - Global fixtures and configuration for all test layers.

Test Layers (Top-Down TDD):
    - api/        : HTTP contract tests (FastAPI app, mocked factory)
    - component/  : Component tests (in-memory repository and provider)
    - unit/       : Unit tests (pure functions, no I/O)
"""
import os
import sys

import pytest

# Set testing environment BEFORE any project imports
os.environ["ENV"] = "testing"
os.environ["ENVIRONMENT"] = "testing"
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_pledge")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_pledge")
os.environ.setdefault("SUCCESS_URL", "https://example.com/pledge/success")
os.environ.setdefault("CANCEL_URL", "https://example.com/pledge/cancel")
os.environ.setdefault("ADMIN_PASSWORD", "test-admin-password")

# Add project root to path
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)

from tests.contracts.pledge.data_contract import PledgeTestDataFactory


# =============================================================================
# Pytest Configuration
# =============================================================================

def pytest_configure(config):
    """Configure custom markers"""
    config.addinivalue_line("markers", "unit: marks tests as unit tests")
    config.addinivalue_line("markers", "component: marks tests as component tests")
    config.addinivalue_line("markers", "api: marks tests as API contract tests")


# =============================================================================
# Shared Fixtures
# =============================================================================

@pytest.fixture
def factory():
    """Provide test data factory"""
    return PledgeTestDataFactory
