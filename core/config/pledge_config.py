#!/usr/bin/env python3
"""Pledge service main configuration

Combines the infrastructure and logging sub-configs with the settings the
pledge service needs for Stripe, checkout redirects and the admin gate.
"""
import os
from dataclasses import dataclass, field
from typing import List, Optional

from .infra_config import InfraConfig
from .logging_config import LoggingConfig


def _int(val: str, default: int) -> int:
    try:
        return int(val) if val else default
    except ValueError:
        return default

def _csv(val: str) -> List[str]:
    return [item.strip() for item in val.split(",") if item.strip()]


DEFAULT_CORS_ORIGINS = (
    "https://www.sixplusone.com,"
    "https://sixplusone.com,"
    "http://localhost:3000,"
    "http://localhost:5173"
)


@dataclass
class StripeConfig:
    """Stripe credentials"""
    secret_key: Optional[str] = None
    webhook_secret: Optional[str] = None
    max_network_retries: int = 0

    @classmethod
    def from_env(cls) -> 'StripeConfig':
        return cls(
            secret_key=os.getenv("STRIPE_SECRET_KEY") or os.getenv("PLEDGE_SERVICE_STRIPE_SECRET_KEY"),
            webhook_secret=os.getenv("STRIPE_WEBHOOK_SECRET") or os.getenv("PLEDGE_SERVICE_STRIPE_WEBHOOK_SECRET"),
            max_network_retries=_int(os.getenv("STRIPE_MAX_NETWORK_RETRIES", "0"), 0),
        )


@dataclass
class PledgeConfig:
    """Main pledge service configuration with all sub-configs"""

    # Environment
    environment: str = "development"

    # Service settings
    host: str = "0.0.0.0"
    port: int = 8260

    # Checkout redirects
    success_url: Optional[str] = None
    cancel_url: Optional[str] = None

    # Admin gate for set-views / run-charges
    admin_password: Optional[str] = None

    # CORS
    cors_allowed_origins: List[str] = field(default_factory=lambda: _csv(DEFAULT_CORS_ORIGINS))

    # Billing
    currency: str = "usd"

    # Sub-configurations
    stripe: StripeConfig = field(default_factory=StripeConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    infrastructure: InfraConfig = field(default_factory=InfraConfig)

    @classmethod
    def from_env(cls) -> 'PledgeConfig':
        """Load complete configuration from environment"""
        env = os.getenv("ENV") or os.getenv("ENVIRONMENT", "development")
        return cls(
            environment=env,
            host=os.getenv("HOST", "0.0.0.0"),
            port=_int(os.getenv("SERVICE_PORT", "8260"), 8260),
            success_url=os.getenv("SUCCESS_URL"),
            cancel_url=os.getenv("CANCEL_URL"),
            admin_password=os.getenv("ADMIN_PASSWORD"),
            cors_allowed_origins=_csv(os.getenv("CORS_ALLOWED_ORIGINS", DEFAULT_CORS_ORIGINS)),
            stripe=StripeConfig.from_env(),
            logging=LoggingConfig.from_env(),
            infrastructure=InfraConfig.from_env(),
        )

    def validate(self) -> List[str]:
        """Return the names of required settings that are missing"""
        missing = []
        if not self.stripe.secret_key:
            missing.append("STRIPE_SECRET_KEY")
        if not self.stripe.webhook_secret:
            missing.append("STRIPE_WEBHOOK_SECRET")
        if not self.success_url:
            missing.append("SUCCESS_URL")
        if not self.cancel_url:
            missing.append("CANCEL_URL")
        if not self.admin_password:
            missing.append("ADMIN_PASSWORD")
        return missing
