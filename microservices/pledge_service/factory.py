"""
Pledge Service Factory

Factory for creating pledge service instances with proper dependency injection.
"""

import logging
from typing import Optional

from core.config import PledgeConfig, get_settings
from core.postgres_client import AsyncPostgresClient

from .pledge_repository import PledgeRepository
from .pledge_service import PledgeService
from .protocols import ConfigurationError
from .stripe_provider import StripePaymentProvider

logger = logging.getLogger(__name__)


class PledgeServiceFactory:
    """Factory for creating pledge service components"""

    def __init__(self, config: Optional[PledgeConfig] = None):
        self.config = config or get_settings()
        self._db: Optional[AsyncPostgresClient] = None
        self._repository: Optional[PledgeRepository] = None
        self._payment_provider: Optional[StripePaymentProvider] = None
        self._service: Optional[PledgeService] = None

    async def initialize(self) -> None:
        """Initialize all components"""
        logger.info(f"Initializing Pledge Service components ({self.config.environment})...")

        missing = self.config.validate()
        if missing:
            raise ConfigurationError(
                f"Missing required settings: {', '.join(missing)}", missing=missing
            )

        # Record store
        self._db = AsyncPostgresClient.from_config(
            self.config.infrastructure, user_id=self.config.logging.service_name
        )
        self._repository = PledgeRepository(self._db)
        await self._repository.initialize()

        # Payment provider
        self._payment_provider = StripePaymentProvider(
            secret_key=self.config.stripe.secret_key,
            max_network_retries=self.config.stripe.max_network_retries,
        )

        # Main service
        self._service = PledgeService(
            repository=self._repository,
            payment_provider=self._payment_provider,
            success_url=self.config.success_url,
            cancel_url=self.config.cancel_url,
            webhook_secret=self.config.stripe.webhook_secret,
            currency=self.config.currency,
        )

        logger.info("Pledge Service components initialized")

    async def close(self) -> None:
        """Close all components"""
        logger.info("Closing Pledge Service components...")

        if self._repository:
            await self._repository.close()

        logger.info("Pledge Service components closed")

    @property
    def repository(self) -> PledgeRepository:
        """Get pledge repository"""
        if not self._repository:
            raise RuntimeError("Factory not initialized. Call initialize() first.")
        return self._repository

    @property
    def payment_provider(self) -> StripePaymentProvider:
        """Get payment provider"""
        if not self._payment_provider:
            raise RuntimeError("Factory not initialized. Call initialize() first.")
        return self._payment_provider

    @property
    def service(self) -> PledgeService:
        """Get pledge service"""
        if not self._service:
            raise RuntimeError("Factory not initialized. Call initialize() first.")
        return self._service


# Global factory instance
_factory: Optional[PledgeServiceFactory] = None


async def get_factory() -> PledgeServiceFactory:
    """Get or create factory instance"""
    global _factory
    if _factory is None:
        factory = PledgeServiceFactory()
        await factory.initialize()
        _factory = factory
    return _factory


async def close_factory() -> None:
    """Close factory instance"""
    global _factory
    if _factory:
        await _factory.close()
        _factory = None


__all__ = [
    "PledgeServiceFactory",
    "get_factory",
    "close_factory",
]
