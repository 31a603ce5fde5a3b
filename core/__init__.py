#!/usr/bin/env python3
"""
Core Module for the Pledge Service

Shared infrastructure components used by the microservices in this repository.

COMPONENTS:
    - config/: Environment-driven configuration (dataclasses + dotenv)
    - postgres_client.py: asyncpg-backed PostgreSQL client

USAGE:
    from core.config import get_settings
    from core.postgres_client import AsyncPostgresClient

    settings = get_settings()
    db = AsyncPostgresClient.from_config(settings.infrastructure)
"""

__version__ = "1.0.0"
