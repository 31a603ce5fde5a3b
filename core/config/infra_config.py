#!/usr/bin/env python3
"""Infrastructure services configuration

Record store endpoint used by the pledge service (native asyncpg).
"""
import os
from dataclasses import dataclass

def _int(val: str, default: int) -> int:
    try:
        return int(val) if val else default
    except ValueError:
        return default


@dataclass
class InfraConfig:
    """Infrastructure service endpoints"""

    # ===========================================
    # PostgreSQL (native asyncpg - port 5432)
    # ===========================================
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_db: str = "postgres"
    postgres_user: str = "postgres"
    postgres_password: str = "postgres"
    postgres_min_pool_size: int = 1
    postgres_max_pool_size: int = 10
    postgres_command_timeout: int = 30

    @classmethod
    def from_env(cls) -> 'InfraConfig':
        """Load infrastructure config from environment"""
        return cls(
            postgres_host=os.getenv("POSTGRES_HOST", "localhost"),
            postgres_port=_int(os.getenv("POSTGRES_PORT", "5432"), 5432),
            postgres_db=os.getenv("POSTGRES_DB", "postgres"),
            postgres_user=os.getenv("POSTGRES_USER", "postgres"),
            postgres_password=os.getenv("POSTGRES_PASSWORD", "postgres"),
            postgres_min_pool_size=_int(os.getenv("POSTGRES_MIN_POOL_SIZE", "1"), 1),
            postgres_max_pool_size=_int(os.getenv("POSTGRES_MAX_POOL_SIZE", "10"), 10),
            postgres_command_timeout=_int(os.getenv("POSTGRES_COMMAND_TIMEOUT", "30"), 30),
        )
