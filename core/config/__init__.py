#!/usr/bin/env python3
"""Modular configuration system for the pledge service

Configuration hierarchy:
- infra_config: Record store endpoint (PostgreSQL)
- logging_config: Logging configuration
- pledge_config: Stripe, checkout redirects, admin gate, CORS
"""
import os
from dotenv import load_dotenv
from .logging_config import LoggingConfig
from .infra_config import InfraConfig
from .pledge_config import PledgeConfig, StripeConfig

# Load environment file based on ENV
env = os.getenv("ENV") or os.getenv("ENVIRONMENT", "development")
env_files = {
    "development": "deployment/environments/dev.env",
    "dev": "deployment/environments/dev.env",
    "testing": "deployment/environments/test.env",
    "test": "deployment/environments/test.env",
    "staging": "deployment/environments/staging.env",
    "production": "deployment/environments/production.env",
}
env_file = env_files.get(env, "deployment/environments/dev.env")
load_dotenv(env_file, override=False)

# Create global settings instance
settings = PledgeConfig.from_env()

def get_settings() -> PledgeConfig:
    """Get global settings instance"""
    return settings

def reload_settings() -> PledgeConfig:
    """Reload settings from environment"""
    global settings
    settings = PledgeConfig.from_env()
    return settings

__all__ = [
    # Main config
    'PledgeConfig',
    'get_settings',
    'reload_settings',
    'settings',
    # Sub-configs
    'LoggingConfig',
    'InfraConfig',
    'StripeConfig',
]
