#!/usr/bin/env python3
"""Logging configuration"""
import logging
import os
from dataclasses import dataclass


@dataclass
class LoggingConfig:
    """Logging configuration"""
    log_level: str = "INFO"
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    log_file: str = ""

    # Service identity for logging
    service_name: str = "pledge_service"
    environment: str = "development"

    @classmethod
    def from_env(cls) -> 'LoggingConfig':
        """Load logging config from environment variables"""
        env = os.getenv("ENV") or os.getenv("ENVIRONMENT", "development")
        return cls(
            log_level=os.getenv("LOG_LEVEL", "DEBUG" if env == "development" else "INFO"),
            log_format=os.getenv("LOG_FORMAT", "%(asctime)s - %(name)s - %(levelname)s - %(message)s"),
            log_file=os.getenv("LOG_FILE", ""),
            service_name=os.getenv("SERVICE_NAME", "pledge_service"),
            environment=env,
        )

    def apply(self) -> None:
        """Configure the root logger from this config"""
        handlers = [logging.StreamHandler()]
        if self.log_file:
            handlers.append(logging.FileHandler(self.log_file))
        logging.basicConfig(
            level=getattr(logging, self.log_level.upper(), logging.INFO),
            format=self.log_format,
            handlers=handlers,
        )
