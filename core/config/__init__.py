#!/usr/bin/env python3
"""Modular configuration system for the delivery service

Configuration hierarchy:
- infra_config: Infrastructure services (PostgreSQL)
- logging_config: Logging configuration
- delivery_config: Delivery service settings (combines the above)
"""
import os
from dotenv import load_dotenv
from .logging_config import LoggingConfig
from .infra_config import InfraConfig
from .delivery_config import DeliveryServiceConfig

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
settings = DeliveryServiceConfig.from_env()

def get_settings() -> DeliveryServiceConfig:
    """Get global settings instance"""
    return settings

def reload_settings() -> DeliveryServiceConfig:
    """Reload settings from environment"""
    global settings
    settings = DeliveryServiceConfig.from_env()
    return settings

__all__ = [
    'DeliveryServiceConfig',
    'get_settings',
    'reload_settings',
    'settings',
    'LoggingConfig',
    'InfraConfig',
]
