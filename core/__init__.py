#!/usr/bin/env python3
"""
Core Module for Microservices Architecture

Shared infrastructure components for the delivery microservices.

COMPONENTS:
    - config/: Dataclass configuration loaded from the environment
    - logger.py: Service logger setup
    - postgres_client.py: asyncpg pool wrapper used by repositories
    - auth_dependencies.py: FastAPI dependencies reading gateway identity headers

USAGE:
    from core.config import get_settings
    from core.logger import setup_service_logger

    settings = get_settings()
    logger = setup_service_logger(settings.service_name)
"""

__version__ = "2.1.0"
