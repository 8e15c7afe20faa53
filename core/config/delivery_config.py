#!/usr/bin/env python3
"""Delivery service configuration

Combines the service's own settings with the logging and infrastructure
sub-configs.
"""
import os
from dataclasses import dataclass, field

from .infra_config import InfraConfig
from .logging_config import LoggingConfig


def _bool(val: str) -> bool:
    return val.lower() == "true"

def _int(val: str, default: int) -> int:
    try:
        return int(val) if val else default
    except ValueError:
        return default


@dataclass
class DeliveryServiceConfig:
    """Delivery service settings"""

    service_name: str = "delivery_service"
    environment: str = "development"
    debug: bool = False

    # HTTP
    service_host: str = "0.0.0.0"
    service_port: int = 8260

    # Storage
    db_schema: str = "delivery"

    # Actor recorded on history entries written by the service itself
    system_actor_id: str = "system"

    # Tracking numbers
    tracking_number_length: int = 10
    tracking_number_attempts: int = 5

    logging: LoggingConfig = field(default_factory=LoggingConfig)
    infrastructure: InfraConfig = field(default_factory=InfraConfig)

    @classmethod
    def from_env(cls) -> 'DeliveryServiceConfig':
        """Load delivery service config from environment"""
        env = os.getenv("ENV") or os.getenv("ENVIRONMENT", "development")
        return cls(
            service_name=os.getenv("SERVICE_NAME", "delivery_service"),
            environment=env,
            debug=_bool(os.getenv("DEBUG", "false")),
            service_host=os.getenv("HOST", "0.0.0.0"),
            service_port=_int(os.getenv("PORT", "8260"), 8260),
            db_schema=os.getenv("DELIVERY_DB_SCHEMA", "delivery"),
            system_actor_id=os.getenv("DELIVERY_SYSTEM_ACTOR_ID", "system"),
            tracking_number_length=_int(os.getenv("TRACKING_NUMBER_LENGTH", "10"), 10),
            tracking_number_attempts=_int(os.getenv("TRACKING_NUMBER_ATTEMPTS", "5"), 5),
            logging=LoggingConfig.from_env(),
            infrastructure=InfraConfig.from_env(),
        )
