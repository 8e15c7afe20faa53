"""
Delivery Service Factory

Factory functions for creating service instances with real dependencies.
This is the ONLY place that imports I/O-dependent modules.

Usage:
    from .factory import create_delivery_service
    service = create_delivery_service(config)
"""
from typing import Optional

from core.config import DeliveryServiceConfig

from .delivery_service import DeliveryService
from .protocols import DeliveryRepositoryProtocol


def create_delivery_service(
    config: Optional[DeliveryServiceConfig] = None,
    repository: Optional[DeliveryRepositoryProtocol] = None,
) -> DeliveryService:
    """
    Create DeliveryService with real dependencies.

    This function imports the real repository (which has I/O dependencies).
    Use this in production, NOT in tests.

    Args:
        config: Delivery service configuration
        repository: Repository override

    Returns:
        Configured DeliveryService instance
    """
    config = config or DeliveryServiceConfig.from_env()

    if repository is None:
        # Import real repository here (not at module level)
        from .delivery_repository import DeliveryRepository

        repository = DeliveryRepository(config=config)

    return DeliveryService(
        repository=repository,
        system_actor_id=config.system_actor_id,
        tracking_number_length=config.tracking_number_length,
        tracking_number_attempts=config.tracking_number_attempts,
    )
