"""
Delivery Service Protocols (Interfaces)

These interfaces define contracts for dependency injection.
NO import-time I/O dependencies - safe to import anywhere.
"""
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

# Import only models (no I/O dependencies)
from .models import Delivery, DeliveryHistoryEntry, DeliveryStatus, RiderSummary


# ============================================================================
# Custom Exceptions - defined here to avoid importing repository
# ============================================================================

class DeliveryServiceError(Exception):
    """
    Base exception for delivery service errors.

    Attributes:
        message: Human-readable reason
        error_code: Machine-readable kind
        status_code: HTTP status the API layer answers with
        details: Extra context
    """

    error_code: str = "DELIVERY_ERROR"
    status_code: int = 500

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API response."""
        result = {
            "error": self.error_code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


class DeliveryValidationError(DeliveryServiceError):
    """Malformed or out-of-range input"""
    error_code = "VALIDATION_ERROR"
    status_code = 400


class DuplicateOrderError(DeliveryServiceError):
    """A delivery already exists for this order"""
    error_code = "DUPLICATE_ORDER"
    status_code = 409

    def __init__(self, order_id: str):
        super().__init__(
            f"Delivery already exists for order {order_id}",
            details={"order_id": order_id},
        )
        self.order_id = order_id


class DeliveryNotAvailableError(DeliveryServiceError):
    """Delivery cannot be accepted (missing, taken or no longer pending)"""
    error_code = "NOT_AVAILABLE"
    status_code = 409

    def __init__(self, delivery_id: str):
        super().__init__(
            f"Delivery {delivery_id} is not available for acceptance",
            details={"delivery_id": delivery_id},
        )
        self.delivery_id = delivery_id


class DeliveryNotFoundError(DeliveryServiceError):
    """No matching delivery, or the rider does not own it"""
    error_code = "NOT_FOUND"
    status_code = 404


class InvalidTransitionError(DeliveryServiceError):
    """Status transition not permitted from the current status"""
    error_code = "INVALID_TRANSITION"
    status_code = 409

    def __init__(self, from_status: DeliveryStatus, to_status: DeliveryStatus):
        from_value = DeliveryStatus(from_status).value
        to_value = DeliveryStatus(to_status).value
        super().__init__(
            f"Cannot transition from {from_value} to {to_value}",
            details={"from_status": from_value, "to_status": to_value},
        )
        self.from_status = DeliveryStatus(from_status)
        self.to_status = DeliveryStatus(to_status)


class ConcurrentUpdateError(DeliveryServiceError):
    """Delivery kept changing under a legal move; the caller may retry"""
    error_code = "CONCURRENT_UPDATE"
    status_code = 409

    def __init__(self, delivery_id: str):
        super().__init__(
            f"Delivery {delivery_id} was modified concurrently, try again",
            details={"delivery_id": delivery_id},
        )
        self.delivery_id = delivery_id


class TrackingNumberCollisionError(DeliveryServiceError):
    """Tracking number taken by a delivery inserted at the same time"""
    error_code = "TRACKING_NUMBER_COLLISION"
    status_code = 409

    def __init__(self, tracking_number: str):
        super().__init__(
            f"Tracking number {tracking_number} is already in use",
            details={"tracking_number": tracking_number},
        )
        self.tracking_number = tracking_number


class StorageUnavailableError(DeliveryServiceError):
    """Storage layer unreachable or timed out"""
    error_code = "STORAGE_UNAVAILABLE"
    status_code = 503


# ============================================================================
# Repository Protocol
# ============================================================================

@runtime_checkable
class DeliveryRepositoryProtocol(Protocol):
    """
    Interface for Delivery Repository.

    Implementations must provide these methods.
    Used for dependency injection to enable testing.

    Errors: connectivity failures raise StorageUnavailableError; an order_id
    uniqueness violation on insert raises DuplicateOrderError and a
    tracking_number one raises TrackingNumberCollisionError.
    """

    async def initialize(self) -> None:
        """Initialize repository connection"""
        ...

    async def close(self) -> None:
        """Close repository connection"""
        ...

    async def health_check(self) -> bool:
        """Check repository health"""
        ...

    async def insert_delivery(
        self,
        delivery: Delivery,
        initial_entry: DeliveryHistoryEntry
    ) -> Delivery:
        """Persist a new delivery and its first history entry atomically"""
        ...

    async def get_delivery(self, delivery_id: str) -> Optional[Delivery]:
        """Get delivery by ID"""
        ...

    async def get_delivery_by_order_id(self, order_id: str) -> Optional[Delivery]:
        """Get delivery by caller's order ID"""
        ...

    async def get_delivery_by_tracking_number(self, tracking_number: str) -> Optional[Delivery]:
        """Get delivery by (normalized) tracking number"""
        ...

    async def update_delivery_if_matches(
        self,
        delivery_id: str,
        expected: Dict[str, Any],
        updates: Dict[str, Any]
    ) -> Optional[Delivery]:
        """
        Apply updates only if every expected field still holds.

        A None expectation means the column must be NULL. Returns the updated
        delivery, or None when nothing matched. Must be a single atomic write.
        """
        ...

    async def add_history_entry(self, entry: DeliveryHistoryEntry) -> DeliveryHistoryEntry:
        """Append a history entry"""
        ...

    async def get_history(self, delivery_id: str) -> List[DeliveryHistoryEntry]:
        """History entries for a delivery, oldest first"""
        ...

    async def list_deliveries(
        self,
        status: Optional[DeliveryStatus] = None,
        rider_id: Optional[str] = None,
        unassigned: bool = False,
        sort_order: str = "desc",
        limit: Optional[int] = None,
        offset: int = 0
    ) -> List[Delivery]:
        """List deliveries ordered by created_at"""
        ...

    async def get_rider_summaries(self, rider_ids: List[str]) -> Dict[str, RiderSummary]:
        """Public rider projections keyed by rider ID"""
        ...
