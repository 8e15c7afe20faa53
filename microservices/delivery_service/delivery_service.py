"""
Delivery Service Business Logic

Delivery lifecycle: creation and pricing, rider acceptance, status
advancement, cancellation, and the append-only history that records every
transition.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .fee_calculator import compute_fee
from .models import (
    Actor,
    ActorRole,
    Delivery,
    DeliveryCreateRequest,
    DeliveryDetail,
    DeliveryFilter,
    DeliveryHistoryEntry,
    DeliveryListResponse,
    DeliveryStatus,
    FeeBreakdown,
    FeeQuoteRequest,
    Location,
    TrackingInfo,
)
from .protocols import (
    ConcurrentUpdateError,
    DeliveryRepositoryProtocol,
    DeliveryNotAvailableError,
    DeliveryNotFoundError,
    DeliveryServiceError,
    DeliveryValidationError,
    DuplicateOrderError,
    InvalidTransitionError,
    TrackingNumberCollisionError,
)
from .state_machine import CANCELLABLE_STATUSES, can_transition
from .tracking import (
    DEFAULT_TRACKING_NUMBER_LENGTH,
    generate_tracking_number,
    normalize_tracking_number,
)

logger = logging.getLogger(__name__)

# Read-check-write rounds before giving up on a delivery that keeps changing
WRITE_ATTEMPTS = 3


class DeliveryService:
    """
    Delivery lifecycle business logic service

    Holds no per-request state; everything durable goes through the
    repository. Acceptance relies on the repository's conditional update so
    that only one rider can win a given delivery.
    """

    def __init__(
        self,
        repository: DeliveryRepositoryProtocol,
        system_actor_id: str = "system",
        tracking_number_length: int = DEFAULT_TRACKING_NUMBER_LENGTH,
        tracking_number_attempts: int = 5,
    ):
        """
        Initialize Delivery Service

        Args:
            repository: Storage for deliveries and their history
            system_actor_id: Actor ID recorded on entries the service writes itself
            tracking_number_length: Length of generated tracking numbers
            tracking_number_attempts: Retries when a generated number is taken
        """
        self.repository = repository
        self.system_actor = Actor(actor_id=system_actor_id, role=ActorRole.SYSTEM)
        self.tracking_number_length = tracking_number_length
        self.tracking_number_attempts = tracking_number_attempts

    # ====================
    # Pricing
    # ====================

    def quote_fee(self, request: FeeQuoteRequest) -> FeeBreakdown:
        """Price a delivery without creating it"""
        return compute_fee(
            request.store_location,
            request.customer_location,
            request.delivery_type,
        )

    # ====================
    # Lifecycle Operations
    # ====================

    async def create_delivery(self, request: DeliveryCreateRequest) -> Delivery:
        """
        Create a new delivery in PENDING status.

        The delivery and its initial PENDING history entry are written in a
        single repository call. A tracking number taken by a concurrent
        insert is regenerated.

        Raises:
            DuplicateOrderError: a delivery already exists for request.order_id
            DeliveryServiceError: no free tracking number after the configured attempts
        """
        if await self.repository.get_delivery_by_order_id(request.order_id):
            raise DuplicateOrderError(request.order_id)

        breakdown = self.quote_fee(request)

        for _ in range(self.tracking_number_attempts):
            tracking_number = await self._allocate_tracking_number(request.order_id)

            now = self._now()
            delivery = Delivery(
                delivery_id=f"dlv_{uuid.uuid4().hex[:16]}",
                order_id=request.order_id,
                tracking_number=tracking_number,
                store_location=request.store_location,
                customer_location=request.customer_location,
                delivery_type=request.delivery_type,
                fee=breakdown.fee,
                status=DeliveryStatus.PENDING,
                rider_id=None,
                customer_info=request.customer_info,
                store_info=request.store_info,
                notes=request.notes,
                estimated_delivery_time=request.estimated_delivery_time,
                created_at=now,
                updated_at=now,
            )
            initial_entry = self._make_history_entry(
                delivery.delivery_id, DeliveryStatus.PENDING, self.system_actor, created_at=now
            )

            try:
                delivery = await self.repository.insert_delivery(delivery, initial_entry)
            except TrackingNumberCollisionError:
                logger.warning(
                    f"Tracking number {tracking_number} taken at insert, regenerating"
                )
                continue

            logger.info(
                f"Delivery created: {delivery.delivery_id} for order {delivery.order_id} "
                f"(tracking {delivery.tracking_number}, fee {delivery.fee})"
            )
            return delivery

        raise DeliveryServiceError(
            f"Could not allocate a unique tracking number after "
            f"{self.tracking_number_attempts} attempts"
        )

    async def accept_delivery(self, delivery_id: str, rider_id: str) -> Delivery:
        """
        Assign a pending delivery to a rider.

        Raises:
            DeliveryNotAvailableError: delivery missing, already taken or not pending
        """
        delivery = await self.repository.get_delivery(delivery_id)
        if (
            delivery is None
            or delivery.status != DeliveryStatus.PENDING
            or delivery.rider_id is not None
        ):
            raise DeliveryNotAvailableError(delivery_id)

        # The guard on status and rider is what makes a single rider win
        updated = await self.repository.update_delivery_if_matches(
            delivery_id,
            expected={"status": DeliveryStatus.PENDING, "rider_id": None},
            updates={
                "status": DeliveryStatus.ACCEPTED,
                "rider_id": rider_id,
                "updated_at": self._now(),
            },
        )
        if updated is None:
            raise DeliveryNotAvailableError(delivery_id)

        await self._append_history(
            self._make_history_entry(
                delivery_id,
                DeliveryStatus.ACCEPTED,
                Actor(actor_id=rider_id, role=ActorRole.RIDER),
            ),
            rollback_expected={"status": DeliveryStatus.ACCEPTED, "rider_id": rider_id},
            rollback_updates={
                "status": DeliveryStatus.PENDING,
                "rider_id": None,
                "updated_at": delivery.updated_at,
            },
        )

        logger.info(f"Delivery {delivery_id} accepted by rider {rider_id}")
        return updated

    async def update_delivery_status(
        self,
        delivery_id: str,
        new_status: DeliveryStatus,
        rider_id: str,
        notes: Optional[str] = None,
        location: Optional[Location] = None,
    ) -> Delivery:
        """
        Move a rider's delivery to its next status.

        Raises:
            DeliveryNotFoundError: delivery missing or not assigned to this rider
            InvalidTransitionError: move not in the transition table
            ConcurrentUpdateError: delivery kept changing between read and write
        """
        new_status = self._parse_status(new_status)

        for _ in range(WRITE_ATTEMPTS):
            delivery = await self.repository.get_delivery(delivery_id)
            if delivery is None or delivery.rider_id != rider_id:
                raise DeliveryNotFoundError(
                    f"Delivery {delivery_id} not found or not assigned to this rider",
                    details={"delivery_id": delivery_id},
                )

            current_status = delivery.status
            if not can_transition(current_status, new_status):
                raise InvalidTransitionError(current_status, new_status)

            updates: Dict[str, Any] = {"status": new_status, "updated_at": self._now()}
            rollback_updates: Dict[str, Any] = {
                "status": current_status,
                "updated_at": delivery.updated_at,
            }
            if new_status == DeliveryStatus.DELIVERED:
                updates["actual_delivery_time"] = updates["updated_at"]
                rollback_updates["actual_delivery_time"] = delivery.actual_delivery_time

            updated = await self.repository.update_delivery_if_matches(
                delivery_id,
                expected={"status": current_status, "rider_id": rider_id},
                updates=updates,
            )
            if updated is not None:
                break
            # Changed between read and write: re-read and re-check the move
        else:
            raise ConcurrentUpdateError(delivery_id)

        await self._append_history(
            self._make_history_entry(
                delivery_id,
                new_status,
                Actor(actor_id=rider_id, role=ActorRole.RIDER),
                notes=notes,
                location=location,
            ),
            rollback_expected={"status": new_status, "rider_id": rider_id},
            rollback_updates=rollback_updates,
        )

        logger.info(
            f"Delivery {delivery_id} moved {current_status.value} -> {new_status.value} "
            f"by rider {rider_id}"
        )
        return updated

    async def cancel_delivery(
        self,
        delivery_id: str,
        actor: Actor,
        notes: Optional[str] = None,
    ) -> Delivery:
        """
        Cancel a delivery that has not been picked up yet.

        Riders may only cancel deliveries assigned to them; admins and the
        system may cancel any delivery.

        Raises:
            DeliveryNotFoundError: delivery missing (or not the rider's)
            InvalidTransitionError: delivery already picked up, delivered or cancelled
            ConcurrentUpdateError: delivery kept changing between read and write
        """
        for _ in range(WRITE_ATTEMPTS):
            delivery = await self.repository.get_delivery(delivery_id)
            if delivery is None or (
                actor.role == ActorRole.RIDER and delivery.rider_id != actor.actor_id
            ):
                raise DeliveryNotFoundError(
                    f"Delivery {delivery_id} not found",
                    details={"delivery_id": delivery_id},
                )

            current_status = delivery.status
            if current_status not in CANCELLABLE_STATUSES:
                raise InvalidTransitionError(current_status, DeliveryStatus.CANCELLED)

            updated = await self.repository.update_delivery_if_matches(
                delivery_id,
                expected={"status": current_status, "rider_id": delivery.rider_id},
                updates={"status": DeliveryStatus.CANCELLED, "updated_at": self._now()},
            )
            if updated is not None:
                break
            # A rider may have accepted it meanwhile, which is still cancellable
        else:
            raise ConcurrentUpdateError(delivery_id)

        await self._append_history(
            self._make_history_entry(delivery_id, DeliveryStatus.CANCELLED, actor, notes=notes),
            rollback_expected={"status": DeliveryStatus.CANCELLED, "rider_id": delivery.rider_id},
            rollback_updates={"status": current_status, "updated_at": delivery.updated_at},
        )

        logger.info(
            f"Delivery {delivery_id} cancelled from {current_status.value} "
            f"by {actor.role.value} {actor.actor_id}"
        )
        return updated

    # ====================
    # Queries
    # ====================

    async def get_delivery(self, delivery_id: str) -> Delivery:
        """Get delivery by ID"""
        delivery = await self.repository.get_delivery(delivery_id)
        if delivery is None:
            raise DeliveryNotFoundError(
                f"Delivery {delivery_id} not found",
                details={"delivery_id": delivery_id},
            )
        return delivery

    async def track_delivery(self, tracking_number: str) -> TrackingInfo:
        """Public tracking view: delivery, assigned rider and full history"""
        normalized = normalize_tracking_number(tracking_number)
        delivery = await self.repository.get_delivery_by_tracking_number(normalized)
        if delivery is None:
            raise DeliveryNotFoundError(
                f"Delivery with tracking number {normalized} not found",
                details={"tracking_number": normalized},
            )

        rider = None
        if delivery.rider_id:
            riders = await self.repository.get_rider_summaries([delivery.rider_id])
            rider = riders.get(delivery.rider_id)

        history = await self.repository.get_history(delivery.delivery_id)
        return TrackingInfo(delivery=delivery, rider=rider, history=history)

    async def list_available_deliveries(self) -> List[Delivery]:
        """Pending, unassigned deliveries, oldest first"""
        return await self.repository.list_deliveries(
            status=DeliveryStatus.PENDING,
            unassigned=True,
            sort_order="asc",
        )

    async def list_rider_deliveries(self, rider_id: str) -> List[Delivery]:
        """Deliveries assigned to a rider, newest first"""
        return await self.repository.list_deliveries(rider_id=rider_id, sort_order="desc")

    async def list_deliveries(self, filters: Optional[DeliveryFilter] = None) -> DeliveryListResponse:
        """Filtered deliveries with their riders, newest first"""
        filters = filters or DeliveryFilter()
        deliveries = await self.repository.list_deliveries(
            status=filters.status,
            rider_id=filters.rider_id,
            sort_order="desc",
            limit=filters.limit,
            offset=filters.offset,
        )

        rider_ids = sorted({d.rider_id for d in deliveries if d.rider_id})
        riders = await self.repository.get_rider_summaries(rider_ids) if rider_ids else {}

        return DeliveryListResponse(
            deliveries=[
                DeliveryDetail(delivery=d, rider=riders.get(d.rider_id) if d.rider_id else None)
                for d in deliveries
            ],
            count=len(deliveries),
            limit=filters.limit,
            offset=filters.offset,
        )

    # ====================
    # Helpers
    # ====================

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)

    @staticmethod
    def _parse_status(status: Any) -> DeliveryStatus:
        try:
            return DeliveryStatus(status)
        except ValueError:
            raise DeliveryValidationError(
                f"Unknown delivery status: {status}",
                details={"status": str(status)},
            )

    def _make_history_entry(
        self,
        delivery_id: str,
        status: DeliveryStatus,
        actor: Actor,
        notes: Optional[str] = None,
        location: Optional[Location] = None,
        created_at: Optional[datetime] = None,
    ) -> DeliveryHistoryEntry:
        return DeliveryHistoryEntry(
            history_id=f"dhs_{uuid.uuid4().hex[:16]}",
            delivery_id=delivery_id,
            status=status,
            updated_by=actor,
            notes=notes,
            location=location,
            created_at=created_at or self._now(),
        )

    async def _allocate_tracking_number(self, order_id: str) -> str:
        """Generate a tracking number not used by any delivery nor equal to the order ID"""
        for _ in range(self.tracking_number_attempts):
            candidate = generate_tracking_number(self.tracking_number_length)
            if candidate == normalize_tracking_number(order_id):
                continue
            if await self.repository.get_delivery_by_tracking_number(candidate) is None:
                return candidate
            logger.warning(f"Tracking number collision on {candidate}, regenerating")

        raise DeliveryServiceError(
            f"Could not allocate a unique tracking number after "
            f"{self.tracking_number_attempts} attempts"
        )

    async def _append_history(
        self,
        entry: DeliveryHistoryEntry,
        rollback_expected: Dict[str, Any],
        rollback_updates: Dict[str, Any],
    ) -> DeliveryHistoryEntry:
        """
        Append the history entry for a status write that already happened.

        If the append fails, the status write is reverted with a conditional
        update and the original error is re-raised. rollback_updates carries
        every column the write touched, updated_at included, at its prior value.
        """
        try:
            return await self.repository.add_history_entry(entry)
        except Exception as e:
            logger.error(
                f"Failed to record {entry.status.value} history for delivery "
                f"{entry.delivery_id}: {e}; reverting status"
            )
            try:
                reverted = await self.repository.update_delivery_if_matches(
                    entry.delivery_id,
                    expected=rollback_expected,
                    updates=rollback_updates,
                )
                if reverted is None:
                    logger.error(
                        f"Could not revert delivery {entry.delivery_id}: status changed concurrently"
                    )
                else:
                    logger.warning(
                        f"Reverted delivery {entry.delivery_id} to {reverted.status.value}"
                    )
            except Exception as rollback_error:
                logger.error(
                    f"Reverting delivery {entry.delivery_id} failed: {rollback_error}"
                )
            raise
