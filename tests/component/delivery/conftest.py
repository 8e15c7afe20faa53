"""
Component Test Fixtures for Delivery Service

In-memory repository that honours the repository contract (conditional
updates are atomic, history is append-only) plus failure switches for
exercising storage errors.
"""

import asyncio
from typing import Any, Dict, List, Optional

import pytest

import sys
import os

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "../../.."))

from microservices.delivery_service.delivery_service import DeliveryService
from microservices.delivery_service.models import (
    Delivery,
    DeliveryHistoryEntry,
    DeliveryStatus,
    RiderSummary,
)
from microservices.delivery_service.protocols import (
    DuplicateOrderError,
    StorageUnavailableError,
    TrackingNumberCollisionError,
)
from tests.contracts.delivery.data_contract import DeliveryTestDataFactory


# ====================
# Mock Repository
# ====================


class MockDeliveryRepository:
    """Mock repository for component testing"""

    def __init__(self):
        self.deliveries: Dict[str, Delivery] = {}
        self.history: Dict[str, List[DeliveryHistoryEntry]] = {}
        self.riders: Dict[str, RiderSummary] = {}
        self._sequence: Dict[str, int] = {}
        self._counter = 0

        # Failure switches
        self.unavailable = False
        self.fail_history_writes = False
        self.insert_tracking_collisions = 0
        self.insert_calls = 0

    def _check_available(self):
        if self.unavailable:
            raise StorageUnavailableError("Delivery storage unavailable: connection refused")

    async def initialize(self):
        pass

    async def close(self):
        pass

    async def health_check(self) -> bool:
        return not self.unavailable

    # Deliveries

    async def insert_delivery(
        self, delivery: Delivery, initial_entry: DeliveryHistoryEntry
    ) -> Delivery:
        self._check_available()
        self.insert_calls += 1
        if self.insert_tracking_collisions > 0:
            # Another insert took this tracking number first
            self.insert_tracking_collisions -= 1
            raise TrackingNumberCollisionError(delivery.tracking_number)
        if any(d.order_id == delivery.order_id for d in self.deliveries.values()):
            raise DuplicateOrderError(delivery.order_id)

        self._counter += 1
        self._sequence[delivery.delivery_id] = self._counter
        self.deliveries[delivery.delivery_id] = delivery.model_copy(deep=True)
        self.history[delivery.delivery_id] = [initial_entry]
        return delivery.model_copy(deep=True)

    def seed(self, delivery: Delivery, history: Optional[List[DeliveryHistoryEntry]] = None) -> Delivery:
        """Store a delivery directly, bypassing the service"""
        self._counter += 1
        self._sequence[delivery.delivery_id] = self._counter
        self.deliveries[delivery.delivery_id] = delivery.model_copy(deep=True)
        self.history[delivery.delivery_id] = list(history or [])
        return delivery

    async def get_delivery(self, delivery_id: str) -> Optional[Delivery]:
        self._check_available()
        delivery = self.deliveries.get(delivery_id)
        return delivery.model_copy(deep=True) if delivery else None

    async def get_delivery_by_order_id(self, order_id: str) -> Optional[Delivery]:
        self._check_available()
        for delivery in self.deliveries.values():
            if delivery.order_id == order_id:
                return delivery.model_copy(deep=True)
        return None

    async def get_delivery_by_tracking_number(self, tracking_number: str) -> Optional[Delivery]:
        self._check_available()
        for delivery in self.deliveries.values():
            if delivery.tracking_number == tracking_number:
                return delivery.model_copy(deep=True)
        return None

    async def update_delivery_if_matches(
        self,
        delivery_id: str,
        expected: Dict[str, Any],
        updates: Dict[str, Any],
    ) -> Optional[Delivery]:
        # Yield first so concurrent callers interleave before the check-and-set
        await asyncio.sleep(0)
        self._check_available()

        current = self.deliveries.get(delivery_id)
        if current is None:
            return None
        for field, value in expected.items():
            if getattr(current, field) != value:
                return None

        updated = current.model_copy(update=updates, deep=True)
        self.deliveries[delivery_id] = updated
        return updated.model_copy(deep=True)

    async def list_deliveries(
        self,
        status: Optional[DeliveryStatus] = None,
        rider_id: Optional[str] = None,
        unassigned: bool = False,
        sort_order: str = "desc",
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Delivery]:
        self._check_available()
        results = list(self.deliveries.values())
        if status:
            results = [d for d in results if d.status == status]
        if rider_id:
            results = [d for d in results if d.rider_id == rider_id]
        elif unassigned:
            results = [d for d in results if d.rider_id is None]

        results.sort(
            key=lambda d: (d.created_at, self._sequence[d.delivery_id]),
            reverse=sort_order.lower() != "asc",
        )
        if limit is not None:
            results = results[offset:offset + limit]
        return [d.model_copy(deep=True) for d in results]

    # History

    async def add_history_entry(self, entry: DeliveryHistoryEntry) -> DeliveryHistoryEntry:
        self._check_available()
        if self.fail_history_writes:
            raise StorageUnavailableError("Delivery storage unavailable: history write timed out")
        self.history.setdefault(entry.delivery_id, []).append(entry)
        return entry

    async def get_history(self, delivery_id: str) -> List[DeliveryHistoryEntry]:
        self._check_available()
        return list(self.history.get(delivery_id, []))

    # Riders

    def add_rider(self, rider: RiderSummary) -> RiderSummary:
        self.riders[rider.rider_id] = rider
        return rider

    async def get_rider_summaries(self, rider_ids: List[str]) -> Dict[str, RiderSummary]:
        self._check_available()
        return {rid: self.riders[rid] for rid in rider_ids if rid in self.riders}


# ====================
# Fixtures
# ====================


@pytest.fixture
def mock_repository() -> MockDeliveryRepository:
    """Fresh in-memory repository for each test"""
    return MockDeliveryRepository()


@pytest.fixture
def delivery_service(mock_repository) -> DeliveryService:
    """Delivery service wired to the in-memory repository"""
    return DeliveryService(repository=mock_repository, system_actor_id="system")


@pytest.fixture
def rider_id() -> str:
    return DeliveryTestDataFactory.make_rider_id()


@pytest.fixture
def other_rider_id() -> str:
    return DeliveryTestDataFactory.make_rider_id()


@pytest.fixture
async def pending_delivery(delivery_service, factory) -> Delivery:
    """A delivery created through the service, still PENDING"""
    return await delivery_service.create_delivery(factory.make_create_request())


@pytest.fixture
async def accepted_delivery(delivery_service, pending_delivery, rider_id) -> Delivery:
    """A delivery accepted by rider_id"""
    return await delivery_service.accept_delivery(pending_delivery.delivery_id, rider_id)
