"""
Delivery Service Data Repository

Data access layer - PostgreSQL (Async)
"""

import functools
import json
import logging
from typing import Any, Dict, List, Optional

import asyncpg

from core.config import DeliveryServiceConfig
from core.postgres_client import DatabaseUnavailableError, PostgresClientWrapper
from .models import (
    Actor,
    ActorRole,
    ContactInfo,
    Delivery,
    DeliveryHistoryEntry,
    DeliveryStatus,
    DeliveryType,
    Location,
    RiderSummary,
)
from .protocols import (
    DuplicateOrderError,
    StorageUnavailableError,
    TrackingNumberCollisionError,
)

logger = logging.getLogger(__name__)

ORDER_ID_CONSTRAINT = "uq_deliveries_order_id"
TRACKING_NUMBER_CONSTRAINT = "uq_deliveries_tracking_number"

# Model field -> column for fields the conditional update may touch or test
_UPDATABLE_COLUMNS = {
    "status": "status",
    "rider_id": "rider_id",
    "updated_at": "updated_at",
    "actual_delivery_time": "actual_delivery_time",
}


def _storage_errors(method):
    """Translate database connectivity failures into StorageUnavailableError"""

    @functools.wraps(method)
    async def wrapper(self, *args, **kwargs):
        try:
            return await method(self, *args, **kwargs)
        except DatabaseUnavailableError as e:
            logger.error(f"Delivery storage unavailable during {method.__name__}: {e}")
            raise StorageUnavailableError(f"Delivery storage unavailable: {e}") from e

    return wrapper


def _db_value(value: Any) -> Any:
    if isinstance(value, (DeliveryStatus, DeliveryType, ActorRole)):
        return value.value
    return value


def _json_or_none(value: Optional[ContactInfo]) -> Optional[str]:
    return json.dumps(value.model_dump()) if value else None


def _load_json(value: Any) -> Optional[Dict[str, Any]]:
    if value is None:
        return None
    if isinstance(value, str):
        return json.loads(value)
    return dict(value)


class DeliveryRepository:
    """Delivery service data repository - PostgreSQL (Async)"""

    def __init__(
        self,
        config: Optional[DeliveryServiceConfig] = None,
        db: Optional[PostgresClientWrapper] = None,
    ):
        config = config or DeliveryServiceConfig.from_env()

        self.db = db or PostgresClientWrapper(
            config.service_name, config=config.infrastructure
        )
        self.schema = config.db_schema

        # Table names
        self.deliveries_table = "deliveries"
        self.history_table = "delivery_history"
        self.riders_table = "riders"

    async def initialize(self):
        """Initialize database connection"""
        async with self.db:
            pass
        logger.info("Delivery repository initialized with PostgreSQL")

    async def close(self):
        """Close database connection"""
        await self.db.close()
        logger.info("Delivery repository database connection closed")

    async def health_check(self) -> bool:
        """Check repository health"""
        try:
            async with self.db:
                result = await self.db.query_row("SELECT 1 as healthy")
            return result is not None
        except Exception as e:
            logger.error(f"Health check failed: {e}")
            return False

    # ====================
    # Delivery Writes
    # ====================

    @_storage_errors
    async def insert_delivery(
        self, delivery: Delivery, initial_entry: DeliveryHistoryEntry
    ) -> Delivery:
        """Insert a delivery and its first history entry in one transaction"""
        query = f'''
            INSERT INTO {self.schema}.{self.deliveries_table} (
                delivery_id, order_id, tracking_number,
                store_latitude, store_longitude,
                customer_latitude, customer_longitude,
                delivery_type, fee, status, rider_id,
                customer_info, store_info, notes,
                estimated_delivery_time, actual_delivery_time,
                created_at, updated_at
            ) VALUES (
                $1, $2, $3, $4, $5, $6, $7, $8, $9, $10,
                $11, $12, $13, $14, $15, $16, $17, $18
            )
            RETURNING *
        '''
        params = [
            delivery.delivery_id,
            delivery.order_id,
            delivery.tracking_number,
            delivery.store_location.latitude,
            delivery.store_location.longitude,
            delivery.customer_location.latitude,
            delivery.customer_location.longitude,
            delivery.delivery_type.value,
            delivery.fee,
            delivery.status.value,
            delivery.rider_id,
            _json_or_none(delivery.customer_info),
            _json_or_none(delivery.store_info),
            delivery.notes,
            delivery.estimated_delivery_time,
            delivery.actual_delivery_time,
            delivery.created_at,
            delivery.updated_at,
        ]

        try:
            async with self.db.transaction() as tx:
                row = await tx.query_row(query, params)
                await tx.execute(*self._history_insert(initial_entry))
        except asyncpg.exceptions.UniqueViolationError as e:
            constraint = getattr(e, "constraint_name", None)
            if constraint == ORDER_ID_CONSTRAINT:
                raise DuplicateOrderError(delivery.order_id) from e
            if constraint == TRACKING_NUMBER_CONSTRAINT:
                raise TrackingNumberCollisionError(delivery.tracking_number) from e
            logger.error(f"Unique violation inserting delivery {delivery.delivery_id}: {e}")
            raise

        return self._row_to_delivery(row) if row else delivery

    @_storage_errors
    async def update_delivery_if_matches(
        self,
        delivery_id: str,
        expected: Dict[str, Any],
        updates: Dict[str, Any],
    ) -> Optional[Delivery]:
        """Single UPDATE guarded by the expected column values"""
        if not updates:
            raise ValueError("updates must not be empty")

        params: List[Any] = []
        set_clauses = []
        for field, value in updates.items():
            params.append(_db_value(value))
            set_clauses.append(f"{_UPDATABLE_COLUMNS[field]} = ${len(params)}")

        params.append(delivery_id)
        conditions = [f"delivery_id = ${len(params)}"]
        for field, value in expected.items():
            column = _UPDATABLE_COLUMNS[field]
            if value is None:
                conditions.append(f"{column} IS NULL")
            else:
                params.append(_db_value(value))
                conditions.append(f"{column} = ${len(params)}")

        query = f'''
            UPDATE {self.schema}.{self.deliveries_table}
            SET {", ".join(set_clauses)}
            WHERE {" AND ".join(conditions)}
            RETURNING *
        '''

        async with self.db:
            row = await self.db.query_row(query, params)

        return self._row_to_delivery(row) if row else None

    # ====================
    # Delivery Reads
    # ====================

    async def _get_delivery_by(self, column: str, value: str) -> Optional[Delivery]:
        query = f'''
            SELECT * FROM {self.schema}.{self.deliveries_table}
            WHERE {column} = $1
        '''
        async with self.db:
            row = await self.db.query_row(query, [value])
        return self._row_to_delivery(row) if row else None

    @_storage_errors
    async def get_delivery(self, delivery_id: str) -> Optional[Delivery]:
        """Get delivery by ID"""
        return await self._get_delivery_by("delivery_id", delivery_id)

    @_storage_errors
    async def get_delivery_by_order_id(self, order_id: str) -> Optional[Delivery]:
        """Get delivery by order ID"""
        return await self._get_delivery_by("order_id", order_id)

    @_storage_errors
    async def get_delivery_by_tracking_number(self, tracking_number: str) -> Optional[Delivery]:
        """Get delivery by tracking number"""
        return await self._get_delivery_by("tracking_number", tracking_number)

    @_storage_errors
    async def list_deliveries(
        self,
        status: Optional[DeliveryStatus] = None,
        rider_id: Optional[str] = None,
        unassigned: bool = False,
        sort_order: str = "desc",
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Delivery]:
        """List deliveries with filters, ordered by creation time"""
        conditions = []
        params: List[Any] = []

        if status:
            params.append(DeliveryStatus(status).value)
            conditions.append(f"status = ${len(params)}")

        if rider_id:
            params.append(rider_id)
            conditions.append(f"rider_id = ${len(params)}")
        elif unassigned:
            conditions.append("rider_id IS NULL")

        where_clause = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        order_direction = "ASC" if sort_order.lower() == "asc" else "DESC"

        query = f'''
            SELECT * FROM {self.schema}.{self.deliveries_table}
            {where_clause}
            ORDER BY created_at {order_direction}, delivery_id {order_direction}
        '''
        if limit is not None:
            params.extend([limit, offset])
            query += f" LIMIT ${len(params) - 1} OFFSET ${len(params)}"

        async with self.db:
            rows = await self.db.query(query, params)

        return [self._row_to_delivery(row) for row in rows or []]

    # ====================
    # History
    # ====================

    def _history_insert(self, entry: DeliveryHistoryEntry):
        query = f'''
            INSERT INTO {self.schema}.{self.history_table} (
                history_id, delivery_id, status, actor_id, actor_role,
                notes, latitude, longitude, created_at
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
        '''
        params = [
            entry.history_id,
            entry.delivery_id,
            entry.status.value,
            entry.updated_by.actor_id,
            entry.updated_by.role.value,
            entry.notes,
            entry.location.latitude if entry.location else None,
            entry.location.longitude if entry.location else None,
            entry.created_at,
        ]
        return query, params

    @_storage_errors
    async def add_history_entry(self, entry: DeliveryHistoryEntry) -> DeliveryHistoryEntry:
        """Append a history entry"""
        async with self.db:
            await self.db.execute(*self._history_insert(entry))
        return entry

    @_storage_errors
    async def get_history(self, delivery_id: str) -> List[DeliveryHistoryEntry]:
        """History for a delivery in insertion order"""
        query = f'''
            SELECT * FROM {self.schema}.{self.history_table}
            WHERE delivery_id = $1
            ORDER BY seq ASC
        '''
        async with self.db:
            rows = await self.db.query(query, [delivery_id])
        return [self._row_to_history(row) for row in rows or []]

    # ====================
    # Rider Projection
    # ====================

    @_storage_errors
    async def get_rider_summaries(self, rider_ids: List[str]) -> Dict[str, RiderSummary]:
        """Public rider fields only"""
        if not rider_ids:
            return {}

        query = f'''
            SELECT rider_id, name, phone, email
            FROM {self.schema}.{self.riders_table}
            WHERE rider_id = ANY($1)
        '''
        async with self.db:
            rows = await self.db.query(query, [list(rider_ids)])

        return {
            row["rider_id"]: RiderSummary(
                rider_id=row["rider_id"],
                name=row["name"],
                phone=row.get("phone"),
                email=row.get("email"),
            )
            for row in rows or []
        }

    # ====================
    # Row Mapping
    # ====================

    def _row_to_delivery(self, row: Dict[str, Any]) -> Delivery:
        customer_info = _load_json(row.get("customer_info"))
        store_info = _load_json(row.get("store_info"))
        return Delivery(
            delivery_id=row["delivery_id"],
            order_id=row["order_id"],
            tracking_number=row["tracking_number"],
            store_location=Location(
                latitude=row["store_latitude"], longitude=row["store_longitude"]
            ),
            customer_location=Location(
                latitude=row["customer_latitude"], longitude=row["customer_longitude"]
            ),
            delivery_type=DeliveryType(row["delivery_type"]),
            fee=row["fee"],
            status=DeliveryStatus(row["status"]),
            rider_id=row.get("rider_id"),
            customer_info=ContactInfo(**customer_info) if customer_info else None,
            store_info=ContactInfo(**store_info) if store_info else None,
            notes=row.get("notes"),
            estimated_delivery_time=row.get("estimated_delivery_time"),
            actual_delivery_time=row.get("actual_delivery_time"),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def _row_to_history(self, row: Dict[str, Any]) -> DeliveryHistoryEntry:
        location = None
        if row.get("latitude") is not None and row.get("longitude") is not None:
            location = Location(latitude=row["latitude"], longitude=row["longitude"])
        return DeliveryHistoryEntry(
            history_id=row["history_id"],
            delivery_id=row["delivery_id"],
            status=DeliveryStatus(row["status"]),
            updated_by=Actor(actor_id=row["actor_id"], role=ActorRole(row["actor_role"])),
            notes=row.get("notes"),
            location=location,
            created_at=row["created_at"],
        )
