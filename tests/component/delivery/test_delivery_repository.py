"""
Component Tests for DeliveryRepository

SQL shape and row mapping against the mocked PostgreSQL client.
"""

import json
from datetime import datetime, timezone
from decimal import Decimal

import asyncpg
import pytest

from core.config import DeliveryServiceConfig
from core.postgres_client import DatabaseUnavailableError
from microservices.delivery_service.delivery_repository import DeliveryRepository
from microservices.delivery_service.models import ActorRole, DeliveryStatus, DeliveryType
from microservices.delivery_service.protocols import (
    DeliveryRepositoryProtocol,
    DuplicateOrderError,
    StorageUnavailableError,
    TrackingNumberCollisionError,
)

pytestmark = pytest.mark.component

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def delivery_row(**overrides):
    row = {
        "delivery_id": "dlv_0123456789abcdef",
        "order_id": "ORD-1",
        "tracking_number": "AB12CD34EF",
        "store_latitude": 5.6,
        "store_longitude": -0.2,
        "customer_latitude": 5.65,
        "customer_longitude": -0.19,
        "delivery_type": "standard",
        "fee": Decimal("9.50"),
        "status": "PENDING",
        "rider_id": None,
        "customer_info": json.dumps({"name": "Ama", "phone": "+233200000000", "address": "Osu"}),
        "store_info": None,
        "notes": None,
        "estimated_delivery_time": None,
        "actual_delivery_time": None,
        "created_at": NOW,
        "updated_at": NOW,
    }
    row.update(overrides)
    return row


@pytest.fixture
def repository(mock_db) -> DeliveryRepository:
    return DeliveryRepository(config=DeliveryServiceConfig(), db=mock_db)


class TestRepositoryContract:

    def test_implements_protocol(self, repository):
        assert isinstance(repository, DeliveryRepositoryProtocol)

    def test_schema_from_config(self, mock_db):
        repository = DeliveryRepository(config=DeliveryServiceConfig(db_schema="dispatch"), db=mock_db)
        assert repository.schema == "dispatch"


class TestInsertDelivery:

    @pytest.mark.asyncio
    async def test_insert_in_one_transaction(self, repository, mock_db, factory):
        delivery = factory.make_delivery()
        entry = factory.make_history_entry(delivery.delivery_id)
        mock_db.set_row_response(delivery_row(delivery_id=delivery.delivery_id))

        stored = await repository.insert_delivery(delivery, entry)

        assert mock_db.transactions == 1
        assert stored.delivery_id == delivery.delivery_id
        mock_db.assert_query_executed("INSERT INTO delivery.deliveries", "query_row")
        mock_db.assert_query_executed("INSERT INTO delivery.delivery_history", "execute")

        _, _, history_params = mock_db.get_queries("execute")[0]
        assert history_params[:5] == [
            entry.history_id, delivery.delivery_id, "PENDING", "system", "system",
        ]

    @pytest.mark.asyncio
    async def test_duplicate_order_mapped(self, repository, mock_db, factory):
        error = asyncpg.exceptions.UniqueViolationError("duplicate key value")
        error.constraint_name = "uq_deliveries_order_id"
        mock_db.set_error(error)
        delivery = factory.make_delivery()

        with pytest.raises(DuplicateOrderError) as exc_info:
            await repository.insert_delivery(delivery, factory.make_history_entry(delivery.delivery_id))

        assert exc_info.value.order_id == delivery.order_id

    @pytest.mark.asyncio
    async def test_tracking_number_collision_mapped(self, repository, mock_db, factory):
        error = asyncpg.exceptions.UniqueViolationError("duplicate key value")
        error.constraint_name = "uq_deliveries_tracking_number"
        mock_db.set_error(error)
        delivery = factory.make_delivery()

        with pytest.raises(TrackingNumberCollisionError) as exc_info:
            await repository.insert_delivery(delivery, factory.make_history_entry(delivery.delivery_id))

        assert exc_info.value.tracking_number == delivery.tracking_number
        assert exc_info.value.status_code == 409

    @pytest.mark.asyncio
    async def test_other_unique_violation_propagates(self, repository, mock_db, factory):
        error = asyncpg.exceptions.UniqueViolationError("duplicate key value")
        error.constraint_name = "delivery_history_pkey"
        mock_db.set_error(error)
        delivery = factory.make_delivery()

        with pytest.raises(asyncpg.exceptions.UniqueViolationError):
            await repository.insert_delivery(delivery, factory.make_history_entry(delivery.delivery_id))

    @pytest.mark.asyncio
    async def test_unavailable_database_mapped(self, repository, mock_db, factory):
        mock_db.set_error(DatabaseUnavailableError("connection refused"))
        delivery = factory.make_delivery()

        with pytest.raises(StorageUnavailableError):
            await repository.insert_delivery(delivery, factory.make_history_entry(delivery.delivery_id))


class TestConditionalUpdate:

    @pytest.mark.asyncio
    async def test_accept_guard(self, repository, mock_db):
        mock_db.set_row_response(delivery_row(status="ACCEPTED", rider_id="rdr_1"))

        updated = await repository.update_delivery_if_matches(
            "dlv_0123456789abcdef",
            expected={"status": DeliveryStatus.PENDING, "rider_id": None},
            updates={"status": DeliveryStatus.ACCEPTED, "rider_id": "rdr_1", "updated_at": NOW},
        )

        assert updated.status == DeliveryStatus.ACCEPTED
        assert updated.rider_id == "rdr_1"

        _, query, params = mock_db.get_last_query()
        assert "UPDATE delivery.deliveries" in query
        assert "rider_id IS NULL" in query
        assert "status = $5" in query
        assert "RETURNING *" in query
        assert params == ["ACCEPTED", "rdr_1", NOW, "dlv_0123456789abcdef", "PENDING"]

    @pytest.mark.asyncio
    async def test_no_match_returns_none(self, repository, mock_db):
        mock_db.set_row_response(None)

        updated = await repository.update_delivery_if_matches(
            "dlv_x",
            expected={"status": DeliveryStatus.PENDING},
            updates={"status": DeliveryStatus.ACCEPTED},
        )

        assert updated is None

    @pytest.mark.asyncio
    async def test_empty_updates_rejected(self, repository):
        with pytest.raises(ValueError):
            await repository.update_delivery_if_matches("dlv_x", expected={}, updates={})

    @pytest.mark.asyncio
    async def test_unknown_column_rejected(self, repository):
        with pytest.raises(KeyError):
            await repository.update_delivery_if_matches(
                "dlv_x", expected={}, updates={"fee": Decimal("1.00")}
            )


class TestReads:

    @pytest.mark.asyncio
    async def test_row_mapping(self, repository, mock_db):
        mock_db.set_row_response(
            delivery_row(delivery_type="express", customer_info={"name": "Ama", "phone": "1", "address": "Osu"})
        )

        delivery = await repository.get_delivery("dlv_0123456789abcdef")

        assert delivery.delivery_type == DeliveryType.EXPRESS
        assert delivery.store_location.latitude == 5.6
        assert delivery.customer_info.name == "Ama"
        assert delivery.store_info is None
        assert delivery.fee == Decimal("9.50")

    @pytest.mark.asyncio
    async def test_lookup_by_tracking_number(self, repository, mock_db):
        mock_db.set_row_response(None)

        assert await repository.get_delivery_by_tracking_number("AB12CD34EF") is None

        _, query, params = mock_db.get_last_query()
        assert "WHERE tracking_number = $1" in query
        assert params == ["AB12CD34EF"]

    @pytest.mark.asyncio
    async def test_available_listing_sql(self, repository, mock_db):
        mock_db.set_rows_response([delivery_row()])

        deliveries = await repository.list_deliveries(
            status=DeliveryStatus.PENDING, unassigned=True, sort_order="asc"
        )

        assert len(deliveries) == 1
        _, query, params = mock_db.get_last_query()
        assert "status = $1" in query
        assert "rider_id IS NULL" in query
        assert "ORDER BY created_at ASC, delivery_id ASC" in query
        assert "LIMIT" not in query
        assert params == ["PENDING"]

    @pytest.mark.asyncio
    async def test_paged_listing_sql(self, repository, mock_db):
        mock_db.set_rows_response([])

        await repository.list_deliveries(rider_id="rdr_1", limit=20, offset=40)

        _, query, params = mock_db.get_last_query()
        assert "rider_id = $1" in query
        assert "ORDER BY created_at DESC" in query
        assert "LIMIT $2 OFFSET $3" in query
        assert params == ["rdr_1", 20, 40]

    @pytest.mark.asyncio
    async def test_read_unavailable_mapped(self, repository, mock_db):
        mock_db.set_error(DatabaseUnavailableError("timeout"))

        with pytest.raises(StorageUnavailableError):
            await repository.list_deliveries()


class TestHistoryAndRiders:

    @pytest.mark.asyncio
    async def test_history_in_insertion_order(self, repository, mock_db):
        mock_db.set_rows_response([
            {
                "history_id": "dhs_1", "delivery_id": "dlv_1", "status": "PENDING",
                "actor_id": "system", "actor_role": "system", "notes": None,
                "latitude": None, "longitude": None, "created_at": NOW,
            },
            {
                "history_id": "dhs_2", "delivery_id": "dlv_1", "status": "ACCEPTED",
                "actor_id": "rdr_1", "actor_role": "rider", "notes": "On my way",
                "latitude": 5.61, "longitude": -0.21, "created_at": NOW,
            },
        ])

        history = await repository.get_history("dlv_1")

        assert [h.status for h in history] == [DeliveryStatus.PENDING, DeliveryStatus.ACCEPTED]
        assert history[0].location is None
        assert history[1].updated_by.role == ActorRole.RIDER
        assert history[1].location.latitude == 5.61
        mock_db.assert_query_executed("ORDER BY seq ASC", "query")

    @pytest.mark.asyncio
    async def test_add_history_entry(self, repository, mock_db, factory):
        entry = factory.make_history_entry("dlv_1", status=DeliveryStatus.CANCELLED, actor_id="adm_1", role=ActorRole.ADMIN)

        await repository.add_history_entry(entry)

        _, query, params = mock_db.get_last_query()
        assert "INSERT INTO delivery.delivery_history" in query
        assert params[2:5] == ["CANCELLED", "adm_1", "admin"]

    @pytest.mark.asyncio
    async def test_rider_summaries(self, repository, mock_db):
        mock_db.set_rows_response([
            {"rider_id": "rdr_1", "name": "Kofi", "phone": "+233", "email": None},
        ])

        riders = await repository.get_rider_summaries(["rdr_1", "rdr_2"])

        assert list(riders) == ["rdr_1"]
        assert riders["rdr_1"].name == "Kofi"
        _, query, params = mock_db.get_last_query()
        assert "rider_id = ANY($1)" in query
        assert "password" not in query
        assert params == [["rdr_1", "rdr_2"]]

    @pytest.mark.asyncio
    async def test_rider_summaries_empty_skips_query(self, repository, mock_db):
        assert await repository.get_rider_summaries([]) == {}
        mock_db.assert_no_queries()


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_health_check(self, repository, mock_db):
        mock_db.set_row_response({"healthy": 1})
        assert await repository.health_check() is True

    @pytest.mark.asyncio
    async def test_health_check_failure(self, repository, mock_db):
        mock_db.set_error(DatabaseUnavailableError("down"))
        assert await repository.health_check() is False

    @pytest.mark.asyncio
    async def test_close(self, repository, mock_db):
        await repository.close()
        assert mock_db.closed
