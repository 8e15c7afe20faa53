"""
Delivery Service - Main Application

Delivery tracking microservice: fee quotes, delivery lifecycle and tracking.
Caller identity is forwarded by the gateway in request headers.
"""

import os
import sys
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse

# Add parent directory to path for core imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '../..'))

from core.auth_dependencies import (
    AuthenticatedActor,
    ROLE_ADMIN,
    ROLE_RIDER,
    require_actor,
    require_role,
)
from core.config import get_settings
from core.logger import setup_service_logger

from .delivery_service import DeliveryService
from .factory import create_delivery_service
from .models import (
    Actor,
    ActorRole,
    Delivery,
    DeliveryCancelRequest,
    DeliveryCreateRequest,
    DeliveryFilter,
    DeliveryListResponse,
    DeliveryStatus,
    DeliveryStatusUpdateRequest,
    FeeBreakdown,
    FeeQuoteRequest,
    HealthResponse,
    TrackingInfo,
)
from .protocols import DeliveryServiceError

config = get_settings()
logger = setup_service_logger(
    "delivery_service", level=config.logging.log_level, config=config.logging
)

delivery_service: Optional[DeliveryService] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle management"""
    global delivery_service

    delivery_service = create_delivery_service(config=config)

    try:
        await delivery_service.repository.initialize()
    except Exception as e:
        # The pool is created lazily, so requests retry the connection
        logger.warning(f"Database not reachable at startup: {e}")

    logger.info(f"Delivery service started on port {config.service_port}")
    yield

    await delivery_service.repository.close()
    logger.info("Delivery service shut down")


app = FastAPI(
    title="Delivery Service",
    description="Delivery lifecycle, fee quotes and public tracking",
    version="1.0.0",
    lifespan=lifespan,
)


# ====================
# Error Handling
# ====================


@app.exception_handler(DeliveryServiceError)
async def delivery_error_handler(request: Request, exc: DeliveryServiceError):
    if exc.status_code >= 500:
        logger.error(f"{exc.error_code} on {request.method} {request.url.path}: {exc.message}")
    else:
        logger.info(f"{exc.error_code} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# ====================
# Dependency Injection
# ====================


async def get_delivery_service() -> DeliveryService:
    """Get delivery service instance"""
    if not delivery_service:
        raise HTTPException(status_code=503, detail="Delivery service not initialized")
    return delivery_service


def _to_actor(actor: AuthenticatedActor) -> Actor:
    return Actor(actor_id=actor.actor_id, role=ActorRole(actor.role))


# ====================
# Health Check
# ====================


@app.get("/api/v1/deliveries/health", response_model=HealthResponse)
@app.get("/health", response_model=HealthResponse)
async def health_check(service: DeliveryService = Depends(get_delivery_service)):
    """Health check"""
    database_ok = await service.repository.health_check()
    return HealthResponse(
        status="healthy" if database_ok else "degraded",
        database="healthy" if database_ok else "unhealthy",
        timestamp=datetime.now(timezone.utc),
    )


# ====================
# Ordering API
# ====================


@app.post("/api/v1/deliveries/fee", response_model=FeeBreakdown)
async def quote_fee(
    request: FeeQuoteRequest,
    service: DeliveryService = Depends(get_delivery_service),
):
    """Price a delivery without creating it"""
    return service.quote_fee(request)


@app.post("/api/v1/deliveries", response_model=Delivery, status_code=status.HTTP_201_CREATED)
async def create_delivery(
    request: DeliveryCreateRequest,
    service: DeliveryService = Depends(get_delivery_service),
):
    """Create a delivery for an order"""
    return await service.create_delivery(request)


@app.get("/api/v1/deliveries/track/{tracking_number}", response_model=TrackingInfo)
async def track_delivery(
    tracking_number: str,
    service: DeliveryService = Depends(get_delivery_service),
):
    """Public tracking by tracking number"""
    return await service.track_delivery(tracking_number)


@app.delete("/api/v1/deliveries/{delivery_id}", response_model=Delivery)
async def cancel_delivery(
    delivery_id: str,
    request: Optional[DeliveryCancelRequest] = None,
    actor: AuthenticatedActor = Depends(require_actor),
    service: DeliveryService = Depends(get_delivery_service),
):
    """Cancel a delivery that has not been picked up"""
    return await service.cancel_delivery(
        delivery_id,
        _to_actor(actor),
        notes=request.notes if request else None,
    )


# ====================
# Rider API
# ====================


@app.get("/api/v1/riders/deliveries/available", response_model=List[Delivery])
async def list_available_deliveries(
    actor: AuthenticatedActor = Depends(require_role(ROLE_RIDER)),
    service: DeliveryService = Depends(get_delivery_service),
):
    """Deliveries waiting for a rider, oldest first"""
    return await service.list_available_deliveries()


@app.post("/api/v1/riders/deliveries/{delivery_id}/accept", response_model=Delivery)
async def accept_delivery(
    delivery_id: str,
    actor: AuthenticatedActor = Depends(require_role(ROLE_RIDER)),
    service: DeliveryService = Depends(get_delivery_service),
):
    """Accept a pending delivery"""
    return await service.accept_delivery(delivery_id, actor.actor_id)


@app.put("/api/v1/riders/deliveries/{delivery_id}/status", response_model=Delivery)
async def update_delivery_status(
    delivery_id: str,
    request: DeliveryStatusUpdateRequest,
    actor: AuthenticatedActor = Depends(require_role(ROLE_RIDER)),
    service: DeliveryService = Depends(get_delivery_service),
):
    """Advance an assigned delivery's status"""
    return await service.update_delivery_status(
        delivery_id,
        request.status,
        actor.actor_id,
        notes=request.notes,
        location=request.location,
    )


@app.get("/api/v1/riders/deliveries", response_model=List[Delivery])
async def list_rider_deliveries(
    actor: AuthenticatedActor = Depends(require_role(ROLE_RIDER)),
    service: DeliveryService = Depends(get_delivery_service),
):
    """The calling rider's deliveries, newest first"""
    return await service.list_rider_deliveries(actor.actor_id)


# ====================
# Admin API
# ====================


@app.get("/api/v1/admin/deliveries", response_model=DeliveryListResponse)
async def list_deliveries(
    status_filter: Optional[DeliveryStatus] = Query(default=None, alias="status"),
    rider_id: Optional[str] = Query(default=None),
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    actor: AuthenticatedActor = Depends(require_role(ROLE_ADMIN)),
    service: DeliveryService = Depends(get_delivery_service),
):
    """All deliveries, filtered by status and/or rider, newest first"""
    return await service.list_deliveries(
        DeliveryFilter(status=status_filter, rider_id=rider_id, limit=limit, offset=offset)
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=config.service_host, port=config.service_port)
