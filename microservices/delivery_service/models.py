"""
Delivery Service Data Models

Pydantic models for deliveries, the delivery audit trail and fee quotes.
"""

from pydantic import BaseModel, Field, field_validator
from typing import Optional, List
from datetime import datetime
from decimal import Decimal
from enum import Enum


class DeliveryStatus(str, Enum):
    """Delivery status enumeration"""
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    PICKED_UP = "PICKED_UP"
    IN_TRANSIT = "IN_TRANSIT"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class DeliveryType(str, Enum):
    """Delivery type enumeration"""
    STANDARD = "standard"
    EXPRESS = "express"


class ActorRole(str, Enum):
    """Who performed a status change"""
    RIDER = "rider"
    ADMIN = "admin"
    SYSTEM = "system"


# Value Objects

class Location(BaseModel):
    """Geographic point in decimal degrees"""
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class ContactInfo(BaseModel):
    """Customer or store contact details"""
    name: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1)
    address: str = Field(..., min_length=1)


class Actor(BaseModel):
    """Reference to the actor behind a history entry"""
    actor_id: str
    role: ActorRole


# Core Delivery Models

class Delivery(BaseModel):
    """Core delivery model"""
    delivery_id: str
    order_id: str
    tracking_number: str
    store_location: Location
    customer_location: Location
    delivery_type: DeliveryType = DeliveryType.STANDARD
    fee: Decimal = Field(..., ge=0)
    status: DeliveryStatus = DeliveryStatus.PENDING
    rider_id: Optional[str] = None
    customer_info: Optional[ContactInfo] = None
    store_info: Optional[ContactInfo] = None
    notes: Optional[str] = None
    estimated_delivery_time: Optional[datetime] = None
    actual_delivery_time: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class DeliveryHistoryEntry(BaseModel):
    """Immutable audit record of one status transition"""
    model_config = {"frozen": True}

    history_id: str
    delivery_id: str
    status: DeliveryStatus
    updated_by: Actor
    notes: Optional[str] = None
    location: Optional[Location] = None
    created_at: datetime


class RiderSummary(BaseModel):
    """Public rider projection (no credentials)"""
    rider_id: str
    name: str
    phone: Optional[str] = None
    email: Optional[str] = None


class FeeBreakdown(BaseModel):
    """Delivery fee with its components"""
    fee: Decimal
    distance_km: float
    base_price: Decimal
    distance_charge: Decimal
    express_surcharge: Decimal


# Request Models

class FeeQuoteRequest(BaseModel):
    """Fee quote request"""
    store_location: Location = Field(..., description="Pickup point")
    customer_location: Location = Field(..., description="Drop-off point")
    delivery_type: DeliveryType = Field(default=DeliveryType.STANDARD, description="Delivery class")


class DeliveryCreateRequest(FeeQuoteRequest):
    """Create delivery request"""
    order_id: str = Field(..., min_length=1, description="Caller's order reference")
    customer_info: Optional[ContactInfo] = Field(None, description="Customer contact")
    store_info: Optional[ContactInfo] = Field(None, description="Store contact")
    notes: Optional[str] = Field(None, description="Free-form notes")
    estimated_delivery_time: Optional[datetime] = Field(None, description="Promised delivery time")

    @field_validator('order_id')
    @classmethod
    def validate_order_id(cls, v):
        v = v.strip()
        if not v:
            raise ValueError('order_id must not be blank')
        return v


class DeliveryStatusUpdateRequest(BaseModel):
    """Rider status update request"""
    status: DeliveryStatus = Field(..., description="Target status")
    notes: Optional[str] = Field(None, description="Notes for the audit trail")
    location: Optional[Location] = Field(None, description="Where the update was made")


class DeliveryCancelRequest(BaseModel):
    """Cancel delivery request"""
    notes: Optional[str] = Field(None, description="Cancellation reason")


# Filter and Query Models

class DeliveryFilter(BaseModel):
    """Delivery filtering parameters"""
    status: Optional[DeliveryStatus] = None
    rider_id: Optional[str] = None
    limit: int = Field(default=50, ge=1, le=100)
    offset: int = Field(default=0, ge=0)


# Response Models

class DeliveryDetail(BaseModel):
    """Delivery with its rider projection"""
    delivery: Delivery
    rider: Optional[RiderSummary] = None


class TrackingInfo(BaseModel):
    """Public tracking view"""
    delivery: Delivery
    rider: Optional[RiderSummary] = None
    history: List[DeliveryHistoryEntry] = []


class DeliveryListResponse(BaseModel):
    """Delivery list response"""
    deliveries: List[DeliveryDetail]
    count: int
    limit: int
    offset: int


class HealthResponse(BaseModel):
    """Health check response"""
    status: str
    service: str = "delivery_service"
    version: str = "1.0.0"
    database: str
    timestamp: datetime
