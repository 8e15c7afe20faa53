"""
Delivery Fee Calculator

Pure pricing functions: no state, no I/O.

Pricing:
- flat base price of 5.00
- 1.50 per whole kilometre beyond the first 2 km
- express deliveries pay 20% on top of the subtotal

Money is Decimal, rounded to 2 places with ROUND_HALF_UP.
"""

import math
from decimal import Decimal, ROUND_HALF_UP

from .models import DeliveryType, FeeBreakdown, Location

EARTH_RADIUS_KM = 6371.0

BASE_PRICE = Decimal("5.00")
FREE_DISTANCE_KM = 2
PRICE_PER_EXTRA_KM = Decimal("1.50")
EXPRESS_RATE = Decimal("0.20")

_CENTS = Decimal("0.01")


def _money(value: Decimal) -> Decimal:
    return value.quantize(_CENTS, rounding=ROUND_HALF_UP)


def calculate_distance_km(origin: Location, destination: Location) -> float:
    """Great-circle distance between two points (haversine formula)."""
    lat1 = math.radians(origin.latitude)
    lat2 = math.radians(destination.latitude)
    d_lat = lat2 - lat1
    d_lon = math.radians(destination.longitude - origin.longitude)

    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(lat1) * math.cos(lat2) * math.sin(d_lon / 2) ** 2
    )
    # Rounding error can push a slightly outside [0, 1] near the poles and antipodes
    a = min(1.0, max(0.0, a))
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def calculate_distance_charge(distance_km: float) -> Decimal:
    """Charge for each whole kilometre travelled beyond the free distance."""
    if distance_km <= FREE_DISTANCE_KM:
        return Decimal("0.00")
    extra_km = math.floor(distance_km - FREE_DISTANCE_KM)
    return _money(PRICE_PER_EXTRA_KM * extra_km)


def compute_fee(
    store_location: Location,
    customer_location: Location,
    delivery_type: DeliveryType = DeliveryType.STANDARD,
) -> FeeBreakdown:
    """
    Price a delivery between two points.

    Args:
        store_location: Pickup point
        customer_location: Drop-off point
        delivery_type: Standard or express

    Returns:
        FeeBreakdown with the final fee and its components
    """
    distance_km = calculate_distance_km(store_location, customer_location)
    distance_charge = calculate_distance_charge(distance_km)
    subtotal = BASE_PRICE + distance_charge

    if DeliveryType(delivery_type) == DeliveryType.EXPRESS:
        express_surcharge = _money(subtotal * EXPRESS_RATE)
        fee = _money(subtotal * (1 + EXPRESS_RATE))
    else:
        express_surcharge = Decimal("0.00")
        fee = _money(subtotal)

    return FeeBreakdown(
        fee=fee,
        distance_km=round(distance_km, 2),
        base_price=BASE_PRICE,
        distance_charge=distance_charge,
        express_surcharge=express_surcharge,
    )
