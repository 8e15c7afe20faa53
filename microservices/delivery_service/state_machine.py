"""
Delivery Status Transitions

The table of legal status moves. PENDING is the only initial status;
DELIVERED and CANCELLED are terminal.
"""

from typing import Dict, FrozenSet

from .models import DeliveryStatus

VALID_TRANSITIONS: Dict[DeliveryStatus, FrozenSet[DeliveryStatus]] = {
    DeliveryStatus.PENDING: frozenset({DeliveryStatus.ACCEPTED, DeliveryStatus.CANCELLED}),
    DeliveryStatus.ACCEPTED: frozenset({DeliveryStatus.PICKED_UP, DeliveryStatus.CANCELLED}),
    DeliveryStatus.PICKED_UP: frozenset({DeliveryStatus.IN_TRANSIT}),
    DeliveryStatus.IN_TRANSIT: frozenset({DeliveryStatus.DELIVERED}),
    DeliveryStatus.DELIVERED: frozenset(),  # Terminal state
    DeliveryStatus.CANCELLED: frozenset(),  # Terminal state
}

INITIAL_STATUS = DeliveryStatus.PENDING
TERMINAL_STATUSES = frozenset(
    status for status, targets in VALID_TRANSITIONS.items() if not targets
)
CANCELLABLE_STATUSES = frozenset(
    status for status, targets in VALID_TRANSITIONS.items()
    if DeliveryStatus.CANCELLED in targets
)


def can_transition(from_status: DeliveryStatus, to_status: DeliveryStatus) -> bool:
    """Whether from_status -> to_status is a legal move."""
    return to_status in VALID_TRANSITIONS.get(from_status, frozenset())


def allowed_transitions(from_status: DeliveryStatus) -> FrozenSet[DeliveryStatus]:
    return VALID_TRANSITIONS.get(from_status, frozenset())
