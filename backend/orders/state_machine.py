"""
Order state machine.

PENDING is the initial state; COMPLETED and CANCELLED are terminal. Status only
moves forward along ALLOWED_TRANSITIONS.
"""

from typing import Dict, FrozenSet

from common.exceptions import InvalidTransitionError
from .models import OrderStatus

ALLOWED_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.ACCEPTED, OrderStatus.CANCELLED}),
    OrderStatus.ACCEPTED: frozenset({OrderStatus.ARRIVED, OrderStatus.CANCELLED}),
    OrderStatus.ARRIVED: frozenset({OrderStatus.IN_PROGRESS, OrderStatus.CANCELLED}),
    OrderStatus.IN_PROGRESS: frozenset({OrderStatus.COMPLETED}),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

TERMINAL_STATUSES = frozenset(
    status for status, targets in ALLOWED_TRANSITIONS.items() if not targets
)


def can_transition(current: str, new: str) -> bool:
    return new in ALLOWED_TRANSITIONS.get(current, frozenset())


def validate_status_update(order_id: int, current: str, new: str) -> None:
    """
    Check a status change requested through UpdateStatus.

    PENDING -> ACCEPTED is a legal edge of the machine but it also assigns the
    driver, so it is only reachable through the accept operation.
    """
    if current == OrderStatus.PENDING and new == OrderStatus.ACCEPTED:
        raise InvalidTransitionError(
            f"Order {order_id} must be accepted by a driver, not via a status update"
        )
    if not can_transition(current, new):
        raise InvalidTransitionError(
            f"Cannot move order {order_id} from {current} to {new}"
        )
