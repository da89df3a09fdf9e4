"""
Dispatch service - order creation, matching and status transitions.

This module handles:
    - Creating orders and pricing them
    - Offering new orders to online drivers (fire-and-forget)
    - Race-safe acceptance
    - State-machine-checked status updates
"""

from .coordinator import (
    create_order,
    get_order,
    list_rider_orders,
    list_pending_orders,
    accept_order,
    update_status,
)

__all__ = [
    "create_order",
    "get_order",
    "list_rider_orders",
    "list_pending_orders",
    "accept_order",
    "update_status",
]
