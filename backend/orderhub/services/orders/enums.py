"""Order status enum and state machine transition rules.

This module defines the order lifecycle status together with the table of
legal transitions and the helpers used to validate them.
"""

from enum import Enum
from typing import Dict, Set


class OrderStatus(str, Enum):
    """Order lifecycle status with state machine transitions.

    Valid transitions:
    - PENDING -> CONFIRMED, CANCELLED
    - CONFIRMED -> SHIPPED, CANCELLED
    - SHIPPED -> DELIVERED
    - DELIVERED -> (terminal state)
    - CANCELLED -> (terminal state)

    IN_PREPARATION is a recognised status value, but no transition leads
    into or out of it.
    """

    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PREPARATION = "in_preparation"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

    @classmethod
    def from_string(cls, value: str) -> "OrderStatus":
        """Convert string to OrderStatus enum.

        Args:
            value: String representation of status

        Returns:
            OrderStatus enum value

        Raises:
            ValueError: If value is not a valid status
        """
        try:
            return cls(value.lower())
        except ValueError:
            valid_values = ", ".join([s.value for s in cls])
            raise ValueError(
                f"Invalid order status: {value}. "
                f"Valid values are: {valid_values}"
            )

    def is_terminal(self) -> bool:
        """Check if status is a terminal state."""
        return self in {OrderStatus.DELIVERED, OrderStatus.CANCELLED}

    def can_cancel(self) -> bool:
        """Check if order can be cancelled from current status."""
        return self in {OrderStatus.PENDING, OrderStatus.CONFIRMED}

    @property
    def display_name(self) -> str:
        """Get human-readable display name for status."""
        return self.value.replace("_", " ").title()


ORDER_STATUS_TRANSITIONS: Dict[OrderStatus, Set[OrderStatus]] = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.IN_PREPARATION: set(),
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
}


def validate_order_status_transition(
    current: OrderStatus,
    target: OrderStatus,
) -> bool:
    """Check whether an order may move from current to target status.

    Args:
        current: Current order status
        target: Requested order status

    Returns:
        True if the edge is in the transition table
    """
    return target in ORDER_STATUS_TRANSITIONS.get(current, set())


def get_allowed_order_transitions(current: OrderStatus) -> Set[OrderStatus]:
    """Get the statuses reachable in one step from current status."""
    return set(ORDER_STATUS_TRANSITIONS.get(current, set()))
