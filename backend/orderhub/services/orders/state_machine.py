"""Order state machine with transition validation.

This module implements the OrderStateMachine class used by the lifecycle
service to move orders between statuses. Transition rules come from the
status table in ``enums``; the order entity records the history entry.
"""

from typing import Optional

from orderhub.core.exceptions import InvalidStateTransitionError
from orderhub.core.logging import get_logger
from orderhub.database.models.order import Order, OrderStatusHistory
from orderhub.services.orders.enums import (
    OrderStatus,
    get_allowed_order_transitions,
    validate_order_status_transition,
)

logger = get_logger(__name__)


class OrderStateMachine:
    """State machine for order lifecycle transitions.

    Pending orders can be confirmed or cancelled, confirmed orders shipped or
    cancelled, shipped orders delivered. Delivered and cancelled orders are
    final.
    """

    def validate_transition(
        self,
        order: Order,
        target_status: OrderStatus,
        acting_user_ref: Optional[str] = None,
    ) -> bool:
        """Validate that the order may move to the target status.

        Args:
            order: Order to validate
            target_status: Desired target status
            acting_user_ref: User initiating the transition

        Returns:
            True if the transition is valid

        Raises:
            InvalidStateTransitionError: If the transition is not allowed
        """
        current_status = order.status

        logger.debug(
            "Validating state transition",
            order_id=str(order.id),
            current_status=current_status.value,
            target_status=target_status.value,
            acting_user=acting_user_ref,
        )

        if not validate_order_status_transition(current_status, target_status):
            allowed = self.get_allowed_transitions(order)
            logger.warning(
                "State transition rejected",
                order_id=str(order.id),
                current_status=current_status.value,
                target_status=target_status.value,
                allowed_transitions=sorted(s.value for s in allowed),
            )
            raise InvalidStateTransitionError(
                current_status,
                target_status,
                order_id=str(order.id),
                allowed_transitions=sorted(s.value for s in allowed),
            )

        return True

    def apply_transition(
        self,
        order: Order,
        target_status: OrderStatus,
        acting_user_ref: Optional[str],
        reason: Optional[str] = None,
    ) -> OrderStatusHistory:
        """Apply a state transition to the order.

        Args:
            order: Order to transition
            target_status: Target status
            acting_user_ref: User initiating the transition
            reason: Optional reason for the transition

        Returns:
            The appended history entry

        Raises:
            InvalidStateTransitionError: If the transition is not allowed
        """
        self.validate_transition(order, target_status, acting_user_ref)

        previous_status = order.status
        entry = order.transition(target_status, acting_user_ref, reason)

        logger.info(
            "State transition applied",
            order_id=str(order.id),
            transition=f"{previous_status.value}->{target_status.value}",
            acting_user=acting_user_ref,
            reason=reason,
        )
        return entry

    def get_allowed_transitions(self, order: Order) -> set[OrderStatus]:
        """Statuses the order may move to next."""
        return get_allowed_order_transitions(order.status)
