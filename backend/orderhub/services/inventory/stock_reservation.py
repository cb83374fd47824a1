"""
Stock reservation for placed and cancelled orders.

This module implements the StockReservationCoordinator, which takes stock
for every line of a new order and gives it back when an order is cancelled.
Lines are processed one at a time. Each reservation is an atomic conditional
decrement in the product store; when one is refused because a concurrent
order consumed the stock after validation, the lines already reserved are
released again before the error propagates.
"""

import uuid
from typing import Sequence

from orderhub.core.exceptions import InsufficientStockError
from orderhub.core.logging import get_logger
from orderhub.database.models.order import Order, OrderItem
from orderhub.services.orders.interfaces import ProductStore

logger = get_logger(__name__)


class StockReservationCoordinator:
    """
    Coordinates stock mutations for the lines of an order.

    Reservation increments units sold together with the stock decrement;
    release reverses both.
    """

    def __init__(self, products: ProductStore):
        """
        Initialize stock reservation coordinator.

        Args:
            products: Product store issuing the atomic stock mutations
        """
        self.products = products

    async def reserve_for_order(self, order: Order) -> None:
        """
        Reserve stock for every line of an order.

        Args:
            order: Order whose stock was validated

        Raises:
            InsufficientStockError: If a line can no longer be covered;
                earlier lines have been released
            PersistenceError: If the product store fails; earlier lines have
                been released best effort
        """
        reserved: list[OrderItem] = []

        for item in order.items:
            try:
                accepted = await self.products.reserve_stock(
                    item.product_id, item.quantity
                )
            except Exception as e:
                logger.error(
                    "Stock reservation interrupted",
                    order_id=str(order.id),
                    product_id=str(item.product_id),
                    reserved_lines=len(reserved),
                    total_lines=len(order.items),
                    error=str(e),
                    error_type=type(e).__name__,
                )
                await self._compensate(order, reserved)
                raise

            if not accepted:
                product = await self.products.get_by_id(item.product_id)
                available = product.stock_quantity if product is not None else 0
                logger.warning(
                    "Stock reservation refused",
                    order_id=str(order.id),
                    product_id=str(item.product_id),
                    requested=item.quantity,
                    available=available,
                    reserved_lines=len(reserved),
                )
                await self._compensate(order, reserved)
                raise InsufficientStockError(
                    item.product_id,
                    requested=item.quantity,
                    available=available,
                )

            reserved.append(item)

        logger.info(
            "Stock reserved for order",
            order_id=str(order.id),
            line_count=len(reserved),
        )

    async def release_for_order(self, order: Order) -> list[uuid.UUID]:
        """
        Return the stock of every line of an order.

        Products deleted after placement are skipped with a warning.

        Args:
            order: Order being cancelled

        Returns:
            Ids of products that no longer exist

        Raises:
            PersistenceError: If the product store fails
        """
        skipped: list[uuid.UUID] = []

        for item in order.items:
            released = await self.products.release_stock(item.product_id, item.quantity)
            if not released:
                logger.warning(
                    "Product missing on stock release, line skipped",
                    order_id=str(order.id),
                    product_id=str(item.product_id),
                    quantity=item.quantity,
                )
                skipped.append(item.product_id)

        logger.info(
            "Stock released for order",
            order_id=str(order.id),
            line_count=len(order.items),
            skipped_count=len(skipped),
        )
        return skipped

    async def rollback_reservation(self, order: Order) -> None:
        """
        Release a completed reservation after a later step failed.

        Best effort: release failures are logged and not raised.
        """
        logger.warning(
            "Rolling back stock reservation",
            order_id=str(order.id),
            line_count=len(order.items),
        )
        await self._compensate(order, order.items)

    async def _compensate(self, order: Order, reserved: Sequence[OrderItem]) -> None:
        for item in reversed(reserved):
            try:
                await self.products.release_stock(item.product_id, item.quantity)
            except Exception as e:
                logger.error(
                    "Stock compensation failed",
                    order_id=str(order.id),
                    product_id=str(item.product_id),
                    quantity=item.quantity,
                    error=str(e),
                )
