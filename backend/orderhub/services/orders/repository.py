"""
Order data access repository.

This module implements the OrderRepository class providing async methods for
persisting orders with their items and history, looking orders up by id or
buyer, and saving status changes. Database errors are wrapped into
PersistenceError with structured logging; the enclosing session decides
whether to commit or roll back.
"""

import uuid
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from orderhub.core.exceptions import OrderNotFoundError, PersistenceError
from orderhub.core.logging import get_logger
from orderhub.database.models.order import Order, OrderStatusHistory
from orderhub.services.orders.enums import OrderStatus

logger = get_logger(__name__)


class OrderRepository:
    """
    Repository for order data access operations.

    Items and status history are loaded eagerly with every order.
    """

    def __init__(self, session: AsyncSession):
        """
        Initialize order repository.

        Args:
            session: Async database session
        """
        self.session = session

    async def create(self, order: Order) -> Order:
        """
        Persist a new order with its items and initial history.

        Args:
            order: Transient order

        Returns:
            Persisted order

        Raises:
            PersistenceError: If the insert is rejected
        """
        try:
            self.session.add(order)
            await self.session.flush()

            logger.info(
                "Order persisted",
                order_id=str(order.id),
                item_count=len(order.items),
                total=str(order.total),
            )
            return order

        except IntegrityError as e:
            logger.error(
                "Order creation failed - integrity error",
                order_id=str(order.id),
                error=str(e),
            )
            raise PersistenceError(
                "Order creation failed due to data integrity violation",
                order_id=str(order.id),
                error=str(e),
            ) from e
        except SQLAlchemyError as e:
            logger.error(
                "Order creation failed - database error",
                order_id=str(order.id),
                error=str(e),
            )
            raise PersistenceError(
                "Order creation failed due to database error",
                order_id=str(order.id),
                error=str(e),
            ) from e

    async def get_by_id(
        self, order_id: uuid.UUID, for_update: bool = False
    ) -> Optional[Order]:
        """
        Get order by ID.

        With ``for_update`` the order row stays locked until the enclosing
        transaction ends, so concurrent transitions of the same order run one
        after the other and each sees the status the previous one committed.

        Args:
            order_id: Order identifier
            for_update: Lock the order row and reload its state

        Returns:
            Order if found, None otherwise

        Raises:
            PersistenceError: If the query fails
        """
        try:
            stmt = select(Order).where(Order.id == order_id)
            if for_update:
                stmt = stmt.with_for_update(of=Order).execution_options(
                    populate_existing=True
                )
            result = await self.session.execute(stmt)
            return result.scalar_one_or_none()

        except SQLAlchemyError as e:
            logger.error(
                "Failed to load order",
                order_id=str(order_id),
                error=str(e),
            )
            raise PersistenceError(
                "Failed to load order",
                order_id=str(order_id),
                error=str(e),
            ) from e

    async def list_by_buyer_internal(self, buyer_id: uuid.UUID) -> Sequence[Order]:
        """Get orders whose internal buyer id matches, newest first."""
        return await self._list_where(
            Order.buyer_internal_id == buyer_id,
            buyer_internal_id=str(buyer_id),
        )

    async def list_by_buyer_external(self, external_id: str) -> Sequence[Order]:
        """Get orders whose external buyer id matches, newest first."""
        return await self._list_where(
            Order.buyer_external_id == external_id,
            buyer_external_id=external_id,
        )

    async def _list_where(self, criterion, **log_context) -> Sequence[Order]:
        try:
            result = await self.session.execute(
                select(Order).where(criterion).order_by(Order.created_at.desc())
            )
            orders = list(result.scalars().all())

            logger.debug(
                "Orders listed for buyer",
                count=len(orders),
                **log_context,
            )
            return orders

        except SQLAlchemyError as e:
            logger.error(
                "Failed to list buyer orders",
                error=str(e),
                **log_context,
            )
            raise PersistenceError(
                "Failed to list buyer orders",
                error=str(e),
                **log_context,
            ) from e

    async def update_status(
        self,
        order_id: uuid.UUID,
        status: OrderStatus,
        history: Sequence[OrderStatusHistory],
    ) -> Order:
        """
        Save a status change and any history entries not yet persisted.

        Existing history entries are never modified.

        Args:
            order_id: Order identifier
            status: New status
            history: Full status history of the order

        Returns:
            Updated order

        Raises:
            OrderNotFoundError: If the order does not exist
            PersistenceError: If the update fails
        """
        try:
            # identity-map lookup keeps unsaved changes on an already loaded order
            order = await self.session.get(Order, order_id)
            if order is None:
                raise OrderNotFoundError(order_id)

            order.status = status
            known = {entry.id for entry in order.status_history}
            for entry in history:
                if entry.id not in known:
                    order.status_history.append(entry)

            await self.session.flush()

            logger.info(
                "Order status saved",
                order_id=str(order_id),
                status=status.value,
                history_length=len(order.status_history),
            )
            return order

        except SQLAlchemyError as e:
            logger.error(
                "Failed to save order status",
                order_id=str(order_id),
                status=status.value,
                error=str(e),
            )
            raise PersistenceError(
                "Failed to save order status",
                order_id=str(order_id),
                status=status.value,
                error=str(e),
            ) from e
