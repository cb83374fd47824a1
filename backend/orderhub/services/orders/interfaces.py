"""
Interfaces/Protocols for the stores the order engine collaborates with.

The lifecycle service depends on these contracts only. SQLAlchemy
implementations live next to each service; tests use in-memory fakes.
"""

import uuid
from typing import Any, AsyncContextManager, Optional, Protocol, Sequence

from orderhub.database.models.notification import Notification
from orderhub.database.models.order import Order, OrderStatusHistory
from orderhub.database.models.product import Product
from orderhub.services.orders.enums import OrderStatus


class ProductStore(Protocol):
    """Product lookup and stock mutation."""

    async def get_by_id(self, product_id: uuid.UUID) -> Optional[Product]:
        """Load the current product state, None if it does not exist."""
        ...

    async def reserve_stock(self, product_id: uuid.UUID, quantity: int) -> bool:
        """
        Atomically take quantity out of stock and add it to units sold.

        Returns False, changing nothing, when stock cannot cover quantity or
        the product does not exist.
        """
        ...

    async def release_stock(self, product_id: uuid.UUID, quantity: int) -> bool:
        """
        Atomically put quantity back into stock and take it off units sold.

        Returns False when the product no longer exists.
        """
        ...


class OrderStore(Protocol):
    """Order persistence."""

    async def create(self, order: Order) -> Order: ...

    async def get_by_id(
        self, order_id: uuid.UUID, for_update: bool = False
    ) -> Optional[Order]:
        """Load an order, locking its row for the transaction when for_update."""
        ...

    async def list_by_buyer_internal(self, buyer_id: uuid.UUID) -> Sequence[Order]: ...

    async def list_by_buyer_external(self, external_id: str) -> Sequence[Order]: ...

    async def update_status(
        self,
        order_id: uuid.UUID,
        status: OrderStatus,
        history: Sequence[OrderStatusHistory],
    ) -> Order: ...


class NotificationStore(Protocol):
    """Notification persistence."""

    def savepoint(self) -> AsyncContextManager[Any]:
        """
        Scope in which a failure discards only the notification work.

        Everything written inside is undone when the block raises; work done
        before the block, in the same transaction, stays intact.
        """
        ...

    async def create(self, notification: Notification) -> Notification: ...

    async def get_by_id(self, notification_id: uuid.UUID) -> Optional[Notification]: ...

    async def list_for_recipient(
        self,
        internal_id: Optional[uuid.UUID],
        external_id: Optional[str],
        is_read: bool,
    ) -> Sequence[Notification]: ...

    async def mark_as_read(self, notification_id: uuid.UUID) -> Optional[Notification]: ...

    async def mark_all_as_read(
        self,
        internal_id: Optional[uuid.UUID],
        external_id: Optional[str],
    ) -> int: ...


class IdentityResolver(Protocol):
    """Resolves an external or ambiguous identifier to an internal user id."""

    async def resolve_internal_ref(self, identifier: str) -> Optional[uuid.UUID]: ...
