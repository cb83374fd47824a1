"""
Pytest configuration and shared test fixtures.

This module provides in-memory implementations of the product, order,
notification and identity stores together with fixtures wiring them into
the order lifecycle service. The in-memory stores yield to the event loop
on every call so concurrent operations interleave the way they do against a
real database.
"""

import asyncio
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Optional, Sequence
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from orderhub.core.config import Settings
from orderhub.core.exceptions import OrderNotFoundError, PersistenceError
from orderhub.core.logging import clear_context
from orderhub.database.models.notification import Notification
from orderhub.database.models.order import Order, OrderItem, OrderStatusHistory
from orderhub.database.models.product import Product
from orderhub.services.identity.buyer import BuyerRef
from orderhub.services.notifications.service import NotificationService
from orderhub.services.orders.enums import OrderStatus
from orderhub.services.orders.service import OrderService
from orderhub.services.pricing.currency import (
    Currency,
    CurrencyConverter,
    ExchangeRateTable,
)


# ============================================================================
# In-memory stores
# ============================================================================


class InMemoryProductStore:
    """Product store keeping products in a dict."""

    def __init__(self) -> None:
        self.products: dict[uuid.UUID, Product] = {}
        self.fail_reserve_for: set[uuid.UUID] = set()
        self.reserve_calls: list[tuple[uuid.UUID, int]] = []
        self.release_calls: list[tuple[uuid.UUID, int]] = []

    def add(self, product: Product) -> Product:
        self.products[product.id] = product
        return product

    async def get_by_id(self, product_id: uuid.UUID) -> Optional[Product]:
        await asyncio.sleep(0)
        return self.products.get(product_id)

    async def reserve_stock(self, product_id: uuid.UUID, quantity: int) -> bool:
        await asyncio.sleep(0)
        self.reserve_calls.append((product_id, quantity))
        if product_id in self.fail_reserve_for:
            raise PersistenceError("Failed to reserve stock", product_id=str(product_id))

        product = self.products.get(product_id)
        if product is None or product.stock_quantity < quantity:
            return False
        product.stock_quantity -= quantity
        product.units_sold += quantity
        return True

    async def release_stock(self, product_id: uuid.UUID, quantity: int) -> bool:
        await asyncio.sleep(0)
        self.release_calls.append((product_id, quantity))
        product = self.products.get(product_id)
        if product is None:
            return False
        product.stock_quantity += quantity
        product.units_sold -= quantity
        return True


class InMemoryOrderStore:
    """Order store keeping orders in a dict."""

    def __init__(self) -> None:
        self.orders: dict[uuid.UUID, Order] = {}
        self.fail_on_create = False
        self.fail_on_update = False
        self.locked_reads: list[uuid.UUID] = []

    async def create(self, order: Order) -> Order:
        await asyncio.sleep(0)
        if self.fail_on_create:
            raise PersistenceError("Order creation failed", order_id=str(order.id))
        self.orders[order.id] = order
        return order

    async def get_by_id(
        self, order_id: uuid.UUID, for_update: bool = False
    ) -> Optional[Order]:
        await asyncio.sleep(0)
        if for_update:
            self.locked_reads.append(order_id)
        return self.orders.get(order_id)

    async def list_by_buyer_internal(self, buyer_id: uuid.UUID) -> Sequence[Order]:
        await asyncio.sleep(0)
        return self._newest_first(
            o for o in self.orders.values() if o.buyer_internal_id == buyer_id
        )

    async def list_by_buyer_external(self, external_id: str) -> Sequence[Order]:
        await asyncio.sleep(0)
        return self._newest_first(
            o for o in self.orders.values() if o.buyer_external_id == external_id
        )

    async def update_status(
        self,
        order_id: uuid.UUID,
        status: OrderStatus,
        history: Sequence[OrderStatusHistory],
    ) -> Order:
        await asyncio.sleep(0)
        if self.fail_on_update:
            raise PersistenceError("Failed to save order status", order_id=str(order_id))
        order = self.orders.get(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        order.status = status
        return order

    @staticmethod
    def _newest_first(orders) -> list[Order]:
        return sorted(orders, key=lambda o: o.created_at, reverse=True)


class InMemoryNotificationStore:
    """Notification store keeping notifications in a list."""

    def __init__(self) -> None:
        self.notifications: list[Notification] = []
        self.fail_on_create = False
        self.savepoints = 0

    @asynccontextmanager
    async def savepoint(self):
        self.savepoints += 1
        checkpoint = len(self.notifications)
        try:
            yield
        except Exception:
            del self.notifications[checkpoint:]
            raise

    async def create(self, notification: Notification) -> Notification:
        await asyncio.sleep(0)
        if self.fail_on_create:
            raise PersistenceError("Failed to persist notification")
        self.notifications.append(notification)
        return notification

    async def get_by_id(self, notification_id: uuid.UUID) -> Optional[Notification]:
        return next((n for n in self.notifications if n.id == notification_id), None)

    async def list_for_recipient(
        self,
        internal_id: Optional[uuid.UUID],
        external_id: Optional[str],
        is_read: bool,
    ) -> Sequence[Notification]:
        matches = [
            n
            for n in self._for_recipient(internal_id, external_id)
            if n.is_read == is_read
        ]
        return sorted(matches, key=lambda n: n.created_at, reverse=True)

    async def mark_as_read(self, notification_id: uuid.UUID) -> Optional[Notification]:
        notification = await self.get_by_id(notification_id)
        if notification is not None:
            notification.mark_as_read(datetime.now(timezone.utc))
        return notification

    async def mark_all_as_read(
        self,
        internal_id: Optional[uuid.UUID],
        external_id: Optional[str],
    ) -> int:
        count = 0
        for notification in self._for_recipient(internal_id, external_id):
            if not notification.is_read:
                notification.mark_as_read(datetime.now(timezone.utc))
                count += 1
        return count

    def _for_recipient(self, internal_id, external_id) -> list[Notification]:
        return [
            n
            for n in self.notifications
            if (internal_id is not None and n.recipient_user_id == internal_id)
            or (external_id and n.recipient_external_id == external_id)
        ]


class InMemoryIdentityResolver:
    """Identity resolver backed by a dict of known identifiers."""

    def __init__(self) -> None:
        self.known: dict[str, uuid.UUID] = {}
        self.calls: list[str] = []

    def link(self, identifier: str, user_id: Optional[uuid.UUID] = None) -> uuid.UUID:
        user_id = user_id or uuid.uuid4()
        self.known[identifier] = user_id
        return user_id

    async def resolve_internal_ref(self, identifier: str) -> Optional[uuid.UUID]:
        await asyncio.sleep(0)
        self.calls.append(identifier)
        return self.known.get(identifier)


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def reset_log_context():
    """Clear logging context variables between tests."""
    yield
    clear_context()


@pytest.fixture
def test_settings() -> Settings:
    """Settings for the test environment with the default rate table."""
    return Settings(environment="test", log_level="DEBUG")


@pytest.fixture
def rate_table() -> ExchangeRateTable:
    return ExchangeRateTable.default()


@pytest.fixture
def converter(rate_table: ExchangeRateTable) -> CurrencyConverter:
    return CurrencyConverter(rate_table)


@pytest.fixture
def product_store() -> InMemoryProductStore:
    return InMemoryProductStore()


@pytest.fixture
def order_store() -> InMemoryOrderStore:
    return InMemoryOrderStore()


@pytest.fixture
def notification_store() -> InMemoryNotificationStore:
    return InMemoryNotificationStore()


@pytest.fixture
def identity() -> InMemoryIdentityResolver:
    return InMemoryIdentityResolver()


@pytest.fixture
def notification_service(
    notification_store: InMemoryNotificationStore,
    identity: InMemoryIdentityResolver,
) -> NotificationService:
    return NotificationService(notification_store, identity)


@pytest.fixture
def order_service(
    product_store: InMemoryProductStore,
    order_store: InMemoryOrderStore,
    notification_service: NotificationService,
    identity: InMemoryIdentityResolver,
    converter: CurrencyConverter,
) -> OrderService:
    """
    Create OrderService wired to the in-memory stores.

    Returns:
        OrderService: Service instance for testing
    """
    return OrderService(
        products=product_store,
        orders=order_store,
        notification_service=notification_service,
        identity=identity,
        converter=converter,
    )


@pytest.fixture
def make_product(product_store: InMemoryProductStore) -> Callable[..., Product]:
    """
    Factory registering a product in the in-memory store.

    Example:
        product = make_product(price="100", stock=10)
    """

    def _make(
        price: Any = "100",
        stock: int = 10,
        currency: Currency = Currency.ARS,
        name: str = "Mate gourd",
        units_sold: int = 0,
    ) -> Product:
        return product_store.add(
            Product(
                id=uuid.uuid4(),
                name=name,
                price=Decimal(str(price)),
                currency=currency,
                stock_quantity=stock,
                units_sold=units_sold,
            )
        )

    return _make


@pytest.fixture
def delivery_address() -> dict[str, Any]:
    """Valid delivery address payload."""
    return {
        "street": "Av. Corrientes",
        "number": 1234,
        "postal_code": "C1043",
        "city": "Buenos Aires",
        "province": "CABA",
        "country": "Argentina",
        "floor": 3,
        "unit": "B",
    }


@pytest.fixture
def buyer_external_id() -> str:
    return "auth0|buyer-42"


@pytest.fixture
def mock_session() -> AsyncMock:
    """
    Create mock async database session.

    Returns:
        AsyncMock: Mocked AsyncSession with common methods
    """
    session = AsyncMock(spec=AsyncSession)
    session.execute = AsyncMock()
    session.flush = AsyncMock()
    session.get = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.add = MagicMock()
    return session


@pytest.fixture
def make_order(delivery_address: dict[str, Any]) -> Callable[..., Order]:
    """
    Factory building a transient Pending order without touching any store.

    Example:
        order = make_order(lines=[(product_id, 2, "50")])
    """

    def _make(
        lines: Optional[Sequence[tuple[uuid.UUID, int, Any]]] = None,
        buyer: Optional[BuyerRef] = None,
        currency: Currency = Currency.ARS,
    ) -> Order:
        lines = lines or [(uuid.uuid4(), 3, "100")]
        items = [
            OrderItem(
                id=uuid.uuid4(),
                product_id=product_id,
                product_name="Mate gourd",
                quantity=quantity,
                unit_price=Decimal(str(unit_price)),
            )
            for product_id, quantity, unit_price in lines
        ]
        return Order.place(
            buyer or BuyerRef(external_id="auth0|buyer-42"),
            items,
            currency,
            delivery_address,
        )

    return _make
