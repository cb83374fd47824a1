"""
Order lifecycle service orchestrating validation, stock and notifications.

This module implements the OrderService class for placing orders, moving
them through the lifecycle and listing a buyer's order history. Every
operation validates its input and the requested transition before any side
effect. Stock mutations are issued before the order is persisted and the
order is persisted before the buyer is notified. Notification failures never
fail an operation; they are logged and reported through
OrderOperationResult.
"""

import uuid
from dataclasses import dataclass
from typing import Any, Optional, Sequence, Union

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from orderhub.core.config import Settings, get_settings
from orderhub.core.exceptions import (
    OrderNotFoundError,
    OrderValidationError,
    ProductNotFoundError,
)
from orderhub.core.logging import get_logger, log_operation
from orderhub.database.models.notification import Notification, NotificationType
from orderhub.database.models.order import Order, OrderItem
from orderhub.schemas.orders import OrderActionRequest, OrderCreateRequest
from orderhub.services.identity.buyer import BuyerRef, parse_internal_id
from orderhub.services.identity.repository import UserRepository
from orderhub.services.inventory.repository import ProductRepository
from orderhub.services.inventory.stock_reservation import StockReservationCoordinator
from orderhub.services.notifications.repository import NotificationRepository
from orderhub.services.notifications.service import (
    NotificationService,
    NotificationServiceError,
)
from orderhub.services.orders.enums import OrderStatus
from orderhub.services.orders.interfaces import (
    IdentityResolver,
    OrderStore,
    ProductStore,
)
from orderhub.services.orders.repository import OrderRepository
from orderhub.services.orders.state_machine import OrderStateMachine
from orderhub.services.pricing.currency import (
    Currency,
    CurrencyConverter,
    ExchangeRateTable,
)

logger = get_logger(__name__)


@dataclass
class OrderOperationResult:
    """
    Outcome of a mutating order operation.

    When a result is returned the order change has been flushed and commits
    with the enclosing session, also when the follow-up notification failed.
    In that case ``notification_error`` holds the error and ``is_partial`` is
    True.
    """

    order: Order
    notification: Optional[Notification] = None
    notification_error: Optional[NotificationServiceError] = None

    @property
    def is_partial(self) -> bool:
        return self.notification_error is not None


class OrderService:
    """
    Order lifecycle orchestrator.

    Attributes:
        products: Product store for lookups and stock mutations
        orders: Order store
        notification_service: Records buyer notifications
        identity: Resolves external buyer ids to internal user ids
        converter: Converts product prices into the order currency
        state_machine: Validates and applies status transitions
        reservations: Reserves and releases stock per order line
    """

    def __init__(
        self,
        products: ProductStore,
        orders: OrderStore,
        notification_service: NotificationService,
        identity: IdentityResolver,
        converter: CurrencyConverter,
        state_machine: Optional[OrderStateMachine] = None,
    ):
        self.products = products
        self.orders = orders
        self.notification_service = notification_service
        self.identity = identity
        self.converter = converter
        self.state_machine = state_machine or OrderStateMachine()
        self.reservations = StockReservationCoordinator(products)

    async def create_order(
        self,
        buyer: Union[BuyerRef, uuid.UUID, str],
        items: Sequence[Any],
        currency: Union[Currency, str],
        delivery_address: Any,
        placed_by: Optional[str] = None,
    ) -> OrderOperationResult:
        """
        Place a new order.

        Args:
            buyer: Buyer reference or raw buyer identifier
            items: Order lines, each with product_id and quantity
            currency: Order currency
            delivery_address: Structured delivery address
            placed_by: Acting user reference, defaults to the buyer

        Returns:
            Result holding the Pending order

        Raises:
            OrderValidationError: If the input is malformed
            UnsupportedCurrencyError: If the currency is unknown
            ProductNotFoundError: If a line references an unknown product
            InsufficientStockError: If stock cannot cover a line
            PersistenceError: If a store fails; any reserved stock has been
                released best effort
        """
        request = self._validate_create_request(items, currency, delivery_address)
        order_currency = Currency.parse(request.currency)
        buyer_ref = await self._resolve_buyer(buyer)

        with log_operation(
            logger,
            "order.create",
            actor=placed_by or buyer_ref.notification_key,
            buyer=buyer_ref.notification_key,
            line_count=len(request.items),
        ):
            products = {}
            lines = []
            for line in request.items:
                product = products.get(line.product_id)
                if product is None:
                    product = await self.products.get_by_id(line.product_id)
                    if product is None:
                        raise ProductNotFoundError(line.product_id)
                    products[line.product_id] = product

                unit_price = self.converter.convert(
                    product.price, product.currency, order_currency
                )
                lines.append(
                    OrderItem(
                        id=uuid.uuid4(),
                        product_id=product.id,
                        product_name=product.name,
                        quantity=line.quantity,
                        unit_price=unit_price,
                    )
                )

            order = Order.place(
                buyer_ref,
                lines,
                order_currency,
                request.delivery_address.model_dump(exclude_none=True),
                placed_by=placed_by,
            )
            order.validate_stock(products)

            await self.reservations.reserve_for_order(order)

            try:
                order = await self.orders.create(order)
            except Exception as e:
                logger.error(
                    "Order persistence failed after stock reservation",
                    order_id=str(order.id),
                    buyer=buyer_ref.notification_key,
                    stage="persist_order",
                    error=str(e),
                    error_type=type(e).__name__,
                )
                await self.reservations.rollback_reservation(order)
                raise

            logger.info(
                "Order created",
                order_id=str(order.id),
                buyer=buyer_ref.notification_key,
                total=str(order.total),
                currency=order.currency.value,
            )

        return await self._notify(order, NotificationType.ORDER_CREATED)

    async def cancel_order(
        self,
        order_id: uuid.UUID,
        acting_user_ref: Optional[str],
        reason: Optional[str] = None,
    ) -> OrderOperationResult:
        """
        Cancel a pending or confirmed order and return its stock.

        Raises:
            OrderNotFoundError: If the order does not exist
            InvalidStateTransitionError: If the order was already shipped,
                delivered or cancelled
            PersistenceError: If a store fails
        """
        return await self._change_status(
            order_id,
            OrderStatus.CANCELLED,
            acting_user_ref,
            reason,
            NotificationType.ORDER_CANCELLED,
        )

    async def confirm_order(
        self,
        order_id: uuid.UUID,
        acting_user_ref: Optional[str],
        reason: Optional[str] = None,
    ) -> OrderOperationResult:
        """Confirm a pending order. No notification is recorded."""
        return await self._change_status(
            order_id,
            OrderStatus.CONFIRMED,
            acting_user_ref,
            reason,
            None,
        )

    async def ship_order(
        self,
        order_id: uuid.UUID,
        acting_user_ref: Optional[str],
        reason: Optional[str] = None,
    ) -> OrderOperationResult:
        """Mark a confirmed order as shipped."""
        return await self._change_status(
            order_id,
            OrderStatus.SHIPPED,
            acting_user_ref,
            reason,
            NotificationType.ORDER_SHIPPED,
        )

    async def deliver_order(
        self,
        order_id: uuid.UUID,
        acting_user_ref: Optional[str],
        reason: Optional[str] = None,
    ) -> OrderOperationResult:
        """Mark a shipped order as delivered."""
        return await self._change_status(
            order_id,
            OrderStatus.DELIVERED,
            acting_user_ref,
            reason,
            NotificationType.ORDER_DELIVERED,
        )

    async def get_order(self, order_id: uuid.UUID) -> Order:
        """
        Get order by ID.

        Raises:
            OrderNotFoundError: If the order does not exist
        """
        return await self._load_order(order_id)

    async def _load_order(self, order_id: uuid.UUID, for_update: bool = False) -> Order:
        order = await self.orders.get_by_id(order_id, for_update=for_update)
        if order is None:
            logger.warning("Order not found", order_id=str(order_id))
            raise OrderNotFoundError(order_id)
        return order

    async def history_for_buyer(self, identifier: Any) -> list[Order]:
        """
        List a buyer's orders.

        Lookup order: orders stored under the identifier as internal id when
        it is UUID-shaped, then orders stored under it as external id, then,
        for identifiers that are not UUID-shaped, orders stored under the
        internal id it resolves to.

        Args:
            identifier: Internal user id or identity-provider subject

        Returns:
            Matching orders, empty when nothing matches
        """
        raw = str(identifier).strip() if identifier is not None else ""
        if not raw:
            raise OrderValidationError("Buyer identifier must not be empty")

        internal_id = parse_internal_id(raw)
        if internal_id is not None:
            orders = await self.orders.list_by_buyer_internal(internal_id)
            if orders:
                return list(orders)

        orders = await self.orders.list_by_buyer_external(raw)
        if orders:
            return list(orders)

        if internal_id is None:
            resolved = await self.identity.resolve_internal_ref(raw)
            if resolved is not None:
                logger.debug(
                    "Buyer history resolved through identity lookup",
                    identifier=raw,
                    user_id=str(resolved),
                )
                return list(await self.orders.list_by_buyer_internal(resolved))

        return []

    async def _change_status(
        self,
        order_id: uuid.UUID,
        target_status: OrderStatus,
        acting_user_ref: Optional[str],
        reason: Optional[str],
        notification_type: Optional[NotificationType],
    ) -> OrderOperationResult:
        action = self._validate_action_request(acting_user_ref, reason)

        with log_operation(
            logger,
            f"order.{target_status.value}",
            actor=action.acting_user_ref,
            order_id=str(order_id),
        ):
            order = await self._load_order(order_id, for_update=True)
            self.state_machine.apply_transition(
                order, target_status, action.acting_user_ref, action.reason
            )

            stage = "persist_status"
            try:
                if target_status == OrderStatus.CANCELLED:
                    stage = "release_stock"
                    await self.reservations.release_for_order(order)
                    stage = "persist_status"
                order = await self.orders.update_status(
                    order.id, order.status, order.status_history
                )
            except Exception as e:
                logger.error(
                    "Order status change failed after validation",
                    order_id=str(order.id),
                    buyer=order.buyer.notification_key,
                    target_status=target_status.value,
                    stage=stage,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise

        if notification_type is None:
            return OrderOperationResult(order=order)
        return await self._notify(order, notification_type)

    async def _notify(
        self,
        order: Order,
        notification_type: NotificationType,
    ) -> OrderOperationResult:
        try:
            notification = await self.notification_service.notify_order_event(
                order, notification_type
            )
        except NotificationServiceError as e:
            logger.error(
                "Failed to record order notification",
                order_id=str(order.id),
                buyer=order.buyer.notification_key,
                notification_type=notification_type.value,
                error=str(e),
            )
            # order change stays durable
            return OrderOperationResult(order=order, notification_error=e)

        return OrderOperationResult(order=order, notification=notification)

    async def _resolve_buyer(self, buyer: Union[BuyerRef, uuid.UUID, str]) -> BuyerRef:
        if isinstance(buyer, BuyerRef):
            buyer_ref = buyer
        else:
            raw = str(buyer).strip() if buyer is not None else ""
            if not raw:
                raise OrderValidationError("Buyer identifier must not be empty")
            buyer_ref = BuyerRef.parse(raw)

        if buyer_ref.is_resolved:
            return buyer_ref

        internal_id = await self.identity.resolve_internal_ref(buyer_ref.external_id)
        if internal_id is None:
            logger.info(
                "Buyer not linked to a local user",
                buyer_external_id=buyer_ref.external_id,
            )
        return buyer_ref.with_internal_id(internal_id)

    @staticmethod
    def _validate_create_request(
        items: Sequence[Any],
        currency: Union[Currency, str],
        delivery_address: Any,
    ) -> OrderCreateRequest:
        try:
            return OrderCreateRequest.model_validate(
                {
                    "items": items,
                    "currency": getattr(currency, "value", currency),
                    "delivery_address": delivery_address,
                }
            )
        except ValidationError as e:
            errors = _error_summary(e)
            logger.warning("Order request rejected", errors=errors)
            raise OrderValidationError("Invalid order request", errors=errors) from e

    @staticmethod
    def _validate_action_request(
        acting_user_ref: Optional[str],
        reason: Optional[str],
    ) -> OrderActionRequest:
        try:
            return OrderActionRequest(
                acting_user_ref=str(acting_user_ref) if acting_user_ref is not None else "",
                reason=reason,
            )
        except ValidationError as e:
            raise OrderValidationError(
                "Invalid status change request",
                errors=_error_summary(e),
            ) from e


def _error_summary(error: ValidationError) -> list[dict[str, str]]:
    return [
        {"loc": ".".join(str(part) for part in err["loc"]), "msg": err["msg"]}
        for err in error.errors()
    ]


def get_order_service(
    session: AsyncSession,
    settings: Optional[Settings] = None,
) -> OrderService:
    """
    Build an OrderService backed by the SQLAlchemy repositories.

    Args:
        session: Async database session spanning the operation
        settings: Application settings, cached settings by default

    Returns:
        OrderService instance
    """
    settings = settings or get_settings()
    identity = UserRepository(session)

    return OrderService(
        products=ProductRepository(session),
        orders=OrderRepository(session),
        notification_service=NotificationService(
            NotificationRepository(session),
            identity,
            enabled=settings.notifications_enabled,
        ),
        identity=identity,
        converter=CurrencyConverter(ExchangeRateTable.from_settings(settings)),
    )
