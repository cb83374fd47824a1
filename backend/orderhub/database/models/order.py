"""
Order model for order lifecycle and status history tracking.

This module defines the Order aggregate together with its line items and
append-only status history. The model carries the lifecycle rules itself:
placing an order records the initial Pending entry, ``transition`` validates
each edge against the status table and appends exactly one history entry,
and ``validate_stock`` checks product availability before any stock is
touched. None of these methods perform I/O.
"""

import uuid
from collections import defaultdict
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Mapping, Optional, Sequence

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
)
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from orderhub.core.exceptions import (
    InsufficientStockError,
    InvalidStateTransitionError,
    OrderValidationError,
    ProductNotFoundError,
)
from orderhub.database.base import (
    Base,
    BaseModel,
    UUIDMixin,
    enum_values,
    serialize_value,
)
from orderhub.services.identity.buyer import BuyerRef
from orderhub.services.orders.enums import (
    OrderStatus,
    get_allowed_order_transitions,
    validate_order_status_transition,
)
from orderhub.services.pricing.currency import Currency


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Order(BaseModel):
    """
    Buyer order tracked through the lifecycle.

    Attributes:
        id: Unique order identifier (UUID)
        buyer_internal_id: Internal user id of the buyer, None if unresolved
        buyer_external_id: Identity-provider subject of the buyer
        total: Sum of unit_price * quantity over all items
        currency: Currency every unit price is denominated in
        delivery_address: Structured delivery address stored as JSONB
        status: Current order status, equal to the last history entry
        items: Ordered line items
        status_history: Append-only status changes, oldest first
        created_at: Placement timestamp (from BaseModel)
        updated_at: Last modification timestamp (from BaseModel)
    """

    __tablename__ = "orders"

    buyer_internal_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
        comment="Internal user id of the buyer",
    )

    buyer_external_id: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        index=True,
        comment="Identity-provider subject of the buyer",
    )

    # Unconstrained NUMERIC keeps converted prices exact
    total: Mapped[Decimal] = mapped_column(
        Numeric(),
        nullable=False,
        comment="Sum of line totals in order currency",
    )

    currency: Mapped[Currency] = mapped_column(
        SQLEnum(
            Currency,
            name="currency",
            create_constraint=True,
            values_callable=enum_values,
        ),
        nullable=False,
        comment="Order currency",
    )

    delivery_address: Mapped[dict[str, Any]] = mapped_column(
        JSONB,
        nullable=False,
        default=dict,
        comment="Delivery address stored as JSONB",
    )

    status: Mapped[OrderStatus] = mapped_column(
        SQLEnum(
            OrderStatus,
            name="order_status",
            create_constraint=True,
            values_callable=enum_values,
        ),
        nullable=False,
        default=OrderStatus.PENDING,
        index=True,
        comment="Current order status",
    )

    items: Mapped[list["OrderItem"]] = relationship(
        "OrderItem",
        back_populates="order",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="OrderItem.position",
    )

    status_history: Mapped[list["OrderStatusHistory"]] = relationship(
        "OrderStatusHistory",
        back_populates="order",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="OrderStatusHistory.sequence",
    )

    __table_args__ = (
        Index("ix_orders_buyer_internal_status", "buyer_internal_id", "status"),
        Index("ix_orders_status_created", "status", "created_at"),
        CheckConstraint("total >= 0", name="ck_orders_total_non_negative"),
        {"comment": "Buyer orders with lifecycle status"},
    )

    @classmethod
    def place(
        cls,
        buyer: BuyerRef,
        items: Sequence["OrderItem"],
        currency: Currency,
        delivery_address: dict[str, Any],
        placed_by: Optional[str] = None,
    ) -> "Order":
        """
        Build a new Pending order.

        The total is computed from the items and the history starts with
        the initial Pending entry.

        Args:
            buyer: Buyer reference
            items: Line items with unit prices in the order currency
            currency: Order currency
            delivery_address: Structured delivery address
            placed_by: Acting user reference, defaults to the buyer

        Returns:
            Transient Order instance

        Raises:
            OrderValidationError: If no items are given
        """
        if not items:
            raise OrderValidationError("Order must contain at least one item")

        now = utcnow()
        order = cls(
            id=uuid.uuid4(),
            buyer_internal_id=buyer.internal_id,
            buyer_external_id=buyer.external_id,
            currency=currency,
            delivery_address=dict(delivery_address),
            status=OrderStatus.PENDING,
            created_at=now,
            updated_at=now,
        )
        for position, item in enumerate(items):
            item.position = position
            order.items.append(item)

        order.total = order.compute_total()
        order._record_status(
            OrderStatus.PENDING,
            previous_status=None,
            changed_by=placed_by or buyer.notification_key,
            reason="Order created",
            changed_at=now,
        )
        return order

    def compute_total(self) -> Decimal:
        """Sum unit_price * quantity over all items."""
        return sum((item.line_total for item in self.items), Decimal("0"))

    def transition(
        self,
        new_status: OrderStatus,
        acting_user_ref: Optional[str],
        reason: Optional[str] = None,
    ) -> "OrderStatusHistory":
        """
        Move the order to a new status.

        Args:
            new_status: Requested status
            acting_user_ref: User performing the change
            reason: Optional free-text reason

        Returns:
            The appended history entry

        Raises:
            InvalidStateTransitionError: If the edge is not allowed; status
                and history are left unchanged
        """
        current_status = self.status
        if not validate_order_status_transition(current_status, new_status):
            allowed = get_allowed_order_transitions(current_status)
            raise InvalidStateTransitionError(
                current_status,
                new_status,
                order_id=str(self.id),
                allowed_transitions=sorted(s.value for s in allowed),
            )

        now = utcnow()
        entry = self._record_status(
            new_status,
            previous_status=current_status,
            changed_by=acting_user_ref,
            reason=reason,
            changed_at=now,
        )
        self.status = new_status
        self.updated_at = now
        return entry

    def validate_stock(self, products: Mapping[uuid.UUID, Any]) -> None:
        """
        Check every line against current product stock.

        Quantities of lines sharing a product are added up before the check.

        Args:
            products: Products keyed by id

        Raises:
            ProductNotFoundError: If a line references an unknown product
            InsufficientStockError: If a product cannot cover its lines
        """
        required: dict[uuid.UUID, int] = defaultdict(int)
        for item in self.items:
            required[item.product_id] += item.quantity

        for product_id, quantity in required.items():
            product = products.get(product_id)
            if product is None:
                raise ProductNotFoundError(product_id)
            if product.stock_quantity < quantity:
                raise InsufficientStockError(
                    product_id,
                    requested=quantity,
                    available=product.stock_quantity,
                )

    def _record_status(
        self,
        status: OrderStatus,
        previous_status: Optional[OrderStatus],
        changed_by: Optional[str],
        reason: Optional[str],
        changed_at: datetime,
    ) -> "OrderStatusHistory":
        entry = OrderStatusHistory(
            id=uuid.uuid4(),
            sequence=len(self.status_history),
            previous_status=previous_status,
            status=status,
            changed_by=str(changed_by) if changed_by is not None else None,
            reason=reason,
            changed_at=changed_at,
        )
        self.status_history.append(entry)
        return entry

    @property
    def buyer(self) -> BuyerRef:
        """Buyer reference stored on the order."""
        return BuyerRef(
            internal_id=self.buyer_internal_id,
            external_id=self.buyer_external_id,
        )

    @property
    def current_status_from_history(self) -> Optional[OrderStatus]:
        """Status recorded by the last history entry."""
        if not self.status_history:
            return None
        return self.status_history[-1].status

    @property
    def can_cancel(self) -> bool:
        return self.status.can_cancel()

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal()

    @property
    def short_id(self) -> str:
        """First eight hex characters of the order id."""
        return self.id.hex[:8]

    def to_dict(self, exclude: Optional[set[str]] = None) -> dict[str, Any]:
        """Serialize order with items and history."""
        data = super().to_dict(exclude=exclude)
        data["items"] = [item.to_dict(exclude={"order_id"}) for item in self.items]
        data["status_history"] = [
            entry.to_dict(exclude={"order_id"}) for entry in self.status_history
        ]
        data["can_cancel"] = self.can_cancel
        return data

    def __repr__(self) -> str:
        return (
            f"<Order(id={self.id}, status={self.status.value}, "
            f"total={self.total} {self.currency.value})>"
        )


class OrderItem(Base, UUIDMixin):
    """
    Order line owned by its order.

    References the product by id only; the product may be deleted from the
    catalog after the order is placed.
    """

    __tablename__ = "order_items"

    order_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    product_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        nullable=False,
        index=True,
        comment="Referenced product, not owned",
    )

    product_name: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        comment="Product name at placement time",
    )

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    unit_price: Mapped[Decimal] = mapped_column(
        Numeric(),
        nullable=False,
        comment="Unit price in order currency",
    )

    order: Mapped["Order"] = relationship("Order", back_populates="items")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
        CheckConstraint(
            "unit_price >= 0", name="ck_order_items_unit_price_non_negative"
        ),
    )

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity

    def __repr__(self) -> str:
        return (
            f"<OrderItem(product_id={self.product_id}, quantity={self.quantity}, "
            f"unit_price={self.unit_price})>"
        )


class OrderStatusHistory(Base, UUIDMixin):
    """Single entry of an order's status audit trail. Never rewritten."""

    __tablename__ = "order_status_history"

    order_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    sequence: Mapped[int] = mapped_column(Integer, nullable=False)

    previous_status: Mapped[Optional[OrderStatus]] = mapped_column(
        SQLEnum(
            OrderStatus,
            name="order_status",
            create_constraint=True,
            values_callable=enum_values,
        ),
        nullable=True,
    )

    status: Mapped[OrderStatus] = mapped_column(
        SQLEnum(
            OrderStatus,
            name="order_status",
            create_constraint=True,
            values_callable=enum_values,
        ),
        nullable=False,
    )

    changed_by: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        comment="Acting user reference",
    )

    reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    changed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    order: Mapped["Order"] = relationship("Order", back_populates="status_history")

    __table_args__ = (
        Index(
            "ix_order_status_history_order_sequence",
            "order_id",
            "sequence",
            unique=True,
        ),
    )

    def to_dict(self, exclude: Optional[set[str]] = None) -> dict[str, Any]:
        exclude = exclude or set()
        return {
            key: serialize_value(getattr(self, key))
            for key in (
                "sequence",
                "previous_status",
                "status",
                "changed_by",
                "reason",
                "changed_at",
            )
            if key not in exclude
        }
