"""
Notification model for buyer-facing order notifications.

A notification is created once per significant order transition. The
recipient may be unknown locally (an identity-provider subject with no user
row yet); in that case the raw external id is kept for traceability and the
internal recipient stays empty.
"""

import enum
import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from orderhub.database.base import BaseModel, enum_values

if TYPE_CHECKING:
    from orderhub.database.models.order import Order


class NotificationType(str, enum.Enum):
    """Notification type enumeration for categorizing notifications."""

    ORDER_CREATED = "order_created"
    ORDER_CONFIRMED = "order_confirmed"
    ORDER_SHIPPED = "order_shipped"
    ORDER_DELIVERED = "order_delivered"
    ORDER_CANCELLED = "order_cancelled"

    @classmethod
    def from_string(cls, value: str) -> "NotificationType":
        """
        Convert string to NotificationType enum.

        Raises:
            ValueError: If value is not a valid notification type
        """
        try:
            return cls[value.upper()]
        except KeyError:
            raise ValueError(f"Invalid notification type: {value}")


MESSAGE_TEMPLATES = {
    NotificationType.ORDER_CREATED: "Order {short_id} created",
    NotificationType.ORDER_CONFIRMED: "Order {short_id} confirmed",
    NotificationType.ORDER_SHIPPED: "Order {short_id} shipped",
    NotificationType.ORDER_DELIVERED: "Order {short_id} delivered",
    NotificationType.ORDER_CANCELLED: "Order {short_id} cancelled",
}


class Notification(BaseModel):
    """
    Notification addressed to a buyer about one of their orders.

    Attributes:
        id: Notification identifier (UUID)
        recipient_user_id: Internal user id, None when unresolved
        recipient_external_id: Raw identity-provider subject of the recipient
        order_id: Related order
        notification_type: Kind of order event
        message: Human-readable message
        is_read: Read flag
        read_at: When the notification was marked as read
    """

    __tablename__ = "notifications"

    recipient_user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
        comment="Internal recipient",
    )

    recipient_external_id: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        index=True,
        comment="Raw external recipient id kept for traceability",
    )

    order_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    notification_type: Mapped[NotificationType] = mapped_column(
        SQLEnum(
            NotificationType,
            name="notification_type",
            create_constraint=True,
            values_callable=enum_values,
        ),
        nullable=False,
    )

    message: Mapped[str] = mapped_column(String(500), nullable=False)

    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    read_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    __table_args__ = (
        Index("ix_notifications_recipient_read", "recipient_user_id", "is_read"),
        {"comment": "Buyer notifications about order events"},
    )

    @classmethod
    def for_order(
        cls,
        order: "Order",
        notification_type: NotificationType,
        message: Optional[str] = None,
    ) -> "Notification":
        """
        Build a fully populated notification for an order event.

        The recipient key is the buyer's external id when known, otherwise
        the internal id. The message falls back to the template of the
        notification type.

        Args:
            order: Order the event belongs to
            notification_type: Kind of event
            message: Optional explicit message

        Returns:
            Transient Notification instance
        """
        return cls(
            id=uuid.uuid4(),
            recipient_user_id=order.buyer_internal_id,
            recipient_external_id=order.buyer_external_id,
            order_id=order.id,
            notification_type=notification_type,
            message=message or MESSAGE_TEMPLATES[notification_type].format(
                short_id=order.short_id
            ),
            is_read=False,
            read_at=None,
            created_at=datetime.now(timezone.utc),
        )

    @property
    def recipient_key(self) -> Optional[str]:
        """Recipient key, external id preferred over internal id."""
        if self.recipient_external_id:
            return self.recipient_external_id
        if self.recipient_user_id is not None:
            return str(self.recipient_user_id)
        return None

    @property
    def is_resolved(self) -> bool:
        """Check if the recipient is linked to a local user."""
        return self.recipient_user_id is not None

    def mark_as_read(self, when: datetime) -> None:
        if not self.is_read:
            self.is_read = True
            self.read_at = when

    def __repr__(self) -> str:
        return (
            f"<Notification(id={self.id}, type={self.notification_type.value}, "
            f"order_id={self.order_id})>"
        )
