"""
Notification service for buyer-facing order notifications.

This module provides the NotificationService class that records a
notification for significant order events and serves a recipient's inbox.
Recipients are addressed by the buyer's external id first; when only that is
known the service tries to resolve the internal user id and keeps the raw
external id when the lookup finds nobody. An unknown recipient is never an
error.

Recording runs inside a savepoint of the notification store, so a failed
notification is rolled back on its own and the order change made earlier in
the same transaction can still commit.
"""

import uuid
from typing import Any, Optional, Sequence

from orderhub.core.exceptions import NotFoundError, OrderHubError, OrderValidationError
from orderhub.core.logging import get_logger
from orderhub.database.models.notification import Notification, NotificationType
from orderhub.database.models.order import Order
from orderhub.services.identity.buyer import parse_internal_id
from orderhub.services.orders.interfaces import IdentityResolver, NotificationStore

logger = get_logger(__name__)


class NotificationServiceError(OrderHubError):
    """Raised when a notification cannot be recorded."""

    code = "NOTIFICATION_FAILURE"


class NotificationService:
    """
    Records order notifications and manages their read state.

    Delivery to the recipient (email, push, websocket) happens elsewhere;
    this service only persists what should be delivered.
    """

    def __init__(
        self,
        notifications: NotificationStore,
        identity: IdentityResolver,
        enabled: bool = True,
    ) -> None:
        """
        Initialize notification service.

        Args:
            notifications: Notification store
            identity: Resolver for external recipient ids
            enabled: When False, order events record nothing
        """
        self.notifications = notifications
        self.identity = identity
        self.enabled = enabled

    async def notify_order_event(
        self,
        order: Order,
        notification_type: NotificationType,
        message: Optional[str] = None,
    ) -> Optional[Notification]:
        """
        Record a notification for an order event.

        Args:
            order: Order the event belongs to
            notification_type: Kind of event
            message: Optional explicit message, templated otherwise

        Returns:
            Persisted notification, None when notifications are disabled

        Raises:
            NotificationServiceError: If the notification cannot be built or
                persisted
        """
        if not self.enabled:
            logger.debug(
                "Notifications disabled, event not recorded",
                order_id=str(order.id),
                notification_type=notification_type.value,
            )
            return None

        try:
            # the recipient lookup shares the transaction, so it runs inside too
            async with self.notifications.savepoint():
                notification = Notification.for_order(order, notification_type, message)

                if (
                    notification.recipient_user_id is None
                    and notification.recipient_external_id
                ):
                    notification.recipient_user_id = (
                        await self.identity.resolve_internal_ref(
                            notification.recipient_external_id
                        )
                    )
                    if notification.recipient_user_id is None:
                        logger.info(
                            "Notification recipient not linked to a local user",
                            order_id=str(order.id),
                            recipient_external_id=notification.recipient_external_id,
                        )

                created = await self.notifications.create(notification)

        except Exception as e:
            logger.error(
                "Failed to record notification",
                order_id=str(order.id),
                notification_type=notification_type.value,
                recipient=order.buyer.notification_key,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise NotificationServiceError(
                "Failed to record notification",
                order_id=str(order.id),
                notification_type=notification_type.value,
                error=str(e),
            ) from e

        logger.info(
            "Notification recorded",
            notification_id=str(created.id),
            order_id=str(order.id),
            notification_type=notification_type.value,
            recipient=created.recipient_key,
        )
        return created

    async def list_for_recipient(
        self,
        identifier: Any,
        read: bool = False,
    ) -> Sequence[Notification]:
        """
        List a recipient's notifications, newest first.

        Args:
            identifier: Internal id or external id of the recipient
            read: List read notifications instead of unread ones

        Returns:
            Matching notifications
        """
        internal_id, external_id = await self._recipient_keys(identifier)
        notifications = await self.notifications.list_for_recipient(
            internal_id, external_id, read
        )

        logger.debug(
            "Notifications listed",
            recipient=external_id,
            read=read,
            count=len(notifications),
        )
        return notifications

    async def mark_as_read(self, notification_id: uuid.UUID) -> Notification:
        """
        Mark a notification as read.

        Raises:
            NotFoundError: If the notification does not exist
        """
        notification = await self.notifications.mark_as_read(notification_id)
        if notification is None:
            raise NotFoundError(
                f"Notification {notification_id} not found",
                notification_id=str(notification_id),
            )

        logger.info("Notification marked as read", notification_id=str(notification_id))
        return notification

    async def mark_all_as_read(self, identifier: Any) -> int:
        """Mark every unread notification of a recipient as read."""
        internal_id, external_id = await self._recipient_keys(identifier)
        count = await self.notifications.mark_all_as_read(internal_id, external_id)

        logger.info(
            "All notifications marked as read",
            recipient=external_id,
            count=count,
        )
        return count

    async def _recipient_keys(
        self, identifier: Any
    ) -> tuple[Optional[uuid.UUID], str]:
        raw = str(identifier).strip()
        if not raw:
            raise OrderValidationError("Recipient identifier must not be empty")

        internal_id = parse_internal_id(raw)
        if internal_id is None:
            internal_id = await self.identity.resolve_internal_ref(raw)
        return internal_id, raw
