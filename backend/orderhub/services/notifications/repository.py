"""
Notification data access repository.

Recipients are matched on the internal user id or on the raw external id,
so notifications stored before the buyer was linked to a local user stay
reachable.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional, Sequence

from sqlalchemy import or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, AsyncSessionTransaction

from orderhub.core.exceptions import PersistenceError
from orderhub.core.logging import get_logger
from orderhub.database.models.notification import Notification

logger = get_logger(__name__)


def _recipient_filter(internal_id: Optional[uuid.UUID], external_id: Optional[str]):
    conditions = []
    if internal_id is not None:
        conditions.append(Notification.recipient_user_id == internal_id)
    if external_id:
        conditions.append(Notification.recipient_external_id == external_id)
    if not conditions:
        raise ValueError("Recipient filter needs an internal or external id")
    return or_(*conditions)


class NotificationRepository:
    """Repository for notification persistence and read-state changes."""

    def __init__(self, session: AsyncSession):
        """
        Initialize notification repository.

        Args:
            session: Async database session
        """
        self.session = session

    def savepoint(self) -> AsyncSessionTransaction:
        """
        Open a SAVEPOINT in the current transaction.

        A failed statement inside the block rolls back to the savepoint only,
        so the order and stock changes of the same unit of work can still be
        committed.
        """
        return self.session.begin_nested()

    async def create(self, notification: Notification) -> Notification:
        """
        Persist a notification.

        Raises:
            PersistenceError: If the insert fails
        """
        try:
            self.session.add(notification)
            await self.session.flush()

            logger.info(
                "Notification persisted",
                notification_id=str(notification.id),
                order_id=str(notification.order_id),
                notification_type=notification.notification_type.value,
                resolved=notification.is_resolved,
            )
            return notification

        except SQLAlchemyError as e:
            logger.error(
                "Failed to persist notification",
                order_id=str(notification.order_id),
                error=str(e),
            )
            raise PersistenceError(
                "Failed to persist notification",
                order_id=str(notification.order_id),
                error=str(e),
            ) from e

    async def get_by_id(self, notification_id: uuid.UUID) -> Optional[Notification]:
        try:
            return await self.session.get(Notification, notification_id)
        except SQLAlchemyError as e:
            logger.error(
                "Failed to load notification",
                notification_id=str(notification_id),
                error=str(e),
            )
            raise PersistenceError(
                "Failed to load notification",
                notification_id=str(notification_id),
                error=str(e),
            ) from e

    async def list_for_recipient(
        self,
        internal_id: Optional[uuid.UUID],
        external_id: Optional[str],
        is_read: bool,
    ) -> Sequence[Notification]:
        """
        List a recipient's notifications by read state, newest first.

        Args:
            internal_id: Internal user id of the recipient
            external_id: Raw external id of the recipient
            is_read: Read state to filter on

        Returns:
            Matching notifications

        Raises:
            PersistenceError: If the query fails
        """
        try:
            stmt = (
                select(Notification)
                .where(
                    _recipient_filter(internal_id, external_id),
                    Notification.is_read.is_(is_read),
                )
                .order_by(Notification.created_at.desc())
            )
            result = await self.session.execute(stmt)
            return list(result.scalars().all())

        except SQLAlchemyError as e:
            logger.error(
                "Failed to list notifications",
                internal_id=str(internal_id) if internal_id else None,
                external_id=external_id,
                error=str(e),
            )
            raise PersistenceError(
                "Failed to list notifications",
                external_id=external_id,
                error=str(e),
            ) from e

    async def mark_as_read(self, notification_id: uuid.UUID) -> Optional[Notification]:
        """
        Mark a single notification as read.

        Returns:
            The notification, None if it does not exist
        """
        notification = await self.get_by_id(notification_id)
        if notification is None:
            return None

        try:
            notification.mark_as_read(datetime.now(timezone.utc))
            await self.session.flush()
            return notification

        except SQLAlchemyError as e:
            logger.error(
                "Failed to mark notification as read",
                notification_id=str(notification_id),
                error=str(e),
            )
            raise PersistenceError(
                "Failed to mark notification as read",
                notification_id=str(notification_id),
                error=str(e),
            ) from e

    async def mark_all_as_read(
        self,
        internal_id: Optional[uuid.UUID],
        external_id: Optional[str],
    ) -> int:
        """
        Mark every unread notification of a recipient as read.

        Returns:
            Number of notifications changed
        """
        try:
            stmt = (
                update(Notification)
                .where(
                    _recipient_filter(internal_id, external_id),
                    Notification.is_read.is_(False),
                )
                .values(is_read=True, read_at=datetime.now(timezone.utc))
                .execution_options(synchronize_session=False)
            )
            result = await self.session.execute(stmt)

            logger.info(
                "Notifications marked as read",
                external_id=external_id,
                count=result.rowcount,
            )
            return result.rowcount

        except SQLAlchemyError as e:
            logger.error(
                "Failed to mark notifications as read",
                external_id=external_id,
                error=str(e),
            )
            raise PersistenceError(
                "Failed to mark notifications as read",
                external_id=external_id,
                error=str(e),
            ) from e
