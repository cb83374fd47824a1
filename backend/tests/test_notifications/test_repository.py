"""
Tests for NotificationRepository with a mocked async session.
"""

import uuid
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import SQLAlchemyError

from orderhub.core.exceptions import PersistenceError
from orderhub.database.models.notification import Notification, NotificationType
from orderhub.services.notifications.repository import NotificationRepository


@pytest.fixture
def notification_repository(mock_session) -> NotificationRepository:
    return NotificationRepository(session=mock_session)


@pytest.fixture
def notification(make_order) -> Notification:
    return Notification.for_order(make_order(), NotificationType.ORDER_CREATED)


class TestCreate:
    """Test create."""

    @pytest.mark.asyncio
    async def test_adds_and_flushes(self, notification_repository, mock_session, notification):
        assert await notification_repository.create(notification) is notification

        mock_session.add.assert_called_once_with(notification)
        mock_session.flush.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_wraps_database_errors(
        self, notification_repository, mock_session, notification
    ):
        mock_session.flush.side_effect = SQLAlchemyError("connection lost")

        with pytest.raises(PersistenceError):
            await notification_repository.create(notification)


class TestSavepoint:
    """Test savepoint."""

    def test_opens_nested_transaction(self, notification_repository, mock_session):
        nested = MagicMock()
        mock_session.begin_nested = MagicMock(return_value=nested)

        assert notification_repository.savepoint() is nested
        mock_session.begin_nested.assert_called_once_with()


class TestReadState:
    """Test listing and marking notifications."""

    @pytest.mark.asyncio
    async def test_list_filters_on_both_keys(self, notification_repository, mock_session):
        result = MagicMock()
        result.scalars.return_value.all.return_value = []
        mock_session.execute.return_value = result

        await notification_repository.list_for_recipient(uuid.uuid4(), "kc-1", False)

        sql = str(mock_session.execute.await_args.args[0])
        assert "notifications.recipient_user_id =" in sql
        assert " OR notifications.recipient_external_id =" in sql
        assert "ORDER BY notifications.created_at DESC" in sql

    @pytest.mark.asyncio
    async def test_list_needs_a_recipient(self, notification_repository, mock_session):
        with pytest.raises(ValueError):
            await notification_repository.list_for_recipient(None, None, False)

        mock_session.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_mark_as_read(self, notification_repository, mock_session, notification):
        mock_session.get.return_value = notification

        marked = await notification_repository.mark_as_read(notification.id)

        assert marked.is_read is True
        assert marked.read_at is not None
        mock_session.flush.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_mark_as_read_missing(self, notification_repository, mock_session):
        mock_session.get.return_value = None

        assert await notification_repository.mark_as_read(uuid.uuid4()) is None
        mock_session.flush.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_mark_all_as_read_returns_rowcount(
        self, notification_repository, mock_session
    ):
        result = MagicMock()
        result.rowcount = 4
        mock_session.execute.return_value = result

        assert await notification_repository.mark_all_as_read(None, "kc-1") == 4
