"""
Tests for UserRepository identity resolution with a mocked async session.
"""

import uuid
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import SQLAlchemyError

from orderhub.core.exceptions import PersistenceError
from orderhub.services.identity.repository import UserRepository


@pytest.fixture
def user_repository(mock_session) -> UserRepository:
    return UserRepository(session=mock_session)


def _scalar(value) -> MagicMock:
    result = MagicMock()
    result.scalar_one_or_none.return_value = value
    return result


class TestResolveInternalRef:
    """Test resolve_internal_ref."""

    @pytest.mark.asyncio
    async def test_uuid_matches_user_id(self, user_repository, mock_session):
        user_id = uuid.uuid4()
        mock_session.execute.return_value = _scalar(user_id)

        assert await user_repository.resolve_internal_ref(str(user_id)) == user_id
        assert mock_session.execute.await_count == 1

    @pytest.mark.asyncio
    async def test_external_subject_tries_each_column(
        self, user_repository, mock_session
    ):
        user_id = uuid.uuid4()
        mock_session.execute.side_effect = [_scalar(None), _scalar(user_id)]

        assert await user_repository.resolve_internal_ref("kc-7781") == user_id
        assert mock_session.execute.await_count == 2

    @pytest.mark.asyncio
    async def test_unknown_uuid_falls_back_to_external_columns(
        self, user_repository, mock_session
    ):
        mock_session.execute.side_effect = [_scalar(None)] * 4

        assert await user_repository.resolve_internal_ref(str(uuid.uuid4())) is None
        assert mock_session.execute.await_count == 4

    @pytest.mark.asyncio
    async def test_unknown_identifier(self, user_repository, mock_session):
        mock_session.execute.side_effect = [_scalar(None)] * 3

        assert await user_repository.resolve_internal_ref("auth0|ghost") is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("identifier", ["", "   ", None])
    async def test_blank_identifier(self, user_repository, mock_session, identifier):
        assert await user_repository.resolve_internal_ref(identifier) is None
        mock_session.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_wraps_database_errors(self, user_repository, mock_session):
        mock_session.execute.side_effect = SQLAlchemyError("connection lost")

        with pytest.raises(PersistenceError):
            await user_repository.resolve_internal_ref("auth0|x")
