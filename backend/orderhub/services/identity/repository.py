"""
User lookups used to resolve buyer identifiers.

Identifiers arrive either as internal user ids or as identity-provider
subjects. UUID-shaped identifiers are matched against ``users.id`` first;
everything else is matched against the Auth0 subject, the Keycloak id and
the email, in that order.
"""

import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from orderhub.core.exceptions import PersistenceError
from orderhub.core.logging import get_logger
from orderhub.database.models.user import User
from orderhub.services.identity.buyer import parse_internal_id

logger = get_logger(__name__)


class UserRepository:
    """Repository resolving external identifiers to internal user ids."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def resolve_internal_ref(self, identifier: str) -> Optional[uuid.UUID]:
        """
        Resolve an identifier to the internal user id.

        Args:
            identifier: Internal id, Auth0 subject, Keycloak id or email

        Returns:
            Internal user id, None when no user matches

        Raises:
            PersistenceError: If the lookup fails
        """
        if identifier is None or not str(identifier).strip():
            return None
        identifier = str(identifier).strip()

        try:
            internal_id = parse_internal_id(identifier)
            if internal_id is not None:
                result = await self.session.execute(
                    select(User.id).where(User.id == internal_id)
                )
                found = result.scalar_one_or_none()
                if found is not None:
                    return found

            for column in (User.auth0_id, User.keycloak_id, User.email):
                result = await self.session.execute(
                    select(User.id).where(column == identifier).limit(1)
                )
                found = result.scalar_one_or_none()
                if found is not None:
                    logger.debug(
                        "External identifier resolved",
                        identifier=identifier,
                        matched_on=column.key,
                        user_id=str(found),
                    )
                    return found

        except SQLAlchemyError as e:
            logger.error(
                "Identity resolution failed",
                identifier=identifier,
                error=str(e),
            )
            raise PersistenceError(
                "Identity resolution failed",
                identifier=identifier,
                error=str(e),
            ) from e

        logger.debug("Identifier not resolved", identifier=identifier)
        return None
