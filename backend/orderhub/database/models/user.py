"""
User model linking internal buyer ids to identity-provider subjects.

Local user rows are provisioned by the authentication layer; the order
engine only reads them to resolve an external subject or email to the
internal id.
"""

from typing import Optional

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from orderhub.database.base import BaseModel


class User(BaseModel):
    """
    Local user record.

    Attributes:
        id: Internal user identifier (UUID)
        email: Email address, unique when present
        auth0_id: Subject issued by the Auth0 tenant
        keycloak_id: Subject issued by the Keycloak realm
        display_name: Optional display name
    """

    __tablename__ = "users"

    email: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        unique=True,
        comment="User email address",
    )

    auth0_id: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        unique=True,
        comment="Auth0 subject identifier",
    )

    keycloak_id: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        unique=True,
        comment="Keycloak subject identifier",
    )

    display_name: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        comment="Display name",
    )

    __table_args__ = (
        {"comment": "Marketplace users linked to external identities"},
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email})>"
