"""
Buyer reference spanning the internal and external identifier spaces.

A buyer is known either by the internal user id (a UUID) or by the subject
issued by the external identity provider (``auth0|...``, a Keycloak id or an
email). Orders store both when available.

Precedence:
- notifications are addressed by the external id first, internal id second;
- order history lookups try the internal id, then the external id, then an
  identity-resolution lookup for identifiers that are not UUID-shaped.
"""

import uuid
from dataclasses import dataclass
from typing import Any, Optional


def parse_internal_id(identifier: Any) -> Optional[uuid.UUID]:
    """
    Parse an identifier as an internal user id.

    Args:
        identifier: UUID or string

    Returns:
        UUID when the identifier has the internal-id shape, otherwise None
    """
    if isinstance(identifier, uuid.UUID):
        return identifier
    if not isinstance(identifier, str):
        return None
    try:
        return uuid.UUID(identifier.strip())
    except ValueError:
        return None


def is_internal_shape(identifier: Any) -> bool:
    """Check whether an identifier looks like an internal user id."""
    return parse_internal_id(identifier) is not None


@dataclass(frozen=True)
class BuyerRef:
    """
    Reference to the ordering party.

    Attributes:
        internal_id: Internal user id, None while unresolved
        external_id: Identity-provider subject, kept for traceability
    """

    internal_id: Optional[uuid.UUID] = None
    external_id: Optional[str] = None

    def __post_init__(self) -> None:
        if self.internal_id is None and not self.external_id:
            raise ValueError("Buyer reference needs an internal or external id")
        if self.external_id is not None:
            object.__setattr__(self, "external_id", str(self.external_id))

    @classmethod
    def parse(cls, identifier: Any) -> "BuyerRef":
        """
        Classify a raw identifier.

        UUID-shaped identifiers become internal ids, anything else is kept
        as an external id.
        """
        internal_id = parse_internal_id(identifier)
        if internal_id is not None:
            return cls(internal_id=internal_id)
        return cls(external_id=str(identifier))

    @property
    def is_resolved(self) -> bool:
        """Check if the internal id is known."""
        return self.internal_id is not None

    @property
    def notification_key(self) -> str:
        """Recipient key for notifications, external id preferred."""
        if self.external_id:
            return self.external_id
        return str(self.internal_id)

    def with_internal_id(self, internal_id: Optional[uuid.UUID]) -> "BuyerRef":
        """Return a copy carrying the resolved internal id."""
        if internal_id is None:
            return self
        return BuyerRef(internal_id=internal_id, external_id=self.external_id)

    def __str__(self) -> str:
        return self.notification_key
