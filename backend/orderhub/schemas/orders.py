"""
Order Pydantic schemas for input validation.

This module defines the schemas the lifecycle service validates order
placement and status-change input against before any side effect: order
lines, the structured delivery address and the status-change payload.
"""

from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


class OrderItemRequest(BaseModel):
    """Requested order line."""

    model_config = ConfigDict(frozen=True)

    product_id: UUID = Field(
        ...,
        description="Product to order",
    )
    quantity: int = Field(
        ...,
        gt=0,
        description="Units to order",
    )


class DeliveryAddress(BaseModel):
    """Structured delivery address."""

    model_config = ConfigDict(
        str_strip_whitespace=True,
        validate_assignment=True,
    )

    street: str = Field(
        ...,
        min_length=1,
        max_length=255,
        description="Street name",
    )
    number: int = Field(
        ...,
        gt=0,
        description="Street number",
    )
    postal_code: str = Field(
        ...,
        min_length=1,
        max_length=20,
        description="Postal code",
    )
    city: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="City",
    )
    province: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Province or state",
    )
    country: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Country",
    )
    floor: Optional[int] = Field(
        None,
        gt=0,
        description="Floor number",
    )
    unit: Optional[str] = Field(
        None,
        min_length=1,
        max_length=5,
        description="Apartment or unit",
    )
    latitude: Optional[str] = Field(
        None,
        min_length=1,
        max_length=20,
        description="Latitude",
    )
    longitude: Optional[str] = Field(
        None,
        min_length=1,
        max_length=20,
        description="Longitude",
    )


class OrderCreateRequest(BaseModel):
    """Order placement input."""

    items: list[OrderItemRequest] = Field(
        ...,
        min_length=1,
        description="Order lines",
    )
    currency: str = Field(
        ...,
        min_length=1,
        description="Order currency code or legacy label",
    )
    delivery_address: DeliveryAddress = Field(
        ...,
        description="Delivery address",
    )

    @field_validator("currency")
    @classmethod
    def strip_currency(cls, v: str) -> str:
        return v.strip()


class OrderActionRequest(BaseModel):
    """Status-change input: the acting user and an optional reason."""

    model_config = ConfigDict(str_strip_whitespace=True)

    acting_user_ref: str = Field(
        ...,
        min_length=1,
        description="User performing the change",
    )
    reason: Optional[str] = Field(
        None,
        min_length=1,
        max_length=500,
        description="Reason for the change",
    )
