"""
Product model as seen by the order engine.

The catalog owns the product lifecycle. Orders read the price/currency pair
at placement and move stock_quantity and units_sold as orders are placed
and cancelled.
"""

from decimal import Decimal

from sqlalchemy import CheckConstraint, Integer, Numeric, String
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from orderhub.database.base import BaseModel, enum_values
from orderhub.services.pricing.currency import Currency


class Product(BaseModel):
    """
    Catalog product with stock counters.

    Attributes:
        id: Product identifier (UUID)
        name: Product name
        price: Unit price in the product's native currency
        currency: Native currency of the price
        stock_quantity: Units available for new orders, never negative
        units_sold: Units committed to orders, never negative
    """

    __tablename__ = "products"

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Product name",
    )

    price: Mapped[Decimal] = mapped_column(
        Numeric(precision=14, scale=2),
        nullable=False,
        comment="Unit price in native currency",
    )

    currency: Mapped[Currency] = mapped_column(
        SQLEnum(
            Currency,
            name="currency",
            create_constraint=True,
            values_callable=enum_values,
        ),
        nullable=False,
        comment="Native currency of the price",
    )

    stock_quantity: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Units available",
    )

    units_sold: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Units committed to orders",
    )

    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_products_price_non_negative"),
        CheckConstraint(
            "stock_quantity >= 0", name="ck_products_stock_non_negative"
        ),
        CheckConstraint(
            "units_sold >= 0", name="ck_products_units_sold_non_negative"
        ),
        {"comment": "Catalog products referenced by orders"},
    )

    def __repr__(self) -> str:
        return (
            f"<Product(id={self.id}, name={self.name}, "
            f"stock_quantity={self.stock_quantity})>"
        )
