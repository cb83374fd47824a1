"""
Product data access with atomic stock mutations.

Stock is never read, modified and written back. Reservations are a single
conditional UPDATE that only matches while stock covers the requested
quantity, so two concurrent orders cannot both take the last units.
"""

import uuid
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from orderhub.core.exceptions import PersistenceError
from orderhub.core.logging import get_logger
from orderhub.database.models.product import Product

logger = get_logger(__name__)


class ProductRepository:
    """
    Repository for product lookups and stock counters.

    Reads always refresh the identity map so callers see stock changed by
    earlier conditional updates in the same session.
    """

    def __init__(self, session: AsyncSession):
        """
        Initialize product repository.

        Args:
            session: Async database session
        """
        self.session = session

    async def get_by_id(self, product_id: uuid.UUID) -> Optional[Product]:
        """
        Get product by ID.

        Args:
            product_id: Product identifier

        Returns:
            Product if found, None otherwise

        Raises:
            PersistenceError: If the query fails
        """
        try:
            stmt = (
                select(Product)
                .where(Product.id == product_id)
                .execution_options(populate_existing=True)
            )
            result = await self.session.execute(stmt)
            return result.scalar_one_or_none()

        except SQLAlchemyError as e:
            logger.error(
                "Failed to load product",
                product_id=str(product_id),
                error=str(e),
            )
            raise PersistenceError(
                "Failed to load product",
                product_id=str(product_id),
                error=str(e),
            ) from e

    async def reserve_stock(self, product_id: uuid.UUID, quantity: int) -> bool:
        """
        Decrement stock and increment units sold if stock covers quantity.

        Args:
            product_id: Product identifier
            quantity: Units to reserve, positive

        Returns:
            True if the product row was updated

        Raises:
            ValueError: If quantity is not positive
            PersistenceError: If the update fails
        """
        if quantity <= 0:
            raise ValueError("Reservation quantity must be positive")

        try:
            stmt = (
                update(Product)
                .where(
                    Product.id == product_id,
                    Product.stock_quantity >= quantity,
                )
                .values(
                    stock_quantity=Product.stock_quantity - quantity,
                    units_sold=Product.units_sold + quantity,
                )
                .execution_options(synchronize_session=False)
            )
            result = await self.session.execute(stmt)
            reserved = result.rowcount == 1

            logger.info(
                "Stock reservation attempted",
                product_id=str(product_id),
                quantity=quantity,
                reserved=reserved,
            )
            return reserved

        except SQLAlchemyError as e:
            logger.error(
                "Stock reservation failed",
                product_id=str(product_id),
                quantity=quantity,
                error=str(e),
            )
            raise PersistenceError(
                "Failed to reserve stock",
                product_id=str(product_id),
                quantity=quantity,
                error=str(e),
            ) from e

    async def release_stock(self, product_id: uuid.UUID, quantity: int) -> bool:
        """
        Increment stock and decrement units sold.

        Args:
            product_id: Product identifier
            quantity: Units to release, positive

        Returns:
            True if the product row was updated, False if it no longer exists

        Raises:
            ValueError: If quantity is not positive
            PersistenceError: If the update fails
        """
        if quantity <= 0:
            raise ValueError("Release quantity must be positive")

        try:
            stmt = (
                update(Product)
                .where(Product.id == product_id)
                .values(
                    stock_quantity=Product.stock_quantity + quantity,
                    units_sold=Product.units_sold - quantity,
                )
                .execution_options(synchronize_session=False)
            )
            result = await self.session.execute(stmt)
            released = result.rowcount == 1

            logger.info(
                "Stock release attempted",
                product_id=str(product_id),
                quantity=quantity,
                released=released,
            )
            return released

        except SQLAlchemyError as e:
            logger.error(
                "Stock release failed",
                product_id=str(product_id),
                quantity=quantity,
                error=str(e),
            )
            raise PersistenceError(
                "Failed to release stock",
                product_id=str(product_id),
                quantity=quantity,
                error=str(e),
            ) from e
