"""
Database models package initialization.

Models are imported here so they are registered with the Base metadata for
mapper configuration and Alembic migrations.
"""

from orderhub.database.base import Base, BaseModel, TimestampMixin, UUIDMixin
from orderhub.database.models.user import User
from orderhub.database.models.product import Product
from orderhub.database.models.order import Order, OrderItem, OrderStatusHistory
from orderhub.database.models.notification import Notification, NotificationType

__all__ = [
    "Base",
    "BaseModel",
    "TimestampMixin",
    "UUIDMixin",
    "User",
    "Product",
    "Order",
    "OrderItem",
    "OrderStatusHistory",
    "Notification",
    "NotificationType",
]
