"""
Alembic migration: Initial order engine schema.

Creates users, products, orders, order_items, order_status_history and
notifications with their enum types, check constraints and lookup indexes.

Revision ID: 001
Revises:
Create Date: 2026-10-19 10:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# Revision identifiers, used by Alembic
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

currency_enum = postgresql.ENUM(
    'ARS', 'USD', 'BRL',
    name='currency',
    create_type=False,
)
order_status_enum = postgresql.ENUM(
    'pending',
    'confirmed',
    'in_preparation',
    'shipped',
    'delivered',
    'cancelled',
    name='order_status',
    create_type=False,
)
notification_type_enum = postgresql.ENUM(
    'order_created',
    'order_confirmed',
    'order_shipped',
    'order_delivered',
    'order_cancelled',
    name='notification_type',
    create_type=False,
)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            'created_at',
            sa.DateTime(timezone=True),
            server_default=sa.text('now()'),
            nullable=False,
        ),
        sa.Column(
            'updated_at',
            sa.DateTime(timezone=True),
            server_default=sa.text('now()'),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    """Create the order engine tables."""
    bind = op.get_bind()
    currency_enum.create(bind, checkfirst=True)
    order_status_enum.create(bind, checkfirst=True)
    notification_type_enum.create(bind, checkfirst=True)

    op.create_table(
        'users',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('auth0_id', sa.String(length=255), nullable=True),
        sa.Column('keycloak_id', sa.String(length=255), nullable=True),
        sa.Column('display_name', sa.String(length=255), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
        sa.UniqueConstraint('auth0_id'),
        sa.UniqueConstraint('keycloak_id'),
        comment='Marketplace users linked to external identities',
    )

    op.create_table(
        'products',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('price', sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column('currency', currency_enum, nullable=False),
        sa.Column('stock_quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('units_sold', sa.Integer(), nullable=False, server_default='0'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('price >= 0', name='ck_products_price_non_negative'),
        sa.CheckConstraint('stock_quantity >= 0', name='ck_products_stock_non_negative'),
        sa.CheckConstraint('units_sold >= 0', name='ck_products_units_sold_non_negative'),
        comment='Catalog products referenced by orders',
    )

    op.create_table(
        'orders',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('buyer_internal_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('buyer_external_id', sa.String(length=255), nullable=True),
        sa.Column('total', sa.Numeric(), nullable=False),
        sa.Column('currency', currency_enum, nullable=False),
        sa.Column(
            'delivery_address',
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
        ),
        sa.Column('status', order_status_enum, nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(
            ['buyer_internal_id'], ['users.id'], ondelete='SET NULL'
        ),
        sa.CheckConstraint('total >= 0', name='ck_orders_total_non_negative'),
        comment='Buyer orders with lifecycle status',
    )
    op.create_index('ix_orders_buyer_internal_id', 'orders', ['buyer_internal_id'])
    op.create_index('ix_orders_buyer_external_id', 'orders', ['buyer_external_id'])
    op.create_index('ix_orders_status', 'orders', ['status'])
    op.create_index(
        'ix_orders_buyer_internal_status', 'orders', ['buyer_internal_id', 'status']
    )
    op.create_index('ix_orders_status_created', 'orders', ['status', 'created_at'])

    op.create_table(
        'order_items',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('order_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('product_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('product_name', sa.String(length=255), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='CASCADE'),
        sa.CheckConstraint('quantity > 0', name='ck_order_items_quantity_positive'),
        sa.CheckConstraint(
            'unit_price >= 0', name='ck_order_items_unit_price_non_negative'
        ),
    )
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])
    op.create_index('ix_order_items_product_id', 'order_items', ['product_id'])

    op.create_table(
        'order_status_history',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('order_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('sequence', sa.Integer(), nullable=False),
        sa.Column('previous_status', order_status_enum, nullable=True),
        sa.Column('status', order_status_enum, nullable=False),
        sa.Column('changed_by', sa.String(length=255), nullable=True),
        sa.Column('reason', sa.String(length=500), nullable=True),
        sa.Column('changed_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='CASCADE'),
    )
    op.create_index(
        'ix_order_status_history_order_id', 'order_status_history', ['order_id']
    )
    op.create_index(
        'ix_order_status_history_order_sequence',
        'order_status_history',
        ['order_id', 'sequence'],
        unique=True,
    )

    op.create_table(
        'notifications',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('recipient_user_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('recipient_external_id', sa.String(length=255), nullable=True),
        sa.Column('order_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('notification_type', notification_type_enum, nullable=False),
        sa.Column('message', sa.String(length=500), nullable=False),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('read_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(
            ['recipient_user_id'], ['users.id'], ondelete='SET NULL'
        ),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='CASCADE'),
        comment='Buyer notifications about order events',
    )
    op.create_index(
        'ix_notifications_recipient_user_id', 'notifications', ['recipient_user_id']
    )
    op.create_index(
        'ix_notifications_recipient_external_id',
        'notifications',
        ['recipient_external_id'],
    )
    op.create_index('ix_notifications_order_id', 'notifications', ['order_id'])
    op.create_index(
        'ix_notifications_recipient_read',
        'notifications',
        ['recipient_user_id', 'is_read'],
    )


def downgrade() -> None:
    """Drop the order engine tables and enum types."""
    op.drop_table('notifications')
    op.drop_table('order_status_history')
    op.drop_table('order_items')
    op.drop_table('orders')
    op.drop_table('products')
    op.drop_table('users')

    bind = op.get_bind()
    notification_type_enum.drop(bind, checkfirst=True)
    order_status_enum.drop(bind, checkfirst=True)
    currency_enum.drop(bind, checkfirst=True)
