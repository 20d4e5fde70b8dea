"""
Alembic migration: Create product variant, order, order item and status
history tables.

Creates the enum types for order and payment status, the product_variants
table whose stock column the inventory ledger decrements conditionally, and
the order tables mirroring the order aggregate. Check constraints keep stock
non-negative and line quantities positive at the database level as well.

Revision ID: 001
Revises:
Create Date: 2026-10-19 09:00:00.000000
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

ORDER_STATUSES = ('PENDING', 'CREATED', 'PAID', 'SHIPPED', 'DELIVERED', 'CANCELLED')
PAYMENT_STATUSES = ('PENDING', 'PAID', 'FAILED')


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            'created_at',
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text('now()'),
            comment='Record creation timestamp',
        ),
        sa.Column(
            'updated_at',
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text('now()'),
            comment='Record last update timestamp',
        ),
    ]


def upgrade() -> None:
    """
    Upgrade database schema with the order engine tables.
    """
    op.execute(
        "CREATE TYPE order_status AS ENUM ("
        + ", ".join(f"'{s}'" for s in ORDER_STATUSES)
        + ")"
    )
    op.execute(
        "CREATE TYPE payment_status AS ENUM ("
        + ", ".join(f"'{s}'" for s in PAYMENT_STATUSES)
        + ")"
    )

    order_status = postgresql.ENUM(*ORDER_STATUSES, name='order_status', create_type=False)
    payment_status = postgresql.ENUM(
        *PAYMENT_STATUSES, name='payment_status', create_type=False
    )

    # Create product_variants table
    op.create_table(
        'product_variants',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('sku', sa.String(length=60), nullable=False, comment='Stock keeping unit'),
        sa.Column(
            'product_name',
            sa.String(length=200),
            nullable=False,
            server_default='',
            comment='Parent product name',
        ),
        sa.Column('color', sa.String(length=30), nullable=True),
        sa.Column('size', sa.String(length=10), nullable=True),
        sa.Column(
            'price',
            sa.Numeric(precision=10, scale=2),
            nullable=False,
            comment='Current catalog unit price',
        ),
        sa.Column(
            'stock',
            sa.Integer(),
            nullable=False,
            server_default='0',
            comment='Units free to sell',
        ),
        sa.Column(
            'active',
            sa.Boolean(),
            nullable=False,
            server_default=sa.true(),
            comment='Whether the variant accepts new reservations',
        ),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_product_variants'),
        sa.UniqueConstraint('sku', name='uq_product_variants_sku'),
        sa.CheckConstraint('stock >= 0', name='ck_product_variants_stock_non_negative'),
        sa.CheckConstraint('price >= 0', name='ck_product_variants_price_non_negative'),
        comment='Catalog variants and their free stock',
    )

    # Create orders table
    op.create_table(
        'orders',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column(
            'user_id',
            postgresql.UUID(as_uuid=True),
            nullable=False,
            comment='Owning user identifier',
        ),
        sa.Column('status', order_status, nullable=False, server_default='PENDING'),
        sa.Column(
            'payment_status', payment_status, nullable=False, server_default='PENDING'
        ),
        sa.Column('transaction_id', sa.String(length=255), nullable=True),
        sa.Column(
            'total_amount',
            sa.Numeric(precision=12, scale=2),
            nullable=False,
            server_default='0.00',
        ),
        sa.Column('shipping_address', sa.String(length=500), nullable=False),
        sa.Column('payment_method', sa.String(length=50), nullable=False),
        sa.Column('cancellation_reason', sa.String(length=500), nullable=True),
        sa.Column('confirmed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('shipped_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_orders'),
        sa.CheckConstraint('total_amount >= 0', name='ck_orders_total_non_negative'),
        comment='Customer orders',
    )

    op.create_index('ix_orders_user_id', 'orders', ['user_id'])
    op.create_index('ix_orders_status', 'orders', ['status'])
    op.create_index('ix_orders_user_created', 'orders', ['user_id', 'created_at'])

    # Create order_items table
    op.create_table(
        'order_items',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('order_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('variant_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('sku', sa.String(length=60), nullable=True),
        sa.Column('product_name', sa.String(length=200), nullable=True),
        sa.Column('color', sa.String(length=30), nullable=True),
        sa.Column('size', sa.String(length=10), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_order_items'),
        sa.ForeignKeyConstraint(
            ['order_id'],
            ['orders.id'],
            name='fk_order_items_order_id',
            ondelete='CASCADE',
        ),
        sa.CheckConstraint('quantity > 0', name='ck_order_items_quantity_positive'),
        sa.CheckConstraint(
            'unit_price >= 0', name='ck_order_items_unit_price_non_negative'
        ),
        comment='Individual items in an order',
    )

    op.create_index('ix_order_items_order', 'order_items', ['order_id'])
    op.create_index('ix_order_items_variant_id', 'order_items', ['variant_id'])

    # Create order_status_history table
    op.create_table(
        'order_status_history',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('order_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('sequence', sa.Integer(), nullable=False),
        sa.Column('from_status', order_status, nullable=False, comment='Previous status'),
        sa.Column('to_status', order_status, nullable=False, comment='New status'),
        sa.Column('changed_by', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column(
            'reason',
            sa.String(length=500),
            nullable=True,
            comment='Reason for status change',
        ),
        sa.Column('changed_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_order_status_history'),
        sa.ForeignKeyConstraint(
            ['order_id'],
            ['orders.id'],
            name='fk_order_status_history_order_id',
            ondelete='CASCADE',
        ),
        comment='Order status change history for audit trail',
    )

    op.create_index(
        'ix_order_status_history_order_sequence',
        'order_status_history',
        ['order_id', 'sequence'],
    )


def downgrade() -> None:
    """
    Downgrade database schema by removing the order engine tables.
    """
    op.drop_index(
        'ix_order_status_history_order_sequence',
        table_name='order_status_history',
    )
    op.drop_table('order_status_history')

    op.drop_index('ix_order_items_variant_id', table_name='order_items')
    op.drop_index('ix_order_items_order', table_name='order_items')
    op.drop_table('order_items')

    op.drop_index('ix_orders_user_created', table_name='orders')
    op.drop_index('ix_orders_status', table_name='orders')
    op.drop_index('ix_orders_user_id', table_name='orders')
    op.drop_table('orders')

    op.drop_table('product_variants')

    op.execute('DROP TYPE IF EXISTS payment_status')
    op.execute('DROP TYPE IF EXISTS order_status')
