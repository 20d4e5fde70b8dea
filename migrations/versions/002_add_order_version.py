"""
Alembic migration: Add an optimistic concurrency version to orders.

Every order save bumps ``orders.version`` while holding the row lock; a save
made from a copy whose version no longer matches the stored one is refused,
so two service processes can never both commit changes derived from the
same snapshot of an order.

Revision ID: 002
Revises: 001
Create Date: 2026-10-19 15:30:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# Revision identifiers, used by Alembic
revision: str = '002'
down_revision: Union[str, None] = '001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column(
        'orders',
        sa.Column(
            'version',
            sa.Integer(),
            nullable=False,
            server_default='0',
            comment='Incremented on every save; used to reject stale writes',
        ),
    )


def downgrade() -> None:
    op.drop_column('orders', 'version')
