"""Initial schema for the checkout service

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'orders',
        sa.Column('id', sa.Text(), primary_key=True),
        sa.Column('amount', sa.Numeric(36, 18), nullable=False),
        sa.Column('expected_amount', sa.Numeric(36, 18), nullable=False),
        sa.Column('crypto', sa.Text(), nullable=False),
        sa.Column('admin_wallet', sa.Text(), nullable=False),
        sa.Column('customer_email', sa.Text(), nullable=False),
        sa.Column('customer_name', sa.Text(), nullable=False, server_default=sa.text("''")),
        sa.Column('tx_hash', sa.Text(), nullable=True),
        sa.Column('status', sa.Text(), nullable=False, server_default=sa.text("'pending'")),
        sa.Column('failure_reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.CheckConstraint("status IN ('pending', 'confirmed', 'failed')", name='ck_orders_status'),
        sa.CheckConstraint("crypto IN ('btc', 'eth', 'usdt')", name='ck_orders_crypto'),
    )
    op.create_index('idx_orders_status_created_at', 'orders', ['status', 'created_at'])
    op.create_index('idx_orders_tx_hash', 'orders', ['tx_hash'], unique=True)


def downgrade():
    op.drop_index('idx_orders_tx_hash', table_name='orders')
    op.drop_index('idx_orders_status_created_at', table_name='orders')
    op.drop_table('orders')
