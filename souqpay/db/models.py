"""
Async SQLAlchemy models. No ORM-side business logic; status transitions
live in the order store.
"""
from datetime import datetime, timezone

import sqlalchemy as sa
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()

ORDER_PENDING = "pending"
ORDER_CONFIRMED = "confirmed"
ORDER_FAILED = "failed"
TERMINAL_STATUSES = frozenset({ORDER_CONFIRMED, ORDER_FAILED})


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Order(Base):
    __tablename__ = "orders"
    id = sa.Column(sa.Text(), primary_key=True)
    amount = sa.Column(sa.Numeric(36, 18), nullable=False)
    expected_amount = sa.Column(sa.Numeric(36, 18), nullable=False)
    crypto = sa.Column(sa.Text(), nullable=False)
    admin_wallet = sa.Column(sa.Text(), nullable=False)
    customer_email = sa.Column(sa.Text(), nullable=False)
    customer_name = sa.Column(sa.Text(), nullable=False, server_default=sa.text("''"))
    tx_hash = sa.Column(sa.Text(), nullable=True)
    status = sa.Column(sa.Text(), nullable=False, server_default=sa.text("'pending'"))
    failure_reason = sa.Column(sa.Text(), nullable=True)
    created_at = sa.Column(sa.TIMESTAMP(timezone=True), nullable=False, default=utcnow, server_default=func.now())
    updated_at = sa.Column(sa.TIMESTAMP(timezone=True), nullable=False, default=utcnow, server_default=func.now())

    __table_args__ = (
        sa.CheckConstraint("status IN ('pending', 'confirmed', 'failed')", name="ck_orders_status"),
        sa.CheckConstraint("crypto IN ('btc', 'eth', 'usdt')", name="ck_orders_crypto"),
        sa.Index("idx_orders_status_created_at", "status", "created_at"),
        sa.Index("idx_orders_tx_hash", "tx_hash", unique=True),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_public(self) -> dict:
        return {
            "id": self.id,
            "amount": float(self.amount),
            "crypto": self.crypto,
            "adminWallet": self.admin_wallet,
            "status": self.status,
            "txHash": self.tx_hash,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }
