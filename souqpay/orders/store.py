"""
OrderStore - persistence for checkout orders.

The database is the source of truth for order status. Every write refreshes
updated_at; moves out of 'pending' go through transition(), which is
conditional on the row still being pending so a terminal order is never
downgraded or overwritten by a slower concurrent writer.
"""
import logging
from datetime import timedelta
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from souqpay.core.errors import ConflictError, NotFoundError, PersistenceError
from souqpay.db.models import ORDER_PENDING, Order, utcnow

logger = logging.getLogger("souqpay.orders.store")

ORDER_FIELDS = (
    "id",
    "amount",
    "expected_amount",
    "crypto",
    "admin_wallet",
    "customer_email",
    "customer_name",
    "tx_hash",
)


class OrderStore:
    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def create(self, order_data: dict) -> Order:
        now = utcnow()
        values = {k: v for k, v in order_data.items() if k in ORDER_FIELDS}
        order = Order(**values, status=ORDER_PENDING, created_at=now, updated_at=now)
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    session.add(order)
                    await session.flush()
        except IntegrityError as exc:
            logger.warning("Order insert rejected id=%s err=%s", order.id, exc.orig)
            raise PersistenceError(code="order_insert_rejected") from exc
        except (SQLAlchemyError, OSError) as exc:
            logger.exception("Order insert failed id=%s", order.id)
            raise PersistenceError(code="store_unavailable") from exc
        logger.info("Created order %s crypto=%s amount=%s", order.id, order.crypto, order.amount)
        return order

    async def get(self, order_id: str) -> Order:
        try:
            async with self.session_factory() as session:
                order = await session.get(Order, order_id)
        except (SQLAlchemyError, OSError) as exc:
            logger.exception("Order read failed id=%s", order_id)
            raise PersistenceError(code="store_unavailable") from exc
        if order is None:
            raise NotFoundError("Order not found", code="order_not_found")
        return order

    async def update(
        self,
        order_id: str,
        status: Optional[str] = None,
        tx_hash: Optional[str] = None,
        failure_reason: Optional[str] = None,
    ) -> Order:
        """Partial update. Only the given fields change; updated_at always does."""
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    order = await session.get(Order, order_id, with_for_update=True)
                    if order is None:
                        raise NotFoundError("Order not found", code="order_not_found")
                    if status is not None:
                        order.status = status
                    if tx_hash is not None:
                        order.tx_hash = tx_hash
                    if failure_reason is not None:
                        order.failure_reason = failure_reason
                    order.updated_at = utcnow()
                    await session.flush()
        except NotFoundError:
            raise
        except (SQLAlchemyError, OSError) as exc:
            logger.exception("Order update failed id=%s", order_id)
            raise PersistenceError(code="store_unavailable") from exc
        return order

    async def transition(self, order_id: str, status: str, failure_reason: Optional[str] = None) -> Optional[Order]:
        """
        Move a pending order to `status`. Returns None when the row was no
        longer pending (someone else already decided it).
        """
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    stmt = (
                        update(Order)
                        .where(Order.id == order_id, Order.status == ORDER_PENDING)
                        .values(status=status, failure_reason=failure_reason, updated_at=utcnow())
                        .execution_options(synchronize_session=False)
                    )
                    res = await session.execute(stmt)
                    if res.rowcount == 0:
                        logger.info("Order %s no longer pending; dropping transition to %s", order_id, status)
                        return None
                    order = await session.get(Order, order_id)
        except (SQLAlchemyError, OSError) as exc:
            logger.exception("Order transition failed id=%s status=%s", order_id, status)
            raise PersistenceError(code="store_unavailable") from exc
        return order

    async def attach_tx_hash(self, order_id: str, tx_hash: str) -> Optional[Order]:
        """
        Record the customer's transaction hash on a pending order. Returns None
        when the order is no longer pending; its stored hash is left alone.
        A hash already attached to another order raises ConflictError.
        """
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    claimed_by = await session.scalar(
                        select(Order.id).where(Order.tx_hash == tx_hash, Order.id != order_id).limit(1)
                    )
                    if claimed_by is not None:
                        logger.warning("Transaction %s already attached to order %s", tx_hash, claimed_by)
                        raise ConflictError(code="tx_hash_in_use")
                    stmt = (
                        update(Order)
                        .where(Order.id == order_id, Order.status == ORDER_PENDING)
                        .values(tx_hash=tx_hash, updated_at=utcnow())
                        .execution_options(synchronize_session=False)
                    )
                    res = await session.execute(stmt)
                    if res.rowcount == 0:
                        logger.info("Order %s not pending; keeping its stored tx hash", order_id)
                        return None
                    order = await session.get(Order, order_id)
        except IntegrityError as exc:
            # unique index on tx_hash lost a race with another attach
            logger.warning("Transaction %s already attached err=%s", tx_hash, exc.orig)
            raise ConflictError(code="tx_hash_in_use") from exc
        except (SQLAlchemyError, OSError) as exc:
            logger.exception("Attaching tx hash failed id=%s", order_id)
            raise PersistenceError(code="store_unavailable") from exc
        return order

    async def list_pending(self, limit: Optional[int] = None, max_age: Optional[timedelta] = None) -> list[Order]:
        """Pending orders, oldest first."""
        stmt = select(Order).where(Order.status == ORDER_PENDING).order_by(Order.created_at.asc(), Order.id.asc())
        if max_age is not None:
            stmt = stmt.where(Order.created_at >= utcnow() - max_age)
        if limit:
            stmt = stmt.limit(limit)
        try:
            async with self.session_factory() as session:
                res = await session.execute(stmt)
                return list(res.scalars().all())
        except (SQLAlchemyError, OSError) as exc:
            logger.exception("Pending order scan failed")
            raise PersistenceError(code="store_unavailable") from exc
