import logging
import secrets
import string
import time
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from souqpay.api.deps import get_scheduler, get_store, get_verifier
from souqpay.core.config import settings
from souqpay.core.errors import ConfigurationError, NotFoundError, ValidationError
from souqpay.orders.store import OrderStore
from souqpay.payments.scheduler import PollScheduler
from souqpay.payments.verifier import OrderVerifier, normalize_currency

logger = logging.getLogger("souqpay.api.orders")
router = APIRouter()

ORDER_ID_ALPHABET = string.ascii_lowercase + string.digits


def new_order_id() -> str:
    suffix = "".join(secrets.choice(ORDER_ID_ALPHABET) for _ in range(9))
    return f"ORD-{int(time.time() * 1000)}-{suffix}"


class CreateOrderReq(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    amount: Optional[Decimal] = None
    crypto: Optional[str] = None
    customer_email: Optional[str] = Field(None, alias="customerEmail")
    customer_name: Optional[str] = Field(None, alias="customerName")


class CheckPaymentReq(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    order_id: Optional[str] = Field(None, alias="orderId")
    crypto: Optional[str] = None
    tx_hash: Optional[str] = Field(None, alias="txHash")


@router.post("/create-order")
async def create_order(req: CreateOrderReq, store: OrderStore = Depends(get_store)):
    if not req.amount or not req.crypto or not req.customer_email:
        raise ValidationError()
    if req.amount <= 0:
        raise ValidationError("Amount must be positive", code="invalid_amount")
    crypto = normalize_currency(req.crypto)
    admin_wallet = settings.admin_wallet_for(crypto)
    if not admin_wallet:
        logger.error("No admin wallet configured for %s", crypto)
        raise ConfigurationError("Failed to create order", code="wallet_not_configured")

    order = await store.create({
        "id": new_order_id(),
        "amount": req.amount,
        "expected_amount": req.amount,
        "crypto": crypto,
        "customer_email": req.customer_email,
        "customer_name": req.customer_name or "",
        "admin_wallet": admin_wallet,
    })
    return {
        "success": True,
        "order": {
            "id": order.id,
            "amount": float(order.amount),
            "crypto": order.crypto,
            "adminWallet": order.admin_wallet,
            "status": order.status,
            "createdAt": order.created_at.isoformat(),
        },
    }


def _settled(order) -> dict:
    return {"success": True, "status": order.status, "txHash": order.tx_hash, "orderId": order.id}


@router.post("/check-payment")
async def check_payment(
    req: CheckPaymentReq,
    store: OrderStore = Depends(get_store),
    verifier: OrderVerifier = Depends(get_verifier),
):
    """
    Attach the customer's transaction hash to the order and check it once.
    An unknown transaction answers 404 but keeps the hash on the pending
    order, so the poller keeps looking for it. A hash already attached to
    another order answers 409.
    """
    if not req.order_id or not req.crypto or not req.tx_hash:
        raise ValidationError()
    crypto = normalize_currency(req.crypto)
    # hex hashes compare case-insensitively; store one spelling so reuse is caught
    tx_hash = req.tx_hash.strip().lower()

    order = await store.get(req.order_id)
    if order.crypto != crypto:
        raise ValidationError("Currency does not match order", code="currency_mismatch")
    if order.is_terminal:
        return _settled(order)
    if not verifier.client_for(crypto).validate_tx_hash(tx_hash):
        raise ValidationError("Invalid transaction hash", code="invalid_tx_hash")

    if order.tx_hash != tx_hash:
        attached = await store.attach_tx_hash(order.id, tx_hash)
        if attached is None:
            # settled by the poller since we read it
            return _settled(await store.get(order.id))
        order = attached

    result = await verifier.verify(order)
    if not result.found:
        raise NotFoundError("Transaction not found", code="tx_not_found")
    return {"success": True, "status": result.status, "txHash": tx_hash, "orderId": order.id}


@router.post("/poll-payments")
async def poll_payments(scheduler: PollScheduler = Depends(get_scheduler)):
    summary = await scheduler.run_cycle()
    return summary.to_dict()


@router.get("/orders/{order_id}")
async def get_order(order_id: str, store: OrderStore = Depends(get_store)):
    order = await store.get(order_id)
    return {"success": True, "order": order.to_public()}
