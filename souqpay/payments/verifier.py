"""
OrderVerifier - decides the next status of one order from its chain's explorer.

Dispatch is by order.crypto only:
  btc  -> BitcoinClient.get_transaction_status
  eth  -> EthereumClient.get_transaction_status
  usdt -> EthereumClient.get_token_transfer_status (to admin_wallet, for expected_amount)

None / UNCONFIRMED leaves the order pending. CONFIRMED and FAILED are
written through OrderStore.transition. Explorer outages propagate to the
caller; they are never recorded as a failed payment.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from souqpay.chains.base import ConfirmationResult, ConfirmationState
from souqpay.chains.bitcoin_client import BitcoinClient
from souqpay.chains.ethereum_client import EthereumClient
from souqpay.core.config import SUPPORTED_CURRENCIES
from souqpay.core.errors import InvalidTransactionError, UnsupportedCurrencyError, ValidationError
from souqpay.db.models import ORDER_CONFIRMED, ORDER_FAILED, Order
from souqpay.orders.store import OrderStore

logger = logging.getLogger("souqpay.payments.verifier")


@dataclass
class VerificationResult:
    order_id: str
    status: str
    tx_hash: Optional[str]
    changed: bool = False
    found: bool = True
    reason: Optional[str] = None

    def to_dict(self) -> dict:
        return {"orderId": self.order_id, "status": self.status, "txHash": self.tx_hash}


def normalize_currency(crypto: str | None) -> str:
    code = (crypto or "").strip().lower()
    if code not in SUPPORTED_CURRENCIES:
        raise UnsupportedCurrencyError(code="unsupported_currency")
    return code


class OrderVerifier:
    def __init__(self, store: OrderStore, bitcoin: BitcoinClient, ethereum: EthereumClient):
        self.store = store
        self.bitcoin = bitcoin
        self.ethereum = ethereum

    def client_for(self, crypto: str):
        crypto = normalize_currency(crypto)
        return self.bitcoin if crypto == "btc" else self.ethereum

    async def _chain_status(self, order: Order, crypto: str) -> Optional[ConfirmationResult]:
        if crypto == "btc":
            return await self.bitcoin.get_transaction_status(order.tx_hash)
        if crypto == "eth":
            return await self.ethereum.get_transaction_status(order.tx_hash)
        return await self.ethereum.get_token_transfer_status(order.tx_hash, order.admin_wallet, order.expected_amount)

    async def verify(self, order: Order) -> VerificationResult:
        crypto = normalize_currency(order.crypto)
        if order.is_terminal:
            return VerificationResult(order.id, order.status, order.tx_hash)
        if not order.tx_hash:
            raise ValidationError("Order has no transaction hash", code="missing_tx_hash")

        try:
            result = await self._chain_status(order, crypto)
        except InvalidTransactionError:
            logger.info("Order %s has an invalid tx hash %s; failing it", order.id, order.tx_hash)
            result = ConfirmationResult.failed("invalid_tx_hash")

        if result is None:
            logger.debug("Order %s tx=%s not found yet", order.id, order.tx_hash)
            return VerificationResult(order.id, order.status, order.tx_hash, found=False)
        if result.state == ConfirmationState.UNCONFIRMED:
            logger.debug("Order %s tx=%s seen, confirmations=%s", order.id, order.tx_hash, result.confirmations)
            return VerificationResult(order.id, order.status, order.tx_hash)

        new_status = ORDER_CONFIRMED if result.state == ConfirmationState.CONFIRMED else ORDER_FAILED
        updated = await self.store.transition(order.id, new_status, failure_reason=result.reason)
        if updated is None:
            # Another writer finished this order first; report what the store holds
            current = await self.store.get(order.id)
            return VerificationResult(current.id, current.status, current.tx_hash, reason=current.failure_reason)

        logger.info("Order %s %s -> %s tx=%s reason=%s", order.id, order.status, new_status, order.tx_hash, result.reason)
        return VerificationResult(updated.id, updated.status, updated.tx_hash, changed=True, reason=result.reason)
