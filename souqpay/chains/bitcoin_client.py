"""
BitcoinClient - async client for an Esplora-compatible explorer (blockstream.info, mempool.space).

Endpoints used:
- /tx/{txid}/status     inclusion status of a transaction
- /blocks/tip/height    current chain height, for confirmation depth

A Bitcoin transaction is either eventually included or dropped from the
mempool; it never reports a failed state, so this client only ever answers
None, UNCONFIRMED or CONFIRMED.
"""
import logging
import re
from typing import Optional

import httpx

from souqpay.chains.base import ChainStatusClient, ConfirmationResult
from souqpay.core.errors import InvalidTransactionError, UpstreamChainError

logger = logging.getLogger("souqpay.chains.bitcoin")

TXID_PATTERN = re.compile(r"^[0-9a-fA-F]{64}$")


class BitcoinClient(ChainStatusClient):
    name = "bitcoin"

    def __init__(self, base_url: str, required_confirmations: int = 1, http_client: httpx.AsyncClient | None = None, timeout: float = 5.0):
        super().__init__(base_url, required_confirmations, http_client=http_client, timeout=timeout)

    def validate_tx_hash(self, tx_hash: str) -> bool:
        return bool(tx_hash) and TXID_PATTERN.match(tx_hash) is not None

    async def get_tip_height(self) -> int:
        r = await self._get(f"{self.base_url}/blocks/tip/height")
        if r.status_code != 200:
            raise UpstreamChainError(code=f"explorer_status_{r.status_code}")
        try:
            return int(r.text.strip())
        except ValueError as exc:
            raise UpstreamChainError(code="explorer_bad_payload") from exc

    async def get_transaction_status(self, tx_hash: str) -> Optional[ConfirmationResult]:
        r = await self._get(f"{self.base_url}/tx/{tx_hash}/status")
        if r.status_code == 404:
            logger.debug("Transaction %s not seen by explorer", tx_hash)
            return None
        if r.status_code == 400:
            raise InvalidTransactionError(code="invalid_tx_hash")
        if r.status_code != 200:
            raise UpstreamChainError(code=f"explorer_status_{r.status_code}")
        try:
            data = r.json()
            confirmed = bool(data["confirmed"])
        except (ValueError, KeyError, TypeError) as exc:
            raise UpstreamChainError(code="explorer_bad_payload") from exc

        if not confirmed:
            return ConfirmationResult.unconfirmed()
        if self.required_confirmations <= 1:
            return ConfirmationResult.confirmed(1)

        block_height = data.get("block_height")
        if block_height is None:
            raise UpstreamChainError(code="explorer_bad_payload")
        tip = await self.get_tip_height()
        confirmations = max(0, tip - int(block_height) + 1)
        logger.debug("Transaction %s block=%s tip=%s confirmations=%s", tx_hash, block_height, tip, confirmations)
        return self._depth_result(confirmations)

    async def ping(self) -> bool:
        try:
            await self.get_tip_height()
            return True
        except UpstreamChainError:
            return False
