"""
EthereumClient - async client for an Etherscan-compatible explorer, using its JSON-RPC proxy module.

Responsibilities:
- receipt status of a plain ETH transaction (eth_getTransactionReceipt)
- ERC-20 USDT transfer verification: the receipt must carry a Transfer log
  from the configured token contract to our wallet
- confirmation depth (eth_blockNumber)

Without an API key the client runs unauthenticated in reduced mode: it skips
the extra eth_blockNumber call and treats a mined receipt as final.
This client never logs the API key.
"""
import logging
import re
from decimal import Decimal
from typing import Any, Optional

import httpx

from souqpay.chains.base import ChainStatusClient, ConfirmationResult
from souqpay.core.errors import InvalidTransactionError, UpstreamChainError

logger = logging.getLogger("souqpay.chains.ethereum")

TX_HASH_PATTERN = re.compile(r"^0x[0-9a-fA-F]{64}$")
TRANSFER_TOPIC = "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"
RECEIPT_SUCCESS = 1
# geth "invalid argument" / "invalid params"
INVALID_PARAMS_CODES = {-32602}


def _hex_to_int(value: Any) -> int:
    if isinstance(value, int):
        return value
    return int(str(value), 16)


def _topic_address(topic: str) -> str:
    return "0x" + topic[-40:].lower()


class EthereumClient(ChainStatusClient):
    name = "ethereum"

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        chain_id: int = 1,
        token_contract: str | None = None,
        token_decimals: int = 6,
        required_confirmations: int = 1,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 5.0,
    ):
        super().__init__(base_url, required_confirmations, http_client=http_client, timeout=timeout)
        self.api_key = api_key
        self.chain_id = chain_id
        self.token_contract = token_contract.lower() if token_contract else None
        self.token_decimals = token_decimals
        self.reduced = not api_key
        if self.reduced:
            logger.warning("ETHERSCAN_API_KEY not set; ethereum client running unauthenticated, confirmation depth not checked")

    def validate_tx_hash(self, tx_hash: str) -> bool:
        return bool(tx_hash) and TX_HASH_PATTERN.match(tx_hash) is not None

    async def _rpc(self, action: str, **params) -> Any:
        query = {"chainid": str(self.chain_id), "module": "proxy", "action": action, **params}
        if self.api_key:
            query["apikey"] = self.api_key
        r = await self._get(self.base_url, params=query)
        if r.status_code != 200:
            raise UpstreamChainError(code=f"explorer_status_{r.status_code}")
        try:
            data = r.json()
        except ValueError as exc:
            raise UpstreamChainError(code="explorer_bad_payload") from exc
        if not isinstance(data, dict):
            raise UpstreamChainError(code="explorer_bad_payload")

        error = data.get("error")
        if error:
            code = error.get("code") if isinstance(error, dict) else None
            message = error.get("message") if isinstance(error, dict) else str(error)
            if code in INVALID_PARAMS_CODES:
                logger.info("Explorer rejected params for %s: %s", action, message)
                raise InvalidTransactionError(code="invalid_tx_hash")
            logger.warning("Explorer RPC error action=%s code=%s message=%s", action, code, message)
            raise UpstreamChainError(code="explorer_rpc_error")
        # Etherscan's own envelope for rate limits / bad keys: {"status": "0", "message": "NOTOK", "result": "..."}
        if data.get("status") == "0" and "jsonrpc" not in data:
            logger.warning("Explorer refused action=%s result=%s", action, data.get("result"))
            raise UpstreamChainError(code="explorer_refused")
        if "result" not in data:
            raise UpstreamChainError(code="explorer_bad_payload")
        return data["result"]

    async def get_block_number(self) -> int:
        result = await self._rpc("eth_blockNumber")
        try:
            return _hex_to_int(result)
        except (TypeError, ValueError) as exc:
            raise UpstreamChainError(code="explorer_bad_payload") from exc

    async def _get_receipt(self, tx_hash: str) -> tuple[Optional[dict], bool]:
        """(receipt, seen). seen=False means the explorer does not know the hash at all."""
        receipt = await self._rpc("eth_getTransactionReceipt", txhash=tx_hash)
        if receipt:
            if not isinstance(receipt, dict):
                raise UpstreamChainError(code="explorer_bad_payload")
            return receipt, True
        tx = await self._rpc("eth_getTransactionByHash", txhash=tx_hash)
        return None, bool(tx)

    async def _confirmations(self, receipt: dict) -> int:
        if self.reduced or self.required_confirmations <= 1:
            return 1
        try:
            mined_at = _hex_to_int(receipt["blockNumber"])
        except (KeyError, TypeError, ValueError) as exc:
            raise UpstreamChainError(code="explorer_bad_payload") from exc
        head = await self.get_block_number()
        return max(0, head - mined_at + 1)

    def _final_result(self, confirmations: int) -> ConfirmationResult:
        if self.reduced:
            return ConfirmationResult.confirmed(confirmations)
        return self._depth_result(confirmations)

    @staticmethod
    def _receipt_succeeded(receipt: dict) -> bool:
        try:
            return _hex_to_int(receipt["status"]) == RECEIPT_SUCCESS
        except (KeyError, TypeError, ValueError) as exc:
            raise UpstreamChainError(code="explorer_bad_payload") from exc

    async def get_transaction_status(self, tx_hash: str) -> Optional[ConfirmationResult]:
        receipt, seen = await self._get_receipt(tx_hash)
        if receipt is None:
            return ConfirmationResult.unconfirmed() if seen else None
        if not self._receipt_succeeded(receipt):
            return ConfirmationResult.failed("reverted")
        return self._final_result(await self._confirmations(receipt))

    def find_token_transfer(self, receipt: dict, recipient: str) -> Optional[Decimal]:
        """Total amount (in token units) of the Transfer logs to recipient, or None if there are none."""
        recipient = recipient.lower()
        total = None
        for log in receipt.get("logs") or []:
            topics = log.get("topics") or []
            if len(topics) < 3 or str(topics[0]).lower() != TRANSFER_TOPIC:
                continue
            if self.token_contract and str(log.get("address", "")).lower() != self.token_contract:
                continue
            if _topic_address(str(topics[2])) != recipient:
                continue
            raw = log.get("data") or "0x0"
            try:
                value = _hex_to_int(raw) if raw != "0x" else 0
            except ValueError as exc:
                raise UpstreamChainError(code="explorer_bad_payload") from exc
            total = (total or Decimal(0)) + Decimal(value)
        if total is None:
            return None
        return total / (Decimal(10) ** self.token_decimals)

    async def get_token_transfer_status(self, tx_hash: str, recipient: str, expected_amount: Decimal | None = None) -> Optional[ConfirmationResult]:
        receipt, seen = await self._get_receipt(tx_hash)
        if receipt is None:
            return ConfirmationResult.unconfirmed() if seen else None
        if not self._receipt_succeeded(receipt):
            return ConfirmationResult.failed("reverted")
        amount = self.find_token_transfer(receipt, recipient)
        if amount is None:
            logger.info("Transaction %s has no token transfer to %s", tx_hash, recipient)
            return ConfirmationResult.failed("transfer_mismatch")
        if expected_amount is not None and amount < Decimal(str(expected_amount)):
            logger.info("Transaction %s underpaid: got=%s expected=%s", tx_hash, amount, expected_amount)
            return ConfirmationResult.failed("underpaid")
        return self._final_result(await self._confirmations(receipt))

    async def ping(self) -> bool:
        try:
            await self.get_block_number()
            return True
        except UpstreamChainError:
            return False
