"""
Types shared by the chain status clients.

Explorers encode "confirmed" differently (a boolean on Esplora, a hex
receipt status on Etherscan). Each client normalizes to ConfirmationResult
before anything leaves it, and returns None when the explorer has never
seen the transaction.
"""
import abc
import enum
import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from souqpay.core.errors import UpstreamChainError
from souqpay.utils.redact import sanitize

logger = logging.getLogger("souqpay.chains")


class ConfirmationState(str, enum.Enum):
    UNCONFIRMED = "unconfirmed"
    CONFIRMED = "confirmed"
    FAILED = "failed"


@dataclass(frozen=True)
class ConfirmationResult:
    state: ConfirmationState
    confirmations: int = 0
    reason: Optional[str] = None

    @classmethod
    def unconfirmed(cls, confirmations: int = 0) -> "ConfirmationResult":
        return cls(ConfirmationState.UNCONFIRMED, confirmations)

    @classmethod
    def confirmed(cls, confirmations: int) -> "ConfirmationResult":
        return cls(ConfirmationState.CONFIRMED, confirmations)

    @classmethod
    def failed(cls, reason: str, confirmations: int = 0) -> "ConfirmationResult":
        return cls(ConfirmationState.FAILED, confirmations, reason)


class ChainStatusClient(abc.ABC):
    """Base for explorer clients. Owns an httpx.AsyncClient unless one is injected."""

    name = "chain"

    def __init__(self, base_url: str, required_confirmations: int = 1, http_client: httpx.AsyncClient | None = None, timeout: float = 5.0):
        self.base_url = base_url.rstrip("/")
        self.required_confirmations = max(1, int(required_confirmations))
        self.http = http_client or httpx.AsyncClient(timeout=timeout)

    async def close(self):
        await self.http.aclose()

    @abc.abstractmethod
    def validate_tx_hash(self, tx_hash: str) -> bool:
        ...

    @abc.abstractmethod
    async def get_transaction_status(self, tx_hash: str) -> Optional[ConfirmationResult]:
        ...

    @abc.abstractmethod
    async def ping(self) -> bool:
        ...

    async def _get(self, url: str, params: dict | None = None) -> httpx.Response:
        """GET that turns transport failures, 429 and 5xx into UpstreamChainError."""
        try:
            r = await self.http.get(url, params=params)
        except httpx.HTTPError as exc:
            logger.warning("%s explorer request failed url=%s params=%s err=%s", self.name, url, sanitize(params), exc)
            raise UpstreamChainError(code="explorer_unreachable") from exc
        if r.status_code == 429 or r.status_code >= 500:
            logger.warning("%s explorer returned %s url=%s params=%s", self.name, r.status_code, url, sanitize(params))
            raise UpstreamChainError(code=f"explorer_status_{r.status_code}")
        return r

    def _depth_result(self, confirmations: int) -> ConfirmationResult:
        if confirmations >= self.required_confirmations:
            return ConfirmationResult.confirmed(confirmations)
        return ConfirmationResult.unconfirmed(confirmations)
