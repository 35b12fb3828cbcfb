from souqpay.chains.base import ChainStatusClient, ConfirmationResult, ConfirmationState
from souqpay.chains.bitcoin_client import BitcoinClient
from souqpay.chains.config import required_confirmations_for
from souqpay.chains.ethereum_client import EthereumClient
from souqpay.core.config import settings

__all__ = [
    "BitcoinClient",
    "ChainStatusClient",
    "ConfirmationResult",
    "ConfirmationState",
    "EthereumClient",
    "build_bitcoin_client",
    "build_ethereum_client",
]


def build_bitcoin_client() -> BitcoinClient:
    return BitcoinClient(
        settings.BTC_EXPLORER_URL,
        required_confirmations=required_confirmations_for("btc"),
        timeout=settings.CHAIN_HTTP_TIMEOUT_SECONDS,
    )


def build_ethereum_client() -> EthereumClient:
    # eth and usdt share one client; the stricter of the two depths applies
    return EthereumClient(
        settings.ETH_EXPLORER_URL,
        api_key=settings.ETHERSCAN_API_KEY,
        chain_id=settings.ETH_CHAIN_ID,
        token_contract=settings.USDT_CONTRACT_ADDRESS,
        token_decimals=settings.USDT_DECIMALS,
        required_confirmations=max(required_confirmations_for("eth"), required_confirmations_for("usdt")),
        timeout=settings.CHAIN_HTTP_TIMEOUT_SECONDS,
    )
