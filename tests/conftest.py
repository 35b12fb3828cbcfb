from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from sqlalchemy.ext.asyncio import create_async_engine

from souqpay.chains.bitcoin_client import TXID_PATTERN, BitcoinClient
from souqpay.chains.ethereum_client import TX_HASH_PATTERN, EthereumClient
from souqpay.db.models import Base
from souqpay.db.session import make_sessionmaker
from souqpay.orders.store import OrderStore
from souqpay.payments.verifier import OrderVerifier

BTC_TX = "a" * 64
ETH_TX = "0x" + "b" * 64
USDT_TX = "0x" + "c" * 64

WALLETS = {
    "btc": "bc1qadminwalletxxxxxxxxxxxxxxxxxxxxxxxxx",
    "eth": "0x1111111111111111111111111111111111111111",
    "usdt": "0x2222222222222222222222222222222222222222",
}


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def store(engine):
    return OrderStore(make_sessionmaker(engine))


@pytest.fixture
def make_order(store):
    counter = {"n": 0}

    async def _make(crypto="eth", tx_hash=None, amount="100", order_id=None):
        counter["n"] += 1
        return await store.create({
            "id": order_id or f"ORD-{counter['n']:04d}",
            "amount": Decimal(amount),
            "expected_amount": Decimal(amount),
            "crypto": crypto,
            "admin_wallet": WALLETS[crypto],
            "customer_email": "buyer@example.com",
            "customer_name": "Buyer",
            "tx_hash": tx_hash,
        })

    return _make


@pytest.fixture
def bitcoin():
    client = MagicMock(spec=BitcoinClient)
    client.validate_tx_hash.side_effect = lambda h: bool(h) and TXID_PATTERN.match(h) is not None
    client.get_transaction_status.return_value = None
    return client


@pytest.fixture
def ethereum():
    client = MagicMock(spec=EthereumClient)
    client.validate_tx_hash.side_effect = lambda h: bool(h) and TX_HASH_PATTERN.match(h) is not None
    client.get_transaction_status.return_value = None
    client.get_token_transfer_status.return_value = None
    return client


@pytest.fixture
def verifier(store, bitcoin, ethereum):
    return OrderVerifier(store, bitcoin, ethereum)
