import httpx
import pytest

from souqpay.chains.base import ConfirmationResult
from souqpay.core.config import settings
from souqpay.core.errors import UpstreamChainError
from souqpay.main import app
from souqpay.payments.scheduler import PollScheduler

from conftest import BTC_TX, ETH_TX, USDT_TX, WALLETS


@pytest.fixture(autouse=True)
def wallets(monkeypatch):
    monkeypatch.setattr(settings, "ADMIN_WALLET_BTC", WALLETS["btc"])
    monkeypatch.setattr(settings, "ADMIN_WALLET_ETH", WALLETS["eth"])
    monkeypatch.setattr(settings, "ADMIN_WALLET_USDT", WALLETS["usdt"])


@pytest.fixture
async def api(engine, store, verifier):
    app.state.engine = engine
    app.state.store = store
    app.state.verifier = verifier
    app.state.scheduler = PollScheduler(store, verifier, max_age=None)
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
        yield client


async def test_create_order_normalizes_currency(api, store):
    r = await api.post("/api/create-order", json={"amount": 100, "crypto": "USDT", "customerEmail": "a@b.c"})
    assert r.status_code == 200
    body = r.json()
    assert body["success"] is True
    order = body["order"]
    assert order["crypto"] == "usdt"
    assert order["adminWallet"] == WALLETS["usdt"]
    assert order["status"] == "pending"
    assert order["amount"] == 100
    assert order["id"].startswith("ORD-")
    assert order["createdAt"]

    stored = await store.get(order["id"])
    assert stored.customer_name == ""
    assert stored.expected_amount == stored.amount


@pytest.mark.parametrize("crypto", ["btc", "eth", "usdt"])
async def test_create_order_uses_configured_wallet(api, crypto):
    r = await api.post("/api/create-order", json={"amount": "0.5", "crypto": crypto, "customerEmail": "a@b.c", "customerName": "Amal"})
    assert r.status_code == 200
    assert r.json()["order"]["adminWallet"] == WALLETS[crypto]


@pytest.mark.parametrize("payload", [
    {"crypto": "btc", "customerEmail": "a@b.c"},
    {"amount": 10, "customerEmail": "a@b.c"},
    {"amount": 10, "crypto": "btc"},
    {},
])
async def test_create_order_missing_fields(api, store, payload):
    r = await api.post("/api/create-order", json=payload)
    assert r.status_code == 400
    assert r.json() == {"error": "Missing required fields"}
    assert await store.list_pending() == []


async def test_create_order_rejects_non_numeric_amount(api, store):
    r = await api.post("/api/create-order", json={"amount": "lots", "crypto": "btc", "customerEmail": "a@b.c"})
    assert r.status_code == 400
    assert await store.list_pending() == []


async def test_create_order_unsupported_currency(api, store):
    r = await api.post("/api/create-order", json={"amount": 10, "crypto": "doge", "customerEmail": "a@b.c"})
    assert r.status_code == 400
    assert r.json() == {"error": "Unsupported cryptocurrency"}
    assert await store.list_pending() == []


async def test_create_order_without_wallet_configured(api, monkeypatch):
    monkeypatch.setattr(settings, "ADMIN_WALLET_BTC", None)
    r = await api.post("/api/create-order", json={"amount": 10, "crypto": "btc", "customerEmail": "a@b.c"})
    assert r.status_code == 500
    assert r.json() == {"error": "Failed to create order"}


@pytest.mark.parametrize("path", ["/api/create-order", "/api/check-payment", "/api/poll-payments"])
async def test_non_post_is_405(api, path):
    r = await api.get(path)
    assert r.status_code == 405
    assert r.json() == {"error": "Method not allowed"}


async def test_check_payment_confirms(api, store, ethereum, make_order):
    order = await make_order(crypto="eth")
    ethereum.get_transaction_status.return_value = ConfirmationResult.confirmed(1)

    r = await api.post("/api/check-payment", json={"orderId": order.id, "crypto": "ETH", "txHash": ETH_TX})

    assert r.status_code == 200
    assert r.json() == {"success": True, "status": "confirmed", "txHash": ETH_TX, "orderId": order.id}
    stored = await store.get(order.id)
    assert stored.status == "confirmed"
    assert stored.tx_hash == ETH_TX


async def test_check_payment_unconfirmed_reports_pending(api, ethereum, make_order):
    order = await make_order(crypto="usdt")
    ethereum.get_token_transfer_status.return_value = ConfirmationResult.unconfirmed()

    r = await api.post("/api/check-payment", json={"orderId": order.id, "crypto": "usdt", "txHash": USDT_TX})

    assert r.status_code == 200
    assert r.json()["status"] == "pending"


async def test_check_payment_transaction_not_found_keeps_hash(api, store, bitcoin, make_order):
    order = await make_order(crypto="btc")
    bitcoin.get_transaction_status.return_value = None

    r = await api.post("/api/check-payment", json={"orderId": order.id, "crypto": "btc", "txHash": BTC_TX})

    assert r.status_code == 404
    assert r.json() == {"error": "Transaction not found"}
    stored = await store.get(order.id)
    assert stored.status == "pending"
    assert stored.tx_hash == BTC_TX


async def test_check_payment_missing_fields(api):
    r = await api.post("/api/check-payment", json={"orderId": "ORD-1", "crypto": "btc"})
    assert r.status_code == 400
    assert r.json() == {"error": "Missing required fields"}


async def test_check_payment_unsupported_currency_does_not_mutate(api, store, make_order):
    order = await make_order(crypto="btc")
    r = await api.post("/api/check-payment", json={"orderId": order.id, "crypto": "xmr", "txHash": BTC_TX})
    assert r.status_code == 400
    assert r.json() == {"error": "Unsupported cryptocurrency"}
    stored = await store.get(order.id)
    assert stored.tx_hash is None
    assert stored.updated_at == stored.created_at


async def test_check_payment_currency_mismatch(api, store, make_order):
    order = await make_order(crypto="btc")
    r = await api.post("/api/check-payment", json={"orderId": order.id, "crypto": "eth", "txHash": ETH_TX})
    assert r.status_code == 400
    assert (await store.get(order.id)).tx_hash is None


async def test_check_payment_malformed_hash(api, store, bitcoin, make_order):
    order = await make_order(crypto="btc")
    r = await api.post("/api/check-payment", json={"orderId": order.id, "crypto": "btc", "txHash": "not-a-hash"})
    assert r.status_code == 400
    assert r.json() == {"error": "Invalid transaction hash"}
    assert (await store.get(order.id)).tx_hash is None
    bitcoin.get_transaction_status.assert_not_awaited()


async def test_check_payment_unknown_order(api):
    r = await api.post("/api/check-payment", json={"orderId": "ORD-nope", "crypto": "btc", "txHash": BTC_TX})
    assert r.status_code == 404


async def test_check_payment_upstream_outage_is_500(api, store, bitcoin, make_order):
    order = await make_order(crypto="btc")
    bitcoin.get_transaction_status.side_effect = UpstreamChainError(code="explorer_unreachable")

    r = await api.post("/api/check-payment", json={"orderId": order.id, "crypto": "btc", "txHash": BTC_TX})

    assert r.status_code == 500
    assert r.json() == {"error": "Internal server error"}
    assert (await store.get(order.id)).status == "pending"


async def test_check_payment_on_terminal_order_skips_explorer(api, store, ethereum, make_order):
    order = await make_order(crypto="eth", tx_hash=ETH_TX)
    await store.transition(order.id, "failed", failure_reason="reverted")

    r = await api.post("/api/check-payment", json={"orderId": order.id, "crypto": "eth", "txHash": ETH_TX})

    assert r.status_code == 200
    assert r.json()["status"] == "failed"
    ethereum.get_transaction_status.assert_not_awaited()


async def test_check_payment_keeps_hash_of_order_settled_meanwhile(api, store, ethereum, make_order, monkeypatch):
    order = await make_order(crypto="eth", tx_hash=ETH_TX)
    read_order = store.get

    async def read_then_settle(order_id):
        current = await read_order(order_id)
        # the poller confirms the order right after check-payment read it
        await store.transition(order_id, "confirmed")
        return current

    monkeypatch.setattr(store, "get", read_then_settle)
    r = await api.post("/api/check-payment", json={"orderId": order.id, "crypto": "eth", "txHash": "0x" + "e" * 64})

    assert r.status_code == 200
    assert r.json() == {"success": True, "status": "confirmed", "txHash": ETH_TX, "orderId": order.id}
    stored = await read_order(order.id)
    assert stored.status == "confirmed"
    assert stored.tx_hash == ETH_TX
    ethereum.get_transaction_status.assert_not_awaited()


async def test_check_payment_rejects_hash_used_by_another_order(api, store, ethereum, make_order):
    paid = await make_order(crypto="usdt")
    other = await make_order(crypto="usdt")
    ethereum.get_token_transfer_status.return_value = ConfirmationResult.confirmed(1)

    first = await api.post("/api/check-payment", json={"orderId": paid.id, "crypto": "usdt", "txHash": USDT_TX})
    assert first.json()["status"] == "confirmed"

    # same hash, different spelling
    reused = await api.post("/api/check-payment", json={"orderId": other.id, "crypto": "usdt", "txHash": USDT_TX.upper().replace("0X", "0x")})
    assert reused.status_code == 409
    assert reused.json() == {"error": "Transaction already used"}
    stored = await store.get(other.id)
    assert stored.status == "pending"
    assert stored.tx_hash is None
    assert ethereum.get_token_transfer_status.await_count == 1


async def test_poll_payments(api, ethereum, make_order):
    order = await make_order(crypto="eth", tx_hash=ETH_TX)
    await make_order(crypto="btc")
    ethereum.get_transaction_status.return_value = ConfirmationResult.confirmed(1)

    r = await api.post("/api/poll-payments")

    assert r.status_code == 200
    body = r.json()
    assert body["success"] is True
    assert body["processed"] == 1
    assert body["results"] == [{"orderId": order.id, "status": "confirmed", "txHash": ETH_TX}]


async def test_get_order(api, make_order):
    order = await make_order(crypto="usdt")
    r = await api.get(f"/api/orders/{order.id}")
    assert r.status_code == 200
    assert r.json()["order"]["status"] == "pending"

    missing = await api.get("/api/orders/ORD-nope")
    assert missing.status_code == 404
    assert missing.json() == {"error": "Order not found"}


async def test_health(api):
    r = await api.get("/api/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


async def test_ready_reports_explorers_without_failing(api, bitcoin, ethereum):
    bitcoin.ping.return_value = True
    ethereum.ping.return_value = False
    r = await api.get("/api/ready")
    assert r.status_code == 200
    deps = r.json()["dependencies"]
    assert deps["database"]["ok"] is True
    assert deps["ethereum_explorer"] == {"ok": False, "error": "unreachable"}
