"""
Standalone payment poller: runs PollScheduler cycles every POLL_INTERVAL_SECONDS.

- Runs as a separate process next to the API (the API's /api/poll-payments
  shares the same cycle logic for manual triggers).
- Exposes Prometheus metrics on POLLER_METRICS_PORT.

Usage: python -m souqpay.bin.poller
"""
import asyncio
import logging

from prometheus_client import start_http_server

from souqpay.chains import build_bitcoin_client, build_ethereum_client
from souqpay.core.config import settings
from souqpay.core.sentry import init_sentry
from souqpay.db.session import make_engine, make_sessionmaker
from souqpay.orders.store import OrderStore
from souqpay.payments.scheduler import PollScheduler
from souqpay.payments.verifier import OrderVerifier

logger = logging.getLogger("souqpay.bin.poller")


async def poller_loop():
    engine = make_engine()
    store = OrderStore(make_sessionmaker(engine))
    verifier = OrderVerifier(store, build_bitcoin_client(), build_ethereum_client())
    scheduler = PollScheduler(store, verifier)
    try:
        await scheduler.run()
    finally:
        await verifier.bitcoin.close()
        await verifier.ethereum.close()
        await engine.dispose()


def run_poller():
    logging.basicConfig(level=settings.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    init_sentry()
    metrics_port = int(getattr(settings, "POLLER_METRICS_PORT", 8002))
    try:
        start_http_server(metrics_port)
        logger.info("Prometheus metrics server started on port %s", metrics_port)
    except OSError as exc:
        logger.warning("Failed to start metrics server: %s", exc)
    logger.info("Starting payment poller interval=%ss", settings.POLL_INTERVAL_SECONDS)
    asyncio.run(poller_loop())


if __name__ == "__main__":
    run_poller()
