"""
PollScheduler - periodic confirmation sweep over pending orders.

One cycle at a time: a cycle requested while another is running is skipped,
not queued. Within a cycle at most POLL_MAX_CONCURRENCY orders are verified
concurrently and each verification is bounded by VERIFY_TIMEOUT_SECONDS.
A failing order is recorded in the summary and never aborts the batch.

Metrics:
- souqpay_poll_cycles_total{outcome}
- souqpay_poll_order_errors_total
- souqpay_orders_settled_total{status}
- souqpay_poller_last_success_unixtime
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Optional

from prometheus_client import Counter, Gauge

from souqpay.core.config import settings
from souqpay.core.errors import PaymentServiceError
from souqpay.orders.store import OrderStore
from souqpay.payments.verifier import OrderVerifier, VerificationResult

logger = logging.getLogger("souqpay.payments.scheduler")

DEFAULT_POLL_INTERVAL = int(getattr(settings, "POLL_INTERVAL_SECONDS", 30))
DEFAULT_MAX_CONCURRENCY = int(getattr(settings, "POLL_MAX_CONCURRENCY", 4))
DEFAULT_VERIFY_TIMEOUT = float(getattr(settings, "VERIFY_TIMEOUT_SECONDS", 15.0))
PENDING_SCAN_LIMIT = int(getattr(settings, "PENDING_SCAN_LIMIT", 500))
PENDING_MAX_AGE_DAYS = getattr(settings, "PENDING_MAX_AGE_DAYS", 7)
MAX_BACKOFF_SECONDS = 300

MET_CYCLES = Counter("souqpay_poll_cycles_total", "Poll cycles by outcome", ["outcome"])
MET_ORDER_ERRORS = Counter("souqpay_poll_order_errors_total", "Orders whose verification raised during a poll cycle")
MET_ORDERS_SETTLED = Counter("souqpay_orders_settled_total", "Orders moved out of pending by the poller", ["status"])
MET_LAST_SUCCESS = Gauge("souqpay_poller_last_success_unixtime", "Unix time of last completed poll cycle")


@dataclass
class CycleSummary:
    processed: int = 0
    results: list[VerificationResult] = field(default_factory=list)
    errors: list[dict] = field(default_factory=list)
    skipped: bool = False

    def to_dict(self) -> dict:
        return {
            "success": True,
            "processed": self.processed,
            "results": [r.to_dict() for r in self.results],
            "errors": self.errors,
            "skipped": self.skipped,
        }


class PollScheduler:
    def __init__(
        self,
        store: OrderStore,
        verifier: OrderVerifier,
        poll_interval: int = DEFAULT_POLL_INTERVAL,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        verify_timeout: float = DEFAULT_VERIFY_TIMEOUT,
        scan_limit: Optional[int] = PENDING_SCAN_LIMIT,
        max_age: Optional[timedelta] = timedelta(days=PENDING_MAX_AGE_DAYS) if PENDING_MAX_AGE_DAYS else None,
    ):
        self.store = store
        self.verifier = verifier
        self.poll_interval = poll_interval
        self.max_concurrency = max(1, max_concurrency)
        self.verify_timeout = verify_timeout
        self.scan_limit = scan_limit
        self.max_age = max_age
        self.running = False
        self._cycle_lock = asyncio.Lock()

    @property
    def cycle_running(self) -> bool:
        return self._cycle_lock.locked()

    async def _verify_bounded(self, semaphore: asyncio.Semaphore, order) -> VerificationResult:
        async with semaphore:
            return await asyncio.wait_for(self.verifier.verify(order), timeout=self.verify_timeout)

    async def run_cycle(self) -> CycleSummary:
        if self._cycle_lock.locked():
            logger.info("Previous poll cycle still running; skipping")
            MET_CYCLES.labels(outcome="skipped").inc()
            return CycleSummary(skipped=True)

        async with self._cycle_lock:
            orders = await self.store.list_pending(limit=self.scan_limit, max_age=self.max_age)
            candidates = [o for o in orders if o.tx_hash]
            logger.debug("Poll cycle: pending=%s with_tx=%s", len(orders), len(candidates))

            semaphore = asyncio.Semaphore(self.max_concurrency)
            outcomes = await asyncio.gather(
                *(self._verify_bounded(semaphore, order) for order in candidates),
                return_exceptions=True,
            )

            summary = CycleSummary()
            for order, outcome in zip(candidates, outcomes):
                if isinstance(outcome, VerificationResult):
                    summary.processed += 1
                    if outcome.changed:
                        summary.results.append(outcome)
                        MET_ORDERS_SETTLED.labels(status=outcome.status).inc()
                    continue
                if not isinstance(outcome, Exception):
                    raise outcome
                MET_ORDER_ERRORS.inc()
                if isinstance(outcome, PaymentServiceError):
                    code = outcome.code
                    logger.warning("Verification of order %s failed: %s", order.id, code)
                elif isinstance(outcome, asyncio.TimeoutError):
                    code = "verify_timeout"
                    logger.warning("Verification of order %s timed out after %ss", order.id, self.verify_timeout)
                else:
                    code = "internal_error"
                    logger.error("Unexpected error verifying order %s", order.id, exc_info=outcome)
                summary.errors.append({"orderId": order.id, "error": code})

        MET_CYCLES.labels(outcome="completed").inc()
        MET_LAST_SUCCESS.set(int(time.time()))
        logger.info("Poll cycle done processed=%s changed=%s errors=%s", summary.processed, len(summary.results), len(summary.errors))
        return summary

    async def run(self):
        self.running = True
        consecutive_errors = 0
        while self.running:
            try:
                await self.run_cycle()
                consecutive_errors = 0
                await asyncio.sleep(self.poll_interval)
            except Exception:
                logger.exception("Poll cycle failed")
                MET_CYCLES.labels(outcome="failed").inc()
                consecutive_errors += 1
                backoff = min(MAX_BACKOFF_SECONDS, (2 ** min(consecutive_errors, 6)))
                await asyncio.sleep(backoff)

    def stop(self):
        self.running = False
