from fastapi import Request

from souqpay.orders.store import OrderStore
from souqpay.payments.scheduler import PollScheduler
from souqpay.payments.verifier import OrderVerifier


def get_store(request: Request) -> OrderStore:
    return request.app.state.store


def get_verifier(request: Request) -> OrderVerifier:
    return request.app.state.verifier


def get_scheduler(request: Request) -> PollScheduler:
    return request.app.state.scheduler
