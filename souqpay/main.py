import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app
from starlette.exceptions import HTTPException as StarletteHTTPException

from souqpay import __version__
from souqpay.api import health, orders, ready
from souqpay.chains import build_bitcoin_client, build_ethereum_client
from souqpay.core.config import settings
from souqpay.core.errors import PaymentServiceError
from souqpay.core.sentry import init_sentry
from souqpay.db.session import make_engine, make_sessionmaker
from souqpay.orders.store import OrderStore
from souqpay.payments.scheduler import PollScheduler
from souqpay.payments.verifier import OrderVerifier

logger = logging.getLogger("souqpay")
app = FastAPI(title=settings.APP_NAME, version=__version__)

app.include_router(health.router, prefix="/api")
app.include_router(ready.router, prefix="/api")
app.include_router(orders.router, prefix="/api")
app.mount("/metrics", make_asgi_app())


@app.exception_handler(PaymentServiceError)
async def payment_error_handler(request: Request, exc: PaymentServiceError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.code)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"error": "Missing required fields"})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    message = "Method not allowed" if exc.status_code == 405 else exc.detail
    return JSONResponse(status_code=exc.status_code, content={"error": message}, headers=getattr(exc, "headers", None))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


@app.on_event("startup")
async def startup_event():
    logging.basicConfig(level=settings.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    if init_sentry():
        logger.info("Sentry enabled")
    engine = make_engine()
    store = OrderStore(make_sessionmaker(engine))
    verifier = OrderVerifier(store, build_bitcoin_client(), build_ethereum_client())
    app.state.engine = engine
    app.state.store = store
    app.state.verifier = verifier
    app.state.scheduler = PollScheduler(store, verifier)
    logger.info("Starting Smart Souq checkout backend")


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Shutting down Smart Souq checkout backend")
    await app.state.verifier.bitcoin.close()
    await app.state.verifier.ethereum.close()
    await app.state.engine.dispose()
