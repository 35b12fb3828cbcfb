from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy import text

router = APIRouter()


async def check_db(engine):
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True, None
    except Exception as e:
        return False, type(e).__name__


async def check_explorer(client):
    ok = await client.ping()
    return ok, None if ok else "unreachable"


@router.get("/ready")
async def ready(request: Request):
    """
    Readiness requires the database. Explorer reachability is reported but
    does not fail the probe; an explorer outage only delays confirmations.
    """
    state = request.app.state
    db_ok, db_err = await check_db(state.engine)
    btc_ok, btc_err = await check_explorer(state.verifier.bitcoin)
    eth_ok, eth_err = await check_explorer(state.verifier.ethereum)
    body = {
        "status": "ok" if db_ok else "degraded",
        "dependencies": {
            "database": {"ok": db_ok, "error": db_err},
            "bitcoin_explorer": {"ok": btc_ok, "error": btc_err},
            "ethereum_explorer": {"ok": eth_ok, "error": eth_err},
        },
    }
    status_code = status.HTTP_200_OK if db_ok else status.HTTP_503_SERVICE_UNAVAILABLE
    return JSONResponse(status_code=status_code, content=body)
