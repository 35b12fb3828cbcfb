from datetime import datetime, timezone

from fastapi import APIRouter

from souqpay import __version__

router = APIRouter()


@router.get("/health")
async def health():
    """Always 200, no DB dependency."""
    return {
        "status": "ok",
        "service": "souqpay-checkout",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": __version__,
    }
