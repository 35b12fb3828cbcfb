"""
Simple DB healthcheck script intended for Kubernetes readiness/liveness exec probes.

Usage: python -m souqpay.bin.healthcheck
Exits 0 if DB connection succeeds; exits non-zero otherwise.

This script must not log secrets.
"""
import asyncio
import sys

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from souqpay.core.config import settings
from souqpay.db.session import make_engine


async def main():
    if not settings.DATABASE_URL:
        print("DATABASE_URL not set", file=sys.stderr)
        return 2
    engine = make_engine()
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return 0
    except (SQLAlchemyError, OSError):
        # Do not print secrets
        print("DB connection failed", file=sys.stderr)
        return 3
    finally:
        await engine.dispose()


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
