"""
CI helper: check for schema drift between SQLAlchemy models metadata and the live DB.

Exit code:
 - 0: no drift
 - 2: drift detected (prints differences)
 - 3: connection/config error
"""
import asyncio
import sys

from alembic.autogenerate import compare_metadata
from alembic.migration import MigrationContext
from sqlalchemy.exc import SQLAlchemyError

from souqpay.core.config import settings
from souqpay.db.models import Base
from souqpay.db.session import make_engine


def _diff(sync_conn):
    mc = MigrationContext.configure(sync_conn)
    return compare_metadata(mc, Base.metadata)


async def main() -> int:
    if not settings.DATABASE_URL:
        print("DATABASE_URL not set", file=sys.stderr)
        return 3
    engine = make_engine()
    try:
        async with engine.connect() as conn:
            diffs = await conn.run_sync(_diff)
    except (SQLAlchemyError, OSError):
        print("DB connection failed", file=sys.stderr)
        return 3
    finally:
        await engine.dispose()
    if not diffs:
        print("No schema drift detected")
        return 0
    print("Schema drift detected. Diff items:")
    for d in diffs:
        print(d)
    return 2


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
