import asyncio
import logging
import sys
from pathlib import Path

# Ensure project root is importable when running this script directly
ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from sqlmodel.ext.asyncio.session import AsyncSession

from filyo.core.config import settings
from filyo.db.session import engine
from filyo.services.cleanup import sweep_expired


async def run() -> dict:
    async with AsyncSession(engine, expire_on_commit=False) as session:
        return await sweep_expired(session)


def main():
    logging.basicConfig(level=settings.log_level.upper())
    result = asyncio.run(run())
    print(f"Deleted {result['deletedFiles']} file(s) and {result['deletedUploadRequests']} upload request(s)")


if __name__ == "__main__":
    main()
