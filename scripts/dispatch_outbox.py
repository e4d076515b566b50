"""
Run one outbox delivery pass (CRM contact sync, SMS) and print the counts.
Run: python -m scripts.dispatch_outbox (from the project root).
"""
import asyncio
import logging
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import settings
from database import AsyncSessionLocal, init_db
from services.notifier import dispatch_pending


async def main():
    logging.basicConfig(level=settings.log_level.upper())
    await init_db()
    summary = await dispatch_pending(AsyncSessionLocal)
    print(
        f"Claimed {summary['claimed']}: {summary['sent']} sent, "
        f"{summary['retrying']} retrying, {summary['dead']} dead"
    )


if __name__ == "__main__":
    asyncio.run(main())
