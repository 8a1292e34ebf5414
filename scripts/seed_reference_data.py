"""
Seed currencies, payment providers and payment methods.
Safe to run repeatedly.
Run: python scripts/seed_reference_data.py
"""

import asyncio
import logging
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.database import get_db_context, init_db
from app.logging_config import configure_logging
from app.seed import seed_reference_data

logger = logging.getLogger(__name__)


async def main():
    configure_logging()
    await init_db()
    async with get_db_context() as db:
        await seed_reference_data(db)
    logger.info("Seed completed successfully!")


if __name__ == "__main__":
    asyncio.run(main())
