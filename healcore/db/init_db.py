import asyncio
import logging

from healcore.db.models import Base
from healcore.db.session import engine

logger = logging.getLogger(__name__)


async def init_db(bind=None):
    """Create all tables that do not exist yet."""
    target = bind or engine
    try:
        async with target.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables initialized successfully")
    except Exception as e:
        logger.error("Failed to initialize database: %s", e)
        raise


if __name__ == "__main__":
    asyncio.run(init_db())
