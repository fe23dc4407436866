import logging

from .database import AsyncSessionLocal, Base, engine

logger = logging.getLogger(__name__)

async def get_db():
    db = AsyncSessionLocal()
    try:
        yield db
    finally:
        await db.close()

async def init_models():
    """Create all tables. Used for the embedded development store; production runs Alembic."""
    from . import models  # noqa: F401  registers tables on Base.metadata

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ensured")
