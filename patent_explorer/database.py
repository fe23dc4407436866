from sqlalchemy import JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool
from patent_explorer.config import settings
import logging

logger = logging.getLogger(__name__)

SQLALCHEMY_DATABASE_URL = settings.database_url

masked_url = SQLALCHEMY_DATABASE_URL
if settings.db_password and settings.db_password.get_secret_value():
    masked_url = SQLALCHEMY_DATABASE_URL.replace(settings.db_password.get_secret_value(), "*****")
logger.info(f"🔧 SQLAlchemy DB URL: {masked_url}")

if SQLALCHEMY_DATABASE_URL.startswith("sqlite"):
    # The embedded store is opened per session so connections never outlive their event loop
    engine = create_async_engine(SQLALCHEMY_DATABASE_URL, poolclass=NullPool)
else:
    engine = create_async_engine(
        SQLALCHEMY_DATABASE_URL,
        pool_pre_ping=True,
        pool_recycle=3600,
    )

AsyncSessionLocal = async_sessionmaker(autocommit=False, autoflush=False, bind=engine, class_=AsyncSession, expire_on_commit=False)

Base = declarative_base()

# JSONB on PostgreSQL, plain JSON on the embedded store
JSONType = JSON().with_variant(JSONB(), "postgresql")
