import hashlib
import logging
from typing import Optional

from sqlalchemy import case, select
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from patent_explorer.config import settings
from patent_explorer.models.user_profile import RateLimitRecord, SubscriptionTier
from patent_explorer.schemas.rate_limit import RateLimitStatus
from patent_explorer.utils.time_utils import as_utc, next_utc_midnight, utc_now

logger = logging.getLogger(__name__)

ANONYMOUS = "anonymous"

def user_identity(user_id: str) -> str:
    return f"user:{user_id}"

def anonymous_identity(client_ip: str, user_agent: str = "") -> str:
    digest = hashlib.sha256(f"{client_ip}|{user_agent}".encode("utf-8")).hexdigest()[:32]
    return f"anon:{digest}"

def limit_for_tier(tier: str) -> Optional[int]:
    """Daily turn limit for a tier; None means unlimited."""
    if tier == ANONYMOUS:
        return settings.anonymous_daily_limit
    if tier in (SubscriptionTier.PAY_PER_USE.value, SubscriptionTier.UNLIMITED.value):
        return None
    return settings.free_daily_limit

async def _current_count(db: AsyncSession, identity: str):
    result = await db.execute(select(RateLimitRecord).where(RateLimitRecord.identity == identity))
    record = result.scalar_one_or_none()
    now = utc_now()
    if record is None or as_utc(record.reset_time) <= now:
        return record, 0, next_utc_midnight(now)
    return record, record.count, as_utc(record.reset_time)

async def check_rate_limit(db: AsyncSession, identity: str, tier: str) -> RateLimitStatus:
    """
    Check whether an identity may start another turn today.

    Args:
        db: Async database session
        identity: ``user:<id>`` or ``anon:<hash>``
        tier: Subscription tier, or "anonymous"

    Returns:
        RateLimitStatus; ``remaining`` and ``limit`` are None for unlimited tiers
    """
    limit = limit_for_tier(tier)
    _, count, reset_time = await _current_count(db, identity)
    if limit is None:
        return RateLimitStatus(allowed=True, remaining=None, reset_time=reset_time, limit=None, tier=tier)

    remaining = max(limit - count, 0)
    return RateLimitStatus(allowed=remaining > 0, remaining=remaining, reset_time=reset_time, limit=limit, tier=tier)

async def check_user_rate_limit(db: AsyncSession, user_id: str, tier: str) -> RateLimitStatus:
    return await check_rate_limit(db, user_identity(user_id), tier)

async def check_anonymous_rate_limit(db: AsyncSession, identity: str) -> RateLimitStatus:
    return await check_rate_limit(db, identity, ANONYMOUS)

def _upsert(db: AsyncSession):
    if db.get_bind().dialect.name == "postgresql":
        return postgresql_insert
    return sqlite_insert

async def increment_rate_limit(db: AsyncSession, identity: str, tier: str) -> RateLimitStatus:
    """
    Count one turn against an identity in a single statement.

    An expired window restarts at 1 with the next UTC midnight as its reset
    time, so concurrent turns never lose an increment or race on the insert.
    """
    now = utc_now()
    reset_time = next_utc_midnight(now)
    expired = RateLimitRecord.reset_time <= now

    stmt = _upsert(db)(RateLimitRecord).values(identity=identity, count=1, reset_time=reset_time, updated_at=now)
    stmt = stmt.on_conflict_do_update(
        index_elements=[RateLimitRecord.identity],
        set_={
            "count": case((expired, 1), else_=RateLimitRecord.count + 1),
            "reset_time": case((expired, reset_time), else_=RateLimitRecord.reset_time),
            "updated_at": now,
        },
    ).returning(RateLimitRecord.count, RateLimitRecord.reset_time)

    result = await db.execute(stmt)
    count, stored_reset = result.one()
    await db.commit()
    logger.info(f"Rate limit incremented for {identity}: {count}")

    limit = limit_for_tier(tier)
    remaining = None if limit is None else max(limit - count, 0)
    return RateLimitStatus(allowed=True, remaining=remaining, reset_time=as_utc(stored_reset), limit=limit, tier=tier)
