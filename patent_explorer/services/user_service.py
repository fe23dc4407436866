import logging
from typing import Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from patent_explorer.models.user_profile import SubscriptionTier, UserProfile
from patent_explorer.schemas.rate_limit import AccessValidation

logger = logging.getLogger(__name__)

PAID_TIERS = (SubscriptionTier.PAY_PER_USE.value, SubscriptionTier.UNLIMITED.value)

async def get_user_profile(db: AsyncSession, user_id: str) -> Optional[UserProfile]:
    result = await db.execute(select(UserProfile).where(UserProfile.id == user_id))
    return result.scalar_one_or_none()

async def get_user_tier(db: AsyncSession, user_id: str) -> Tuple[str, bool]:
    """
    Return the user's subscription tier and whether it is active.
    Users without a profile are on the free tier.
    """
    profile = await get_user_profile(db, user_id)
    if profile is None:
        return SubscriptionTier.FREE.value, False
    tier = profile.subscription_tier or SubscriptionTier.FREE.value
    return tier, profile.subscription_status == "active"

async def validate_access(db: AsyncSession, user_id: str) -> AccessValidation:
    """
    Free users always have access (they are rate limited instead). Paid tiers
    need an active subscription; a lapsed one means payment setup is required.
    """
    tier, active = await get_user_tier(db, user_id)
    if tier in PAID_TIERS and not active:
        logger.info(f"Access denied for user {user_id}: {tier} subscription is not active")
        return AccessValidation(has_access=False, requires_payment_setup=True, tier=tier)
    return AccessValidation(has_access=True, requires_payment_setup=False, tier=tier)
