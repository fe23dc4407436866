import enum
from sqlalchemy import Column, String, DateTime, Integer
from patent_explorer.database import Base

from patent_explorer.models.chat_session import utcnow

class SubscriptionTier(str, enum.Enum):
    FREE = "free"
    PAY_PER_USE = "pay_per_use"
    UNLIMITED = "unlimited"

class UserProfile(Base):
    __tablename__ = "user_profiles"

    id = Column(String, primary_key=True)
    email = Column(String, nullable=True, index=True)
    subscription_tier = Column(String, default=SubscriptionTier.FREE.value, nullable=False)
    subscription_status = Column(String, default="inactive", nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

class RateLimitRecord(Base):
    __tablename__ = "rate_limits"

    # "user:<id>" or "anon:<hash>"
    identity = Column(String, primary_key=True)
    count = Column(Integer, default=0, nullable=False)
    reset_time = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
