from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from datetime import datetime

class RateLimitStatus(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    allowed: bool
    remaining: Optional[int] = None
    reset_time: datetime = Field(alias="resetTime")
    limit: Optional[int] = None
    tier: str = "anonymous"

class AccessValidation(BaseModel):
    has_access: bool
    requires_payment_setup: bool = False
    tier: str = "free"
