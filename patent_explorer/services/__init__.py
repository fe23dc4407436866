from .user_service import get_user_profile, get_user_tier, validate_access
from .rate_limit_service import check_rate_limit, increment_rate_limit
from .chat_service import get_chat_session, save_chat_messages

__all__ = ["get_user_profile", "get_user_tier", "validate_access", "check_rate_limit", "increment_rate_limit", "get_chat_session", "save_chat_messages"]
