from .chat_session import ChatSession
from .chat_message import ChatMessage, MessageRole
from .artifacts import Chart, CSVArtifact
from .user_profile import UserProfile, RateLimitRecord, SubscriptionTier

__all__ = ["ChatSession", "ChatMessage", "MessageRole", "Chart", "CSVArtifact", "UserProfile", "RateLimitRecord", "SubscriptionTier"]
