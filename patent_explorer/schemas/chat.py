from enum import Enum
from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Optional
from datetime import datetime

class Role(str, Enum):
    user = "user"
    assistant = "assistant"
    system = "system"
    tool = "tool"

class UIMessage(BaseModel):
    """
    A chat message as the AI SDK client sends it. Parts are kept as raw
    dictionaries because tool parts carry arbitrary input/output payloads.
    """
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    role: Role
    parts: List[Dict[str, Any]] = Field(default_factory=list)
    content: Optional[Any] = None

class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    messages: List[UIMessage]
    session_id: Optional[str] = Field(default=None, alias="sessionId")

class ChatErrorCode(str, Enum):
    PAYMENT_REQUIRED = "PAYMENT_REQUIRED"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    MODEL_COMPATIBILITY_ERROR = "MODEL_COMPATIBILITY_ERROR"
    CHAT_ERROR = "CHAT_ERROR"

class ChatErrorResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    error: ChatErrorCode
    message: str

class ChatMessageResponse(BaseModel):
    id: str
    role: Role
    parts: List[Dict[str, Any]]
    processing_time_ms: Optional[int] = None
    created_at: Optional[datetime] = None
