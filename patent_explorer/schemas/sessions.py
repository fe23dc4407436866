from pydantic import BaseModel
from typing import List, Optional
from datetime import datetime

from .chat import ChatMessageResponse

class CreateSessionRequest(BaseModel):
    title: Optional[str] = None

class UpdateSessionRequest(BaseModel):
    title: str

class ChatSessionResponse(BaseModel):
    id: str
    title: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    last_message_at: Optional[datetime] = None

class SessionListResponse(BaseModel):
    sessions: List[ChatSessionResponse]

class ArtifactReferences(BaseModel):
    charts: List[str]
    csvs: List[str]

class SessionDetailResponse(BaseModel):
    session: ChatSessionResponse
    messages: List[ChatMessageResponse]
    artifacts: ArtifactReferences
