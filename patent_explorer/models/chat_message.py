import enum
from sqlalchemy import Column, String, DateTime, ForeignKey, Enum, Integer
from sqlalchemy.orm import relationship
from patent_explorer.database import Base, JSONType

from patent_explorer.models.chat_session import ChatSession, utcnow

class MessageRole(str, enum.Enum):
    user = "user"
    assistant = "assistant"
    system = "system"
    tool = "tool"

class ChatMessage(Base):
    __tablename__ = "chat_messages"

    id = Column(String, primary_key=True)
    session_id = Column(String, ForeignKey("chat_sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(Enum(MessageRole, name="message_role"), nullable=False)
    # Ordered UI parts: text, reasoning, step-start, tool-<name>
    content = Column(JSONType, nullable=False)
    position = Column(Integer, nullable=False)
    processing_time_ms = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    session = relationship(ChatSession, back_populates="messages")
