from sqlalchemy import Column, String, DateTime, ForeignKey, Text
from sqlalchemy.orm import relationship
from patent_explorer.database import Base, JSONType

from patent_explorer.models.chat_session import ChatSession, utcnow

class Chart(Base):
    __tablename__ = "charts"

    id = Column(String, primary_key=True)
    session_id = Column(String, ForeignKey("chat_sessions.id", ondelete="CASCADE"), nullable=True, index=True)
    user_id = Column(String, nullable=True)
    anonymous_id = Column(String, nullable=True)
    chart_data = Column(JSONType, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    session = relationship(ChatSession, back_populates="charts")

class CSVArtifact(Base):
    __tablename__ = "csvs"

    id = Column(String, primary_key=True)
    session_id = Column(String, ForeignKey("chat_sessions.id", ondelete="CASCADE"), nullable=True, index=True)
    user_id = Column(String, nullable=True)
    anonymous_id = Column(String, nullable=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    headers = Column(JSONType, nullable=False)
    rows = Column(JSONType, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    session = relationship(ChatSession, back_populates="csvs")
