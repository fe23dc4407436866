import logging
from uuid import uuid4
from datetime import datetime
from typing import Any, Dict, List, Optional
from fastapi import HTTPException
from sqlalchemy import delete, insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from patent_explorer.models.artifacts import Chart, CSVArtifact
from patent_explorer.models.chat_message import ChatMessage
from patent_explorer.models.chat_session import ChatSession
from patent_explorer.utils.time_utils import utc_now

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "New Chat"
TITLE_MAX_LENGTH = 60

def title_from_text(text: str) -> str:
    text = " ".join((text or "").split())
    if not text:
        return DEFAULT_TITLE
    if len(text) <= TITLE_MAX_LENGTH:
        return text
    return text[:TITLE_MAX_LENGTH - 3].rstrip() + "..."

async def create_chat_session(db: AsyncSession, user_id: str, title: Optional[str] = None, session_id: Optional[str] = None) -> ChatSession:
    session_id = session_id or str(uuid4())
    logger.debug(f"Creating new chat session with ID: {session_id}")
    now = utc_now()
    session = ChatSession(
        id=session_id,
        user_id=user_id,
        title=title or DEFAULT_TITLE,
        created_at=now,
        updated_at=now,
    )
    db.add(session)
    await db.commit()
    await db.refresh(session)
    logger.info(f"Created chat session {session_id} for user {user_id}")
    return session

async def find_chat_session(db: AsyncSession, session_id: str) -> Optional[ChatSession]:
    result = await db.execute(select(ChatSession).where(ChatSession.id == session_id))
    return result.scalar_one_or_none()

async def get_chat_session(db: AsyncSession, session_id: str, user_id: str) -> ChatSession:
    """
    Retrieve a session owned by ``user_id``.

    Raises:
        HTTPException: 404 if the session does not exist or belongs to someone else
    """
    result = await db.execute(
        select(ChatSession).where(ChatSession.id == session_id, ChatSession.user_id == user_id)
    )
    session = result.scalar_one_or_none()
    if not session:
        logger.warning(f"Session not found: {session_id} for user: {user_id}")
        raise HTTPException(status_code=404, detail="Session not found")
    return session

async def ensure_chat_session(db: AsyncSession, session_id: str, user_id: str, first_message_text: str = "") -> ChatSession:
    """Return the user's session, creating it on the first user message of a conversation."""
    existing = await find_chat_session(db, session_id)
    if existing is None:
        return await create_chat_session(db, user_id, title_from_text(first_message_text), session_id=session_id)
    if existing.user_id != user_id:
        logger.warning(f"Session {session_id} belongs to another user, refusing access for {user_id}")
        raise HTTPException(status_code=404, detail="Session not found")
    return existing

async def list_chat_sessions(db: AsyncSession, user_id: str) -> List[ChatSession]:
    result = await db.execute(
        select(ChatSession)
        .where(ChatSession.user_id == user_id)
        .order_by(ChatSession.updated_at.desc())
    )
    return list(result.scalars().all())

async def update_chat_session(
    db: AsyncSession,
    session_id: str,
    user_id: str,
    title: Optional[str] = None,
    last_message_at: Optional[datetime] = None,
) -> ChatSession:
    session = await get_chat_session(db, session_id, user_id)
    if title is not None:
        session.title = title
    if last_message_at is not None:
        session.last_message_at = last_message_at
    session.updated_at = utc_now()
    db.add(session)
    await db.commit()
    await db.refresh(session)
    return session

async def delete_chat_session(db: AsyncSession, session_id: str, user_id: str) -> None:
    """Delete a session together with its messages, charts and CSVs."""
    session = await get_chat_session(db, session_id, user_id)
    await db.execute(delete(ChatMessage).where(ChatMessage.session_id == session.id))
    await db.execute(delete(Chart).where(Chart.session_id == session.id))
    await db.execute(delete(CSVArtifact).where(CSVArtifact.session_id == session.id))
    await db.execute(delete(ChatSession).where(ChatSession.id == session.id))
    await db.commit()
    logger.info(f"Deleted chat session {session_id} for user {user_id}")

async def get_chat_messages(db: AsyncSession, session_id: str) -> List[ChatMessage]:
    result = await db.execute(
        select(ChatMessage)
        .where(ChatMessage.session_id == session_id)
        .order_by(ChatMessage.position.asc())
    )
    return list(result.scalars().all())

async def save_chat_messages(db: AsyncSession, session_id: str, messages: List[Dict[str, Any]]) -> int:
    """
    Replace every message of a session with ``messages``, in order, in one
    transaction.

    Args:
        db: Async database session
        session_id: Session whose transcript is replaced
        messages: Dicts with id, role, content (list of parts) and optional
            processing_time_ms

    Returns:
        Number of messages written
    """
    now = utc_now()
    rows = [
        {
            "id": message["id"],
            "session_id": session_id,
            "role": message["role"],
            "content": message.get("content") or [],
            "position": position,
            "processing_time_ms": message.get("processing_time_ms"),
            "created_at": now,
        }
        for position, message in enumerate(messages)
    ]
    try:
        # Rows are written with bulk statements so previously loaded instances never clash with the new ones
        await db.execute(
            delete(ChatMessage).where(ChatMessage.session_id == session_id).execution_options(synchronize_session=False)
        )
        if rows:
            await db.execute(insert(ChatMessage), rows)
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    logger.info(f"Saved {len(messages)} messages to session {session_id}")
    return len(messages)

async def append_chat_message(db: AsyncSession, session_id: str, user_id: str, role: str, parts: List[Dict[str, Any]]) -> str:
    """
    Append one message to a session's stored transcript and touch
    ``last_message_at``. Returns the new message id.
    """
    existing = await get_chat_messages(db, session_id)
    stored = [
        {
            "id": message.id,
            "role": message.role.value if hasattr(message.role, "value") else message.role,
            "content": message.content,
            "processing_time_ms": message.processing_time_ms,
        }
        for message in existing
    ]
    message_id = str(uuid4())
    stored.append({"id": message_id, "role": role, "content": parts})
    await save_chat_messages(db, session_id, stored)
    await update_chat_session(db, session_id, user_id, last_message_at=utc_now())
    return message_id
