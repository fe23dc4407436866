import logging
from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.ext.asyncio import AsyncSession

from patent_explorer.init_db import get_db
from patent_explorer.models.chat_session import ChatSession
from patent_explorer.schemas.chat import ChatMessageResponse
from patent_explorer.schemas.sessions import (
    ArtifactReferences,
    ChatSessionResponse,
    CreateSessionRequest,
    SessionDetailResponse,
    SessionListResponse,
    UpdateSessionRequest,
)
from patent_explorer.services import chat_service
from patent_explorer.utils.auth import CurrentUser, get_current_user
from patent_explorer.utils.markdown_refs import collect_artifact_references

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/chat/sessions", tags=["Chat Sessions"])

def _session_response(session: ChatSession) -> ChatSessionResponse:
    return ChatSessionResponse(
        id=session.id,
        title=session.title,
        created_at=session.created_at,
        updated_at=session.updated_at,
        last_message_at=session.last_message_at,
    )

@router.get("", response_model=SessionListResponse)
async def list_sessions(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user)
):
    """List the caller's chat sessions, most recently updated first."""
    sessions = await chat_service.list_chat_sessions(db, current_user.id)
    logger.info(f"Retrieved {len(sessions)} sessions for user {current_user.id}")
    return SessionListResponse(sessions=[_session_response(s) for s in sessions])

@router.post("", response_model=ChatSessionResponse, status_code=201)
async def create_session(
    request: CreateSessionRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user)
):
    try:
        session = await chat_service.create_chat_session(db, current_user.id, request.title)
    except Exception as e:
        logger.error(f"Error creating chat session: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))
    return _session_response(session)

@router.get("/{session_id}", response_model=SessionDetailResponse)
async def get_session(
    session_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user)
):
    """
    Retrieve a session with its ordered messages.

    The ids of charts and CSVs embedded in message text are returned
    alongside so the client can prefetch them.

    Raises:
        HTTPException: 404 if the session does not belong to the caller
    """
    session = await chat_service.get_chat_session(db, session_id, current_user.id)
    messages = await chat_service.get_chat_messages(db, session_id)
    responses = [
        ChatMessageResponse(
            id=message.id,
            role=message.role.value,
            parts=message.content or [],
            processing_time_ms=message.processing_time_ms,
            created_at=message.created_at,
        )
        for message in messages
    ]
    references = collect_artifact_references({"parts": r.parts} for r in responses)
    logger.info(f"Retrieved session {session_id} with {len(responses)} messages")
    return SessionDetailResponse(
        session=_session_response(session),
        messages=responses,
        artifacts=ArtifactReferences(**references),
    )

@router.patch("/{session_id}", response_model=ChatSessionResponse)
async def rename_session(
    session_id: str,
    request: UpdateSessionRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user)
):
    title = request.title.strip()
    if not title:
        raise HTTPException(status_code=422, detail="Title must not be empty")
    session = await chat_service.update_chat_session(db, session_id, current_user.id, title=title)
    return _session_response(session)

@router.delete("/{session_id}", status_code=204)
async def delete_session(
    session_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user)
):
    """Delete a session and everything it owns. Only the owner may do this."""
    await chat_service.delete_chat_session(db, session_id, current_user.id)
    return Response(status_code=204)
