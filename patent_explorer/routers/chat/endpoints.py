import logging
from typing import Any, Dict, List, Optional
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from patent_explorer.config import settings
from patent_explorer.core.chat.errors import classify_chat_error
from patent_explorer.core.chat.messages import build_transcript, message_parts, message_text, to_openai_messages
from patent_explorer.core.chat.prompts import build_system_prompt
from patent_explorer.core.chat.stream import ChatStreamer, UI_STREAM_HEADERS
from patent_explorer.core.chat.tools import ToolContext
from patent_explorer.database import AsyncSessionLocal
from patent_explorer.init_db import get_db
from patent_explorer.models.user_profile import SubscriptionTier
from patent_explorer.schemas.chat import ChatErrorCode, ChatRequest
from patent_explorer.services import chat_service, rate_limit_service, user_service
from patent_explorer.services.provider_selector import select_model
from patent_explorer.utils.auth import CurrentUser, get_optional_user
from patent_explorer.utils.time_utils import utc_now

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Chat"])

def is_user_initiated(messages: List[Dict[str, Any]]) -> bool:
    """
    Only the inciting user message of a conversation counts against the
    quota: the last message is from the user and it is the only one.
    """
    if not messages or messages[-1].get("role") != "user":
        return False
    return sum(1 for message in messages if message.get("role") == "user") == 1

def client_identity(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for", "")
    client_ip = forwarded.split(",")[0].strip() or (request.client.host if request.client else "unknown")
    return rate_limit_service.anonymous_identity(client_ip, request.headers.get("user-agent", ""))

def rate_limit_response(status, anonymous: bool) -> JSONResponse:
    reset_time = status.reset_time.isoformat()
    if anonymous:
        return JSONResponse(
            status_code=429,
            content={
                "error": ChatErrorCode.RATE_LIMIT_EXCEEDED.value,
                "message": f"You have exceeded your daily limit of {status.limit} queries. Sign up to continue.",
                "resetTime": reset_time,
                "remaining": status.remaining,
            },
            headers={
                "X-RateLimit-Limit": str(status.limit),
                "X-RateLimit-Remaining": str(status.remaining),
                "X-RateLimit-Reset": reset_time,
            },
        )
    return JSONResponse(
        status_code=429,
        content={
            "error": ChatErrorCode.RATE_LIMIT_EXCEEDED.value,
            "message": "Daily query limit reached. Upgrade to continue.",
            "resetTime": reset_time,
            "tier": status.tier,
        },
    )

@router.post("/chat")
async def chat(
    payload: ChatRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    user: Optional[CurrentUser] = Depends(get_optional_user),
):
    """
    Stream one chat turn as an AI SDK UI message stream.

    Access and quota are checked before anything is generated; the user's
    message is stored before the model is called; the completed turn is
    stored when generation ends, even if the client has disconnected.

    Returns:
        StreamingResponse of SSE frames, or a JSON error with status 402,
        429, 400 (model compatibility) or 500
    """
    messages = [message.model_dump(mode="json", exclude_none=True) for message in payload.messages]
    session_id = payload.session_id
    is_development = settings.is_development
    user_initiated = is_user_initiated(messages)
    user_id = user.id if user else None

    logger.info("[Chat API] ========== NEW REQUEST ==========")
    logger.info(f"[Chat API] sessionId: {session_id}, messages: {len(messages)}, user: {user_id or 'anonymous'}, user initiated: {user_initiated}")

    tier, subscription_active = SubscriptionTier.FREE.value, False
    if user:
        tier, subscription_active = await user_service.get_user_tier(db, user.id)
        logger.info(f"[Chat API] User tier: {tier} (active: {subscription_active})")

    if user and not is_development:
        access = await user_service.validate_access(db, user.id)
        if not access.has_access and access.requires_payment_setup:
            logger.info("[Chat API] Access validation failed - payment required")
            return JSONResponse(
                status_code=402,
                content={
                    "error": ChatErrorCode.PAYMENT_REQUIRED.value,
                    "message": "Payment method setup required",
                    "tier": access.tier,
                    "action": "setup_payment",
                },
            )

    if user_initiated and not is_development:
        if user is None:
            status = await rate_limit_service.check_anonymous_rate_limit(db, client_identity(request))
            logger.info(f"[Chat API] Anonymous rate limit status: {status}")
            if not status.allowed:
                return rate_limit_response(status, anonymous=True)
        else:
            status = await rate_limit_service.check_user_rate_limit(db, user.id, tier)
            logger.info(f"[Chat API] User rate limit status: {status}")
            if not status.allowed:
                return rate_limit_response(status, anonymous=False)
    elif user_initiated:
        logger.info("[Chat API] Development mode: Rate limiting disabled")

    try:
        selection = await select_model(request.headers, user_id, tier, subscription_active)
    except Exception as e:
        return classify_chat_error(e)

    if user and session_id:
        first_user_message = next((m for m in messages if m.get("role") == "user"), {})
        await chat_service.ensure_chat_session(db, session_id, user.id, message_text(first_user_message))
        if messages and messages[-1].get("role") == "user":
            try:
                await chat_service.append_chat_message(db, session_id, user.id, "user", message_parts(messages[-1]))
                logger.info("[Chat API] User message saved")
            except Exception as e:
                logger.error(f"[Chat API] Error saving user message: {str(e)}", exc_info=True)

    async def persist_turn(assistant_message: Dict[str, Any], processing_time_ms: int):
        if not (user and session_id):
            logger.info(f"[Chat API] Skipping message save - user: {bool(user)}, sessionId: {session_id}")
            return
        transcript = build_transcript(messages, assistant_message, processing_time_ms)
        async with AsyncSessionLocal() as session_db:
            await chat_service.save_chat_messages(session_db, session_id, transcript)
            await chat_service.update_chat_session(session_db, session_id, user.id, last_message_at=utc_now())
        logger.info(f"[Chat API] Successfully saved {len(transcript)} messages to session: {session_id}")

    context = ToolContext(user_id=user_id, user_tier=tier, session_id=session_id, is_development=is_development)
    streamer = None
    try:
        streamer = ChatStreamer(
            selection,
            to_openai_messages(messages),
            context,
            build_system_prompt(),
            persist_turn,
            max_steps=settings.chat_max_steps,
            max_duration_seconds=settings.chat_max_duration_seconds,
        )
        await streamer.open()
    except Exception as e:
        if streamer is not None:
            await streamer.close()
        return classify_chat_error(e)
    streamer.start()

    if user_initiated and not is_development and user:
        try:
            result = await rate_limit_service.increment_rate_limit(db, rate_limit_service.user_identity(user.id), tier)
            logger.info(f"[Chat API] Authenticated user rate limit incremented: {result}")
        except Exception as e:
            logger.error(f"[Chat API] Failed to increment rate limit: {str(e)}")

    headers = dict(UI_STREAM_HEADERS)
    if is_development:
        headers.update({
            "X-Development-Mode": "true",
            "X-RateLimit-Limit": "unlimited",
            "X-RateLimit-Remaining": "unlimited",
        })
    return StreamingResponse(streamer.events(), media_type="text/event-stream", headers=headers)
