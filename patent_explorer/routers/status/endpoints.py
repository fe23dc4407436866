import logging
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from patent_explorer.config import settings
from patent_explorer.init_db import get_db
from patent_explorer.models.user_profile import SubscriptionTier
from patent_explorer.routers.chat.endpoints import client_identity
from patent_explorer.schemas.rate_limit import RateLimitStatus
from patent_explorer.services import rate_limit_service, user_service
from patent_explorer.services.local_models import OLLAMA, LMSTUDIO, probe_local_provider
from patent_explorer.services.provider_selector import pick_local_model, supports_thinking
from patent_explorer.utils.auth import CurrentUser, get_optional_user
from patent_explorer.utils.time_utils import next_utc_midnight

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Status"])

@router.get("/health")
async def health():
    return {"status": "ok", "mode": settings.app_mode}

@router.get("/env-status")
async def env_status():
    """Which third-party keys are configured; drives the client's missing-keys dialog."""
    return {
        "valyuKeyPresent": bool(settings.secret(settings.valyu_api_key)),
        "daytonaKeyPresent": bool(settings.secret(settings.daytona_api_key)),
        "aiGatewayKeyPresent": bool(settings.secret(settings.ai_gateway_api_key)),
        "openaiKeyPresent": bool(settings.secret(settings.openai_api_key)),
        "aiGatewayRequired": not settings.is_development,
        "isDevelopment": settings.is_development,
    }

@router.get("/local-models")
async def local_models(provider: str = Query(OLLAMA)):
    """
    List the chat models a local Ollama or LM Studio server offers, for the
    model picker. Only available in development mode.
    """
    if not settings.is_development:
        raise HTTPException(status_code=404, detail="Local models are only available in development mode")
    if provider not in (OLLAMA, LMSTUDIO):
        raise HTTPException(status_code=400, detail=f"Unknown provider: {provider}")

    try:
        local = await probe_local_provider(provider)
    except Exception as e:
        logger.info(f"Local provider {provider} unavailable: {e}")
        return {"connected": False, "provider": provider, "models": [], "selectedModel": None, "error": str(e)}

    return {
        "connected": True,
        "provider": local.key,
        "baseUrl": local.base_url,
        "models": [{"name": name, "supportsThinking": supports_thinking(name)} for name in local.models],
        "selectedModel": pick_local_model(local.models) if local.models else None,
    }

async def _identity_and_tier(request: Request, db: AsyncSession, user: Optional[CurrentUser]):
    if user is None:
        return client_identity(request), rate_limit_service.ANONYMOUS
    tier, _ = await user_service.get_user_tier(db, user.id)
    return rate_limit_service.user_identity(user.id), tier

@router.get("/rate-limit", response_model=RateLimitStatus, response_model_by_alias=True)
async def get_rate_limit(
    request: Request,
    db: AsyncSession = Depends(get_db),
    user: Optional[CurrentUser] = Depends(get_optional_user)
):
    if settings.is_development:
        return RateLimitStatus(allowed=True, remaining=None, reset_time=next_utc_midnight(), limit=None, tier=SubscriptionTier.UNLIMITED.value)
    identity, tier = await _identity_and_tier(request, db, user)
    return await rate_limit_service.check_rate_limit(db, identity, tier)

@router.post("/rate-limit/increment", response_model=RateLimitStatus, response_model_by_alias=True)
async def increment_rate_limit(
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
    user: Optional[CurrentUser] = Depends(get_optional_user)
):
    """
    Count one anonymous turn. Authenticated turns are counted by the chat
    endpoint itself, so for signed-in callers this only reports status.
    """
    if settings.is_development:
        return RateLimitStatus(allowed=True, remaining=None, reset_time=next_utc_midnight(), limit=None, tier=SubscriptionTier.UNLIMITED.value)

    identity, tier = await _identity_and_tier(request, db, user)
    if user is not None:
        return await rate_limit_service.check_rate_limit(db, identity, tier)

    status = await rate_limit_service.check_rate_limit(db, identity, tier)
    if not status.allowed:
        response.status_code = 429
        return status
    return await rate_limit_service.increment_rate_limit(db, identity, tier)
