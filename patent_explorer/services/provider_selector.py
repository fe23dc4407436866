import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from openai import AsyncOpenAI

from patent_explorer.config import Settings, settings as default_settings
from patent_explorer.exceptions import ConfigurationError
from patent_explorer.models.user_profile import SubscriptionTier
from patent_explorer.services.local_models import OLLAMA, LMSTUDIO, probe_local_provider

logger = logging.getLogger(__name__)

# Reasoning models first, then capable general models
PREFERRED_LOCAL_MODELS = [
    "deepseek-r1", "qwen3", "phi4-reasoning", "cogito",
    "llama3.1", "gemma3:4b", "gemma3", "llama3.2", "llama3", "qwen2.5", "codestral",
]

THINKING_MODELS = [
    "deepseek-r1", "deepseek-v3", "deepseek-v3.1",
    "qwen3", "qwq",
    "phi4-reasoning", "phi-4-reasoning",
    "cogito",
]

GATEWAY = "gateway"
OPENAI = "openai"

@dataclass
class ModelSelection:
    provider: str
    model: str
    base_url: Optional[str]
    api_key: str
    info: str
    supports_thinking: bool = False
    is_local: bool = False
    metered_user_id: Optional[str] = None

    def client(self) -> AsyncOpenAI:
        return AsyncOpenAI(base_url=self.base_url, api_key=self.api_key)

    def request_options(self) -> Dict[str, Any]:
        """Provider-specific keyword arguments for ``chat.completions.create``."""
        if self.is_local:
            return {"extra_body": {"think": self.supports_thinking}}
        return {
            "reasoning_effort": "medium",
            "store": True,
            "stream_options": {"include_usage": True},
        }

def pick_local_model(available: List[str], user_preferred: Optional[str] = None) -> str:
    if user_preferred and user_preferred in available:
        return user_preferred
    for preferred in PREFERRED_LOCAL_MODELS:
        for name in available:
            if preferred in name:
                return name
    return available[0]

def supports_thinking(model_name: str) -> bool:
    lowered = model_name.lower()
    return any(thinking in lowered for thinking in THINKING_MODELS)

def _gateway(settings: Settings, info: str, metered_user_id: Optional[str] = None) -> ModelSelection:
    return ModelSelection(
        provider=GATEWAY,
        model=f"openai/{settings.hosted_model}",
        base_url=settings.ai_gateway_base_url,
        api_key=settings.secret(settings.ai_gateway_api_key) or "",
        info=info,
        metered_user_id=metered_user_id,
    )

def _openai(settings: Settings, info: str, metered_user_id: Optional[str] = None) -> ModelSelection:
    return ModelSelection(
        provider=OPENAI,
        model=settings.hosted_model,
        base_url=None,
        api_key=settings.secret(settings.openai_api_key) or "",
        info=info,
        metered_user_id=metered_user_id,
    )

def hosted_selection(settings: Settings, label: str) -> ModelSelection:
    """Gateway first, direct OpenAI second; the gateway is assumed when neither key is set."""
    model = settings.hosted_model
    if settings.secret(settings.ai_gateway_api_key):
        return _gateway(settings, f"Vercel AI Gateway ({model}) - {label}")
    if settings.secret(settings.openai_api_key):
        return _openai(settings, f"OpenAI ({model}) - {label} - Fallback")
    return _gateway(settings, f"Vercel AI Gateway ({model}) - {label} (API Key Required)")

async def select_local_model(provider_key: str, user_preferred: Optional[str]) -> ModelSelection:
    local = await probe_local_provider(provider_key)
    if not local.models:
        raise RuntimeError(f"No models available in {provider_key}")

    model_name = pick_local_model(local.models, user_preferred)
    thinking = supports_thinking(model_name)
    return ModelSelection(
        provider=local.key,
        model=model_name,
        base_url=local.openai_base_url,
        api_key=local.dummy_api_key,
        info=f"{local.name} ({model_name}){' [Reasoning]' if thinking else ''} - Development Mode",
        supports_thinking=thinking,
        is_local=True,
    )

async def select_model(
    headers: Mapping[str, str],
    user_id: Optional[str] = None,
    tier: Optional[str] = None,
    subscription_active: bool = False,
    settings: Optional[Settings] = None,
) -> ModelSelection:
    """
    Decide which LLM endpoint serves this request.

    Development mode probes a local Ollama / LM Studio server first (unless the
    client disabled it) and falls back to the hosted path on any failure.
    Production routes active pay-per-use users through the metered model and
    everyone else through the gateway.

    Args:
        headers: Request headers; x-ollama-enabled, x-local-provider and
            x-ollama-model steer local selection
        user_id: Authenticated user id, None for anonymous callers
        tier: The user's subscription tier
        subscription_active: Whether that subscription is active
        settings: Settings override, mainly for tests

    Returns:
        ModelSelection describing the chosen endpoint

    Raises:
        ConfigurationError: In production when the gateway key is missing
    """
    settings = settings or default_settings

    if settings.is_development:
        local_enabled = headers.get("x-ollama-enabled") != "false"
        if local_enabled:
            provider_key = headers.get("x-local-provider") or OLLAMA
            if provider_key not in (OLLAMA, LMSTUDIO):
                provider_key = OLLAMA
            try:
                selection = await select_local_model(provider_key, headers.get("x-ollama-model"))
                logger.info(f"[Chat API] Model selected: {selection.info}")
                return selection
            except Exception as e:
                logger.error(f"[Chat API] Local provider error ({provider_key}): {e}")
        selection = hosted_selection(settings, "Development Mode Fallback" if local_enabled else "Development Mode")
        logger.info(f"[Chat API] Model selected: {selection.info}")
        return selection

    if not settings.secret(settings.ai_gateway_api_key):
        raise ConfigurationError("AI_GATEWAY_API_KEY is required. Get your key at https://vercel.com/dashboard > AI Gateway > API Keys")

    model = settings.hosted_model
    if user_id:
        tier = tier or SubscriptionTier.FREE.value
        if subscription_active and tier == SubscriptionTier.PAY_PER_USE.value:
            label = "Production Mode (Polar Tracked - Pay-per-use)"
            if settings.secret(settings.openai_api_key):
                selection = _openai(settings, f"OpenAI ({model}) - {label}", metered_user_id=user_id)
            else:
                selection = _gateway(settings, f"Vercel AI Gateway ({model}) - {label}", metered_user_id=user_id)
        else:
            selection = hosted_selection(settings, f"Production Mode ({tier} tier)")
    else:
        selection = hosted_selection(settings, "Production Mode (Anonymous)")

    logger.info(f"[Chat API] Model selected: {selection.info}")
    return selection
