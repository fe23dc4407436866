import httpx
import logging
from dataclasses import dataclass, field
from typing import List

from patent_explorer.config import settings

logger = logging.getLogger(__name__)

OLLAMA = "ollama"
LMSTUDIO = "lmstudio"

EMBEDDING_MARKERS = ("embed", "embedding", "nomic")

async def get_client():
    return httpx.AsyncClient(timeout=settings.local_probe_timeout_seconds)

@dataclass
class LocalProvider:
    key: str
    name: str
    base_url: str
    models: List[str] = field(default_factory=list)

    @property
    def openai_base_url(self) -> str:
        return f"{self.base_url}/v1"

    @property
    def dummy_api_key(self) -> str:
        return "lm-studio" if self.key == LMSTUDIO else "ollama"

async def probe_local_provider(provider: str = OLLAMA) -> LocalProvider:
    """
    Ask a locally running model server which chat models it has.

    Args:
        provider: "ollama" (GET /api/tags) or "lmstudio" (GET /v1/models)

    Returns:
        LocalProvider with the available chat model names

    Raises:
        httpx.HTTPError: When the server is unreachable or times out
        RuntimeError: When the server answers with a non-2xx status
    """
    if provider == LMSTUDIO:
        base_url = settings.lmstudio_base_url.rstrip("/")
        async with await get_client() as client:
            response = await client.get(f"{base_url}/v1/models")
        if not response.is_success:
            raise RuntimeError(f"LM Studio API responded with status {response.status_code}")
        names = [m.get("id", "") for m in response.json().get("data") or []]
        # LM Studio lists embedding models alongside chat models
        models = [n for n in names if n and not any(marker in n for marker in EMBEDDING_MARKERS)]
        return LocalProvider(key=LMSTUDIO, name="LM Studio", base_url=base_url, models=models)

    base_url = settings.ollama_base_url.rstrip("/")
    async with await get_client() as client:
        response = await client.get(f"{base_url}/api/tags")
    if not response.is_success:
        raise RuntimeError(f"Ollama API responded with status {response.status_code}")
    models = [m.get("name", "") for m in response.json().get("models") or [] if m.get("name")]
    return LocalProvider(key=OLLAMA, name="Ollama", base_url=base_url, models=models)
