import httpx
import logging
from typing import Any, Dict, List, Optional

from patent_explorer.config import settings

logger = logging.getLogger(__name__)

async def get_client():
    return httpx.AsyncClient(timeout=10.0)

class PolarEventTracker:
    """
    Reports metered usage (LLM tokens, search cost, sandbox time) to Polar's
    event ingestion API. Events are keyed by our user id as Polar's external
    customer id.
    """

    def __init__(self, access_token: Optional[str] = None, api_url: Optional[str] = None):
        self.access_token = access_token or settings.secret(settings.polar_access_token)
        self.api_url = (api_url or settings.polar_api_url).rstrip("/")

    async def ingest(self, events: List[Dict[str, Any]]) -> None:
        if not self.access_token:
            logger.warning("Polar access token missing - skipping usage ingestion")
            return
        headers = {"Authorization": f"Bearer {self.access_token}", "Content-Type": "application/json"}
        async with await get_client() as client:
            response = await client.post(f"{self.api_url}/events/ingest", json={"events": events}, headers=headers)
        if response.status_code >= 400:
            raise RuntimeError(f"Polar ingestion failed with status {response.status_code}: {response.text[:200]}")
        logger.debug(f"Ingested {len(events)} Polar event(s)")

    async def track_llm_usage(self, user_id: str, model: str, input_tokens: int, output_tokens: int, session_id: Optional[str] = None) -> None:
        await self.ingest([{
            "name": "llm_usage",
            "external_customer_id": user_id,
            "metadata": {
                "model": model,
                "input_tokens": input_tokens,
                "output_tokens": output_tokens,
                "total_tokens": input_tokens + output_tokens,
                "session_id": session_id or "",
            },
        }])

    async def track_valyu_usage(self, user_id: str, session_id: str, tool_type: str, cost_dollars: float, metadata: Dict[str, Any]) -> None:
        await self.ingest([{
            "name": "valyu_api_usage",
            "external_customer_id": user_id,
            "metadata": {
                "tool_type": tool_type,
                "session_id": session_id,
                # Polar meters integers, so the dollar cost goes out in cents
                "cost_cents": int(round(cost_dollars * 100)),
                **metadata,
            },
        }])

    async def track_daytona_usage(self, user_id: str, session_id: str, execution_time_ms: int, metadata: Dict[str, Any]) -> None:
        await self.ingest([{
            "name": "daytona_usage",
            "external_customer_id": user_id,
            "metadata": {
                "session_id": session_id,
                "execution_time_ms": execution_time_ms,
                **metadata,
            },
        }])
