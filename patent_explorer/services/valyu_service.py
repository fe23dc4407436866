import httpx
import logging
from typing import Any, Dict, List, Optional

from patent_explorer.config import settings
from patent_explorer.exceptions import ConfigurationError, UpstreamServiceError

logger = logging.getLogger(__name__)

USPTO_SOURCE = "valyu/valyu-uspto"

async def get_client():
    return httpx.AsyncClient(timeout=60.0)

async def search(
    query: str,
    max_num_results: int,
    search_type: str = "all",
    included_sources: Optional[List[str]] = None,
    relevance_threshold: Optional[float] = None,
) -> Dict[str, Any]:
    """
    Run a Valyu DeepSearch query.

    Args:
        query: Natural-language or patent-number query
        max_num_results: Upper bound on returned results
        search_type: "proprietary" for indexed datasets, "all" for web plus datasets
        included_sources: Restrict the search to these datasets
        relevance_threshold: Minimum relevance score for returned results

    Returns:
        The decoded response; ``results`` holds the records and
        ``total_deduction_dollars`` the cost of the call.

    Raises:
        ConfigurationError: When no Valyu key is configured
        UpstreamServiceError: When Valyu rejects the request
    """
    api_key = settings.secret(settings.valyu_api_key)
    if not api_key:
        raise ConfigurationError("Valyu API key not configured.")

    payload: Dict[str, Any] = {
        "query": query,
        "max_num_results": max_num_results,
        "search_type": search_type,
        "is_tool_call": True,
    }
    if included_sources:
        payload["included_sources"] = included_sources
    if relevance_threshold is not None:
        payload["relevance_threshold"] = relevance_threshold

    headers = {"x-api-key": api_key, "Content-Type": "application/json"}

    async with await get_client() as client:
        try:
            logger.debug(f"Valyu search ({search_type}): '{query}'")
            response = await client.post(f"{settings.valyu_base_url}/deepsearch", json=payload, headers=headers)
        except httpx.RequestError as e:
            logger.error(f"Valyu request error: {str(e)}")
            raise UpstreamServiceError("Valyu", f"Request error: {str(e)}")

    if response.status_code != 200:
        logger.error(f"Valyu search failed with status code: {response.status_code}")
        raise UpstreamServiceError("Valyu", f"HTTP {response.status_code}: {response.text[:200]}", response.status_code)

    data = response.json()
    if data.get("success") is False:
        raise UpstreamServiceError("Valyu", data.get("error") or "search failed")

    logger.info(f"Valyu returned {len(data.get('results') or [])} results for '{query}'")
    return data
