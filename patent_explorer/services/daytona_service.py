import base64
import httpx
import logging
import shlex
from contextlib import asynccontextmanager
from dataclasses import dataclass
from tenacity import retry, retry_if_result, stop_after_delay, wait_fixed
from typing import AsyncIterator, Optional, Tuple

from patent_explorer.config import settings
from patent_explorer.exceptions import ConfigurationError, SandboxError

logger = logging.getLogger(__name__)

CODE_RUN_TIMEOUT_SECONDS = 120
SANDBOX_START_TIMEOUT_SECONDS = 60

async def get_client():
    return httpx.AsyncClient(timeout=CODE_RUN_TIMEOUT_SECONDS + 30.0)

@dataclass
class ExecutionResult:
    exit_code: int
    result: str

class DaytonaSandboxClient:
    """
    Thin client for Daytona's sandbox REST API. A sandbox is provisioned
    per code run and always deleted afterwards, see ``provision``.
    """

    def __init__(self, api_key: str, api_url: Optional[str] = None, target: Optional[str] = None):
        self.api_key = api_key
        self.api_url = (api_url or settings.daytona_api_url).rstrip("/")
        self.target = target

    @classmethod
    def from_settings(cls) -> "DaytonaSandboxClient":
        api_key = settings.secret(settings.daytona_api_key)
        if not api_key:
            raise ConfigurationError("Daytona API key is not configured.")
        return cls(api_key, settings.daytona_api_url, settings.daytona_target)

    @property
    def headers(self):
        return {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        async with await get_client() as client:
            try:
                response = await client.request(method, f"{self.api_url}{path}", headers=self.headers, **kwargs)
            except httpx.RequestError as e:
                logger.error(f"Daytona request error: {str(e)}")
                raise SandboxError(f"Request error: {str(e)}")
        if response.status_code >= 400:
            logger.error(f"Daytona {method} {path} failed with status code: {response.status_code}")
            raise SandboxError(f"HTTP {response.status_code}: {response.text[:200]}", response.status_code)
        return response

    async def create_sandbox(self) -> Tuple[str, Optional[str]]:
        """Request a new sandbox; returns its id and initial state."""
        payload = {"labels": {"code-toolbox-language": "python"}}
        if self.target:
            payload["target"] = self.target
        response = await self._request("POST", "/sandbox", json=payload)
        data = response.json()
        sandbox_id = data["id"]
        logger.info(f"Created Daytona sandbox {sandbox_id}")
        return sandbox_id, data.get("state")

    @retry(
        stop=stop_after_delay(SANDBOX_START_TIMEOUT_SECONDS),
        wait=wait_fixed(1),
        retry=retry_if_result(lambda state: state != "started"),
        retry_error_callback=lambda retry_state: retry_state.outcome.result(),
    )
    async def _poll_state(self, sandbox_id: str) -> Optional[str]:
        response = await self._request("GET", f"/sandbox/{sandbox_id}")
        state = response.json().get("state")
        if state in ("error", "build_failed"):
            raise SandboxError(f"Sandbox {sandbox_id} failed to start ({state})")
        logger.debug(f"Sandbox {sandbox_id} is {state}")
        return state

    async def _wait_until_started(self, sandbox_id: str) -> None:
        # Polled once a second; the last state seen is returned when time runs out
        state = await self._poll_state(sandbox_id)
        if state != "started":
            raise SandboxError(f"Sandbox {sandbox_id} did not start within {SANDBOX_START_TIMEOUT_SECONDS}s")

    async def run_code(self, sandbox_id: str, code: str) -> ExecutionResult:
        encoded = base64.b64encode(code.encode("utf-8")).decode("ascii")
        command = f"sh -c {shlex.quote(f'echo {encoded} | base64 -d | python3 -u')}"
        response = await self._request(
            "POST",
            f"/toolbox/{sandbox_id}/toolbox/process/execute",
            json={"command": command, "timeout": CODE_RUN_TIMEOUT_SECONDS},
        )
        data = response.json()
        return ExecutionResult(exit_code=int(data.get("exitCode", 1)), result=data.get("result") or "")

    async def delete_sandbox(self, sandbox_id: str) -> None:
        await self._request("DELETE", f"/sandbox/{sandbox_id}", params={"force": "true"})
        logger.info(f"Deleted Daytona sandbox {sandbox_id}")

    @asynccontextmanager
    async def provision(self) -> AsyncIterator[str]:
        """Yield a fresh sandbox id; the sandbox is deleted on exit whatever happens inside."""
        sandbox_id, state = await self.create_sandbox()
        try:
            if state not in (None, "started"):
                await self._wait_until_started(sandbox_id)
            yield sandbox_id
        finally:
            try:
                await self.delete_sandbox(sandbox_id)
            except Exception as e:
                logger.error(f"[CodeExecution] Cleanup error for sandbox {sandbox_id}: {e}")
