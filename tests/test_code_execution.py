"""
Tests for the codeExecution tool against a mocked Daytona API.

Whatever happens inside the run, the sandbox must be deleted exactly once.
"""

from __future__ import annotations

from typing import List

import httpx
import pytest
from pydantic import SecretStr

from patent_explorer.config import settings
from patent_explorer.core.chat.tools import ToolContext, code_execution
from patent_explorer.schemas.tools import CodeExecutionArgs
from patent_explorer.services import daytona_service


class _FakeDaytona:
    def __init__(
        self,
        exit_code: int = 0,
        result: str = "42\n",
        execute_status: int = 200,
        delete_status: int = 200,
        states: List[str] = None,
    ):
        self.exit_code = exit_code
        self.result = result
        self.execute_status = execute_status
        self.delete_status = delete_status
        # Sandbox states reported on create, then on each poll
        self.states = list(states or ["started"])
        self.requests: List[httpx.Request] = []

    def _next_state(self) -> str:
        return self.states.pop(0) if len(self.states) > 1 else self.states[0]

    def count(self, method: str) -> int:
        return sum(1 for r in self.requests if r.method == method)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if request.method == "POST" and path.endswith("/sandbox"):
            return httpx.Response(200, json={"id": "sb-123", "state": self._next_state()})
        if request.method == "GET" and path.endswith("/sandbox/sb-123"):
            return httpx.Response(200, json={"id": "sb-123", "state": self._next_state()})
        if request.method == "POST" and path.endswith("/process/execute"):
            if self.execute_status != 200:
                return httpx.Response(self.execute_status, json={"message": "toolbox unavailable"})
            return httpx.Response(200, json={"exitCode": self.exit_code, "result": self.result})
        if request.method == "DELETE" and path.endswith("/sandbox/sb-123"):
            return httpx.Response(self.delete_status, json={})
        return httpx.Response(404, json={"message": f"unexpected {request.method} {path}"})


@pytest.fixture
def fake_daytona(monkeypatch):
    def _install(**kwargs) -> _FakeDaytona:
        fake = _FakeDaytona(**kwargs)
        transport = httpx.MockTransport(fake.handler)

        async def _client():
            return httpx.AsyncClient(transport=transport)

        monkeypatch.setattr(daytona_service, "get_client", _client)
        monkeypatch.setattr(settings, "daytona_api_key", SecretStr("test-daytona-key"))
        return fake

    return _install


@pytest.mark.asyncio
async def test_successful_run_formats_output_and_deletes_sandbox(fake_daytona) -> None:
    fake = fake_daytona()

    output = await code_execution(CodeExecutionArgs(code="print(6 * 7)", description="Answer"), ToolContext())

    assert output.startswith("🐍 **Python Code Execution**")
    assert "**Description**: Answer" in output
    assert "```python\nprint(6 * 7)\n```" in output
    assert "42" in output
    assert "⏱️ **Execution Time**:" in output
    assert fake.count("DELETE") == 1


@pytest.mark.asyncio
async def test_sandbox_receives_encoded_python_command(fake_daytona) -> None:
    fake = fake_daytona()

    await code_execution(CodeExecutionArgs(code="print('hi')"), ToolContext())

    execute = next(r for r in fake.requests if r.url.path.endswith("/process/execute"))
    body = execute.read().decode()
    assert "python3 -u" in body
    assert execute.headers["authorization"] == "Bearer test-daytona-key"


@pytest.mark.asyncio
async def test_non_zero_exit_reports_execution_error_and_deletes_sandbox(fake_daytona) -> None:
    fake = fake_daytona(exit_code=1, result="NameError: name 'x' is not defined")

    output = await code_execution(CodeExecutionArgs(code="print(x)"), ToolContext())

    assert output == "❌ **Execution Error**: NameError: name 'x' is not defined"
    assert fake.count("DELETE") == 1


@pytest.mark.asyncio
async def test_failure_inside_run_still_deletes_sandbox(fake_daytona) -> None:
    fake = fake_daytona(execute_status=500)

    output = await code_execution(CodeExecutionArgs(code="print(1)"), ToolContext())

    assert output.startswith("❌ **Error**:")
    assert fake.count("DELETE") == 1


@pytest.mark.asyncio
async def test_cleanup_failure_is_swallowed(fake_daytona) -> None:
    fake = fake_daytona(delete_status=500)

    output = await code_execution(CodeExecutionArgs(code="print(1)"), ToolContext())

    assert output.startswith("🐍 **Python Code Execution**")
    assert fake.count("DELETE") == 1


@pytest.mark.asyncio
async def test_waits_for_sandbox_to_start(fake_daytona) -> None:
    fake = fake_daytona(states=["creating", "started"])

    output = await code_execution(CodeExecutionArgs(code="print(6 * 7)"), ToolContext())

    assert output.startswith("🐍 **Python Code Execution**")
    assert fake.count("GET") == 1
    assert fake.count("DELETE") == 1


@pytest.mark.asyncio
async def test_sandbox_that_fails_to_start_is_still_deleted(fake_daytona) -> None:
    fake = fake_daytona(states=["creating", "error"])

    output = await code_execution(CodeExecutionArgs(code="print(1)"), ToolContext())

    assert output.startswith("❌ **Error**:")
    assert "failed to start" in output
    assert fake.count("DELETE") == 1


@pytest.mark.asyncio
async def test_code_too_long_never_creates_a_sandbox(fake_daytona) -> None:
    fake = fake_daytona()

    output = await code_execution(CodeExecutionArgs(code="x" * 10001), ToolContext())

    assert output == "🚫 **Error**: Code too long. Please limit your code to 10,000 characters."
    assert fake.requests == []


@pytest.mark.asyncio
async def test_missing_api_key_returns_configuration_error(fake_daytona, monkeypatch) -> None:
    fake = fake_daytona()
    monkeypatch.setattr(settings, "daytona_api_key", None)

    output = await code_execution(CodeExecutionArgs(code="print(1)"), ToolContext())

    assert output == "❌ **Configuration Error**: Daytona API key is not configured."
    assert fake.requests == []


@pytest.mark.asyncio
async def test_readiness_is_polled_until_started(fake_daytona) -> None:
    fake = fake_daytona(states=["creating", "pending_build", "started"])

    output = await code_execution(CodeExecutionArgs(code="print(6 * 7)"), ToolContext())

    assert output.startswith("🐍 **Python Code Execution**")
    assert fake.count("GET") == 2
    assert fake.count("DELETE") == 1
