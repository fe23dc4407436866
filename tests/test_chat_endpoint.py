"""
Tests for POST /api/chat with a scripted OpenAI-compatible client in place of
a real model.
"""

from __future__ import annotations

import asyncio
import json
from datetime import timedelta
from types import SimpleNamespace
from typing import Any, Dict, List

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from pydantic import SecretStr
from sqlalchemy import select

from patent_explorer.config import settings
from patent_explorer.core.chat.errors import classify_chat_error
from patent_explorer.main import app
from patent_explorer.models.artifacts import CSVArtifact
from patent_explorer.models.chat_message import ChatMessage
from patent_explorer.models.chat_session import ChatSession
from patent_explorer.models.user_profile import RateLimitRecord, UserProfile
from patent_explorer.routers.chat import endpoints as chat_endpoints
from patent_explorer.services.provider_selector import ModelSelection
from patent_explorer.services.rate_limit_service import anonymous_identity
from patent_explorer.utils.time_utils import utc_now

SESSION_ID = "5c2d8f1e-7a3b-4c6d-9e0f-1a2b3c4d5e6f"


def _text_chunk(content: str) -> SimpleNamespace:
    delta = SimpleNamespace(content=content, tool_calls=None)
    return SimpleNamespace(choices=[SimpleNamespace(delta=delta)], usage=None)


def _tool_chunk(call_id: str, name: str, arguments: str) -> SimpleNamespace:
    call = SimpleNamespace(index=0, id=call_id, function=SimpleNamespace(name=name, arguments=arguments))
    delta = SimpleNamespace(content=None, tool_calls=[call])
    return SimpleNamespace(choices=[SimpleNamespace(delta=delta)], usage=None)


class _Stream:
    def __init__(self, chunks: List[Any]):
        self.chunks = chunks

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        # A number pauses the stream for that many seconds; an exception breaks it
        for chunk in self.chunks:
            if isinstance(chunk, Exception):
                raise chunk
            if isinstance(chunk, (int, float)):
                await asyncio.sleep(chunk)
                continue
            yield chunk


class FakeOpenAI:
    """Returns one scripted stream per completion call, or raises a scripted error."""

    def __init__(self, script: List[Any]):
        self.script = list(script)
        self.calls: List[Dict[str, Any]] = []
        self.chat = SimpleNamespace(completions=self)
        self.closed = False

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        step = self.script.pop(0)
        if isinstance(step, Exception):
            raise step
        return _Stream(step)

    async def close(self):
        self.closed = True


class FakeSelection(ModelSelection):
    fake_client = None

    def client(self):
        return self.fake_client


@pytest.fixture
def scripted_model(monkeypatch):
    def _install(*script) -> FakeOpenAI:
        fake = FakeOpenAI(list(script))
        selection = FakeSelection(provider="ollama", model="qwen3:8b", base_url="http://localhost:11434/v1", api_key="ollama", info="Fake", is_local=True)
        selection.fake_client = fake

        async def _select_model(headers, user_id=None, tier=None, subscription_active=False, settings=None):
            return selection

        monkeypatch.setattr(chat_endpoints, "select_model", _select_model)
        return fake

    return _install


def _user_message(text: str, message_id: str = "msg-1") -> Dict[str, Any]:
    return {"id": message_id, "role": "user", "parts": [{"type": "text", "text": text}]}


def _frames(body: str) -> List[Any]:
    frames = []
    for block in body.split("\n\n"):
        if not block.startswith("data: "):
            continue
        data = block[len("data: "):]
        frames.append(data if data == "[DONE]" else json.loads(data))
    return frames


def _stored_messages(db_session) -> List[ChatMessage]:
    db_session.expire_all()
    return list(db_session.execute(
        select(ChatMessage).where(ChatMessage.session_id == SESSION_ID).order_by(ChatMessage.position)
    ).scalars())


def test_streams_text_and_persists_the_turn(client, db_session, scripted_model) -> None:
    fake = scripted_model([_text_chunk("Solid-state "), _text_chunk("batteries.")])

    response = client.post("/api/chat", json={"messages": [_user_message("Tell me about batteries")], "sessionId": SESSION_ID})

    assert response.status_code == 200
    assert response.headers["x-vercel-ai-ui-message-stream"] == "v1"
    assert response.headers["content-type"].startswith("text/event-stream")
    assert response.headers["x-development-mode"] == "true"

    frames = _frames(response.text)
    assert frames[-1] == "[DONE]"
    types = [f["type"] for f in frames[:-1]]
    assert types == ["start", "start-step", "text-start", "text-delta", "text-delta", "text-end", "finish-step", "finish"]
    assert "".join(f["delta"] for f in frames[:-1] if f["type"] == "text-delta") == "Solid-state batteries."

    sent = fake.calls[0]
    assert sent["messages"][0]["role"] == "system"
    assert sent["messages"][1] == {"role": "user", "content": "Tell me about batteries"}
    assert {t["function"]["name"] for t in sent["tools"]} >= {"patentSearch", "createCSV"}

    session = db_session.get(ChatSession, SESSION_ID)
    assert session.user_id == settings.dev_user_id
    assert session.title == "Tell me about batteries"

    stored = _stored_messages(db_session)
    assert [m.role.value for m in stored] == ["user", "assistant"]
    assert stored[1].content[-1] == {"type": "text", "text": "Solid-state batteries."}
    assert stored[1].processing_time_ms is not None


def test_tool_calls_are_executed_and_fed_back(client, db_session, scripted_model) -> None:
    arguments = json.dumps({"title": "Assignees", "headers": ["Assignee", "Patents"], "rows": [["Toyota", "120"]]})
    fake = scripted_model(
        [_tool_chunk("call_csv", "createCSV", arguments)],
        [_text_chunk("Here is the table.")],
    )

    response = client.post("/api/chat", json={"messages": [_user_message("Top assignees as CSV")], "sessionId": SESSION_ID})

    frames = [f for f in _frames(response.text) if f != "[DONE]"]
    types = [f["type"] for f in frames]
    assert types.count("start-step") == 2
    assert "tool-input-start" in types
    available = next(f for f in frames if f["type"] == "tool-input-available")
    assert available["toolName"] == "createCSV"
    output = next(f for f in frames if f["type"] == "tool-output-available")["output"]
    assert output["csvContent"] == "Assignee,Patents\nToyota,120"

    csv_artifact = db_session.get(CSVArtifact, output["csvId"])
    assert csv_artifact.session_id == SESSION_ID

    followup = fake.calls[1]["messages"]
    assert followup[-2]["tool_calls"][0]["id"] == "call_csv"
    assert followup[-1]["role"] == "tool"
    assert followup[-1]["tool_call_id"] == "call_csv"

    assistant = _stored_messages(db_session)[-1]
    tool_part = next(p for p in assistant.content if p["type"] == "tool-createCSV")
    assert tool_part["state"] == "output-available"
    assert tool_part["input"]["title"] == "Assignees"


def test_generation_failure_returns_500_and_keeps_user_message(client, db_session, scripted_model) -> None:
    fake = scripted_model(RuntimeError("upstream exploded"))

    response = client.post("/api/chat", json={"messages": [_user_message("Hello")], "sessionId": SESSION_ID})

    assert response.status_code == 500
    assert response.json()["error"] == "CHAT_ERROR"
    assert response.json()["message"] == "upstream exploded"
    stored = _stored_messages(db_session)
    assert [m.role.value for m in stored] == ["user"]
    assert stored[0].content == [{"type": "text", "text": "Hello"}]
    assert fake.closed is True


def test_model_without_tool_support_returns_400(client, scripted_model) -> None:
    scripted_model(RuntimeError("registry.ollama.ai/library/gemma:2b does not support tools"))

    response = client.post("/api/chat", json={"messages": [_user_message("Hello")]})

    assert response.status_code == 400
    assert response.json()["error"] == "MODEL_COMPATIBILITY_ERROR"
    assert response.json()["compatibilityIssue"] == "tools"


def test_turn_without_session_is_not_persisted(client, db_session, scripted_model) -> None:
    scripted_model([_text_chunk("Hi")])

    response = client.post("/api/chat", json={"messages": [_user_message("Hello")]})

    assert response.status_code == 200
    assert db_session.execute(select(ChatMessage)).first() is None


def test_model_without_thinking_support_returns_400(client, scripted_model) -> None:
    scripted_model(RuntimeError("qwen2.5:7b does not support thinking"))

    response = client.post("/api/chat", json={"messages": [_user_message("Hello")]})

    assert response.status_code == 400
    assert response.json()["error"] == "MODEL_COMPATIBILITY_ERROR"
    assert response.json()["compatibilityIssue"] == "thinking"


def test_stack_trace_is_only_returned_in_development(monkeypatch) -> None:
    try:
        raise RuntimeError("database unavailable")
    except RuntimeError as e:
        error = e

    development = json.loads(classify_chat_error(error).body)
    monkeypatch.setattr(settings, "app_mode", "production")
    production = json.loads(classify_chat_error(error).body)

    assert "RuntimeError: database unavailable" in development["details"]
    assert production == {"error": "CHAT_ERROR", "message": "database unavailable"}


def test_failure_mid_stream_ends_open_text_then_reports_error(client, db_session, scripted_model) -> None:
    fake = scripted_model([_text_chunk("partial "), RuntimeError("connection reset by model")])

    response = client.post("/api/chat", json={"messages": [_user_message("Summarize")], "sessionId": SESSION_ID})

    assert response.status_code == 200
    frames = _frames(response.text)
    assert frames[-1] == "[DONE]"
    assert [f["type"] for f in frames[:-1]] == ["start", "start-step", "text-start", "text-delta", "text-end", "error", "finish"]
    assert frames[3]["id"] == frames[4]["id"] == "text-0"
    assert frames[5]["errorText"] == "connection reset by model"

    stored = _stored_messages(db_session)
    assert [m.role.value for m in stored] == ["user", "assistant"]
    assert {"type": "text", "text": "partial "} in stored[1].content
    assert fake.closed is True


def test_generation_over_max_duration_reports_error_and_saves_partial_turn(client, db_session, scripted_model, monkeypatch) -> None:
    monkeypatch.setattr(settings, "chat_max_duration_seconds", 0.2)
    fake = scripted_model([_text_chunk("partial "), 5, _text_chunk("never sent")])

    response = client.post("/api/chat", json={"messages": [_user_message("Summarize")], "sessionId": SESSION_ID})

    frames = [f for f in _frames(response.text) if f != "[DONE]"]
    assert [f["type"] for f in frames] == ["start", "start-step", "text-start", "text-delta", "text-end", "error", "finish"]
    assert frames[5]["errorText"] == "Generation exceeded the maximum duration of 0.2 seconds."

    stored = _stored_messages(db_session)
    assert [m.role.value for m in stored] == ["user", "assistant"]
    assert {"type": "text", "text": "partial "} in stored[1].content
    assert fake.closed is True


@pytest.fixture
def production(monkeypatch):
    monkeypatch.setattr(settings, "app_mode", "production")
    monkeypatch.setattr(settings, "supabase_jwt_secret", SecretStr("test-jwt-secret"))
    # No context manager: the production startup checks would refuse this environment
    return TestClient(app)


def _bearer(user_id: str) -> Dict[str, str]:
    token = jwt.encode({"sub": user_id, "email": f"{user_id}@example.com", "aud": "authenticated"}, "test-jwt-secret", algorithm="HS256")
    return {"Authorization": f"Bearer {token}"}


def test_anonymous_quota_exhausted_returns_429(production, db_session) -> None:
    db_session.add(RateLimitRecord(
        identity=anonymous_identity("testclient", "testclient"), count=5, reset_time=utc_now() + timedelta(hours=3),
    ))
    db_session.commit()

    response = production.post("/api/chat", json={"messages": [_user_message("Hello")]})

    assert response.status_code == 429
    assert response.json()["error"] == "RATE_LIMIT_EXCEEDED"
    assert response.headers["X-RateLimit-Limit"] == "5"
    assert response.headers["X-RateLimit-Remaining"] == "0"
    assert "X-RateLimit-Reset" in response.headers


def test_lapsed_paid_subscription_returns_402(production, db_session) -> None:
    db_session.add(UserProfile(id="user-ppu", subscription_tier="pay_per_use", subscription_status="past_due"))
    db_session.commit()

    response = production.post("/api/chat", json={"messages": [_user_message("Hello")]}, headers=_bearer("user-ppu"))

    assert response.status_code == 402
    assert response.json() == {
        "error": "PAYMENT_REQUIRED",
        "message": "Payment method setup required",
        "tier": "pay_per_use",
        "action": "setup_payment",
    }


def test_free_user_over_quota_returns_429_with_tier(production, db_session) -> None:
    db_session.add(RateLimitRecord(identity="user:user-free", count=20, reset_time=utc_now() + timedelta(hours=3)))
    db_session.commit()

    response = production.post("/api/chat", json={"messages": [_user_message("Hello")]}, headers=_bearer("user-free"))

    assert response.status_code == 429
    assert response.json()["tier"] == "free"


def test_invalid_token_is_rejected(production) -> None:
    response = production.post("/api/chat", json={"messages": [_user_message("Hello")]}, headers={"Authorization": "Bearer not-a-jwt"})

    assert response.status_code == 401
