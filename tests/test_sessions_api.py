"""
Tests for the chat session endpoints. Development mode authenticates every
request as the local development user.
"""

from __future__ import annotations

from datetime import datetime, timezone

from patent_explorer.config import settings
from patent_explorer.models.artifacts import CSVArtifact
from patent_explorer.models.chat_message import ChatMessage, MessageRole
from patent_explorer.models.chat_session import ChatSession

CHART_ID = "0b6f1c0e-3f5e-4c59-9a53-0d2a9f4f6a11"
CSV_ID = "7d1f2a3b-1111-4c22-8d33-9e44f5a6b7c8"


def _seed_session(db_session, session_id: str, user_id: str, title: str = "Battery research") -> None:
    now = datetime.now(timezone.utc)
    db_session.add(ChatSession(id=session_id, user_id=user_id, title=title, created_at=now, updated_at=now))
    db_session.commit()


def test_create_list_rename_delete(client) -> None:
    created = client.post("/api/chat/sessions", json={"title": "Solid-state batteries"})
    assert created.status_code == 201
    session_id = created.json()["id"]
    assert created.json()["title"] == "Solid-state batteries"

    untitled = client.post("/api/chat/sessions", json={})
    assert untitled.json()["title"] == "New Chat"

    listing = client.get("/api/chat/sessions")
    assert listing.status_code == 200
    assert {s["id"] for s in listing.json()["sessions"]} == {session_id, untitled.json()["id"]}

    renamed = client.patch(f"/api/chat/sessions/{session_id}", json={"title": "  Sulfide electrolytes  "})
    assert renamed.status_code == 200
    assert renamed.json()["title"] == "Sulfide electrolytes"

    assert client.patch(f"/api/chat/sessions/{session_id}", json={"title": "   "}).status_code == 422

    assert client.delete(f"/api/chat/sessions/{session_id}").status_code == 204
    assert client.get(f"/api/chat/sessions/{session_id}").status_code == 404


def test_session_detail_returns_ordered_messages_and_artifacts(client, db_session) -> None:
    session_id = "4e0c7a52-5b6d-4f3e-8a9b-0c1d2e3f4a5b"
    _seed_session(db_session, session_id, settings.dev_user_id)
    answer = f"Trends: ![Filing Trends](/api/charts/{CHART_ID}/image)\n\n![csv](csv:{CSV_ID})"
    db_session.add_all([
        ChatMessage(
            id="a4f0d3d2-0000-4000-8000-000000000002", session_id=session_id, role=MessageRole.assistant,
            content=[{"type": "step-start"}, {"type": "text", "text": answer}], position=1, processing_time_ms=2100,
        ),
        ChatMessage(
            id="a4f0d3d2-0000-4000-8000-000000000001", session_id=session_id, role=MessageRole.user,
            content=[{"type": "text", "text": "Show filing trends"}], position=0,
        ),
    ])
    db_session.commit()

    response = client.get(f"/api/chat/sessions/{session_id}")

    assert response.status_code == 200
    body = response.json()
    assert body["session"]["title"] == "Battery research"
    assert [m["role"] for m in body["messages"]] == ["user", "assistant"]
    assert body["messages"][1]["processing_time_ms"] == 2100
    assert body["artifacts"] == {"charts": [CHART_ID], "csvs": [CSV_ID]}


def test_other_users_sessions_are_not_visible(client, db_session) -> None:
    session_id = "9a8b7c6d-5e4f-4a3b-9c2d-1e0f9a8b7c6d"
    _seed_session(db_session, session_id, "someone-else")

    assert client.get(f"/api/chat/sessions/{session_id}").status_code == 404
    assert client.patch(f"/api/chat/sessions/{session_id}", json={"title": "mine"}).status_code == 404
    assert client.delete(f"/api/chat/sessions/{session_id}").status_code == 404
    assert client.get("/api/chat/sessions").json()["sessions"] == []


def test_delete_removes_owned_artifacts(client, db_session) -> None:
    session_id = "1f2e3d4c-5b6a-4978-8695-a4b3c2d1e0f9"
    _seed_session(db_session, session_id, settings.dev_user_id)
    db_session.add(CSVArtifact(
        id=CSV_ID, session_id=session_id, user_id=settings.dev_user_id,
        title="Assignees", headers=["A"], rows=[["1"]],
    ))
    db_session.commit()

    assert client.delete(f"/api/chat/sessions/{session_id}").status_code == 204

    db_session.expire_all()
    assert db_session.get(CSVArtifact, CSV_ID) is None
    assert client.get(f"/api/csvs/{CSV_ID}").status_code == 404
