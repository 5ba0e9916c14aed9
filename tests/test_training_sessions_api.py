"""Tests for the training session HTTP endpoints."""

from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock
from uuid import UUID, uuid4

import httpx
import pytest
from fastapi.testclient import TestClient

from app.api.training_sessions import status_code_for
from app.core.auth_middleware import AuthContext, require_auth
from app.core.retrieval import MATCH_RPC
from app.core.training_errors import (
    CitationWriteError,
    InvalidTransition,
    MalformedProviderResponse,
    ProviderError,
    ProviderUnavailable,
    QueryError,
    SessionBusy,
    SessionNotFound,
    StoreUnavailable,
    TemplateNotFound,
    TrainingPipelineError,
)
from app.main import app
from tests.fakes.factories import make_chunk_row


@pytest.fixture
def client(fake_supabase, training_deps):
    app.state.supabase = fake_supabase
    app.state.training_deps = training_deps
    app.dependency_overrides[require_auth] = lambda: AuthContext(user_id="tester", token="t")
    yield TestClient(app)
    app.dependency_overrides.clear()
    app.state.supabase = None
    app.state.training_deps = None


def _run_body(template_id, **overrides):
    body = {"prompt_template_id": str(template_id), "query": "Is the clause enforceable?"}
    body.update(overrides)
    return body


# === Sessions ===


def test_create_session(client, fake_supabase):
    response = client.post(
        "/v1/training-sessions",
        json={"domain": "academic", "title": "  Methods Critique  ", "objective": "Spot flaws"},
    )

    assert response.status_code == 201
    session = response.json()["session"]
    assert session["title"] == "Methods Critique"
    assert session["status"] == "draft"
    assert session["domain"] == "academic"
    assert len(fake_supabase.rows("training_sessions")) == 1


def test_create_session_blank_title(client, fake_supabase):
    response = client.post("/v1/training-sessions", json={"title": "   "})

    assert response.status_code == 422
    assert fake_supabase.rows("training_sessions") == []


def test_get_session(client, seeded):
    response = client.get(f"/v1/training-sessions/{seeded.session['id']}")

    assert response.status_code == 200
    assert response.json()["session"]["title"] == "Contract Formation Drill"


def test_get_session_not_found(client):
    response = client.get(f"/v1/training-sessions/{uuid4()}")

    assert response.status_code == 404


# === Runs ===


def test_run_session(client, fake_supabase, seeded):
    fake_supabase.rpc_results[MATCH_RPC] = [make_chunk_row(0.9), make_chunk_row(0.8)]

    response = client.post(
        f"/v1/training-sessions/{seeded.session['id']}/run",
        json=_run_body(seeded.template["id"], reasoning_level=2),
    )

    assert response.status_code == 200
    data = response.json()
    assert UUID(data["run_id"])
    assert UUID(data["document_id"])
    assert len(data["retrieval"]) == 2
    assert [c["label"] for c in data["citations"]] == ["Source 1", "Source 2"]
    assert fake_supabase.row("training_sessions", seeded.session["id"])["status"] == "needs_input"


def test_run_session_blank_query(client, seeded, openai_client):
    response = client.post(
        f"/v1/training-sessions/{seeded.session['id']}/run",
        json=_run_body(seeded.template["id"], query="  "),
    )

    assert response.status_code == 422
    openai_client.embeddings.create.assert_not_awaited()


def test_run_session_unknown_template(client, seeded):
    response = client.post(
        f"/v1/training-sessions/{seeded.session['id']}/run",
        json=_run_body(uuid4()),
    )

    assert response.status_code == 404
    assert response.json()["detail"] == "Prompt template not found."


def test_run_session_busy(client, fake_supabase, seeded):
    fake_supabase.row("training_sessions", seeded.session["id"])["status"] = "in_progress"
    fake_supabase.row("training_sessions", seeded.session["id"])["started_at"] = datetime.now(timezone.utc).isoformat()

    response = client.post(
        f"/v1/training-sessions/{seeded.session['id']}/run",
        json=_run_body(seeded.template["id"]),
    )

    assert response.status_code == 409


def test_run_session_store_outage(client, fake_supabase, seeded, openai_client):
    fake_supabase.fail("training_sessions", "select", httpx.ConnectError("connection refused"))

    response = client.post(
        f"/v1/training-sessions/{seeded.session['id']}/run",
        json=_run_body(seeded.template["id"]),
    )

    assert response.status_code == 502
    assert response.json()["detail"] == "Session store is unavailable."
    openai_client.embeddings.create.assert_not_awaited()


def test_get_session_store_outage(client, fake_supabase, seeded):
    fake_supabase.fail("training_sessions", "select", httpx.ReadTimeout("timed out"))

    response = client.get(f"/v1/training-sessions/{seeded.session['id']}")

    assert response.status_code == 502
    assert response.json()["detail"] == "Session store is unavailable."


def test_run_session_provider_failure(client, fake_supabase, seeded, openai_client):
    openai_client.responses.create.return_value = SimpleNamespace(output=[], usage=None)

    response = client.post(
        f"/v1/training-sessions/{seeded.session['id']}/run",
        json=_run_body(seeded.template["id"]),
    )

    assert response.status_code == 502
    assert fake_supabase.row("training_sessions", seeded.session["id"])["status"] == "needs_input"


def test_run_without_pipeline_configured(fake_supabase, seeded):
    app.state.supabase = fake_supabase
    app.state.training_deps = None
    app.dependency_overrides[require_auth] = lambda: AuthContext(user_id="tester", token="t")
    try:
        response = TestClient(app).post(
            f"/v1/training-sessions/{seeded.session['id']}/run",
            json=_run_body(seeded.template["id"]),
        )
    finally:
        app.dependency_overrides.clear()
        app.state.supabase = None

    assert response.status_code == 503


# === Citations ===


def test_list_citations_in_source_order(client, fake_supabase, seeded):
    fake_supabase.rpc_results[MATCH_RPC] = [make_chunk_row(0.9 - i * 0.01) for i in range(11)]
    run = client.post(
        f"/v1/training-sessions/{seeded.session['id']}/run",
        json=_run_body(seeded.template["id"]),
    ).json()

    response = client.get(f"/v1/training-sessions/documents/{run['document_id']}/citations")

    assert response.status_code == 200
    labels = [c["citation_label"] for c in response.json()["citations"]]
    assert labels == [f"Source {n}" for n in range(1, 7)]


def test_list_citations_unknown_document(client):
    response = client.get(f"/v1/training-sessions/documents/{uuid4()}/citations")

    assert response.status_code == 404


# === Error mapping and auth ===


@pytest.mark.parametrize(
    "error,expected",
    [
        (SessionNotFound("x"), 404),
        (TemplateNotFound("x"), 404),
        (SessionBusy("x"), 409),
        (InvalidTransition("x"), 409),
        (ProviderUnavailable("x"), 503),
        (ProviderError("x"), 502),
        (StoreUnavailable("x"), 502),
        (QueryError("x"), 502),
        (MalformedProviderResponse("x"), 502),
        (CitationWriteError("x"), 500),
        (TrainingPipelineError("x"), 500),
    ],
)
def test_status_code_for(error, expected):
    assert status_code_for(error) == expected


def test_requires_auth(fake_supabase, seeded):
    app.state.supabase = fake_supabase
    try:
        response = TestClient(app).get(f"/v1/training-sessions/{seeded.session['id']}")
    finally:
        app.state.supabase = None

    assert response.status_code == 401


def test_admin_api_key(monkeypatch, fake_supabase, seeded, settings):
    admin_settings = settings.model_copy(update={"ADMIN_API_KEY": "secret-admin"})
    monkeypatch.setattr("app.core.auth_middleware.get_settings", lambda: admin_settings)
    app.state.supabase = fake_supabase
    try:
        client = TestClient(app)
        ok = client.get(
            f"/v1/training-sessions/{seeded.session['id']}", headers={"X-API-Key": "secret-admin"}
        )
        wrong = client.get(
            f"/v1/training-sessions/{seeded.session['id']}", headers={"X-API-Key": "nope"}
        )
    finally:
        app.state.supabase = None

    assert ok.status_code == 200
    assert wrong.status_code == 401


def test_bearer_token(fake_supabase, seeded):
    fake_supabase.auth = MagicMock()
    fake_supabase.auth.get_user = AsyncMock(
        return_value=SimpleNamespace(user=SimpleNamespace(id=uuid4()))
    )
    app.state.supabase = fake_supabase
    try:
        response = TestClient(app).get(
            f"/v1/training-sessions/{seeded.session['id']}",
            headers={"Authorization": "Bearer user-jwt"},
        )
    finally:
        app.state.supabase = None

    assert response.status_code == 200
    fake_supabase.auth.get_user.assert_awaited_once_with("user-jwt")


def test_list_runs(client, fake_supabase, seeded):
    run = client.post(
        f"/v1/training-sessions/{seeded.session['id']}/run",
        json=_run_body(seeded.template["id"]),
    ).json()

    response = client.get(f"/v1/training-sessions/{seeded.session['id']}/runs")

    assert response.status_code == 200
    runs = response.json()["runs"]
    assert [r["id"] for r in runs] == [run["run_id"]]
    assert runs[0]["model_name"] == "gpt-5.1"


def test_list_runs_unknown_session(client):
    response = client.get(f"/v1/training-sessions/{uuid4()}/runs")

    assert response.status_code == 404
