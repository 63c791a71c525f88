"""
End-to-end tests for the HTTP API (httpx + ASGITransport, SQLite per test).

The analyzer and rate limiter are replaced through FastAPI dependency
overrides; everything else runs for real.
"""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from profile_engine.config import get_settings
from profile_engine.database import get_db
from profile_engine.errors import GenerationTimeoutError, RateLimitError
from profile_engine.main import app
from profile_engine.services.analyzer import get_profile_analyzer
from profile_engine.services.rate_limit import get_rate_limiter

PROJECT_ID = "proj-1"
BASE = f"/projects/{PROJECT_ID}"

ANALYZER_REPLY = {
    "analysisSummary": {
        "overview": "Reviewers found the agent too formal and missing payback framing.",
        "feedbackThemes": ["tone", "framing"],
        "configAlignment": "needs_update",
    },
    "recommendations": [
        {
            "type": "add",
            "targetSection": "keyFramings",
            "addedContent": "Mention payback period.",
            "summaryBullets": ["Adds payback framing"],
            "rationale": "Two reviewers asked about payback.",
        },
        {
            "type": "modify",
            "targetSection": "communicationStyle",
            "modifiedFrom": "concise and direct",
            "modifiedTo": "warm but concise",
        },
    ],
}


@pytest.fixture
def analyzer():
    mock = MagicMock()
    mock.analyze = AsyncMock(return_value=json.dumps(ANALYZER_REPLY))
    return mock


@pytest.fixture
def limiter():
    mock = MagicMock()
    mock.check = AsyncMock(return_value=None)
    return mock


@pytest_asyncio.fixture
async def client(session_factory, settings, analyzer, limiter):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_profile_analyzer] = lambda: analyzer
    app.dependency_overrides[get_rate_limiter] = lambda: limiter

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def interviewed(client, sections):
    response = await client.post(f"{BASE}/profile", json={"sections": sections})
    assert response.status_code == 201
    return response.json()


@pytest_asyncio.fixture
async def generated(client, interviewed, add_comments):
    await add_comments(["Way too formal", "Never mentions payback"], age_seconds=60)
    response = await client.post(f"{BASE}/recommendations")
    assert response.status_code == 201
    return response.json()


class TestProfileEndpoints:
    @pytest.mark.asyncio
    async def test_interview_creates_version_one(self, interviewed, sections):
        assert interviewed["new_version"] == 1
        assert interviewed["profile"]["source"] == "interview"
        assert interviewed["profile"]["sections"] == sections

    @pytest.mark.asyncio
    async def test_get_profile(self, client, interviewed):
        response = await client.get(f"{BASE}/profile")
        assert response.status_code == 200
        assert response.json()["version"] == 1

    @pytest.mark.asyncio
    async def test_missing_profile_is_404(self, client):
        response = await client.get(f"{BASE}/profile")
        assert response.status_code == 404
        assert response.json() == {"detail": "Agent profile not found", "code": "NOT_FOUND", "retryable": False}

    @pytest.mark.asyncio
    async def test_manual_edit(self, client, interviewed):
        response = await client.patch(
            f"{BASE}/profile/sections/keyFramings", json={"content": "Frame advice around runway."}
        )
        assert response.status_code == 200
        body = response.json()
        assert body["new_version"] == 2
        assert body["profile"]["sections"]["keyFramings"] == "Frame advice around runway."

    @pytest.mark.asyncio
    async def test_manual_edit_unknown_section(self, client, interviewed):
        response = await client.patch(f"{BASE}/profile/sections/tone", json={"content": "Warm."})
        assert response.status_code == 422
        assert response.json()["code"] == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_history_and_rollback(self, client, interviewed, sections):
        await client.patch(f"{BASE}/profile/sections/keyFramings", json={"content": "Edit one"})

        response = await client.post(f"{BASE}/profile/rollback", json={"to_version": 1})
        assert response.status_code == 200
        assert response.json()["new_version"] == 3
        assert response.json()["profile"]["sections"] == sections

        history = (await client.get(f"{BASE}/profile/versions")).json()
        assert history["current_version"] == 3
        assert [v["version"] for v in history["versions"]] == [3, 2, 1]
        assert history["versions"][0]["restored_from_version"] == 1

        old = await client.get(f"{BASE}/profile/versions/2")
        assert old.json()["sections"]["keyFramings"] == "Edit one"

    @pytest.mark.asyncio
    async def test_rollback_accepts_camel_case_body(self, client, interviewed, sections):
        await client.patch(f"{BASE}/profile/sections/keyFramings", json={"content": "Edit one"})

        response = await client.post(f"{BASE}/profile/rollback", json={"toVersion": 1})

        assert response.status_code == 200
        assert response.json()["new_version"] == 3
        assert response.json()["profile"]["sections"] == sections

    @pytest.mark.asyncio
    async def test_rollback_to_missing_version(self, client, interviewed):
        response = await client.post(f"{BASE}/profile/rollback", json={"to_version": 9})
        assert response.status_code == 409
        assert response.json()["code"] == "INVALID_STATE"

    @pytest.mark.asyncio
    async def test_get_missing_version(self, client, interviewed):
        response = await client.get(f"{BASE}/profile/versions/9")
        assert response.status_code == 404


class TestRecommendationEndpoints:
    @pytest.mark.asyncio
    async def test_generate(self, generated, limiter):
        limiter.check.assert_awaited_once_with("generate", PROJECT_ID)
        assert generated["total_comments"] == 2
        assert generated["analysis_summary"]["config_alignment"] == "needs_update"
        assert [r["target_section"] for r in generated["recommendations"]] == ["keyFramings", "communicationStyle"]
        assert all(r["status"] == "pending" for r in generated["recommendations"])

    @pytest.mark.asyncio
    async def test_list_pending_flags_stale(self, client, generated):
        await client.patch(
            f"{BASE}/profile/sections/communicationStyle", json={"content": "Be warm and encouraging."}
        )

        response = await client.get(f"{BASE}/recommendations")
        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 2
        stale = {r["target_section"]: r["stale"] for r in body["recommendations"]}
        assert stale == {"keyFramings": False, "communicationStyle": True}

    @pytest.mark.asyncio
    async def test_diff(self, client, generated):
        rec_id = generated["recommendations"][1]["id"]

        response = await client.get(f"{BASE}/recommendations/{rec_id}/diff")
        assert response.status_code == 200
        spans = response.json()["spans"]
        assert "".join(s["text"] for s in spans if s["tag"] != "added") == "Be concise and direct. Use plain language."
        assert "".join(s["text"] for s in spans if s["tag"] != "removed") == "Be warm but concise. Use plain language."

    @pytest.mark.asyncio
    async def test_apply_all_then_dismiss_applied(self, client, generated):
        response = await client.post(f"{BASE}/recommendations/apply-all", json={"set_id": generated["id"]})
        assert response.status_code == 200
        body = response.json()
        assert body["applied_count"] == 2
        assert body["skipped"] == []
        assert body["new_version"] == 2
        assert body["current_version"] == 2
        assert body["profile"]["sections"]["communicationStyle"] == "Be warm but concise. Use plain language."

        rec_id = generated["recommendations"][0]["id"]
        dismiss = await client.post(f"{BASE}/recommendations/{rec_id}/dismiss")
        assert dismiss.status_code == 409
        assert dismiss.json()["code"] == "INVALID_STATE"

    @pytest.mark.asyncio
    async def test_apply_all_accepts_camel_case_body(self, client, generated):
        response = await client.post(f"{BASE}/recommendations/apply-all", json={"setId": generated["id"]})

        assert response.status_code == 200
        assert response.json()["applied_count"] == 2
        assert response.json()["new_version"] == 2

    @pytest.mark.asyncio
    async def test_apply_all_reports_conflicts(self, client, generated):
        await client.patch(
            f"{BASE}/profile/sections/communicationStyle", json={"content": "Be warm and encouraging."}
        )

        body = (await client.post(f"{BASE}/recommendations/apply-all", json={"set_id": generated["id"]})).json()

        assert body["applied_count"] == 1
        assert body["skipped"] == [{"id": generated["recommendations"][1]["id"], "reason": "conflict"}]
        assert body["new_version"] == 3

    @pytest.mark.asyncio
    async def test_dismiss(self, client, generated):
        rec_id = generated["recommendations"][0]["id"]

        response = await client.post(f"{BASE}/recommendations/{rec_id}/dismiss")
        assert response.status_code == 200
        body = response.json()
        assert body["recommendation"]["status"] == "dismissed"
        assert body["current_version"] == 1

        dismissed = (await client.get(f"{BASE}/recommendations", params={"status": "dismissed"})).json()
        assert [r["id"] for r in dismissed["recommendations"]] == [rec_id]

    @pytest.mark.asyncio
    async def test_apply_unknown_set(self, client, interviewed):
        response = await client.post(f"{BASE}/recommendations/apply-all", json={"set_id": "missing"})
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_rate_limited(self, client, interviewed, limiter):
        limiter.check.side_effect = RateLimitError("Rate limit exceeded. Please try again in 12 minutes.")

        response = await client.post(f"{BASE}/recommendations")

        assert response.status_code == 429
        assert response.json()["retryable"] is True

    @pytest.mark.asyncio
    async def test_generation_timeout(self, client, interviewed, analyzer, add_comments):
        await add_comments(["Too formal"], age_seconds=60)
        analyzer.analyze.side_effect = GenerationTimeoutError("Recommendation generation timed out")

        response = await client.post(f"{BASE}/recommendations")

        assert response.status_code == 504
        assert response.json()["code"] == "GENERATION_TIMEOUT"

    @pytest.mark.asyncio
    async def test_invalid_status_filter(self, client, interviewed):
        response = await client.get(f"{BASE}/recommendations", params={"status": "archived"})
        assert response.status_code == 422


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")
    assert response.json() == {"status": "healthy"}


@pytest.mark.asyncio
async def test_metrics_exposed(client, interviewed):
    response = await client.get("/metrics")
    assert response.status_code == 200
    assert "http_requests_total" in response.text
    assert 'profile_versions_created_total{source="interview"}' in response.text


@pytest.mark.asyncio
async def test_metrics_label_requests_by_route_template(client, interviewed):
    await client.get(f"{BASE}/profile/versions/1")

    text = (await client.get("/metrics")).text

    assert 'endpoint="/projects/{project_id}/profile/versions/{version}"' in text
    assert f'endpoint="{BASE}/profile/versions/1"' not in text
