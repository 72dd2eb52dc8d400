"""
API Unit Tests

Drives the FastAPI app through httpx.AsyncClient with the session
factory and worker dependencies overridden, so routing, validation and
error mapping run against the per-test SQLite database.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator

import httpx
import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from draftdesk.api.deps import get_worker
from draftdesk.core.config import settings
from draftdesk.core.database import get_session_factory
from draftdesk.main import app
from draftdesk.models import ExtractionJob


def test_health_check():
    """TestClient runs the lifespan, which pings the in-memory database."""
    with TestClient(app) as client:
        response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": "draftdesk"}


@pytest_asyncio.fixture
async def client(
    session_factory, worker
) -> AsyncGenerator[httpx.AsyncClient, None]:
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_worker] = lambda: worker
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


def _as(actor_id: uuid.UUID) -> dict[str, str]:
    return {"X-Actor-Id": str(actor_id)}


async def _register(client, project, owner_id, locator="uploads/notes.pdf"):
    response = await client.post(
        f"/api/v1/projects/{project.id}/references",
        json={"locator": locator},
        headers=_as(owner_id),
    )
    assert response.status_code == 201, response.text
    return response.json()


# ---------------------------------------------------------------------------
# Intake
# ---------------------------------------------------------------------------


class TestIntakeEndpoints:
    @pytest.mark.asyncio
    async def test_register_and_list(self, client, project, owner_id, worker):
        body = await _register(client, project, owner_id)

        assert body["dispatched"] is True
        assert len(worker.requests) == 1

        response = await client.get(
            f"/api/v1/projects/{project.id}/references", headers=_as(owner_id)
        )
        assert response.status_code == 200
        files = response.json()
        assert [f["id"] for f in files] == [body["reference_file_id"]]
        assert files[0]["status"] == "queued"
        assert files[0]["display_name"] == "notes.pdf"

    @pytest.mark.asyncio
    async def test_outsider_gets_403(self, client, project, outsider_id):
        response = await client.post(
            f"/api/v1/projects/{project.id}/references",
            json={"locator": "uploads/a.pdf"},
            headers=_as(outsider_id),
        )
        assert response.status_code == 403
        assert response.json()["error"] == "AccessDenied"

        response = await client.get(
            f"/api/v1/projects/{project.id}/jobs", headers=_as(outsider_id)
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_invalid_source_gets_422(self, client, project, owner_id):
        response = await client.post(
            f"/api/v1/projects/{project.id}/references",
            json={"locator": "ftp://example.com/a", "kind": "url"},
            headers=_as(owner_id),
        )
        assert response.status_code == 422
        assert response.json()["error"] == "InvalidSource"

    @pytest.mark.asyncio
    async def test_missing_actor_header(self, client, project):
        response = await client.get(f"/api/v1/projects/{project.id}/references")
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_callback_completes_reference(self, client, project, owner_id):
        body = await _register(client, project, owner_id)

        started = await client.post(f"/api/v1/jobs/{body['job_id']}/started")
        assert started.status_code == 200
        assert started.json()["status"] == "extracting"

        payload = {
            "job_id": body["job_id"],
            "status": "succeeded",
            "extracted_text": "Field notes body",
        }
        first = await client.post("/api/v1/jobs/callback", json=payload)
        again = await client.post("/api/v1/jobs/callback", json=payload)

        assert first.status_code == 200
        assert first.json()["job_status"] == "succeeded"
        assert first.json()["reference_status"] == "done"
        assert again.json()["ignored"] is False

        status = await client.get(
            f"/api/v1/projects/{project.id}/intake/status", headers=_as(owner_id)
        )
        snapshot = status.json()
        assert snapshot["total"] == 1
        assert snapshot["completed"] == 1
        assert snapshot["all_complete"] is True

    @pytest.mark.asyncio
    async def test_callback_stores_worker_response(
        self, client, project, owner_id, session_factory
    ):
        body = await _register(client, project, owner_id)
        raw = {"pages": 3, "engine": "tika"}

        response = await client.post(
            "/api/v1/jobs/callback",
            json={
                "job_id": body["job_id"],
                "status": "succeeded",
                "extracted_text": "text",
                "worker_response": raw,
            },
        )

        assert response.status_code == 200
        async with session_factory() as session:
            job = await session.get(ExtractionJob, uuid.UUID(body["job_id"]))
        assert job.worker_response == raw

    @pytest.mark.asyncio
    async def test_callback_for_unknown_job(self, client):
        response = await client.post(
            "/api/v1/jobs/callback",
            json={"job_id": str(uuid.uuid4()), "status": "failed"},
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_retry_while_active_conflicts(self, client, project, owner_id):
        body = await _register(client, project, owner_id)

        response = await client.post(
            f"/api/v1/references/{body['reference_file_id']}/retry",
            headers=_as(owner_id),
        )
        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_worker_secret_is_enforced(self, client, monkeypatch):
        monkeypatch.setattr(settings, "WORKER_CALLBACK_SECRET", "s3cret")
        payload = {"job_id": str(uuid.uuid4()), "status": "failed"}

        missing = await client.post("/api/v1/jobs/callback", json=payload)
        wrong = await client.post(
            "/api/v1/jobs/callback", json=payload, headers={"X-Worker-Secret": "x"}
        )
        right = await client.post(
            "/api/v1/jobs/callback",
            json=payload,
            headers={"X-Worker-Secret": "s3cret"},
        )

        assert missing.status_code == 401
        assert wrong.status_code == 401
        assert right.status_code == 404

    @pytest.mark.asyncio
    async def test_intake_flag_then_augment(self, client, project, owner_id):
        await client.post(
            f"/api/v1/projects/{project.id}/versions",
            json={"content": "Base"},
            headers=_as(owner_id),
        )
        response = await client.put(
            f"/api/v1/projects/{project.id}/intake",
            json={"intake_completed": True},
            headers=_as(owner_id),
        )
        assert response.json()["intake_completed"] is True

        body = await _register(client, project, owner_id)
        result = await client.post(
            "/api/v1/jobs/callback",
            json={
                "job_id": body["job_id"],
                "status": "succeeded",
                "extracted_text": "alpha",
            },
        )
        assert result.json()["augmented_version_id"] is not None


# ---------------------------------------------------------------------------
# Versions
# ---------------------------------------------------------------------------


class TestVersionEndpoints:
    @pytest.mark.asyncio
    async def test_create_list_and_compare(self, client, project, owner_id):
        base = f"/api/v1/projects/{project.id}/versions"
        v1 = await client.post(
            base, json={"content": "hello world"}, headers=_as(owner_id)
        )
        v2 = await client.post(
            base,
            json={"content": "hello there world", "title": "Second"},
            headers=_as(owner_id),
        )
        assert v1.status_code == 201
        assert v2.json()["version_number"] == 2

        listed = await client.get(base, headers=_as(owner_id))
        assert [v["version_number"] for v in listed.json()] == [2, 1]

        compared = await client.get(
            f"{base}/compare",
            params={"base": v1.json()["id"], "target": v2.json()["id"]},
            headers=_as(owner_id),
        )
        assert compared.status_code == 200
        data = compared.json()
        assert data["inserted_chars"] == 6
        assert {"op": "insertion", "text": "there "} in data["spans"]
        assert "<ins>there </ins>" in data["html"]

    @pytest.mark.asyncio
    async def test_restore_creates_new_version(self, client, project, owner_id):
        base = f"/api/v1/projects/{project.id}/versions"
        v1 = await client.post(base, json={"content": "one"}, headers=_as(owner_id))
        await client.post(base, json={"content": "two"}, headers=_as(owner_id))

        restored = await client.post(
            f"{base}/{v1.json()['id']}/restore", headers=_as(owner_id)
        )

        assert restored.status_code == 201
        assert restored.json()["version_number"] == 3
        assert restored.json()["content"] == "one"

        history = await client.get(
            f"/api/v1/projects/{project.id}/history", headers=_as(owner_id)
        )
        assert history.json()[0]["event_type"] == "version_restored"

    @pytest.mark.asyncio
    async def test_rename(self, client, project, owner_id):
        v1 = await client.post(
            f"/api/v1/projects/{project.id}/versions",
            json={"content": "x"},
            headers=_as(owner_id),
        )
        renamed = await client.patch(
            f"/api/v1/versions/{v1.json()['id']}",
            json={"title": "Final"},
            headers=_as(owner_id),
        )
        assert renamed.status_code == 200
        assert renamed.json()["title"] == "Final"
        assert renamed.json()["content"] == "x"

    @pytest.mark.asyncio
    async def test_unknown_version_gets_404(self, client, owner_id):
        response = await client.get(
            f"/api/v1/versions/{uuid.uuid4()}", headers=_as(owner_id)
        )
        assert response.status_code == 404
        assert response.json()["error"] == "VersionNotFound"

    @pytest.mark.asyncio
    async def test_outsider_cannot_read_version(
        self, client, project, owner_id, outsider_id
    ):
        v1 = await client.post(
            f"/api/v1/projects/{project.id}/versions",
            json={"content": "private"},
            headers=_as(owner_id),
        )
        response = await client.get(
            f"/api/v1/versions/{v1.json()['id']}", headers=_as(outsider_id)
        )
        assert response.status_code == 403
