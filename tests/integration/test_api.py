"""Integration tests for the Workboard HTTP API.

The application is built with create_app and its services are wired to
the in-memory test database with build_services; the lifespan is not run.
All tests use httpx.AsyncClient with ASGITransport.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, AsyncGenerator

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from workboard.config import StorageConfig, WorkboardConfig
from workboard.database.models import User
from workboard.kanban.ordering import CANONICAL_LISTS
from workboard.web.app import build_services, create_app


def _headers(user: User) -> dict[str, str]:
    return {"X-User-Id": str(user.id), "X-User-Role": user.role.value}


@pytest.fixture
def app(session_factory, tmp_path: Path) -> FastAPI:
    """Application wired to the test database and temporary storage."""
    config = WorkboardConfig(
        storage=StorageConfig(base_dir=tmp_path / "storage", public_base_url="http://test")
    )
    test_app = create_app(config)
    build_services(test_app, config, session_factory)
    return test_app


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def project(
    client: AsyncClient,
    manager: User,
    creator: User,
    implementer: User,
) -> dict[str, Any]:
    response = await client.post(
        "/projects/",
        json={
            "code": "API-1",
            "name": "Portal",
            "manager_id": str(manager.id),
            "implementer_ids": [str(implementer.id)],
        },
        headers=_headers(creator),
    )
    assert response.status_code == 201
    return response.json()


class TestHealth:
    @pytest.mark.asyncio
    async def test_liveness(self, client: AsyncClient) -> None:
        response = await client.get("/health/")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    @pytest.mark.asyncio
    async def test_readiness_reports_outbox(self, client: AsyncClient) -> None:
        response = await client.get("/health/ready")

        body = response.json()
        assert body["status"] == "ok"
        assert body["database"] == "connected"
        assert body["outbox"]["total"] == 0


class TestAuthentication:
    @pytest.mark.asyncio
    async def test_missing_user_header(self, client: AsyncClient) -> None:
        response = await client.post("/boards/", json={"title": "Nope"})

        assert response.status_code == 403
        assert response.json()["code"] == "unauthenticated"

    @pytest.mark.asyncio
    async def test_malformed_user_header(self, client: AsyncClient) -> None:
        response = await client.post(
            "/boards/", json={"title": "Nope"}, headers={"X-User-Id": "not-a-uuid"}
        )

        assert response.status_code == 403


class TestWorkflowEndpoints:
    """Test the project workflow over HTTP."""

    @pytest.mark.asyncio
    async def test_create_returns_received_workflow(self, project: dict[str, Any]) -> None:
        assert project["project"]["code"] == "API-1"
        assert project["project"]["status"] == "IN_PROGRESS"
        assert project["workflow"]["current_status"] == "RECEIVED"

    @pytest.mark.asyncio
    async def test_lifecycle(
        self,
        client: AsyncClient,
        project: dict[str, Any],
        manager: User,
        implementer: User,
    ) -> None:
        base = f"/projects/{project['project']['id']}/workflow"
        worker = _headers(implementer)

        response = await client.post(f"{base}/confirm-received", headers=worker)
        assert response.json()["current_status"] == "IN_PROGRESS"

        response = await client.post(f"{base}/confirm-in-progress", headers=worker)
        assert response.json()["current_status"] == "COMPLETED"

        response = await client.post(f"{base}/confirm-sent-to-customer", headers=worker)
        assert response.status_code == 400
        assert response.json()["code"] == "approval_required"

        response = await client.post(f"{base}/approve-completed", headers=worker)
        assert response.status_code == 403
        assert response.json()["code"] == "forbidden"

        response = await client.post(f"{base}/approve-completed", headers=_headers(manager))
        assert response.status_code == 200
        assert response.json()["completed_approved_by_id"] == str(manager.id)

        response = await client.post(f"{base}/approve-completed", headers=_headers(manager))
        assert response.status_code == 400
        assert response.json()["code"] == "already_done"

        response = await client.post(f"{base}/confirm-sent-to-customer", headers=worker)
        assert response.json()["current_status"] == "SENT_TO_CUSTOMER"

        response = await client.get(base, headers=worker)
        assert response.json()["sent_to_customer_at"] is not None

    @pytest.mark.asyncio
    async def test_repeated_transition(
        self,
        client: AsyncClient,
        project: dict[str, Any],
        implementer: User,
    ) -> None:
        url = f"/projects/{project['project']['id']}/workflow/confirm-received"

        await client.post(url, headers=_headers(implementer))
        response = await client.post(url, headers=_headers(implementer))

        assert response.status_code == 400
        assert response.json()["code"] == "invalid_transition"

    @pytest.mark.asyncio
    async def test_duplicate_code(
        self,
        client: AsyncClient,
        project: dict[str, Any],
        manager: User,
    ) -> None:
        response = await client.post(
            "/projects/",
            json={"code": "API-1", "name": "Portal v2", "manager_id": str(manager.id)},
            headers=_headers(manager),
        )

        assert response.status_code == 400
        assert response.json()["code"] == "duplicate_code"

    @pytest.mark.asyncio
    async def test_unknown_project(self, client: AsyncClient, manager: User) -> None:
        response = await client.get(
            "/projects/00000000-0000-0000-0000-000000000000/workflow",
            headers=_headers(manager),
        )

        assert response.status_code == 404
        assert response.json()["code"] == "not_found"

    @pytest.mark.asyncio
    async def test_project_board(
        self,
        client: AsyncClient,
        project: dict[str, Any],
        manager: User,
        outsider: User,
    ) -> None:
        url = f"/projects/{project['project']['id']}/board"

        response = await client.get(url, headers=_headers(manager))
        assert response.status_code == 200
        assert response.json()["is_project_board"] is True
        assert response.json()["title"] == "API-1 - Portal"

        response = await client.get(url, headers=_headers(outsider))
        assert response.status_code == 403


class TestKanbanEndpoints:
    """Test boards, lists and cards over HTTP."""

    @pytest_asyncio.fixture
    async def board(self, client: AsyncClient, manager: User) -> dict[str, Any]:
        response = await client.post(
            "/boards/", json={"title": "Sprint"}, headers=_headers(manager)
        )
        assert response.status_code == 201
        detail = await client.get(f"/boards/{response.json()['id']}", headers=_headers(manager))
        return detail.json()

    @pytest.mark.asyncio
    async def test_board_has_canonical_lists(self, board: dict[str, Any]) -> None:
        assert [item["title"] for item in board["lists"]] == list(CANONICAL_LISTS)
        assert [item["position"] for item in board["lists"]] == [0, 1, 2, 3]

    @pytest.mark.asyncio
    async def test_blank_title_rejected(self, client: AsyncClient, manager: User) -> None:
        response = await client.post("/boards/", json={"title": "  "}, headers=_headers(manager))

        assert response.status_code == 400
        assert response.json()["code"] == "validation_error"

    @pytest.mark.asyncio
    async def test_cards_reorder_and_move(
        self,
        client: AsyncClient,
        board: dict[str, Any],
        manager: User,
    ) -> None:
        headers = _headers(manager)
        todo, doing = board["lists"][0]["id"], board["lists"][1]["id"]

        ids = []
        for title in ("A", "B", "C"):
            response = await client.post(
                "/cards/", json={"list_id": todo, "title": title}, headers=headers
            )
            assert response.status_code == 201
            ids.append(response.json()["id"])

        response = await client.put(
            f"/lists/{todo}/cards/order", json={"ids": list(reversed(ids))}, headers=headers
        )
        assert [card["id"] for card in response.json()] == list(reversed(ids))
        assert [card["position"] for card in response.json()] == [0, 1, 2]

        response = await client.put(
            f"/lists/{todo}/cards/order", json={"ids": ids[:2]}, headers=headers
        )
        assert response.status_code == 400

        response = await client.post(
            f"/cards/{ids[0]}/move", json={"list_id": doing, "position": 99}, headers=headers
        )
        assert response.status_code == 200
        assert response.json()["list_id"] == doing
        assert response.json()["position"] == 0

        detail = (await client.get(f"/boards/{board['board']['id']}", headers=headers)).json()
        remaining = [card["position"] for card in detail["lists"][0]["cards"]]
        assert remaining == [0, 1]

    @pytest.mark.asyncio
    async def test_non_member_cannot_read(
        self,
        client: AsyncClient,
        board: dict[str, Any],
        outsider: User,
    ) -> None:
        response = await client.get(f"/boards/{board['board']['id']}", headers=_headers(outsider))

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_task_card_hook(
        self,
        client: AsyncClient,
        project: dict[str, Any],
        creator: User,
        implementer: User,
    ) -> None:
        body = {
            "task_id": "11111111-1111-1111-1111-111111111111",
            "title": "Write docs",
            "assignee_id": str(implementer.id),
            "creator_id": str(creator.id),
            "project_id": project["project"]["id"],
        }

        response = await client.post("/tasks/cards", json=body, headers=_headers(creator))

        assert response.status_code == 202
        assert response.json()["created"] is True
        assert response.json()["card"]["position"] == 0

        body["project_id"] = "22222222-2222-2222-2222-222222222222"
        response = await client.post("/tasks/cards", json=body, headers=_headers(creator))
        assert response.status_code == 202
        assert response.json() == {"created": False, "card": None}

    @pytest.mark.asyncio
    async def test_attachment_upload_and_download(
        self,
        client: AsyncClient,
        board: dict[str, Any],
        manager: User,
    ) -> None:
        headers = _headers(manager)
        todo = board["lists"][0]["id"]
        card = (
            await client.post("/cards/", json={"list_id": todo, "title": "Design doc"}, headers=headers)
        ).json()

        response = await client.post(
            f"/cards/{card['id']}/attachments",
            files={"files": ("notes.txt", b"hello board", "text/plain")},
            headers=headers,
        )
        assert response.status_code == 201
        [attachment] = response.json()
        assert attachment["file_name"] == "notes.txt"
        assert attachment["file_size"] == 11
        assert attachment["source"] == "upload"

        link = (
            await client.get(f"/attachments/{attachment['id']}/url", headers=headers)
        ).json()
        assert link["is_external"] is False

        download = await client.get(link["url"])
        assert download.status_code == 200
        assert download.content == b"hello board"

        tampered = await client.get(link["url"].replace("signature=", "signature=0"))
        assert tampered.status_code == 403
