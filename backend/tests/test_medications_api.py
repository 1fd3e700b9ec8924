"""Medication API tests."""

from __future__ import annotations

import uuid
from typing import Any

import pytest
from httpx import AsyncClient

from dosetrack.core.security import create_access_token

pytestmark = pytest.mark.asyncio


def _headers_for(owner_id: uuid.UUID) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(str(owner_id))}"}


async def _create_medication(client: AsyncClient, headers: dict[str, str], **overrides: Any) -> dict[str, Any]:
    payload = {"name": "Amoxicillin", "dose": "500", "form": "capsule"}
    payload.update(overrides)
    response = await client.post("/api/v1/medications", json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


async def _create_template(client: AsyncClient, headers: dict[str, str], medication_id: str) -> dict[str, Any]:
    response = await client.post(
        "/api/v1/schedule/templates",
        json={
            "medication_id": medication_id,
            "quantity": "1",
            "units": "capsule",
            "frequency_days": [1, 3, 5],
            "duration_days": 10,
            "date_start": "2025-03-01",
            "time_of_day": ["08:00", "20:00"],
            "meal_timing": "with",
        },
        headers=headers,
    )
    assert response.status_code == 201, response.text
    return response.json()


async def test_requires_bearer_token(app_context: dict[str, Any]) -> None:
    client: AsyncClient = app_context["client"]
    response = await client.get("/api/v1/medications")
    assert response.status_code == 401

    response = await client.get(
        "/api/v1/medications", headers={"Authorization": "Bearer not-a-token"}
    )
    assert response.status_code == 401


async def test_create_list_and_get_medication(app_context: dict[str, Any]) -> None:
    client: AsyncClient = app_context["client"]
    headers = app_context["headers"]

    created = await _create_medication(client, headers)
    assert created["owner_id"] == str(app_context["owner_id"])
    assert created["previous_medication_id"] is None

    listing = await client.get("/api/v1/medications", headers=headers)
    assert listing.status_code == 200
    assert [item["id"] for item in listing.json()] == [created["id"]]

    detail = await client.get(f"/api/v1/medications/{created['id']}", headers=headers)
    assert detail.status_code == 200
    assert detail.json()["name"] == "Amoxicillin"

    # Another owner cannot see it.
    foreign = await client.get(
        f"/api/v1/medications/{created['id']}", headers=_headers_for(uuid.uuid4())
    )
    assert foreign.status_code == 404


async def test_edit_without_schedule_is_in_place(app_context: dict[str, Any]) -> None:
    client: AsyncClient = app_context["client"]
    headers = app_context["headers"]
    created = await _create_medication(client, headers)

    response = await client.patch(
        f"/api/v1/medications/{created['id']}", json={"name": "Amoxil"}, headers=headers
    )

    assert response.status_code == 200, response.text
    body = response.json()
    assert body["is_new_version"] is False
    assert body["medication"]["id"] == created["id"]
    assert body["medication"]["name"] == "Amoxil"


async def test_edit_with_schedule_creates_version(app_context: dict[str, Any]) -> None:
    client: AsyncClient = app_context["client"]
    headers = app_context["headers"]
    created = await _create_medication(client, headers)
    await _create_template(client, headers, created["id"])

    response = await client.patch(
        f"/api/v1/medications/{created['id']}", json={"dose": "250"}, headers=headers
    )

    assert response.status_code == 200, response.text
    body = response.json()
    assert body["is_new_version"] is True
    assert body["previous_medication_id"] == created["id"]
    assert body["new_template_id"] is not None
    assert body["deleted_events"] == 4
    assert body["generated_events"] == 8
    new_id = body["medication"]["id"]
    assert new_id != created["id"]

    old = await client.get(f"/api/v1/medications/{created['id']}", headers=headers)
    assert old.status_code == 404

    history = await client.get(f"/api/v1/medications/{new_id}/history", headers=headers)
    assert history.status_code == 200
    assert [item["id"] for item in history.json()] == [new_id, created["id"]]
    assert history.json()[1]["deleted_at"] is not None


async def test_create_version_flag_accepts_camel_case(app_context: dict[str, Any]) -> None:
    client: AsyncClient = app_context["client"]
    headers = app_context["headers"]
    created = await _create_medication(client, headers)

    response = await client.patch(
        f"/api/v1/medications/{created['id']}",
        json={"createVersion": True},
        headers=headers,
    )

    assert response.status_code == 200, response.text
    body = response.json()
    assert body["is_new_version"] is True
    assert body["new_template_id"] is None
    assert body["medication"]["name"] == "Amoxicillin"


async def test_delete_medication_cleans_up_schedule(app_context: dict[str, Any]) -> None:
    client: AsyncClient = app_context["client"]
    headers = app_context["headers"]
    created = await _create_medication(client, headers)
    await _create_template(client, headers, created["id"])

    response = await client.delete(f"/api/v1/medications/{created['id']}", headers=headers)

    assert response.status_code == 200, response.text
    assert response.json() == {
        "medication_id": created["id"],
        "deleted_events": 4,
        "deleted_templates": 1,
    }
    templates = await client.get("/api/v1/schedule/templates", headers=headers)
    assert templates.json() == []

    events = await client.get(
        "/api/v1/schedule/events",
        params={"from": "2025-03-01", "to": "2025-03-31"},
        headers=headers,
    )
    items = events.json()["items"]
    assert len(items) == 4
    assert all(item["is_from_deleted_medication"] for item in items)

    again = await client.delete(f"/api/v1/medications/{created['id']}", headers=headers)
    assert again.status_code == 404


async def test_rejects_unknown_timezone(app_context: dict[str, Any]) -> None:
    client: AsyncClient = app_context["client"]
    headers = app_context["headers"]
    created = await _create_medication(client, headers)

    response = await client.delete(
        f"/api/v1/medications/{created['id']}",
        params={"tz": "Nowhere/Special"},
        headers=headers,
    )
    assert response.status_code == 400
