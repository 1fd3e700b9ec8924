"""Schedule API tests: templates, events, day statuses and adherence."""

from __future__ import annotations

from typing import Any

import pytest
from httpx import AsyncClient

pytestmark = pytest.mark.asyncio

RANGE = {"from": "2025-03-01", "to": "2025-03-11"}


async def _scheduled_medication(client: AsyncClient, headers: dict[str, str]) -> dict[str, Any]:
    medication = await client.post(
        "/api/v1/medications", json={"name": "Levothyroxine", "dose": "50"}, headers=headers
    )
    assert medication.status_code == 201, medication.text
    template = await client.post(
        "/api/v1/schedule/templates",
        json={
            "medication_id": medication.json()["id"],
            "frequency_days": [1, 3, 5],
            "duration_days": 10,
            "date_start": "2025-03-01",
            "time_of_day": ["08:00", "20:00"],
            "meal_timing": "before",
        },
        headers=headers,
    )
    assert template.status_code == 201, template.text
    return {"medication": medication.json(), "result": template.json()}


async def test_create_template_generates_events(app_context: dict[str, Any]) -> None:
    client: AsyncClient = app_context["client"]
    headers = app_context["headers"]

    created = await _scheduled_medication(client, headers)
    result = created["result"]
    assert result["generated_events"] == 8
    assert result["deleted_events"] == 0
    assert result["template"]["date_end"] == "2025-03-11"
    assert result["template"]["units"] == "pill"

    events = await client.get("/api/v1/schedule/events", params=RANGE, headers=headers)
    assert events.status_code == 200
    items = events.json()["items"]
    assert len(items) == 8
    assert items[0]["local_date_time"] == "2025-03-03T08:00:00+00:00"
    assert items[0]["medication_name"] == "Levothyroxine"
    assert items[0]["meal_timing"] == "before"
    assert {item["status"] for item in items} == {"PLANNED"}


async def test_events_are_reported_in_requested_timezone(app_context: dict[str, Any]) -> None:
    client: AsyncClient = app_context["client"]
    headers = app_context["headers"]
    await _scheduled_medication(client, headers)

    events = await client.get(
        "/api/v1/schedule/events",
        params={"from": "2025-03-03", "to": "2025-03-03", "tz": "America/Chicago"},
        headers=headers,
    )

    assert events.status_code == 200
    # 03-03 08:00 UTC is 02:00 CST; 03-03 20:00 UTC is 14:00 CST
    assert [item["local_date_time"] for item in events.json()["items"]] == [
        "2025-03-03T02:00:00-06:00",
        "2025-03-03T14:00:00-06:00",
    ]


async def test_template_validation_errors(app_context: dict[str, Any]) -> None:
    client: AsyncClient = app_context["client"]
    headers = app_context["headers"]
    medication = await client.post(
        "/api/v1/medications", json={"name": "Ibuprofen"}, headers=headers
    )
    medication_id = medication.json()["id"]
    base = {
        "medication_id": medication_id,
        "frequency_days": [1],
        "duration_days": 0,
        "date_start": "2025-03-01",
        "time_of_day": ["08:00"],
    }

    for override in (
        {"frequency_days": []},
        {"frequency_days": [8]},
        {"time_of_day": []},
        {"time_of_day": ["8:00"]},
        {"time_of_day": ["08:00", "08:00"]},
        {"quantity": "0"},
        {"timezone": "Atlantis/Capital"},
    ):
        response = await client.post(
            "/api/v1/schedule/templates", json={**base, **override}, headers=headers
        )
        assert response.status_code == 422, override

    missing = await client.post(
        "/api/v1/schedule/templates",
        json={**base, "medication_id": "00000000-0000-0000-0000-000000000000"},
        headers=headers,
    )
    assert missing.status_code == 404


async def test_update_and_delete_template(app_context: dict[str, Any]) -> None:
    client: AsyncClient = app_context["client"]
    headers = app_context["headers"]
    created = await _scheduled_medication(client, headers)
    template_id = created["result"]["template"]["id"]

    empty = await client.patch(
        f"/api/v1/schedule/templates/{template_id}", json={}, headers=headers
    )
    assert empty.status_code == 422

    updated = await client.patch(
        f"/api/v1/schedule/templates/{template_id}",
        json={"time_of_day": ["09:00"]},
        headers=headers,
    )
    assert updated.status_code == 200, updated.text
    assert updated.json()["deleted_events"] == 4
    assert updated.json()["generated_events"] == 2

    listing = await client.get("/api/v1/schedule/templates", headers=headers)
    assert [item["id"] for item in listing.json()] == [template_id]

    deleted = await client.delete(f"/api/v1/schedule/templates/{template_id}", headers=headers)
    assert deleted.status_code == 200
    assert deleted.json() == {"template_id": template_id, "deleted_events": 2}

    missing = await client.delete(f"/api/v1/schedule/templates/{template_id}", headers=headers)
    assert missing.status_code == 404


async def test_generate_template_is_idempotent(app_context: dict[str, Any]) -> None:
    client: AsyncClient = app_context["client"]
    headers = app_context["headers"]
    created = await _scheduled_medication(client, headers)
    template_id = created["result"]["template"]["id"]
    url = f"/api/v1/schedule/templates/{template_id}/generate"

    for _ in range(2):
        response = await client.post(url, headers=headers)
        assert response.status_code == 200, response.text
        assert response.json()["generated_events"] == 0
        assert response.json()["template"]["id"] == template_id

    events = await client.get("/api/v1/schedule/events", params=RANGE, headers=headers)
    assert len(events.json()["items"]) == 8

    missing = await client.post(
        "/api/v1/schedule/templates/00000000-0000-0000-0000-000000000000/generate",
        headers=headers,
    )
    assert missing.status_code == 404


async def test_mark_event_and_read_status(app_context: dict[str, Any]) -> None:
    client: AsyncClient = app_context["client"]
    headers = app_context["headers"]
    await _scheduled_medication(client, headers)

    items = (
        await client.get("/api/v1/schedule/events", params=RANGE, headers=headers)
    ).json()["items"]
    # Take both doses on 03-03 and the morning dose on 03-05.
    for item in (items[0], items[1], items[2]):
        response = await client.patch(
            f"/api/v1/schedule/events/{item['id']}", json={"status": "DONE"}, headers=headers
        )
        assert response.status_code == 200, response.text
        assert response.json()["status"] == "DONE"

    reverted = await client.patch(
        f"/api/v1/schedule/events/{items[0]['id']}", json={"status": "PLANNED"}, headers=headers
    )
    assert reverted.status_code == 400

    status_response = await client.get("/api/v1/schedule/status", params=RANGE, headers=headers)
    assert status_response.status_code == 200
    statuses = status_response.json()["statuses"]
    assert len(statuses) == 11
    assert statuses["2025-03-01"] == "NONE"
    assert statuses["2025-03-03"] == "ALL_TAKEN"
    assert statuses["2025-03-05"] == "PARTIAL"
    assert statuses["2025-03-07"] == "SCHEDULED"
    assert statuses["2025-03-10"] == "SCHEDULED"

    adherence = await client.get("/api/v1/schedule/adherence", headers=headers)
    assert adherence.status_code == 200
    # Cache holds 03-03 (2/2) and 03-05 (1/2) inside the trailing week
    assert adherence.json()["items"] == [
        {"window_days": 7, "adherence": 75},
        {"window_days": 30, "adherence": 75},
    ]


async def test_status_range_validation(app_context: dict[str, Any]) -> None:
    client: AsyncClient = app_context["client"]
    headers = app_context["headers"]

    inverted = await client.get(
        "/api/v1/schedule/status", params={"from": "2025-03-10", "to": "2025-03-01"}, headers=headers
    )
    assert inverted.status_code == 400

    too_long = await client.get(
        "/api/v1/schedule/status", params={"from": "2025-01-01", "to": "2026-12-31"}, headers=headers
    )
    assert too_long.status_code == 400

    bad_tz = await client.get(
        "/api/v1/schedule/status", params={**RANGE, "tz": "Not/AZone"}, headers=headers
    )
    assert bad_tz.status_code == 400

    empty = await client.get("/api/v1/schedule/adherence", headers=headers)
    assert empty.json()["items"] == [
        {"window_days": 7, "adherence": None},
        {"window_days": 30, "adherence": None},
    ]
