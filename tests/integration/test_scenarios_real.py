"""Integration tests for the scenario catalogue against real Postgres."""

from __future__ import annotations

import pytest
from httpx import AsyncClient


async def _create(client: AsyncClient, headers: dict[str, str], **overrides: str) -> dict:
    body = {
        "title": "Fire drill",
        "description": "Evacuation practice",
        "category": "safety",
        "payload": "You smell smoke in the corridor.",
    }
    body.update(overrides)
    response = await client.post("/scenarios", json=body, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


@pytest.mark.asyncio
async def test_scenario_crud_and_archive(
    client: AsyncClient, user_factory, auth_headers
) -> None:
    researcher = await user_factory("res@example.com", "RESEARCHER")
    headers = auth_headers(researcher)

    created = await _create(client, headers)
    assert created["isActive"] is True
    assert created["description"] == "Evacuation practice"

    fetched = await client.get(f"/scenarios/{created['id']}", headers=headers)
    assert fetched.json()["title"] == "Fire drill"

    updated = await client.patch(
        f"/scenarios/{created['id']}", json={"title": "Fire drill v2"}, headers=headers
    )
    assert updated.status_code == 200
    assert updated.json()["title"] == "Fire drill v2"
    assert updated.json()["category"] == "safety"

    archived = await client.patch(f"/scenarios/{created['id']}/archive", headers=headers)
    assert archived.status_code == 200
    assert archived.json()["isActive"] is False
    archived_again = await client.patch(f"/scenarios/{created['id']}/archive", headers=headers)
    assert archived_again.status_code == 200

    listed = await client.get("/scenarios", headers=headers)
    assert listed.json() == []


@pytest.mark.asyncio
async def test_scenario_listing_filters_by_title_and_category(
    client: AsyncClient, user_factory, auth_headers
) -> None:
    """Title search is case-insensitive and treats LIKE wildcards literally."""
    moderator = await user_factory("mod@example.com", "MODERATOR")
    headers = auth_headers(moderator)
    await _create(client, headers, title="Fire drill")
    await _create(client, headers, title="Flood 100% response", category="weather")
    await _create(client, headers, title="Pitch practice", category="business")

    by_title = await client.get("/scenarios", params={"search": "DRILL"}, headers=headers)
    by_category = await client.get("/scenarios", params={"category": "weather"}, headers=headers)
    literal_percent = await client.get("/scenarios", params={"search": "0%"}, headers=headers)
    everything = await client.get("/scenarios", headers=headers)

    assert [item["title"] for item in by_title.json()] == ["Fire drill"]
    assert [item["title"] for item in by_category.json()] == ["Flood 100% response"]
    assert [item["title"] for item in literal_percent.json()] == ["Flood 100% response"]
    assert [item["title"] for item in everything.json()] == [
        "Pitch practice",
        "Flood 100% response",
        "Fire drill",
    ]


@pytest.mark.asyncio
async def test_scenario_errors(client: AsyncClient, user_factory, auth_headers) -> None:
    moderator = await user_factory("mod@example.com", "MODERATOR")
    headers = auth_headers(moderator)

    missing = await client.get("/scenarios/999", headers=headers)
    blank_payload = await client.post(
        "/scenarios",
        json={"title": "T", "description": "D", "payload": "   "},
        headers=headers,
    )
    anonymous = await client.get("/scenarios")

    assert missing.status_code == 404
    assert missing.json() == {"detail": "Scenario not found", "code": "not_found"}
    assert blank_payload.status_code == 400
    assert blank_payload.json()["detail"] == "Scenario payload must be a non-empty prompt"
    assert anonymous.status_code == 401
