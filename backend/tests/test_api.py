"""HTTP API tests."""

import pytest

from factories import COMPANY_ID, add_project
from txrouter.services.batch_service import run_registry

HEADERS = {"X-Company-Id": str(COMPANY_ID)}
PROJECT_CODE_RULE = {
    "name": "Project code in memo",
    "field_type": "memo",
    "match_type": "regex",
    "match_value": r"PROJ-(?<project_code>\d{3})",
    "priority": 1,
}


def _feed_record(external_id: str, memo: str) -> dict:
    return {
        "external_id": external_id,
        "type": "expense",
        "amount": "415.20",
        "memo": memo,
        "transaction_date": "2026-03-02",
    }


async def _import(client, *records) -> dict[str, int]:
    response = await client.post("/api/v1/transactions/import", json={"transactions": list(records)}, headers=HEADERS)
    assert response.status_code == 200
    listing = await client.get("/api/v1/transactions/unrouted", headers=HEADERS)
    return {t["external_id"]: t["id"] for t in listing.json()["data"]}


@pytest.fixture
async def projects(db):
    kitchen = await add_project(db, "Kitchen Remodel", "123")
    lumber = await add_project(db, "Lumber Co Renovation", "456")
    await db.commit()
    return {"kitchen": kitchen.id, "lumber": lumber.id}


@pytest.mark.asyncio
async def test_company_header_is_required(client):
    response = await client.get("/api/v1/routing-rules")
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_rule_crud(client, projects):
    created = await client.post("/api/v1/routing-rules", json=PROJECT_CODE_RULE, headers=HEADERS)
    assert created.status_code == 201
    rule = created.json()
    assert rule["target_project_id"] == "auto-detect"
    assert rule["revision"] == 1

    bad = await client.post(
        "/api/v1/routing-rules",
        json={**PROJECT_CODE_RULE, "name": "Broken", "match_value": "PROJ-("},
        headers=HEADERS,
    )
    assert bad.status_code == 422

    bad_range = await client.post(
        "/api/v1/routing-rules",
        json={
            "name": "Amounts",
            "field_type": "amount_range",
            "match_type": "range",
            "match_value": "500-100",
            "target_project_id": projects["lumber"],
        },
        headers=HEADERS,
    )
    assert bad_range.status_code == 422

    patched = await client.patch(
        f"/api/v1/routing-rules/{rule['id']}",
        json={"priority": 3, "target_project_id": projects["kitchen"]},
        headers=HEADERS,
    )
    assert patched.status_code == 200
    assert patched.json()["target_project_id"] == projects["kitchen"]
    assert patched.json()["revision"] == 2

    deactivated = await client.post(f"/api/v1/routing-rules/{rule['id']}/deactivate", headers=HEADERS)
    assert deactivated.json()["is_active"] is False

    listing = await client.get("/api/v1/routing-rules", headers=HEADERS)
    assert [r["name"] for r in listing.json()] == ["Project code in memo"]
    active = await client.get("/api/v1/routing-rules", params={"active_only": True}, headers=HEADERS)
    assert active.json() == []


@pytest.mark.asyncio
async def test_unknown_rule_is_404(client):
    response = await client.patch("/api/v1/routing-rules/999", json={"priority": 2}, headers=HEADERS)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_auto_routing_run(client, projects):
    await client.post("/api/v1/routing-rules", json=PROJECT_CODE_RULE, headers=HEADERS)
    ids = await _import(
        client,
        _feed_record("qb-1", "Kitchen supplies PROJ-123"),
        _feed_record("qb-2", "Lumber purchase"),
        _feed_record("qb-3", "Tiles PROJ-999"),
        _feed_record("qb-4", "Coffee"),
    )

    response = await client.post("/api/v1/routing/runs", headers=HEADERS)
    assert response.status_code == 200
    summary = response.json()
    assert summary["status"] == "completed"
    assert [summary[k] for k in ("total", "routed", "suggested", "unresolved", "no_match", "errors")] == [
        4, 1, 1, 1, 1, 0,
    ]

    fetched = await client.get(f"/api/v1/routing/runs/{summary['run_id']}", headers=HEADERS)
    assert fetched.json()["routed"] == 1

    unrouted = await client.get("/api/v1/transactions/unrouted", headers=HEADERS)
    assert {t["external_id"] for t in unrouted.json()["data"]} == {"qb-3", "qb-4"}

    history = await client.get(f"/api/v1/transactions/{ids['qb-1']}/history", headers=HEADERS)
    assert [e["outcome"] for e in history.json()] == ["routed"]


@pytest.mark.asyncio
async def test_run_rejected_while_another_is_active(client):
    handle = run_registry.claim(COMPANY_ID)
    try:
        response = await client.post("/api/v1/routing/runs", headers=HEADERS)
    finally:
        run_registry.release(handle)
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_unknown_run_is_404(client):
    response = await client.get("/api/v1/routing/runs/42", headers=HEADERS)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_bulk_assign(client, projects):
    ids = await _import(client, _feed_record("qb-1", "a"), _feed_record("qb-2", "b"))
    first = await client.post(
        "/api/v1/transactions/assign",
        json={"transaction_ids": [ids["qb-1"]], "project_id": projects["lumber"]},
        headers=HEADERS,
    )
    assert first.json()["assigned_count"] == 1

    response = await client.post(
        "/api/v1/transactions/assign",
        json={"transaction_ids": [ids["qb-1"], ids["qb-2"], 999], "project_id": projects["kitchen"]},
        headers=HEADERS,
    )
    assert response.status_code == 200
    body = response.json()
    assert body["assigned_count"] == 1
    assert body["skipped_count"] == 2
    assert [r["outcome"] for r in body["results"]] == [
        "skipped_already_routed",
        "assigned",
        "skipped_not_found",
    ]


@pytest.mark.asyncio
async def test_assign_requires_ids(client, projects):
    response = await client.post(
        "/api/v1/transactions/assign",
        json={"transaction_ids": [], "project_id": projects["kitchen"]},
        headers=HEADERS,
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_single_route_accept_and_reset(client, projects):
    ids = await _import(client, _feed_record("qb-1", "Lumber purchase"))
    txn_id = ids["qb-1"]

    routed = await client.post(f"/api/v1/transactions/{txn_id}/route", headers=HEADERS)
    assert routed.status_code == 200
    assert routed.json()["outcome"] == "suggested"
    assert routed.json()["confidence"] == 72

    again = await client.post(f"/api/v1/transactions/{txn_id}/route", headers=HEADERS)
    assert again.status_code == 409

    accepted = await client.post(f"/api/v1/transactions/{txn_id}/accept-suggestion", headers=HEADERS)
    assert accepted.status_code == 200
    assert accepted.json()["status"] == "routed"
    assert accepted.json()["assigned_project_id"] == projects["lumber"]

    reset = await client.post(f"/api/v1/transactions/{txn_id}/reset", headers=HEADERS)
    assert reset.json()["status"] == "unrouted"
    assert reset.json()["assigned_project_id"] is None

    history = await client.get(f"/api/v1/transactions/{txn_id}/history", headers=HEADERS)
    assert [e["outcome"] for e in history.json()] == ["suggested", "suggestion_accepted", "reset"]


@pytest.mark.asyncio
async def test_other_company_cannot_see_transactions(client):
    ids = await _import(client, _feed_record("qb-1", "a"))
    response = await client.get(
        f"/api/v1/transactions/{ids['qb-1']}/history",
        headers={"X-Company-Id": str(COMPANY_ID + 1)},
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_list_suggested_transactions(client, projects):
    ids = await _import(client, _feed_record("qb-1", "Lumber purchase"), _feed_record("qb-2", "Coffee"))
    await client.post("/api/v1/routing/runs", headers=HEADERS)

    response = await client.get(
        "/api/v1/transactions",
        params={"status": "suggested", "min_confidence": 70},
        headers=HEADERS,
    )
    assert response.status_code == 200
    body = response.json()
    assert body["meta"]["total"] == 1
    assert body["data"][0]["id"] == ids["qb-1"]
    assert body["data"][0]["suggested_project_id"] == projects["lumber"]

    searched = await client.get("/api/v1/transactions", params={"search": "coffee"}, headers=HEADERS)
    assert [t["id"] for t in searched.json()["data"]] == [ids["qb-2"]]

    invalid = await client.get("/api/v1/transactions", params={"status": "lost"}, headers=HEADERS)
    assert invalid.status_code == 422
