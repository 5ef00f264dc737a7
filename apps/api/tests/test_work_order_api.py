"""
Work order endpoint tests.

Tests cover:
- Auth and CSRF guards
- Create + list + get visibility
- Action endpoints map service errors to HTTP status codes
- /actions capability payload
"""

import uuid

import pytest

from facility_api.db.enums import RoleCode, WorkOrderStatus

S = WorkOrderStatus


@pytest.mark.asyncio
async def test_requires_session(client):
    response = await client.get("/work-orders")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_invalid_cookie_rejected(client):
    client.cookies.set("facility_session", "not-a-jwt")
    response = await client.get("/work-orders")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_no_role_in_hospital_forbidden(client, login, make_user, other_hospital):
    user = make_user(RoleCode.TECHNICIAN)
    login(client, user, hospital_id=other_hospital.id)
    response = await client.get("/work-orders")
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_mutation_requires_csrf_header(client, login, actors, make_work_order):
    wo = make_work_order(S.ASSIGNED)
    login(client, actors.technician)
    response = await client.post(
        f"/work-orders/{wo.id}/start", headers={"X-Requested-With": ""}
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_create_and_get(client, login, actors, location):
    login(client, actors.reporter)
    response = await client.post(
        "/work-orders",
        json={
            "issue_type": "hvac",
            "description": "Theatre 2 too warm",
            "priority": "high",
            "room_id": str(location["room"].id),
        },
    )
    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "pending"
    assert data["priority"] == "high"
    assert data["building_id"] == str(location["building"].id)
    assert data["code"].startswith("WO-KFH-")

    response = await client.get(f"/work-orders/{data['id']}")
    assert response.status_code == 200
    assert response.json()["id"] == data["id"]


@pytest.mark.asyncio
async def test_create_with_bad_location_is_422(client, login, actors):
    login(client, actors.reporter)
    response = await client.post(
        "/work-orders",
        json={"issue_type": "hvac", "description": "Hot", "room_id": str(uuid.uuid4())},
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_reporter_only_sees_own_work_orders(client, login, actors, make_work_order):
    mine = make_work_order(S.ASSIGNED)
    theirs = make_work_order(S.ASSIGNED, reported_by=actors.engineer.id)
    login(client, actors.reporter)

    response = await client.get("/work-orders")
    assert response.status_code == 200
    ids = {item["id"] for item in response.json()}
    assert str(mine.id) in ids
    assert str(theirs.id) not in ids

    response = await client.get(f"/work-orders/{theirs.id}")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_start_and_conflict(client, login, actors, make_work_order):
    wo = make_work_order(S.ASSIGNED)
    login(client, actors.technician)

    response = await client.post(f"/work-orders/{wo.id}/start")
    assert response.status_code == 200
    assert response.json()["status"] == "in_progress"

    response = await client.post(f"/work-orders/{wo.id}/start")
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_unauthorized_action_is_403(client, login, actors, make_work_order):
    wo = make_work_order(S.AUTO_CLOSED)
    login(client, actors.supervisor)
    response = await client.post(f"/work-orders/{wo.id}/final-approve", json={})
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_unknown_work_order_is_404(client, login, actors):
    login(client, actors.technician)
    response = await client.post(f"/work-orders/{uuid.uuid4()}/start")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_action_on_invisible_work_order_is_404(client, login, db, actors, make_work_order):
    wo = make_work_order(S.ASSIGNED)
    login(client, actors.outsider)

    for action, body in (("start", None), ("reject", {"notes": "Not my job"})):
        if body is None:
            response = await client.post(f"/work-orders/{wo.id}/{action}")
        else:
            response = await client.post(f"/work-orders/{wo.id}/{action}", json=body)
        assert response.status_code == 404, action

    # Same answer as GET, so existence is not revealed
    response = await client.get(f"/work-orders/{wo.id}")
    assert response.status_code == 404

    db.expire_all()
    assert wo.status == S.ASSIGNED.value


@pytest.mark.asyncio
async def test_reject_without_reason_is_422(client, login, actors, make_work_order):
    wo = make_work_order(S.ASSIGNED)
    login(client, actors.technician)
    response = await client.post(f"/work-orders/{wo.id}/reject", json={"notes": ""})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_supervisor_reject_round_trip(client, login, actors, make_work_order):
    wo = make_work_order(S.PENDING_SUPERVISOR_APPROVAL)
    login(client, actors.supervisor)

    response = await client.post(
        f"/work-orders/{wo.id}/reject",
        json={"notes": "Filter not replaced", "reject_stage": "supervisor"},
    )
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "assigned"
    assert data["rejection_stage"] == "supervisor"
    assert data["rejection_reason"] == "Filter not replaced"


@pytest.mark.asyncio
async def test_reassign_and_log(client, login, actors, make_work_order, other_team):
    wo = make_work_order(S.IN_PROGRESS)
    login(client, actors.supervisor)

    response = await client.post(
        f"/work-orders/{wo.id}/reassign",
        json={"team_id": str(other_team.id), "reason": "Electrical fault"},
    )
    assert response.status_code == 200
    assert response.json()["reassignment_count"] == 1

    response = await client.get(f"/work-orders/{wo.id}/updates")
    assert response.status_code == 200
    assert [u["message"] for u in response.json()] == ["Reassigned: Electrical fault"]


@pytest.mark.asyncio
async def test_post_update(client, login, actors, make_work_order):
    wo = make_work_order(S.IN_PROGRESS)
    login(client, actors.technician)

    response = await client.post(
        f"/work-orders/{wo.id}/updates",
        json={"update_type": "progress", "message": "Half done"},
    )
    assert response.status_code == 200
    assert response.json()["status"] == "in_progress"


@pytest.mark.asyncio
async def test_action_state_for_rejected_work_order(client, login, actors, make_work_order):
    wo = make_work_order(S.REJECTED_BY_TECHNICIAN)
    login(client, actors.supervisor)

    response = await client.get(f"/work-orders/{wo.id}/actions")
    assert response.status_code == 200
    data = response.json()
    assert data["is_rejected_by_technician"] is True
    allowed = {action for action, ok in data["can"].items() if ok}
    assert allowed == {"cancel", "return_to_pending", "reassign"}
    transitions = {t["action"]: t["next_status"] for t in data["transitions"]}
    assert transitions == {
        "cancel": "cancelled",
        "return_to_pending": "pending",
        "reassign": "assigned",
    }


@pytest.mark.asyncio
async def test_full_lifecycle_over_http(client, login, actors, make_work_order):
    wo = make_work_order(S.ASSIGNED)
    steps = [
        (actors.technician, "start", None, "in_progress"),
        (actors.technician, "complete", {"notes": "Done"}, "pending_supervisor_approval"),
        (actors.supervisor, "approve", {}, "pending_engineer_review"),
        (actors.engineer, "review", {}, "pending_reporter_closure"),
        (actors.reporter, "close", {"notes": "Thanks"}, "completed"),
        (actors.manager, "final-approve", {}, "completed"),
    ]
    for user, action, body, expected in steps:
        login(client, user)
        if body is None:
            response = await client.post(f"/work-orders/{wo.id}/{action}")
        else:
            response = await client.post(f"/work-orders/{wo.id}/{action}", json=body)
        assert response.status_code == 200, (action, response.text)
        assert response.json()["status"] == expected

    assert response.json()["maintenance_manager_approved_by"] == str(actors.manager.id)


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
