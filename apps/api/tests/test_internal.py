from datetime import datetime, timedelta, timezone

import pytest

from facility_api.db.enums import WorkOrderStatus


@pytest.mark.asyncio
async def test_auto_close_endpoint(client, db, make_work_order):
    overdue = make_work_order(
        WorkOrderStatus.PENDING_REPORTER_CLOSURE,
        pending_closure_since=datetime.now(timezone.utc) - timedelta(hours=48),
    )

    response = await client.post(
        "/internal/scheduled/auto-close",
        headers={"X-Internal-Secret": "test-internal-secret"},
    )
    assert response.status_code == 200
    assert response.json() == {"checked": 1, "closed": 1}

    db.refresh(overdue)
    assert overdue.status == WorkOrderStatus.AUTO_CLOSED.value


@pytest.mark.asyncio
async def test_auto_close_rejects_bad_secret(client):
    response = await client.post(
        "/internal/scheduled/auto-close",
        headers={"X-Internal-Secret": "wrong"},
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_auto_close_not_configured(client, monkeypatch):
    from facility_api.core.config import settings

    monkeypatch.setattr(settings, "INTERNAL_SECRET", "")
    response = await client.post(
        "/internal/scheduled/auto-close",
        headers={"X-Internal-Secret": "anything"},
    )
    assert response.status_code == 501
