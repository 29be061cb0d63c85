"""
API Integration Tests — alert inbox, check-due polling and triggers.
"""

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from alerts.heartbeat import AlertHeartbeat
from api.deps import get_current_user
from api.main import app, run_alert_batch
from tests.conftest import MERCHANT_ID


def _as_admin():
    app.dependency_overrides[get_current_user] = lambda: {
        "sub": "admin-user",
        "merchant_id": MERCHANT_ID,
        "role": "admin",
    }


@pytest.mark.asyncio
class TestCheckDue:
    async def test_first_poll_in_window_creates_alerts(self, client: AsyncClient, seeded_db):
        response = await client.post("/api/v1/alerts/check-due")
        assert response.status_code == 200
        data = response.json()
        assert data["due"] is True
        assert data["reason"] == "due"
        # Basmati Rice and Green Tea individually, Olive Oil in the grouped alert
        assert data["created"] == 3
        assert data["next_due_at"] == "2026-03-15T09:00:00"

    async def test_second_poll_same_day_is_deduplicated(self, client: AsyncClient, seeded_db):
        await client.post("/api/v1/alerts/check-due")
        response = await client.post("/api/v1/alerts/check-due")
        data = response.json()
        assert data["due"] is False
        assert data["created"] == 0
        assert data["reason"] == "already_processed"

    async def test_poll_outside_window(self, client: AsyncClient, seeded_db, clock):
        clock.set(clock.now.replace(hour=14, minute=30))
        data = (await client.post("/api/v1/alerts/check-due")).json()
        assert data == {
            "due": False,
            "created": 0,
            "reason": "outside_window",
            "next_due_at": "2026-03-15T09:00:00",
        }

    async def test_unknown_merchant(self, client: AsyncClient, mock_user):
        mock_user["merchant_id"] = 999
        response = await client.post("/api/v1/alerts/check-due")
        assert response.status_code == 404


@pytest.mark.asyncio
class TestInbox:
    async def test_list_paginates_newest_first(self, client: AsyncClient, seeded_db):
        await client.post("/api/v1/alerts/check-due")

        first = (await client.get("/api/v1/alerts/", params={"limit": 2})).json()
        assert len(first["alerts"]) == 2
        assert first["has_more"] is True
        assert first["unread_count"] == 3
        ids = [a["alert_id"] for a in first["alerts"]]
        assert ids == sorted(ids, reverse=True)

        second = (await client.get("/api/v1/alerts/", params={"limit": 2, "page": 2})).json()
        assert len(second["alerts"]) == 1
        assert second["has_more"] is False

    async def test_grouped_alert_payload(self, client: AsyncClient, seeded_db):
        await client.post("/api/v1/alerts/check-due")
        alerts = (await client.get("/api/v1/alerts/")).json()["alerts"]

        grouped = [a for a in alerts if a["alert_metadata"]["is_critical"] is False]
        assert len(grouped) == 1
        assert grouped[0]["title"] == "⚠️ Low Stock: Olive Oil"
        assert grouped[0]["product_id"] == seeded_db["products"]["Olive Oil"].product_id
        assert grouped[0]["alert_metadata"]["product_count"] == 1
        assert grouped[0]["is_ai_enhanced"] is False

    async def test_mark_read_and_unread_count(self, client: AsyncClient, seeded_db):
        await client.post("/api/v1/alerts/check-due")
        alerts = (await client.get("/api/v1/alerts/")).json()["alerts"]

        response = await client.patch(f"/api/v1/alerts/{alerts[0]['alert_id']}/read")
        assert response.status_code == 200
        assert response.json() == {"success": True}

        read = (await client.get(f"/api/v1/alerts/{alerts[0]['alert_id']}")).json()
        assert read["read_at"] == "2026-03-14T09:00:00"
        assert read["created_at"] == "2026-03-14T09:00:00"

        count = (await client.get("/api/v1/alerts/unread-count")).json()
        assert count == {"unread_count": 2}

        unread = (await client.get("/api/v1/alerts/", params={"unread_only": True})).json()
        assert len(unread["alerts"]) == 2

    async def test_mark_all_read(self, client: AsyncClient, seeded_db):
        await client.post("/api/v1/alerts/check-due")
        response = await client.patch("/api/v1/alerts/mark-all-read")
        assert response.json() == {"count": 3}
        assert (await client.get("/api/v1/alerts/unread-count")).json()["unread_count"] == 0

    async def test_get_single_alert(self, client: AsyncClient, seeded_db):
        await client.post("/api/v1/alerts/check-due")
        alert_id = (await client.get("/api/v1/alerts/")).json()["alerts"][0]["alert_id"]

        response = await client.get(f"/api/v1/alerts/{alert_id}")
        assert response.status_code == 200
        assert response.json()["merchant_id"] == MERCHANT_ID

    async def test_other_merchants_alert_is_not_found(self, client: AsyncClient, seeded_db, mock_user):
        await client.post("/api/v1/alerts/check-due")
        alert_id = (await client.get("/api/v1/alerts/")).json()["alerts"][0]["alert_id"]

        mock_user["merchant_id"] = 2
        assert (await client.get(f"/api/v1/alerts/{alert_id}")).status_code == 404
        assert (await client.patch(f"/api/v1/alerts/{alert_id}/read")).status_code == 404

    async def test_missing_merchant_context_is_forbidden(self, client: AsyncClient, mock_user):
        mock_user.pop("merchant_id")
        assert (await client.get("/api/v1/alerts/")).status_code == 403


@pytest.mark.asyncio
class TestTriggers:
    async def test_trigger_now_ignores_window_once_per_day(self, client: AsyncClient, seeded_db, clock):
        clock.set(clock.now.replace(hour=15, minute=0))
        first = await client.post("/api/v1/alerts/trigger-now")
        assert first.json() == {"created": 3}
        second = await client.post("/api/v1/alerts/trigger-now")
        assert second.json() == {"created": 0}

    async def test_trigger_now_disabled_is_rejected(self, client: AsyncClient, seeded_db):
        await client.put("/api/v1/alerts/settings", json={"enabled": False})
        response = await client.post("/api/v1/alerts/trigger-now")
        assert response.status_code == 400

    async def test_admin_endpoints_require_admin(self, client: AsyncClient, seeded_db):
        assert (await client.post("/api/v1/alerts/admin/trigger-all")).status_code == 403
        assert (await client.get("/api/v1/alerts/admin/heartbeat")).status_code == 403

    async def test_trigger_all_runs_enabled_merchants(self, client: AsyncClient, seeded_db, monkeypatch):
        _as_admin()
        monkeypatch.setattr(app.state, "heartbeat", None, raising=False)
        response = await client.post("/api/v1/alerts/admin/trigger-all")
        assert response.status_code == 200
        assert response.json() == {"created": 3}
        assert (await client.post("/api/v1/alerts/admin/trigger-all")).json() == {"created": 0}

    async def test_trigger_all_goes_through_running_heartbeat(
        self, client: AsyncClient, seeded_db, test_engine, monkeypatch
    ):
        _as_admin()
        session_factory = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)
        monkeypatch.setattr("api.main.AsyncSessionLocal", session_factory)
        heartbeat = AlertHeartbeat(batch_runner=run_alert_batch)
        monkeypatch.setattr(app.state, "heartbeat", heartbeat, raising=False)

        response = await client.post("/api/v1/alerts/admin/trigger-all")
        assert response.json() == {"created": 3}
        assert (await client.post("/api/v1/alerts/admin/trigger-all")).json() == {"created": 0}

    async def test_heartbeat_status_without_running_heartbeat(self, client: AsyncClient):
        _as_admin()
        app.state.heartbeat = None
        data = (await client.get("/api/v1/alerts/admin/heartbeat")).json()
        assert data["is_running"] is False
        assert data["tick_count"] == 0
