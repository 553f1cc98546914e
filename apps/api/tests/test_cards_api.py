from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient

from app.deps import get_reminder_sender
from app.main import app

from conftest import RecordingSender, seed_card


def _iso(dt: datetime) -> str:
  return dt.isoformat().replace("+00:00", "Z")


@pytest.mark.anyio
async def test_health(client: AsyncClient) -> None:
  r = await client.get("/health")
  assert r.status_code == 200
  assert r.json() == {"ok": True}


@pytest.mark.anyio
async def test_set_due_date_plans_reminders(client: AsyncClient) -> None:
  seeded = await seed_card(due_at=None, members=[("a@example.com", "A"), ("b@example.com", "B")])
  due = (datetime.now(timezone.utc) + timedelta(days=3)).replace(microsecond=0)

  r = await client.patch(f"/cards/{seeded.card_id}/due", json={"dueAt": _iso(due), "reminderMinutes": 60})
  assert r.status_code == 200, r.text
  body = r.json()
  assert body["cardId"] == seeded.card_id
  assert body["reminderMinutes"] == 60
  assert body["dueStatus"] == "dueLater"
  assert body["plannedReminders"] == 4

  r = await client.get(f"/cards/{seeded.card_id}/reminders")
  assert r.status_code == 200
  jobs = r.json()
  assert len(jobs) == 4
  assert {j["reminderType"] for j in jobs} == {"due_soon", "overdue"}
  assert all(j["status"] == "pending" and j["attempts"] == 0 for j in jobs)
  due_soon = next(j for j in jobs if j["reminderType"] == "due_soon")
  assert due_soon["reminderMinutes"] == 60
  assert datetime.fromisoformat(due_soon["runAt"].replace("Z", "+00:00")) == due - timedelta(minutes=60)


@pytest.mark.anyio
async def test_marking_due_complete_clears_pending_jobs(client: AsyncClient) -> None:
  seeded = await seed_card(due_at=datetime.now(timezone.utc) + timedelta(hours=5))
  r = await client.patch(f"/cards/{seeded.card_id}/due", json={"reminderMinutes": 30})
  assert r.json()["plannedReminders"] == 2
  assert r.json()["dueStatus"] == "dueSoon"

  r = await client.patch(f"/cards/{seeded.card_id}/due", json={"dueComplete": True})
  assert r.status_code == 200
  assert r.json()["dueStatus"] == "complete"
  assert r.json()["plannedReminders"] == 0
  assert (await client.get(f"/cards/{seeded.card_id}/reminders")).json() == []


@pytest.mark.anyio
async def test_clearing_due_date_clears_jobs(client: AsyncClient) -> None:
  seeded = await seed_card(due_at=None)
  await client.patch(f"/cards/{seeded.card_id}/due", json={"dueAt": "2030-01-01T09:00:00+02:00"})
  r = await client.patch(f"/cards/{seeded.card_id}/due", json={"dueAt": None})
  assert r.status_code == 200
  assert r.json()["dueAt"] is None
  assert r.json()["dueStatus"] == "none"
  assert (await client.get(f"/cards/{seeded.card_id}/reminders")).json() == []


@pytest.mark.anyio
@pytest.mark.parametrize(
  "payload",
  [
    {"reminderMinutes": 45},
    {"dueAt": "2030-01-01T09:00:00"},
    {"dueAt": "2030-01-01"},
  ],
)
async def test_invalid_due_payloads_are_rejected(client: AsyncClient, payload: dict) -> None:
  seeded = await seed_card(due_at=None)
  r = await client.patch(f"/cards/{seeded.card_id}/due", json=payload)
  assert r.status_code == 422


@pytest.mark.anyio
async def test_unknown_card_is_404(client: AsyncClient) -> None:
  missing = "00000000-0000-4000-8000-0000000000ff"
  r = await client.patch(f"/cards/{missing}/due", json={"dueComplete": True})
  assert r.status_code == 404
  r = await client.get(f"/cards/{missing}/reminders")
  assert r.status_code == 404


@pytest.mark.anyio
async def test_run_now_dispatches_and_status_reports_counts(client: AsyncClient) -> None:
  sender = RecordingSender()
  app.dependency_overrides[get_reminder_sender] = lambda: sender
  try:
    # Already overdue: both jobs are eligible, due_soon gets skipped, overdue is sent.
    seeded = await seed_card(due_at=datetime.now(timezone.utc) - timedelta(minutes=5))
    r = await client.patch(f"/cards/{seeded.card_id}/due", json={})
    assert r.json()["plannedReminders"] == 2

    r = await client.post("/reminders/run")
    assert r.status_code == 200, r.text
    assert r.json() == {"processed": 2, "sent": 1, "deduped": 0, "skipped": 1, "retried": 0, "failed": 0}
    assert [p.reminder_type for p in sender.sent] == ["overdue"]

    r = await client.get("/reminders/status")
    assert r.status_code == 200
    body = r.json()
    assert body["jobCounts"]["sent"] == 1
    assert body["jobCounts"]["skipped"] == 1
    assert body["jobCounts"]["pending"] == 0
    assert body["failedJobs"] == 0
    assert body["workerRunning"] is False
    # No worker in tests, so the state is degraded rather than failing.
    assert body["state"] == "yellow"
    assert body["metrics"]["ticks24h"] == 1
    assert body["metrics"]["totals24h"]["sent"] == 1
  finally:
    app.dependency_overrides.pop(get_reminder_sender, None)
