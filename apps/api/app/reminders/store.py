from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Sequence

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.db import insert_if_absent
from app.models import ACTIVE_JOB_STATUSES, JOB_STATUSES, EmailReminderSent, ReminderJob, utcnow

_JOB_KEY = ("card_id", "user_id", "reminder_type", "due_at_snapshot")


async def delete_active_jobs(db: AsyncSession, card_id: str) -> int:
  res = await db.execute(
    delete(ReminderJob).where(ReminderJob.card_id == card_id, ReminderJob.status.in_(ACTIVE_JOB_STATUSES))
  )
  return max(0, int(res.rowcount or 0))


async def insert_jobs_if_absent(db: AsyncSession, rows: Sequence[dict[str, Any]]) -> int:
  now = utcnow()
  values = [
    {"id": str(uuid.uuid4()), "status": "pending", "attempts": 0, "created_at": now, "updated_at": now, **r}
    for r in rows
  ]
  return await insert_if_absent(
    db,
    ReminderJob,
    values,
    index_elements=_JOB_KEY,
    index_where=ReminderJob.status.in_(ACTIVE_JOB_STATUSES),
  )


async def select_due_jobs(db: AsyncSession, *, now: datetime, limit: int) -> list[ReminderJob]:
  res = await db.execute(
    select(ReminderJob)
    .where(
      ReminderJob.status == "pending",
      ReminderJob.run_at <= now,
      ReminderJob.attempts < ReminderJob.max_attempts,
    )
    .order_by(ReminderJob.run_at.asc())
    .limit(int(limit))
  )
  return list(res.scalars().all())


async def get_job(db: AsyncSession, job_id: str) -> ReminderJob | None:
  res = await db.execute(select(ReminderJob).where(ReminderJob.id == job_id))
  return res.scalar_one_or_none()


async def set_job_status(db: AsyncSession, job_id: str, status: str, **values: Any) -> None:
  await db.execute(update(ReminderJob).where(ReminderJob.id == job_id).values(status=status, **values))


async def reminder_already_sent(db: AsyncSession, job: ReminderJob) -> bool:
  res = await db.execute(
    select(EmailReminderSent.id)
    .where(
      EmailReminderSent.card_id == job.card_id,
      EmailReminderSent.user_id == job.user_id,
      EmailReminderSent.reminder_type == job.reminder_type,
      EmailReminderSent.due_at_snapshot == job.due_at_snapshot,
    )
    .limit(1)
  )
  return res.first() is not None


async def record_reminder_sent_if_absent(db: AsyncSession, job: ReminderJob, *, sent_at: datetime) -> bool:
  inserted = await insert_if_absent(
    db,
    EmailReminderSent,
    [
      {
        "id": str(uuid.uuid4()),
        "card_id": job.card_id,
        "user_id": job.user_id,
        "reminder_type": job.reminder_type,
        "due_at_snapshot": job.due_at_snapshot,
        "sent_at": sent_at,
      }
    ],
    index_elements=_JOB_KEY,
  )
  return inserted > 0


async def list_card_jobs(db: AsyncSession, card_id: str) -> list[ReminderJob]:
  res = await db.execute(
    select(ReminderJob)
    .where(ReminderJob.card_id == card_id)
    .order_by(ReminderJob.run_at.asc(), ReminderJob.created_at.asc())
  )
  return list(res.scalars().all())


async def count_jobs_by_status(db: AsyncSession) -> dict[str, int]:
  res = await db.execute(select(ReminderJob.status, func.count()).group_by(ReminderJob.status))
  out = {s: 0 for s in JOB_STATUSES}
  for status, n in res.all():
    out[str(status)] = int(n)
  return out
