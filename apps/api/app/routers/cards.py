from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.deps import get_db, get_reminder_config
from app.due import get_due_status
from app.models import Card, as_utc
from app.reminders import store
from app.reminders.config import ReminderConfig
from app.reminders.planner import refresh_card_reminders
from app.routers.reminders import reminder_job_out
from app.schemas import DueOut, ReminderJobOut, UpdateDueIn

router = APIRouter(tags=["cards"])


async def _card_or_404(db: AsyncSession, card_id: str) -> Card:
  res = await db.execute(select(Card).where(Card.id == card_id))
  c = res.scalar_one_or_none()
  if not c:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Card not found")
  return c


@router.patch("/cards/{card_id}/due", response_model=DueOut)
async def update_card_due(
  card_id: str,
  payload: UpdateDueIn,
  db: AsyncSession = Depends(get_db),
  config: ReminderConfig = Depends(get_reminder_config),
) -> DueOut:
  c = await _card_or_404(db, card_id)
  fields = payload.model_fields_set
  if "dueAt" in fields:
    c.due_at = payload.dueAt
  if "reminderMinutes" in fields:
    c.reminder_minutes = payload.reminderMinutes
  if "dueComplete" in fields and payload.dueComplete is not None:
    c.due_complete = payload.dueComplete
  if "completed" in fields and payload.completed is not None:
    c.completed = payload.completed
  await db.commit()

  # Replan synchronously with the mutation so the next tick never sees stale jobs.
  planned = await refresh_card_reminders(db, card_id, config=config)

  due_at = as_utc(c.due_at)
  ds = get_due_status(due_at, bool(c.due_complete), datetime.now(timezone.utc))
  return DueOut(
    cardId=c.id,
    dueAt=due_at,
    dueComplete=bool(c.due_complete),
    completed=bool(c.completed),
    reminderMinutes=c.reminder_minutes,
    dueStatus=ds.status,
    dueLabel=ds.label,
    plannedReminders=planned,
  )


@router.get("/cards/{card_id}/reminders", response_model=list[ReminderJobOut])
async def list_card_reminders(card_id: str, db: AsyncSession = Depends(get_db)) -> list[ReminderJobOut]:
  await _card_or_404(db, card_id)
  return [reminder_job_out(j) for j in await store.list_card_jobs(db, card_id)]
