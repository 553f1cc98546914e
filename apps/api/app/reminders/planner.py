from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import BoardList, Card, as_utc
from app.reminders import store
from app.reminders.config import ReminderConfig
from app.reminders.recipients import get_reminder_recipients

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class PlannedReminder:
  reminder_type: str
  run_at: datetime
  reminder_minutes: int | None = None


def plan_reminders(due_at: datetime, reminder_minutes: int | None, config: ReminderConfig) -> list[PlannedReminder]:
  """Reminders a card due at `due_at` should have, before recipients are applied."""
  due_at = as_utc(due_at)
  planned: list[PlannedReminder] = []
  offset = reminder_minutes if reminder_minutes is not None else config.default_reminder_minutes
  if offset is not None and offset > 0:
    planned.append(
      PlannedReminder(reminder_type="due_soon", run_at=due_at - timedelta(minutes=offset), reminder_minutes=offset)
    )
  planned.append(
    PlannedReminder(reminder_type="overdue", run_at=due_at + timedelta(minutes=max(0, config.overdue_grace_minutes)))
  )
  return planned


async def refresh_card_reminders(db: AsyncSession, card_id: str, *, config: ReminderConfig) -> int:
  """
  Replan the reminder jobs of one card.

  Drops every pending/running/failed job of the card, then inserts fresh
  pending jobs (one per reminder type and card member) for the current due
  date. Delete and insert share one transaction. Returns the rows inserted.
  Run-at times already in the past are kept; the dispatcher decides at fire
  time whether they still make sense.
  """
  try:
    res = await db.execute(
      select(Card.due_at, Card.reminder_minutes, Card.due_complete, Card.completed, BoardList.board_id)
      .join(BoardList, BoardList.id == Card.list_id)
      .where(Card.id == card_id)
    )
    card = res.first()
  except SQLAlchemyError as e:
    await db.rollback()
    logger.warning("reminder replan skipped: card lookup failed", card_id=card_id, error=str(e))
    return 0
  if card is None:
    return 0

  removed = await store.delete_active_jobs(db, card_id)

  if card.due_at is None or card.due_complete or card.completed:
    await db.commit()
    logger.debug("reminders cleared", card_id=card_id, removed=removed)
    return 0

  recipients = await get_reminder_recipients(db, card_id, card.board_id)
  if not recipients:
    await db.commit()
    logger.debug("no reminder recipients", card_id=card_id, removed=removed)
    return 0

  due_at = as_utc(card.due_at)
  rows = [
    {
      "card_id": card_id,
      "board_id": card.board_id,
      "user_id": r.user_id,
      "reminder_type": p.reminder_type,
      "due_at_snapshot": due_at,
      "reminder_minutes": p.reminder_minutes,
      "run_at": p.run_at,
      "max_attempts": config.max_attempts,
    }
    for p in plan_reminders(due_at, card.reminder_minutes, config)
    for r in recipients
  ]
  inserted = await store.insert_jobs_if_absent(db, rows)
  await db.commit()
  logger.info("reminders planned", card_id=card_id, removed=removed, inserted=inserted, due_at=due_at.isoformat())
  return inserted
