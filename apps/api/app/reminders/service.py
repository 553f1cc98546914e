from __future__ import annotations

import asyncio
from dataclasses import asdict, dataclass
from datetime import datetime, timezone

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.audit import write_audit
from app.models import BoardList, Card, ReminderJob, as_utc
from app.notifications.service import ReminderEmailPayload, ReminderEmailSender
from app.reminders import store
from app.reminders.config import ReminderConfig
from app.reminders.recipients import get_reminder_recipient

logger = structlog.get_logger(__name__)


@dataclass
class DispatchResult:
  processed: int = 0
  sent: int = 0
  deduped: int = 0
  skipped: int = 0
  retried: int = 0
  failed: int = 0

  def as_dict(self) -> dict[str, int]:
    return asdict(self)


async def _skip_reason(db: AsyncSession, job: ReminderJob, *, now: datetime) -> str | None:
  res = await db.execute(
    select(Card.due_at, Card.due_complete, Card.completed, BoardList.board_id)
    .join(BoardList, BoardList.id == Card.list_id)
    .where(Card.id == job.card_id)
  )
  card = res.first()
  if card is None:
    return "card deleted"
  if card.due_at is None:
    return "due date cleared"
  if card.completed or card.due_complete:
    return "card completed"
  due_at = as_utc(card.due_at)
  if due_at != as_utc(job.due_at_snapshot):
    return "due date changed"
  if job.reminder_type == "due_soon" and due_at <= now:
    return "deadline already passed"
  return None


async def _card_name(db: AsyncSession, card_id: str) -> str:
  res = await db.execute(select(Card.name).where(Card.id == card_id))
  return (res.scalar_one_or_none() or "").strip() or "Untitled card"


async def handle_job_failure(
  db: AsyncSession,
  job_id: str,
  error: BaseException,
  *,
  config: ReminderConfig,
  now: datetime,
) -> str:
  """
  Record a failed attempt. Returns the job's new status.

  The row is re-read rather than trusting the copy loaded for the batch.
  """
  job = await store.get_job(db, job_id)
  if job is None:
    return "missing"
  attempts = int(job.attempts or 0) + 1
  message = str(error) or type(error).__name__
  if attempts >= int(job.max_attempts or config.max_attempts):
    await store.set_job_status(db, job.id, "failed", attempts=attempts, last_error=message)
    await write_audit(
      db,
      event_type="reminder.failed",
      entity_type="ReminderJob",
      entity_id=job.id,
      board_id=job.board_id,
      card_id=job.card_id,
      payload={"reminderType": job.reminder_type, "attempts": attempts, "error": message},
    )
    await db.commit()
    logger.error("reminder job failed permanently", job_id=job.id, card_id=job.card_id, attempts=attempts, error=message)
    return "failed"

  run_at = now + config.backoff(attempts)
  await store.set_job_status(db, job.id, "pending", attempts=attempts, last_error=message, run_at=run_at)
  await db.commit()
  logger.warning(
    "reminder job will retry",
    job_id=job.id,
    card_id=job.card_id,
    attempts=attempts,
    retry_at=run_at.isoformat(),
    error=message,
  )
  return "pending"


async def _process_job(
  db: AsyncSession,
  job: ReminderJob,
  *,
  sender: ReminderEmailSender,
  config: ReminderConfig,
  now: datetime,
) -> str:
  if await store.reminder_already_sent(db, job):
    await store.set_job_status(db, job.id, "sent")
    await db.commit()
    return "deduped"

  reason = await _skip_reason(db, job, now=now)
  if reason is None:
    recipient = await get_reminder_recipient(db, job.board_id, job.user_id)
    if recipient is None:
      reason = "recipient no longer a board member"
    elif not (recipient.email or "").strip():
      reason = "recipient has no email"
  if reason is not None:
    await store.set_job_status(db, job.id, "skipped", last_error=reason)
    await db.commit()
    logger.info("reminder job skipped", job_id=job.id, card_id=job.card_id, reminder_type=job.reminder_type, reason=reason)
    return "skipped"

  payload = ReminderEmailPayload(
    to=recipient.email.strip(),
    recipient_name=recipient.name,
    card_name=await _card_name(db, job.card_id),
    due_at=as_utc(job.due_at_snapshot),
    reminder_type=job.reminder_type,
    reminder_minutes=job.reminder_minutes if job.reminder_type == "due_soon" else None,
    time_zone=recipient.timezone,
  )
  # Release the read transaction while waiting on the mail server.
  await db.commit()
  try:
    await asyncio.wait_for(sender.send_reminder_email(payload), timeout=config.send_timeout_seconds)
  except asyncio.TimeoutError as e:
    raise TimeoutError(f"reminder email timed out after {config.send_timeout_seconds:g}s") from e

  await store.record_reminder_sent_if_absent(db, job, sent_at=now)
  await store.set_job_status(db, job.id, "sent", last_error=None)
  await write_audit(
    db,
    event_type="reminder.sent",
    entity_type="ReminderJob",
    entity_id=job.id,
    board_id=job.board_id,
    card_id=job.card_id,
    payload={"reminderType": job.reminder_type, "userId": job.user_id, "previousAttempts": int(job.attempts or 0)},
  )
  await db.commit()
  logger.info("reminder sent", job_id=job.id, card_id=job.card_id, reminder_type=job.reminder_type)
  return "sent"


async def process_reminder_jobs(
  db: AsyncSession,
  *,
  sender: ReminderEmailSender,
  config: ReminderConfig,
  now: datetime | None = None,
) -> DispatchResult:
  """
  Run one dispatcher tick.

  - Picks up to `config.batch_size` pending jobs whose run_at has passed.
  - Re-validates each against the card's current state before sending.
  - A job already in the sent-email log is marked sent without a second email.
  - Send failures are retried with exponential backoff, then marked failed.
  One job's failure never stops the rest of the batch.
  """
  now = now or datetime.now(timezone.utc)
  jobs = await store.select_due_jobs(db, now=now, limit=config.batch_size)
  result = DispatchResult()
  if not jobs:
    return result

  # Plain snapshots: a rollback below expires ORM instances.
  job_ids = [j.id for j in jobs]
  for job_id in job_ids:
    job = await store.get_job(db, job_id)
    if job is None or job.status != "pending":
      continue
    card_id = job.card_id
    try:
      outcome = await _process_job(db, job, sender=sender, config=config, now=now)
    except Exception as e:
      await db.rollback()
      new_status = await handle_job_failure(db, job_id, e, config=config, now=now)
      if new_status == "missing":
        # Replanned away mid-send; the new jobs carry the reminder from here.
        logger.warning("reminder job vanished during send", job_id=job_id, card_id=card_id, error=str(e))
        continue
      outcome = "failed" if new_status == "failed" else "retried"
    result.processed += 1
    if outcome == "sent":
      result.sent += 1
    elif outcome == "deduped":
      result.deduped += 1
    elif outcome == "skipped":
      result.skipped += 1
    elif outcome == "retried":
      result.retried += 1
    elif outcome == "failed":
      result.failed += 1

  if result.processed:
    logger.info("reminder tick finished", **result.as_dict())
  return result
