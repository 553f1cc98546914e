from __future__ import annotations

from time import monotonic

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.deps import get_db, get_reminder_config, get_reminder_sender
from app.metrics import reminder_metrics
from app.models import ReminderJob, as_utc
from app.notifications.service import ReminderEmailSender
from app.reminders import store
from app.reminders.config import ReminderConfig
from app.reminders.service import process_reminder_jobs
from app.schemas import DispatchResultOut, ReminderJobOut, ReminderStatusOut

router = APIRouter(prefix="/reminders", tags=["reminders"])


def reminder_job_out(j: ReminderJob) -> ReminderJobOut:
  return ReminderJobOut(
    id=j.id,
    cardId=j.card_id,
    boardId=j.board_id,
    userId=j.user_id,
    reminderType=j.reminder_type,
    dueAtSnapshot=as_utc(j.due_at_snapshot),
    reminderMinutes=j.reminder_minutes,
    runAt=as_utc(j.run_at),
    status=j.status,
    attempts=int(j.attempts or 0),
    maxAttempts=int(j.max_attempts or 0),
    lastError=j.last_error,
    createdAt=as_utc(j.created_at),
    updatedAt=as_utc(j.updated_at),
  )


def _as_state(ok: bool, warn: bool = False) -> str:
  if not ok:
    return "red"
  return "yellow" if warn else "green"


@router.get("/status", response_model=ReminderStatusOut)
async def get_reminder_status(request: Request, db: AsyncSession = Depends(get_db)) -> ReminderStatusOut:
  counts = await store.count_jobs_by_status(db)
  worker = getattr(request.app.state, "reminder_worker", None)
  worker_running = bool(worker is not None and worker.running)
  metrics = reminder_metrics.snapshot()
  failed = counts.get("failed", 0)
  return ReminderStatusOut(
    state=_as_state(failed == 0, warn=not worker_running or bool(metrics.get("tickErrors24h"))),
    workerRunning=worker_running,
    jobCounts=counts,
    failedJobs=failed,
    metrics=metrics,
  )


@router.post("/run", response_model=DispatchResultOut)
async def run_reminders_now(
  db: AsyncSession = Depends(get_db),
  sender: ReminderEmailSender = Depends(get_reminder_sender),
  config: ReminderConfig = Depends(get_reminder_config),
) -> DispatchResultOut:
  start = monotonic()
  result = await process_reminder_jobs(db, sender=sender, config=config)
  reminder_metrics.observe_tick(result.as_dict(), (monotonic() - start) * 1000.0)
  return DispatchResultOut(**result.as_dict())
