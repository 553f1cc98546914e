from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Literal

ALLOWED_REMINDER_MINUTES: tuple[int, ...] = (5, 10, 15, 30, 60, 120, 1440)

DueStatus = Literal["none", "complete", "overdue", "dueSoon", "dueLater"]

_DUE_SOON_WINDOW = timedelta(hours=24)


@dataclass(frozen=True)
class DueStatusResult:
  status: DueStatus
  label: str
  color: str  # default | success | destructive | warning | secondary


def validate_reminder_minutes(value: int | None) -> bool:
  if value is None:
    return True
  return value in ALLOWED_REMINDER_MINUTES


def get_due_status(due_at: datetime | None, due_complete: bool, now: datetime | None = None) -> DueStatusResult:
  if due_at is None:
    return DueStatusResult(status="none", label="", color="default")
  if due_complete:
    return DueStatusResult(status="complete", label="Complete", color="success")

  now = now or datetime.now(timezone.utc)
  if due_at.tzinfo is None:
    due_at = due_at.replace(tzinfo=timezone.utc)
  if due_at < now:
    return DueStatusResult(status="overdue", label="Overdue", color="destructive")
  if due_at - now <= _DUE_SOON_WINDOW:
    return DueStatusResult(status="dueSoon", label="Due soon", color="warning")
  return DueStatusResult(status="dueLater", label="", color="secondary")
