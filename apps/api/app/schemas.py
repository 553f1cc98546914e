from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, field_validator

from app.due import ALLOWED_REMINDER_MINUTES, validate_reminder_minutes


_DATE_ONLY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_TZ_SUFFIX_RE = re.compile(r"(Z|[+-]\d{2}:\d{2})$")


def _parse_dt_utc_require_tz(value: object) -> object:
  if value is None:
    return None
  if isinstance(value, datetime):
    dt = value
    if dt.tzinfo is None:
      raise ValueError("datetime must include timezone")
    return dt.astimezone(timezone.utc)
  if isinstance(value, str):
    s = value.strip()
    if not s:
      return None
    if _DATE_ONLY_RE.fullmatch(s):
      raise ValueError("datetime must include time and timezone")
    if not _TZ_SUFFIX_RE.search(s):
      raise ValueError("datetime must include timezone")
    dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
    if dt.tzinfo is None:
      raise ValueError("datetime must include timezone")
    return dt.astimezone(timezone.utc)
  return value


class UpdateDueIn(BaseModel):
  dueAt: datetime | None = None
  dueComplete: bool | None = None
  completed: bool | None = None
  reminderMinutes: int | None = None

  @field_validator("dueAt", mode="before")
  @classmethod
  def _due_to_utc(cls, v: object) -> object:
    return _parse_dt_utc_require_tz(v)

  @field_validator("reminderMinutes")
  @classmethod
  def _allowed_minutes(cls, v: int | None) -> int | None:
    if not validate_reminder_minutes(v):
      allowed = ", ".join(str(m) for m in ALLOWED_REMINDER_MINUTES)
      raise ValueError(f"reminderMinutes must be one of {allowed}")
    return v


class DueOut(BaseModel):
  cardId: str
  dueAt: datetime | None = None
  dueComplete: bool
  completed: bool
  reminderMinutes: int | None = None
  dueStatus: str
  dueLabel: str
  plannedReminders: int


class ReminderJobOut(BaseModel):
  id: str
  cardId: str
  boardId: str
  userId: str
  reminderType: str
  dueAtSnapshot: datetime
  reminderMinutes: int | None = None
  runAt: datetime
  status: str
  attempts: int
  maxAttempts: int
  lastError: str | None = None
  createdAt: datetime
  updatedAt: datetime


class DispatchResultOut(BaseModel):
  processed: int
  sent: int
  deduped: int
  skipped: int
  retried: int
  failed: int


class ReminderStatusOut(BaseModel):
  state: str  # green | yellow | red
  workerRunning: bool
  jobCounts: dict[str, int]
  failedJobs: int
  metrics: dict[str, Any]
