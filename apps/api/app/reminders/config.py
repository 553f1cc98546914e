from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from app.config import Settings


@dataclass(frozen=True)
class ReminderConfig:
  default_reminder_minutes: int | None = 1440
  overdue_grace_minutes: int = 0
  poll_interval_seconds: float = 60.0
  batch_size: int = 50
  base_backoff_seconds: float = 60.0
  max_attempts: int = 5
  send_timeout_seconds: float = 30.0

  @classmethod
  def from_settings(cls, settings: Settings) -> ReminderConfig:
    return cls(
      default_reminder_minutes=settings.reminder_minutes,
      overdue_grace_minutes=max(0, int(settings.overdue_grace_minutes)),
      poll_interval_seconds=max(1.0, settings.job_poll_interval_ms / 1000.0),
      batch_size=max(1, int(settings.reminder_batch_size)),
      base_backoff_seconds=max(0.0, settings.reminder_base_backoff_ms / 1000.0),
      max_attempts=max(1, int(settings.reminder_max_attempts)),
      send_timeout_seconds=max(0.1, float(settings.reminder_send_timeout_seconds)),
    )

  def backoff(self, attempts: int) -> timedelta:
    """Retry delay after the `attempts`-th failure: base * 2^(attempts-1)."""
    return timedelta(seconds=self.base_backoff_seconds * (2 ** max(0, attempts - 1)))
