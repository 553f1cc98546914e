from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from threading import Lock
from time import monotonic
from typing import Any


@dataclass
class TickSample:
  ts: datetime
  duration_ms: float
  counts: dict[str, int]
  error: str | None = None


class ReminderMetrics:
  def __init__(self) -> None:
    self._started_monotonic = monotonic()
    self._started_at = datetime.now(timezone.utc)
    self._samples: deque[TickSample] = deque()
    self._last_tick_at: datetime | None = None
    self._last_error: str | None = None
    self._lock = Lock()

  @property
  def started_at(self) -> datetime:
    return self._started_at

  def uptime_seconds(self) -> int:
    return max(0, int(monotonic() - self._started_monotonic))

  def observe_tick(self, counts: dict[str, int], duration_ms: float, *, error: str | None = None) -> None:
    now = datetime.now(timezone.utc)
    with self._lock:
      self._samples.append(TickSample(ts=now, duration_ms=duration_ms, counts=dict(counts), error=error))
      self._last_tick_at = now
      if error:
        self._last_error = error
      self._prune_locked(now)

  def _prune_locked(self, now: datetime) -> None:
    cutoff = now - timedelta(hours=24)
    while self._samples and self._samples[0].ts < cutoff:
      self._samples.popleft()

  def reset(self) -> None:
    with self._lock:
      self._samples.clear()
      self._last_tick_at = None
      self._last_error = None

  def snapshot(self) -> dict[str, Any]:
    now = datetime.now(timezone.utc)
    with self._lock:
      self._prune_locked(now)
      samples = list(self._samples)
      last_tick_at = self._last_tick_at
      last_error = self._last_error

    totals: dict[str, int] = {}
    for s in samples:
      for k, v in s.counts.items():
        totals[k] = totals.get(k, 0) + int(v)

    max_ms = max((s.duration_ms for s in samples), default=0.0)
    return {
      "uptimeSeconds": self.uptime_seconds(),
      "ticks24h": len(samples),
      "tickErrors24h": sum(1 for s in samples if s.error),
      "maxTickMs24h": round(max_ms, 2),
      "lastTickAt": last_tick_at.isoformat() if last_tick_at else None,
      "lastTickError": last_error,
      "totals24h": totals,
    }


reminder_metrics = ReminderMetrics()
