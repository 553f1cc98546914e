from __future__ import annotations

import argparse
import asyncio
from time import monotonic
from typing import Callable

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.metrics import ReminderMetrics, reminder_metrics
from app.notifications.service import ReminderEmailSender
from app.reminders.config import ReminderConfig
from app.reminders.service import DispatchResult, process_reminder_jobs

logger = structlog.get_logger(__name__)


class ReminderWorker:
  """
  Poll loop around `process_reminder_jobs`.

  Owned by whoever runs the process (API startup/shutdown or the CLI below).
  Ticks never overlap; `stop()` interrupts the wait between ticks and lets an
  in-flight tick finish.
  """

  def __init__(
    self,
    session_factory: Callable[[], AsyncSession],
    *,
    sender: ReminderEmailSender,
    config: ReminderConfig,
    metrics: ReminderMetrics = reminder_metrics,
  ) -> None:
    self._session_factory = session_factory
    self._sender = sender
    self._config = config
    self._metrics = metrics
    self._stop = asyncio.Event()
    self._task: asyncio.Task | None = None

  @property
  def running(self) -> bool:
    return self._task is not None and not self._task.done()

  async def run_once(self) -> DispatchResult | None:
    start = monotonic()
    try:
      async with self._session_factory() as db:
        result = await process_reminder_jobs(db, sender=self._sender, config=self._config)
    except Exception as e:
      # Never crash the loop due to reminder failures.
      elapsed_ms = (monotonic() - start) * 1000.0
      self._metrics.observe_tick({}, elapsed_ms, error=str(e) or type(e).__name__)
      logger.exception("reminder tick crashed")
      return None
    self._metrics.observe_tick(result.as_dict(), (monotonic() - start) * 1000.0)
    return result

  async def run_forever(self) -> None:
    logger.info("reminder worker started", interval_seconds=self._config.poll_interval_seconds)
    while not self._stop.is_set():
      await self.run_once()
      try:
        await asyncio.wait_for(self._stop.wait(), timeout=self._config.poll_interval_seconds)
      except asyncio.TimeoutError:
        pass
    logger.info("reminder worker stopped")

  def start(self) -> asyncio.Task:
    if self._task is None or self._task.done():
      self._stop.clear()
      self._task = asyncio.create_task(self.run_forever())
    return self._task

  def stop(self) -> None:
    self._stop.set()

  async def shutdown(self) -> None:
    self.stop()
    if self._task is not None:
      await self._task
      self._task = None


async def _main(once: bool) -> None:
  from app.config import settings
  from app.db import SessionLocal, engine
  from app.logging_config import configure_logging
  from app.notifications.service import reminder_sender_from_settings

  configure_logging(settings.log_level, json=settings.log_json)
  worker = ReminderWorker(
    SessionLocal,
    sender=reminder_sender_from_settings(settings),
    config=ReminderConfig.from_settings(settings),
  )
  try:
    if once:
      await worker.run_once()
    else:
      await worker.run_forever()
  finally:
    await engine.dispose()


def main(argv: list[str] | None = None) -> None:
  parser = argparse.ArgumentParser(description="Dispatch due card reminders.")
  parser.add_argument("--once", action="store_true", help="run a single tick and exit (cron mode)")
  args = parser.parse_args(argv)
  try:
    asyncio.run(_main(args.once))
  except KeyboardInterrupt:
    pass


if __name__ == "__main__":
  main()
