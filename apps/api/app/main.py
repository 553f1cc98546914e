from __future__ import annotations

from fastapi import FastAPI

from app.config import settings
from app.db import SessionLocal
from app.logging_config import configure_logging
from app.notifications.service import reminder_sender_from_settings
from app.reminders.config import ReminderConfig
from app.reminders.worker import ReminderWorker
from app.routers.cards import router as cards_router
from app.routers.reminders import router as reminders_router

configure_logging(settings.log_level, json=settings.log_json)

app = FastAPI(
  title="DailyDesk API",
  version="0.1.0",
  docs_url="/docs" if settings.api_docs_enabled else None,
  redoc_url="/redoc" if settings.api_docs_enabled else None,
  openapi_url="/openapi.json" if settings.api_docs_enabled else None,
)
app.state.reminder_worker = None

app.include_router(cards_router)
app.include_router(reminders_router)


@app.get("/health")
async def health() -> dict:
  return {"ok": True}


@app.get("/version")
async def version() -> dict:
  return {"version": settings.app_version, "buildSha": settings.build_sha}


def _is_test_db() -> bool:
  try:
    db_name = settings.database_url.rsplit("/", 1)[-1]
    return "test" in db_name
  except Exception:
    return False


@app.on_event("startup")
async def _startup() -> None:
  if _is_test_db() or not settings.reminders_enabled:
    return
  if app.state.reminder_worker is None:
    worker = ReminderWorker(
      SessionLocal,
      sender=reminder_sender_from_settings(settings),
      config=ReminderConfig.from_settings(settings),
    )
    worker.start()
    app.state.reminder_worker = worker


@app.on_event("shutdown")
async def _shutdown() -> None:
  worker = app.state.reminder_worker
  if worker is not None:
    await worker.shutdown()
    app.state.reminder_worker = None
