from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.db import SessionLocal
from app.notifications.service import ReminderEmailSender, reminder_sender_from_settings
from app.reminders.config import ReminderConfig


async def get_db() -> AsyncSession:
  async with SessionLocal() as session:
    yield session


def get_reminder_config() -> ReminderConfig:
  return ReminderConfig.from_settings(settings)


def get_reminder_sender() -> ReminderEmailSender:
  return reminder_sender_from_settings(settings)
