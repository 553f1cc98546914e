from __future__ import annotations

import asyncio
import html
import smtplib
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from email.message import EmailMessage
from typing import Literal, Protocol
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog

from app.config import Settings

logger = structlog.get_logger(__name__)

ReminderType = Literal["due_soon", "overdue"]


class EmailNotConfiguredError(RuntimeError):
  pass


@dataclass(frozen=True)
class ReminderEmailPayload:
  to: str
  recipient_name: str
  card_name: str
  due_at: datetime
  reminder_type: ReminderType
  reminder_minutes: int | None = None
  time_zone: str | None = None


class ReminderEmailSender(Protocol):
  async def send_reminder_email(self, payload: ReminderEmailPayload) -> None: ...


def format_due_at(due_at: datetime, time_zone: str | None = None) -> str:
  if due_at.tzinfo is None:
    due_at = due_at.replace(tzinfo=timezone.utc)
  try:
    local = due_at.astimezone(ZoneInfo(time_zone)) if time_zone else due_at.astimezone(timezone.utc)
  except (ZoneInfoNotFoundError, ValueError):
    return due_at.astimezone(timezone.utc).isoformat()
  hour = local.strftime("%I").lstrip("0") or "12"
  return f"{local.strftime('%A, %B')} {local.day}, {local.year} at {hour}:{local.strftime('%M %p')} {local.tzname()}"


def build_subject(payload: ReminderEmailPayload) -> str:
  if payload.reminder_type == "overdue":
    return f'[Overdue] "{payload.card_name}" is past due'
  return f'[Reminder] "{payload.card_name}" is due soon'


def build_html(payload: ReminderEmailPayload) -> str:
  due_text = format_due_at(payload.due_at, payload.time_zone)
  greeting_name = payload.recipient_name or "there"
  if payload.reminder_type == "overdue":
    reminder_line = "This card is overdue."
  else:
    minutes = payload.reminder_minutes if payload.reminder_minutes is not None else "a few"
    reminder_line = f"This card is due in {minutes} minutes."
  return (
    '<div style="font-family: Arial, sans-serif; color: #111; line-height: 1.5;">'
    f'<h2 style="margin: 0 0 12px;">Hello {html.escape(greeting_name)},</h2>'
    f'<p style="margin: 0 0 12px;">{reminder_line}</p>'
    f'<p style="margin: 0 0 12px;"><strong>Card:</strong> {html.escape(payload.card_name)}</p>'
    f'<p style="margin: 0 0 12px;"><strong>Due:</strong> {html.escape(due_text)}</p>'
    '<p style="margin: 0;">DailyDesk Reminder</p>'
    "</div>"
  )


def build_text(payload: ReminderEmailPayload) -> str:
  due_text = format_due_at(payload.due_at, payload.time_zone)
  if payload.reminder_type == "overdue":
    line = "This card is overdue."
  else:
    line = f"This card is due in {payload.reminder_minutes if payload.reminder_minutes is not None else 'a few'} minutes."
  return f"Hello {payload.recipient_name or 'there'},\n\n{line}\nCard: {payload.card_name}\nDue: {due_text}\n"


class LocalReminderSender:
  """Dry-run sender: logs the email and keeps the most recent payloads."""

  def __init__(self, *, keep: int = 100) -> None:
    self.sent: deque[ReminderEmailPayload] = deque(maxlen=max(1, keep))

  async def send_reminder_email(self, payload: ReminderEmailPayload) -> None:
    self.sent.append(payload)
    logger.info(
      "reminder email (dry run)",
      to=payload.to,
      subject=build_subject(payload),
      reminder_type=payload.reminder_type,
    )


class SmtpReminderSender:
  def __init__(
    self,
    *,
    host: str | None,
    port: int = 587,
    username: str | None = None,
    password: str | None = None,
    use_tls: bool = False,
    from_addr: str | None = None,
    timeout: float = 15,
  ) -> None:
    self.host = (host or "").strip()
    self.port = int(port)
    self.username = (username or "").strip()
    self.password = password or ""
    self.use_tls = use_tls
    self.from_addr = (from_addr or "").strip()
    self.timeout = timeout

  def _message(self, payload: ReminderEmailPayload) -> EmailMessage:
    m = EmailMessage()
    m["Subject"] = build_subject(payload)
    m["From"] = self.from_addr
    m["To"] = payload.to
    m.set_content(build_text(payload))
    m.add_alternative(build_html(payload), subtype="html")
    return m

  async def send_reminder_email(self, payload: ReminderEmailPayload) -> None:
    if not self.from_addr:
      raise EmailNotConfiguredError("FROM_EMAIL is not configured")
    if not self.host:
      raise EmailNotConfiguredError("SMTP_HOST is not configured")
    msg = self._message(payload)

    def _send_sync() -> None:
      if self.use_tls:
        smtp: smtplib.SMTP = smtplib.SMTP_SSL(host=self.host, port=self.port, timeout=self.timeout)
      else:
        smtp = smtplib.SMTP(host=self.host, port=self.port, timeout=self.timeout)
      with smtp as s:
        s.ehlo()
        if not self.use_tls and s.has_extn("starttls"):
          s.starttls()
          s.ehlo()
        if self.username and self.password:
          s.login(self.username, self.password)
        s.send_message(msg)

    await asyncio.to_thread(_send_sync)


def reminder_sender_from_settings(settings: Settings) -> ReminderEmailSender:
  # Missing SMTP settings must fail sends (and retry), never count as delivered.
  if settings.reminder_dry_run:
    return LocalReminderSender()
  return SmtpReminderSender(
    host=settings.smtp_host,
    port=settings.smtp_port,
    username=settings.smtp_user,
    password=settings.smtp_pass,
    use_tls=settings.smtp_use_tls(),
    from_addr=settings.from_email,
    timeout=max(1.0, float(settings.reminder_send_timeout_seconds)),
  )
