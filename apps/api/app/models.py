from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint, Uuid, column
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

REMINDER_TYPES = ("due_soon", "overdue")
JOB_STATUSES = ("pending", "running", "sent", "skipped", "failed")
# Statuses a replan deletes; also the scope of the active-job unique index.
ACTIVE_JOB_STATUSES = ("pending", "running", "failed")


def utcnow() -> datetime:
  return datetime.now(timezone.utc)


def as_utc(dt: datetime | None) -> datetime | None:
  # SQLite hands back naive datetimes; everything stored is UTC.
  if dt is None:
    return None
  if dt.tzinfo is None:
    return dt.replace(tzinfo=timezone.utc)
  return dt.astimezone(timezone.utc)


def _uuid() -> str:
  return str(uuid.uuid4())


class Base(DeclarativeBase):
  pass


class User(Base):
  __tablename__ = "users"

  id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=_uuid)
  email: Mapped[str | None] = mapped_column(String, nullable=True, unique=True, index=True)
  name: Mapped[str] = mapped_column(String, nullable=False, default="")
  timezone: Mapped[str | None] = mapped_column(String, nullable=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class Board(Base):
  __tablename__ = "boards"

  id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=_uuid)
  name: Mapped[str] = mapped_column(String, nullable=False)
  owner_id: Mapped[str] = mapped_column(Uuid(as_uuid=False), ForeignKey("users.id"), nullable=False, index=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class BoardMember(Base):
  __tablename__ = "board_members"
  __table_args__ = (UniqueConstraint("board_id", "user_id", name="ux_board_member_board_user"),)

  id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=_uuid)
  board_id: Mapped[str] = mapped_column(Uuid(as_uuid=False), ForeignKey("boards.id"), nullable=False, index=True)
  user_id: Mapped[str] = mapped_column(Uuid(as_uuid=False), ForeignKey("users.id"), nullable=False, index=True)
  role: Mapped[str] = mapped_column(String, nullable=False, default="member")
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class BoardList(Base):
  __tablename__ = "lists"

  id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=_uuid)
  board_id: Mapped[str] = mapped_column(Uuid(as_uuid=False), ForeignKey("boards.id"), nullable=False, index=True)
  name: Mapped[str] = mapped_column(String, nullable=False)
  position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class Card(Base):
  __tablename__ = "cards"

  id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=_uuid)
  list_id: Mapped[str] = mapped_column(Uuid(as_uuid=False), ForeignKey("lists.id"), nullable=False, index=True)
  name: Mapped[str] = mapped_column(String, nullable=False)
  due_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  reminder_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
  due_complete: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
  completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class CardMember(Base):
  __tablename__ = "card_members"

  id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=_uuid)
  card_id: Mapped[str] = mapped_column(Uuid(as_uuid=False), ForeignKey("cards.id"), nullable=False, index=True)
  user_id: Mapped[str] = mapped_column(Uuid(as_uuid=False), ForeignKey("users.id"), nullable=False)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class AuditEvent(Base):
  __tablename__ = "audit_events"

  id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=_uuid)
  board_id: Mapped[str | None] = mapped_column(Uuid(as_uuid=False), nullable=True, index=True)
  card_id: Mapped[str | None] = mapped_column(Uuid(as_uuid=False), nullable=True)
  actor_id: Mapped[str | None] = mapped_column(Uuid(as_uuid=False), nullable=True)
  event_type: Mapped[str] = mapped_column(String, nullable=False)
  entity_type: Mapped[str] = mapped_column(String, nullable=False)
  entity_id: Mapped[str | None] = mapped_column(String, nullable=True)
  payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


_active_job = column("status").in_(ACTIVE_JOB_STATUSES)


class ReminderJob(Base):
  __tablename__ = "reminder_jobs"
  __table_args__ = (
    Index(
      "ux_reminder_jobs_active_key",
      "card_id",
      "user_id",
      "reminder_type",
      "due_at_snapshot",
      unique=True,
      postgresql_where=_active_job,
      sqlite_where=_active_job,
    ),
    Index("ix_reminder_jobs_status_run_at", "status", "run_at"),
  )

  # No FK to cards: sent/skipped rows outlive deleted cards as audit trail.
  id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=_uuid)
  card_id: Mapped[str] = mapped_column(Uuid(as_uuid=False), nullable=False, index=True)
  board_id: Mapped[str] = mapped_column(Uuid(as_uuid=False), nullable=False)
  user_id: Mapped[str] = mapped_column(Uuid(as_uuid=False), nullable=False)
  reminder_type: Mapped[str] = mapped_column(String, nullable=False)  # due_soon | overdue
  due_at_snapshot: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
  reminder_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
  run_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
  status: Mapped[str] = mapped_column(String, nullable=False, default="pending")  # pending|running|sent|skipped|failed
  attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  max_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
  last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class EmailReminderSent(Base):
  __tablename__ = "email_reminders_sent"
  __table_args__ = (
    UniqueConstraint("card_id", "user_id", "reminder_type", "due_at_snapshot", name="ux_email_reminders_sent_key"),
  )

  id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=_uuid)
  card_id: Mapped[str] = mapped_column(Uuid(as_uuid=False), nullable=False)
  user_id: Mapped[str] = mapped_column(Uuid(as_uuid=False), nullable=False)
  reminder_type: Mapped[str] = mapped_column(String, nullable=False)
  due_at_snapshot: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
  sent_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
