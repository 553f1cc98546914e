from __future__ import annotations

import asyncio
import os
import sys
import tempfile
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
  sys.path.insert(0, str(ROOT))

_TEST_DB = Path(tempfile.gettempdir()) / f"dailydesk_test_{os.getpid()}.db"
# Point TEST_DATABASE_URL at a Postgres test database to run against asyncpg instead.
os.environ["DATABASE_URL"] = os.environ.get("TEST_DATABASE_URL") or f"sqlite+aiosqlite:///{_TEST_DB}"
os.environ.setdefault("REMINDERS_ENABLED", "false")

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import delete

from app.config import settings
from app.db import SessionLocal, engine
from app.main import app
from app.metrics import reminder_metrics
from app.models import (
  AuditEvent,
  Base,
  Board,
  BoardList,
  BoardMember,
  Card,
  CardMember,
  EmailReminderSent,
  ReminderJob,
  User,
)
from app.notifications.service import ReminderEmailPayload
from app.reminders.config import ReminderConfig


@pytest.fixture(scope="session")
def anyio_backend() -> str:
  return "asyncio"


async def _reset_db() -> None:
  async with engine.begin() as conn:
    await conn.run_sync(Base.metadata.create_all)
  async with SessionLocal() as db:
    await db.execute(delete(ReminderJob))
    await db.execute(delete(EmailReminderSent))
    await db.execute(delete(AuditEvent))
    await db.execute(delete(CardMember))
    await db.execute(delete(Card))
    await db.execute(delete(BoardList))
    await db.execute(delete(BoardMember))
    await db.execute(delete(Board))
    await db.execute(delete(User))
    await db.commit()
  await engine.dispose()


@pytest.fixture(autouse=True)
async def _clean_between_tests(anyio_backend) -> None:
  db_name = settings.database_url.rsplit("/", 1)[-1]
  if "test" not in db_name:
    raise RuntimeError("Refusing to run destructive tests against a non-test database.")
  reminder_metrics.reset()
  await _reset_db()
  yield
  await _reset_db()


@pytest.fixture
async def client() -> AsyncClient:
  transport = ASGITransport(app=app)
  async with AsyncClient(transport=transport, base_url="http://localhost") as c:
    yield c


@pytest.fixture
def config() -> ReminderConfig:
  return ReminderConfig(
    default_reminder_minutes=1440,
    overdue_grace_minutes=0,
    poll_interval_seconds=0.05,
    batch_size=50,
    base_backoff_seconds=60.0,
    max_attempts=5,
    send_timeout_seconds=2.0,
  )


@dataclass
class RecordingSender:
  """Fake notification sink: records payloads, optionally fails."""

  fail_for: set[str] = field(default_factory=set)
  fail_always: bool = False
  delay_seconds: float = 0.0
  sent: list[ReminderEmailPayload] = field(default_factory=list)
  calls: int = 0

  async def send_reminder_email(self, payload: ReminderEmailPayload) -> None:
    self.calls += 1
    if self.delay_seconds:
      await asyncio.sleep(self.delay_seconds)
    if self.fail_always or payload.to in self.fail_for:
      raise ConnectionError(f"smtp unavailable for {payload.to}")
    self.sent.append(payload)


@pytest.fixture
def sender() -> RecordingSender:
  return RecordingSender()


@dataclass
class SeededCard:
  card_id: str
  board_id: str
  list_id: str
  user_ids: list[str]


async def seed_card(
  *,
  due_at: datetime | None,
  members: list[tuple[str | None, str]] | None = None,
  reminder_minutes: int | None = None,
  due_complete: bool = False,
  completed: bool = False,
  name: str = "Ship release notes",
  timezone_name: str | None = "UTC",
) -> SeededCard:
  """Create owner, board, list, card; each (email, name) member joins board and card."""
  members = members if members is not None else [("alice@example.com", "Alice")]
  async with SessionLocal() as db:
    owner = User(email=None, name="Owner")
    db.add(owner)
    await db.flush()
    board = Board(name="Launch", owner_id=owner.id)
    db.add(board)
    await db.flush()
    lst = BoardList(board_id=board.id, name="Doing")
    db.add(lst)
    await db.flush()
    card = Card(
      list_id=lst.id,
      name=name,
      due_at=due_at,
      reminder_minutes=reminder_minutes,
      due_complete=due_complete,
      completed=completed,
    )
    db.add(card)
    await db.flush()
    user_ids: list[str] = []
    for email, uname in members:
      u = User(email=email, name=uname, timezone=timezone_name)
      db.add(u)
      await db.flush()
      db.add(BoardMember(board_id=board.id, user_id=u.id, role="member"))
      db.add(CardMember(card_id=card.id, user_id=u.id))
      user_ids.append(u.id)
    await db.commit()
    return SeededCard(card_id=card.id, board_id=board.id, list_id=lst.id, user_ids=user_ids)
