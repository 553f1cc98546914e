from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import BoardMember, CardMember, User


@dataclass(frozen=True)
class Recipient:
  user_id: str
  email: str | None
  name: str
  timezone: str | None


async def get_reminder_recipients(db: AsyncSession, card_id: str, board_id: str) -> list[Recipient]:
  """
  Card members who are still members of the card's board.

  Duplicate card-membership rows collapse to one recipient (first wins).
  """
  res = await db.execute(
    select(User.id, User.email, User.name, User.timezone)
    .select_from(CardMember)
    .join(BoardMember, (BoardMember.user_id == CardMember.user_id) & (BoardMember.board_id == board_id))
    .join(User, User.id == CardMember.user_id)
    .where(CardMember.card_id == card_id)
    .order_by(CardMember.created_at.asc(), CardMember.id.asc())
  )
  out: list[Recipient] = []
  seen: set[str] = set()
  for row in res.all():
    if row.id in seen:
      continue
    seen.add(row.id)
    out.append(Recipient(user_id=row.id, email=row.email, name=row.name or "", timezone=row.timezone))
  return out


async def get_reminder_recipient(db: AsyncSession, board_id: str, user_id: str) -> Recipient | None:
  res = await db.execute(
    select(User.id, User.email, User.name, User.timezone)
    .join(BoardMember, BoardMember.user_id == User.id)
    .where(BoardMember.board_id == board_id, User.id == user_id)
    .limit(1)
  )
  row = res.first()
  if row is None:
    return None
  return Recipient(user_id=row.id, email=row.email, name=row.name or "", timezone=row.timezone)
