from __future__ import annotations

from typing import Any, Sequence

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.config import settings

engine = create_async_engine(settings.database_url, pool_pre_ping=True)
SessionLocal = async_sessionmaker(engine, expire_on_commit=False)


def _insert_for(db: AsyncSession, model: Any):
  table = getattr(model, "__table__", model)
  dialect = db.get_bind().dialect.name
  if dialect == "sqlite":
    return sqlite.insert(table)
  if dialect == "postgresql":
    return postgresql.insert(table)
  raise RuntimeError(f"insert-if-absent is not supported on dialect {dialect!r}")


async def insert_if_absent(
  db: AsyncSession,
  model: Any,
  rows: Sequence[dict[str, Any]],
  *,
  index_elements: Sequence[Any],
  index_where: Any = None,
) -> int:
  """
  Insert rows, ignoring any that collide with an existing unique key.

  Returns how many rows were actually written. Callers use this for
  idempotent writes (first writer wins), never to hide real errors.
  """
  if not rows:
    return 0
  stmt = _insert_for(db, model).values(list(rows)).on_conflict_do_nothing(
    index_elements=list(index_elements),
    index_where=index_where,
  )
  res = await db.execute(stmt)
  return max(0, int(res.rowcount or 0))
