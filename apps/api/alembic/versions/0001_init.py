"""init: boards, lists, cards, members, reminder jobs

Revision ID: 0001_init
Revises:
Create Date: 2026-10-17
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op


revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None

_ACTIVE = sa.text("status IN ('pending', 'running', 'failed')")


def _ts(name: str, nullable: bool = False) -> sa.Column:
  return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable, server_default=None if nullable else sa.func.now())


def upgrade() -> None:
  op.create_table(
    "users",
    sa.Column("id", sa.Uuid(as_uuid=False), primary_key=True, nullable=False),
    sa.Column("email", sa.String(), nullable=True),
    sa.Column("name", sa.String(), nullable=False, server_default=""),
    sa.Column("timezone", sa.String(), nullable=True),
    _ts("created_at"),
  )
  op.create_index("ix_users_email", "users", ["email"], unique=True)

  op.create_table(
    "boards",
    sa.Column("id", sa.Uuid(as_uuid=False), primary_key=True, nullable=False),
    sa.Column("name", sa.String(), nullable=False),
    sa.Column("owner_id", sa.Uuid(as_uuid=False), sa.ForeignKey("users.id"), nullable=False),
    _ts("created_at"),
  )
  op.create_index("ix_boards_owner_id", "boards", ["owner_id"])

  op.create_table(
    "board_members",
    sa.Column("id", sa.Uuid(as_uuid=False), primary_key=True, nullable=False),
    sa.Column("board_id", sa.Uuid(as_uuid=False), sa.ForeignKey("boards.id"), nullable=False),
    sa.Column("user_id", sa.Uuid(as_uuid=False), sa.ForeignKey("users.id"), nullable=False),
    sa.Column("role", sa.String(), nullable=False, server_default="member"),
    _ts("created_at"),
    sa.UniqueConstraint("board_id", "user_id", name="ux_board_member_board_user"),
  )
  op.create_index("ix_board_members_board_id", "board_members", ["board_id"])
  op.create_index("ix_board_members_user_id", "board_members", ["user_id"])

  op.create_table(
    "lists",
    sa.Column("id", sa.Uuid(as_uuid=False), primary_key=True, nullable=False),
    sa.Column("board_id", sa.Uuid(as_uuid=False), sa.ForeignKey("boards.id"), nullable=False),
    sa.Column("name", sa.String(), nullable=False),
    sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
    _ts("created_at"),
  )
  op.create_index("ix_lists_board_id", "lists", ["board_id"])

  op.create_table(
    "cards",
    sa.Column("id", sa.Uuid(as_uuid=False), primary_key=True, nullable=False),
    sa.Column("list_id", sa.Uuid(as_uuid=False), sa.ForeignKey("lists.id"), nullable=False),
    sa.Column("name", sa.String(), nullable=False),
    sa.Column("due_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("reminder_minutes", sa.Integer(), nullable=True),
    sa.Column("due_complete", sa.Boolean(), nullable=False, server_default=sa.false()),
    sa.Column("completed", sa.Boolean(), nullable=False, server_default=sa.false()),
    _ts("created_at"),
    _ts("updated_at"),
  )
  op.create_index("ix_cards_list_id", "cards", ["list_id"])

  op.create_table(
    "card_members",
    sa.Column("id", sa.Uuid(as_uuid=False), primary_key=True, nullable=False),
    sa.Column("card_id", sa.Uuid(as_uuid=False), sa.ForeignKey("cards.id"), nullable=False),
    sa.Column("user_id", sa.Uuid(as_uuid=False), sa.ForeignKey("users.id"), nullable=False),
    _ts("created_at"),
  )
  op.create_index("ix_card_members_card_id", "card_members", ["card_id"])

  op.create_table(
    "audit_events",
    sa.Column("id", sa.Uuid(as_uuid=False), primary_key=True, nullable=False),
    sa.Column("board_id", sa.Uuid(as_uuid=False), nullable=True),
    sa.Column("card_id", sa.Uuid(as_uuid=False), nullable=True),
    sa.Column("actor_id", sa.Uuid(as_uuid=False), nullable=True),
    sa.Column("event_type", sa.String(), nullable=False),
    sa.Column("entity_type", sa.String(), nullable=False),
    sa.Column("entity_id", sa.String(), nullable=True),
    sa.Column("payload", sa.JSON(), nullable=False),
    _ts("created_at"),
  )
  op.create_index("ix_audit_events_board_id", "audit_events", ["board_id"])

  op.create_table(
    "reminder_jobs",
    sa.Column("id", sa.Uuid(as_uuid=False), primary_key=True, nullable=False),
    sa.Column("card_id", sa.Uuid(as_uuid=False), nullable=False),
    sa.Column("board_id", sa.Uuid(as_uuid=False), nullable=False),
    sa.Column("user_id", sa.Uuid(as_uuid=False), nullable=False),
    sa.Column("reminder_type", sa.String(), nullable=False),  # due_soon | overdue
    sa.Column("due_at_snapshot", sa.DateTime(timezone=True), nullable=False),
    sa.Column("reminder_minutes", sa.Integer(), nullable=True),
    sa.Column("run_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("status", sa.String(), nullable=False, server_default="pending"),  # pending|running|sent|skipped|failed
    sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
    sa.Column("max_attempts", sa.Integer(), nullable=False, server_default="5"),
    sa.Column("last_error", sa.Text(), nullable=True),
    _ts("created_at"),
    _ts("updated_at"),
  )
  op.create_index("ix_reminder_jobs_card_id", "reminder_jobs", ["card_id"])
  op.create_index("ix_reminder_jobs_status_run_at", "reminder_jobs", ["status", "run_at"])
  op.create_index(
    "ux_reminder_jobs_active_key",
    "reminder_jobs",
    ["card_id", "user_id", "reminder_type", "due_at_snapshot"],
    unique=True,
    postgresql_where=_ACTIVE,
    sqlite_where=_ACTIVE,
  )

  op.create_table(
    "email_reminders_sent",
    sa.Column("id", sa.Uuid(as_uuid=False), primary_key=True, nullable=False),
    sa.Column("card_id", sa.Uuid(as_uuid=False), nullable=False),
    sa.Column("user_id", sa.Uuid(as_uuid=False), nullable=False),
    sa.Column("reminder_type", sa.String(), nullable=False),
    sa.Column("due_at_snapshot", sa.DateTime(timezone=True), nullable=False),
    _ts("sent_at"),
    sa.UniqueConstraint("card_id", "user_id", "reminder_type", "due_at_snapshot", name="ux_email_reminders_sent_key"),
  )


def downgrade() -> None:
  op.drop_table("email_reminders_sent")
  op.drop_index("ux_reminder_jobs_active_key", table_name="reminder_jobs")
  op.drop_index("ix_reminder_jobs_status_run_at", table_name="reminder_jobs")
  op.drop_index("ix_reminder_jobs_card_id", table_name="reminder_jobs")
  op.drop_table("reminder_jobs")
  op.drop_index("ix_audit_events_board_id", table_name="audit_events")
  op.drop_table("audit_events")
  op.drop_index("ix_card_members_card_id", table_name="card_members")
  op.drop_table("card_members")
  op.drop_index("ix_cards_list_id", table_name="cards")
  op.drop_table("cards")
  op.drop_index("ix_lists_board_id", table_name="lists")
  op.drop_table("lists")
  op.drop_index("ix_board_members_user_id", table_name="board_members")
  op.drop_index("ix_board_members_board_id", table_name="board_members")
  op.drop_table("board_members")
  op.drop_index("ix_boards_owner_id", table_name="boards")
  op.drop_table("boards")
  op.drop_index("ix_users_email", table_name="users")
  op.drop_table("users")
