"""Initial schema: all tables, enums, constraints, and indexes.

Revision: 001_initial_schema
Created:  2026-10-19

Append-only: never edit this file once it has run against a database.
Schema changes go in a new revision.

Creation order:
  1. PostgreSQL enum types
  2. Tables in FK dependency order (users → refresh_tokens → groups →
     memberships → categories → expenses → splits → settlements →
     notifications)
  3. Indexes (including the partial index idx_expenses_active)

ON DELETE policies:
  refresh_tokens.user_id       → CASCADE
  notifications.user_id        → CASCADE
  categories.created_by        → CASCADE
  memberships.group_id         → CASCADE   (only empty groups can be deleted)
  memberships.user_id          → RESTRICT
  expenses.category_id         → SET NULL
  expenses.* (other FKs)       → RESTRICT
  splits.expense_id            → CASCADE
  splits.user_id               → RESTRICT
  settlements.*                → RESTRICT
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001_initial_schema"
down_revision: str | None = None
branch_labels: tuple | None = None
depends_on: tuple | None = None


def _enum(*values: str, name: str):
    # Created explicitly in step 1; columns only reference them.
    return postgresql.ENUM(*values, name=name, create_type=False)


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.text("NOW()"),
    )


def upgrade() -> None:
    # ── Step 1: enum types ─────────────────────────────────────────────────
    op.execute("CREATE TYPE split_mode_enum AS ENUM ('equal', 'custom')")
    op.execute("CREATE TYPE settlement_status_enum AS ENUM ('pending', 'completed')")
    op.execute(
        "CREATE TYPE notification_kind_enum AS ENUM "
        "('expense', 'settlement', 'group', 'general')"
    )

    # ── Step 2: users ──────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("avatar_url", sa.String(500), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
        sa.UniqueConstraint("email", name="uq_users_email"),
        sa.CheckConstraint("LENGTH(TRIM(name)) > 0", name="ck_users_name_nonempty"),
        sa.CheckConstraint("email LIKE '%@%'", name="ck_users_email_format"),
    )

    # ── Step 3: refresh_tokens ─────────────────────────────────────────────
    op.create_table(
        "refresh_tokens",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE", name="fk_refresh_tokens_user"),
            nullable=False,
        ),
        sa.Column("token_hash", sa.String(255), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("revoked", sa.Boolean(), nullable=False, server_default=sa.text("FALSE")),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_refresh_tokens"),
        sa.UniqueConstraint("token_hash", name="uq_refresh_tokens_hash"),
    )

    # ── Step 4: groups ─────────────────────────────────────────────────────
    op.create_table(
        "groups",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column(
            "created_by_user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_groups_creator"),
            nullable=False,
        ),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_groups"),
        sa.CheckConstraint("LENGTH(TRIM(name)) > 0", name="ck_groups_name_nonempty"),
    )

    # ── Step 5: memberships ────────────────────────────────────────────────
    op.create_table(
        "memberships",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_memberships_user"),
            nullable=False,
        ),
        sa.Column(
            "group_id",
            sa.Integer(),
            sa.ForeignKey("groups.id", ondelete="CASCADE", name="fk_memberships_group"),
            nullable=False,
        ),
        sa.Column(
            "joined_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_memberships"),
        sa.UniqueConstraint("user_id", "group_id", name="uq_memberships_user_group"),
    )

    # ── Step 6: categories ─────────────────────────────────────────────────
    # Name uniqueness per user is case-insensitive and checked in the service.
    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(50), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column(
            "created_by_user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE", name="fk_categories_creator"),
            nullable=False,
        ),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_categories"),
        sa.CheckConstraint("LENGTH(TRIM(name)) > 0", name="ck_categories_name_nonempty"),
    )

    # ── Step 7: expenses ───────────────────────────────────────────────────
    # deleted_at IS NULL = active; non-null = soft-deleted.
    op.create_table(
        "expenses",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "group_id",
            sa.Integer(),
            sa.ForeignKey("groups.id", ondelete="RESTRICT", name="fk_expenses_group"),
            nullable=False,
        ),
        sa.Column(
            "paid_by_user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_expenses_payer"),
            nullable=False,
        ),
        sa.Column(
            "created_by_user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_expenses_creator"),
            nullable=False,
        ),
        sa.Column(
            "category_id",
            sa.Integer(),
            sa.ForeignKey("categories.id", ondelete="SET NULL", name="fk_expenses_category"),
            nullable=True,
        ),
        sa.Column("description", sa.String(255), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column(
            "split_mode",
            _enum("equal", "custom", name="split_mode_enum"),
            nullable=False,
            server_default="custom",
        ),
        sa.Column("tags", sa.JSON(), nullable=False, server_default=sa.text("'[]'")),
        sa.Column("receipt_url", sa.String(500), nullable=True),
        sa.Column("receipt_public_id", sa.String(255), nullable=True),
        sa.Column("receipt_filename", sa.String(255), nullable=True),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_expenses"),
        sa.CheckConstraint("amount > 0", name="ck_expenses_amount_positive"),
        sa.CheckConstraint(
            "LENGTH(TRIM(description)) > 0",
            name="ck_expenses_description_nonempty",
        ),
    )

    # ── Step 8: splits ─────────────────────────────────────────────────────
    op.create_table(
        "splits",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "expense_id",
            sa.Integer(),
            sa.ForeignKey("expenses.id", ondelete="CASCADE", name="fk_splits_expense"),
            nullable=False,
        ),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_splits_user"),
            nullable=False,
        ),
        sa.Column("share", sa.Numeric(12, 2), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_splits"),
        sa.UniqueConstraint("expense_id", "user_id", name="uq_splits_expense_user"),
        sa.CheckConstraint("share > 0", name="ck_splits_share_positive"),
    )

    # ── Step 9: settlements ────────────────────────────────────────────────
    # expense_id NULL = group-scoped; set = scoped to that expense.
    op.create_table(
        "settlements",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "group_id",
            sa.Integer(),
            sa.ForeignKey("groups.id", ondelete="RESTRICT", name="fk_settlements_group"),
            nullable=False,
        ),
        sa.Column(
            "expense_id",
            sa.Integer(),
            sa.ForeignKey("expenses.id", ondelete="RESTRICT", name="fk_settlements_expense"),
            nullable=True,
        ),
        sa.Column(
            "from_user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_settlements_payer"),
            nullable=False,
        ),
        sa.Column(
            "to_user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_settlements_recipient"),
            nullable=False,
        ),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("note", sa.String(255), nullable=False, server_default=""),
        sa.Column(
            "status",
            _enum("pending", "completed", name="settlement_status_enum"),
            nullable=False,
            server_default="completed",
        ),
        sa.Column(
            "settled_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_settlements"),
        sa.CheckConstraint("amount > 0", name="ck_settlements_amount_positive"),
        sa.CheckConstraint(
            "from_user_id <> to_user_id",
            name="ck_settlements_no_self_settlement",
        ),
    )

    # ── Step 10: notifications ─────────────────────────────────────────────
    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE", name="fk_notifications_user"),
            nullable=False,
        ),
        sa.Column("message", sa.String(500), nullable=False),
        sa.Column(
            "kind",
            _enum("expense", "settlement", "group", "general", name="notification_kind_enum"),
            nullable=False,
            server_default="general",
        ),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.text("FALSE")),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_notifications"),
    )

    # ── Step 11: indexes ───────────────────────────────────────────────────
    # Names follow SQLAlchemy's ix_<table>_<column> so autogenerate stays quiet.
    op.create_index("ix_refresh_tokens_user_id", "refresh_tokens", ["user_id"])
    op.create_index("ix_memberships_group_id", "memberships", ["group_id"])
    op.create_index("ix_memberships_user_id", "memberships", ["user_id"])
    op.create_index("ix_categories_created_by_user_id", "categories", ["created_by_user_id"])
    op.create_index("ix_expenses_group_id", "expenses", ["group_id"])
    # Ledger reads always filter deleted_at IS NULL.
    op.create_index(
        "idx_expenses_active",
        "expenses",
        ["group_id"],
        postgresql_where=sa.text("deleted_at IS NULL"),
    )
    op.create_index("ix_splits_expense_id", "splits", ["expense_id"])
    op.create_index("ix_settlements_group_id", "settlements", ["group_id"])
    op.create_index(
        "idx_settlements_expense_pair",
        "settlements",
        ["expense_id", "from_user_id", "to_user_id"],
    )
    op.create_index("idx_notifications_user_unread", "notifications", ["user_id", "is_read"])


def downgrade() -> None:
    """Drops everything upgrade() created, in reverse order. Local resets only."""
    op.drop_index("idx_notifications_user_unread",    table_name="notifications")
    op.drop_index("idx_settlements_expense_pair",     table_name="settlements")
    op.drop_index("ix_settlements_group_id",          table_name="settlements")
    op.drop_index("ix_splits_expense_id",             table_name="splits")
    op.drop_index("idx_expenses_active",              table_name="expenses")
    op.drop_index("ix_expenses_group_id",             table_name="expenses")
    op.drop_index("ix_categories_created_by_user_id", table_name="categories")
    op.drop_index("ix_memberships_user_id",           table_name="memberships")
    op.drop_index("ix_memberships_group_id",          table_name="memberships")
    op.drop_index("ix_refresh_tokens_user_id",        table_name="refresh_tokens")

    op.drop_table("notifications")
    op.drop_table("settlements")
    op.drop_table("splits")
    op.drop_table("expenses")
    op.drop_table("categories")
    op.drop_table("memberships")
    op.drop_table("groups")
    op.drop_table("refresh_tokens")
    op.drop_table("users")

    op.execute("DROP TYPE IF EXISTS notification_kind_enum")
    op.execute("DROP TYPE IF EXISTS settlement_status_enum")
    op.execute("DROP TYPE IF EXISTS split_mode_enum")
