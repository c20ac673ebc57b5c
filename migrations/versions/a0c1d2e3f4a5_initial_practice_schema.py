"""initial practice schema: firms, users, firm permissions, clients, tasks, audit

Revision ID: a0c1d2e3f4a5
Revises:
Create Date: 2026-10-17

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


# revision identifiers, used by Alembic.
revision: str = "a0c1d2e3f4a5"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=False),
        nullable=False,
        server_default=sa.func.current_timestamp(),
    )


def upgrade() -> None:
    bind = op.get_bind()
    existing_tables = set(inspect(bind).get_table_names())

    if "firms" not in existing_tables:
        op.create_table(
            "firms",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            _created_at(),
        )

    if "clients" not in existing_tables:
        op.create_table(
            "clients",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("firm_id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("email", sa.String(length=320), nullable=True),
            sa.Column("fiscal_year_end", sa.Date(), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            _created_at(),
            sa.ForeignKeyConstraint(["firm_id"], ["firms.id"], ondelete="CASCADE"),
        )
        op.create_index("idx_clients_firm_name", "clients", ["firm_id", "name"])

    if "users" not in existing_tables:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("email", sa.String(length=320), nullable=False),
            sa.Column("password_hash", sa.String(length=255), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=True),
            sa.Column("role", sa.String(length=64), nullable=False, server_default="staff"),
            sa.Column("firm_id", sa.Integer(), nullable=True),
            sa.Column("client_id", sa.Integer(), nullable=True),
            sa.Column("timezone", sa.String(length=64), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            _created_at(),
            sa.ForeignKeyConstraint(["firm_id"], ["firms.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["client_id"], ["clients.id"], ondelete="SET NULL"),
            sa.UniqueConstraint("email", name="uq_users_email"),
        )
        op.create_index("ix_users_firm_id", "users", ["firm_id"])

    if "firm_users" not in existing_tables:
        op.create_table(
            "firm_users",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("firm_id", sa.Integer(), nullable=False),
            sa.Column("role", sa.String(length=32), nullable=False, server_default="staff"),
            sa.Column("permissions", sa.JSON(), nullable=True),
            _created_at(),
            sa.Column(
                "updated_at",
                sa.DateTime(timezone=False),
                nullable=False,
                server_default=sa.func.current_timestamp(),
            ),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["firm_id"], ["firms.id"], ondelete="CASCADE"),
            sa.UniqueConstraint("user_id", "firm_id", name="uq_firm_users_user_firm"),
        )
        op.create_index("ix_firm_users_user_id", "firm_users", ["user_id"])
        op.create_index("ix_firm_users_firm_id", "firm_users", ["firm_id"])

    if "client_assignments" not in existing_tables:
        op.create_table(
            "client_assignments",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("client_id", sa.Integer(), nullable=False),
            sa.Column("firm_id", sa.Integer(), nullable=False),
            sa.Column("role", sa.String(length=32), nullable=False, server_default="staff"),
            sa.Column("permissions", sa.JSON(), nullable=True),
            _created_at(),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["client_id"], ["clients.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["firm_id"], ["firms.id"], ondelete="CASCADE"),
        )
        for idx_name, col in (
            ("ix_client_assignments_user_id", "user_id"),
            ("ix_client_assignments_client_id", "client_id"),
            ("ix_client_assignments_firm_id", "firm_id"),
        ):
            op.create_index(idx_name, "client_assignments", [col])

    if "tasks" not in existing_tables:
        op.create_table(
            "tasks",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("firm_id", sa.Integer(), nullable=False),
            sa.Column("client_id", sa.Integer(), nullable=True),
            sa.Column("title", sa.String(length=255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("status", sa.String(length=32), nullable=False, server_default="not_started"),
            sa.Column("priority", sa.String(length=16), nullable=False, server_default="medium"),
            sa.Column("assigned_to", sa.Integer(), nullable=True),
            sa.Column("due_date", sa.Date(), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            _created_at(),
            sa.Column(
                "updated_at",
                sa.DateTime(timezone=False),
                nullable=False,
                server_default=sa.func.current_timestamp(),
            ),
            sa.ForeignKeyConstraint(["firm_id"], ["firms.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["client_id"], ["clients.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["assigned_to"], ["users.id"], ondelete="SET NULL"),
        )
        op.create_index("idx_tasks_firm_status", "tasks", ["firm_id", "status"])
        op.create_index("idx_tasks_client_id", "tasks", ["client_id"])

    if "audit_events" not in existing_tables:
        op.create_table(
            "audit_events",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            _created_at(),
            sa.Column("request_id", sa.String(length=64), nullable=True),
            sa.Column("actor_user_id", sa.Integer(), nullable=True),
            sa.Column("actor_user_email", sa.String(length=320), nullable=True),
            sa.Column("firm_id", sa.Integer(), nullable=True),
            sa.Column("action", sa.String(length=128), nullable=False),
            sa.Column("entity_type", sa.String(length=128), nullable=True),
            sa.Column("entity_id", sa.String(length=128), nullable=True),
            sa.Column("reason", sa.String(length=512), nullable=True),
            sa.Column("metadata_json", sa.Text(), nullable=True),
            sa.Column("client_ip", sa.String(length=64), nullable=True),
            sa.ForeignKeyConstraint(["actor_user_id"], ["users.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["firm_id"], ["firms.id"], ondelete="SET NULL"),
        )


def downgrade() -> None:
    for table in ("audit_events", "tasks", "client_assignments", "firm_users", "users", "clients", "firms"):
        op.drop_table(table)
