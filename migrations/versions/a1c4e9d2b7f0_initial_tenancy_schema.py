"""initial_tenancy_schema

Tenants, users, work tables with nullable tenant_id, tenancy warnings and
the tenant audit trail.  tenant_id starts nullable on every tenant-owned
table; the constraint migrator tightens it once a table is clean.

Revision ID: a1c4e9d2b7f0
Revises:
Create Date: 2026-10-17 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "a1c4e9d2b7f0"
down_revision = None
branch_labels = None
depends_on = None


def _id():
    return sa.Column("id", sa.String(length=36), nullable=False)


def _tenant_id():
    return sa.Column("tenant_id", sa.String(length=36), nullable=True)


def _created_at():
    return sa.Column("created_at", sa.DateTime(), nullable=True)


def _owned(name, *columns, fks=()):
    op.create_table(
        name,
        _id(),
        _tenant_id(),
        _created_at(),
        *columns,
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
        *fks,
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(f"ix_{name}_tenant_id", name, ["tenant_id"])


def upgrade():
    bind = op.get_bind()
    existing_tables = set(sa_inspect(bind).get_table_names())
    if "tenants" in existing_tables:
        return

    op.create_table(
        "tenants",
        _id(),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("slug", sa.String(length=100), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="active"),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("slug"),
    )

    op.create_table(
        "users",
        _id(),
        _tenant_id(),
        sa.Column("email", sa.String(length=200), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=True),
        sa.Column("role", sa.String(length=20), nullable=False, server_default="employee"),
        sa.Column("is_active", sa.Boolean(), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )
    op.create_index("ix_users_tenant_id", "users", ["tenant_id"])

    _owned(
        "workspaces",
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("created_by", sa.String(length=36), nullable=True),
        fks=(sa.ForeignKeyConstraint(["created_by"], ["users.id"], ondelete="SET NULL"),),
    )
    _owned(
        "teams",
        sa.Column("workspace_id", sa.String(length=36), nullable=True),
        sa.Column("name", sa.String(length=200), nullable=False),
        fks=(sa.ForeignKeyConstraint(["workspace_id"], ["workspaces.id"], ondelete="CASCADE"),),
    )
    _owned(
        "clients",
        sa.Column("workspace_id", sa.String(length=36), nullable=True),
        sa.Column("company_name", sa.String(length=200), nullable=False),
        fks=(sa.ForeignKeyConstraint(["workspace_id"], ["workspaces.id"], ondelete="CASCADE"),),
    )
    _owned(
        "projects",
        sa.Column("workspace_id", sa.String(length=36), nullable=True),
        sa.Column("client_id", sa.String(length=36), nullable=True),
        sa.Column("name", sa.String(length=200), nullable=False),
        fks=(
            sa.ForeignKeyConstraint(["workspace_id"], ["workspaces.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["client_id"], ["clients.id"], ondelete="SET NULL"),
        ),
    )
    _owned(
        "tasks",
        sa.Column("project_id", sa.String(length=36), nullable=True),
        sa.Column("created_by", sa.String(length=36), nullable=True),
        sa.Column("title", sa.String(length=300), nullable=False),
        fks=(
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["created_by"], ["users.id"], ondelete="SET NULL"),
        ),
    )
    _owned(
        "task_assignees",
        sa.Column("task_id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        fks=(
            sa.ForeignKeyConstraint(["task_id"], ["tasks.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        ),
    )
    _owned(
        "time_entries",
        sa.Column("task_id", sa.String(length=36), nullable=True),
        sa.Column("project_id", sa.String(length=36), nullable=True),
        sa.Column("user_id", sa.String(length=36), nullable=True),
        sa.Column("description", sa.String(length=500), nullable=True),
        sa.Column("duration_seconds", sa.Integer(), nullable=True),
        fks=(
            sa.ForeignKeyConstraint(["task_id"], ["tasks.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        ),
    )
    _owned(
        "task_comments",
        sa.Column("task_id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=True),
        sa.Column("body", sa.Text(), nullable=False),
        fks=(
            sa.ForeignKeyConstraint(["task_id"], ["tasks.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="SET NULL"),
        ),
    )

    op.create_table(
        "tenancy_warnings",
        _id(),
        sa.Column("occurred_at", sa.DateTime(), nullable=False),
        sa.Column("route", sa.String(length=300), nullable=False),
        sa.Column("method", sa.String(length=10), nullable=False),
        sa.Column("warn_type", sa.String(length=40), nullable=False),
        sa.Column("actor_user_id", sa.String(length=36), nullable=True),
        sa.Column("tenant_id", sa.String(length=36), nullable=True),
        sa.Column("resource_id", sa.String(length=36), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_tenancy_warnings_occurred_at", "tenancy_warnings", ["occurred_at"])
    op.create_index("idx_tenancy_warnings_route", "tenancy_warnings", ["route", "method"])
    op.create_index("idx_tenancy_warnings_tenant", "tenancy_warnings", ["tenant_id"])

    op.create_table(
        "tenant_audit_events",
        _id(),
        sa.Column("tenant_id", sa.String(length=36), nullable=False),
        sa.Column("actor_user_id", sa.String(length=36), nullable=True),
        sa.Column("event_type", sa.String(length=60), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["actor_user_id"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_tenant_audit_tenant", "tenant_audit_events", ["tenant_id"])
    op.create_index("idx_tenant_audit_type", "tenant_audit_events", ["event_type"])
    op.create_index("idx_tenant_audit_created", "tenant_audit_events", ["created_at"])


def downgrade():
    for table in (
        "tenant_audit_events",
        "tenancy_warnings",
        "task_comments",
        "time_entries",
        "task_assignees",
        "tasks",
        "projects",
        "clients",
        "teams",
        "workspaces",
        "users",
        "tenants",
    ):
        op.drop_table(table)
