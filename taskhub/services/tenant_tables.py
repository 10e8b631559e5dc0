"""
Tenant-owned table registry.

The single source of truth for which tables carry tenant data.  Detection,
remediation and constraint migration only ever touch tables listed here;
adding a tenant-owned model means adding a descriptor (the registry
coverage test fails otherwise).

``TENANT_OWNED_TABLES`` is ordered parents before children so that a
relationship backfill pass can fix a parent and then its children in one
run.  ``RELATIONS`` declares, per child table, the ordered parent links
used to infer a missing tenant: the first parent with a tenant wins.
"""

from collections.abc import Callable
from dataclasses import dataclass

from sqlalchemy import and_

from taskhub.models.auth import User, UserRole
from taskhub.models.work import (
    Client,
    Project,
    Task,
    TaskAssignee,
    TaskComment,
    Team,
    TimeEntry,
    Workspace,
)


@dataclass(frozen=True)
class TableDescriptor:
    name: str
    model: type
    display_attr: str
    # Extra condition narrowing which null-tenant rows count as orphans
    orphan_filter: Callable | None = None
    # False when orphans need a human decision and must never be bulk-assigned
    auto_fix: bool = True

    @property
    def table(self):
        return self.model.__table__

    @property
    def id_column(self):
        return self.table.c.id

    @property
    def tenant_column(self):
        return self.table.c.tenant_id

    @property
    def display_column(self):
        return self.table.c[self.display_attr]

    def orphan_condition(self):
        condition = self.tenant_column.is_(None)
        if self.orphan_filter is not None:
            condition = and_(condition, self.orphan_filter(self.table))
        return condition


@dataclass(frozen=True)
class ParentLink:
    parent: str
    join_key: str


def _not_super_user(table):
    return table.c.role != UserRole.SUPER_USER


TENANT_OWNED_TABLES: tuple[TableDescriptor, ...] = (
    TableDescriptor("users", User, "email", orphan_filter=_not_super_user, auto_fix=False),
    TableDescriptor("workspaces", Workspace, "name"),
    TableDescriptor("teams", Team, "name"),
    TableDescriptor("clients", Client, "company_name"),
    TableDescriptor("projects", Project, "name"),
    TableDescriptor("tasks", Task, "title"),
    TableDescriptor("task_assignees", TaskAssignee, "task_id"),
    TableDescriptor("time_entries", TimeEntry, "description"),
    TableDescriptor("task_comments", TaskComment, "body"),
)

TABLES_BY_NAME: dict[str, TableDescriptor] = {d.name: d for d in TENANT_OWNED_TABLES}

RELATIONS: dict[str, tuple[ParentLink, ...]] = {
    "workspaces": (ParentLink("users", "created_by"),),
    "teams": (ParentLink("workspaces", "workspace_id"),),
    "clients": (ParentLink("workspaces", "workspace_id"),),
    "projects": (
        ParentLink("clients", "client_id"),
        ParentLink("workspaces", "workspace_id"),
    ),
    "tasks": (
        ParentLink("projects", "project_id"),
        ParentLink("users", "created_by"),
    ),
    "task_assignees": (
        ParentLink("tasks", "task_id"),
        ParentLink("users", "user_id"),
    ),
    "time_entries": (
        ParentLink("tasks", "task_id"),
        ParentLink("projects", "project_id"),
        ParentLink("users", "user_id"),
    ),
    "task_comments": (
        ParentLink("tasks", "task_id"),
        ParentLink("users", "user_id"),
    ),
}

# Tables whose tenant_id may be promoted to NOT NULL.  users stays nullable
# because super users have no tenant.
CONSTRAINT_ALLOWLIST: tuple[str, ...] = tuple(
    d.name for d in TENANT_OWNED_TABLES if d.name != "users"
)


def get_descriptor(name: str) -> TableDescriptor:
    return TABLES_BY_NAME[name]
