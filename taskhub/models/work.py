"""
Work domain tables — workspaces, teams, clients, projects, tasks and the
rows hanging off tasks.

Only the columns the tenancy engine joins on are modelled here; the CRUD
surface for these entities lives elsewhere.

Ownership chain (used for tenant inference):
    workspace ─┬─ team
               ├─ client ── project ── task ─┬─ task_assignee
               └────────────┘                ├─ time_entry
                                             └─ task_comment
"""

from taskhub.models import db
from taskhub.models.base import TenantOwnedModel


class Workspace(TenantOwnedModel):
    __tablename__ = "workspaces"

    name = db.Column(db.String(200), nullable=False)
    created_by = db.Column(db.String(36), db.ForeignKey("users.id", ondelete="SET NULL"))


class Team(TenantOwnedModel):
    __tablename__ = "teams"

    workspace_id = db.Column(db.String(36), db.ForeignKey("workspaces.id", ondelete="CASCADE"))
    name = db.Column(db.String(200), nullable=False)


class Client(TenantOwnedModel):
    __tablename__ = "clients"

    workspace_id = db.Column(db.String(36), db.ForeignKey("workspaces.id", ondelete="CASCADE"))
    company_name = db.Column(db.String(200), nullable=False)


class Project(TenantOwnedModel):
    __tablename__ = "projects"

    workspace_id = db.Column(db.String(36), db.ForeignKey("workspaces.id", ondelete="CASCADE"))
    client_id = db.Column(db.String(36), db.ForeignKey("clients.id", ondelete="SET NULL"))
    name = db.Column(db.String(200), nullable=False)


class Task(TenantOwnedModel):
    __tablename__ = "tasks"

    project_id = db.Column(db.String(36), db.ForeignKey("projects.id", ondelete="CASCADE"))
    created_by = db.Column(db.String(36), db.ForeignKey("users.id", ondelete="SET NULL"))
    title = db.Column(db.String(300), nullable=False)


class TaskAssignee(TenantOwnedModel):
    __tablename__ = "task_assignees"

    task_id = db.Column(db.String(36), db.ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False)
    user_id = db.Column(db.String(36), db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)


class TimeEntry(TenantOwnedModel):
    __tablename__ = "time_entries"

    task_id = db.Column(db.String(36), db.ForeignKey("tasks.id", ondelete="SET NULL"))
    project_id = db.Column(db.String(36), db.ForeignKey("projects.id", ondelete="SET NULL"))
    user_id = db.Column(db.String(36), db.ForeignKey("users.id", ondelete="CASCADE"))
    description = db.Column(db.String(500))
    duration_seconds = db.Column(db.Integer, default=0)


class TaskComment(TenantOwnedModel):
    __tablename__ = "task_comments"

    task_id = db.Column(db.String(36), db.ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False)
    user_id = db.Column(db.String(36), db.ForeignKey("users.id", ondelete="SET NULL"))
    body = db.Column(db.Text, nullable=False)
