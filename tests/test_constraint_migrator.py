"""
Constraint migration tests — NOT NULL tenant_id promotion.

Test blocks:
  1. Allowlist — users and unknown tables rejected
  2. Readiness — clean, dirty, already constrained, missing table
  3. Apply — blocked tables, success, all-or-nothing rollback
"""

import pytest
from sqlalchemy import inspect as sa_inspect

from taskhub.core.exceptions import (
    ConstraintMigrationError,
    RemediationBlockedError,
    ValidationError,
)
from taskhub.models import db as _db
from taskhub.models.work import Project, Task
from taskhub.services.constraint_migrator import ConstraintMigrator


@pytest.fixture()
def migrator():
    return ConstraintMigrator()


def _tenant_id_nullable(table):
    columns = sa_inspect(_db.session.connection()).get_columns(table)
    return next(c for c in columns if c["name"] == "tenant_id")["nullable"]


def _readiness(migrator, table):
    return migrator.check_readiness([table])[0]


# ═════════════════════════════════════════════════════════════════════════
# 1. Allowlist
# ═════════════════════════════════════════════════════════════════════════

class TestAllowlist:
    def test_users_rejected(self, migrator):
        with pytest.raises(ValidationError) as exc_info:
            migrator.apply(["users"], dry_run=False)
        assert exc_info.value.details["invalid_tables"] == ["users"]
        assert "tasks" in exc_info.value.details["allowed_tables"]

    def test_unknown_table_rejected(self, migrator):
        with pytest.raises(ValidationError):
            migrator.check_readiness(["tasks", "sqlite_master"])

    def test_default_is_whole_allowlist(self, migrator):
        names = [r.table for r in migrator.check_readiness()]
        assert names == list(migrator.allowlist)
        assert "users" not in names

    def test_duplicates_collapsed(self, migrator):
        assert migrator.resolve_tables(["tasks", "tasks"]) == ["tasks"]


# ═════════════════════════════════════════════════════════════════════════
# 2. Readiness
# ═════════════════════════════════════════════════════════════════════════

class TestReadiness:
    def test_clean_table_can_migrate(self, migrator):
        r = _readiness(migrator, "tasks")
        assert (r.has_not_null, r.null_count, r.can_migrate) == (False, 0, True)

    def test_dirty_table_cannot_migrate(self, migrator):
        _db.session.add(Task(title="Legacy"))
        _db.session.flush()
        r = _readiness(migrator, "tasks")
        assert (r.has_not_null, r.null_count, r.can_migrate) == (False, 1, False)

    def test_missing_table(self, migrator):
        _db.session.execute(_db.text("DROP TABLE task_comments"))
        r = _readiness(migrator, "task_comments")
        assert r.null_count == -1
        assert r.can_migrate is False
        assert "error" in r.to_dict()

    def test_already_constrained(self, migrator):
        migrator.apply(["teams"], dry_run=False)
        r = _readiness(migrator, "teams")
        assert (r.has_not_null, r.null_count, r.can_migrate) == (True, 0, False)


# ═════════════════════════════════════════════════════════════════════════
# 3. Apply
# ═════════════════════════════════════════════════════════════════════════

class TestApply:
    def test_blocked_table_stops_everything(self, migrator, make_tenant):
        tenant = make_tenant("acme")
        _db.session.add_all([Task(title="Legacy"), Project(name="Clean", tenant_id=tenant.id)])
        _db.session.flush()

        with pytest.raises(RemediationBlockedError) as exc_info:
            migrator.apply(["projects", "tasks"], dry_run=False)

        assert exc_info.value.blocked == [{"table": "tasks", "null_count": 1}]
        assert _tenant_id_nullable("projects") is True
        assert _tenant_id_nullable("tasks") is True

    def test_dry_run_reports_blocked_without_raising(self, migrator):
        _db.session.add(Task(title="Legacy"))
        _db.session.flush()

        result = migrator.apply(["tasks"], dry_run=True)

        assert result["blocked"] == [{"table": "tasks", "null_count": 1}]
        assert result["applied_count"] == 0

    def test_apply_sets_not_null(self, migrator, make_tenant):
        tenant = make_tenant("acme")
        _db.session.add(Project(name="Clean", tenant_id=tenant.id))
        _db.session.flush()

        result = migrator.apply(["projects", "tasks"], dry_run=False)

        assert result["applied"] == ["projects", "tasks"]
        assert result["applied_count"] == 2
        assert _tenant_id_nullable("projects") is False
        assert _tenant_id_nullable("tasks") is False
        assert _db.session.query(Project).count() == 1

    def test_already_not_null_is_skipped(self, migrator):
        migrator.apply(["teams"], dry_run=False)
        result = migrator.apply(["teams"], dry_run=False)
        assert result["already_not_null"] == ["teams"]
        assert result["applied_count"] == 0

    def test_failure_rolls_back_every_table(self, migrator, monkeypatch):
        calls = []
        original = ConstraintMigrator._tighten_column

        def flaky(ops, table):
            calls.append(table)
            if len(calls) == 2:
                raise RuntimeError("disk on fire")
            original(migrator, ops, table)

        monkeypatch.setattr(migrator, "_tighten_column", flaky)

        with pytest.raises(ConstraintMigrationError) as exc_info:
            migrator.apply(["projects", "tasks"], dry_run=False)

        assert exc_info.value.table == "tasks"
        assert "disk on fire" in exc_info.value.db_message
        assert _tenant_id_nullable("projects") is True
        assert _tenant_id_nullable("tasks") is True

    def test_dry_run_shape_matches_apply(self, migrator):
        preview = migrator.apply(["teams"], dry_run=True)
        applied = migrator.apply(["teams"], dry_run=False)
        assert set(preview) == set(applied)
        assert preview["dry_run"] is True
        assert preview["to_apply"] == applied["applied"] == ["teams"]
        assert preview["applied_count"] == 0
