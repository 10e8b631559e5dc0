"""
Tenancy API tests — super-user operations and the tenant-admin view.

Test blocks:
  1. Access control — anonymous 401, non-super 403
  2. GET  /super/tenancy/health and /health/orphans
  3. GET  /super/tenancy/warnings (persistence disabled → 501)
  4. Confirmation tokens for every mutating endpoint
  5. Constraints — readiness, allowlist, blocked, apply
  6. GET  /tenant/tenancy/health
  7. Liveness / readiness probes
"""

import pytest

from taskhub.models import db as _db
from taskhub.models.auth import UserRole
from taskhub.models.work import Project, Task

SUPER = "/api/v1/super/tenancy"
TENANT = "/api/v1/tenant/tenancy"


@pytest.fixture()
def su_headers(super_user, auth_headers):
    return auth_headers(super_user)


@pytest.fixture()
def legacy_project():
    project = Project(name="Legacy")
    _db.session.add(project)
    _db.session.flush()
    return project


# ═════════════════════════════════════════════════════════════════════════
# 1. Access control
# ═════════════════════════════════════════════════════════════════════════

class TestAccessControl:
    @pytest.mark.parametrize("method,path", [
        ("get", "/health"),
        ("get", "/health/orphans"),
        ("post", "/health/orphans/fix"),
        ("post", "/remediate"),
        ("get", "/constraints"),
        ("post", "/constraints/apply"),
    ])
    def test_anonymous_rejected(self, client, method, path):
        res = getattr(client, method)(SUPER + path)
        assert res.status_code == 401
        assert res.get_json()["code"] == "ERR_UNAUTHORIZED"

    def test_tenant_admin_cannot_use_super_endpoints(self, client, make_tenant, make_user, auth_headers):
        admin = make_user("admin@acme.test", role=UserRole.ADMIN, tenant=make_tenant("acme"))
        res = client.get(f"{SUPER}/health", headers=auth_headers(admin))
        assert res.status_code == 403
        assert res.get_json()["code"] == "ERR_FORBIDDEN"

    def test_invalid_token_is_anonymous(self, client):
        res = client.get(f"{SUPER}/health", headers={"Authorization": "Bearer not-a-jwt"})
        assert res.status_code == 401


# ═════════════════════════════════════════════════════════════════════════
# 2. Health
# ═════════════════════════════════════════════════════════════════════════

class TestSuperHealth:
    def test_shape(self, client, su_headers, make_tenant, legacy_project):
        make_tenant("acme")

        res = client.get(f"{SUPER}/health", headers=su_headers)

        assert res.status_code == 200
        data = res.get_json()
        assert data["current_mode"] == "warn"
        assert data["total_missing"] == 1
        missing = {r["table"]: r["missing_count"] for r in data["missing_tenant_ids"]}
        assert missing["projects"] == 1
        assert data["readiness_check"] == {
            "can_enable_strict": False,
            "blockers": ["projects has 1 rows without tenant_id"],
        }
        assert data["active_tenant_count"] == 1
        assert data["persistence_enabled"] is False
        assert data["quarantine"] == {"exists": False, "id": None, "name": None}
        assert set(data["warning_stats"]) == {"last_24_hours", "last_7_days", "total", "top_routes"}

    def test_clean_database_is_ready(self, client, su_headers):
        data = client.get(f"{SUPER}/health", headers=su_headers).get_json()
        assert data["readiness_check"] == {"can_enable_strict": True, "blockers": []}

    def test_quarantine_counts_reported(self, client, su_headers, legacy_project):
        client.post(f"{SUPER}/health/orphans/fix", headers=su_headers,
                    json={"dryRun": False, "confirmText": "FIX_ORPHANS"})

        data = client.get(f"{SUPER}/health", headers=su_headers).get_json()

        assert data["quarantine"]["exists"] is True
        assert data["quarantine"]["rows_by_table"]["projects"] == 1
        assert data["active_tenant_count"] == 0

    def test_orphans_endpoint(self, client, su_headers, legacy_project):
        res = client.get(f"{SUPER}/health/orphans", headers=su_headers)

        assert res.status_code == 200
        data = res.get_json()
        assert data["has_orphans"] is True
        projects = next(t for t in data["tables"] if t["table"] == "projects")
        assert projects["sample_rows"] == [{"id": legacy_project.id, "display": "Legacy"}]
        assert data["users"]["super_users_with_null_tenant_id"] == 1


# ═════════════════════════════════════════════════════════════════════════
# 3. Warnings
# ═════════════════════════════════════════════════════════════════════════

class TestWarnings:
    def test_not_implemented_without_persistence(self, client, su_headers):
        res = client.get(f"{SUPER}/warnings", headers=su_headers)
        assert res.status_code == 501
        assert res.get_json()["code"] == "ERR_NOT_IMPLEMENTED"


# ═════════════════════════════════════════════════════════════════════════
# 4. Confirmation tokens
# ═════════════════════════════════════════════════════════════════════════

class TestConfirmation:
    def test_backfill_apply_needs_header(self, client, su_headers, make_tenant):
        make_tenant("default")
        res = client.post(f"{SUPER}/backfill", headers=su_headers, json={"dryRun": False})
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_CONFIRMATION_REQUIRED"

    def test_backfill_apply_with_header(self, client, su_headers, make_tenant, legacy_project):
        default = make_tenant("default")
        headers = {**su_headers, "X-Confirm-Backfill": "YES"}

        res = client.post(f"{SUPER}/backfill", headers=headers, json={"dryRun": False})

        assert res.status_code == 200
        data = res.get_json()
        assert data["default_tenant_id"] == default.id
        assert data["dry_run"] is False

    def test_backfill_without_default_tenant(self, client, su_headers):
        res = client.post(f"{SUPER}/backfill", headers=su_headers, json={})
        assert res.status_code == 404

    def test_non_boolean_dry_run(self, client, su_headers):
        res = client.post(f"{SUPER}/backfill", headers=su_headers, json={"dryRun": "no"})
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_INVALID"

    def test_fix_defaults_to_dry_run(self, client, su_headers, legacy_project):
        res = client.post(f"{SUPER}/health/orphans/fix", headers=su_headers, json={})
        assert res.status_code == 200
        assert res.get_json()["dry_run"] is True
        assert _db.session.get(Project, legacy_project.id).tenant_id is None

    def test_fix_apply_needs_confirm_text(self, client, su_headers, legacy_project):
        res = client.post(f"{SUPER}/health/orphans/fix", headers=su_headers,
                          json={"dryRun": False, "confirmText": "yes"})
        assert res.status_code == 400
        body = res.get_json()
        assert body["code"] == "ERR_CONFIRMATION_REQUIRED"
        assert "FIX_ORPHANS" in body["details"]["hint"]

    def test_fix_apply_relationship(self, client, su_headers, make_tenant):
        tenant = make_tenant("acme")
        project = Project(name="P", tenant_id=tenant.id)
        _db.session.add(project)
        _db.session.flush()
        _db.session.add(Task(title="T", project_id=project.id))
        _db.session.flush()

        res = client.post(f"{SUPER}/health/orphans/fix", headers=su_headers, json={
            "dryRun": False, "confirmText": "FIX_ORPHANS", "strategy": "relationship",
        })

        assert res.status_code == 200
        tasks = next(t for t in res.get_json()["tables"] if t["table"] == "tasks")
        assert tasks["updated_count"] == 1

    def test_fix_unknown_strategy(self, client, su_headers):
        res = client.post(f"{SUPER}/health/orphans/fix", headers=su_headers,
                          json={"strategy": "delete"})
        assert res.status_code == 400

    def test_remediate_invalid_mode(self, client, su_headers):
        res = client.post(f"{SUPER}/remediate?mode=maybe", headers=su_headers)
        assert res.status_code == 400

    def test_remediate_apply_needs_header(self, client, su_headers):
        res = client.post(f"{SUPER}/remediate?mode=apply", headers=su_headers)
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_CONFIRMATION_REQUIRED"

    def test_remediate_dry_run_and_apply(self, client, su_headers):
        dry = client.post(f"{SUPER}/remediate", headers=su_headers)
        assert dry.status_code == 200
        assert dry.get_json()["mode"] == "dry-run"

        headers = {**su_headers, "X-Confirm-Remediate": "YES"}
        applied = client.post(f"{SUPER}/remediate?mode=apply", headers=headers)
        assert applied.status_code == 200
        assert applied.get_json()["mode"] == "apply"
        assert applied.get_json()["quarantine_created"] is True


# ═════════════════════════════════════════════════════════════════════════
# 5. Constraints
# ═════════════════════════════════════════════════════════════════════════

class TestConstraints:
    def test_readiness(self, client, su_headers, legacy_project):
        res = client.get(f"{SUPER}/constraints?tables=projects,tasks", headers=su_headers)

        assert res.status_code == 200
        data = res.get_json()
        by_table = {t["table"]: t for t in data["tables"]}
        assert by_table["projects"]["can_migrate"] is False
        assert by_table["projects"]["null_count"] == 1
        assert by_table["tasks"]["can_migrate"] is True
        assert data["ready_count"] == 1

    def test_users_not_allowed(self, client, su_headers):
        res = client.get(f"{SUPER}/constraints?tables=users", headers=su_headers)
        assert res.status_code == 400
        assert res.get_json()["details"]["invalid_tables"] == ["users"]

    def test_apply_needs_header(self, client, su_headers):
        res = client.post(f"{SUPER}/constraints/apply", headers=su_headers,
                          json={"dryRun": False, "tables": ["tasks"]})
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_CONFIRMATION_REQUIRED"

    def test_apply_blocked(self, client, su_headers, legacy_project):
        headers = {**su_headers, "X-Confirm-Constraints": "YES"}
        res = client.post(f"{SUPER}/constraints/apply", headers=headers,
                          json={"dryRun": False, "tables": ["projects"]})
        assert res.status_code == 409
        body = res.get_json()
        assert body["code"] == "ERR_REMEDIATION_BLOCKED"
        assert body["details"]["blocked"] == [{"table": "projects", "null_count": 1}]

    def test_apply(self, client, su_headers):
        headers = {**su_headers, "X-Confirm-Constraints": "YES"}
        res = client.post(f"{SUPER}/constraints/apply", headers=headers,
                          json={"dryRun": False, "tables": ["tasks"]})
        assert res.status_code == 200
        assert res.get_json()["applied"] == ["tasks"]

    def test_tables_must_be_list(self, client, su_headers):
        res = client.post(f"{SUPER}/constraints/apply", headers=su_headers,
                          json={"tables": "tasks"})
        assert res.status_code == 400


# ═════════════════════════════════════════════════════════════════════════
# 6. Tenant-admin view
# ═════════════════════════════════════════════════════════════════════════

class TestTenantHealth:
    def test_admin_sees_own_tenant(self, client, make_tenant, make_user, auth_headers):
        tenant = make_tenant("acme")
        admin = make_user("admin@acme.test", role=UserRole.ADMIN, tenant=tenant)

        res = client.get(f"{TENANT}/health", headers=auth_headers(admin))

        assert res.status_code == 200
        data = res.get_json()
        assert data["tenant_id"] == tenant.id
        assert data["enforcement_mode"] == "warn"
        assert data["warnings_last_24h"]["total"] == 0

    def test_employee_forbidden(self, client, make_tenant, make_user, auth_headers):
        employee = make_user("e@acme.test", tenant=make_tenant("acme"))
        res = client.get(f"{TENANT}/health", headers=auth_headers(employee))
        assert res.status_code == 403

    def test_admin_without_tenant(self, client, make_user, auth_headers):
        admin = make_user("orphan-admin@x.test", role=UserRole.ADMIN)
        res = client.get(f"{TENANT}/health", headers=auth_headers(admin))
        assert res.status_code == 500
        assert res.get_json()["code"] == "TENANT_CONTEXT_MISSING"

    def test_super_user_must_select_tenant(self, client, su_headers):
        res = client.get(f"{TENANT}/health", headers=su_headers)
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_REQUIRED"

    def test_super_user_with_header(self, client, super_user, auth_headers, make_tenant):
        tenant = make_tenant("acme")
        res = client.get(f"{TENANT}/health",
                         headers=auth_headers(super_user, **{"X-Tenant-Id": tenant.id}))
        assert res.status_code == 200
        assert res.get_json()["tenant_id"] == tenant.id


# ═════════════════════════════════════════════════════════════════════════
# 7. Probes
# ═════════════════════════════════════════════════════════════════════════

class TestProbes:
    def test_live(self, client):
        assert client.get("/api/v1/health/live").get_json() == {"status": "ok"}

    def test_ready(self, client):
        res = client.get("/api/v1/health/ready")
        assert res.status_code == 200
        data = res.get_json()
        assert data["database"]["status"] == "ok"
        assert data["tenancy_enforcement"] == "warn"
