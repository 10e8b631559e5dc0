"""
Enforcement guard tests.

Test blocks:
  1. Mode parsing (off / warn / strict, "soft" alias)
  2. require_read_context — privileged pass, ordinary without tenant → 500-class error
  3. require_write_context — returns tenant, raises TENANT_CONTEXT_REQUIRED, records warning
  4. check_ownership — warn permits with warning, strict rejects, off ignores
"""

import logging
from types import SimpleNamespace

import pytest
from flask import g

from taskhub.core.exceptions import TenantContextError, TenantContextMissingError
from taskhub.models.auth import UserRole
from taskhub.models.tenancy import WarnType
from taskhub.services.enforcement import (
    EnforcementMode,
    EnforcementModeController,
    get_enforcement,
    parse_mode,
)
from taskhub.services.health_tracker import HealthTracker, InMemoryWarningStore
from taskhub.services.tenant_context import TenantContext


def _controller(mode="warn"):
    return EnforcementModeController(mode, HealthTracker(InMemoryWarningStore()))


def _user(role=UserRole.EMPLOYEE, tenant_id="t-1"):
    return SimpleNamespace(id="u-1", role=role, tenant_id=tenant_id)


SUPER = _user(UserRole.SUPER_USER, None)
NO_CONTEXT = TenantContext(None, None, False)
SUPER_NO_CONTEXT = TenantContext(None, None, True)


class TestModeParsing:
    @pytest.mark.parametrize("raw,expected", [
        ("off", EnforcementMode.OFF),
        ("warn", EnforcementMode.WARN),
        ("soft", EnforcementMode.WARN),
        ("STRICT", EnforcementMode.STRICT),
        (" strict ", EnforcementMode.STRICT),
        (None, EnforcementMode.WARN),
        ("bogus", EnforcementMode.WARN),
    ])
    def test_parse_mode(self, raw, expected):
        assert parse_mode(raw) == expected


class TestReadContext:
    def test_super_user_passes_without_tenant(self):
        _controller().require_read_context(SUPER_NO_CONTEXT, SUPER)

    def test_ordinary_user_with_tenant_passes(self):
        _controller().require_read_context(TenantContext("t-1", "t-1", False), _user())

    def test_ordinary_user_without_tenant_is_server_error(self, caplog):
        with caplog.at_level(logging.ERROR, logger="taskhub.services.enforcement"):
            with pytest.raises(TenantContextMissingError):
                _controller().require_read_context(NO_CONTEXT, _user(tenant_id=None))
        assert any(r.levelno == logging.ERROR for r in caplog.records)


class TestWriteContext:
    def test_returns_effective_tenant(self):
        ctx = TenantContext(None, "t-9", True)
        assert _controller().require_write_context(ctx, SUPER, "project") == "t-9"

    def test_super_user_message_mentions_header(self, app):
        with app.test_request_context("/api/v1/projects", method="POST"):
            with pytest.raises(TenantContextError) as exc:
                _controller().require_write_context(SUPER_NO_CONTEXT, SUPER, "project")
        assert exc.value.code == "TENANT_CONTEXT_REQUIRED"
        assert "X-Tenant-Id" in str(exc.value)
        assert "Cannot create project" in str(exc.value)

    def test_ordinary_user_message_mentions_misconfiguration(self, app):
        with app.test_request_context("/api/v1/tasks", method="POST"):
            with pytest.raises(TenantContextError) as exc:
                _controller().require_write_context(NO_CONTEXT, _user(tenant_id=None), "task")
        assert str(exc.value) == "User u-1 has no tenant configured. Cannot create task."

    def test_diagnostic_logged_and_warning_recorded(self, app, caplog):
        controller = _controller()
        with app.test_request_context("/api/v1/tasks", method="POST",
                                      headers={"X-Tenant-Id": "ignored"}):
            with caplog.at_level(logging.ERROR, logger="taskhub.services.enforcement"):
                with pytest.raises(TenantContextError):
                    controller.require_write_context(NO_CONTEXT, _user(tenant_id=None), "task")

        record = next(r for r in caplog.records if r.name == "taskhub.services.enforcement")
        assert record.user_id == "u-1"
        assert record.user_role == UserRole.EMPLOYEE
        assert record.path == "/api/v1/tasks"
        assert record.method == "POST"
        assert record.timestamp
        # Header value is only captured for super users
        assert not hasattr(record, "header_tenant_id")

        stats = controller.health.stats_since(None)
        assert stats.by_type == {WarnType.MISSING_TENANT_WRITE: 1}

    def test_super_user_diagnostic_includes_header(self, app, caplog):
        with app.test_request_context("/api/v1/tasks", method="POST",
                                      headers={"X-Tenant-Id": "t-typo"}):
            with caplog.at_level(logging.ERROR, logger="taskhub.services.enforcement"):
                with pytest.raises(TenantContextError):
                    _controller().require_write_context(SUPER_NO_CONTEXT, SUPER, "task")
        record = next(r for r in caplog.records if r.name == "taskhub.services.enforcement")
        assert record.header_tenant_id == "t-typo"

    def test_write_guard_raises_even_when_off(self):
        controller = _controller("off")
        with pytest.raises(TenantContextError):
            controller.require_write_context(NO_CONTEXT, _user(tenant_id=None), "task")
        assert controller.health.stats_since(None).total == 0


class TestOwnership:
    CTX = TenantContext("t-1", "t-1", False)

    def test_matching_tenant_is_valid(self):
        assert _controller("strict").check_ownership("t-1", self.CTX, "task", "x").valid

    def test_mismatch_is_invalid_in_warn_mode(self):
        result = _controller("warn").check_ownership("t-2", self.CTX, "task", "x")
        assert result.valid is False
        assert "another tenant" in result.warning

    def test_legacy_null_permitted_in_warn_mode(self, app):
        controller = _controller("warn")
        with app.test_request_context("/api/v1/tasks/x"):
            result = controller.check_ownership(None, self.CTX, "task", "x")
            assert g.tenancy_warnings == [result.warning]
        assert result.valid is True
        assert controller.health.stats_since(None).by_type == {WarnType.LEGACY_NULL_TENANT: 1}

    def test_legacy_null_rejected_in_strict_mode(self):
        result = _controller("strict").check_ownership(None, self.CTX, "task", "x")
        assert result.valid is False

    def test_off_mode_ignores_everything(self):
        controller = _controller("off")
        assert controller.check_ownership("t-2", self.CTX, "task", "x").valid
        assert controller.health.stats_since(None).total == 0

    def test_super_user_without_tenant_is_platform_wide(self):
        assert _controller("strict").check_ownership("t-2", SUPER_NO_CONTEXT, "task").valid


class TestWarnHeader:
    CTX = TenantContext("t-1", "t-1", False)

    def _run(self, app, record_warning):
        with app.test_request_context("/api/v1/tasks/x"):
            app.preprocess_request()
            if record_warning:
                get_enforcement().check_ownership(None, self.CTX, "task", "x")
            return app.process_response(app.response_class())

    def test_header_lists_warnings(self, app):
        response = self._run(app, record_warning=True)
        assert response.headers["X-Tenancy-Warn"] == "Legacy task x has no tenant_id"

    def test_no_header_without_warnings(self, app):
        response = self._run(app, record_warning=False)
        assert "X-Tenancy-Warn" not in response.headers
