"""
Tenancy enforcement — the guards handlers call before touching
tenant-owned data.

Modes (TENANCY_ENFORCEMENT):
    off     no checks, no warnings
    warn    violations are logged, recorded and surfaced in the
            X-Tenancy-Warn response header, but permitted
    strict  violations are rejected

``require_write_context`` is mode-independent: a write without an effective
tenant always fails, because letting it through would mint a new orphan.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from flask import Flask, current_app, g, has_request_context, request

from taskhub.core.exceptions import TenantContextError, TenantContextMissingError
from taskhub.models.tenancy import WarnType
from taskhub.services.health_tracker import HealthTracker
from taskhub.services.tenant_context import TenantContext, is_privileged

logger = logging.getLogger(__name__)

WARN_HEADER = "X-Tenancy-Warn"


class EnforcementMode:
    OFF = "off"
    WARN = "warn"
    STRICT = "strict"

    ALL = (OFF, WARN, STRICT)


_MODE_ALIASES = {"soft": EnforcementMode.WARN}


def parse_mode(raw: str | None) -> str:
    """Normalise a configured mode; unknown values fall back to warn."""
    value = (raw or "").strip().lower()
    value = _MODE_ALIASES.get(value, value)
    if value in EnforcementMode.ALL:
        return value
    if raw:
        logger.warning("Unknown TENANCY_ENFORCEMENT value %r, using 'warn'", raw)
    return EnforcementMode.WARN


@dataclass(frozen=True)
class OwnershipCheck:
    valid: bool
    warning: str | None = None


def _request_route() -> tuple[str, str]:
    if has_request_context():
        return request.path, request.method
    return "<no-request>", "-"


class EnforcementModeController:
    """Mode holder plus the read/write/ownership guards."""

    def __init__(self, mode: str, health: HealthTracker):
        self.mode = parse_mode(mode)
        self.health = health

    @property
    def is_strict(self) -> bool:
        return self.mode == EnforcementMode.STRICT

    # ── Guards ───────────────────────────────────────────────────────────

    def require_read_context(self, ctx: TenantContext, principal) -> None:
        if is_privileged(principal):
            return
        if ctx.effective_tenant_id is None:
            route, method = _request_route()
            user_id = getattr(principal, "id", None)
            logger.error(
                "User %s has no tenant configured (read %s %s)", user_id, method, route,
                extra={"user_id": user_id, "path": route, "method": method},
            )
            raise TenantContextMissingError(user_id=user_id)

    def require_write_context(self, ctx: TenantContext, principal, entity_type: str) -> str:
        """Return the tenant id a new ``entity_type`` row must carry."""
        if ctx.effective_tenant_id:
            return ctx.effective_tenant_id

        route, method = _request_route()
        privileged = is_privileged(principal)
        user_id = getattr(principal, "id", None)
        diagnostic = {
            "user_id": user_id,
            "user_role": getattr(principal, "role", None),
            "user_tenant_id": getattr(principal, "tenant_id", None),
            "entity_type": entity_type,
            "path": route,
            "method": method,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        # The override header is only meaningful (and only read) for super users
        if privileged and has_request_context():
            diagnostic["header_tenant_id"] = request.headers.get("X-Tenant-Id")
        logger.error("Tenant context required for %s write", entity_type, extra=diagnostic)

        self._record(WarnType.MISSING_TENANT_WRITE, None, principal=principal,
                     notes=f"{entity_type} write without tenant context")

        if privileged:
            message = (
                f"Cannot create {entity_type} without tenant context. "
                "Super users must use X-Tenant-Id header or impersonate a tenant."
            )
        else:
            message = f"User {user_id} has no tenant configured. Cannot create {entity_type}."
        raise TenantContextError(message, entity_type=entity_type)

    def check_ownership(
        self,
        resource_tenant_id: str | None,
        ctx: TenantContext,
        resource_type: str,
        resource_id: str | None = None,
        principal=None,
    ) -> OwnershipCheck:
        """Validate that an existing row belongs to the effective tenant."""
        if self.mode == EnforcementMode.OFF:
            return OwnershipCheck(valid=True)

        effective = ctx.effective_tenant_id
        if effective is None:
            # Super users without a selected tenant operate platform-wide
            if ctx.is_super_user:
                return OwnershipCheck(valid=True)
            warning = f"No tenant context for {resource_type} access"
            self._record(WarnType.CROSS_TENANT_READ, None, principal=principal,
                         resource_id=resource_id, notes=warning)
            return OwnershipCheck(valid=not self.is_strict, warning=warning)

        if resource_tenant_id is None:
            warning = f"Legacy {resource_type} {resource_id} has no tenant_id"
            self._record(WarnType.LEGACY_NULL_TENANT, effective, principal=principal,
                         resource_id=resource_id, notes=warning)
            return OwnershipCheck(valid=not self.is_strict, warning=warning)

        if resource_tenant_id != effective:
            warning = f"{resource_type} {resource_id} belongs to another tenant"
            self._record(WarnType.CROSS_TENANT_READ, effective, principal=principal,
                         resource_id=resource_id, notes=warning)
            return OwnershipCheck(valid=False, warning=warning)

        return OwnershipCheck(valid=True)

    # ── Internals ────────────────────────────────────────────────────────

    def _record(self, warn_type: str, tenant_id: str | None, *, principal=None,
                resource_id: str | None = None, notes: str | None = None) -> None:
        if self.mode == EnforcementMode.OFF:
            return
        route, method = _request_route()
        self.health.record_warning(
            route=route,
            method=method,
            warn_type=warn_type,
            tenant_id=tenant_id,
            actor_user_id=getattr(principal, "id", None),
            resource_id=resource_id,
            notes=notes,
        )
        if has_request_context():
            g.setdefault("tenancy_warnings", []).append(notes or warn_type)


def get_enforcement() -> EnforcementModeController:
    return current_app.extensions["tenancy_enforcement"]


def init_tenancy_warn_header(app: Flask):
    """Surface warn-mode violations to the caller."""

    @app.before_request
    def _reset_tenancy_warnings():
        g.tenancy_warnings = []

    @app.after_request
    def _add_tenancy_warn_header(response):
        warnings = getattr(g, "tenancy_warnings", None)
        if warnings:
            response.headers[WARN_HEADER] = "; ".join(warnings)
        return response
