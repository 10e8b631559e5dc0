"""
Tenant context resolution — the single place that decides which tenant's
data a request may touch.

Rules:
  * Ordinary principals are pinned to their own tenant.  The override
    sources (X-Tenant-Id header, session impersonation, session acting-as)
    are never evaluated for them, so a forged header cannot even be read.
  * Super users have no tenant by default.  They may select one through an
    override, checked in priority order: header, impersonation, acting-as.
    A selected tenant must exist; its status is not checked, so suspended
    and pending tenants remain reachable for support work.
  * Anonymous requests resolve to an empty context.

The result is a frozen ``TenantContext`` stored on ``flask.g`` by the
tenant-context middleware; read it with ``get_tenant_context()``.
"""

from collections.abc import Callable
from dataclasses import dataclass

from flask import g

from taskhub.core.exceptions import NotFoundError
from taskhub.models.auth import UserRole
from taskhub.services.tenant_registry import TenantRegistry, tenant_registry


@dataclass(frozen=True)
class TenantContext:
    """Resolved tenant scope for one request.

    ``tenant_id`` is the principal's own tenant; ``effective_tenant_id`` is
    the tenant whose data the request operates on.  For ordinary principals
    the two are always equal.
    """

    tenant_id: str | None
    effective_tenant_id: str | None
    is_super_user: bool


EMPTY_CONTEXT = TenantContext(tenant_id=None, effective_tenant_id=None, is_super_user=False)


def _none() -> None:
    return None


@dataclass(frozen=True)
class OverrideSources:
    """Lazily evaluated override inputs, in priority order."""

    header: Callable[[], str | None] = _none
    impersonated: Callable[[], str | None] = _none
    acting_as: Callable[[], str | None] = _none


def is_privileged(principal) -> bool:
    return principal is not None and principal.role == UserRole.SUPER_USER


class TenantAccessPolicy:
    """Resolves a principal plus override inputs into a ``TenantContext``."""

    def __init__(self, registry: TenantRegistry | None = None):
        self.registry = registry or tenant_registry

    def resolve(self, principal, overrides: OverrideSources | None = None) -> TenantContext:
        if principal is None:
            return EMPTY_CONTEXT

        if not is_privileged(principal):
            return TenantContext(
                tenant_id=principal.tenant_id,
                effective_tenant_id=principal.tenant_id,
                is_super_user=False,
            )

        overrides = overrides or OverrideSources()
        selected = self._first_override(overrides)
        if selected is None:
            return TenantContext(
                tenant_id=principal.tenant_id,
                effective_tenant_id=None,
                is_super_user=True,
            )

        if self.registry.get(selected) is None:
            raise NotFoundError(resource="Tenant", resource_id=selected)

        return TenantContext(
            tenant_id=principal.tenant_id,
            effective_tenant_id=selected,
            is_super_user=True,
        )

    @staticmethod
    def _first_override(overrides: OverrideSources) -> str | None:
        for source in (overrides.header, overrides.impersonated, overrides.acting_as):
            value = source()
            if value:
                value = str(value).strip()
                if value:
                    return value
        return None


tenant_access_policy = TenantAccessPolicy()


def get_tenant_context() -> TenantContext:
    """Context resolved for the current request (empty outside one)."""
    return getattr(g, "tenant_context", None) or EMPTY_CONTEXT


def get_effective_tenant_id() -> str | None:
    return get_tenant_context().effective_tenant_id
