"""
Tenant Registry — read access to the tenant catalogue.

Every lookup is a single primary-key or unique-slug query; nothing is cached
across requests so a freshly created tenant is visible immediately.
"""

from collections.abc import Iterable

from sqlalchemy import func, select

from taskhub.models import db
from taskhub.models.auth import QUARANTINE_TENANT_SLUG, Tenant, TenantStatus


class TenantRegistry:
    """Thin query object over the ``tenants`` table."""

    def get(self, tenant_id: str | None) -> Tenant | None:
        if not tenant_id:
            return None
        return db.session.get(Tenant, tenant_id)

    def get_by_slug(self, slug: str) -> Tenant | None:
        return db.session.execute(
            select(Tenant).where(Tenant.slug == slug)
        ).scalar_one_or_none()

    def get_quarantine(self) -> Tenant | None:
        return self.get_by_slug(QUARANTINE_TENANT_SLUG)

    def active_count(self, exclude_ids: Iterable[str] = ()) -> int:
        """Active tenants, never counting the quarantine bucket."""
        stmt = select(func.count(Tenant.id)).where(
            Tenant.status == TenantStatus.ACTIVE,
            Tenant.slug != QUARANTINE_TENANT_SLUG,
        )
        exclude = [t for t in exclude_ids if t]
        if exclude:
            stmt = stmt.where(Tenant.id.not_in(exclude))
        return db.session.execute(stmt).scalar() or 0


tenant_registry = TenantRegistry()
