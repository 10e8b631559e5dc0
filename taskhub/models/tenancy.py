"""
Tenancy bookkeeping tables.

Models:
    - TenancyWarning: append-only log of enforcement violations, written
      only when TENANCY_WARN_PERSIST is enabled.
"""

import uuid
from datetime import datetime, timezone

from taskhub.models import db


class WarnType:
    MISSING_TENANT_WRITE = "missing-tenant-write"
    CROSS_TENANT_READ = "cross-tenant-read"
    LEGACY_NULL_TENANT = "legacy-null-tenant"

    ALL = (MISSING_TENANT_WRITE, CROSS_TENANT_READ, LEGACY_NULL_TENANT)


class TenancyWarning(db.Model):
    __tablename__ = "tenancy_warnings"
    __table_args__ = (
        db.Index("idx_tenancy_warnings_occurred_at", "occurred_at"),
        db.Index("idx_tenancy_warnings_route", "route", "method"),
        db.Index("idx_tenancy_warnings_tenant", "tenant_id"),
    )

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    occurred_at = db.Column(
        db.DateTime, nullable=False, default=lambda: datetime.now(timezone.utc)
    )
    route = db.Column(db.String(300), nullable=False)
    method = db.Column(db.String(10), nullable=False)
    warn_type = db.Column(db.String(40), nullable=False)
    actor_user_id = db.Column(db.String(36))
    # Effective tenant at the time of the violation; no FK so the record
    # survives tenant deletion.
    tenant_id = db.Column(db.String(36))
    resource_id = db.Column(db.String(36))
    notes = db.Column(db.Text)
