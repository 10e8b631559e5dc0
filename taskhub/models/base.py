"""
TenantOwnedModel — Abstract base class for tenant-owned tables.

``tenant_id`` starts out nullable: rows written before tenancy existed have
none. Once remediation has cleaned a table the constraint migrator promotes
the column to NOT NULL in the database; the model definition stays nullable
so the same code runs before and after the migration.
"""

import uuid
from datetime import datetime, timezone

from taskhub.models import db


class TenantOwnedModel(db.Model):
    """Abstract base for tenant-owned tables."""
    __abstract__ = True

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = db.Column(
        db.String(36),
        db.ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    @classmethod
    def query_for_tenant(cls, tenant_id):
        """Return a query filtered by tenant_id."""
        return cls.query.filter_by(tenant_id=tenant_id)
