"""
Tenant audit trail.

Models:
    - TenantAuditEvent: write-once record of tenancy-affecting actions
      (quarantine creation, remediation planned and executed).
"""

import uuid
from datetime import datetime, timezone

from taskhub.models import db


AUDIT_EVENT_TYPES = {
    "quarantine_tenant_created",
    "remediation_planned",
    "remediation_executed",
}


class TenantAuditEvent(db.Model):
    """
    One row per action.  ``tenant_id`` is mandatory: every event belongs to
    the tenant it concerns, cross-tenant remediation events belong to the
    quarantine tenant.
    """

    __tablename__ = "tenant_audit_events"
    __table_args__ = (
        db.Index("idx_tenant_audit_tenant", "tenant_id"),
        db.Index("idx_tenant_audit_type", "event_type"),
        db.Index("idx_tenant_audit_created", "created_at"),
    )

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = db.Column(
        db.String(36),
        db.ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
    )
    actor_user_id = db.Column(
        db.String(36),
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    event_type = db.Column(db.String(60), nullable=False)
    message = db.Column(db.Text, nullable=False)
    # "metadata" is reserved on declarative classes
    metadata_ = db.Column("metadata", db.JSON, default=dict)
    created_at = db.Column(
        db.DateTime, nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "actor_user_id": self.actor_user_id,
            "event_type": self.event_type,
            "message": self.message,
            "metadata": self.metadata_ or {},
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<TenantAuditEvent {self.event_type} tenant={self.tenant_id}>"


# ── Convenience writer ───────────────────────────────────────────────────────

def write_audit_event(
    *,
    tenant_id: str,
    event_type: str,
    message: str,
    actor_user_id: str | None = None,
    metadata: dict | None = None,
) -> TenantAuditEvent:
    """
    Append a single audit row.  Uses ``flush`` so callers keep
    transaction control.

    Returns the (flushed) TenantAuditEvent instance.
    """
    if event_type not in AUDIT_EVENT_TYPES:
        raise ValueError(f"Unknown audit event type: {event_type}")
    event = TenantAuditEvent(
        tenant_id=tenant_id,
        actor_user_id=actor_user_id,
        event_type=event_type,
        message=message,
        metadata_=metadata or {},
    )
    db.session.add(event)
    db.session.flush()
    return event
