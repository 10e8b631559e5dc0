"""
Auth Models — tenants and users.

Tenants are created by the platform and never change identity; only their
status moves. Users carry a nullable ``tenant_id``: super users legitimately
have none, every other role should have exactly one.
"""

import uuid
from datetime import datetime, timezone

from taskhub.models import db


def _uuid() -> str:
    return str(uuid.uuid4())


# ═══════════════════════════════════════════════════════════════
# 1. TENANTS
# ═══════════════════════════════════════════════════════════════
class TenantStatus:
    ACTIVE = "active"
    SUSPENDED = "suspended"
    PENDING = "pending"

    ALL = (ACTIVE, SUSPENDED, PENDING)


QUARANTINE_TENANT_SLUG = "quarantine"
QUARANTINE_TENANT_NAME = "Quarantine (Orphan Data)"


class Tenant(db.Model):
    __tablename__ = "tenants"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    name = db.Column(db.String(200), nullable=False)
    slug = db.Column(db.String(100), unique=True, nullable=False)
    status = db.Column(db.String(20), nullable=False, default=TenantStatus.ACTIVE)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    @property
    def is_quarantine(self) -> bool:
        return self.slug == QUARANTINE_TENANT_SLUG

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Tenant {self.slug}>"


# ═══════════════════════════════════════════════════════════════
# 2. USERS
# ═══════════════════════════════════════════════════════════════
class UserRole:
    SUPER_USER = "super_user"
    ADMIN = "admin"
    EMPLOYEE = "employee"
    CLIENT = "client"

    ALL = (SUPER_USER, ADMIN, EMPLOYEE, CLIENT)


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    tenant_id = db.Column(
        db.String(36), db.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=True, index=True
    )
    email = db.Column(db.String(200), unique=True, nullable=False)
    name = db.Column(db.String(200))
    role = db.Column(db.String(20), nullable=False, default=UserRole.EMPLOYEE)
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    @property
    def is_super_user(self) -> bool:
        return self.role == UserRole.SUPER_USER

    def to_dict(self):
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "email": self.email,
            "name": self.name,
            "role": self.role,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<User {self.email} ({self.role})>"
