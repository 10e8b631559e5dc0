"""
Platform-wide exception hierarchy.

Services raise these types; ``create_app`` registers one Flask error handler
per type so every blueprint gets the same JSON shape and HTTP status.

Usage:
    from taskhub.core.exceptions import NotFoundError, TenantContextError

    raise NotFoundError(resource="Tenant", resource_id=tenant_id)
    raise TenantContextError("Cannot create project without tenant context")
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Security note: an override tenant that does not exist is reported the
    same way as any other missing resource.

    Args:
        resource: Human-readable model/entity name (e.g. "Tenant").
        resource_id: The PK or slug that was looked up. Included in logs, not in HTTP response.
    """

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input is well-formed but not acceptable.

    Maps to HTTP 400.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional structured breakdown for API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class TenantContextError(Exception):
    """A write was attempted without an effective tenant.

    Maps to HTTP 400 with code ``TENANT_CONTEXT_REQUIRED``.
    """

    code = "TENANT_CONTEXT_REQUIRED"

    def __init__(self, message: str, entity_type: str | None = None) -> None:
        self.entity_type = entity_type
        super().__init__(message)


class TenantContextMissingError(Exception):
    """An ordinary principal reached a tenant-scoped read with no tenant.

    This is a provisioning fault on the server side, so it maps to HTTP 500.
    """

    def __init__(self, user_id: str | None = None) -> None:
        self.user_id = user_id
        super().__init__("User tenant not configured")


class ConfirmationRequiredError(Exception):
    """A destructive operation was requested without its confirmation token.

    Maps to HTTP 400.

    Args:
        operation: Operation name (e.g. "backfill").
        hint: How to supply the token (header or body field).
    """

    def __init__(self, operation: str, hint: str) -> None:
        self.operation = operation
        self.hint = hint
        super().__init__(f"Confirmation required for {operation}: {hint}")


class RemediationBlockedError(Exception):
    """A migration or remediation cannot proceed because data is not clean.

    Maps to HTTP 409; ``blocked`` lists the offending tables and counts.
    """

    def __init__(self, message: str, blocked: list[dict]) -> None:
        self.blocked = blocked
        super().__init__(message)


class ConstraintMigrationError(Exception):
    """DDL failed part-way through; the whole transaction was rolled back.

    Maps to HTTP 500.
    """

    def __init__(self, table: str, db_message: str) -> None:
        self.table = table
        self.db_message = db_message
        super().__init__(f"Migration failed on {table}: {db_message}")


class PersistenceDisabledError(Exception):
    """Historical warning queries need the persisted warning store.

    Maps to HTTP 501.
    """

    def __init__(self) -> None:
        super().__init__(
            "Warning persistence is disabled. Set TENANCY_WARN_PERSIST=true to enable."
        )
