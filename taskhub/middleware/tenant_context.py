"""
Tenant Context Middleware — resolves the request's tenant scope once.

Runs after jwt_auth.py has loaded ``g.current_user``.  The resolver receives
the override inputs as callables; for ordinary principals it never calls
them, so the X-Tenant-Id header and the session impersonation keys are not
even read.

An override naming a tenant that does not exist ends the request with 404
and leaves ``g.tenant_context`` unset.
"""

import logging

from flask import g, request, session

from taskhub.core.exceptions import NotFoundError
from taskhub.services.tenant_context import OverrideSources, tenant_access_policy
from taskhub.utils.errors import E, api_error

logger = logging.getLogger(__name__)

TENANT_HEADER = "X-Tenant-Id"
SESSION_IMPERSONATED_TENANT = "impersonated_tenant_id"
SESSION_ACTING_AS_TENANT = "acting_as_tenant_id"

# Paths that skip tenant context (unauthenticated paths only)
TENANT_SKIP_PREFIXES = (
    "/api/v1/health",
)


def request_overrides() -> OverrideSources:
    return OverrideSources(
        header=lambda: request.headers.get(TENANT_HEADER),
        impersonated=lambda: session.get(SESSION_IMPERSONATED_TENANT),
        acting_as=lambda: session.get(SESSION_ACTING_AS_TENANT),
    )


def init_tenant_context(app):
    """Register tenant context middleware as a before_request hook."""

    @app.before_request
    def _tenant_context():
        g.tenant_context = None

        if not request.path.startswith("/api/v1/"):
            return None
        if request.path.startswith(TENANT_SKIP_PREFIXES):
            return None

        principal = getattr(g, "current_user", None)
        try:
            g.tenant_context = tenant_access_policy.resolve(principal, request_overrides())
        except NotFoundError as exc:
            logger.warning(
                "Override tenant %s not found for user %s", exc.resource_id,
                getattr(principal, "id", None),
                extra={"tenant_id": exc.resource_id, "path": request.path},
            )
            return api_error(E.NOT_FOUND, "Tenant not found")

        return None

    logger.debug("Tenant context middleware installed")
