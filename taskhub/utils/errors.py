"""Standardised API error responses.

Usage
-----
    from taskhub.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "Tenant not found")
    return api_error(E.REMEDIATION_BLOCKED, "Tables not clean", details={"blocked": [...]})
"""

from __future__ import annotations

from flask import jsonify


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants.

    Convention:
     • ERR_  prefix for standard application errors
     • TENANT_ prefix for tenant-context errors
    """

    # Validation – HTTP 400
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    CONFIRMATION_REQUIRED = "ERR_CONFIRMATION_REQUIRED"

    # Tenant context
    TENANT_CONTEXT_REQUIRED = "TENANT_CONTEXT_REQUIRED"
    TENANT_CONTEXT_MISSING = "TENANT_CONTEXT_MISSING"

    # Auth – HTTP 401 / 403
    UNAUTHORIZED = "ERR_UNAUTHORIZED"
    FORBIDDEN = "ERR_FORBIDDEN"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Conflict – HTTP 409
    REMEDIATION_BLOCKED = "ERR_REMEDIATION_BLOCKED"

    # Server – HTTP 500 / 501
    TRANSACTION_FAILED = "ERR_TRANSACTION_FAILED"
    INTERNAL = "ERR_INTERNAL"
    NOT_IMPLEMENTED = "ERR_NOT_IMPLEMENTED"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.CONFIRMATION_REQUIRED: 400,
    E.TENANT_CONTEXT_REQUIRED: 400,
    E.TENANT_CONTEXT_MISSING: 500,
    E.UNAUTHORIZED: 401,
    E.FORBIDDEN: 403,
    E.NOT_FOUND: 404,
    E.REMEDIATION_BLOCKED: 409,
    E.TRANSACTION_FAILED: 500,
    E.INTERNAL: 500,
    E.NOT_IMPLEMENTED: 501,
}


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation for operators.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict, optional
        Extra structured payload (blocked tables, failing table, etc.).

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """

    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "error": message,
        "code": code,
    }
    if details:
        body["details"] = details

    return jsonify(body), http_status
