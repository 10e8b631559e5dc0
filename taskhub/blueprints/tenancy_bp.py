"""
Tenancy operations API.

Super-user endpoints (``/api/v1/super/tenancy``):
    GET  /health                 enforcement mode, orphan counts, warning stats, readiness
    GET  /warnings               persisted warning log (501 when persistence is off)
    POST /backfill               default-tenant backfill          X-Confirm-Backfill: YES
    GET  /health/orphans         orphan detection with samples
    POST /health/orphans/fix     quarantine / relationship fix    confirmText=FIX_ORPHANS
    GET  /constraints            NOT NULL readiness per table
    POST /constraints/apply      transactional NOT NULL           X-Confirm-Constraints: YES
    POST /remediate?mode=…       relationship backfill            X-Confirm-Remediate: YES

Tenant-admin endpoint (``/api/v1/tenant/tenancy``):
    GET  /health                 own tenant's enforcement view, no table scans

Every mutating endpoint defaults to a dry run; real execution needs its own
confirmation token.
"""

import logging
from datetime import datetime, timedelta, timezone

from flask import Blueprint, g, jsonify, request

from taskhub.core.exceptions import ConfirmationRequiredError, ValidationError
from taskhub.middleware.jwt_auth import require_roles, require_super_user
from taskhub.models.auth import UserRole
from taskhub.services.constraint_migrator import constraint_migrator
from taskhub.services.enforcement import get_enforcement
from taskhub.services.health_tracker import compute_readiness, get_health_tracker
from taskhub.services.orphan_detector import orphan_detector
from taskhub.services.orphan_remediation import STRATEGY_QUARANTINE, orphan_remediator
from taskhub.services.tenant_context import get_tenant_context
from taskhub.services.tenant_registry import tenant_registry
from taskhub.utils.errors import E, api_error

logger = logging.getLogger(__name__)

tenancy_bp = Blueprint("tenancy", __name__, url_prefix="/api/v1/super/tenancy")
tenant_tenancy_bp = Blueprint("tenant_tenancy", __name__, url_prefix="/api/v1/tenant/tenancy")

CONFIRM_BACKFILL_HEADER = "X-Confirm-Backfill"
CONFIRM_CONSTRAINTS_HEADER = "X-Confirm-Constraints"
CONFIRM_REMEDIATE_HEADER = "X-Confirm-Remediate"
FIX_ORPHANS_CONFIRM_TEXT = "FIX_ORPHANS"

REMEDIATE_MODES = ("dry-run", "apply")


# ── Request helpers ──────────────────────────────────────────────────────

def _body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _bool_field(data: dict, key: str, default: bool) -> bool:
    value = data.get(key, default)
    if not isinstance(value, bool):
        raise ValidationError(f"{key} must be a boolean", details={key: value})
    return value


def _require_confirm_header(header: str, operation: str) -> None:
    if request.headers.get(header) != "YES":
        raise ConfirmationRequiredError(operation, f"set header {header}: YES")


def _parse_ts(name: str):
    raw = request.args.get(name)
    if not raw:
        return None
    try:
        ts = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 timestamp", details={name: raw})
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


def _actor_id() -> str | None:
    user = getattr(g, "current_user", None)
    return user.id if user else None


def _quarantine_info() -> dict:
    quarantine = tenant_registry.get_quarantine()
    if quarantine is None:
        return {"exists": False, "id": None, "name": None}
    return {"exists": True, "id": quarantine.id, "name": quarantine.name}


# ═════════════════════════════════════════════════════════════════════════
# Health & warnings
# ═════════════════════════════════════════════════════════════════════════

@tenancy_bp.route("/health", methods=["GET"])
@require_super_user
def tenancy_health():
    enforcement = get_enforcement()
    health = get_health_tracker()

    records = orphan_detector.detect(sample_size=0)
    counts = {r.table: r.missing_count for r in records}
    warning_stats = health.window_stats()
    readiness = compute_readiness(counts, warning_stats["last_24_hours"]["total"])

    quarantine = _quarantine_info()
    if quarantine["exists"]:
        quarantine["rows_by_table"] = orphan_detector.tenant_counts(quarantine["id"])

    return jsonify({
        "current_mode": enforcement.mode,
        "missing_tenant_ids": [
            {"table": r.table, "missing_count": r.missing_count} for r in records
        ],
        "total_missing": sum(c for c in counts.values() if c > 0),
        "warning_stats": {**warning_stats, "top_routes": health.top_routes(10)},
        "readiness_check": readiness.to_dict(),
        "active_tenant_count": tenant_registry.active_count(),
        "persistence_enabled": health.persistence_enabled,
        "quarantine": quarantine,
    })


@tenancy_bp.route("/warnings", methods=["GET"])
@require_super_user
def tenancy_warnings():
    health = get_health_tracker()
    limit = request.args.get("limit", type=int)
    offset = request.args.get("offset", 0, type=int)
    page = health.list_warnings(
        from_=_parse_ts("from"),
        to=_parse_ts("to"),
        tenant_id=request.args.get("tenantId"),
        limit=limit,
        offset=offset,
    )
    return jsonify(page)


# ═════════════════════════════════════════════════════════════════════════
# Remediation
# ═════════════════════════════════════════════════════════════════════════

@tenancy_bp.route("/backfill", methods=["POST"])
@require_super_user
def tenancy_backfill():
    dry_run = _bool_field(_body(), "dryRun", True)
    if not dry_run:
        _require_confirm_header(CONFIRM_BACKFILL_HEADER, "backfill")
    logger.info("Default-tenant backfill requested (dry_run=%s)", dry_run,
                extra={"user_id": _actor_id()})
    return jsonify(orphan_remediator.backfill_default_tenant(
        dry_run=dry_run, actor_user_id=_actor_id(),
    ))


@tenancy_bp.route("/health/orphans", methods=["GET"])
@require_super_user
def orphan_health():
    sample_size = request.args.get("sampleSize", type=int)
    records = orphan_detector.detect(sample_size=sample_size)
    return jsonify({
        "tables": [r.to_dict() for r in records],
        "total_missing": sum(r.missing_count for r in records if r.missing_count > 0),
        "has_orphans": any(r.missing_count > 0 for r in records),
        "recommended_action": STRATEGY_QUARANTINE,
        "users": orphan_remediator.users_summary(),
        "quarantine": _quarantine_info(),
    })


@tenancy_bp.route("/health/orphans/fix", methods=["POST"])
@require_super_user
def orphan_fix():
    data = _body()
    dry_run = _bool_field(data, "dryRun", True)
    quarantine_unresolved = _bool_field(data, "quarantineUnresolved", False)
    strategy = data.get("strategy", STRATEGY_QUARANTINE)
    if not dry_run and data.get("confirmText") != FIX_ORPHANS_CONFIRM_TEXT:
        raise ConfirmationRequiredError(
            "orphan fix",
            f"To execute orphan fix, set dryRun=false and confirmText='{FIX_ORPHANS_CONFIRM_TEXT}'",
        )
    logger.info("Orphan fix requested (strategy=%s, dry_run=%s)", strategy, dry_run,
                extra={"user_id": _actor_id()})
    return jsonify(orphan_remediator.fix_orphans(
        strategy=strategy,
        dry_run=dry_run,
        quarantine_unresolved=quarantine_unresolved,
        actor_user_id=_actor_id(),
    ))


@tenancy_bp.route("/remediate", methods=["POST"])
@require_super_user
def tenancy_remediate():
    mode = request.args.get("mode", "dry-run")
    if mode not in REMEDIATE_MODES:
        raise ValidationError(f"mode must be one of {', '.join(REMEDIATE_MODES)}",
                              details={"mode": mode})
    dry_run = mode == "dry-run"
    if not dry_run:
        _require_confirm_header(CONFIRM_REMEDIATE_HEADER, "remediate")
    return jsonify(orphan_remediator.backfill_by_relationship(
        dry_run=dry_run, actor_user_id=_actor_id(),
    ))


# ═════════════════════════════════════════════════════════════════════════
# Constraints
# ═════════════════════════════════════════════════════════════════════════

@tenancy_bp.route("/constraints", methods=["GET"])
@require_super_user
def constraint_readiness():
    raw = request.args.get("tables")
    tables = [t.strip() for t in raw.split(",") if t.strip()] if raw else None
    readiness = constraint_migrator.check_readiness(tables)
    return jsonify({
        "tables": [r.to_dict() for r in readiness],
        "ready_count": sum(1 for r in readiness if r.can_migrate),
        "allowlist": list(constraint_migrator.allowlist),
    })


@tenancy_bp.route("/constraints/apply", methods=["POST"])
@require_super_user
def constraint_apply():
    data = _body()
    dry_run = _bool_field(data, "dryRun", True)
    tables = data.get("tables")
    if tables is not None and (
        not isinstance(tables, list) or not all(isinstance(t, str) for t in tables)
    ):
        raise ValidationError("tables must be a list of table names")
    if not dry_run:
        _require_confirm_header(CONFIRM_CONSTRAINTS_HEADER, "constraint apply")
    logger.info("Constraint apply requested (dry_run=%s, tables=%s)", dry_run, tables,
                extra={"user_id": _actor_id()})
    return jsonify(constraint_migrator.apply(tables, dry_run=dry_run))


# ═════════════════════════════════════════════════════════════════════════
# Tenant-admin view
# ═════════════════════════════════════════════════════════════════════════

@tenant_tenancy_bp.route("/health", methods=["GET"])
@require_roles(UserRole.ADMIN, UserRole.SUPER_USER)
def tenant_tenancy_health():
    ctx = get_tenant_context()
    enforcement = get_enforcement()
    enforcement.require_read_context(ctx, g.current_user)
    tenant_id = ctx.effective_tenant_id
    if tenant_id is None:
        return api_error(E.VALIDATION_REQUIRED,
                         "Select a tenant with the X-Tenant-Id header")

    health = get_health_tracker()
    since = datetime.now(timezone.utc) - timedelta(hours=24)
    return jsonify({
        "enforcement_mode": enforcement.mode,
        "tenant_id": tenant_id,
        "warnings_last_24h": health.stats_since(since, tenant_id=tenant_id).to_dict(),
        "persistence_enabled": health.persistence_enabled,
    })
