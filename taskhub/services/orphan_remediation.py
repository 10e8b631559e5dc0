"""
Orphan remediation — assigning a tenant to rows that have none.

Strategies
----------
relationship
    Infer the tenant from a parent row (``RELATIONS``).  One set-based
    ``UPDATE … SET tenant_id = COALESCE(<parent subqueries>)`` per table,
    parents processed before children so a fix cascades within one run.
    Rows without a tenant-carrying parent stay orphaned and are reported.
quarantine
    Move every orphan to the reserved quarantine tenant for manual triage.
default
    Legacy bootstrap path: assign every orphan to the pre-existing tenant
    with slug DEFAULT_TENANT_SLUG, no inference.

Users are never bulk-assigned.  Super users may legitimately have no
tenant; ordinary users without one are reported for a human decision.

Apply runs write a ``remediation_planned`` audit event before touching data
and a ``remediation_executed`` event with per-table counts afterwards, even
when nothing changes.  An apply is one transaction: if any table fails the
whole run is rolled back and the error propagates.  Dry runs perform no
writes of any kind and report a failing table as -1.  Callers are
responsible for checking the confirmation token before calling with
``dry_run=False``.
"""

import logging

from flask import current_app, has_app_context
from sqlalchemy import exists, func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from taskhub.core.exceptions import NotFoundError, ValidationError
from taskhub.models import db
from taskhub.models.audit import write_audit_event
from taskhub.models.auth import (
    QUARANTINE_TENANT_NAME,
    QUARANTINE_TENANT_SLUG,
    Tenant,
    TenantStatus,
    User,
    UserRole,
)
from taskhub.services.orphan_detector import OrphanDetector, orphan_detector
from taskhub.services.tenant_registry import TenantRegistry, tenant_registry
from taskhub.services.tenant_tables import (
    RELATIONS,
    TABLES_BY_NAME,
    TENANT_OWNED_TABLES,
    TableDescriptor,
)

logger = logging.getLogger(__name__)

STRATEGY_RELATIONSHIP = "relationship"
STRATEGY_QUARANTINE = "quarantine"
STRATEGY_DEFAULT = "default"
FIX_STRATEGIES = (STRATEGY_RELATIONSHIP, STRATEGY_QUARANTINE)


class OrphanRemediator:

    def __init__(self, detector: OrphanDetector | None = None,
                 registry: TenantRegistry | None = None):
        self.detector = detector or orphan_detector
        self.registry = registry or tenant_registry

    # ═══════════════════════════════════════════════════════════════
    # Quarantine tenant
    # ═══════════════════════════════════════════════════════════════
    def ensure_quarantine_tenant(self, actor_user_id: str | None = None) -> tuple[Tenant, bool]:
        """Return ``(tenant, created)``; creates the bucket at most once.

        Does not commit.
        """
        tenant = self.registry.get_quarantine()
        if tenant is not None:
            return tenant, False

        tenant = Tenant(
            name=QUARANTINE_TENANT_NAME,
            slug=QUARANTINE_TENANT_SLUG,
            status=TenantStatus.SUSPENDED,
        )
        try:
            with db.session.begin_nested():
                db.session.add(tenant)
        except IntegrityError:
            # Lost a race on the unique slug; use the winner's row
            tenant = self.registry.get_quarantine()
            return tenant, False

        write_audit_event(
            tenant_id=tenant.id,
            actor_user_id=actor_user_id,
            event_type="quarantine_tenant_created",
            message=f"Created quarantine tenant '{QUARANTINE_TENANT_SLUG}' for orphaned rows",
            metadata={"slug": QUARANTINE_TENANT_SLUG},
        )
        logger.info("Created quarantine tenant %s", tenant.id, extra={"tenant_id": tenant.id})
        return tenant, True

    # ═══════════════════════════════════════════════════════════════
    # Relationship-based backfill
    # ═══════════════════════════════════════════════════════════════
    @staticmethod
    def _parent_tenant_subqueries(child: TableDescriptor):
        inferred, resolvable = [], []
        for link in RELATIONS.get(child.name, ()):
            parent = TABLES_BY_NAME[link.parent].table.alias(f"parent_{link.parent}")
            fk = child.table.c[link.join_key]
            has_tenant = (parent.c.id == fk) & parent.c.tenant_id.is_not(None)
            inferred.append(select(parent.c.tenant_id).where(has_tenant).scalar_subquery())
            resolvable.append(exists(select(parent.c.id).where(has_tenant)))
        return inferred, resolvable

    def _resolvable_condition(self, child: TableDescriptor):
        _, resolvable = self._parent_tenant_subqueries(child)
        return child.orphan_condition() & or_(*resolvable)

    def count_resolvable(self, child: TableDescriptor) -> int:
        return db.session.execute(
            select(func.count()).select_from(child.table).where(self._resolvable_condition(child))
        ).scalar() or 0

    def _apply_relationship_update(self, child: TableDescriptor) -> int:
        inferred, resolvable = self._parent_tenant_subqueries(child)
        value = inferred[0] if len(inferred) == 1 else func.coalesce(*inferred)
        result = db.session.execute(
            update(child.table)
            .where(child.orphan_condition() & or_(*resolvable))
            .values(tenant_id=value)
        )
        return result.rowcount or 0

    def backfill_by_relationship(self, *, dry_run: bool = True,
                                 actor_user_id: str | None = None) -> dict:
        sample_size = self._sample_size()
        tables = [d for d in TENANT_OWNED_TABLES if d.name in RELATIONS]
        quarantine = None
        quarantine_created = False

        try:
            if not dry_run:
                quarantine, quarantine_created = self.ensure_quarantine_tenant(actor_user_id)
                self._write_planned(quarantine.id, STRATEGY_RELATIONSHIP, tables, actor_user_id)

            results = [self._relationship_table(d, dry_run, sample_size) for d in tables]
            users = self.users_summary(sample_size)
            total_updated = sum(r["updated_count"] for r in results)

            if not dry_run:
                self._write_executed(quarantine.id, STRATEGY_RELATIONSHIP, results, actor_user_id)
                db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        logger.info(
            "Relationship backfill %s: %d rows updated",
            "dry-run" if dry_run else "apply", total_updated,
        )
        return {
            "mode": "dry-run" if dry_run else "apply",
            "dry_run": dry_run,
            "strategy": STRATEGY_RELATIONSHIP,
            "tables": results,
            "users": users,
            "total_updated": total_updated,
            "quarantine_tenant_id": quarantine.id if quarantine else None,
            "quarantine_created": quarantine_created,
        }

    def _relationship_table(self, d: TableDescriptor, dry_run: bool, sample_size: int) -> dict:
        row = {
            "table": d.name,
            "resolve_via": [f"{l.parent}.{l.join_key}" for l in RELATIONS[d.name]],
            "target_tenant_id": "inferred",
            "count_before": 0,
            "resolvable_count": 0,
            "updated_count": 0,
            "count_after": 0,
            "unresolved_after": 0,
            "unresolved_sample_ids": [],
        }
        try:
            with db.session.begin_nested():
                before = self.detector.count_orphans(d)
                resolvable = self.count_resolvable(d) if before else 0
                updated = 0
                if not dry_run and resolvable:
                    updated = self._apply_relationship_update(d)
                after = before if dry_run else self.detector.count_orphans(d)
                unresolved = before - resolvable if dry_run else after
                samples = self._unresolved_sample_ids(d, dry_run, sample_size) if unresolved > 0 else []
        except SQLAlchemyError as exc:
            logger.error("Relationship backfill failed for %s: %s", d.name, exc)
            if not dry_run:
                raise
            row.update(count_before=-1, count_after=-1, unresolved_after=-1, error=str(exc))
            return row

        row.update(
            count_before=before,
            resolvable_count=resolvable,
            updated_count=updated,
            count_after=after,
            unresolved_after=unresolved,
            unresolved_sample_ids=samples,
        )
        return row

    def _unresolved_sample_ids(self, d: TableDescriptor, dry_run: bool, limit: int) -> list[str]:
        condition = d.orphan_condition()
        if dry_run:
            # Nothing was updated, so exclude rows the apply run would fix
            _, resolvable = self._parent_tenant_subqueries(d)
            condition = condition & ~or_(*resolvable)
        rows = db.session.execute(
            select(d.id_column).where(condition).order_by(d.id_column).limit(limit)
        ).scalars().all()
        return list(rows)

    def users_summary(self, sample_size: int | None = None) -> dict:
        sample_size = self._sample_size() if sample_size is None else sample_size
        null_tenant = User.tenant_id.is_(None)
        super_count = db.session.execute(
            select(func.count(User.id)).where(null_tenant, User.role == UserRole.SUPER_USER)
        ).scalar() or 0
        ordinary = User.role != UserRole.SUPER_USER
        ordinary_count = db.session.execute(
            select(func.count(User.id)).where(null_tenant, ordinary)
        ).scalar() or 0
        sample_ids = db.session.execute(
            select(User.id).where(null_tenant, ordinary).order_by(User.id).limit(sample_size)
        ).scalars().all()
        if ordinary_count:
            logger.warning("%d non-super users have no tenant; manual assignment required",
                           ordinary_count)
        return {
            "super_users_with_null_tenant_id": super_count,
            "non_super_users_with_null_tenant_id": ordinary_count,
            "non_super_user_sample_ids": list(sample_ids),
        }

    # ═══════════════════════════════════════════════════════════════
    # Bulk assignment (quarantine / default tenant)
    # ═══════════════════════════════════════════════════════════════
    def _assign_orphans(self, target_tenant_id: str | None, dry_run: bool,
                        skip_resolvable: bool = False) -> list[dict]:
        results = []
        for d in TENANT_OWNED_TABLES:
            if not d.auto_fix:
                continue
            condition = d.orphan_condition()
            if skip_resolvable and d.name in RELATIONS:
                # Rows a relationship pass fixes are not left for this one
                _, resolvable = self._parent_tenant_subqueries(d)
                condition = condition & ~or_(*resolvable)
            try:
                with db.session.begin_nested():
                    before = db.session.execute(
                        select(func.count()).select_from(d.table).where(condition)
                    ).scalar() or 0
                    fixed = 0
                    if not dry_run and before:
                        fixed = db.session.execute(
                            update(d.table)
                            .where(condition)
                            .values(tenant_id=target_tenant_id)
                        ).rowcount or 0
            except SQLAlchemyError as exc:
                logger.error("Orphan assignment failed for %s: %s", d.name, exc)
                if not dry_run:
                    raise
                results.append({"table": d.name, "count_before": -1, "count_fixed": -1,
                                "target_tenant_id": target_tenant_id, "error": str(exc)})
                continue
            results.append({
                "table": d.name,
                "count_before": before,
                "count_fixed": fixed,
                "target_tenant_id": target_tenant_id,
            })
        return results

    def quarantine_orphans(self, *, dry_run: bool = True,
                           actor_user_id: str | None = None,
                           skip_resolvable: bool = False) -> dict:
        """Move orphans to the quarantine tenant.

        ``skip_resolvable`` leaves out rows a relationship pass would fix, so a
        dry run following a relationship dry run counts only the leftovers.
        """
        quarantine = self.registry.get_quarantine()
        created = False
        try:
            if not dry_run:
                quarantine, created = self.ensure_quarantine_tenant(actor_user_id)
                self._write_planned(quarantine.id, STRATEGY_QUARANTINE, TENANT_OWNED_TABLES,
                                    actor_user_id)
            target = quarantine.id if quarantine else None
            results = self._assign_orphans(target, dry_run, skip_resolvable)
            for r in results:
                if r["count_before"] == 0:
                    r["action"] = "clean"
                else:
                    r["action"] = "would_fix" if dry_run else "fixed"
            if not dry_run:
                self._write_executed(quarantine.id, STRATEGY_QUARANTINE, results, actor_user_id)
                db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        return {
            "dry_run": dry_run,
            "strategy": STRATEGY_QUARANTINE,
            "quarantine_tenant_id": target,
            "quarantine_created": created,
            "results": results,
            "users": self.users_summary(),
        }

    def backfill_default_tenant(self, *, dry_run: bool = True,
                                actor_user_id: str | None = None) -> dict:
        slug = current_app.config.get("DEFAULT_TENANT_SLUG", "default") if has_app_context() else "default"
        default = self.registry.get_by_slug(slug)
        if default is None:
            raise NotFoundError(resource="Tenant", resource_id=slug)

        try:
            if not dry_run:
                self._write_planned(default.id, STRATEGY_DEFAULT, TENANT_OWNED_TABLES, actor_user_id)
            assigned = self._assign_orphans(default.id, dry_run)
            if not dry_run:
                self._write_executed(default.id, STRATEGY_DEFAULT, assigned, actor_user_id)
                db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        results = [
            {"table": r["table"], "would_update": r["count_before"],
             "updated": 0 if dry_run else r["count_fixed"]}
            for r in assigned
        ]
        remaining = [
            {"table": rec.table, "missing_count": rec.missing_count}
            for rec in self.detector.detect(sample_size=0)
        ]
        logger.info("Default-tenant backfill %s for tenant %s",
                    "dry-run" if dry_run else "apply", default.id,
                    extra={"tenant_id": default.id})
        return {
            "default_tenant_id": default.id,
            "dry_run": dry_run,
            "results": results,
            "remaining_nulls": remaining,
        }

    # ═══════════════════════════════════════════════════════════════
    # Entry point for the orphan fix endpoint
    # ═══════════════════════════════════════════════════════════════
    def fix_orphans(self, *, strategy: str = STRATEGY_QUARANTINE, dry_run: bool = True,
                    quarantine_unresolved: bool = False,
                    actor_user_id: str | None = None) -> dict:
        if strategy == STRATEGY_QUARANTINE:
            return self.quarantine_orphans(dry_run=dry_run, actor_user_id=actor_user_id)
        if strategy != STRATEGY_RELATIONSHIP:
            raise ValidationError(
                f"Unknown strategy '{strategy}'",
                details={"allowed": list(FIX_STRATEGIES)},
            )

        result = self.backfill_by_relationship(dry_run=dry_run, actor_user_id=actor_user_id)
        if quarantine_unresolved:
            result["quarantined"] = self.quarantine_orphans(
                dry_run=dry_run, actor_user_id=actor_user_id, skip_resolvable=True,
            )["results"]
        return result

    # ── Helpers ──────────────────────────────────────────────────────────

    def _sample_size(self) -> int:
        return self.detector.sample_size

    @staticmethod
    def _write_planned(tenant_id, strategy, tables, actor_user_id):
        names = [t.name for t in tables]
        write_audit_event(
            tenant_id=tenant_id,
            actor_user_id=actor_user_id,
            event_type="remediation_planned",
            message=f"Orphan remediation ({strategy}) planned for {len(names)} tables",
            metadata={"strategy": strategy, "tables": names},
        )

    @staticmethod
    def _write_executed(tenant_id, strategy, results, actor_user_id):
        fixed = {
            r["table"]: r.get("updated_count", r.get("count_fixed", 0))
            for r in results
        }
        write_audit_event(
            tenant_id=tenant_id,
            actor_user_id=actor_user_id,
            event_type="remediation_executed",
            message=f"Orphan remediation ({strategy}) fixed {sum(v for v in fixed.values() if v > 0)} rows",
            metadata={"strategy": strategy, "fixed_by_table": fixed},
        )


orphan_remediator = OrphanRemediator()
