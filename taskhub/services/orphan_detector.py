"""
Orphan detection — rows in tenant-owned tables whose tenant_id is null.

Each registered table is scanned inside its own SAVEPOINT so that one broken
table (missing column, missing table) reports ``missing_count = -1`` and the
rest of the scan carries on.  Counts are always computed live.
"""

import logging
from dataclasses import dataclass, field

from flask import current_app, has_app_context
from sqlalchemy import and_, func, select
from sqlalchemy.exc import SQLAlchemyError

from taskhub.models import db
from taskhub.services.tenant_tables import (
    RELATIONS,
    TABLES_BY_NAME,
    TENANT_OWNED_TABLES,
    TableDescriptor,
)

logger = logging.getLogger(__name__)

DEFAULT_SAMPLE_SIZE = 5
_DISPLAY_MAX = 80


@dataclass
class OrphanRecord:
    table: str
    missing_count: int
    sample_rows: list = field(default_factory=list)
    error: str | None = None

    def to_dict(self) -> dict:
        data = {
            "table": self.table,
            "missing_count": self.missing_count,
            "sample_rows": self.sample_rows,
        }
        if self.error:
            data["error"] = self.error
        return data


def _display(value) -> str | None:
    if value is None:
        return None
    text = str(value)
    return text if len(text) <= _DISPLAY_MAX else text[:_DISPLAY_MAX - 3] + "..."


class OrphanDetector:
    """Scans the tenant-owned table registry for null tenant ids."""

    def __init__(self, tables: tuple[TableDescriptor, ...] = TENANT_OWNED_TABLES,
                 sample_size: int | None = None):
        self.tables = tables
        self._sample_size = sample_size

    @property
    def sample_size(self) -> int:
        if self._sample_size is not None:
            return self._sample_size
        if has_app_context():
            return current_app.config.get("ORPHAN_SAMPLE_SIZE", DEFAULT_SAMPLE_SIZE)
        return DEFAULT_SAMPLE_SIZE

    # ── Queries ──────────────────────────────────────────────────────────

    def count_orphans(self, descriptor: TableDescriptor) -> int:
        return db.session.execute(
            select(func.count()).select_from(descriptor.table).where(descriptor.orphan_condition())
        ).scalar() or 0

    def sample_rows(self, descriptor: TableDescriptor, limit: int) -> list[dict]:
        rows = db.session.execute(
            select(descriptor.id_column, descriptor.display_column)
            .where(descriptor.orphan_condition())
            .order_by(descriptor.id_column)
            .limit(limit)
        ).all()
        return [{"id": row[0], "display": _display(row[1])} for row in rows]

    def sample_ids(self, descriptor: TableDescriptor, limit: int) -> list[str]:
        return [row["id"] for row in self.sample_rows(descriptor, limit)]

    # ── Scans ────────────────────────────────────────────────────────────

    def scan_table(self, descriptor: TableDescriptor, sample_size: int | None = None) -> OrphanRecord:
        sample_size = self.sample_size if sample_size is None else sample_size
        try:
            with db.session.begin_nested():
                count = self.count_orphans(descriptor)
                samples = self.sample_rows(descriptor, sample_size) if count > 0 and sample_size > 0 else []
        except SQLAlchemyError as exc:
            logger.warning("Orphan scan failed for %s: %s", descriptor.name, exc)
            return OrphanRecord(descriptor.name, -1, [], error=str(exc.orig if hasattr(exc, "orig") else exc))
        return OrphanRecord(descriptor.name, count, samples)

    def detect(self, sample_size: int | None = None) -> list[OrphanRecord]:
        records = [self.scan_table(d, sample_size) for d in self.tables]
        total = sum(r.missing_count for r in records if r.missing_count > 0)
        logger.info("Orphan scan: %d rows without tenant_id across %d tables", total, len(records))
        return records

    def counts(self) -> dict[str, int]:
        return {r.table: r.missing_count for r in self.detect(sample_size=0)}

    def tenant_counts(self, tenant_id: str) -> dict[str, int]:
        """Rows per table owned by one tenant (e.g. the quarantine bucket)."""
        result = {}
        for d in self.tables:
            try:
                with db.session.begin_nested():
                    result[d.name] = db.session.execute(
                        select(func.count()).select_from(d.table).where(d.tenant_column == tenant_id)
                    ).scalar() or 0
            except SQLAlchemyError as exc:
                logger.warning("Tenant count failed for %s: %s", d.name, exc)
                result[d.name] = -1
        return result

    def detect_mismatches(self) -> list[dict]:
        """Child rows whose tenant differs from their parent's tenant."""
        findings = []
        for child_name, links in RELATIONS.items():
            child = TABLES_BY_NAME[child_name]
            for link in links:
                parent = TABLES_BY_NAME[link.parent]
                p = parent.table.alias("p")
                fk = child.table.c[link.join_key]
                stmt = (
                    select(func.count())
                    .select_from(child.table.join(p, fk == p.c.id))
                    .where(and_(
                        child.tenant_column.is_not(None),
                        p.c.tenant_id.is_not(None),
                        child.tenant_column != p.c.tenant_id,
                    ))
                )
                try:
                    with db.session.begin_nested():
                        count = db.session.execute(stmt).scalar() or 0
                except SQLAlchemyError as exc:
                    logger.warning("Mismatch check failed for %s -> %s: %s", child_name, link.parent, exc)
                    count = -1
                if count:
                    findings.append({
                        "table": child_name,
                        "parent": link.parent,
                        "join_key": link.join_key,
                        "count": count,
                    })
        return findings


orphan_detector = OrphanDetector()
