"""
Constraint migration — promoting ``tenant_id`` to NOT NULL.

A table is ready when its tenant column is still nullable and holds no
nulls.  ``apply`` tightens every requested table inside ONE transaction:

  * any requested table outside CONSTRAINT_ALLOWLIST → ValidationError
  * any requested table not ready                   → RemediationBlockedError,
                                                      no DDL issued
  * any DDL failure                                 → full rollback,
                                                      ConstraintMigrationError

The DDL goes through Alembic's batch operations, which emit
``ALTER TABLE … ALTER COLUMN … SET NOT NULL`` on PostgreSQL and rebuild the
table on SQLite.  Both run on the session's connection, so the readiness
check and the DDL share the transaction.

Dry runs return the same shape as apply runs with ``dry_run=True`` and
``applied_count=0``.
"""

import logging
from dataclasses import asdict, dataclass

import sqlalchemy as sa
from alembic.operations import Operations
from alembic.runtime.migration import MigrationContext
from sqlalchemy import func, select
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.exc import NoSuchTableError, SQLAlchemyError

from taskhub.core.exceptions import (
    ConstraintMigrationError,
    RemediationBlockedError,
    ValidationError,
)
from taskhub.models import db
from taskhub.services.tenant_tables import CONSTRAINT_ALLOWLIST, TABLES_BY_NAME

logger = logging.getLogger(__name__)

TENANT_COLUMN = "tenant_id"


@dataclass
class TableReadiness:
    table: str
    has_not_null: bool
    null_count: int
    can_migrate: bool
    error: str | None = None

    def to_dict(self) -> dict:
        data = asdict(self)
        if data["error"] is None:
            data.pop("error")
        return data


class ConstraintMigrator:

    def __init__(self, allowlist: tuple[str, ...] = CONSTRAINT_ALLOWLIST):
        self.allowlist = allowlist

    def resolve_tables(self, tables=None) -> list[str]:
        if not tables:
            return list(self.allowlist)
        invalid = [t for t in tables if t not in self.allowlist]
        if invalid:
            raise ValidationError(
                f"Tables not eligible for tenant_id constraint: {', '.join(map(str, invalid))}",
                details={"invalid_tables": invalid, "allowed_tables": list(self.allowlist)},
            )
        return list(dict.fromkeys(tables))

    # ── Readiness ────────────────────────────────────────────────────────

    def check_readiness(self, tables=None) -> list[TableReadiness]:
        names = self.resolve_tables(tables)
        inspector = sa_inspect(db.session.connection())
        return [self._table_readiness(inspector, name) for name in names]

    def _table_readiness(self, inspector, name: str) -> TableReadiness:
        try:
            columns = {c["name"]: c for c in inspector.get_columns(name)}
        except NoSuchTableError:
            return TableReadiness(name, False, -1, False, error="table does not exist")

        column = columns.get(TENANT_COLUMN)
        if column is None:
            return TableReadiness(name, False, -1, False, error="tenant_id column does not exist")
        if not column["nullable"]:
            return TableReadiness(name, True, 0, False)

        table = TABLES_BY_NAME[name].table
        try:
            with db.session.begin_nested():
                null_count = db.session.execute(
                    select(func.count()).select_from(table).where(table.c.tenant_id.is_(None))
                ).scalar() or 0
        except SQLAlchemyError as exc:
            logger.warning("Null count failed for %s: %s", name, exc)
            return TableReadiness(name, False, -1, False, error=str(exc))
        return TableReadiness(name, False, null_count, null_count == 0)

    # ── Apply ────────────────────────────────────────────────────────────

    def apply(self, tables=None, *, dry_run: bool = True) -> dict:
        names = self.resolve_tables(tables)
        readiness = self.check_readiness(names)

        blocked = [
            {"table": r.table, "null_count": r.null_count}
            for r in readiness
            if not r.has_not_null and not r.can_migrate
        ]
        to_apply = [r.table for r in readiness if r.can_migrate]
        result = {
            "dry_run": dry_run,
            "requested_tables": names,
            "tables": [r.to_dict() for r in readiness],
            "blocked": blocked,
            "already_not_null": [r.table for r in readiness if r.has_not_null],
            "to_apply": to_apply,
            "applied": [],
            "applied_count": 0,
        }
        if dry_run:
            return result

        if blocked:
            logger.warning("Constraint migration blocked: %s", blocked)
            raise RemediationBlockedError(
                f"{len(blocked)} table(s) not ready for NOT NULL tenant_id", blocked=blocked
            )
        if not to_apply:
            return result

        self._ensure_rebuild_is_safe()
        current = None
        try:
            ops = Operations(MigrationContext.configure(db.session.connection()))
            for table in to_apply:
                current = table
                logger.info("Setting %s.%s NOT NULL", table, TENANT_COLUMN)
                self._tighten_column(ops, table)
            db.session.commit()
        except Exception as exc:
            db.session.rollback()
            message = str(getattr(exc, "orig", None) or exc)
            logger.error("Constraint migration failed on %s, rolled back: %s", current, message)
            raise ConstraintMigrationError(current, message) from exc

        logger.info("Applied NOT NULL tenant_id on %d tables", len(to_apply))
        result["applied"] = to_apply
        result["applied_count"] = len(to_apply)
        return result

    def _tighten_column(self, ops: Operations, table: str) -> None:
        with ops.batch_alter_table(table) as batch_op:
            batch_op.alter_column(
                TENANT_COLUMN,
                existing_type=sa.String(length=36),
                nullable=False,
            )

    @staticmethod
    def _ensure_rebuild_is_safe() -> None:
        """SQLite rebuilds tables by DROP + rename; with foreign keys on,
        the DROP would cascade into child tables."""
        conn = db.session.connection()
        if conn.dialect.name != "sqlite":
            return
        if conn.exec_driver_sql("PRAGMA foreign_keys").scalar():
            raise ValidationError(
                "SQLite foreign key enforcement is on; table rebuilds would cascade deletes. "
                "Run the constraint migration with foreign keys disabled."
            )


constraint_migrator = ConstraintMigrator()
