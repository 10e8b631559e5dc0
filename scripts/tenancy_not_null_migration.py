#!/usr/bin/env python3
"""
Promote tenant_id to NOT NULL on constraint-eligible tables.

All requested tables are altered in one transaction.  The run aborts before
any DDL when a table still holds null tenant ids.

SQLite rebuilds tables to change nullability, so this script turns off
SQLite foreign key enforcement for its own connections.

Usage:
    python scripts/tenancy_not_null_migration.py                       # readiness only
    python scripts/tenancy_not_null_migration.py --apply --confirm YES [--tables tasks projects]
"""

import argparse
import json
import logging
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

logging.basicConfig(level=logging.INFO, format="%(levelname)s  %(message)s")
logger = logging.getLogger("not_null_migration")


def main(tables: list[str] | None, apply: bool) -> int:
    import taskhub
    from taskhub import create_app
    from taskhub.core.exceptions import (
        ConstraintMigrationError,
        RemediationBlockedError,
        ValidationError,
    )
    from taskhub.services.constraint_migrator import constraint_migrator

    taskhub._SQLITE_FK_ENFORCEMENT = False
    app = create_app()

    with app.app_context():
        logger.info("Mode: %s", "APPLY" if apply else "DRY RUN")
        try:
            result = constraint_migrator.apply(tables, dry_run=not apply)
        except ValidationError as exc:
            logger.error("%s %s", exc, exc.details)
            return 2
        except RemediationBlockedError as exc:
            logger.error("%s", exc)
            for b in exc.blocked:
                logger.error("  ⛔ %-20s %d nulls", b["table"], b["null_count"])
            return 1
        except ConstraintMigrationError as exc:
            logger.error("%s (rolled back)", exc)
            return 1

        print(json.dumps(result, indent=2))
        return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Set tenant_id NOT NULL")
    parser.add_argument("--tables", nargs="*", help="Subset of allowlisted tables")
    parser.add_argument("--apply", action="store_true", help="Execute DDL (default: dry run)")
    parser.add_argument("--confirm", default="", help="Must be YES with --apply")
    args = parser.parse_args()
    if args.apply and args.confirm != "YES":
        parser.error("--apply requires --confirm YES")
    sys.exit(main(args.tables or None, args.apply))
