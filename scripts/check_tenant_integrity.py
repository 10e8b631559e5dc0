#!/usr/bin/env python3
"""
Tenant Data Integrity Check.

Reports:
  1. Rows without tenant_id in every tenant-owned table (with samples)
  2. Users without a tenant, split into super users and ordinary users
  3. Child rows whose tenant_id differs from their parent's
  4. NOT NULL readiness per constraint-eligible table

Exit code is 1 when any orphan or mismatch is found, so the script can gate
a deployment pipeline.

Usage:
    python scripts/check_tenant_integrity.py
"""

import logging
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

logging.basicConfig(level=logging.INFO, format="%(levelname)s  %(message)s")
logger = logging.getLogger("integrity_check")


def main() -> int:
    from taskhub import create_app
    from taskhub.services.constraint_migrator import constraint_migrator
    from taskhub.services.orphan_detector import orphan_detector
    from taskhub.services.orphan_remediation import orphan_remediator

    app = create_app()

    with app.app_context():
        logger.info("=" * 60)
        logger.info("Tenant Data Integrity Check")
        logger.info("=" * 60)

        errors = 0

        logger.info("\n[Check 1] Rows without tenant_id")
        for record in orphan_detector.detect():
            if record.missing_count < 0:
                logger.error("  ❌ %-20s scan failed: %s", record.table, record.error)
                errors += 1
            elif record.missing_count == 0:
                logger.info("  ✅ %-20s clean", record.table)
            else:
                logger.warning("  ⚠️  %-20s %d rows, e.g. %s", record.table,
                               record.missing_count, [s["id"] for s in record.sample_rows])
                errors += 1

        logger.info("\n[Check 2] Users without tenant")
        users = orphan_remediator.users_summary()
        logger.info("  super users (allowed): %d", users["super_users_with_null_tenant_id"])
        if users["non_super_users_with_null_tenant_id"]:
            logger.warning("  ⚠️  ordinary users: %d, e.g. %s",
                           users["non_super_users_with_null_tenant_id"],
                           users["non_super_user_sample_ids"])

        logger.info("\n[Check 3] Parent/child tenant consistency")
        mismatches = orphan_detector.detect_mismatches()
        for m in mismatches:
            logger.error("  ❌ %-20s %d rows differ from %s via %s",
                         m["table"], m["count"], m["parent"], m["join_key"])
            errors += 1
        if not mismatches:
            logger.info("  ✅ no mismatches")

        logger.info("\n[Check 4] NOT NULL readiness")
        for r in constraint_migrator.check_readiness():
            if r.has_not_null:
                logger.info("  ✅ %-20s already NOT NULL", r.table)
            elif r.can_migrate:
                logger.info("  🟢 %-20s ready", r.table)
            else:
                logger.info("  ⛔ %-20s %d nulls", r.table, r.null_count)

        logger.info("\n%s", "=" * 60)
        logger.info("Result: %d problem(s)", errors)
        return 1 if errors else 0


if __name__ == "__main__":
    sys.exit(main())
