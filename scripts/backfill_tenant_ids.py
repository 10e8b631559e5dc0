#!/usr/bin/env python3
"""
Tenant backfill for rows without tenant_id.

Strategies:
  relationship  infer the tenant from parent rows (default, preferred)
  quarantine    move every orphan to the quarantine tenant
  default       assign every orphan to the tenant with slug DEFAULT_TENANT_SLUG

Runs as a dry run unless --apply is given together with --confirm FIX_ORPHANS.

Usage:
    python scripts/backfill_tenant_ids.py [--strategy relationship] [--apply --confirm FIX_ORPHANS]
"""

import argparse
import json
import logging
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

logging.basicConfig(level=logging.INFO, format="%(levelname)s  %(message)s")
logger = logging.getLogger("tenant_backfill")

CONFIRM_TEXT = "FIX_ORPHANS"


def main(strategy: str, apply: bool) -> int:
    from taskhub import create_app
    from taskhub.services.orphan_remediation import orphan_remediator

    app = create_app()

    with app.app_context():
        logger.info("=" * 60)
        logger.info("Tenant backfill — strategy=%s mode=%s", strategy, "APPLY" if apply else "DRY RUN")
        logger.info("=" * 60)

        dry_run = not apply
        if strategy == "default":
            result = orphan_remediator.backfill_default_tenant(dry_run=dry_run)
        elif strategy == "relationship":
            result = orphan_remediator.backfill_by_relationship(dry_run=dry_run)
        else:
            result = orphan_remediator.quarantine_orphans(dry_run=dry_run)

        print(json.dumps(result, indent=2, default=str))
        return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Backfill tenant_id on orphaned rows")
    parser.add_argument("--strategy", choices=("relationship", "quarantine", "default"),
                        default="relationship")
    parser.add_argument("--apply", action="store_true", help="Write changes (default: dry run)")
    parser.add_argument("--confirm", default="", help=f"Must be {CONFIRM_TEXT} with --apply")
    args = parser.parse_args()
    if args.apply and args.confirm != CONFIRM_TEXT:
        parser.error(f"--apply requires --confirm {CONFIRM_TEXT}")
    sys.exit(main(args.strategy, args.apply))
