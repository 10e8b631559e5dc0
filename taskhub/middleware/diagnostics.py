"""
Startup diagnostics — runs once when the Flask app starts.

Checks database connectivity, reports the enforcement mode and warns about
tenant-owned rows that still have no tenant_id.
"""

import logging
import sys

from flask import Flask

from taskhub.models import db
from taskhub.services.orphan_detector import orphan_detector

logger = logging.getLogger(__name__)


def run_startup_diagnostics(app: Flask):
    """Run diagnostic checks during app startup (inside app context)."""
    if app.config.get("TESTING"):
        return  # skip during tests for speed

    issues: list[str] = []

    with app.app_context():
        py = f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}"

        db_status = "ok"
        db_uri = str(app.config.get("SQLALCHEMY_DATABASE_URI", ""))
        db_type = "PostgreSQL" if "postgresql" in db_uri else "SQLite" if "sqlite" in db_uri else "unknown"
        try:
            db.session.execute(db.text("SELECT 1"))
        except Exception as exc:
            db_status = "FAILED"
            issues.append(f"Database unreachable: {exc}")

        enforcement = app.extensions["tenancy_enforcement"].mode
        health = app.extensions["tenancy_health"]

        orphan_total = "?"
        if db_status == "ok":
            counts = orphan_detector.counts()
            orphan_total = sum(c for c in counts.values() if c > 0)
            for table, count in counts.items():
                if count > 0:
                    issues.append(f"{table} has {count} rows without tenant_id")
                elif count < 0:
                    issues.append(f"{table} could not be scanned for tenant_id")
        db.session.rollback()

        banner = f"""
╔══════════════════════════════════════════════════════════════╗
║  TaskHub — Startup Diagnostics                               ║
╠══════════════════════════════════════════════════════════════╣
║  Python      : {py:<46s}║
║  Debug       : {str(app.debug):<46s}║
║  Database    : {f"{db_type} ({db_status})":<46s}║
║  Enforcement : {enforcement:<46s}║
║  Warnings    : {"persisted" if health.persistence_enabled else "in-memory":<46s}║
║  Orphan rows : {str(orphan_total):<46s}║
╚══════════════════════════════════════════════════════════════╝"""
        logger.info(banner)

        if issues:
            logger.warning("Startup issues detected:")
            for issue in issues:
                logger.warning("  ⚠ %s", issue)
        else:
            logger.info("✅ All startup checks passed")
