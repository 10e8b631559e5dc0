"""
Tenancy health tracking — warning aggregation and strict-mode readiness.

Two interchangeable warning stores share one query surface:

    InMemoryWarningStore   bounded deque, lost on restart, one per process
    PersistedWarningStore  ``tenancy_warnings`` table, queryable history

``create_app`` picks one from TENANCY_WARN_PERSIST and wraps it in a
``HealthTracker`` stored at ``app.extensions["tenancy_health"]``.

``compute_readiness`` is a pure function over orphan counts and warning
stats; it holds no state and does no I/O.
"""

import logging
from abc import ABC, abstractmethod
from collections import Counter, deque
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from flask import current_app
from sqlalchemy import func, insert, select

from taskhub.core.exceptions import PersistenceDisabledError
from taskhub.models import db
from taskhub.models.tenancy import TenancyWarning

logger = logging.getLogger(__name__)

CRITICAL_TABLES = ("workspaces", "clients", "projects", "tasks", "users", "teams")
WARNING_THRESHOLD_24H = 5
MAX_WARNINGS_PAGE = 500
DEFAULT_WARNINGS_PAGE = 100

_WARNINGS = TenancyWarning.__table__


@dataclass(frozen=True)
class WarningRecord:
    route: str
    method: str
    warn_type: str
    tenant_id: str | None = None
    actor_user_id: str | None = None
    resource_id: str | None = None
    notes: str | None = None
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class WarningStats:
    total: int
    by_type: dict

    def to_dict(self) -> dict:
        return {"total": self.total, "by_type": dict(self.by_type)}


@dataclass(frozen=True)
class Readiness:
    can_enable_strict: bool
    blockers: tuple

    def to_dict(self) -> dict:
        return {"can_enable_strict": self.can_enable_strict, "blockers": list(self.blockers)}


# ═══════════════════════════════════════════════════════════════
# Stores
# ═══════════════════════════════════════════════════════════════
class WarningStore(ABC):
    persistent = False

    @abstractmethod
    def record(self, warning: WarningRecord) -> None: ...

    @abstractmethod
    def stats_since(self, since: datetime | None, tenant_id: str | None = None) -> WarningStats: ...

    @abstractmethod
    def top_routes(self, limit: int) -> list[dict]: ...

    def list_warnings(self, **filters) -> dict:
        raise PersistenceDisabledError()


class InMemoryWarningStore(WarningStore):
    """Process-local ring buffer; the oldest warnings fall off first."""

    def __init__(self, max_size: int = 1000):
        self._buffer: deque[WarningRecord] = deque(maxlen=max_size)

    def record(self, warning: WarningRecord) -> None:
        self._buffer.append(warning)

    def stats_since(self, since, tenant_id=None) -> WarningStats:
        by_type: Counter = Counter()
        for w in self._buffer:
            if since is not None and w.occurred_at < since:
                continue
            if tenant_id is not None and w.tenant_id != tenant_id:
                continue
            by_type[w.warn_type] += 1
        return WarningStats(total=sum(by_type.values()), by_type=dict(by_type))

    def top_routes(self, limit: int) -> list[dict]:
        counts = Counter((w.route, w.method) for w in self._buffer)
        return [
            {"route": route, "method": method, "count": count}
            for (route, method), count in counts.most_common(limit)
        ]

    def clear(self) -> None:
        """Drop all buffered warnings (for testing)."""
        self._buffer.clear()

    def __len__(self) -> int:
        return len(self._buffer)


class PersistedWarningStore(WarningStore):
    """Warnings in the ``tenancy_warnings`` table.

    The store works on its own connection and never commits or rolls back
    ``db.session``: a warning is committed by itself, and whatever the
    calling handler has pending stays the handler's to commit or discard.
    """

    persistent = True

    def __init__(self, engine=None):
        self._engine = engine

    @property
    def engine(self):
        return self._engine if self._engine is not None else db.engine

    def record(self, warning: WarningRecord) -> None:
        with self.engine.begin() as conn:
            conn.execute(insert(_WARNINGS).values(
                route=warning.route,
                method=warning.method,
                warn_type=warning.warn_type,
                tenant_id=warning.tenant_id,
                actor_user_id=warning.actor_user_id,
                resource_id=warning.resource_id,
                notes=warning.notes,
                occurred_at=warning.occurred_at,
            ))

    def _fetch(self, stmt):
        with self.engine.connect() as conn:
            return conn.execute(stmt).all()

    def stats_since(self, since, tenant_id=None) -> WarningStats:
        stmt = select(_WARNINGS.c.warn_type, func.count(_WARNINGS.c.id)).group_by(
            _WARNINGS.c.warn_type
        )
        if since is not None:
            stmt = stmt.where(_WARNINGS.c.occurred_at >= since)
        if tenant_id is not None:
            stmt = stmt.where(_WARNINGS.c.tenant_id == tenant_id)
        by_type = {warn_type: count for warn_type, count in self._fetch(stmt)}
        return WarningStats(total=sum(by_type.values()), by_type=by_type)

    def top_routes(self, limit: int) -> list[dict]:
        count = func.count(_WARNINGS.c.id).label("count")
        rows = self._fetch(
            select(_WARNINGS.c.route, _WARNINGS.c.method, count)
            .group_by(_WARNINGS.c.route, _WARNINGS.c.method)
            .order_by(count.desc())
            .limit(limit)
        )
        return [{"route": r.route, "method": r.method, "count": r.count} for r in rows]

    def list_warnings(self, *, from_=None, to=None, tenant_id=None,
                      limit=DEFAULT_WARNINGS_PAGE, offset=0) -> dict:
        limit = min(limit or DEFAULT_WARNINGS_PAGE, MAX_WARNINGS_PAGE)
        offset = max(offset or 0, 0)

        filters = []
        if from_ is not None:
            filters.append(_WARNINGS.c.occurred_at >= from_)
        if to is not None:
            filters.append(_WARNINGS.c.occurred_at <= to)
        if tenant_id:
            filters.append(_WARNINGS.c.tenant_id == tenant_id)

        with self.engine.connect() as conn:
            total = conn.execute(
                select(func.count(_WARNINGS.c.id)).where(*filters)
            ).scalar() or 0
            rows = conn.execute(
                select(_WARNINGS)
                .where(*filters)
                .order_by(_WARNINGS.c.occurred_at.desc())
                .limit(limit)
                .offset(offset)
            ).mappings().all()
        return {
            "warnings": [_warning_dict(row) for row in rows],
            "total": total,
            "limit": limit,
            "offset": offset,
        }


def _warning_dict(row) -> dict:
    data = dict(row)
    occurred_at = data.get("occurred_at")
    data["occurred_at"] = occurred_at.isoformat() if occurred_at else None
    return data


# ═══════════════════════════════════════════════════════════════
# Tracker
# ═══════════════════════════════════════════════════════════════
class HealthTracker:
    """Facade over a warning store, used by enforcement and the API."""

    def __init__(self, store: WarningStore):
        self.store = store

    @property
    def persistence_enabled(self) -> bool:
        return self.store.persistent

    def record_warning(self, *, route, method, warn_type, tenant_id=None,
                       actor_user_id=None, resource_id=None, notes=None) -> None:
        warning = WarningRecord(
            route=route,
            method=method,
            warn_type=warn_type,
            tenant_id=tenant_id,
            actor_user_id=actor_user_id,
            resource_id=resource_id,
            notes=notes,
        )
        logger.warning(
            "Tenancy warning %s on %s %s", warn_type, method, route,
            extra={"warn_type": warn_type, "tenant_id": tenant_id, "path": route, "method": method},
        )
        try:
            self.store.record(warning)
        except Exception:
            # A broken warning store must not turn a warning into an outage
            logger.exception("Failed to record tenancy warning %s", warn_type)

    def stats_since(self, since: datetime | None, tenant_id: str | None = None) -> WarningStats:
        return self.store.stats_since(since, tenant_id=tenant_id)

    def window_stats(self, now: datetime | None = None) -> dict:
        now = now or datetime.now(timezone.utc)
        return {
            "last_24_hours": self.stats_since(now - timedelta(hours=24)).to_dict(),
            "last_7_days": self.stats_since(now - timedelta(days=7)).to_dict(),
            "total": self.stats_since(None).to_dict(),
        }

    def top_routes(self, limit: int = 10) -> list[dict]:
        return self.store.top_routes(limit)

    def list_warnings(self, **filters) -> dict:
        return self.store.list_warnings(**filters)


def build_health_tracker(persist: bool, buffer_size: int = 1000) -> HealthTracker:
    store = PersistedWarningStore() if persist else InMemoryWarningStore(max_size=buffer_size)
    return HealthTracker(store)


def get_health_tracker() -> HealthTracker:
    return current_app.extensions["tenancy_health"]


# ═══════════════════════════════════════════════════════════════
# Readiness
# ═══════════════════════════════════════════════════════════════
def compute_readiness(table_counts: Mapping[str, int], warnings_24h: WarningStats | int) -> Readiness:
    """Decide whether strict enforcement can be switched on.

    Blockers, in stable order:
      * a critical table with orphan rows (or one that could not be scanned)
      * more than WARNING_THRESHOLD_24H warnings in the last 24 hours
    """
    blockers = []
    for table in CRITICAL_TABLES:
        count = table_counts.get(table, 0)
        if count > 0:
            blockers.append(f"{table} has {count} rows without tenant_id")
        elif count < 0:
            blockers.append(f"{table} could not be scanned for missing tenant_id")

    recent = warnings_24h.total if isinstance(warnings_24h, WarningStats) else int(warnings_24h)
    if recent > WARNING_THRESHOLD_24H:
        blockers.append(
            f"{recent} tenancy warnings in last 24 hours (threshold: {WARNING_THRESHOLD_24H})"
        )

    return Readiness(can_enable_strict=not blockers, blockers=tuple(blockers))
