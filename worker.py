"""
Polling worker for scheduled permission-drift reconciliation.

Wakes every WORKER_POLL_INTERVAL seconds, checks which entity kinds are due
according to their own interval, and reconciles each due kind through
``run_safely``. A failed or crashed run is logged and retried on the next
due tick; the loop itself only stops on Ctrl-C.

Every kind is reconciled once on startup.

Usage:
    python worker.py
"""

import logging
import time
from datetime import datetime, timezone
from typing import Dict, List, Optional

from cms_access.core.config import settings
from cms_access.core.logging_config import setup_logging
from cms_access.database import SessionLocal, init_db
from cms_access.models import EntityKind
from cms_access.services.identity_resolver import IdentityResolver, build_identity_resolver
from cms_access.services.reconciliation_service import RunReport, run_safely

logger = logging.getLogger("worker")


def kind_intervals() -> Dict[EntityKind, int]:
    """Seconds between runs, per kind."""
    return {
        EntityKind.WIKI: settings.wiki_reconcile_interval_seconds,
        EntityKind.ANNOUNCEMENT: settings.announcement_reconcile_interval_seconds,
    }


def due_kinds(
    last_runs: Dict[EntityKind, Optional[datetime]],
    now: datetime,
    intervals: Dict[EntityKind, int],
) -> List[EntityKind]:
    """Kinds never run, or whose interval has elapsed since their last run."""
    due = []
    for kind, interval in intervals.items():
        last = last_runs.get(kind)
        if last is None or (now - last).total_seconds() >= interval:
            due.append(kind)
    return due


def reconcile_due(
    resolver: IdentityResolver,
    last_runs: Dict[EntityKind, Optional[datetime]],
    now: Optional[datetime] = None,
    intervals: Optional[Dict[EntityKind, int]] = None,
) -> List[RunReport]:
    """Run every due kind and stamp its last-run time. Never raises."""
    now = now or datetime.now(timezone.utc)
    reports = []
    for kind in due_kinds(last_runs, now, intervals or kind_intervals()):
        report = run_safely(kind, resolver, session_factory=SessionLocal)
        last_runs[kind] = now
        logger.info(
            f"Reconciliation {kind.value}: {report.status}",
            extra={
                "entity_kind": kind.value,
                "status": report.status,
                "detected": report.detected,
                "auto_resolved": report.auto_resolved,
                "errors": report.errors,
            },
        )
        reports.append(report)
    return reports


def main() -> None:
    """Reconcile due kinds forever."""
    setup_logging(log_level=settings.log_level, log_format=settings.log_format)
    init_db()

    resolver = build_identity_resolver(settings)
    intervals = kind_intervals()
    last_runs: Dict[EntityKind, Optional[datetime]] = {kind: None for kind in intervals}

    logger.info(f"Worker started, polling every {settings.worker_poll_interval}s")
    for kind, interval in intervals.items():
        logger.info(f"{kind.value} reconcile interval: {interval}s")

    while True:
        try:
            reconcile_due(resolver, last_runs, intervals=intervals)
            time.sleep(settings.worker_poll_interval)
        except KeyboardInterrupt:
            logger.info("Worker shutting down")
            break
        except Exception as e:
            logger.error(f"Worker error: {e}")
            time.sleep(settings.worker_poll_interval)


if __name__ == "__main__":
    main()
