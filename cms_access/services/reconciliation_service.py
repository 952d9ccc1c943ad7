"""Permission-drift reconciliation runs.

One run handles one entity kind:

    1. list every live permission-bearing entity of the kind
    2. union their department ids with the invalid ids of open log entries
    3. resolve the union with a single identity-source call
    4. auto-resolve open entries whose departments are all active again
    5. detect new drift in fixed-size batches, evaluated on a thread pool

The department map returned in step 3 is passed down explicitly and lives for
one run only. Worker threads only classify plain ``PermissionReference``
values; every database read and write stays on the run's own session.
"""

import logging
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.logging_config import run_id_var
from ..exceptions import PerEntityProcessingError, ResolverUnavailableError
from ..models import EntityKind
from .drift_detector import DepartmentMap, DriftFinding, detect_drift
from .identity_resolver import IdentityResolver
from .notifications import LoggingNotificationSink, NotificationSink
from .permission_sources import PermissionReference, PermissionReferenceSource, source_for
from .reconciliation_log_service import ReconciliationLogService

logger = logging.getLogger(__name__)

STATUS_COMPLETED = "completed"
STATUS_NOOP = "noop"
STATUS_FAILED = "failed"
STATUS_SKIPPED = "skipped"

# One in-flight run per kind per process; a second caller is skipped, not queued.
_RUN_GUARDS: Dict[str, threading.Lock] = {kind.value: threading.Lock() for kind in EntityKind}

ProgressCallback = Callable[[str, int, int], None]


@dataclass
class RunReport:
    run_id: str
    entity_kind: str
    status: str
    started_at: datetime
    entities_total: int = 0
    department_ids_checked: int = 0
    auto_resolved: int = 0
    detected: int = 0
    skipped_open: int = 0
    errors: int = 0
    error_message: Optional[str] = None
    finished_at: Optional[datetime] = None

    def finish(self, status: Optional[str] = None) -> "RunReport":
        if status is not None:
            self.status = status
        self.finished_at = datetime.now(timezone.utc)
        return self

    def as_dict(self) -> dict:
        return asdict(self)


def _new_report(kind: EntityKind) -> RunReport:
    return RunReport(
        run_id=uuid.uuid4().hex[:12],
        entity_kind=kind.value,
        status=STATUS_COMPLETED,
        started_at=datetime.now(timezone.utc),
    )


class ReconciliationService:
    """Runs drift reconciliation for one kind at a time on one session."""

    def __init__(
        self,
        db: Session,
        resolver: IdentityResolver,
        notifier: Optional[NotificationSink] = None,
        batch_size: Optional[int] = None,
        max_workers: Optional[int] = None,
        progress_step: Optional[int] = None,
        on_progress: Optional[ProgressCallback] = None,
    ):
        self.db = db
        self.resolver = resolver
        self.notifier = notifier or LoggingNotificationSink()
        self.batch_size = batch_size or settings.reconcile_batch_size
        self.max_workers = max_workers or settings.reconcile_workers
        self.progress_step = progress_step or settings.reconcile_progress_step
        self.on_progress = on_progress
        self.log_service = ReconciliationLogService(db)

    def run(self, kind: EntityKind, source: Optional[PermissionReferenceSource] = None) -> RunReport:
        """Reconcile every entity of *kind*.

        Returns a ``skipped`` report when a run for *kind* is already in
        flight and a ``failed`` one when the identity source is unavailable.
        Other errors propagate; see ``run_safely``.
        """
        kind = EntityKind(kind)
        report = _new_report(kind)
        guard = _RUN_GUARDS[kind.value]
        if not guard.acquire(blocking=False):
            logger.warning("Reconciliation already running; skipping", extra={"entity_kind": kind.value})
            return report.finish(STATUS_SKIPPED)

        token = run_id_var.set(report.run_id)
        try:
            self._run(kind, source or source_for(kind, self.db), report)
        finally:
            run_id_var.reset(token)
            guard.release()
        return report

    def _run(self, kind: EntityKind, source: PermissionReferenceSource, report: RunReport) -> None:
        logger.info("Permission reconciliation started", extra={"entity_kind": kind.value})

        references = source.list_all()
        report.entities_total = len(references)

        department_ids = set()
        for reference in references:
            department_ids.update(reference.department_ids)
        department_ids.update(self.log_service.open_invalid_ids(kind))
        report.department_ids_checked = len(department_ids)

        if not department_ids:
            logger.info("No department references; nothing to check", extra={"entity_kind": kind.value})
            report.finish(STATUS_NOOP)
            return

        try:
            department_map = self.resolver.resolve_departments(sorted(department_ids))
        except ResolverUnavailableError as exc:
            logger.error(
                "Identity source unavailable; reconciliation aborted",
                extra={"entity_kind": kind.value, "error": exc.message},
            )
            report.error_message = exc.message
            report.finish(STATUS_FAILED)
            return

        report.auto_resolved = len(self.log_service.auto_resolve(kind, department_map))

        open_ids = self.log_service.open_entity_ids(kind)
        candidates: List[PermissionReference] = []
        for reference in references:
            if not reference.has_department_refs:
                continue
            if reference.entity_id in open_ids:
                report.skipped_open += 1
                continue
            candidates.append(reference)

        self._detect(candidates, department_map, report)
        report.finish()
        logger.info(
            "Permission reconciliation finished",
            extra={
                "entity_kind": kind.value,
                "entities": report.entities_total,
                "auto_resolved": report.auto_resolved,
                "detected": report.detected,
                "errors": report.errors,
            },
        )

    def _detect(
        self,
        candidates: List[PermissionReference],
        department_map: DepartmentMap,
        report: RunReport,
    ) -> None:
        total = len(candidates)
        if not total:
            return

        processed = 0
        next_mark = self.progress_step
        workers = max(1, min(self.max_workers, self.batch_size, total))

        with ThreadPoolExecutor(max_workers=workers) as executor:
            for start in range(0, total, self.batch_size):
                batch = candidates[start:start + self.batch_size]
                for finding in self._evaluate_batch(executor, batch, department_map, report):
                    self._persist(finding, report)

                processed += len(batch)
                percent = processed * 100 // total
                if percent >= next_mark:
                    logger.info(
                        "Reconciliation progress %d%% (%d/%d)", percent, processed, total,
                        extra={"entity_kind": report.entity_kind},
                    )
                    if self.on_progress is not None:
                        self.on_progress(report.entity_kind, processed, total)
                    while next_mark <= percent:
                        next_mark += self.progress_step

    def _evaluate_batch(
        self,
        executor: ThreadPoolExecutor,
        batch: List[PermissionReference],
        department_map: DepartmentMap,
        report: RunReport,
    ) -> List[DriftFinding]:
        futures = {
            executor.submit(detect_drift, reference, department_map): reference
            for reference in batch
        }
        findings: List[DriftFinding] = []
        for future in as_completed(futures):
            reference = futures[future]
            try:
                finding = future.result()
            except Exception as e:
                self._record_failure(reference, e, report)
                continue
            if finding is not None:
                findings.append(finding)
        # Persist in listing order regardless of completion order
        order = {id(reference): index for index, reference in enumerate(batch)}
        findings.sort(key=lambda f: order[id(f.reference)])
        return findings

    def _persist(self, finding: DriftFinding, report: RunReport) -> None:
        try:
            entry = self.log_service.record_detected(finding)
            if entry is None:
                return
            report.detected += 1
            self.notifier.notify_admin(finding.reference, finding.invalid)
        except Exception as e:
            self.db.rollback()
            self._record_failure(finding.reference, e, report)

    def _record_failure(self, reference: PermissionReference, error: Exception, report: RunReport) -> None:
        failure = PerEntityProcessingError(reference.entity_kind, reference.entity_id, error)
        report.errors += 1
        logger.error(
            failure.message,
            extra={"entity_id": reference.entity_id, "entity_kind": reference.entity_kind},
            exc_info=(type(error), error, error.__traceback__),
        )


def run_safely(
    kind: EntityKind,
    resolver: IdentityResolver,
    db: Optional[Session] = None,
    session_factory: Optional[Callable[[], Session]] = None,
    **options,
) -> RunReport:
    """Run reconciliation for *kind* and never raise.

    Uses *db* when given; otherwise opens (and closes) a session from
    *session_factory*, defaulting to ``SessionLocal``. Any exception is
    logged and turned into a ``failed`` report.
    """
    kind = EntityKind(kind)
    own_session = db is None
    try:
        if own_session:
            if session_factory is None:
                from ..database import SessionLocal
                session_factory = SessionLocal
            db = session_factory()
        try:
            return ReconciliationService(db, resolver, **options).run(kind)
        finally:
            if own_session:
                db.close()
    except Exception as e:
        logger.exception("Reconciliation run crashed", extra={"entity_kind": kind.value})
        if db is not None and not own_session:
            db.rollback()
        report = _new_report(kind)
        report.error_message = str(e)
        return report.finish(STATUS_FAILED)


def run_all(
    resolver: IdentityResolver,
    session_factory: Optional[Callable[[], Session]] = None,
    kinds: Optional[List[EntityKind]] = None,
    **options,
) -> List[RunReport]:
    """Run every kind concurrently, each on its own session. Never raises."""
    kinds = [EntityKind(kind) for kind in (kinds or list(EntityKind))]
    with ThreadPoolExecutor(max_workers=len(kinds)) as executor:
        futures = [
            executor.submit(run_safely, kind, resolver, session_factory=session_factory, **options)
            for kind in kinds
        ]
        return [future.result() for future in futures]
