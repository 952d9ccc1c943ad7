"""Tests for reconciliation runs: resolver batching, detection, auto-resolve and run policy."""

import pytest

from cms_access.models import EntityKind, PermissionLogAction, PermissionLogEntry
from cms_access.schemas.wiki import PermissionSets
from cms_access.services.hierarchy_service import HierarchyService
from cms_access.services.identity_resolver import StaticIdentityResolver
from cms_access.services.reconciliation_service import (
    ReconciliationService,
    _RUN_GUARDS,
    run_all,
    run_safely,
)
from tests.conftest import make_announcement


def logs(db, kind="announcement"):
    db.expire_all()
    return (
        db.query(PermissionLogEntry)
        .filter(PermissionLogEntry.entity_kind == kind)
        .order_by(PermissionLogEntry.detected_at.asc())
        .all()
    )


def service(db, resolver, sink, **options):
    return ReconciliationService(db, resolver, notifier=sink, **options)


class TestResolverBatching:

    def test_fifty_entities_seven_ids_one_call(self, db, resolver, sink):
        pool = [f"d{i}" for i in range(7)]
        for i in range(50):
            make_announcement(db, f"Notice {i}", department_ids=[pool[i % 7], pool[(i + 3) % 7]])

        report = service(db, resolver, sink).run(EntityKind.ANNOUNCEMENT)

        assert report.status == "completed"
        assert report.entities_total == 50
        assert len(resolver.calls) == 1
        assert sorted(resolver.calls[0]) == pool

    def test_no_department_refs_makes_no_call(self, db, resolver, sink):
        make_announcement(db, "Rank only", rank_ids=["r1"])
        report = service(db, resolver, sink).run(EntityKind.ANNOUNCEMENT)
        assert report.status == "noop"
        assert resolver.calls == []

    def test_open_entry_ids_join_the_single_call(self, db, resolver, sink):
        resolver.set("d-old", False, "Old")
        a = make_announcement(db, department_ids=["d-old"])
        service(db, resolver, sink).run(EntityKind.ANNOUNCEMENT)

        # The entity stops referencing d-old, but its open entry still does
        a.permission_department_ids = ["d-new"]
        db.commit()
        resolver.set("d-old", True, "Old")
        resolver.calls.clear()

        report = service(db, resolver, sink).run(EntityKind.ANNOUNCEMENT)
        assert resolver.calls == [["d-new", "d-old"]]
        assert report.auto_resolved == 1


class TestDetection:

    def test_inactive_department_opens_one_entry_and_notifies(self, db, resolver, sink):
        resolver.set("d1", True, "Sales")
        resolver.set("d2", False, "Closed")
        a = make_announcement(db, department_ids=["d1", "d2"])

        report = service(db, resolver, sink).run(EntityKind.ANNOUNCEMENT)

        assert report.detected == 1
        [entry] = logs(db)
        assert entry.entity_id == a.id
        assert entry.action == PermissionLogAction.DETECTED.value
        assert entry.resolved_at is None
        assert entry.invalid_departments == [{"id": "d2", "name": "Closed"}]
        assert entry.snapshot_permissions["valid_departments"] == [{"id": "d1", "name": "Sales"}]
        assert sink.alerts == [(a.id, ["d2"])]

    def test_detection_is_idempotent(self, db, resolver, sink):
        resolver.set("d2", False)
        make_announcement(db, department_ids=["d2"])

        service(db, resolver, sink).run(EntityKind.ANNOUNCEMENT)
        second = service(db, resolver, sink).run(EntityKind.ANNOUNCEMENT)

        assert second.detected == 0
        assert second.skipped_open == 1
        assert len(logs(db)) == 1
        assert len(sink.alerts) == 1

    def test_unknown_id_is_not_drift(self, db, resolver, sink):
        make_announcement(db, department_ids=["d-unknown"])
        report = service(db, resolver, sink).run(EntityKind.ANNOUNCEMENT)
        assert report.detected == 0
        assert logs(db) == []

    def test_deleted_announcements_are_ignored(self, db, resolver, sink):
        from datetime import datetime, timezone
        resolver.set("d2", False)
        make_announcement(db, department_ids=["d2"], deleted_at=datetime.now(timezone.utc))
        report = service(db, resolver, sink).run(EntityKind.ANNOUNCEMENT)
        assert report.status == "noop"

    def test_wiki_checks_folders_only(self, db, resolver, sink):
        resolver.set("d2", False)
        tree = HierarchyService(db)
        restricted = tree.create_folder("HR", is_public=False, permissions=PermissionSets(department_ids=["d2"]))
        tree.create_file("doc.md", parent_id=restricted.id)

        report = service(db, resolver, sink).run(EntityKind.WIKI)

        assert report.entities_total == 1
        [entry] = logs(db, "wiki")
        assert entry.entity_id == restricted.id

    def test_many_entities_across_batches(self, db, resolver, sink):
        resolver.set("d-bad", False)
        for i in range(23):
            make_announcement(db, f"N{i}", department_ids=["d-bad"] if i % 2 == 0 else ["d-ok"])

        report = service(db, resolver, sink, batch_size=5, max_workers=3).run(EntityKind.ANNOUNCEMENT)

        assert report.detected == 12
        assert len(logs(db)) == 12

    def test_progress_reported_in_steps(self, db, resolver, sink):
        for i in range(40):
            make_announcement(db, f"N{i}", department_ids=["d1"])
        seen = []
        svc = service(
            db, resolver, sink, batch_size=4, progress_step=10,
            on_progress=lambda kind, done, total: seen.append((done, total)),
        )
        svc.run(EntityKind.ANNOUNCEMENT)
        assert seen == [(4 * i, 40) for i in range(1, 11)]


class TestAutoResolve:

    def test_round_trip(self, db, resolver, sink):
        resolver.set("d2", False)
        make_announcement(db, department_ids=["d2"])
        service(db, resolver, sink).run(EntityKind.ANNOUNCEMENT)

        resolver.set("d2", True)
        report = service(db, resolver, sink).run(EntityKind.ANNOUNCEMENT)

        assert report.auto_resolved == 1
        assert report.detected == 0
        [entry] = logs(db)
        assert entry.action == PermissionLogAction.RESOLVED.value
        assert entry.resolved_at is not None
        assert entry.resolved_by is None

    def test_partial_reactivation_stays_open(self, db, resolver, sink):
        resolver.set("d2", False)
        resolver.set("d3", False)
        make_announcement(db, department_ids=["d2", "d3"])
        service(db, resolver, sink).run(EntityKind.ANNOUNCEMENT)

        resolver.set("d2", True)
        report = service(db, resolver, sink).run(EntityKind.ANNOUNCEMENT)

        assert report.auto_resolved == 0
        assert logs(db)[0].is_open

    def test_vanished_department_does_not_resolve(self, db, resolver, sink):
        resolver.set("d2", False)
        make_announcement(db, department_ids=["d2"])
        service(db, resolver, sink).run(EntityKind.ANNOUNCEMENT)

        resolver.forget(["d2"])
        report = service(db, resolver, sink).run(EntityKind.ANNOUNCEMENT)
        assert report.auto_resolved == 0

    def test_new_drift_after_resolution_opens_new_entry(self, db, resolver, sink):
        resolver.set("d2", False)
        make_announcement(db, department_ids=["d2"])
        service(db, resolver, sink).run(EntityKind.ANNOUNCEMENT)
        resolver.set("d2", True)
        service(db, resolver, sink).run(EntityKind.ANNOUNCEMENT)
        resolver.set("d2", False)
        service(db, resolver, sink).run(EntityKind.ANNOUNCEMENT)

        entries = logs(db)
        assert [e.action for e in entries] == ["resolved", "detected"]


class TestRunPolicy:

    def test_resolver_failure_marks_run_failed(self, db, sink):
        make_announcement(db, department_ids=["d1"])
        report = service(db, StaticIdentityResolver(fail=True), sink).run(EntityKind.ANNOUNCEMENT)
        assert report.status == "failed"
        assert report.error_message
        assert logs(db) == []

    def test_per_entity_failure_does_not_abort_batch(self, db, resolver):
        class BrokenSink:
            def notify_admin(self, reference, invalid_departments):
                raise RuntimeError("mail server down")

        resolver.set("d2", False)
        for i in range(3):
            make_announcement(db, f"N{i}", department_ids=["d2"])

        report = ReconciliationService(db, resolver, notifier=BrokenSink()).run(EntityKind.ANNOUNCEMENT)

        assert report.status == "completed"
        assert report.errors == 3
        assert len(logs(db)) == 3

    def test_overlapping_run_is_skipped(self, db, resolver, sink):
        make_announcement(db, department_ids=["d1"])
        guard = _RUN_GUARDS[EntityKind.ANNOUNCEMENT.value]
        guard.acquire()
        try:
            report = service(db, resolver, sink).run(EntityKind.ANNOUNCEMENT)
        finally:
            guard.release()
        assert report.status == "skipped"
        assert resolver.calls == []

    def test_run_safely_never_raises(self, db):
        class ExplodingResolver:
            def resolve_departments(self, department_ids):
                raise RuntimeError("boom")

        make_announcement(db, department_ids=["d1"])
        report = run_safely(EntityKind.ANNOUNCEMENT, ExplodingResolver(), db=db)
        assert report.status == "failed"
        assert "boom" in report.error_message

    def test_run_safely_survives_session_factory_failure(self, resolver):
        def broken_factory():
            raise RuntimeError("no database")

        report = run_safely(EntityKind.WIKI, resolver, session_factory=broken_factory)
        assert report.status == "failed"

    def test_guard_released_after_crash(self, db, resolver):
        class ExplodingResolver:
            def resolve_departments(self, department_ids):
                raise RuntimeError("boom")

        make_announcement(db, department_ids=["d1"])
        run_safely(EntityKind.ANNOUNCEMENT, ExplodingResolver(), db=db)
        assert run_safely(EntityKind.ANNOUNCEMENT, resolver, db=db).status == "completed"

    def test_run_all_covers_every_kind(self, db, resolver):
        resolver.set("d2", False)
        make_announcement(db, department_ids=["d2"])
        reports = run_all(resolver)
        assert {r.entity_kind: r.status for r in reports} == {"wiki": "noop", "announcement": "completed"}
        assert len(logs(db)) == 1
