"""Tests for the reconciliation worker's scheduling."""

from datetime import datetime, timedelta, timezone

from cms_access.models import EntityKind
from cms_access.services.identity_resolver import StaticIdentityResolver
from tests.conftest import make_announcement
from worker import due_kinds, reconcile_due

INTERVALS = {EntityKind.WIKI: 3600, EntityKind.ANNOUNCEMENT: 60}


class TestDueKinds:

    def test_never_run_is_due(self):
        now = datetime.now(timezone.utc)
        assert due_kinds({}, now, INTERVALS) == [EntityKind.WIKI, EntityKind.ANNOUNCEMENT]

    def test_each_kind_keeps_its_own_interval(self):
        now = datetime.now(timezone.utc)
        last = now - timedelta(seconds=120)
        assert due_kinds({EntityKind.WIKI: last, EntityKind.ANNOUNCEMENT: last}, now, INTERVALS) == [
            EntityKind.ANNOUNCEMENT
        ]


class TestReconcileDue:

    def test_runs_due_kinds_and_stamps_them(self, db):
        resolver = StaticIdentityResolver()
        resolver.set("d-closed", False)
        make_announcement(db, department_ids=["d-closed"])
        now = datetime.now(timezone.utc)
        last_runs = {EntityKind.WIKI: now, EntityKind.ANNOUNCEMENT: None}

        reports = reconcile_due(resolver, last_runs, now=now, intervals=INTERVALS)

        assert [(r.entity_kind, r.status, r.detected) for r in reports] == [("announcement", "completed", 1)]
        assert last_runs[EntityKind.ANNOUNCEMENT] == now

    def test_failed_run_does_not_raise(self):
        resolver = StaticIdentityResolver(fail=True)
        reports = reconcile_due(resolver, {}, intervals=INTERVALS)
        assert {r.status for r in reports} <= {"noop", "failed"}
