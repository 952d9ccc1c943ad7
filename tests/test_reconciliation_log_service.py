"""Tests for log listing, unread alerts and dismissals."""

from cms_access.models import EntityKind
from cms_access.services.reconciliation_log_service import ReconciliationLogService
from cms_access.services.reconciliation_service import ReconciliationService
from tests.conftest import make_announcement


def detect(db, resolver, sink, count=2):
    resolver.set("d-closed", False, "Closed")
    for i in range(count):
        make_announcement(db, f"N{i}", department_ids=["d-closed"])
    ReconciliationService(db, resolver, notifier=sink).run(EntityKind.ANNOUNCEMENT)
    return ReconciliationLogService(db).list_entries(EntityKind.ANNOUNCEMENT)


class TestListing:

    def test_filters_by_resolution(self, db, resolver, sink):
        detect(db, resolver, sink)
        service = ReconciliationLogService(db)
        assert len(service.list_entries(resolved=False)) == 2
        assert service.list_entries(resolved=True) == []
        assert service.list_entries(kind=EntityKind.WIKI) == []

    def test_filter_by_entity(self, db, resolver, sink):
        entries = detect(db, resolver, sink)
        service = ReconciliationLogService(db)
        only = service.list_entries(entity_id=entries[0].entity_id)
        assert [e.id for e in only] == [entries[0].id]


class TestDismiss:

    def test_counts_dismissed_already_and_missing(self, db, resolver, sink):
        entries = detect(db, resolver, sink)
        service = ReconciliationLogService(db)

        first = service.dismiss([entries[0].id], "admin-1")
        assert (first.dismissed, first.already_dismissed, first.not_found) == (1, 0, 0)

        second = service.dismiss([entries[0].id, entries[1].id, "nope"], "admin-1")
        assert (second.dismissed, second.already_dismissed, second.not_found) == (1, 1, 1)

    def test_duplicate_ids_in_one_request_count_once(self, db, resolver, sink):
        entries = detect(db, resolver, sink, count=1)
        result = ReconciliationLogService(db).dismiss([entries[0].id, entries[0].id], "admin-1")
        assert result.dismissed == 1

    def test_unread_is_per_admin(self, db, resolver, sink):
        entries = detect(db, resolver, sink)
        service = ReconciliationLogService(db)
        service.dismiss([entries[0].id], "admin-1")

        assert [e.id for e in service.unread("admin-1")] == [entries[1].id]
        assert len(service.unread("admin-2")) == 2

    def test_resolved_entries_are_not_unread(self, db, resolver, sink):
        detect(db, resolver, sink, count=1)
        resolver.set("d-closed", True)
        ReconciliationService(db, resolver, notifier=sink).run(EntityKind.ANNOUNCEMENT)
        assert ReconciliationLogService(db).unread("admin-1") == []
