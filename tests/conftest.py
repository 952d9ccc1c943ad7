"""Shared test fixtures for the cms-access test suite.

All tests run against a throwaway SQLite file (not :memory:, because the
TestClient and the reconciliation thread pools open their own connections).
Tables are created on app import; every test starts from empty tables.
"""

import os
import tempfile
import uuid

# Point the app at the test database before any app imports. Guarded because
# this module is imported both as a conftest and as ``tests.conftest``.
if "CMS_ACCESS_TEST_DB" not in os.environ:
    os.environ["CMS_ACCESS_TEST_DB"] = os.environ.get(
        "TEST_DATABASE_URL",
        f"sqlite:///{os.path.join(tempfile.mkdtemp(prefix='cms_access_test_'), 'test.db')}",
    )
os.environ["DATABASE_URL"] = os.environ["CMS_ACCESS_TEST_DB"]
os.environ["LOG_FORMAT"] = "text"
os.environ["IDENTITY_API_URL"] = ""

import pytest
from sqlalchemy import text
from fastapi.testclient import TestClient

from cms_access.database import get_db, SessionLocal
from cms_access.main import app
from cms_access.models import Announcement, WikiClosure
from cms_access.api.permission_validation import get_identity_resolver, get_notifier
from cms_access.services.identity_resolver import StaticIdentityResolver

# Child tables first so foreign keys never block the delete.
_CLEAN_TABLES = [
    "dismissed_permission_logs",
    "permission_logs",
    "wiki_closures",
    "wiki_nodes",
    "announcements",
]


@pytest.fixture(autouse=True)
def _clean_tables():
    """Empty every table before each test for isolation."""
    db = SessionLocal()
    try:
        for table in _CLEAN_TABLES:
            db.execute(text(f"DELETE FROM {table}"))
        db.commit()
    finally:
        db.close()
    yield


@pytest.fixture()
def db():
    """Per-test database session."""
    session = SessionLocal()
    yield session
    session.close()


class RecordingSink:
    """Notification sink that keeps every alert in memory."""

    def __init__(self):
        self.alerts = []

    def notify_admin(self, reference, invalid_departments):
        self.alerts.append((reference.entity_id, [d["id"] for d in invalid_departments]))


@pytest.fixture()
def sink():
    return RecordingSink()


@pytest.fixture()
def resolver():
    """Empty static directory; tests register departments with ``resolver.set``."""
    return StaticIdentityResolver()


@pytest.fixture()
def client(db, resolver, sink):
    """FastAPI TestClient with the DB session and identity resolver overridden."""

    def _override_get_db():
        yield db

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_identity_resolver] = lambda: resolver
    app.dependency_overrides[get_notifier] = lambda: sink
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def make_announcement(
    db, title="Notice", department_ids=None, rank_ids=None, position_ids=None, employee_ids=None, **overrides
):
    """Factory for announcements, committed."""
    announcement = Announcement(
        id=str(uuid.uuid4()),
        title=title,
        is_public=overrides.pop("is_public", False),
        permission_department_ids=department_ids,
        permission_rank_ids=rank_ids,
        permission_position_ids=position_ids,
        permission_employee_ids=employee_ids,
        **overrides,
    )
    db.add(announcement)
    db.commit()
    return announcement


def closure_rows(db):
    """Every closure row as an (ancestor, descendant, depth) set."""
    return {(r.ancestor_id, r.descendant_id, r.depth) for r in db.query(WikiClosure).all()}
