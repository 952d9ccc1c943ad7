"""Tests for the HTTP surface: wiki routes, permission validation and logs."""

from tests.conftest import make_announcement


def create(client, name, kind="folder", **extra):
    resp = client.post("/api/wiki", json={"name": name, "kind": kind, **extra})
    assert resp.status_code == 201, resp.text
    return resp.json()


class TestWikiRoutes:

    def test_breadcrumb(self, client):
        root = create(client, "Root")
        child = create(client, "Child", parent_id=root["id"])
        doc = create(client, "doc.md", kind="file", parent_id=child["id"])

        resp = client.get(f"/api/wiki/{doc['id']}/breadcrumb")
        assert resp.status_code == 200
        assert [e["node"]["name"] for e in resp.json()] == ["Root", "Child", "doc.md"]

    def test_access_check_uses_query_attributes(self, client):
        hr = create(client, "HR", is_public=False, permissions={"department_ids": ["d-hr"]})
        doc = create(client, "doc.md", kind="file", parent_id=hr["id"])

        allowed = client.get(f"/api/wiki/{doc['id']}/access", params={"department_id": "d-hr"})
        denied = client.get(f"/api/wiki/{doc['id']}/access", params={"department_id": "d-x"})
        assert allowed.json() == {"node_id": doc["id"], "allowed": True}
        assert denied.json()["allowed"] is False

    def test_move_cycle_returns_409(self, client):
        root = create(client, "Root")
        child = create(client, "Child", parent_id=root["id"])
        resp = client.put(f"/api/wiki/{root['id']}/move", json={"new_parent_id": child["id"]})
        assert resp.status_code == 409
        assert resp.json()["error"] == "CYCLE_DETECTED"

    def test_unknown_node_returns_404(self, client):
        resp = client.get("/api/wiki/missing/breadcrumb")
        assert resp.status_code == 404
        assert resp.json()["error"] == "NODE_NOT_FOUND"

    def test_folder_only_delete_conflict(self, client):
        root = create(client, "Root")
        create(client, "Child", parent_id=root["id"])
        resp = client.delete(f"/api/wiki/{root['id']}", params={"folder_only": True})
        assert resp.status_code == 409
        assert client.delete(f"/api/wiki/{root['id']}").json()["deleted"] == 2

    def test_visibility_update_keeps_lists(self, client):
        hr = create(client, "HR", is_public=False, permissions={"department_ids": ["d-hr"]})
        resp = client.patch(f"/api/wiki/{hr['id']}", json={"is_public": True})
        assert resp.status_code == 200
        assert resp.json()["is_public"] is True
        assert resp.json()["permission_department_ids"] == ["d-hr"]

    def test_rejected_patch_leaves_node_unchanged(self, client):
        doc = create(client, "a.md", kind="file")
        resp = client.patch(
            f"/api/wiki/{doc['id']}",
            json={"name": "renamed.md", "permissions": {"department_ids": ["d1"]}},
        )
        assert resp.status_code == 400
        assert resp.json()["error"] == "VALIDATION_ERROR"
        assert client.get(f"/api/wiki/{doc['id']}").json()["name"] == "a.md"

    def test_invalid_kind_rejected(self, client):
        resp = client.post("/api/wiki", json={"name": "x", "kind": "symlink"})
        assert resp.status_code == 422


class TestPermissionValidationRoutes:

    def test_run_announcement_validation(self, client, db, resolver, sink):
        resolver.set("d-closed", False)
        a = make_announcement(db, department_ids=["d-closed"])

        resp = client.post("/api/admin/permission-validation/announcement")
        assert resp.status_code == 200
        [report] = resp.json()
        assert report["status"] == "completed"
        assert report["detected"] == 1
        assert sink.alerts == [(a.id, ["d-closed"])]

    def test_run_all(self, client, db, resolver):
        resp = client.post("/api/admin/permission-validation/all")
        assert resp.status_code == 200
        assert sorted(r["entity_kind"] for r in resp.json()) == ["announcement", "wiki"]

    def test_unknown_target_rejected(self, client):
        assert client.post("/api/admin/permission-validation/news").status_code == 422


class TestPermissionLogRoutes:

    def _detect(self, client, db, resolver):
        resolver.set("d-closed", False, "Closed")
        a = make_announcement(db, department_ids=["d-closed"])
        client.post("/api/admin/permission-validation/announcement")
        return a

    def test_list_and_filter(self, client, db, resolver):
        self._detect(client, db, resolver)
        resp = client.get("/api/admin/permission-logs", params={"kind": "announcement", "resolved": False})
        assert resp.status_code == 200
        [entry] = resp.json()
        assert entry["invalid_departments"] == [{"id": "d-closed", "name": "Closed"}]
        assert client.get("/api/admin/permission-logs", params={"resolved": True}).json() == []

    def test_unread_and_dismiss(self, client, db, resolver):
        self._detect(client, db, resolver)
        [entry] = client.get("/api/admin/permission-logs/unread", params={"admin_id": "admin-1"}).json()

        resp = client.patch(
            "/api/admin/permission-logs/dismiss",
            json={"log_ids": [entry["id"], "missing"], "admin_id": "admin-1"},
        )
        assert resp.json() == {"dismissed": 1, "already_dismissed": 0, "not_found": 1}
        assert client.get("/api/admin/permission-logs/unread", params={"admin_id": "admin-1"}).json() == []

    def test_get_missing_log(self, client):
        resp = client.get("/api/admin/permission-logs/missing")
        assert resp.status_code == 404
        assert resp.json()["error"] == "PERMISSION_LOG_NOT_FOUND"

    def test_replace_permissions(self, client, db, resolver):
        a = self._detect(client, db, resolver)
        resp = client.patch(
            f"/api/admin/announcement/{a.id}/replace-permissions",
            json={
                "admin_id": "admin-1",
                "replacements": [{"old_id": "d-closed", "new_id": "d-new", "type": "department"}],
            },
        )
        assert resp.status_code == 200
        assert resp.json()["replaced"] == 1
        [entry] = client.get("/api/admin/permission-logs").json()
        assert entry["action"] == "resolved"
        assert entry["resolved_by"] == "admin-1"

    def test_replace_on_unknown_entity(self, client):
        resp = client.patch(
            "/api/admin/announcement/missing/replace-permissions",
            json={"admin_id": "a", "replacements": [{"old_id": "x", "new_id": "y", "type": "rank"}]},
        )
        assert resp.status_code == 404
        assert resp.json()["error"] == "ENTITY_NOT_FOUND"


class TestHealth:

    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "healthy"
