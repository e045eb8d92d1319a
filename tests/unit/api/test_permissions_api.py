"""Tests for the permission catalog, check endpoints and audit log reads."""

import uuid

from workshop.db.models import Permission


class TestCatalog:

    def test_list_active_catalog(self, client, workshop, auth_headers):
        response = client.get("/api/permissions", headers=auth_headers(workshop.no_roles))

        assert response.status_code == 200
        assert len(response.json()) == 70

    def test_inactive_permissions_hidden(self, client, db_session, workshop, auth_headers):
        db_session.query(Permission).filter(Permission.key == "reports.export").one().is_active = False
        db_session.commit()

        keys = {p["key"] for p in client.get("/api/permissions", headers=auth_headers(workshop.admin)).json()}
        assert "reports.export" not in keys
        assert len(keys) == 69


class TestChecks:

    def test_check(self, client, workshop, auth_headers):
        headers = auth_headers(workshop.admin)

        allowed = client.post(
            "/api/permissions/check",
            json={"user_id": str(workshop.receptionist), "permission": "customers.create"},
            headers=headers,
        )
        denied = client.post(
            "/api/permissions/check",
            json={"user_id": str(workshop.receptionist), "permission": "invoices.delete"},
            headers=headers,
        )

        assert allowed.json()["allowed"] is True
        assert denied.json()["allowed"] is False

    def test_check_any(self, client, workshop, auth_headers):
        response = client.post(
            "/api/permissions/check-any",
            json={"user_id": str(workshop.receptionist), "permissions": ["reports.view", "invoices.view"]},
            headers=auth_headers(workshop.admin),
        )
        assert response.json()["allowed"] is True

    def test_unknown_permission_key(self, client, workshop, auth_headers):
        response = client.post(
            "/api/permissions/check",
            json={"user_id": str(workshop.receptionist), "permission": "rockets.launch"},
            headers=auth_headers(workshop.admin),
        )
        assert response.status_code == 422

    def test_foreign_user_is_not_found(self, client, workshop, auth_headers):
        response = client.post(
            "/api/permissions/check",
            json={"user_id": str(workshop.other_admin), "permission": "customers.view"},
            headers=auth_headers(workshop.admin),
        )
        assert response.status_code == 404

    def test_checks_need_admin(self, client, workshop, auth_headers):
        response = client.post(
            "/api/permissions/check",
            json={"user_id": str(workshop.receptionist), "permission": "customers.view"},
            headers=auth_headers(workshop.customer_service),
        )
        assert response.status_code == 403


class TestAuditLogs:

    def test_admin_lists_own_organization(self, client, workshop, auth_headers):
        headers = auth_headers(workshop.admin)
        client.post("/api/roles", json={"key": "parts_desk", "name": "Parts desk"}, headers=headers)

        response = client.get("/api/audit-logs", headers=headers)

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        entry = data["items"][0]
        assert entry["action"] == "role.create"
        assert entry["organization_id"] == str(workshop.org)

        single = client.get(f"/api/audit-logs/{entry['id']}", headers=headers)
        assert single.status_code == 200

    def test_other_organization_sees_nothing(self, client, workshop, auth_headers):
        client.post(
            "/api/roles", json={"key": "parts_desk", "name": "Parts desk"}, headers=auth_headers(workshop.admin)
        )

        response = client.get("/api/audit-logs", headers=auth_headers(workshop.other_admin))

        assert response.json()["total"] == 0

    def test_unknown_entry(self, client, workshop, auth_headers):
        response = client.get(f"/api/audit-logs/{uuid.uuid4()}", headers=auth_headers(workshop.admin))
        assert response.status_code == 404
