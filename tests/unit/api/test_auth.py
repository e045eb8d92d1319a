"""Tests for the authentication gate and error translation."""

import uuid
from datetime import timedelta

from workshop.core.errors import PUBLIC_MESSAGES
from workshop.db.models import User
from tests.factories import create_user


class TestAuthenticationGate:

    def test_me(self, client, workshop, auth_headers):
        response = client.get("/api/auth/me", headers=auth_headers(workshop.receptionist))

        assert response.status_code == 200
        data = response.json()
        assert data["id"] == str(workshop.receptionist)
        assert data["organization_id"] == str(workshop.org)
        assert data["roles"] == ["receptionist"]
        assert data["is_admin"] is False
        assert "customers.create" in data["permissions"]

    def test_admin_me_lists_full_catalog(self, client, workshop, auth_headers):
        data = client.get("/api/auth/me", headers=auth_headers(workshop.admin)).json()
        assert data["is_admin"] is True
        assert len(data["permissions"]) == 70

    def test_missing_credential(self, client, workshop):
        response = client.get("/api/auth/me")

        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"
        assert response.json() == {
            "error": {"code": "UNAUTHENTICATED", "message": "Authentication required"}
        }

    def test_expired_token(self, client, workshop, auth_headers):
        headers = auth_headers(workshop.admin, expires_in=timedelta(seconds=-30))
        assert client.get("/api/auth/me", headers=headers).status_code == 401

    def test_forged_token(self, client, workshop, auth_headers):
        headers = auth_headers(workshop.admin, secret="attacker-secret")
        assert client.get("/api/auth/me", headers=headers).status_code == 401

    def test_unknown_user(self, client, workshop, auth_headers):
        assert client.get("/api/auth/me", headers=auth_headers(uuid.uuid4())).status_code == 401

    def test_inactive_user(self, client, db_session, workshop, auth_headers):
        db_session.get(User, workshop.receptionist).is_active = False
        db_session.commit()

        response = client.get("/api/auth/me", headers=auth_headers(workshop.receptionist))
        assert response.status_code == 401

    def test_user_without_organization(self, client, db_session, workshop, auth_headers):
        orphan = create_user(db_session, no_org=True)
        db_session.commit()

        assert client.get("/api/auth/me", headers=auth_headers(orphan.id)).status_code == 401

    def test_failures_are_indistinguishable(self, client, db_session, workshop, auth_headers):
        db_session.get(User, workshop.receptionist).is_active = False
        db_session.commit()

        inactive = client.get("/api/auth/me", headers=auth_headers(workshop.receptionist)).json()
        unknown = client.get("/api/auth/me", headers=auth_headers(uuid.uuid4())).json()
        assert inactive == unknown


class TestErrorTranslation:

    def test_arabic_denial_message(self, client, workshop, auth_headers):
        headers = {**auth_headers(workshop.receptionist), "Accept-Language": "ar-SA,ar;q=0.9"}

        response = client.get("/api/audit-logs", headers=headers)

        assert response.status_code == 403
        assert response.json()["error"]["message"] == PUBLIC_MESSAGES["FORBIDDEN"]["ar"]

    def test_denial_does_not_name_the_permission(self, client, workshop, auth_headers):
        response = client.get("/api/audit-logs", headers=auth_headers(workshop.receptionist))

        assert response.status_code == 403
        assert "audit_logs" not in response.text
        assert response.json() == {"error": {"code": "FORBIDDEN", "message": "Access denied"}}

    def test_request_validation_lists_fields(self, client, workshop, auth_headers):
        response = client.post("/api/roles", json={"name": "No key"}, headers=auth_headers(workshop.admin))

        assert response.status_code == 422
        body = response.json()["error"]
        assert body["code"] == "VALIDATION_ERROR"
        assert any(err.startswith("body.key") for err in body["errors"])
