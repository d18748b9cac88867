"""
Tests for the auth blueprint — registration, password login and the
signed-in user's own account.
"""

from app.models.audit import AuditLog

PASSWORD = "Longa#2026"


class TestRegisterAndLogin:
    """Self-service sign-up and password login."""

    def test_register_signs_in(self, client):
        response = client.post(
            "/auth/register",
            json={
                "email": "maria@example.com",
                "password": PASSWORD,
                "first_name": "Maria",
                "last_name": "Nghipondoka",
                "town": "Windhoek",
                "suburb": "Eros",
            },
        )
        assert response.status_code == 201
        assert response.get_json()["user"]["role"] == "client"

        me = client.get("/auth/me").get_json()["user"]
        assert me["email"] == "maria@example.com"

    def test_register_rejects_weak_password(self, client):
        response = client.post(
            "/auth/register",
            json={"email": "a@example.com", "password": "weak", "first_name": "A"},
        )
        assert response.status_code == 400
        assert "at least 8 characters" in response.get_json()["error"]

    def test_password_login(self, client):
        client.post(
            "/auth/register",
            json={"email": "p@example.com", "password": PASSWORD, "first_name": "P"},
        )
        client.post("/auth/logout")

        bad = client.post("/auth/login", json={"email": "p@example.com", "password": "nope"})
        assert bad.status_code == 401
        assert bad.get_json() == {"error": "Invalid email or password."}

        good = client.post("/auth/login", json={"email": "p@example.com", "password": PASSWORD})
        assert good.status_code == 200
        assert good.get_json()["user"]["email"] == "p@example.com"


class TestAccount:
    """The signed-in user's profile."""

    def test_me_requires_login(self, client):
        response = client.get("/auth/me")
        assert response.status_code == 401
        assert response.get_json() == {"error": "Authentication required."}

    def test_provider_sees_profile(self, client, login, make_provider):
        provider = make_provider()
        login(provider)

        data = client.get("/auth/me").get_json()["user"]
        assert data["provider_profile"]["verification_status"] == "verified"

    def test_update_me(self, client, login, client_user):
        login(client_user)

        response = client.patch("/auth/me", json={"suburb": "Olympia"})
        assert response.get_json()["user"]["suburb"] == "Olympia"

        response = client.patch("/auth/me", json={"role_id": 1})
        assert response.status_code == 400

    def test_sso_disabled_without_config(self, client):
        assert client.get("/auth/sso/login").status_code == 404

    def test_me_lists_permissions(self, client, login, admin_user, client_user):
        login(admin_user)
        permissions = client.get("/auth/me").get_json()["user"]["permissions"]
        assert "payout.approve" in permissions
        assert permissions == sorted(permissions)

        login(client_user)
        assert client.get("/auth/me").get_json()["user"]["permissions"] == []

    def test_logout_is_audited(self, client, login, client_user):
        login(client_user)
        assert client.post("/auth/logout").status_code == 200

        logouts = AuditLog.query.filter_by(action_type="LOGOUT").all()
        assert [entry.user_id for entry in logouts] == [client_user.id]
        assert client.get("/auth/me").status_code == 401
