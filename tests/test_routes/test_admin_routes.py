"""
Tests for the admin, catalog and notifications blueprints.
"""

import pytest

from app.services import notification_service


class TestAdminUsers:
    """User management behind ``user.manage``."""

    def test_requires_admin(self, client, login, client_user):
        assert client.get("/admin/users").status_code == 401

        login(client_user)
        assert client.get("/admin/users").status_code == 403

    def test_provision_and_deactivate(self, client, login, admin_user):
        login(admin_user)

        response = client.post(
            "/admin/users",
            json={"email": "tomas@example.com", "first_name": "Tomas",
                  "last_name": "Haufiku", "role": "provider"},
        )
        assert response.status_code == 201
        user_id = response.get_json()["user"]["id"]

        response = client.post(f"/admin/users/{user_id}/deactivate")
        assert response.get_json()["user"]["is_active"] is False

        listed = client.get("/admin/users").get_json()["users"]
        assert user_id not in [u["id"] for u in listed]

    def test_unknown_user_404(self, client, login, admin_user):
        login(admin_user)
        response = client.put("/admin/users/999/role", json={"role": "admin"})
        assert response.status_code == 404

    def test_distances(self, client, login, admin_user):
        login(admin_user)
        response = client.put(
            "/admin/distances",
            json={"town": "Windhoek", "suburb_a": "Eros", "suburb_b": "Olympia",
                  "distance": 6},
        )
        assert response.get_json() == {"distance": 6}

        distances = client.get("/admin/distances?town=Windhoek").get_json()["distances"]
        assert len(distances) == 2

    def test_user_history(self, client, login, admin_user, client_user):
        login(admin_user)
        client.put(f"/admin/users/{client_user.id}/role", json={"role": "provider"})

        history = client.get(
            f"/admin/audit-logs/auth.user/{client_user.id}"
        ).get_json()["history"]

        assert history[-1]["action_type"] == "UPDATE"
        assert history[-1]["actor"] == admin_user.full_name

        login(client_user)
        assert client.get(
            f"/admin/audit-logs/auth.user/{client_user.id}"
        ).status_code == 403


class TestCatalogRoutes:
    """Public browsing and managed edits."""

    def test_anyone_can_browse(self, client, one_off_service):
        services = client.get("/catalog/services").get_json()["services"]
        assert [s["name"] for s in services] == ["Standard Home Cleaning"]

    def test_inactive_service_hidden(self, client, one_off_service, db_session):
        one_off_service.is_active = False
        db_session.commit()
        assert client.get(f"/catalog/services/{one_off_service.id}").status_code == 404

    def test_create_service_needs_permission(self, client, login, client_user, admin_user,
                                             cleaning):
        payload = {
            "name": "Window Washing",
            "service_type": "one-off",
            "client_price": "120",
            "description": "Inside and outside windows.",
            "tags": ["windows"],
            "duration_minutes": 90,
            "category_id": cleaning.id,
        }
        login(client_user)
        assert client.post("/catalog/services", json=payload).status_code == 403

        login(admin_user)
        response = client.post("/catalog/services", json=payload)
        assert response.status_code == 201
        assert response.get_json()["service"]["client_price"] == "120.00"

        response = client.post("/catalog/services", json=dict(payload, client_price="5"))
        assert response.status_code == 400


class TestNotificationRoutes:
    """The in-app inbox."""

    @pytest.fixture(autouse=True)
    def _setup(self, client, login, client_user, db_session):
        notification_service.notify_user(client_user.id, "welcome", "Welcome", "Hello")
        db_session.commit()
        login(client_user)
        self.client = client

    def test_inbox_and_mark_read(self):
        inbox = self.client.get("/notifications").get_json()["notifications"]
        assert [n["title"] for n in inbox] == ["Welcome"]
        assert self.client.get("/notifications/unread-count").get_json() == {"unread": 1}

        self.client.post(f"/notifications/{inbox[0]['id']}/read")
        assert self.client.get("/notifications/unread-count").get_json() == {"unread": 0}

    def test_process_needs_permission(self):
        assert self.client.post("/notifications/process").status_code == 403
