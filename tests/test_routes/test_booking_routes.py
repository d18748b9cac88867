"""
Tests for the bookings blueprint — the full job flow over HTTP and the
access checks around it.
"""

import pytest


class TestBookingFlow:
    """A client books, the matched provider does the job, the client rates it."""

    @pytest.fixture(autouse=True)
    def _setup(self, client, login, client_user, make_provider, cleaning,
               one_off_service, next_week):
        self.client = client
        self.login = login
        self.client_user = client_user
        self.provider = make_provider(categories=[cleaning])
        self.service = one_off_service
        self.next_week = next_week

    def _create(self):
        self.login(self.client_user)
        response = self.client.post(
            "/bookings",
            json={
                "service_id": self.service.id,
                "booking_date": self.next_week.isoformat(),
                "booking_time": "10:00",
            },
        )
        assert response.status_code == 201
        return response.get_json()

    def test_create_uses_profile_address(self):
        data = self._create()

        assert data["auto_assigned"]
        assert data["provider_id"] == self.provider.id
        assert data["booking"]["service_address"] == "12 Nelson Mandela Avenue"
        assert data["booking"]["status"] == "assigned"

    def test_job_lifecycle(self):
        booking_id = self._create()["booking"]["id"]

        self.login(self.provider)
        for action, status in (
            ("accept", "accepted"),
            ("start", "in_progress"),
            ("complete", "completed"),
        ):
            response = self.client.post(f"/bookings/{booking_id}/{action}")
            assert response.status_code == 200
            assert response.get_json()["booking"]["status"] == status

        self.login(self.client_user)
        response = self.client.post(
            f"/bookings/{booking_id}/rate", json={"rating": 5, "comment": "Spotless"}
        )
        assert response.status_code == 200

        history = self.client.get(f"/bookings/{booking_id}/modifications").get_json()
        assert [m["new_value"] for m in history["modifications"] if m["field"] == "status"] == [
            "assigned",
            "accepted",
            "in_progress",
            "completed",
        ]

    def test_client_cannot_accept(self):
        booking_id = self._create()["booking"]["id"]
        response = self.client.post(f"/bookings/{booking_id}/accept")
        assert response.status_code == 403

    def test_cancel(self):
        booking_id = self._create()["booking"]["id"]
        response = self.client.post(
            f"/bookings/{booking_id}/cancel", json={"reason": "Plans changed"}
        )
        assert response.get_json()["booking"]["status"] == "cancelled"

    def test_listing_per_role(self):
        booking_id = self._create()["booking"]["id"]
        mine = self.client.get("/bookings").get_json()["bookings"]
        assert [b["id"] for b in mine] == [booking_id]

        self.login(self.provider)
        jobs = self.client.get("/bookings?upcoming=1").get_json()["bookings"]
        assert [b["id"] for b in jobs] == [booking_id]


class TestBookingAccess:
    """Who may see and change a booking."""

    def test_stranger_gets_403(self, client, login, make_user, make_booking):
        booking = make_booking()
        login(make_user("client"))
        assert client.get(f"/bookings/{booking.id}").status_code == 403

    def test_missing_booking_404(self, client, login, admin_user):
        login(admin_user)
        response = client.get("/bookings/999")
        assert response.status_code == 404

    def test_manual_queue_needs_permission(self, client, login, client_user, admin_user,
                                           make_booking):
        booking = make_booking()

        login(client_user)
        assert client.get("/bookings/manual-queue").status_code == 403

        login(admin_user)
        queue = client.get("/bookings/manual-queue").get_json()["bookings"]
        assert [b["id"] for b in queue] == [booking.id]

    def test_admin_assigns_from_queue(self, client, login, admin_user, make_provider,
                                      make_booking):
        booking = make_booking()
        provider = make_provider()

        login(admin_user)
        response = client.post(
            f"/bookings/{booking.id}/assign", json={"provider_id": provider.id}
        )

        assert response.status_code == 200
        assert response.get_json()["booking"]["provider_id"] == provider.id

    def test_validation_error_is_400(self, client, login, client_user, one_off_service):
        login(client_user)
        response = client.post(
            "/bookings",
            json={"service_id": one_off_service.id, "booking_date": "2000-01-01",
                  "booking_time": "10:00"},
        )
        assert response.status_code == 400
        assert response.get_json() == {"error": "Booking date cannot be in the past."}
