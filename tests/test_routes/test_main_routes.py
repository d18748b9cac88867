"""
Smoke tests for the main blueprint routes.

These verify that the application starts up correctly and that the
service info, health check and booking-form helper endpoints respond.
"""


class TestIndex:
    """Tests for the API landing endpoint."""

    def test_index_returns_200(self, client):
        """The index should return HTTP 200."""
        response = client.get("/")
        assert response.status_code == 200

    def test_index_contains_company_name(self, client):
        """The index should identify the company."""
        response = client.get("/")
        assert response.get_json()["name"] == "LONGA SERVICES"


class TestHealthCheck:
    """Tests for the health check endpoint."""

    def test_health_check_reports_database(self, client):
        """The health check should return HTTP 200 with a healthy status."""
        response = client.get("/health")
        assert response.status_code == 200
        assert response.get_json() == {"status": "healthy", "database": "connected"}


class TestBookingHelpers:
    """Service areas, time slots and holidays."""

    def test_service_areas_listed(self, client):
        data = client.get("/service-areas").get_json()
        assert "Windhoek" in data["cities"]
        assert any(a["area_id"] == "windhoek-central" for a in data["areas"])

    def test_closest_area(self, client):
        data = client.get("/service-areas?lat=-22.5609&lng=17.0658").get_json()
        assert data["in_service_area"]
        assert data["area"]["area_id"] == "windhoek-central"

    def test_outside_service_area(self, client):
        data = client.get("/service-areas?lat=-17.8&lng=25.2").get_json()
        assert data == {"area": None, "in_service_area": False}

    def test_time_slots(self, client):
        data = client.get("/time-slots?date=2026-10-24").get_json()
        assert data["business_day"]
        assert data["slots"][0] == "08:00"
        assert data["slots"][-1] == "12:30"

    def test_sunday_has_no_slots(self, client):
        data = client.get("/time-slots?date=2026-10-18").get_json()
        assert not data["business_day"]
        assert data["slots"] == []

    def test_bad_date(self, client):
        response = client.get("/time-slots?date=tomorrow")
        assert response.status_code == 400

    def test_holidays(self, client):
        data = client.get("/holidays/2026").get_json()
        assert "2026-03-21" in data["holidays"]
        assert "2026-04-03" in data["holidays"]
