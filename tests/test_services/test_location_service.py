"""
Tests for location_service — service areas, the suburb distance table,
phone and address helpers and the business calendar.
"""

from datetime import date
from decimal import Decimal

import pytest

from app.models.location import LocationDistance
from app.services import location_service


class TestServiceAreas:
    """Point-in-area lookups and location pricing."""

    def test_distance_between_windhoek_and_walvis_bay(self):
        """Haversine distance between the two city centres is ~266 km."""
        km = location_service.calculate_distance(-22.5609, 17.0658, -22.9576, 14.5052)
        assert 255 < km < 275

    def test_distance_to_self_is_zero(self):
        assert location_service.calculate_distance(-22.5, 17.0, -22.5, 17.0) == 0

    def test_city_centre_resolves_to_central_area(self, app):
        """When several areas cover a point the nearest centre wins."""
        with app.app_context():
            area = location_service.find_closest_service_area(-22.5609, 17.0658)
        assert area.area_id == "windhoek-central"

    def test_point_outside_every_area(self, app):
        with app.app_context():
            assert location_service.find_closest_service_area(0.0, 0.0) is None

    def test_price_adjustment_in_suburbs(self, app):
        """A point ~6.5 km south of the centre gets the suburbs' 10%."""
        with app.app_context():
            price = location_service.calculate_location_price_adjustment(
                Decimal("100.00"), -22.62, 17.0658
            )
        assert price == Decimal("110.00")

    def test_price_unchanged_outside_service_areas(self, app):
        with app.app_context():
            price = location_service.calculate_location_price_adjustment(
                Decimal("250.00"), 0.0, 0.0
            )
        assert price == Decimal("250.00")


class TestSuburbDistances:
    """The town-scoped suburb-to-suburb distance table."""

    def test_same_suburb_is_zero(self, db_session):
        assert location_service.get_suburb_distance("Windhoek", "Eros", "eros") == 0

    def test_unknown_pair_uses_default(self, app, db_session):
        distance = location_service.get_suburb_distance("Windhoek", "Eros", "Katutura")
        assert distance == app.config["DEFAULT_DISTANCE_KM"]

    def test_set_distance_is_symmetric(self, db_session):
        location_service.set_suburb_distance("Windhoek", "Eros", "Olympia", 6)

        assert location_service.get_suburb_distance("Windhoek", "Eros", "Olympia") == 6
        assert location_service.get_suburb_distance("windhoek", "olympia", "EROS") == 6
        assert LocationDistance.query.count() == 2

    def test_set_distance_updates_existing_rows(self, db_session):
        location_service.set_suburb_distance("Windhoek", "Eros", "Olympia", 6)
        location_service.set_suburb_distance("Windhoek", "Olympia", "Eros", 8)

        assert LocationDistance.query.count() == 2
        assert location_service.get_suburb_distance("Windhoek", "Eros", "Olympia") == 8

    def test_distances_are_per_town(self, db_session):
        location_service.set_suburb_distance("Windhoek", "CBD", "Eros", 4)
        assert location_service.get_suburb_distance("Swakopmund", "CBD", "Eros") == 999

    @pytest.mark.parametrize(
        "town, suburb",
        [("%", "Klein Windhoek"), ("Windhoek", "%"), ("W_ndhoek", "Klein_Windhoek")],
    )
    def test_wildcards_match_literally(self, app, windhoek_distances, town, suburb):
        distance = location_service.get_suburb_distance(town, suburb, "Eros")
        assert distance == app.config["DEFAULT_DISTANCE_KM"]

    @pytest.mark.parametrize(
        "suburb_a, suburb_b, distance, message",
        [
            ("Eros", "Olympia", -1, "cannot be negative"),
            ("Eros", "Eros", 3, "always 0"),
            ("Eros", "", 3, "required"),
            ("Eros", "Olympia", "far", "whole number"),
        ],
    )
    def test_invalid_distances_rejected(
        self, db_session, suburb_a, suburb_b, distance, message
    ):
        with pytest.raises(ValueError, match=message):
            location_service.set_suburb_distance("Windhoek", suburb_a, suburb_b, distance)


class TestPhoneAndAddress:
    """Namibian phone numbers, addresses and currency formatting."""

    @pytest.mark.parametrize(
        "phone", ["+264811234567", "+264 81 123 456", "264811234567", "081-123-456"]
    )
    def test_valid_phone_formats(self, phone):
        assert location_service.validate_namibian_phone(phone)

    @pytest.mark.parametrize("phone", ["", "12345", "+27821234567", "0811234567"])
    def test_invalid_phone_formats(self, phone):
        assert not location_service.validate_namibian_phone(phone)

    def test_format_phone_from_international(self):
        assert (
            location_service.format_namibian_phone("+264811234567")
            == "+264 81 123 4567"
        )

    def test_format_phone_from_local(self):
        assert location_service.format_namibian_phone("081 123 456") == "+264 81 123 456"

    def test_address_requires_supported_city(self):
        assert location_service.validate_namibian_address("1 Main Street", "windhoek")
        assert not location_service.validate_namibian_address("1 Main Street", "Cape Town")
        assert not location_service.validate_namibian_address("", "Windhoek")

    def test_address_postal_code_must_be_five_digits(self):
        assert location_service.validate_namibian_address(
            "1 Main Street", "Swakopmund", postal_code="13001"
        )
        assert not location_service.validate_namibian_address(
            "1 Main Street", "Swakopmund", postal_code="130"
        )

    @pytest.mark.parametrize("town", ["windhoek", " WALVIS BAY ", "Swakopmund"])
    def test_supported_city_canonical_spelling(self, town):
        assert location_service.supported_city(town) in location_service.SUPPORTED_CITIES
        assert location_service.supported_city(town).lower() == town.strip().lower()

    @pytest.mark.parametrize("town", ["Oshakati", "%", "", None])
    def test_unsupported_city_rejected(self, town):
        with pytest.raises(ValueError, match="We do not serve"):
            location_service.supported_city(town)

    def test_format_nad(self):
        assert location_service.format_nad(Decimal("1234.5")) == "N$1,234.50"
        assert location_service.format_nad(-5) == "-N$5.00"


class TestBusinessCalendar:
    """Public holidays and bookable time slots."""

    def test_fixed_and_easter_holidays(self, app):
        with app.app_context():
            holidays = location_service.get_public_holidays(2026)

        assert date(2026, 3, 21) in holidays  # Independence Day
        assert date(2026, 4, 3) in holidays  # Good Friday
        assert date(2026, 4, 6) in holidays  # Easter Monday
        assert date(2026, 5, 14) in holidays  # Ascension Day
        assert date(2026, 4, 5) not in holidays

    def test_configured_extra_holidays(self, app, monkeypatch):
        monkeypatch.setitem(app.config, "PUBLIC_HOLIDAYS", ["2026-11-27", "bad-date"])
        with app.app_context():
            holidays = location_service.get_public_holidays(2026)
        assert date(2026, 11, 27) in holidays

    def test_sundays_and_holidays_are_not_business_days(self, app):
        with app.app_context():
            assert not location_service.is_business_day(date(2026, 10, 18))  # Sunday
            assert not location_service.is_business_day(date(2026, 12, 25))
            assert location_service.is_business_day(date(2026, 10, 19))

    def test_weekday_slots(self):
        slots = location_service.get_available_time_slots(date(2026, 10, 19))
        assert slots[0] == "08:00"
        assert slots[-1] == "16:30"
        assert len(slots) == 18

    def test_saturday_slots_end_at_one(self):
        slots = location_service.get_available_time_slots(date(2026, 10, 24))
        assert slots[-1] == "12:30"
        assert len(slots) == 10

    def test_no_sunday_slots(self):
        assert location_service.get_available_time_slots(date(2026, 10, 18)) == []
