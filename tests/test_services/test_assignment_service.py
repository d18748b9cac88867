"""
Tests for assignment_service — ranking nearby providers and assigning,
reassigning and declining jobs.
"""

from datetime import time

import pytest

from app.services import assignment_service


class TestFindProviders:
    """Eligibility rules and ranking for provider matching."""

    @pytest.fixture(autouse=True)
    def _setup(self, windhoek_distances, cleaning):
        self.cleaning = cleaning

    def _ids(self, matches):
        return [m.provider_id for m in matches]

    def test_ranked_by_distance(self, make_provider):
        far = make_provider("Olympia", categories=[self.cleaning])
        same = make_provider("Klein Windhoek", categories=[self.cleaning])
        near = make_provider("Eros", categories=[self.cleaning])

        matches = assignment_service.find_providers_for_location(
            "Windhoek", "Klein Windhoek", category_id=self.cleaning.id
        )

        assert self._ids(matches) == [same.id, near.id, far.id]
        assert [m.distance for m in matches] == [0, 3, 5]

    def test_equal_distance_ranked_by_rating_then_jobs(self, make_provider):
        good = make_provider(rating="4.50", total_jobs=50, categories=[self.cleaning])
        best = make_provider(rating="4.90", total_jobs=1, categories=[self.cleaning])
        busy = make_provider(rating="4.50", total_jobs=80, categories=[self.cleaning])

        matches = assignment_service.find_providers_for_location(
            "Windhoek", "Klein Windhoek", category_id=self.cleaning.id
        )

        assert self._ids(matches) == [best.id, busy.id, good.id]

    def test_travel_radius_respected(self, make_provider):
        make_provider("Olympia", max_distance=4, categories=[self.cleaning])
        matches = assignment_service.find_providers_for_location(
            "Windhoek", "Klein Windhoek", category_id=self.cleaning.id
        )
        assert matches == []

    def test_unknown_suburb_pair_is_out_of_range(self, make_provider):
        make_provider("Katutura", max_distance=50, categories=[self.cleaning])
        matches = assignment_service.find_providers_for_location(
            "Windhoek", "Klein Windhoek", category_id=self.cleaning.id
        )
        assert matches == []

    def test_other_towns_excluded(self, make_provider):
        make_provider("Vineta", town="Swakopmund", categories=[self.cleaning])
        assert (
            assignment_service.find_providers_for_location("Windhoek", "Klein Windhoek")
            == []
        )

    @pytest.mark.parametrize("town", ["%", "W_ndhoek", "windhoek%"])
    def test_town_wildcards_match_literally(self, make_provider, town):
        make_provider("Klein Windhoek", categories=[self.cleaning])
        matches = assignment_service.find_providers_for_location(town, "Klein Windhoek")
        assert matches == []

    def test_town_match_ignores_case(self, make_provider):
        provider = make_provider("Klein Windhoek", categories=[self.cleaning])
        matches = assignment_service.find_providers_for_location(
            " WINDHOEK ", "Klein Windhoek"
        )
        assert self._ids(matches) == [provider.id]

    def test_category_required_when_given(self, make_provider, gardening):
        make_provider(categories=[gardening])
        assert (
            assignment_service.find_providers_for_location(
                "Windhoek", "Klein Windhoek", category_id=self.cleaning.id
            )
            == []
        )

    def test_unverified_unavailable_and_inactive_excluded(
        self, db_session, make_provider
    ):
        unverified = make_provider(categories=[self.cleaning])
        unverified.provider_profile.verification_status = "pending"
        unavailable = make_provider(categories=[self.cleaning])
        unavailable.provider_profile.is_available = False
        inactive = make_provider(categories=[self.cleaning])
        inactive.is_active = False
        db_session.commit()

        assert (
            assignment_service.find_providers_for_location(
                "Windhoek", "Klein Windhoek", category_id=self.cleaning.id
            )
            == []
        )

    def test_busy_provider_skipped(self, make_provider, make_booking, next_week):
        busy = make_provider(categories=[self.cleaning])
        free = make_provider("Eros", categories=[self.cleaning])
        make_booking("accepted", provider=busy, booking_time=time(9, 0))

        matches = assignment_service.find_providers_for_location(
            "Windhoek",
            "Klein Windhoek",
            category_id=self.cleaning.id,
            booking_date=next_week,
            booking_time=time(11, 0),
            duration_minutes=60,
        )

        assert self._ids(matches) == [free.id]

    def test_cancelled_booking_does_not_block(
        self, make_provider, make_booking, next_week
    ):
        provider = make_provider(categories=[self.cleaning])
        make_booking("cancelled", provider=provider, booking_time=time(9, 0))

        matches = assignment_service.find_providers_for_location(
            "Windhoek",
            "Klein Windhoek",
            category_id=self.cleaning.id,
            booking_date=next_week,
            booking_time=time(10, 0),
        )

        assert self._ids(matches) == [provider.id]

    def test_back_to_back_slots_do_not_overlap(
        self, make_provider, make_booking, next_week
    ):
        provider = make_provider(categories=[self.cleaning])
        # 10:00 for 180 minutes ends at 13:00.
        make_booking("accepted", provider=provider)

        matches = assignment_service.find_providers_for_location(
            "Windhoek",
            "Klein Windhoek",
            booking_date=next_week,
            booking_time=time(13, 0),
        )

        assert self._ids(matches) == [provider.id]


class TestAssignment:
    """Automatic, manual and re-assignment of bookings."""

    @pytest.fixture(autouse=True)
    def _setup(self, windhoek_distances, cleaning, admin_user):
        self.cleaning = cleaning
        self.admin = admin_user

    def test_auto_assign_to_best_provider(self, make_provider, make_booking):
        provider = make_provider(categories=[self.cleaning])
        booking = make_booking()

        assert assignment_service.assign_job_to_nearby_provider(booking.id) == provider.id
        assert booking.status == "assigned"
        assert booking.assignment_status == "auto_assigned"
        assert booking.assigned_at is not None

    def test_no_match_flags_manual_assignment(self, make_booking):
        booking = make_booking()

        assert assignment_service.assign_job_to_nearby_provider(booking.id) is None
        assert booking.assignment_status == "manual_assignment_required"
        assert booking in assignment_service.get_bookings_requiring_manual_assignment()

    def test_manual_assignment_is_accepted(self, make_provider, make_booking):
        provider = make_provider()
        booking = make_booking()

        assignment_service.assign_provider(booking.id, provider.id, self.admin.id)

        assert booking.provider_id == provider.id
        assert booking.status == "accepted"
        assert booking.assignment_status == "assigned"
        assert booking.assigned_by == self.admin.id

    def test_manual_assignment_rejects_busy_provider(
        self, make_provider, make_booking
    ):
        provider = make_provider()
        make_booking("accepted", provider=provider)
        booking = make_booking(booking_time=time(11, 0))

        with pytest.raises(ValueError, match="already has a booking"):
            assignment_service.assign_provider(booking.id, provider.id, self.admin.id)

    def test_manual_assignment_requires_provider_role(self, make_booking, client_user):
        booking = make_booking()
        with pytest.raises(ValueError, match="not found"):
            assignment_service.assign_provider(booking.id, client_user.id, self.admin.id)

    def test_reassign_needs_reason(self, make_provider, make_booking):
        booking = make_booking("assigned", provider=make_provider())
        with pytest.raises(ValueError, match="reason"):
            assignment_service.reassign_provider(
                booking.id, make_provider().id, " ", self.admin.id
            )

    def test_reassign_moves_booking(self, make_provider, make_booking):
        old = make_provider()
        new = make_provider("Eros")
        booking = make_booking("assigned", provider=old)

        assignment_service.reassign_provider(
            booking.id, new.id, "Provider is ill", self.admin.id
        )

        assert booking.provider_id == new.id
        history = [(m.field, m.old_value, m.new_value) for m in booking.modifications]
        assert ("provider_id", str(old.id), str(new.id)) in history

    def test_decline_offers_next_provider(self, make_provider, make_booking):
        first = make_provider(categories=[self.cleaning])
        second = make_provider("Eros", categories=[self.cleaning])
        booking = make_booking("assigned", provider=first)

        new_provider = assignment_service.decline_assignment(
            booking.id, first.id, "Too far"
        )

        assert new_provider == second.id
        assert booking.provider_id == second.id
        assert booking.status == "assigned"

    def test_decline_with_no_alternative_needs_manual(
        self, make_provider, make_booking
    ):
        only = make_provider(categories=[self.cleaning])
        booking = make_booking("assigned", provider=only)

        assert assignment_service.decline_assignment(booking.id, only.id) is None
        assert booking.provider_id is None
        assert booking.status == "pending"
        assert booking.assignment_status == "manual_assignment_required"

    def test_only_assigned_provider_may_decline(self, make_provider, make_booking):
        booking = make_booking("assigned", provider=make_provider())
        with pytest.raises(PermissionError):
            assignment_service.decline_assignment(booking.id, make_provider().id)
