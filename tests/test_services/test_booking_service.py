"""
Tests for booking_service — booking creation with proximity matching,
the status lifecycle, rollbacks, edits, ratings and expiry.
"""

from datetime import time, timedelta

import pytest

from app.models.audit import AuditLog
from app.models.catalog import ServiceUsageLog
from app.models.notification import Notification
from app.services import booking_service, entitlement_service
from app.services.clock import today, utcnow


def _in_app(user_id, notification_type):
    return Notification.query.filter_by(
        user_id=user_id, notification_type=notification_type, channel="in_app"
    ).count()


class TestCreateBooking:
    """Validation, pricing and automatic assignment on creation."""

    @pytest.fixture(autouse=True)
    def _setup(self, windhoek_distances, client_user, one_off_service, cleaning):
        self.client_user = client_user
        self.service = one_off_service
        self.cleaning = cleaning

    def _book(self, booking_date, **overrides):
        fields = {
            "client_id": self.client_user.id,
            "service_id": self.service.id,
            "booking_date": booking_date.isoformat(),
            "booking_time": "10:00",
            "client_town": "Windhoek",
            "client_suburb": "Klein Windhoek",
            "service_address": "12 Nelson Mandela Avenue",
        }
        fields.update(overrides)
        return booking_service.create_booking(**fields)

    def test_assigns_nearest_provider(self, make_provider, next_week):
        make_provider("Olympia", categories=[self.cleaning])
        nearest = make_provider("Eros", categories=[self.cleaning])

        result = self._book(next_week)
        booking = result.booking

        assert result.auto_assigned
        assert result.provider_id == nearest.id
        assert booking.status == "assigned"
        assert booking.assignment_status == "auto_assigned"
        assert booking.total_amount == self.service.client_price
        assert booking.duration_minutes == 180
        assert booking.acceptance_deadline > utcnow() + timedelta(hours=23)
        assert _in_app(self.client_user.id, "booking_created") == 1
        assert _in_app(nearest.id, "job_assigned") == 1

    def test_no_provider_queues_for_manual_assignment(self, next_week):
        result = self._book(next_week)

        assert not result.auto_assigned
        assert result.provider_id is None
        assert result.booking.status == "pending"
        assert result.booking.assignment_status == "manual_assignment_required"

    def test_creation_is_audited(self, next_week):
        result = self._book(next_week)
        log = AuditLog.query.filter_by(
            entity_type="booking.booking", entity_id=result.booking.id
        ).one()
        assert log.action_type == "CREATE"
        assert log.user_id == self.client_user.id

    def test_today_is_allowed_past_is_not(self):
        assert self._book(today()).booking.booking_date == today()
        with pytest.raises(ValueError, match="cannot be in the past"):
            self._book(today() - timedelta(days=1))

    @pytest.mark.parametrize("bad_time", ["25:00", "9am", "10:60", ""])
    def test_time_must_be_hh_mm(self, next_week, bad_time):
        with pytest.raises(ValueError, match="HH:MM"):
            self._book(next_week, booking_time=bad_time)

    def test_address_fields_required(self, next_week):
        with pytest.raises(ValueError, match="suburb, service address"):
            self._book(next_week, client_suburb=" ", service_address="")

    def test_town_stored_in_canonical_spelling(self, next_week):
        booking = self._book(next_week, client_town=" windhoek ").booking
        assert booking.client_town == "Windhoek"

    @pytest.mark.parametrize("town", ["%", "Wind_oek", "Oshakati"])
    def test_unserved_town_rejected(self, next_week, town):
        with pytest.raises(ValueError, match="We do not serve"):
            self._book(next_week, client_town=town)

    def test_inactive_service_not_found(self, db_session, next_week):
        self.service.is_active = False
        db_session.commit()
        with pytest.raises(ValueError, match="not found"):
            self._book(next_week)

    def test_emergency_flag_stored(self, next_week):
        booking = self._book(next_week, emergency_booking=True).booking
        assert booking.emergency_booking
        assert booking in booking_service.get_emergency_bookings()


class TestSubscriptionBookings:
    """Subscription services are paid for by the client's package."""

    @pytest.fixture(autouse=True)
    def _setup(self, client_user, subscription_service, package):
        self.client_user = client_user
        self.service = subscription_service
        self.package = package

    def _book(self, booking_date):
        return booking_service.create_booking(
            self.client_user.id,
            self.service.id,
            booking_date,
            "09:00",
            "Windhoek",
            "Klein Windhoek",
            "12 Nelson Mandela Avenue",
        )

    def test_requires_active_package(self, next_week):
        with pytest.raises(ValueError, match="active package"):
            self._book(next_week)

    def test_package_booking_is_free_and_logged(self, next_week):
        entitlement_service.activate_package(self.client_user.id, self.package.id)

        booking = self._book(next_week).booking

        assert booking.total_amount == 0
        assert booking.package_id == self.package.id
        assert booking.job_type == "subscription"
        assert ServiceUsageLog.query.filter_by(booking_id=booking.id).count() == 1

    def test_quota_enforced(self, next_week):
        entitlement_service.activate_package(self.client_user.id, self.package.id)
        self._book(next_week)
        self._book(next_week + timedelta(days=1))

        with pytest.raises(ValueError, match=r"\(2/2\)"):
            self._book(next_week + timedelta(days=2))

    def test_cancelling_returns_the_use(self, next_week):
        entitlement_service.activate_package(self.client_user.id, self.package.id)
        first = self._book(next_week).booking
        self._book(next_week + timedelta(days=1))

        booking_service.cancel_booking(first.id, self.client_user, "Away")

        assert self._book(next_week + timedelta(days=2)).booking.package_id

    def test_reinstating_takes_the_use_back(self, next_week, admin_user):
        entitlement_service.activate_package(self.client_user.id, self.package.id)
        first = self._book(next_week).booking
        booking_service.cancel_booking(first.id, self.client_user, "Away")
        assert ServiceUsageLog.query.filter_by(booking_id=first.id).count() == 0

        booking_service.rollback_booking_status(
            first.id, "pending", "Client is home after all", admin_user.id
        )

        assert first.status == "pending"
        assert ServiceUsageLog.query.filter_by(booking_id=first.id).count() == 1

    def test_reinstating_over_quota_rejected(self, next_week, admin_user):
        entitlement_service.activate_package(self.client_user.id, self.package.id)
        first = self._book(next_week).booking
        self._book(next_week + timedelta(days=1))
        booking_service.cancel_booking(first.id, self.client_user, "Away")
        self._book(next_week + timedelta(days=2))

        with pytest.raises(ValueError, match="Cannot reinstate this package booking"):
            booking_service.rollback_booking_status(
                first.id, "pending", "Client is home after all", admin_user.id
            )

        assert first.status == "cancelled"
        assert ServiceUsageLog.query.filter_by(user_id=self.client_user.id).count() == 2


class TestLifecycle:
    """Provider actions and the allowed status transitions."""

    @pytest.fixture(autouse=True)
    def _setup(self, make_provider, make_booking, client_user):
        self.provider = make_provider()
        self.client_user = client_user
        self.booking = make_booking("assigned", provider=self.provider)

    def test_accept_start_complete(self):
        booking_service.accept_booking(self.booking.id, self.provider.id)
        assert self.booking.status == "accepted"

        booking_service.start_job(self.booking.id, self.provider.id)
        assert self.booking.status == "in_progress"
        assert self.booking.check_in_time is not None

        booking_service.complete_job(self.booking.id, self.provider.id)
        assert self.booking.status == "completed"
        assert self.booking.completion_date == today()
        assert self.provider.provider_profile.total_jobs == 1

        history = [m.new_value for m in booking_service.get_modification_history(self.booking.id)]
        assert history == ["accepted", "in_progress", "completed"]

    def test_skipping_a_step_rejected(self):
        with pytest.raises(ValueError, match="from assigned to in_progress"):
            booking_service.start_job(self.booking.id, self.provider.id)

    def test_other_provider_cannot_act(self, make_provider):
        stranger = make_provider("Eros")
        with pytest.raises(PermissionError, match="not assigned"):
            booking_service.accept_booking(self.booking.id, stranger.id)

    def test_client_cancels_own_booking(self):
        booking_service.cancel_booking(self.booking.id, self.client_user, "Plans changed")

        assert self.booking.status == "cancelled"
        assert self.booking.cancellation_reason == "Plans changed"
        assert _in_app(self.provider.id, "booking_cancelled") == 1

    def test_client_cannot_cancel_others_booking(self, make_user):
        other = make_user("client")
        with pytest.raises(PermissionError, match="your own bookings"):
            booking_service.cancel_booking(self.booking.id, other)

    def test_admin_may_cancel_any_booking(self, admin_user):
        booking_service.cancel_booking(self.booking.id, admin_user, "Duplicate")
        assert self.booking.status == "cancelled"

    def test_refund_flag_on_paid_booking(self, db_session):
        self.booking.payment_status = "paid"
        db_session.commit()

        booking_service.cancel_booking(self.booking.id, self.client_user, refund=True)

        assert self.booking.payment_status == "refund_pending"

    def test_completed_booking_cannot_be_cancelled(self):
        booking_service.accept_booking(self.booking.id, self.provider.id)
        booking_service.start_job(self.booking.id, self.provider.id)
        booking_service.complete_job(self.booking.id, self.provider.id)

        with pytest.raises(ValueError, match="from completed to cancelled"):
            booking_service.cancel_booking(self.booking.id, self.client_user)

    def test_no_show_needs_type_and_reason(self, admin_user):
        with pytest.raises(ValueError, match="No-show type"):
            booking_service.mark_no_show(self.booking.id, "nobody", "x", admin_user.id)
        with pytest.raises(ValueError, match="reason"):
            booking_service.mark_no_show(self.booking.id, "client", "", admin_user.id)

    def test_no_show_recorded(self, admin_user):
        booking_service.mark_no_show(
            self.booking.id, "client", "Nobody home", admin_user.id
        )
        assert self.booking.status == "no_show_client"
        assert self.booking.cancellation_reason == "Nobody home"


class TestRollback:
    """Admin corrections to earlier statuses."""

    @pytest.fixture(autouse=True)
    def _setup(self, make_provider, make_booking, admin_user):
        self.provider = make_provider()
        self.admin = admin_user
        self.booking = make_booking("assigned", provider=self.provider)

    def _complete(self):
        booking_service.accept_booking(self.booking.id, self.provider.id)
        booking_service.start_job(self.booking.id, self.provider.id)
        booking_service.complete_job(self.booking.id, self.provider.id)

    def test_rollback_completed_to_accepted(self):
        self._complete()

        booking_service.rollback_booking_status(
            self.booking.id, "accepted", "Completed by mistake", self.admin.id
        )

        assert self.booking.status == "accepted"
        assert self.booking.completion_date is None
        assert self.booking.check_in_time is None
        assert self.provider.provider_profile.total_jobs == 0

    def test_rollback_must_go_backwards(self):
        with pytest.raises(ValueError, match="earlier status"):
            booking_service.rollback_booking_status(
                self.booking.id, "accepted", "Oops", self.admin.id
            )

    def test_rollback_needs_reason(self):
        with pytest.raises(ValueError, match="reason"):
            booking_service.rollback_booking_status(
                self.booking.id, "pending", "", self.admin.id
            )

    def test_reinstate_cancelled_booking_to_pending(self, client_user):
        booking_service.cancel_booking(self.booking.id, client_user, "Mistake")

        booking_service.rollback_booking_status(
            self.booking.id, "pending", "Client called back", self.admin.id
        )

        assert self.booking.status == "pending"
        assert self.booking.provider_id is None
        assert self.booking.cancellation_reason is None
        assert self.booking.assignment_status == "pending_assignment"

    def test_cancelled_booking_cannot_become_completed(self, client_user):
        booking_service.cancel_booking(self.booking.id, client_user)
        with pytest.raises(ValueError, match="can only be reinstated"):
            booking_service.rollback_booking_status(
                self.booking.id, "completed", "No", self.admin.id
            )


class TestEditsAndRatings:
    """Detail changes, reviews and provider rating averages."""

    @pytest.fixture(autouse=True)
    def _setup(self, make_provider, make_booking, client_user):
        self.provider = make_provider()
        self.client_user = client_user
        self.make_booking = make_booking

    def test_reschedule_records_history(self, next_week):
        booking = self.make_booking("assigned", provider=self.provider)
        new_date = next_week + timedelta(days=1)

        booking_service.update_booking_details(
            booking.id, self.client_user, booking_date=new_date, reason="Away"
        )

        assert booking.booking_date == new_date
        fields = [m.field for m in booking.modifications]
        assert "booking_date" in fields

    def test_reschedule_into_provider_conflict_rejected(self):
        booking = self.make_booking("assigned", provider=self.provider)
        self.make_booking("accepted", provider=self.provider, booking_time=time(15, 0))

        with pytest.raises(ValueError, match="not available"):
            booking_service.update_booking_details(
                booking.id, self.client_user, booking_time="14:00"
            )

    def test_rating_updates_provider_average(self):
        first = self.make_booking("completed", provider=self.provider)
        second = self.make_booking(
            "completed", provider=self.provider, booking_time=time(14, 0)
        )

        booking_service.rate_booking(first.id, self.client_user.id, 5, "Great")
        booking_service.rate_booking(second.id, self.client_user.id, 4)

        assert float(self.provider.provider_profile.rating) == 4.5

    def test_only_completed_bookings_rated(self):
        booking = self.make_booking("accepted", provider=self.provider)
        with pytest.raises(ValueError, match="Only completed"):
            booking_service.rate_booking(booking.id, self.client_user.id, 5)

    def test_rating_once_and_in_range(self):
        booking = self.make_booking("completed", provider=self.provider)
        with pytest.raises(ValueError, match="1 to 5"):
            booking_service.rate_booking(booking.id, self.client_user.id, 6)

        booking_service.rate_booking(booking.id, self.client_user.id, 3)
        with pytest.raises(ValueError, match="already been rated"):
            booking_service.rate_booking(booking.id, self.client_user.id, 4)


class TestExpiryAndQueries:
    """Deadline expiry and the booking listings."""

    def test_overdue_bookings_cancelled(self, make_booking, make_provider):
        overdue = make_booking(acceptance_deadline=utcnow() - timedelta(hours=1))
        waiting = make_booking(
            "assigned",
            provider=make_provider(),
            booking_time=time(14, 0),
            acceptance_deadline=utcnow() + timedelta(hours=1),
        )

        assert booking_service.expire_unaccepted_bookings() == 1
        assert overdue.status == "cancelled"
        assert overdue.cancellation_reason == booking_service.EXPIRY_REASON
        assert waiting.status == "assigned"

    def test_upcoming_bookings_per_role(self, make_booking, make_provider, admin_user, client_user):
        provider = make_provider()
        open_booking = make_booking("assigned", provider=provider)
        make_booking("completed", provider=provider, booking_time=time(15, 0))

        assert booking_service.get_upcoming_bookings(client_user) == [open_booking]
        assert booking_service.get_upcoming_bookings(provider) == [open_booking]
        assert booking_service.get_upcoming_bookings(admin_user) == [open_booking]

    def test_unknown_booking_not_found(self, db_session):
        with pytest.raises(ValueError, match="Booking ID 999 not found."):
            booking_service.get_booking(999)
