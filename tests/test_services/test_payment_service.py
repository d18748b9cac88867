"""
Tests for payment_service — bank-deposit submissions and their review.
"""

from decimal import Decimal

import pytest

from app.models.booking import BookingModification
from app.services import entitlement_service, payment_service


class TestSubmitTransaction:
    """Recording a client's deposit."""

    def test_booking_payment(self, client_user, make_booking):
        booking = make_booking()

        txn = payment_service.submit_transaction(
            client_user.id, "350.00", "booking", " DEP-1001 ", booking_id=booking.id
        )

        assert txn.status == "pending"
        assert txn.amount == Decimal("350.00")
        assert txn.reference_number == "DEP-1001"
        assert payment_service.get_pending_transactions() == [txn]

    @pytest.mark.parametrize(
        "amount, txn_type, reference, message",
        [
            ("abc", "booking", "R1", "must be a number"),
            ("0", "booking", "R1", "greater than zero"),
            ("100", "refund", "R1", "Unknown transaction type"),
            ("100", "booking", "  ", "reference number is required"),
            ("100", "booking", "R1", "must name the booking"),
            ("100", "subscription", "R1", "must name the package"),
        ],
    )
    def test_invalid_submissions(self, client_user, amount, txn_type, reference, message):
        with pytest.raises(ValueError, match=message):
            payment_service.submit_transaction(client_user.id, amount, txn_type, reference)

    def test_duplicate_reference_rejected(self, client_user, make_booking):
        booking = make_booking()
        payment_service.submit_transaction(
            client_user.id, "350", "booking", "DEP-1", booking_id=booking.id
        )
        with pytest.raises(ValueError, match="already been submitted"):
            payment_service.submit_transaction(
                client_user.id, "350", "booking", "DEP-1", booking_id=booking.id
            )

    def test_declined_reference_can_be_reused(self, client_user, admin_user, make_booking):
        booking = make_booking()
        txn = payment_service.submit_transaction(
            client_user.id, "350", "booking", "DEP-2", booking_id=booking.id
        )
        payment_service.decline_transaction(txn.id, admin_user.id, "Deposit not found")

        again = payment_service.submit_transaction(
            client_user.id, "350", "booking", "DEP-2", booking_id=booking.id
        )
        assert again.status == "pending"

    def test_cannot_pay_for_someone_elses_booking(self, make_user, make_booking):
        booking = make_booking()
        other = make_user("client")
        with pytest.raises(PermissionError):
            payment_service.submit_transaction(
                other.id, "350", "booking", "DEP-3", booking_id=booking.id
            )

    def test_inactive_package_rejected(self, client_user, db_session, package):
        package.is_active = False
        db_session.commit()
        with pytest.raises(ValueError, match="not available"):
            payment_service.submit_transaction(
                client_user.id, "1000", "subscription", "DEP-4", package_id=package.id
            )


class TestReview:
    """Admin approval and decline."""

    def test_approved_booking_payment_marks_booking_paid(
        self, client_user, admin_user, make_booking
    ):
        booking = make_booking()
        txn = payment_service.submit_transaction(
            client_user.id, "350", "booking", "DEP-10", booking_id=booking.id
        )

        payment_service.approve_transaction(txn.id, admin_user.id)

        assert txn.status == "approved"
        assert txn.reviewed_by == admin_user.id
        assert booking.payment_status == "paid"
        change = BookingModification.query.filter_by(
            booking_id=booking.id, field="payment_status"
        ).one()
        assert change.new_value == "paid"

        with pytest.raises(ValueError, match="already been approved"):
            payment_service.approve_transaction(txn.id, admin_user.id)

    def test_paid_booking_cannot_be_paid_again(
        self, client_user, admin_user, make_booking
    ):
        booking = make_booking()
        txn = payment_service.submit_transaction(
            client_user.id, "350", "booking", "DEP-11", booking_id=booking.id
        )
        payment_service.approve_transaction(txn.id, admin_user.id)

        with pytest.raises(ValueError, match="already paid"):
            payment_service.submit_transaction(
                client_user.id, "350", "booking", "DEP-12", booking_id=booking.id
            )

    def test_approved_subscription_activates_package(
        self, client_user, admin_user, package
    ):
        txn = payment_service.submit_transaction(
            client_user.id, "1000", "subscription", "DEP-20", package_id=package.id
        )

        payment_service.approve_transaction(txn.id, admin_user.id, "Matched statement")

        active = entitlement_service.get_active_package(client_user.id)
        assert active is not None
        assert active.package_id == package.id
        assert txn.admin_notes == "Matched statement"

    def test_decline_needs_a_reason(self, client_user, admin_user, package):
        txn = payment_service.submit_transaction(
            client_user.id, "1000", "subscription", "DEP-30", package_id=package.id
        )

        with pytest.raises(ValueError, match="reason is required"):
            payment_service.decline_transaction(txn.id, admin_user.id, "  ")

        payment_service.decline_transaction(txn.id, admin_user.id, "Amount too low")
        assert txn.status == "declined"
        assert entitlement_service.get_active_package(client_user.id) is None
        assert payment_service.get_user_transactions(client_user.id) == [txn]

    def test_unknown_transaction(self, db_session, admin_user):
        with pytest.raises(ValueError, match="Transaction ID 5 not found."):
            payment_service.approve_transaction(5, admin_user.id)
