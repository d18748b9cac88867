"""
Payment service — bank-deposit payments reviewed by an admin.

Clients pay by bank deposit and submit the deposit reference as a
``PendingTransaction``. An admin then approves or declines it:

  - an approved **subscription** payment activates the package;
  - an approved **booking** payment marks the booking ``paid``;
  - a declined payment records the admin's note for the client.
"""

import logging
from decimal import Decimal, InvalidOperation

from app.extensions import db
from app.models.booking import Booking
from app.models.catalog import SubscriptionPackage
from app.models.payment import PendingTransaction
from app.services import (
    audit_service,
    booking_service,
    entitlement_service,
    financial_service,
    notification_service,
)
from app.services.clock import utcnow

logger = logging.getLogger(__name__)

TRANSACTION_TYPES = ("booking", "subscription")


def get_transaction(transaction_id: int) -> PendingTransaction:
    """Return a transaction. Raises ValueError if it does not exist."""
    txn = db.session.get(PendingTransaction, transaction_id)
    if txn is None:
        raise ValueError(f"Transaction ID {transaction_id} not found.")
    return txn


def get_pending_transactions() -> list[PendingTransaction]:
    """Return transactions awaiting review, oldest first."""
    return (
        PendingTransaction.query.filter_by(status="pending")
        .order_by(PendingTransaction.created_at, PendingTransaction.id)
        .all()
    )


def get_user_transactions(user_id: int) -> list[PendingTransaction]:
    return (
        PendingTransaction.query.filter_by(user_id=user_id)
        .order_by(PendingTransaction.created_at.desc(), PendingTransaction.id.desc())
        .all()
    )


def submit_transaction(
    user_id: int,
    amount,
    transaction_type: str,
    reference_number: str,
    booking_id: int | None = None,
    package_id: int | None = None,
) -> PendingTransaction:
    """
    Record a bank deposit for admin review.

    Args:
        user_id:          The paying client.
        amount:           Deposited amount in NAD.
        transaction_type: ``booking`` or ``subscription``.
        reference_number: The bank deposit reference.
        booking_id:       Required for booking payments.
        package_id:       Required for subscription payments.

    Raises:
        ValueError: For a bad amount, type or reference, a missing or
                    already paid booking, an inactive package, or a
                    reference that was already submitted.
        PermissionError: If the booking belongs to another client.
    """
    try:
        amount = Decimal(str(amount))
    except (InvalidOperation, ValueError) as exc:
        raise ValueError("Amount must be a number.") from exc
    if amount <= 0:
        raise ValueError("Amount must be greater than zero.")
    if transaction_type not in TRANSACTION_TYPES:
        raise ValueError(
            f"Unknown transaction type '{transaction_type}'. "
            f"Valid options: {', '.join(TRANSACTION_TYPES)}"
        )
    reference_number = (reference_number or "").strip()
    if not reference_number:
        raise ValueError("A deposit reference number is required.")

    duplicate = PendingTransaction.query.filter(
        PendingTransaction.reference_number == reference_number,
        PendingTransaction.status.in_(("pending", "approved")),
    ).first()
    if duplicate is not None:
        raise ValueError(f"Reference '{reference_number}' has already been submitted.")

    if transaction_type == "booking":
        if booking_id is None:
            raise ValueError("Booking payments must name the booking.")
        booking = booking_service.get_booking(booking_id)
        if booking.client_id != user_id:
            raise PermissionError("You can only pay for your own bookings.")
        if booking.payment_status == "paid":
            raise ValueError(f"Booking #{booking.id} is already paid.")
        package_id = None
    else:
        if package_id is None:
            raise ValueError("Subscription payments must name the package.")
        package = db.session.get(SubscriptionPackage, package_id)
        if package is None or not package.is_active:
            raise ValueError(f"Package ID {package_id} is not available.")
        booking_id = None

    txn = PendingTransaction(
        user_id=user_id,
        amount=amount,
        transaction_type=transaction_type,
        reference_number=reference_number,
        booking_id=booking_id,
        package_id=package_id,
        status="pending",
        created_at=utcnow(),
    )
    db.session.add(txn)
    db.session.flush()

    audit_service.log_change(
        user_id=user_id,
        action_type="CREATE",
        entity_type="payment.transaction",
        entity_id=txn.id,
        new_value=txn.to_dict(),
    )
    notification_service.notify_user(
        user_id,
        "payment_submitted",
        "Payment received for review",
        f"Your deposit of {financial_service.format_currency(amount)} "
        f"(ref {reference_number}) is being verified.",
        {"transaction_id": txn.id},
    )
    db.session.commit()

    logger.info(
        "User %s submitted %s payment %s for %s",
        user_id,
        transaction_type,
        reference_number,
        amount,
    )
    return txn


def _require_pending(txn: PendingTransaction) -> None:
    if txn.status != "pending":
        raise ValueError(f"Transaction has already been {txn.status}.")


def approve_transaction(
    transaction_id: int, reviewed_by: int, admin_notes: str | None = None
) -> PendingTransaction:
    """
    Approve a deposit and apply it.

    Raises:
        ValueError: If the transaction is not pending.
    """
    txn = get_transaction(transaction_id)
    _require_pending(txn)

    txn.status = "approved"
    txn.admin_notes = admin_notes
    txn.reviewed_by = reviewed_by
    txn.reviewed_at = utcnow()

    audit_service.log_change(
        user_id=reviewed_by,
        action_type="APPROVE",
        entity_type="payment.transaction",
        entity_id=txn.id,
        previous_value={"status": "pending"},
        new_value={"status": "approved", "admin_notes": admin_notes},
    )

    if txn.transaction_type == "booking" and txn.booking_id is not None:
        booking = db.session.get(Booking, txn.booking_id)
        booking_service.record_modification(
            booking, "payment_status", booking.payment_status, "paid",
            reason=f"Deposit {txn.reference_number} approved",
            changed_by=reviewed_by,
        )
        booking.payment_status = "paid"

    notification_service.notify_user(
        txn.user_id,
        "payment_approved",
        "Payment approved",
        f"Your payment of {financial_service.format_currency(txn.amount)} "
        f"(ref {txn.reference_number}) has been approved.",
        {"transaction_id": txn.id},
    )

    if txn.transaction_type == "subscription" and txn.package_id is not None:
        # Commits the approval together with the new package.
        entitlement_service.activate_package(
            txn.user_id, txn.package_id, activated_by=reviewed_by
        )
    else:
        db.session.commit()

    logger.info(
        "Transaction %s (%s) approved by user %s",
        txn.id,
        txn.transaction_type,
        reviewed_by,
    )
    return txn


def decline_transaction(
    transaction_id: int, reviewed_by: int, admin_notes: str
) -> PendingTransaction:
    """
    Decline a deposit with a note for the client.

    Raises:
        ValueError: If the transaction is not pending or no note is given.
    """
    txn = get_transaction(transaction_id)
    _require_pending(txn)
    admin_notes = (admin_notes or "").strip()
    if not admin_notes:
        raise ValueError("A reason is required when declining a payment.")

    txn.status = "declined"
    txn.admin_notes = admin_notes
    txn.reviewed_by = reviewed_by
    txn.reviewed_at = utcnow()

    audit_service.log_change(
        user_id=reviewed_by,
        action_type="DECLINE",
        entity_type="payment.transaction",
        entity_id=txn.id,
        previous_value={"status": "pending"},
        new_value={"status": "declined", "admin_notes": admin_notes},
    )
    notification_service.notify_user(
        txn.user_id,
        "payment_declined",
        "Payment declined",
        f"Your payment (ref {txn.reference_number}) was declined: {admin_notes}",
        {"transaction_id": txn.id},
    )
    db.session.commit()

    logger.info("Transaction %s declined by user %s", txn.id, reviewed_by)
    return txn
