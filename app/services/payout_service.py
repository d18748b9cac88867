"""
Payout service — paying providers for completed work.

A payout bundles a provider's completed bookings that have not been
paid out yet. Amounts always come from ``financial_service``; this
module only decides which bookings go into which payout and moves
payouts and batches through their statuses::

    Payout:       pending -> approved -> paid
    PayoutBatch:  pending_approval -> approved -> processed

Automated runs (``flask run-payouts``) apply each provider's
``PayoutRule``: providers under their minimum are skipped, high-rated
providers may earn a bonus and small payouts may be approved at once.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation

from sqlalchemy import func

from app.extensions import db
from app.models.booking import Booking
from app.models.payment import Payout, PayoutBatch, PayoutRule
from app.models.user import ProviderProfile, User
from app.services import audit_service, financial_service, notification_service
from app.services.clock import today, utcnow
from app.services.financial_service import ZERO

logger = logging.getLogger(__name__)

PAYOUT_TYPES = ("weekly_auto", "manual", "instant")
PAYMENT_METHODS = ("bank_transfer", "mobile_money", "cash")


@dataclass
class PayoutRunResult:
    """Outcome of one automated payout run."""

    batch: PayoutBatch | None = None
    payouts: list[Payout] = field(default_factory=list)
    skipped_providers: list[int] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "batch": self.batch.to_dict() if self.batch else None,
            "payouts_created": len(self.payouts),
            "skipped_providers": list(self.skipped_providers),
        }


# =========================================================================
# Lookups
# =========================================================================


def get_payout(payout_id: int) -> Payout:
    """Return a payout. Raises ValueError if it does not exist."""
    payout = db.session.get(Payout, payout_id)
    if payout is None:
        raise ValueError(f"Payout ID {payout_id} not found.")
    return payout


def get_batch(batch_id: int) -> PayoutBatch:
    """Return a payout batch. Raises ValueError if it does not exist."""
    batch = db.session.get(PayoutBatch, batch_id)
    if batch is None:
        raise ValueError(f"Payout batch ID {batch_id} not found.")
    return batch


def get_payouts(
    provider_id: int | None = None, status: str | None = None
) -> list[Payout]:
    """Return payouts, newest first, optionally filtered."""
    query = Payout.query
    if provider_id is not None:
        query = query.filter_by(provider_id=provider_id)
    if status:
        query = query.filter_by(status=status)
    return query.order_by(Payout.created_at.desc(), Payout.id.desc()).all()


def get_batches(limit: int = 20) -> list[PayoutBatch]:
    """Return the most recent payout batches."""
    return (
        PayoutBatch.query.order_by(PayoutBatch.created_at.desc(), PayoutBatch.id.desc())
        .limit(limit)
        .all()
    )


def get_payable_bookings(provider_id: int) -> list[Booking]:
    """Return the provider's completed bookings not yet paid out."""
    return (
        Booking.query.filter(
            Booking.provider_id == provider_id,
            Booking.status == "completed",
            Booking.paid_out.is_(False),
            Booking.payout_id.is_(None),
        )
        .order_by(Booking.completion_date, Booking.id)
        .all()
    )


# =========================================================================
# Payout rules
# =========================================================================


def get_payout_rule(provider_id: int | None) -> PayoutRule | None:
    """
    Return the active rule that applies to a provider.

    A provider's own rule wins over the platform default (the rule with
    no provider). Returns None if neither exists.
    """
    if provider_id is not None:
        rule = PayoutRule.query.filter_by(provider_id=provider_id, is_active=True).first()
        if rule is not None:
            return rule
    return PayoutRule.query.filter(
        PayoutRule.provider_id.is_(None), PayoutRule.is_active.is_(True)
    ).first()


def get_payout_rules() -> list[PayoutRule]:
    return PayoutRule.query.order_by(PayoutRule.provider_id, PayoutRule.id).all()


def set_payout_rule(
    provider_id: int | None,
    changed_by: int,
    rule_name: str = "Default Rule",
    minimum_payout_amount=ZERO,
    payout_frequency: str = "weekly",
    payout_day: int | None = None,
    auto_approve_under_amount=None,
    performance_bonus_enabled: bool = False,
    performance_bonus_threshold=None,
    performance_bonus_percentage=None,
) -> PayoutRule:
    """
    Create or replace the payout rule for a provider (or the default).

    Raises:
        ValueError: For an unknown frequency, a negative amount, a
                    payout day outside 0-31, or an enabled bonus
                    without threshold and percentage.
    """
    if payout_frequency not in financial_service.PAYOUT_FREQUENCIES:
        raise ValueError(
            f"Unknown payout frequency '{payout_frequency}'. Valid options: "
            f"{', '.join(financial_service.PAYOUT_FREQUENCIES)}"
        )
    try:
        minimum = Decimal(str(minimum_payout_amount or 0))
        auto_approve = (
            Decimal(str(auto_approve_under_amount))
            if auto_approve_under_amount not in (None, "")
            else None
        )
        bonus_threshold = (
            Decimal(str(performance_bonus_threshold))
            if performance_bonus_threshold is not None
            else None
        )
        bonus_percentage = (
            Decimal(str(performance_bonus_percentage))
            if performance_bonus_percentage
            else None
        )
        payout_day = int(payout_day) if payout_day is not None else None
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise ValueError("Payout rule amounts and day must be numbers.") from exc

    if minimum < 0:
        raise ValueError("Minimum payout amount cannot be negative.")
    if auto_approve is not None and auto_approve < 0:
        raise ValueError("Auto-approve amount cannot be negative.")
    if payout_day is not None and not 0 <= payout_day <= 31:
        raise ValueError("Payout day must be between 0 and 31.")
    if performance_bonus_enabled and (bonus_threshold is None or not bonus_percentage):
        raise ValueError("A performance bonus needs a rating threshold and percentage.")

    if provider_id is not None:
        rule = PayoutRule.query.filter_by(provider_id=provider_id).first()
    else:
        rule = PayoutRule.query.filter(PayoutRule.provider_id.is_(None)).first()

    previous = rule.to_dict() if rule else None
    if rule is None:
        rule = PayoutRule(provider_id=provider_id)
        db.session.add(rule)

    rule.rule_name = rule_name or "Default Rule"
    rule.minimum_payout_amount = minimum
    rule.payout_frequency = payout_frequency
    rule.payout_day = payout_day
    rule.auto_approve_under_amount = auto_approve
    rule.performance_bonus_enabled = bool(performance_bonus_enabled)
    rule.performance_bonus_threshold = bonus_threshold
    rule.performance_bonus_percentage = bonus_percentage
    rule.is_active = True
    db.session.flush()

    audit_service.log_change(
        user_id=changed_by,
        action_type="UPDATE" if previous else "CREATE",
        entity_type="payout.rule",
        entity_id=rule.id,
        previous_value=previous,
        new_value=rule.to_dict(),
    )
    db.session.commit()

    logger.info("Payout rule '%s' saved for provider %s", rule.rule_name, provider_id)
    return rule


# =========================================================================
# Creating payouts
# =========================================================================


def _build_payout(
    provider_id: int,
    bookings: list[Booking],
    payout_type: str,
    payment_method: str,
    created_by: int | None,
    bonus: Decimal = ZERO,
    batch: PayoutBatch | None = None,
) -> Payout:
    """Add a payout for the bookings and mark them paid out (no commit)."""
    calc = financial_service.calculate_batch_payout(
        [financial_service.financials_for_booking(b) for b in bookings]
    )
    payout = Payout(
        provider_id=provider_id,
        batch=batch,
        payout_type=payout_type,
        payment_method=payment_method,
        booking_count=len(bookings),
        gross_amount=calc.gross_amount,
        commission_amount=calc.platform_commission,
        tax_amount=calc.total_tax,
        bonus_amount=bonus,
        net_amount=calc.net_payout + bonus,
        status="pending",
        created_by=created_by,
        created_at=utcnow(),
    )
    db.session.add(payout)
    db.session.flush()

    for booking in bookings:
        booking.paid_out = True
        booking.payout_id = payout.id
    return payout


def _default_payment_method(provider_id: int) -> str:
    profile = ProviderProfile.query.filter_by(user_id=provider_id).first()
    return profile.payment_method if profile else "bank_transfer"


def create_provider_payout(
    provider_id: int,
    created_by: int,
    payout_type: str = "manual",
    payment_method: str | None = None,
) -> Payout:
    """
    Pay a provider for all their completed, unpaid bookings.

    Args:
        provider_id:    The provider being paid.
        created_by:     Admin creating the payout.
        payout_type:    ``manual``, ``instant`` or ``weekly_auto``.
        payment_method: Defaults to the method on the provider's profile.

    Raises:
        ValueError: If the provider is unknown, the type or method is
                    invalid, or there is nothing to pay.
    """
    provider = db.session.get(User, provider_id)
    if provider is None or not provider.is_provider:
        raise ValueError(f"Provider ID {provider_id} not found.")
    if payout_type not in PAYOUT_TYPES:
        raise ValueError(
            f"Unknown payout type '{payout_type}'. Valid options: {', '.join(PAYOUT_TYPES)}"
        )
    payment_method = payment_method or _default_payment_method(provider_id)
    if payment_method not in PAYMENT_METHODS:
        raise ValueError(
            f"Unknown payment method '{payment_method}'. "
            f"Valid options: {', '.join(PAYMENT_METHODS)}"
        )

    bookings = get_payable_bookings(provider_id)
    if not bookings:
        raise ValueError(f"{provider.full_name} has no completed bookings to pay out.")

    payout = _build_payout(provider_id, bookings, payout_type, payment_method, created_by)

    audit_service.log_change(
        user_id=created_by,
        action_type="CREATE",
        entity_type="payout.payout",
        entity_id=payout.id,
        new_value={**payout.to_dict(), "booking_ids": [b.id for b in bookings]},
    )
    notification_service.notify_user(
        provider_id,
        "payout_created",
        "Payout created",
        f"A payout of {financial_service.format_currency(payout.net_amount)} "
        f"for {len(bookings)} jobs is being processed.",
        {"payout_id": payout.id},
    )
    db.session.commit()

    logger.info(
        "Created %s payout %s for provider %s: %d bookings, net %s",
        payout_type,
        payout.id,
        provider_id,
        len(bookings),
        payout.net_amount,
    )
    return payout


def trigger_automated_payouts(triggered_by: int | None = None) -> PayoutRunResult:
    """
    Run a scheduled payout batch across all providers with unpaid work.

    For each provider the applicable ``PayoutRule`` (or none) decides:
      - providers whose net payout is under ``minimum_payout_amount``
        are skipped and keep their bookings for the next run;
      - with the bonus enabled, a rating at or above the threshold adds
        ``performance_bonus_percentage`` of the net payout;
      - payouts under ``auto_approve_under_amount`` are approved at once.

    The batch is ``approved`` when every payout in it was auto-approved,
    otherwise ``pending_approval``. No batch is created when nothing is
    payable.
    """
    provider_ids = [
        row[0]
        for row in db.session.query(Booking.provider_id)
        .filter(
            Booking.provider_id.isnot(None),
            Booking.status == "completed",
            Booking.paid_out.is_(False),
            Booking.payout_id.is_(None),
        )
        .distinct()
        .order_by(Booking.provider_id)
        .all()
    ]

    result = PayoutRunResult()
    if not provider_ids:
        logger.info("Automated payout run: nothing to pay")
        return result

    now = utcnow()
    batch = PayoutBatch(
        batch_name=f"AUTO_BATCH_{today().isoformat()}",
        batch_type="scheduled",
        status="pending_approval",
        created_by=triggered_by,
        created_at=now,
    )
    db.session.add(batch)
    db.session.flush()

    all_approved = True
    for provider_id in provider_ids:
        bookings = get_payable_bookings(provider_id)
        rule = get_payout_rule(provider_id)
        calc = financial_service.calculate_batch_payout(
            [financial_service.financials_for_booking(b) for b in bookings]
        )
        if rule is not None and calc.net_payout < (rule.minimum_payout_amount or ZERO):
            result.skipped_providers.append(provider_id)
            logger.info(
                "Provider %s below minimum payout (%s < %s); skipped",
                provider_id,
                calc.net_payout,
                rule.minimum_payout_amount,
            )
            continue

        bonus = ZERO
        if rule is not None and rule.performance_bonus_enabled:
            profile = ProviderProfile.query.filter_by(user_id=provider_id).first()
            bonus = financial_service.calculate_performance_bonus(
                calc.net_payout,
                profile.rating if profile else None,
                rule.performance_bonus_threshold,
                rule.performance_bonus_percentage,
            )

        payout = _build_payout(
            provider_id,
            bookings,
            "weekly_auto",
            _default_payment_method(provider_id),
            triggered_by,
            bonus=bonus,
            batch=batch,
        )
        if (
            rule is not None
            and rule.auto_approve_under_amount is not None
            and payout.net_amount < rule.auto_approve_under_amount
        ):
            payout.status = "approved"
            payout.approved_at = now
            payout.approved_by = triggered_by
        else:
            all_approved = False

        notification_service.notify_user(
            provider_id,
            "payout_created",
            "Payout scheduled",
            f"Your payout of {financial_service.format_currency(payout.net_amount)} "
            f"for {payout.booking_count} jobs has been scheduled.",
            {"payout_id": payout.id, "batch_id": batch.id},
        )
        result.payouts.append(payout)

    if not result.payouts:
        # Everyone was under their minimum.
        db.session.delete(batch)
        db.session.commit()
        logger.info(
            "Automated payout run: %d providers below minimum, no batch created",
            len(result.skipped_providers),
        )
        return result

    batch.total_payouts = len(result.payouts)
    batch.total_amount = sum((p.net_amount for p in result.payouts), ZERO)
    if all_approved:
        batch.status = "approved"
        batch.approved_at = now
        batch.approved_by = triggered_by

    audit_service.log_change(
        user_id=triggered_by,
        action_type="CREATE",
        entity_type="payout.batch",
        entity_id=batch.id,
        new_value={
            **batch.to_dict(),
            "skipped_providers": result.skipped_providers,
        },
    )
    db.session.commit()

    result.batch = batch
    logger.info(
        "Automated payout batch %s: %d payouts totalling %s (%s)",
        batch.batch_name,
        batch.total_payouts,
        batch.total_amount,
        batch.status,
    )
    return result


# =========================================================================
# Approval and payment
# =========================================================================


def approve_payout(payout_id: int, approved_by: int) -> Payout:
    """Approve a pending payout. Raises ValueError for any other status."""
    payout = get_payout(payout_id)
    if payout.status != "pending":
        raise ValueError(f"Only pending payouts can be approved (status: {payout.status}).")

    payout.status = "approved"
    payout.approved_by = approved_by
    payout.approved_at = utcnow()

    audit_service.log_change(
        user_id=approved_by,
        action_type="APPROVE",
        entity_type="payout.payout",
        entity_id=payout.id,
        previous_value={"status": "pending"},
        new_value={"status": "approved"},
    )
    db.session.commit()

    logger.info("Payout %s approved by user %s", payout.id, approved_by)
    return payout


def mark_payout_paid(
    payout_id: int, paid_by: int, payment_reference: str | None = None
) -> Payout:
    """
    Record that an approved payout has been paid.

    Raises:
        ValueError: If the payout is not approved.
    """
    payout = get_payout(payout_id)
    if payout.status != "approved":
        raise ValueError(f"Only approved payouts can be paid (status: {payout.status}).")

    payout.status = "paid"
    payout.paid_at = utcnow()
    payout.payment_reference = payment_reference

    audit_service.log_change(
        user_id=paid_by,
        action_type="STATUS_CHANGE",
        entity_type="payout.payout",
        entity_id=payout.id,
        previous_value={"status": "approved"},
        new_value={"status": "paid", "payment_reference": payment_reference},
    )
    notification_service.notify_user(
        payout.provider_id,
        "payout_paid",
        "Payout sent",
        f"{financial_service.format_currency(payout.net_amount)} has been paid "
        f"to you by {payout.payment_method.replace('_', ' ')}.",
        {"payout_id": payout.id, "reference": payment_reference},
    )
    db.session.commit()

    logger.info("Payout %s marked paid (ref %s)", payout.id, payment_reference)
    return payout


def approve_batch(batch_id: int, approved_by: int, notes: str | None = None) -> PayoutBatch:
    """
    Approve a batch and every pending payout in it.

    Raises:
        ValueError: If the batch is not awaiting approval.
    """
    batch = get_batch(batch_id)
    if batch.status != "pending_approval":
        raise ValueError(f"Batch is not awaiting approval (status: {batch.status}).")

    now = utcnow()
    batch.status = "approved"
    batch.approved_by = approved_by
    batch.approved_at = now
    batch.approval_notes = notes
    for payout in batch.payouts:
        if payout.status == "pending":
            payout.status = "approved"
            payout.approved_by = approved_by
            payout.approved_at = now

    audit_service.log_change(
        user_id=approved_by,
        action_type="APPROVE",
        entity_type="payout.batch",
        entity_id=batch.id,
        previous_value={"status": "pending_approval"},
        new_value={"status": "approved", "approval_notes": notes},
    )
    db.session.commit()

    logger.info("Payout batch %s approved by user %s", batch.batch_name, approved_by)
    return batch


def mark_batch_processed(batch_id: int, processed_by: int) -> PayoutBatch:
    """
    Mark an approved batch as processed and all its payouts as paid.

    Raises:
        ValueError: If the batch is not approved.
    """
    batch = get_batch(batch_id)
    if batch.status != "approved":
        raise ValueError(f"Only approved batches can be processed (status: {batch.status}).")

    now = utcnow()
    batch.status = "processed"
    batch.processed_at = now
    for payout in batch.payouts:
        if payout.status == "approved":
            payout.status = "paid"
            payout.paid_at = now
            payout.payment_reference = payout.payment_reference or batch.batch_name
            notification_service.notify_user(
                payout.provider_id,
                "payout_paid",
                "Payout sent",
                f"{financial_service.format_currency(payout.net_amount)} "
                f"has been paid to you.",
                {"payout_id": payout.id, "batch_id": batch.id},
            )

    audit_service.log_change(
        user_id=processed_by,
        action_type="STATUS_CHANGE",
        entity_type="payout.batch",
        entity_id=batch.id,
        previous_value={"status": "approved"},
        new_value={"status": "processed"},
    )
    db.session.commit()

    logger.info("Payout batch %s processed", batch.batch_name)
    return batch


# =========================================================================
# Earnings
# =========================================================================


def get_provider_earnings(provider_id: int) -> financial_service.EarningsSummary:
    """Summarise a provider's earnings: all completed jobs, unpaid jobs, paid out."""
    completed = Booking.query.filter_by(provider_id=provider_id, status="completed").all()
    unpaid = [b for b in completed if not b.paid_out]

    paid_out_total = (
        db.session.query(func.coalesce(func.sum(Payout.net_amount), 0))
        .filter(Payout.provider_id == provider_id, Payout.status == "paid")
        .scalar()
    )

    return financial_service.EarningsSummary(
        provider_id=provider_id,
        completed_jobs=len(completed),
        unpaid_jobs=len(unpaid),
        total=financial_service.calculate_batch_payout(
            [financial_service.financials_for_booking(b) for b in completed]
        ),
        unpaid=financial_service.calculate_batch_payout(
            [financial_service.financials_for_booking(b) for b in unpaid]
        ),
        paid_out_total=Decimal(str(paid_out_total or 0)),
    )
