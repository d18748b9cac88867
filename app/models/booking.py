"""
Booking models.

``Booking.status`` values:
  pending, assigned, accepted, in_progress, completed, cancelled,
  no_show_client, no_show_provider.

``Booking.assignment_status`` values:
  pending_assignment, auto_assigned, assigned,
  manual_assignment_required.

Recurring bookings: the parent booking carries ``is_recurring`` and
the schedule fields; generated children carry ``is_auto_scheduled``
and ``recurring_parent_id``.
"""

from datetime import datetime, timedelta

from app.extensions import db


class Booking(db.Model):
    """A client's request for a service at a date, time and place."""

    __tablename__ = "booking"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    client_id = db.Column(
        db.Integer, db.ForeignKey("app_user.id"), nullable=False, index=True
    )
    provider_id = db.Column(
        db.Integer, db.ForeignKey("app_user.id"), nullable=True, index=True
    )
    service_id = db.Column(db.Integer, db.ForeignKey("service.id"), nullable=False)
    package_id = db.Column(
        db.Integer, db.ForeignKey("subscription_package.id"), nullable=True
    )
    booking_date = db.Column(db.Date, nullable=False, index=True)
    booking_time = db.Column(db.Time, nullable=False)
    duration_minutes = db.Column(db.Integer, nullable=False, default=60)
    total_amount = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    job_type = db.Column(db.String(20), nullable=False, default="one-off")
    status = db.Column(db.String(30), nullable=False, default="pending", index=True)
    assignment_status = db.Column(
        db.String(40), nullable=False, default="pending_assignment"
    )
    payment_status = db.Column(db.String(20), nullable=False, default="unpaid")

    # -- Location ----------------------------------------------------------
    client_town = db.Column(db.String(100), nullable=False)
    client_suburb = db.Column(db.String(100), nullable=False)
    service_address = db.Column(db.String(300), nullable=False)

    special_instructions = db.Column(db.Text, nullable=True)
    emergency_booking = db.Column(db.Boolean, nullable=False, default=False)

    # -- Lifecycle timestamps ----------------------------------------------
    acceptance_deadline = db.Column(db.DateTime, nullable=True)
    assigned_at = db.Column(db.DateTime, nullable=True)
    assigned_by = db.Column(db.Integer, db.ForeignKey("app_user.id"), nullable=True)
    check_in_time = db.Column(db.DateTime, nullable=True)
    completion_date = db.Column(db.Date, nullable=True)
    cancellation_reason = db.Column(db.String(500), nullable=True)

    # -- Review ------------------------------------------------------------
    rating = db.Column(db.Integer, nullable=True)
    review_comment = db.Column(db.String(500), nullable=True)

    # -- Payout tracking ---------------------------------------------------
    paid_out = db.Column(db.Boolean, nullable=False, default=False)
    payout_id = db.Column(db.Integer, db.ForeignKey("payout.id"), nullable=True)

    # -- Recurrence --------------------------------------------------------
    is_recurring = db.Column(db.Boolean, nullable=False, default=False)
    recurring_frequency = db.Column(db.String(20), nullable=True)
    recurring_day_of_week = db.Column(db.Integer, nullable=True)
    recurring_end_date = db.Column(db.Date, nullable=True)
    recurring_parent_id = db.Column(
        db.Integer, db.ForeignKey("booking.id"), nullable=True, index=True
    )
    is_auto_scheduled = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime, nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime, nullable=False, server_default=db.func.now())

    # -- Relationships -----------------------------------------------------
    client = db.relationship("User", foreign_keys=[client_id])
    provider = db.relationship("User", foreign_keys=[provider_id])
    service = db.relationship("Service")
    modifications = db.relationship(
        "BookingModification",
        back_populates="booking",
        order_by="BookingModification.id",
        lazy="dynamic",
    )
    recurring_parent = db.relationship(
        "Booking", remote_side=[id], foreign_keys=[recurring_parent_id]
    )

    # ---- Convenience properties ------------------------------------------

    @property
    def starts_at(self) -> datetime:
        """Combine the booking date and time into one datetime."""
        return datetime.combine(self.booking_date, self.booking_time)

    @property
    def ends_at(self) -> datetime:
        return self.starts_at + timedelta(minutes=self.duration_minutes or 60)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "client_id": self.client_id,
            "provider_id": self.provider_id,
            "service_id": self.service_id,
            "service_name": self.service.name if self.service else None,
            "package_id": self.package_id,
            "booking_date": self.booking_date.isoformat(),
            "booking_time": self.booking_time.strftime("%H:%M"),
            "duration_minutes": self.duration_minutes,
            "total_amount": str(self.total_amount),
            "job_type": self.job_type,
            "status": self.status,
            "assignment_status": self.assignment_status,
            "payment_status": self.payment_status,
            "client_town": self.client_town,
            "client_suburb": self.client_suburb,
            "service_address": self.service_address,
            "special_instructions": self.special_instructions,
            "emergency_booking": self.emergency_booking,
            "acceptance_deadline": (
                self.acceptance_deadline.isoformat()
                if self.acceptance_deadline
                else None
            ),
            "assigned_at": self.assigned_at.isoformat() if self.assigned_at else None,
            "check_in_time": (
                self.check_in_time.isoformat() if self.check_in_time else None
            ),
            "completion_date": (
                self.completion_date.isoformat() if self.completion_date else None
            ),
            "cancellation_reason": self.cancellation_reason,
            "rating": self.rating,
            "review_comment": self.review_comment,
            "paid_out": self.paid_out,
            "is_recurring": self.is_recurring,
            "recurring_frequency": self.recurring_frequency,
            "recurring_day_of_week": self.recurring_day_of_week,
            "recurring_end_date": (
                self.recurring_end_date.isoformat()
                if self.recurring_end_date
                else None
            ),
            "recurring_parent_id": self.recurring_parent_id,
            "is_auto_scheduled": self.is_auto_scheduled,
        }

    def __repr__(self) -> str:
        return (
            f"<Booking {self.id} client={self.client_id} "
            f"provider={self.provider_id} {self.booking_date} {self.status}>"
        )


class BookingModification(db.Model):
    """
    One changed field on a booking.

    Written for every status change, reassignment and detail edit so
    the booking carries its own history alongside the audit log.
    """

    __tablename__ = "booking_modification"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    booking_id = db.Column(
        db.Integer, db.ForeignKey("booking.id"), nullable=False, index=True
    )
    field = db.Column(db.String(50), nullable=False)
    old_value = db.Column(db.String(500), nullable=True)
    new_value = db.Column(db.String(500), nullable=True)
    reason = db.Column(db.String(500), nullable=True)
    changed_by = db.Column(db.Integer, db.ForeignKey("app_user.id"), nullable=True)
    changed_at = db.Column(db.DateTime, nullable=False)

    # -- Relationships -----------------------------------------------------
    booking = db.relationship("Booking", back_populates="modifications")

    def to_dict(self) -> dict:
        return {
            "field": self.field,
            "old_value": self.old_value,
            "new_value": self.new_value,
            "reason": self.reason,
            "changed_by": self.changed_by,
            "changed_at": self.changed_at.isoformat(),
        }
