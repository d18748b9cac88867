"""
Payment and payout models.

Incoming money: clients pay by bank deposit and submit a
``PendingTransaction`` with their deposit reference; an admin approves
or declines it.

Outgoing money: a ``Payout`` bundles a provider's completed, unpaid
bookings. Automated runs group payouts into a ``PayoutBatch`` according
to each provider's ``PayoutRule``.
"""

from app.extensions import db


class PendingTransaction(db.Model):
    """
    A bank-deposit payment awaiting admin review.

    ``transaction_type`` values: ``booking``, ``subscription``.
    ``status`` values: ``pending``, ``approved``, ``declined``.
    """

    __tablename__ = "pending_transaction"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("app_user.id"), nullable=False, index=True
    )
    amount = db.Column(db.Numeric(10, 2), nullable=False)
    transaction_type = db.Column(db.String(20), nullable=False)
    reference_number = db.Column(db.String(100), nullable=False)
    booking_id = db.Column(db.Integer, db.ForeignKey("booking.id"), nullable=True)
    package_id = db.Column(
        db.Integer, db.ForeignKey("subscription_package.id"), nullable=True
    )
    status = db.Column(db.String(20), nullable=False, default="pending", index=True)
    admin_notes = db.Column(db.String(500), nullable=True)
    reviewed_by = db.Column(db.Integer, db.ForeignKey("app_user.id"), nullable=True)
    reviewed_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False)

    # -- Relationships -----------------------------------------------------
    user = db.relationship("User", foreign_keys=[user_id])
    booking = db.relationship("Booking")
    package = db.relationship("SubscriptionPackage")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "amount": str(self.amount),
            "transaction_type": self.transaction_type,
            "reference_number": self.reference_number,
            "booking_id": self.booking_id,
            "package_id": self.package_id,
            "status": self.status,
            "admin_notes": self.admin_notes,
            "reviewed_at": self.reviewed_at.isoformat() if self.reviewed_at else None,
            "created_at": self.created_at.isoformat(),
        }

    def __repr__(self) -> str:
        return f"<PendingTransaction {self.id} {self.transaction_type} {self.status}>"


class PayoutBatch(db.Model):
    """
    A group of payouts created by one automated run.

    ``status`` values: ``pending_approval``, ``approved``, ``processed``.
    """

    __tablename__ = "payout_batch"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    batch_name = db.Column(db.String(100), nullable=False)
    batch_type = db.Column(db.String(20), nullable=False, default="scheduled")
    status = db.Column(db.String(20), nullable=False, default="pending_approval")
    total_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_payouts = db.Column(db.Integer, nullable=False, default=0)
    created_by = db.Column(db.Integer, db.ForeignKey("app_user.id"), nullable=True)
    approved_by = db.Column(db.Integer, db.ForeignKey("app_user.id"), nullable=True)
    approved_at = db.Column(db.DateTime, nullable=True)
    approval_notes = db.Column(db.String(500), nullable=True)
    processed_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False)

    # -- Relationships -----------------------------------------------------
    payouts = db.relationship("Payout", back_populates="batch", lazy="select")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "batch_name": self.batch_name,
            "batch_type": self.batch_type,
            "status": self.status,
            "total_amount": str(self.total_amount),
            "total_payouts": self.total_payouts,
            "approved_at": self.approved_at.isoformat() if self.approved_at else None,
            "approval_notes": self.approval_notes,
            "processed_at": (
                self.processed_at.isoformat() if self.processed_at else None
            ),
            "created_at": self.created_at.isoformat(),
        }

    def __repr__(self) -> str:
        return f"<PayoutBatch {self.batch_name} {self.status}>"


class Payout(db.Model):
    """
    Money owed to one provider for a set of completed bookings.

    Amounts come from ``financial_service``: ``gross_amount`` is the
    booking prices less ``commission_amount``, ``tax_amount`` is income
    plus withholding tax on gross, ``bonus_amount`` is any performance
    bonus and ``net_amount`` is what the provider receives.

    ``status`` values: ``pending``, ``approved``, ``paid``.
    """

    __tablename__ = "payout"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    provider_id = db.Column(
        db.Integer, db.ForeignKey("app_user.id"), nullable=False, index=True
    )
    batch_id = db.Column(db.Integer, db.ForeignKey("payout_batch.id"), nullable=True)
    payout_type = db.Column(db.String(20), nullable=False, default="manual")
    payment_method = db.Column(db.String(20), nullable=False, default="bank_transfer")
    booking_count = db.Column(db.Integer, nullable=False, default=0)
    gross_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    commission_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    tax_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    bonus_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    net_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    status = db.Column(db.String(20), nullable=False, default="pending", index=True)
    created_by = db.Column(db.Integer, db.ForeignKey("app_user.id"), nullable=True)
    approved_by = db.Column(db.Integer, db.ForeignKey("app_user.id"), nullable=True)
    approved_at = db.Column(db.DateTime, nullable=True)
    paid_at = db.Column(db.DateTime, nullable=True)
    payment_reference = db.Column(db.String(100), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False)

    # -- Relationships -----------------------------------------------------
    provider = db.relationship("User", foreign_keys=[provider_id])
    batch = db.relationship("PayoutBatch", back_populates="payouts")
    bookings = db.relationship(
        "Booking", primaryjoin="Payout.id == Booking.payout_id", lazy="select"
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "provider_id": self.provider_id,
            "provider_name": self.provider.full_name if self.provider else None,
            "batch_id": self.batch_id,
            "payout_type": self.payout_type,
            "payment_method": self.payment_method,
            "booking_count": self.booking_count,
            "gross_amount": str(self.gross_amount),
            "commission_amount": str(self.commission_amount),
            "tax_amount": str(self.tax_amount),
            "bonus_amount": str(self.bonus_amount),
            "net_amount": str(self.net_amount),
            "status": self.status,
            "approved_at": self.approved_at.isoformat() if self.approved_at else None,
            "paid_at": self.paid_at.isoformat() if self.paid_at else None,
            "payment_reference": self.payment_reference,
            "created_at": self.created_at.isoformat(),
        }

    def __repr__(self) -> str:
        return f"<Payout {self.id} provider={self.provider_id} {self.status}>"


class PayoutRule(db.Model):
    """
    Automated payout settings.

    A rule with ``provider_id`` NULL is the platform default; a
    provider-specific active rule overrides it.

    ``payout_frequency`` values: ``weekly``, ``bi-weekly``, ``monthly``.
    """

    __tablename__ = "payout_rule"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    provider_id = db.Column(
        db.Integer, db.ForeignKey("app_user.id"), nullable=True, index=True
    )
    rule_name = db.Column(db.String(100), nullable=False)
    minimum_payout_amount = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    payout_frequency = db.Column(db.String(20), nullable=False, default="weekly")
    payout_day = db.Column(db.Integer, nullable=True)
    auto_approve_under_amount = db.Column(db.Numeric(10, 2), nullable=True)
    performance_bonus_enabled = db.Column(db.Boolean, nullable=False, default=False)
    performance_bonus_threshold = db.Column(db.Numeric(3, 2), nullable=True)
    performance_bonus_percentage = db.Column(db.Numeric(5, 2), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "provider_id": self.provider_id,
            "rule_name": self.rule_name,
            "minimum_payout_amount": str(self.minimum_payout_amount),
            "payout_frequency": self.payout_frequency,
            "payout_day": self.payout_day,
            "auto_approve_under_amount": (
                str(self.auto_approve_under_amount)
                if self.auto_approve_under_amount is not None
                else None
            ),
            "performance_bonus_enabled": self.performance_bonus_enabled,
            "performance_bonus_threshold": (
                str(self.performance_bonus_threshold)
                if self.performance_bonus_threshold is not None
                else None
            ),
            "performance_bonus_percentage": (
                str(self.performance_bonus_percentage)
                if self.performance_bonus_percentage is not None
                else None
            ),
            "is_active": self.is_active,
        }

    def __repr__(self) -> str:
        return f"<PayoutRule {self.rule_name} provider={self.provider_id}>"
