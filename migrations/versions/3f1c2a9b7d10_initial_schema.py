"""Initial schema

Creates every table of the marketplace: users and roles, the service
catalog and packages, bookings, payments and payouts, notifications
and the audit log.

Revision ID: 3f1c2a9b7d10
Revises:
Create Date: 2026-10-12 09:14:03.512207

"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "3f1c2a9b7d10"
down_revision = None
branch_labels = None
depends_on = None


def _created_at():
    return sa.Column(
        "created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()
    )


def _updated_at():
    return sa.Column(
        "updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()
    )


def upgrade():
    # -- Users, roles and permissions -----------------------------------------
    op.create_table(
        "role",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("role_name", sa.String(50), nullable=False, unique=True),
        sa.Column("description", sa.String(200), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        _created_at(),
    )
    op.create_table(
        "permission",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("permission_name", sa.String(100), nullable=False, unique=True),
        sa.Column("description", sa.String(200), nullable=True),
    )
    op.create_table(
        "role_permission",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("role_id", sa.Integer(), sa.ForeignKey("role.id"), nullable=False),
        sa.Column(
            "permission_id", sa.Integer(), sa.ForeignKey("permission.id"), nullable=False
        ),
        sa.UniqueConstraint(
            "role_id", "permission_id", name="uq_role_permission_role_permission"
        ),
    )
    op.create_table(
        "app_user",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(200), nullable=False, unique=True),
        sa.Column("password_hash", sa.String(255), nullable=True),
        sa.Column("entra_object_id", sa.String(100), nullable=True, unique=True),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("phone", sa.String(30), nullable=True),
        sa.Column("role_id", sa.Integer(), sa.ForeignKey("role.id"), nullable=False),
        sa.Column("town", sa.String(100), nullable=True),
        sa.Column("suburb", sa.String(100), nullable=True),
        sa.Column("address", sa.String(300), nullable=True),
        sa.Column("notify_email", sa.Boolean(), nullable=False),
        sa.Column("notify_sms", sa.Boolean(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column(
            "provisioned_by", sa.Integer(), sa.ForeignKey("app_user.id"), nullable=True
        ),
        sa.Column("last_login", sa.DateTime(), nullable=True),
        _created_at(),
        _updated_at(),
    )
    op.create_index("ix_app_user_email", "app_user", ["email"])

    # -- Catalog ----------------------------------------------------------------
    op.create_table(
        "service_category",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(100), nullable=False, unique=True),
        sa.Column("description", sa.String(500), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        _created_at(),
    )
    op.create_table(
        "service",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "category_id",
            sa.Integer(),
            sa.ForeignKey("service_category.id"),
            nullable=True,
        ),
        sa.Column("name", sa.String(100), nullable=False, unique=True),
        sa.Column("description", sa.String(500), nullable=True),
        sa.Column("service_type", sa.String(20), nullable=False),
        sa.Column("client_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("provider_fee", sa.Numeric(10, 2), nullable=True),
        sa.Column("commission_percentage", sa.Numeric(5, 2), nullable=True),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("tags", sa.String(500), nullable=True),
        sa.Column("requirements", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        _created_at(),
        _updated_at(),
        sa.CheckConstraint(
            "service_type IN ('one-off', 'subscription')", name="ck_service_type"
        ),
    )
    op.create_index("ix_service_category_id", "service", ["category_id"])
    op.create_table(
        "subscription_package",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(100), nullable=False, unique=True),
        sa.Column("description", sa.String(500), nullable=True),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column("duration_days", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        _created_at(),
    )
    op.create_table(
        "package_entitlement",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "package_id",
            sa.Integer(),
            sa.ForeignKey("subscription_package.id"),
            nullable=False,
        ),
        sa.Column(
            "allowed_service_id", sa.Integer(), sa.ForeignKey("service.id"), nullable=False
        ),
        sa.Column("quantity_per_cycle", sa.Integer(), nullable=False),
        sa.Column("cycle_days", sa.Integer(), nullable=False),
        sa.UniqueConstraint(
            "package_id", "allowed_service_id", name="uq_package_entitlement"
        ),
    )
    op.create_table(
        "user_package",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("app_user.id"), nullable=False),
        sa.Column(
            "package_id",
            sa.Integer(),
            sa.ForeignKey("subscription_package.id"),
            nullable=False,
        ),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("expiry_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        _created_at(),
        sa.CheckConstraint(
            "status IN ('active', 'expired', 'cancelled')", name="ck_user_package_status"
        ),
    )
    op.create_index("ix_user_package_user_id", "user_package", ["user_id"])

    # -- Providers and locations -----------------------------------------------
    op.create_table(
        "provider_profile",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("app_user.id"),
            nullable=False,
            unique=True,
        ),
        sa.Column("town", sa.String(100), nullable=True),
        sa.Column("suburb", sa.String(100), nullable=True),
        sa.Column("max_distance", sa.Integer(), nullable=False),
        sa.Column("rating", sa.Numeric(3, 2), nullable=False),
        sa.Column("total_jobs", sa.Integer(), nullable=False),
        sa.Column("is_available", sa.Boolean(), nullable=False),
        sa.Column("verification_status", sa.String(20), nullable=False),
        sa.Column("verification_notes", sa.Text(), nullable=True),
        sa.Column("verification_submitted_at", sa.DateTime(), nullable=True),
        sa.Column("verified_at", sa.DateTime(), nullable=True),
        sa.Column("verified_by", sa.Integer(), sa.ForeignKey("app_user.id"), nullable=True),
        sa.Column("id_number", sa.String(50), nullable=True),
        sa.Column("payment_method", sa.String(20), nullable=False),
        sa.Column("bank_name", sa.String(100), nullable=True),
        sa.Column("account_number", sa.String(50), nullable=True),
        sa.Column("account_holder", sa.String(150), nullable=True),
        sa.Column("mobile_money_number", sa.String(30), nullable=True),
        _updated_at(),
        sa.CheckConstraint(
            "verification_status IN ('unverified', 'pending', 'verified', 'rejected')",
            name="ck_provider_profile_verification_status",
        ),
    )
    op.create_index("ix_provider_profile_town", "provider_profile", ["town"])
    op.create_table(
        "provider_category",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "provider_profile_id",
            sa.Integer(),
            sa.ForeignKey("provider_profile.id"),
            nullable=False,
        ),
        sa.Column(
            "category_id",
            sa.Integer(),
            sa.ForeignKey("service_category.id"),
            nullable=False,
        ),
        sa.UniqueConstraint(
            "provider_profile_id", "category_id", name="uq_provider_category"
        ),
    )
    op.create_index(
        "ix_provider_category_provider_profile_id",
        "provider_category",
        ["provider_profile_id"],
    )
    op.create_table(
        "location_distance",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("town", sa.String(100), nullable=False),
        sa.Column("suburb_a", sa.String(100), nullable=False),
        sa.Column("suburb_b", sa.String(100), nullable=False),
        sa.Column("distance", sa.Integer(), nullable=False),
        sa.UniqueConstraint(
            "town", "suburb_a", "suburb_b", name="uq_location_distance_pair"
        ),
        sa.CheckConstraint("distance >= 0", name="ck_location_distance_non_negative"),
    )
    op.create_index("ix_location_distance_town", "location_distance", ["town"])

    # -- Payouts (before bookings, which point at them) ---------------------------
    op.create_table(
        "payout_batch",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("batch_name", sa.String(100), nullable=False),
        sa.Column("batch_type", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("total_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("total_payouts", sa.Integer(), nullable=False),
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("app_user.id"), nullable=True),
        sa.Column("approved_by", sa.Integer(), sa.ForeignKey("app_user.id"), nullable=True),
        sa.Column("approved_at", sa.DateTime(), nullable=True),
        sa.Column("approval_notes", sa.String(500), nullable=True),
        sa.Column("processed_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "status IN ('pending_approval', 'approved', 'processed')",
            name="ck_payout_batch_status",
        ),
    )
    op.create_table(
        "payout",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("provider_id", sa.Integer(), sa.ForeignKey("app_user.id"), nullable=False),
        sa.Column(
            "batch_id", sa.Integer(), sa.ForeignKey("payout_batch.id"), nullable=True
        ),
        sa.Column("payout_type", sa.String(20), nullable=False),
        sa.Column("payment_method", sa.String(20), nullable=False),
        sa.Column("booking_count", sa.Integer(), nullable=False),
        sa.Column("gross_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("commission_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("tax_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("bonus_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("net_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("app_user.id"), nullable=True),
        sa.Column("approved_by", sa.Integer(), sa.ForeignKey("app_user.id"), nullable=True),
        sa.Column("approved_at", sa.DateTime(), nullable=True),
        sa.Column("paid_at", sa.DateTime(), nullable=True),
        sa.Column("payment_reference", sa.String(100), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "status IN ('pending', 'approved', 'paid')", name="ck_payout_status"
        ),
    )
    op.create_index("ix_payout_provider_id", "payout", ["provider_id"])
    op.create_index("ix_payout_status", "payout", ["status"])
    op.create_table(
        "payout_rule",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("provider_id", sa.Integer(), sa.ForeignKey("app_user.id"), nullable=True),
        sa.Column("rule_name", sa.String(100), nullable=False),
        sa.Column("minimum_payout_amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("payout_frequency", sa.String(20), nullable=False),
        sa.Column("payout_day", sa.Integer(), nullable=True),
        sa.Column("auto_approve_under_amount", sa.Numeric(10, 2), nullable=True),
        sa.Column("performance_bonus_enabled", sa.Boolean(), nullable=False),
        sa.Column("performance_bonus_threshold", sa.Numeric(3, 2), nullable=True),
        sa.Column("performance_bonus_percentage", sa.Numeric(5, 2), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        _created_at(),
        sa.CheckConstraint(
            "payout_frequency IN ('weekly', 'bi-weekly', 'monthly')",
            name="ck_payout_rule_frequency",
        ),
    )
    op.create_index("ix_payout_rule_provider_id", "payout_rule", ["provider_id"])

    # -- Bookings ---------------------------------------------------------------
    op.create_table(
        "booking",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("client_id", sa.Integer(), sa.ForeignKey("app_user.id"), nullable=False),
        sa.Column("provider_id", sa.Integer(), sa.ForeignKey("app_user.id"), nullable=True),
        sa.Column("service_id", sa.Integer(), sa.ForeignKey("service.id"), nullable=False),
        sa.Column(
            "package_id",
            sa.Integer(),
            sa.ForeignKey("subscription_package.id"),
            nullable=True,
        ),
        sa.Column("booking_date", sa.Date(), nullable=False),
        sa.Column("booking_time", sa.Time(), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("total_amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("job_type", sa.String(20), nullable=False),
        sa.Column("status", sa.String(30), nullable=False),
        sa.Column("assignment_status", sa.String(40), nullable=False),
        sa.Column("payment_status", sa.String(20), nullable=False),
        sa.Column("client_town", sa.String(100), nullable=False),
        sa.Column("client_suburb", sa.String(100), nullable=False),
        sa.Column("service_address", sa.String(300), nullable=False),
        sa.Column("special_instructions", sa.Text(), nullable=True),
        sa.Column("emergency_booking", sa.Boolean(), nullable=False),
        sa.Column("acceptance_deadline", sa.DateTime(), nullable=True),
        sa.Column("assigned_at", sa.DateTime(), nullable=True),
        sa.Column("assigned_by", sa.Integer(), sa.ForeignKey("app_user.id"), nullable=True),
        sa.Column("check_in_time", sa.DateTime(), nullable=True),
        sa.Column("completion_date", sa.Date(), nullable=True),
        sa.Column("cancellation_reason", sa.String(500), nullable=True),
        sa.Column("rating", sa.Integer(), nullable=True),
        sa.Column("review_comment", sa.String(500), nullable=True),
        sa.Column("paid_out", sa.Boolean(), nullable=False),
        sa.Column("payout_id", sa.Integer(), sa.ForeignKey("payout.id"), nullable=True),
        sa.Column("is_recurring", sa.Boolean(), nullable=False),
        sa.Column("recurring_frequency", sa.String(20), nullable=True),
        sa.Column("recurring_day_of_week", sa.Integer(), nullable=True),
        sa.Column("recurring_end_date", sa.Date(), nullable=True),
        sa.Column(
            "recurring_parent_id", sa.Integer(), sa.ForeignKey("booking.id"), nullable=True
        ),
        sa.Column("is_auto_scheduled", sa.Boolean(), nullable=False),
        _created_at(),
        _updated_at(),
        sa.CheckConstraint(
            "status IN ('pending', 'assigned', 'accepted', 'in_progress', "
            "'completed', 'cancelled', 'no_show_client', 'no_show_provider')",
            name="ck_booking_status",
        ),
        sa.CheckConstraint(
            "rating IS NULL OR rating BETWEEN 1 AND 5", name="ck_booking_rating"
        ),
        sa.CheckConstraint(
            "recurring_day_of_week IS NULL OR recurring_day_of_week BETWEEN 0 AND 6",
            name="ck_booking_recurring_day_of_week",
        ),
    )
    op.create_index("ix_booking_client_id", "booking", ["client_id"])
    op.create_index("ix_booking_provider_id", "booking", ["provider_id"])
    op.create_index("ix_booking_booking_date", "booking", ["booking_date"])
    op.create_index("ix_booking_status", "booking", ["status"])
    op.create_index("ix_booking_recurring_parent_id", "booking", ["recurring_parent_id"])
    op.create_table(
        "booking_modification",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("booking_id", sa.Integer(), sa.ForeignKey("booking.id"), nullable=False),
        sa.Column("field", sa.String(50), nullable=False),
        sa.Column("old_value", sa.String(500), nullable=True),
        sa.Column("new_value", sa.String(500), nullable=True),
        sa.Column("reason", sa.String(500), nullable=True),
        sa.Column("changed_by", sa.Integer(), sa.ForeignKey("app_user.id"), nullable=True),
        sa.Column("changed_at", sa.DateTime(), nullable=False),
    )
    op.create_index(
        "ix_booking_modification_booking_id", "booking_modification", ["booking_id"]
    )
    op.create_table(
        "service_usage_log",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("app_user.id"), nullable=False),
        sa.Column(
            "package_id",
            sa.Integer(),
            sa.ForeignKey("subscription_package.id"),
            nullable=False,
        ),
        sa.Column(
            "allowed_service_id", sa.Integer(), sa.ForeignKey("service.id"), nullable=False
        ),
        sa.Column("booking_id", sa.Integer(), sa.ForeignKey("booking.id"), nullable=True),
        sa.Column("used_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_service_usage_log_user_id", "service_usage_log", ["user_id"])

    # -- Incoming payments ----------------------------------------------------------
    op.create_table(
        "pending_transaction",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("app_user.id"), nullable=False),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("transaction_type", sa.String(20), nullable=False),
        sa.Column("reference_number", sa.String(100), nullable=False),
        sa.Column("booking_id", sa.Integer(), sa.ForeignKey("booking.id"), nullable=True),
        sa.Column(
            "package_id",
            sa.Integer(),
            sa.ForeignKey("subscription_package.id"),
            nullable=True,
        ),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("admin_notes", sa.String(500), nullable=True),
        sa.Column("reviewed_by", sa.Integer(), sa.ForeignKey("app_user.id"), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "transaction_type IN ('booking', 'subscription')",
            name="ck_pending_transaction_type",
        ),
        sa.CheckConstraint(
            "status IN ('pending', 'approved', 'declined')",
            name="ck_pending_transaction_status",
        ),
        sa.CheckConstraint("amount > 0", name="ck_pending_transaction_amount"),
    )
    op.create_index("ix_pending_transaction_user_id", "pending_transaction", ["user_id"])
    op.create_index("ix_pending_transaction_status", "pending_transaction", ["status"])

    # -- Notifications -------------------------------------------------------------
    op.create_table(
        "notification",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("app_user.id"), nullable=False),
        sa.Column("notification_type", sa.String(50), nullable=False),
        sa.Column("channel", sa.String(20), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("data", sa.Text(), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False),
        sa.Column("delivered", sa.Boolean(), nullable=False),
        sa.Column("delivery_attempted_at", sa.DateTime(), nullable=True),
        sa.Column("delivered_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "channel IN ('in_app', 'email', 'sms', 'push')",
            name="ck_notification_channel",
        ),
    )
    op.create_index("ix_notification_user_id", "notification", ["user_id"])
    op.create_index("ix_notification_created_at", "notification", ["created_at"])
    op.create_table(
        "notification_delivery_log",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "notification_id",
            sa.Integer(),
            sa.ForeignKey("notification.id"),
            nullable=False,
        ),
        sa.Column("channel", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("failed_at", sa.DateTime(), nullable=True),
        _created_at(),
    )
    op.create_index(
        "ix_notification_delivery_log_notification_id",
        "notification_delivery_log",
        ["notification_id"],
    )

    # -- Audit ----------------------------------------------------------------------
    op.create_table(
        "audit_log",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("app_user.id"), nullable=True),
        sa.Column("action_type", sa.String(50), nullable=False),
        sa.Column("entity_type", sa.String(100), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=True),
        sa.Column("previous_value", sa.Text(), nullable=True),
        sa.Column("new_value", sa.Text(), nullable=True),
        sa.Column("ip_address", sa.String(45), nullable=True),
        sa.Column("user_agent", sa.String(500), nullable=True),
        _created_at(),
        sa.CheckConstraint(
            "action_type IN ('CREATE', 'UPDATE', 'DELETE', 'LOGIN', 'LOGOUT', "
            "'ASSIGN', 'STATUS_CHANGE', 'APPROVE', 'DECLINE')",
            name="ck_audit_log_action_type",
        ),
    )
    op.create_index("ix_audit_log_created_at", "audit_log", ["created_at"])


def downgrade():
    for table in (
        "audit_log",
        "notification_delivery_log",
        "notification",
        "pending_transaction",
        "service_usage_log",
        "booking_modification",
        "booking",
        "payout_rule",
        "payout",
        "payout_batch",
        "location_distance",
        "provider_category",
        "provider_profile",
        "user_package",
        "package_entitlement",
        "subscription_package",
        "service",
        "service_category",
        "app_user",
        "role_permission",
        "permission",
        "role",
    ):
        op.drop_table(table)
