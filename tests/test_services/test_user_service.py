"""
Tests for user_service — registration, passwords, roles and the
provider profile maintained for matching and payouts.
"""

import pytest

from app.models.audit import AuditLog
from app.models.notification import Notification
from app.services import user_service

STRONG_PASSWORD = "Longa#2026"


class TestPasswords:
    """Password policy and hashing."""

    def test_strong_password_passes(self):
        assert user_service.validate_password(STRONG_PASSWORD) == []

    def test_every_rule_reported(self):
        assert user_service.validate_password("abc") == [
            "Password must be at least 8 characters.",
            "Password must contain an uppercase letter.",
            "Password must contain a number.",
            "Password must contain a special character.",
        ]

    def test_change_password(self, db_session):
        user = user_service.register_user(
            "maria@example.com", STRONG_PASSWORD, "Maria", "Nghipondoka"
        )

        with pytest.raises(PermissionError):
            user_service.change_password(user.id, "wrong", "Better#2027")

        user_service.change_password(user.id, STRONG_PASSWORD, "Better#2027")
        assert user_service.check_password(user, "Better#2027")
        assert not user_service.check_password(user, STRONG_PASSWORD)


class TestRegistration:
    """Self-service sign-up."""

    def test_register_client(self, db_session):
        user = user_service.register_user(
            " Maria@Example.com ",
            STRONG_PASSWORD,
            "Maria",
            "Nghipondoka",
            phone="081 123 456",
            town="Windhoek",
            suburb="Eros",
        )

        assert user.email == "maria@example.com"
        assert user.role_name == "client"
        assert user.phone == "+264 81 123 456"
        assert user.provider_profile is None
        assert user_service.check_password(user, STRONG_PASSWORD)
        assert Notification.query.filter_by(
            user_id=user.id, notification_type="welcome"
        ).count() >= 1

    def test_register_provider_starts_unverified(self, db_session):
        user = user_service.register_user(
            "petrus@example.com", STRONG_PASSWORD, "Petrus", "Shikongo",
            role_name="provider", town="Windhoek", suburb="Olympia",
        )

        profile = user_service.get_provider_profile(user.id)
        assert profile.verification_status == "unverified"
        assert profile.town == "Windhoek"
        assert profile.suburb == "Olympia"

    @pytest.mark.parametrize(
        "email, password, role, message",
        [
            ("not-an-email", STRONG_PASSWORD, "client", "not a valid email"),
            ("a@example.com", "weak", "client", "at least 8 characters"),
            ("a@example.com", STRONG_PASSWORD, "admin", "Cannot register"),
        ],
    )
    def test_invalid_registrations(self, db_session, email, password, role, message):
        with pytest.raises(ValueError, match=message):
            user_service.register_user(email, password, "Ann", "Other", role_name=role)

    def test_duplicate_email(self, client_user):
        with pytest.raises(ValueError, match="already exists"):
            user_service.register_user(
                client_user.email.upper(), STRONG_PASSWORD, "Copy", "Cat"
            )

    def test_bad_phone(self, db_session):
        with pytest.raises(ValueError, match="not a valid Namibian phone"):
            user_service.register_user(
                "b@example.com", STRONG_PASSWORD, "Bee", "Keeper", phone="12345"
            )


class TestAdministration:
    """Provisioning, roles and activation by an admin."""

    def test_provision_user(self, admin_user):
        user = user_service.provision_user(
            "staff@example.com", "Tomas", "Haufiku", "admin", provisioned_by=admin_user.id
        )

        assert user.is_admin
        assert user.password_hash is None
        assert user.provisioned_by == admin_user.id
        log = AuditLog.query.filter_by(entity_type="auth.user", entity_id=user.id).one()
        assert log.user_id == admin_user.id

    def test_unknown_role(self, admin_user):
        with pytest.raises(ValueError, match="Role 'owner' not found."):
            user_service.provision_user("x@example.com", "X", "Y", "owner")

    def test_role_change_to_provider_adds_profile(self, client_user, admin_user):
        user_service.update_user_role(client_user.id, "provider", admin_user.id)

        assert client_user.is_provider
        assert user_service.get_provider_profile(client_user.id).town == "Windhoek"

    def test_deactivate_and_reactivate(self, client_user, admin_user):
        user_service.deactivate_user(client_user.id, admin_user.id)
        assert not client_user.is_active
        assert client_user not in user_service.get_all_users().items

        user_service.reactivate_user(client_user.id, admin_user.id)
        assert client_user.is_active

    def test_cannot_deactivate_self(self, admin_user):
        with pytest.raises(ValueError, match="your own account"):
            user_service.deactivate_user(admin_user.id, admin_user.id)

    def test_filter_users_by_role(self, client_user, admin_user):
        assert user_service.get_all_users(role_name="admin").items == [admin_user]


class TestProfile:
    """Contact details and notification preferences."""

    def test_update_profile(self, client_user):
        user_service.update_profile(client_user.id, suburb="Eros", phone="+264811234567")

        assert client_user.suburb == "Eros"
        assert client_user.phone == "+264 81 123 4567"

    def test_protected_fields_rejected(self, client_user):
        with pytest.raises(ValueError, match="Cannot update: email"):
            user_service.update_profile(client_user.id, email="new@example.com")

    def test_sms_needs_phone(self, client_user):
        with pytest.raises(ValueError, match="phone number"):
            user_service.update_notification_preferences(client_user.id, notify_sms=True)

        user_service.update_profile(client_user.id, phone="+264811234567")
        user_service.update_notification_preferences(
            client_user.id, notify_email=False, notify_sms=True
        )
        assert client_user.notify_sms
        assert not client_user.notify_email


class TestProviderProfile:
    """Location, categories, banking and verification."""

    @pytest.fixture(autouse=True)
    def _setup(self, make_user, admin_user):
        self.provider = make_user("provider")
        self.admin = admin_user

    def test_location_and_radius(self):
        profile = user_service.update_provider_location(
            self.provider.id, "Windhoek", "Eros", max_distance=15
        )
        assert (profile.town, profile.suburb, profile.max_distance) == (
            "Windhoek", "Eros", 15,
        )
        with pytest.raises(ValueError, match="greater than zero"):
            user_service.update_provider_location(self.provider.id, "Windhoek", "Eros", 0)

    def test_categories_replaced(self, cleaning, gardening):
        user_service.set_provider_categories(self.provider.id, [cleaning.id])
        profile = user_service.set_provider_categories(self.provider.id, [gardening.id])

        assert profile.offers_category(gardening.id)
        assert not profile.offers_category(cleaning.id)
        with pytest.raises(ValueError, match="unknown or inactive"):
            user_service.set_provider_categories(self.provider.id, [999])

    def test_banking_details(self):
        with pytest.raises(ValueError, match="Bank name"):
            user_service.update_banking_details(self.provider.id, "bank_transfer")

        profile = user_service.update_banking_details(
            self.provider.id, "mobile_money", mobile_money_number="081 123 456"
        )
        assert profile.payment_method == "mobile_money"
        assert profile.mobile_money_number == "+264 81 123 456"

    def test_verification_approved(self):
        user_service.submit_verification(self.provider.id, "85010100123")
        profile = user_service.approve_verification(self.provider.id, self.admin.id)

        assert profile.verification_status == "verified"
        assert profile.verified_by == self.admin.id
        assert profile.verified_at is not None
        with pytest.raises(ValueError, match="already verified"):
            user_service.submit_verification(self.provider.id, "85010100123")

    def test_verification_rejected_needs_reason(self):
        user_service.submit_verification(self.provider.id, "85010100123")
        with pytest.raises(ValueError, match="reason is required"):
            user_service.reject_verification(self.provider.id, self.admin.id, "")

        profile = user_service.reject_verification(
            self.provider.id, self.admin.id, "ID photo unreadable"
        )
        assert profile.verification_status == "rejected"
        assert profile.verification_notes == "ID photo unreadable"

    def test_review_requires_pending(self):
        with pytest.raises(ValueError, match="not pending"):
            user_service.approve_verification(self.provider.id, self.admin.id)
