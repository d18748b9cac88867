"""
Tests for auth_service — password sign-in and Entra ID account matching.
"""

import pytest
from werkzeug.security import generate_password_hash

from app.models.audit import AuditLog
from app.services import auth_service


def _token(**claims):
    base = {
        "oid": "00000000-aaaa-bbbb-cccc-000000000001",
        "preferred_username": "ndapewa@longaservices.com",
        "given_name": "Ndapewa",
        "family_name": "Shikongo",
    }
    base.update(claims)
    return {"id_token_claims": {k: v for k, v in base.items() if v is not None}}


class TestAuthenticate:
    """Email and password sign-in."""

    @pytest.fixture(autouse=True)
    def _setup(self, app, make_user):
        self.user = make_user(
            "client",
            email="maria@example.com",
            password_hash=generate_password_hash("Longa#2026"),
        )
        with app.test_request_context():
            yield

    def test_success_records_login(self):
        user = auth_service.authenticate(" maria@example.com ", "Longa#2026")

        assert user.id == self.user.id
        assert user.last_login is not None
        assert AuditLog.query.filter_by(action_type="LOGIN").count() == 1

    @pytest.mark.parametrize("password", ["wrong", ""])
    def test_bad_password(self, password):
        with pytest.raises(PermissionError, match="Invalid email or password."):
            auth_service.authenticate("maria@example.com", password)

    def test_deactivated_gets_same_message(self, db_session):
        self.user.is_active = False
        db_session.commit()
        with pytest.raises(PermissionError, match="Invalid email or password."):
            auth_service.authenticate("maria@example.com", "Longa#2026")


class TestSsoLogin:
    """Matching an SSO identity to a local account."""

    @pytest.fixture(autouse=True)
    def _setup(self, app, db_session):
        with app.test_request_context():
            yield

    def test_unknown_user_created_as_client(self):
        user = auth_service.process_sso_login(_token())

        assert user.email == "ndapewa@longaservices.com"
        assert user.role_name == "client"
        assert user.entra_object_id == "00000000-aaaa-bbbb-cccc-000000000001"

    def test_links_provisioned_account(self, admin_user):
        user = auth_service.process_sso_login(
            _token(preferred_username=admin_user.email)
        )

        assert user.id == admin_user.id
        assert admin_user.entra_object_id == "00000000-aaaa-bbbb-cccc-000000000001"

    def test_missing_claims(self):
        with pytest.raises(ValueError, match="missing the oid or email"):
            auth_service.process_sso_login(_token(oid=None))

    def test_name_falls_back_to_mailbox(self):
        user = auth_service.process_sso_login(_token(given_name=None))
        assert user.first_name == "ndapewa"
