"""
Auth service — password login and Entra ID single sign-on.

Clients and providers sign in with email and password. Staff may also
use the OAuth2 authorization code flow against Entra ID through MSAL:
building the auth URL, exchanging the code for tokens, and linking or
creating the local user on first login.
"""

import logging

import msal
from flask import current_app, session

from app.extensions import db
from app.services import audit_service, user_service

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid email or password."

# Users created on first SSO login get the least-privileged role; an
# admin promotes them afterwards.
SSO_DEFAULT_ROLE = "client"


# -- Password login ----------------------------------------------------------


def authenticate(email: str, password: str):
    """
    Check an email and password and record the login.

    Returns:
        The signed-in User.

    Raises:
        PermissionError: If the credentials are wrong or the account
                         is deactivated. The message does not reveal
                         which.
    """
    user = user_service.get_user_by_email((email or "").strip())
    if user is None or not user_service.check_password(user, password):
        logger.warning("Failed password login for %s", email)
        raise PermissionError(INVALID_CREDENTIALS)
    if not user.is_active:
        logger.warning("Login attempt by deactivated user %s", user.email)
        raise PermissionError(INVALID_CREDENTIALS)

    _start_session(user)
    return user


def _start_session(user) -> None:
    """Record the login and keep minimal identity in the Flask session."""
    audit_service.log_login(user.id)
    # Commits the audit entry with the timestamp.
    user_service.record_login(user)

    session["user_id"] = user.id
    session["user_email"] = user.email
    session["user_role"] = user.role_name


# -- Staff single sign-on (Entra ID) -----------------------------------------


def sso_enabled() -> bool:
    return bool(current_app.config.get("AZURE_CLIENT_ID"))


def _msal_client() -> msal.ConfidentialClientApplication:
    config = current_app.config
    return msal.ConfidentialClientApplication(
        client_id=config["AZURE_CLIENT_ID"],
        client_credential=config["AZURE_CLIENT_SECRET"],
        authority=config["AZURE_AUTHORITY"],
    )


def _flow_settings() -> dict:
    """Scopes and redirect URI shared by both legs of the code flow."""
    return {
        "scopes": current_app.config["AZURE_SCOPES"],
        "redirect_uri": current_app.config["AZURE_REDIRECT_URI"],
    }


def get_auth_url(state: str | None = None) -> str:
    """Microsoft sign-in URL; ``state`` comes back on the callback."""
    return _msal_client().get_authorization_request_url(state=state, **_flow_settings())


def acquire_token_by_code(auth_code: str) -> dict:
    """
    Redeem the callback's authorization code.

    Raises:
        ValueError: When Entra ID rejects the code.
    """
    result = _msal_client().acquire_token_by_authorization_code(
        auth_code, **_flow_settings()
    )
    if "error" in result:
        reason = result.get("error_description") or result["error"]
        logger.error("Entra ID rejected the authorization code: %s", reason)
        raise ValueError(f"Single sign-on failed: {reason}")
    return result


def _identity_from_claims(claims: dict) -> dict:
    object_id = claims.get("oid")
    email = claims.get("preferred_username") or claims.get("email")
    if not object_id or not email:
        raise ValueError("Sign-in token is missing the oid or email claim.")
    return {
        "entra_object_id": object_id,
        "email": email,
        "first_name": claims.get("given_name") or email.split("@")[0],
        "last_name": claims.get("family_name") or "",
    }


def process_sso_login(token_result: dict):
    """
    Sign in whoever the token names.

    Matching goes by Entra object ID first and then by email, which links
    an account an admin provisioned earlier. Strangers get a new account
    with ``SSO_DEFAULT_ROLE``.

    Raises:
        ValueError:      Required claims are missing.
        PermissionError: The account is deactivated.
    """
    identity = _identity_from_claims(token_result.get("id_token_claims") or {})

    user = user_service.get_user_by_entra_id(identity["entra_object_id"])
    if user is None:
        user = user_service.get_user_by_email(identity["email"])
        if user is None:
            user = user_service.provision_user(role_name=SSO_DEFAULT_ROLE, **identity)
            logger.info("SSO created account %s", user.email)
        else:
            user.entra_object_id = identity["entra_object_id"]
            logger.info("SSO linked existing account %s", user.email)

    if not user.is_active:
        raise PermissionError("This account has been deactivated.")

    _start_session(user)
    return user


def sign_out(user_id: int) -> None:
    """Record the logout and clear the session keys set at sign-in."""
    audit_service.log_logout(user_id)
    db.session.commit()
    clear_session()


def clear_session() -> None:
    """Forget the signed-in identity and any half-finished SSO state."""
    for key in ("user_id", "user_email", "user_role", "oauth_state"):
        session.pop(key, None)
