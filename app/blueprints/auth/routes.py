"""
Routes for the auth blueprint — sign-up, password login, Entra ID
single sign-on, logout and the signed-in user's own account.

The SSO flow redirects to Microsoft Entra ID for authentication.
After successful auth, the callback route exchanges the authorization
code for tokens and logs the user in via Flask-Login.

``/dev-login`` bypasses all credentials and signs in as a seeded user.
It is only served when ``DEV_LOGIN_ENABLED`` is set and the app runs in
debug or testing mode.
"""

import uuid

from flask import current_app, redirect, request, session
from flask_login import current_user, login_required, login_user, logout_user
from flask_wtf.csrf import generate_csrf

from app.blueprints.auth import bp
from app.blueprints.utils import error_response, json_body
from app.services import auth_service, user_service


@bp.route("/csrf-token")
def csrf_token():
    """Hand a CSRF token to JavaScript clients for state-changing calls."""
    return {"csrf_token": generate_csrf()}


@bp.route("/register", methods=["POST"])
def register():
    """Create a client or provider account and sign it in."""
    data = json_body()
    try:
        user = user_service.register_user(
            email=data.get("email", ""),
            password=data.get("password", ""),
            first_name=data.get("first_name", ""),
            last_name=data.get("last_name", ""),
            phone=data.get("phone"),
            role_name=data.get("role", "client"),
            town=data.get("town"),
            suburb=data.get("suburb"),
            address=data.get("address"),
        )
    except (ValueError, PermissionError) as exc:
        return error_response(exc)

    login_user(user)
    return {"user": user.to_dict()}, 201


@bp.route("/login", methods=["POST"])
def login():
    """Password login."""
    data = json_body()
    try:
        user = auth_service.authenticate(data.get("email", ""), data.get("password", ""))
    except PermissionError as exc:
        return {"error": str(exc)}, 401

    login_user(user, remember=bool(data.get("remember")))
    return {"user": user.to_dict()}


@bp.route("/logout", methods=["POST"])
@login_required
def logout():
    """
    Log the user out of the application.

    Clears the Flask session and Flask-Login session.
    """
    auth_service.sign_out(current_user.id)
    logout_user()
    return {"message": "You have been signed out."}


@bp.route("/me")
@login_required
def me():
    data = current_user.to_dict()
    data["permissions"] = sorted(current_user.permission_names)
    if current_user.is_provider and current_user.provider_profile is not None:
        data["provider_profile"] = current_user.provider_profile.to_dict()
    return {"user": data}


@bp.route("/me", methods=["PATCH"])
@login_required
def update_me():
    """Update the signed-in user's name, phone and address."""
    try:
        user = user_service.update_profile(current_user.id, **json_body())
    except ValueError as exc:
        return error_response(exc)
    return {"user": user.to_dict()}


@bp.route("/me/preferences", methods=["PUT"])
@login_required
def update_preferences():
    data = json_body()
    try:
        user = user_service.update_notification_preferences(
            current_user.id,
            notify_email=data.get("notify_email"),
            notify_sms=data.get("notify_sms"),
        )
    except ValueError as exc:
        return error_response(exc)
    return {"user": user.to_dict()}


@bp.route("/me/password", methods=["PUT"])
@login_required
def change_password():
    data = json_body()
    try:
        user_service.change_password(
            current_user.id,
            data.get("current_password", ""),
            data.get("new_password", ""),
        )
    except (ValueError, PermissionError) as exc:
        return error_response(exc)
    return {"message": "Password changed."}


# =========================================================================
# Entra ID single sign-on
# =========================================================================


@bp.route("/sso/login")
def sso_login():
    """
    Initiate the OAuth2 login flow.

    Generates a CSRF state token and redirects to the Microsoft login
    page.
    """
    if not auth_service.sso_enabled():
        return {"error": "Single sign-on is not configured."}, 404

    # Random state token to prevent CSRF.
    state = str(uuid.uuid4())
    session["oauth_state"] = state
    return redirect(auth_service.get_auth_url(state=state))


@bp.route("/sso/callback")
def sso_callback():
    """
    Handle the OAuth2 redirect from Microsoft Entra ID.

    Validates the state parameter, exchanges the authorization code
    for tokens and processes the login.
    """
    if request.args.get("state") != session.pop("oauth_state", None):
        return {"error": "Authentication failed: invalid state parameter."}, 400

    if "error" in request.args:
        error_desc = request.args.get("error_description", "Unknown error")
        return {"error": f"Authentication failed: {error_desc}"}, 400

    auth_code = request.args.get("code")
    if not auth_code:
        return {"error": "Authentication failed: no authorization code received."}, 400

    try:
        token_result = auth_service.acquire_token_by_code(auth_code)
        user = auth_service.process_sso_login(token_result)
    except ValueError as exc:
        return {"error": str(exc)}, 400
    except PermissionError as exc:
        return {"error": str(exc)}, 403

    login_user(user)
    return {"user": user.to_dict()}


# =========================================================================
# Development-only login
# =========================================================================


def _dev_login_allowed() -> bool:
    return current_app.config.get("DEV_LOGIN_ENABLED", False) and (
        current_app.debug or current_app.testing
    )


@bp.route("/dev-login")
def dev_login():
    """
    Development-only login bypass.

    Query Parameters:
        role (str):     Role name to match. Defaults to ``admin``.
        user_id (int):  Specific user ID to log in as. Takes precedence
                        over ``role`` when both are provided.

    Examples::

        /auth/dev-login                    → first active admin
        /auth/dev-login?role=provider      → first active provider
        /auth/dev-login?user_id=7          → user with id=7
    """
    if not _dev_login_allowed():
        return {"error": "Not found."}, 404

    # Import models inside the route to avoid circular imports.
    from app.models.user import Role, User  # pylint: disable=import-outside-toplevel

    user_id_param = request.args.get("user_id", type=int)
    role_param = request.args.get("role", "admin").strip().lower()

    query = User.query.filter(User.is_active.is_(True))
    if user_id_param is not None:
        target_user = query.filter(User.id == user_id_param).first()
    else:
        target_user = (
            query.join(Role)
            .filter(Role.role_name == role_param)
            .order_by(User.id)
            .first()
        )

    if target_user is None:
        return {
            "error": "No matching active user. Run `flask seed-dev-users` first."
        }, 404

    login_user(target_user)
    current_app.logger.warning(
        "Dev login as %s (%s)", target_user.email, target_user.role_name
    )
    return {"user": target_user.to_dict()}
