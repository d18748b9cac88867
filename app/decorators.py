"""
Route guards layered under Flask-Login's ``@login_required``.

Three kinds of check are offered, from coarse to fine::

    @role_required('provider')              # who the user is
    @permission_required('payout.approve')  # what their role grants
    @booking_access()                       # whether this booking is theirs

A failed check aborts with 401 (not signed in) or 403 (signed in but
refused). The JSON error handlers registered by the app factory turn
those into ``{"error": ...}`` bodies.
"""

import logging
from functools import wraps

from flask import abort, g, request
from flask_login import current_user

logger = logging.getLogger(__name__)


def _refuse(reason: str, *args) -> None:
    logger.warning(
        "Refused %s %s for user %d: " + reason,
        request.method,
        request.path,
        current_user.id,
        *args,
    )
    abort(403)


def _guard(check):
    """
    Build a decorator that runs ``check()`` for a signed-in user before
    the view. ``check`` calls ``_refuse`` to stop the request.
    """

    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            if not current_user.is_authenticated:
                abort(401)
            check(kwargs)
            return func(*args, **kwargs)

        return wrapper

    return decorator


def role_required(*role_names: str):
    """Allow only users whose role is one of ``role_names``."""

    def check(_kwargs):
        if current_user.role_name not in role_names:
            _refuse(
                "role '%s' is not one of %s",
                current_user.role_name,
                ", ".join(role_names),
            )

    return _guard(check)


def permission_required(permission_name: str):
    """Allow only users whose role grants ``permission_name``."""

    def check(_kwargs):
        if not current_user.has_permission(permission_name):
            _refuse("missing permission '%s'", permission_name)

    return _guard(check)


def booking_access(booking_id_kwarg: str = "booking_id"):
    """
    Allow the booking's client, its provider and admins.

    The booking is loaded once and left on ``g.booking`` for the view.
    Unknown bookings give 404.
    """

    def check(kwargs):
        # Imported lazily to avoid a circular import.
        from app.services import booking_service  # pylint: disable=import-outside-toplevel

        try:
            booking = booking_service.get_booking(kwargs[booking_id_kwarg])
        except (KeyError, ValueError):
            abort(404)

        if not current_user.is_admin and current_user.id not in (
            booking.client_id,
            booking.provider_id,
        ):
            _refuse("not a party to booking %s", booking.id)
        g.booking = booking

    return _guard(check)
