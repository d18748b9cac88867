"""
Bookings blueprint — booking creation, lifecycle actions and recurring schedules.
"""

from flask import Blueprint

bp = Blueprint("bookings", __name__)

# Import routes after blueprint creation to avoid circular imports.
from app.blueprints.bookings import routes  # noqa: E402, F401
