"""
Packages blueprint — a client's package, usage and package bookings.
"""

from flask import Blueprint

bp = Blueprint("packages", __name__)

# Import routes after blueprint creation to avoid circular imports.
from app.blueprints.packages import routes  # noqa: E402, F401
