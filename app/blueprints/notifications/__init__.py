"""
Notifications blueprint — the in-app inbox and delivery processing.
"""

from flask import Blueprint

bp = Blueprint("notifications", __name__)

# Import routes after blueprint creation to avoid circular imports.
from app.blueprints.notifications import routes  # noqa: E402, F401
