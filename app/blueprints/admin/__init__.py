"""
Admin blueprint — user management, audit logs and suburb distances.
"""

from flask import Blueprint

bp = Blueprint("admin", __name__)

# Import routes after blueprint creation to avoid circular imports.
from app.blueprints.admin import routes  # noqa: E402, F401
