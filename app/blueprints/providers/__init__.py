"""
Providers blueprint — nearby search, provider profile and verification.
"""

from flask import Blueprint

bp = Blueprint("providers", __name__)

# Import routes after blueprint creation to avoid circular imports.
from app.blueprints.providers import routes  # noqa: E402, F401
