"""
Payouts blueprint — provider earnings, payouts, batches and rules.
"""

from flask import Blueprint

bp = Blueprint("payouts", __name__)

# Import routes after blueprint creation to avoid circular imports.
from app.blueprints.payouts import routes  # noqa: E402, F401
