"""
Payments blueprint — bank-deposit transactions and invoices.
"""

from flask import Blueprint

bp = Blueprint("payments", __name__)

# Import routes after blueprint creation to avoid circular imports.
from app.blueprints.payments import routes  # noqa: E402, F401
