"""
Routes for the payments blueprint — bank-deposit submissions, admin
review and PDF invoices.
"""

from io import BytesIO

from flask import send_file
from flask_login import current_user, login_required

from app.blueprints.payments import bp
from app.blueprints.utils import error_response, json_body
from app.decorators import permission_required
from app.services import invoice_service, payment_service


@bp.route("", methods=["POST"])
@login_required
def submit_payment():
    """
    Submit a bank deposit for review.

    Body: ``amount``, ``transaction_type`` (booking or subscription),
    ``reference_number`` and the ``booking_id`` or ``package_id`` paid for.
    """
    data = json_body()
    try:
        txn = payment_service.submit_transaction(
            current_user.id,
            data.get("amount"),
            data.get("transaction_type", ""),
            data.get("reference_number", ""),
            booking_id=data.get("booking_id"),
            package_id=data.get("package_id"),
        )
    except (ValueError, PermissionError) as exc:
        return error_response(exc)
    return {"transaction": txn.to_dict()}, 201


@bp.route("/mine")
@login_required
def my_payments():
    txns = payment_service.get_user_transactions(current_user.id)
    return {"transactions": [t.to_dict() for t in txns]}


@bp.route("/pending")
@login_required
@permission_required("payment.review")
def pending_payments():
    txns = payment_service.get_pending_transactions()
    return {
        "transactions": [
            dict(t.to_dict(), user_name=t.user.full_name if t.user else None)
            for t in txns
        ]
    }


@bp.route("/<int:transaction_id>/approve", methods=["POST"])
@login_required
@permission_required("payment.review")
def approve_payment(transaction_id):
    try:
        txn = payment_service.approve_transaction(
            transaction_id, current_user.id, json_body().get("admin_notes")
        )
    except ValueError as exc:
        return error_response(exc)
    return {"transaction": txn.to_dict()}


@bp.route("/<int:transaction_id>/decline", methods=["POST"])
@login_required
@permission_required("payment.review")
def decline_payment(transaction_id):
    try:
        txn = payment_service.decline_transaction(
            transaction_id, current_user.id, json_body().get("admin_notes", "")
        )
    except ValueError as exc:
        return error_response(exc)
    return {"transaction": txn.to_dict()}


@bp.route("/<int:transaction_id>/invoice")
@login_required
def download_invoice(transaction_id):
    """The transaction's invoice as a PDF download."""
    try:
        txn = payment_service.get_transaction(transaction_id)
    except ValueError as exc:
        return error_response(exc)
    if txn.user_id != current_user.id and not current_user.has_permission(
        "payment.review"
    ):
        return {"error": "You can only download your own invoices."}, 403

    pdf = invoice_service.build_invoice_pdf(txn)
    return send_file(
        BytesIO(pdf),
        mimetype="application/pdf",
        as_attachment=True,
        download_name=invoice_service.invoice_filename(txn),
    )
