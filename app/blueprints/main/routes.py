"""
Routes for the main blueprint — service info, health check and the
calendar and service-area helpers the booking form uses.
"""

from datetime import date

from flask import current_app, request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.blueprints.main import bp
from app.extensions import db
from app.services import location_service


@bp.route("/")
def index():
    """Identify the API."""
    return {
        "name": current_app.config["COMPANY_NAME"],
        "tagline": current_app.config["COMPANY_TAGLINE"],
        "location": current_app.config["COMPANY_LOCATION"],
        "support_email": current_app.config["SUPPORT_EMAIL"],
    }


@bp.route("/health")
def health_check():
    """
    Health check endpoint for monitoring and load balancers.

    Returns 200 if the app is running and can reach the database.
    """
    try:
        db.session.execute(text("SELECT 1"))
        return {"status": "healthy", "database": "connected"}, 200
    except SQLAlchemyError as exc:
        return {"status": "unhealthy", "database": str(exc)}, 503


@bp.route("/service-areas")
def service_areas():
    """List served areas, or find the one covering ``?lat=&lng=``."""
    lat = request.args.get("lat", type=float)
    lng = request.args.get("lng", type=float)
    if lat is not None and lng is not None:
        area = location_service.find_closest_service_area(lat, lng)
        return {
            "area": area.to_dict() if area else None,
            "in_service_area": area is not None,
        }
    return {
        "areas": [a.to_dict() for a in location_service.SERVICE_AREAS],
        "cities": list(location_service.SUPPORTED_CITIES),
    }


@bp.route("/time-slots")
def time_slots():
    """Bookable half-hour slots for ``?date=YYYY-MM-DD``."""
    try:
        day = date.fromisoformat(request.args.get("date", ""))
    except ValueError:
        return {"error": "Query parameter 'date' must be YYYY-MM-DD."}, 400
    return {
        "date": day.isoformat(),
        "business_day": location_service.is_business_day(day),
        "slots": location_service.get_available_time_slots(day),
    }


@bp.route("/holidays/<int:year>")
def holidays(year):
    """Public holidays for a year."""
    return {
        "year": year,
        "holidays": sorted(d.isoformat() for d in location_service.get_public_holidays(year)),
    }
