"""
Location service — Namibian geography, contact validation and
business hours.

Covers three concerns the booking flow depends on:

* **Service areas** with coordinates, radius and a percentage price
  adjustment, plus great-circle distance between two points.
* **Suburb distance table** (``LocationDistance``) used by the
  proximity assignment; distances are stored symmetrically.
* **Validation and formatting** of Namibian phone numbers, addresses
  and NAD amounts, and the business-day / time-slot calendar.
"""

import logging
import math
import re
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal

from dateutil.easter import easter
from flask import current_app
from sqlalchemy import func

from app.extensions import db
from app.models.location import LocationDistance
from app.services import audit_service

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371


# =========================================================================
# Service areas
# =========================================================================

@dataclass(frozen=True)
class ServiceArea:
    """A circular area the platform serves, with its price adjustment."""

    area_id: str
    name: str
    city: str
    district: str
    suburbs: tuple[str, ...]
    lat: float
    lng: float
    radius_km: float
    price_adjustment_pct: Decimal

    def to_dict(self) -> dict:
        return {
            "area_id": self.area_id,
            "name": self.name,
            "city": self.city,
            "district": self.district,
            "suburbs": list(self.suburbs),
            "lat": self.lat,
            "lng": self.lng,
            "radius_km": self.radius_km,
            "price_adjustment_pct": str(self.price_adjustment_pct),
        }


SERVICE_AREAS: tuple[ServiceArea, ...] = (
    ServiceArea(
        "windhoek-central", "Windhoek Central", "Windhoek", "Central",
        ("CBD", "Stadt", "Ausspannplatz"),
        -22.5609, 17.0658, 5, Decimal("0"),
    ),
    ServiceArea(
        "windhoek-suburbs", "Windhoek Suburbs", "Windhoek", "Suburbs",
        ("Eros", "Klein Windhoek", "Olympia", "Pioneerspark"),
        -22.5609, 17.0658, 15, Decimal("10"),
    ),
    ServiceArea(
        "windhoek-northern", "Northern Windhoek", "Windhoek", "Northern",
        ("Katutura", "Wanaheda", "Goreangab"),
        -22.5200, 17.0400, 20, Decimal("15"),
    ),
    ServiceArea(
        "walvis-central", "Walvis Bay Central", "Walvis Bay", "Central",
        ("CBD", "Civic Centre"),
        -22.9576, 14.5052, 8, Decimal("5"),
    ),
    ServiceArea(
        "walvis-residential", "Walvis Bay Residential", "Walvis Bay",
        "Residential", ("Kuisebmond", "Narraville", "Meersig"),
        -22.9700, 14.5100, 12, Decimal("8"),
    ),
    ServiceArea(
        "swakop-central", "Swakopmund Central", "Swakopmund", "Central",
        ("CBD", "Vineta"),
        -22.6792, 14.5272, 6, Decimal("0"),
    ),
)

# Cities the platform accepts addresses in.
SUPPORTED_CITIES = ("Windhoek", "Walvis Bay", "Swakopmund")


def calculate_distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """
    Return the great-circle distance between two points in kilometres.

    Uses the haversine formula with a mean earth radius of 6371 km.
    """
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1))
        * math.cos(math.radians(lat2))
        * math.sin(d_lng / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def is_location_in_service_area(lat: float, lng: float, area: ServiceArea) -> bool:
    """Return True if the point lies within the area's radius."""
    return calculate_distance(lat, lng, area.lat, area.lng) <= area.radius_km


def find_closest_service_area(lat: float, lng: float) -> ServiceArea | None:
    """
    Return the nearest service area whose radius contains the point.

    Areas that do not contain the point are ignored even if their
    centre is closer. Returns None when no area covers the point.
    """
    closest = None
    min_distance = math.inf
    for area in SERVICE_AREAS:
        distance = calculate_distance(lat, lng, area.lat, area.lng)
        if distance <= area.radius_km and distance < min_distance:
            min_distance = distance
            closest = area
    return closest


def calculate_location_price_adjustment(
    base_price: Decimal, lat: float, lng: float
) -> Decimal:
    """
    Apply the covering service area's percentage adjustment to a price.

    Points outside every service area keep the base price.
    """
    base_price = Decimal(str(base_price))
    area = find_closest_service_area(lat, lng)
    if area is None:
        return base_price
    adjusted = base_price + base_price * area.price_adjustment_pct / 100
    return adjusted.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


# =========================================================================
# Suburb distance table
# =========================================================================

def get_suburb_distance(town: str, suburb_a: str, suburb_b: str) -> int:
    """
    Return the stored road distance (km) between two suburbs of a town.

    The same suburb is distance 0. Pairs missing from the table get
    ``DEFAULT_DISTANCE_KM`` so they fall outside any sensible radius.
    """
    if suburb_a.strip().lower() == suburb_b.strip().lower():
        return 0

    row = LocationDistance.query.filter(
        func.lower(LocationDistance.town) == town.strip().lower(),
        func.lower(LocationDistance.suburb_a) == suburb_a.strip().lower(),
        func.lower(LocationDistance.suburb_b) == suburb_b.strip().lower(),
    ).first()
    if row is None:
        return current_app.config["DEFAULT_DISTANCE_KM"]
    return row.distance


def set_suburb_distance(
    town: str,
    suburb_a: str,
    suburb_b: str,
    distance: int,
    changed_by: int | None = None,
) -> None:
    """
    Create or update the distance between two suburbs in both directions.

    Raises:
        ValueError: If a name is missing, the distance is not a
                    non-negative whole number or the suburbs match.
    """
    town, suburb_a, suburb_b = (
        (value or "").strip() for value in (town, suburb_a, suburb_b)
    )
    if not (town and suburb_a and suburb_b):
        raise ValueError("Town and both suburbs are required.")
    try:
        distance = int(distance)
    except (TypeError, ValueError) as exc:
        raise ValueError("Distance must be a whole number of kilometres.") from exc
    if distance < 0:
        raise ValueError("Distance cannot be negative.")
    if suburb_a.strip().lower() == suburb_b.strip().lower():
        raise ValueError("A suburb's distance to itself is always 0.")

    for first, second in ((suburb_a, suburb_b), (suburb_b, suburb_a)):
        row = LocationDistance.query.filter_by(
            town=town, suburb_a=first, suburb_b=second
        ).first()
        if row is None:
            row = LocationDistance(
                town=town, suburb_a=first, suburb_b=second, distance=distance
            )
            db.session.add(row)
        else:
            row.distance = distance
    db.session.flush()

    audit_service.log_change(
        user_id=changed_by,
        action_type="UPDATE",
        entity_type="location.distance",
        entity_id=None,
        new_value={
            "town": town,
            "suburb_a": suburb_a,
            "suburb_b": suburb_b,
            "distance": distance,
        },
    )
    db.session.commit()

    logger.info(
        "Set distance %s: %s <-> %s = %skm", town, suburb_a, suburb_b, distance
    )


def get_suburb_distances(town: str | None = None) -> list[LocationDistance]:
    """Return distance rows, optionally for one town, ordered for display."""
    query = LocationDistance.query
    if town:
        query = query.filter(func.lower(LocationDistance.town) == town.strip().lower())
    return query.order_by(
        LocationDistance.town, LocationDistance.suburb_a, LocationDistance.suburb_b
    ).all()


# =========================================================================
# Phone, address and currency
# =========================================================================

_PHONE_NOISE = re.compile(r"[\s\-()]")


def _clean_phone(phone: str) -> str:
    return _PHONE_NOISE.sub("", phone or "")


def validate_namibian_phone(phone: str) -> bool:
    """
    Return True for a Namibian number in any accepted format.

    Accepted: ``+264`` followed by 8-9 digits, ``264`` followed by
    8-9 digits, or a local ``0`` followed by 8 digits. Spaces, dashes
    and brackets are ignored.
    """
    cleaned = _clean_phone(phone)
    if cleaned.startswith("+264"):
        return re.fullmatch(r"\d{8,9}", cleaned[4:]) is not None
    if cleaned.startswith("0"):
        return re.fullmatch(r"0\d{8}", cleaned) is not None
    if cleaned.startswith("264"):
        return re.fullmatch(r"\d{8,9}", cleaned[3:]) is not None
    return False


def format_namibian_phone(phone: str) -> str:
    """
    Format a Namibian number as ``+264 XX XXX XXXX``.

    Numbers in an unrecognised format are returned unchanged.
    """
    cleaned = _clean_phone(phone)
    if cleaned.startswith("+264"):
        number = cleaned[4:]
    elif cleaned.startswith("264"):
        number = cleaned[3:]
    elif cleaned.startswith("0"):
        number = cleaned[1:]
    else:
        return phone
    return f"+264 {number[:2]} {number[2:5]} {number[5:]}"


def validate_namibian_address(
    street: str,
    city: str,
    suburb: str | None = None,
    postal_code: str | None = None,
) -> bool:
    """
    Return True if the address has a street, a supported city and, when
    given, a five-digit postal code.
    """
    if not street or not street.strip() or not city:
        return False
    if city.strip().lower() not in (c.lower() for c in SUPPORTED_CITIES):
        return False
    if postal_code and re.fullmatch(r"\d{5}", postal_code) is None:
        return False
    return True


def supported_city(town: str) -> str:
    """
    Return the canonical spelling of a served city.

    Raises:
        ValueError: If the town is not one of ``SUPPORTED_CITIES``.
    """
    wanted = (town or "").strip().lower()
    for city in SUPPORTED_CITIES:
        if city.lower() == wanted:
            return city
    raise ValueError(
        f"We do not serve '{town}' yet. Supported cities: {', '.join(SUPPORTED_CITIES)}."
    )


def format_nad(amount) -> str:
    """Format an amount as Namibian dollars, e.g. ``N$1,234.50``."""
    value = Decimal(str(amount)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    sign = "-" if value < 0 else ""
    return f"{sign}N${abs(value):,.2f}"


# =========================================================================
# Business calendar
# =========================================================================

# (month, day) of the fixed-date Namibian public holidays.
_FIXED_HOLIDAYS = (
    (1, 1),    # New Year's Day
    (3, 21),   # Independence Day
    (5, 1),    # Workers' Day
    (5, 4),    # Cassinga Day
    (5, 25),   # Africa Day
    (8, 26),   # Heroes' Day
    (12, 10),  # Human Rights Day
    (12, 25),  # Christmas Day
    (12, 26),  # Day of Goodwill
)

# Opening hours as (start hour, end hour) keyed by ISO weekday.
_BUSINESS_HOURS = {
    1: (8, 17),
    2: (8, 17),
    3: (8, 17),
    4: (8, 17),
    5: (8, 17),
    6: (8, 13),
}


def get_public_holidays(year: int) -> set[date]:
    """
    Return the public holidays for a year.

    Fixed-date holidays, the Easter-based ones (Good Friday, Easter
    Monday, Ascension Day) and any extra dates in ``PUBLIC_HOLIDAYS``.
    """
    holidays = {date(year, month, day) for month, day in _FIXED_HOLIDAYS}
    easter_sunday = easter(year)
    holidays.add(easter_sunday - timedelta(days=2))
    holidays.add(easter_sunday + timedelta(days=1))
    holidays.add(easter_sunday + timedelta(days=39))

    for raw in current_app.config.get("PUBLIC_HOLIDAYS", []):
        try:
            extra = date.fromisoformat(raw)
        except ValueError:
            logger.warning("Ignoring malformed PUBLIC_HOLIDAYS entry %r", raw)
            continue
        if extra.year == year:
            holidays.add(extra)
    return holidays


def is_business_day(day: date) -> bool:
    """Return False on Sundays and public holidays."""
    if day.isoweekday() == 7:
        return False
    return day not in get_public_holidays(day.year)


def get_available_time_slots(day: date) -> list[str]:
    """
    Return the bookable half-hour slots for a date as ``HH:MM`` strings.

    Weekdays run 08:00-17:00, Saturdays 08:00-13:00; Sundays have no
    slots. The last slot starts half an hour before closing.
    """
    hours = _BUSINESS_HOURS.get(day.isoweekday())
    if hours is None:
        return []
    start, end = hours
    slots = []
    for hour in range(start, end):
        slots.append(f"{hour:02d}:00")
        slots.append(f"{hour:02d}:30")
    return slots
