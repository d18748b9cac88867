"""
Catalog service — CRUD for service categories, services, subscription
packages and package entitlements.

Service rules:
  - name 3-100 characters, unique
  - type ``one-off`` or ``subscription``
  - client price N$50 - N$10,000
  - commission (optional) 5 % - 30 %
  - description 10-500 characters
  - at least one tag
  - duration between 1 minute and 24 hours

Records are deactivated rather than deleted so historical bookings keep
their references.
"""

import logging
from decimal import Decimal, InvalidOperation

from sqlalchemy import func

from app.extensions import db
from app.models.catalog import (
    PackageEntitlement,
    Service,
    ServiceCategory,
    SubscriptionPackage,
)
from app.services import audit_service
from app.services.clock import utcnow

logger = logging.getLogger(__name__)

SERVICE_TYPES = ("one-off", "subscription")
MIN_PRICE = Decimal("50")
MAX_PRICE = Decimal("10000")
MIN_COMMISSION = Decimal("5")
MAX_COMMISSION = Decimal("30")


def _to_decimal(value, label: str) -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, TypeError) as exc:
        raise ValueError(f"{label} must be a number.") from exc


# =========================================================================
# Service categories
# =========================================================================


def get_categories(include_inactive: bool = False) -> list[ServiceCategory]:
    """Return service categories ordered by name."""
    query = ServiceCategory.query
    if not include_inactive:
        query = query.filter_by(is_active=True)
    return query.order_by(ServiceCategory.name).all()


def get_category_by_id(category_id: int) -> ServiceCategory | None:
    """Return a single category by primary key."""
    return db.session.get(ServiceCategory, category_id)


def create_category(
    name: str, description: str | None = None, user_id: int | None = None
) -> ServiceCategory:
    """
    Create a service category.

    Raises:
        ValueError: If the name is blank or already taken.
    """
    name = (name or "").strip()
    if len(name) < 2:
        raise ValueError("Category name must be at least 2 characters.")
    if ServiceCategory.query.filter(
        func.lower(ServiceCategory.name) == name.lower()
    ).first():
        raise ValueError(f"Category '{name}' already exists.")

    category = ServiceCategory(name=name, description=description)
    db.session.add(category)
    db.session.flush()

    audit_service.log_change(
        user_id=user_id,
        action_type="CREATE",
        entity_type="catalog.service_category",
        entity_id=category.id,
        new_value={"name": name, "description": description},
    )
    db.session.commit()

    logger.info("Created service category '%s' (ID %d)", name, category.id)
    return category


def deactivate_category(category_id: int, user_id: int | None = None) -> ServiceCategory:
    """Soft-delete a category; its services stay bookable."""
    category = get_category_by_id(category_id)
    if category is None:
        raise ValueError(f"Category ID {category_id} not found.")

    category.is_active = False
    audit_service.log_change(
        user_id=user_id,
        action_type="DELETE",
        entity_type="catalog.service_category",
        entity_id=category.id,
        previous_value={"name": category.name, "is_active": True},
    )
    db.session.commit()

    logger.info("Deactivated service category ID %d", category_id)
    return category


# =========================================================================
# Services
# =========================================================================


def validate_service_fields(
    name: str,
    service_type: str,
    client_price,
    description: str,
    tags: list[str],
    duration_minutes: int,
    commission_percentage=None,
) -> list[str]:
    """
    Check service fields against the catalog rules.

    Returns:
        A list of human-readable problems; empty when the fields are valid.
    """
    errors: list[str] = []
    name = (name or "").strip()
    if len(name) < 3:
        errors.append("Service name must be at least 3 characters.")
    elif len(name) > 100:
        errors.append("Service name too long.")

    if service_type not in SERVICE_TYPES:
        errors.append("Service type must be one-off or subscription.")

    try:
        price = _to_decimal(client_price, "Price")
        if price < MIN_PRICE:
            errors.append("Price must be at least N$50.")
        elif price > MAX_PRICE:
            errors.append("Price cannot exceed N$10,000.")
    except ValueError as exc:
        errors.append(str(exc))

    if commission_percentage is not None:
        try:
            commission = _to_decimal(commission_percentage, "Commission")
            if commission < MIN_COMMISSION:
                errors.append("Commission must be at least 5%.")
            elif commission > MAX_COMMISSION:
                errors.append("Commission cannot exceed 30%.")
        except ValueError as exc:
            errors.append(str(exc))

    description = (description or "").strip()
    if len(description) < 10:
        errors.append("Description must be at least 10 characters.")
    elif len(description) > 500:
        errors.append("Description too long.")

    if not [t for t in (tags or []) if t and t.strip()]:
        errors.append("At least one tag is required.")

    if not isinstance(duration_minutes, int) or not 0 < duration_minutes <= 24 * 60:
        errors.append("Duration must be between 1 minute and 24 hours.")

    return errors


def get_services(
    include_inactive: bool = False,
    category_id: int | None = None,
    service_type: str | None = None,
) -> list[Service]:
    """Return services, optionally filtered, ordered by name."""
    query = Service.query
    if not include_inactive:
        query = query.filter_by(is_active=True)
    if category_id is not None:
        query = query.filter_by(category_id=category_id)
    if service_type:
        query = query.filter_by(service_type=service_type)
    return query.order_by(Service.name).all()


def get_service_by_id(service_id: int) -> Service | None:
    """Return a single service by primary key."""
    return db.session.get(Service, service_id)


def create_service(
    name: str,
    service_type: str,
    client_price,
    description: str,
    tags: list[str],
    duration_minutes: int = 60,
    category_id: int | None = None,
    commission_percentage=None,
    provider_fee=None,
    requirements: str | None = None,
    user_id: int | None = None,
) -> Service:
    """
    Create a bookable service.

    Returns:
        The newly created Service record.

    Raises:
        ValueError: If any field breaks the catalog rules, the name is
                    taken, or the category does not exist.
    """
    errors = validate_service_fields(
        name, service_type, client_price, description, tags,
        duration_minutes, commission_percentage,
    )
    if errors:
        raise ValueError(" ".join(errors))
    name = name.strip()
    if Service.query.filter(func.lower(Service.name) == name.lower()).first():
        raise ValueError(f"A service named '{name}' already exists.")
    if category_id is not None and get_category_by_id(category_id) is None:
        raise ValueError(f"Category ID {category_id} not found.")

    service = Service(
        name=name,
        service_type=service_type,
        client_price=_to_decimal(client_price, "Price"),
        description=description.strip(),
        tags=",".join(t.strip() for t in tags if t and t.strip()),
        duration_minutes=duration_minutes,
        category_id=category_id,
        commission_percentage=(
            _to_decimal(commission_percentage, "Commission")
            if commission_percentage is not None
            else None
        ),
        provider_fee=(
            _to_decimal(provider_fee, "Provider fee") if provider_fee is not None else None
        ),
        requirements=requirements,
    )
    db.session.add(service)
    db.session.flush()

    audit_service.log_change(
        user_id=user_id,
        action_type="CREATE",
        entity_type="catalog.service",
        entity_id=service.id,
        new_value=service.to_dict(),
    )
    db.session.commit()

    logger.info("Created service '%s' (ID %d)", name, service.id)
    return service


def update_service(service_id: int, user_id: int | None = None, **changes) -> Service:
    """
    Update a service's fields.

    Accepts any of ``name``, ``service_type``, ``client_price``,
    ``description``, ``tags``, ``duration_minutes``, ``category_id``,
    ``commission_percentage``, ``provider_fee`` and ``requirements``.
    The merged result is validated as a whole.

    Raises:
        ValueError: If the service is missing or the result is invalid.
    """
    service = get_service_by_id(service_id)
    if service is None:
        raise ValueError(f"Service ID {service_id} not found.")

    allowed = {
        "name", "service_type", "client_price", "description", "tags",
        "duration_minutes", "category_id", "commission_percentage",
        "provider_fee", "requirements",
    }
    unknown = set(changes) - allowed
    if unknown:
        raise ValueError(f"Unknown service field(s): {', '.join(sorted(unknown))}.")

    merged = {
        "name": changes.get("name", service.name),
        "service_type": changes.get("service_type", service.service_type),
        "client_price": changes.get("client_price", service.client_price),
        "description": changes.get("description", service.description),
        "tags": changes.get("tags", service.tag_list),
        "duration_minutes": changes.get("duration_minutes", service.duration_minutes),
        "commission_percentage": changes.get(
            "commission_percentage", service.commission_percentage
        ),
    }
    errors = validate_service_fields(**merged)
    if errors:
        raise ValueError(" ".join(errors))

    new_name = merged["name"].strip()
    clash = Service.query.filter(
        func.lower(Service.name) == new_name.lower(), Service.id != service.id
    ).first()
    if clash:
        raise ValueError(f"A service named '{new_name}' already exists.")
    if changes.get("category_id") is not None and get_category_by_id(
        changes["category_id"]
    ) is None:
        raise ValueError(f"Category ID {changes['category_id']} not found.")

    previous = service.to_dict()
    service.name = new_name
    service.service_type = merged["service_type"]
    service.client_price = _to_decimal(merged["client_price"], "Price")
    service.description = merged["description"].strip()
    service.tags = ",".join(t.strip() for t in merged["tags"] if t and t.strip())
    service.duration_minutes = merged["duration_minutes"]
    if merged["commission_percentage"] is not None:
        service.commission_percentage = _to_decimal(
            merged["commission_percentage"], "Commission"
        )
    else:
        service.commission_percentage = None
    if "category_id" in changes:
        service.category_id = changes["category_id"]
    if "provider_fee" in changes:
        service.provider_fee = (
            _to_decimal(changes["provider_fee"], "Provider fee")
            if changes["provider_fee"] is not None
            else None
        )
    if "requirements" in changes:
        service.requirements = changes["requirements"]
    service.updated_at = utcnow()

    audit_service.log_change(
        user_id=user_id,
        action_type="UPDATE",
        entity_type="catalog.service",
        entity_id=service.id,
        previous_value=previous,
        new_value=service.to_dict(),
    )
    db.session.commit()

    logger.info("Updated service ID %d", service_id)
    return service


def deactivate_service(service_id: int, user_id: int | None = None) -> Service:
    """Soft-delete a service so it can no longer be booked."""
    service = get_service_by_id(service_id)
    if service is None:
        raise ValueError(f"Service ID {service_id} not found.")

    service.is_active = False
    service.updated_at = utcnow()
    audit_service.log_change(
        user_id=user_id,
        action_type="DELETE",
        entity_type="catalog.service",
        entity_id=service.id,
        previous_value={"name": service.name, "is_active": True},
    )
    db.session.commit()

    logger.info("Deactivated service ID %d", service_id)
    return service


# =========================================================================
# Subscription packages and entitlements
# =========================================================================


def get_packages(include_inactive: bool = False) -> list[SubscriptionPackage]:
    """Return subscription packages ordered by price."""
    query = SubscriptionPackage.query
    if not include_inactive:
        query = query.filter_by(is_active=True)
    return query.order_by(SubscriptionPackage.price, SubscriptionPackage.name).all()


def get_package_by_id(package_id: int) -> SubscriptionPackage | None:
    """Return a single package by primary key."""
    return db.session.get(SubscriptionPackage, package_id)


def create_package(
    name: str,
    price,
    duration_days: int = 30,
    description: str | None = None,
    user_id: int | None = None,
) -> SubscriptionPackage:
    """
    Create a subscription package (entitlements are added separately).

    Raises:
        ValueError: If the name is blank or taken, the price is not
                    positive, or the duration is under one day.
    """
    name = (name or "").strip()
    if len(name) < 3:
        raise ValueError("Package name must be at least 3 characters.")
    if SubscriptionPackage.query.filter(
        func.lower(SubscriptionPackage.name) == name.lower()
    ).first():
        raise ValueError(f"A package named '{name}' already exists.")
    price = _to_decimal(price, "Price")
    if price <= 0:
        raise ValueError("Package price must be greater than zero.")
    if int(duration_days) < 1:
        raise ValueError("Package duration must be at least one day.")

    package = SubscriptionPackage(
        name=name, price=price, duration_days=int(duration_days), description=description
    )
    db.session.add(package)
    db.session.flush()

    audit_service.log_change(
        user_id=user_id,
        action_type="CREATE",
        entity_type="catalog.subscription_package",
        entity_id=package.id,
        new_value={
            "name": name,
            "price": str(price),
            "duration_days": int(duration_days),
        },
    )
    db.session.commit()

    logger.info("Created package '%s' (ID %d)", name, package.id)
    return package


def update_package(
    package_id: int,
    name: str | None = None,
    price=None,
    duration_days: int | None = None,
    description: str | None = None,
    user_id: int | None = None,
) -> SubscriptionPackage:
    """Update a package's name, price, duration or description."""
    package = get_package_by_id(package_id)
    if package is None:
        raise ValueError(f"Package ID {package_id} not found.")

    previous = {
        "name": package.name,
        "price": str(package.price),
        "duration_days": package.duration_days,
        "description": package.description,
    }
    if name is not None:
        name = name.strip()
        if len(name) < 3:
            raise ValueError("Package name must be at least 3 characters.")
        package.name = name
    if price is not None:
        price = _to_decimal(price, "Price")
        if price <= 0:
            raise ValueError("Package price must be greater than zero.")
        package.price = price
    if duration_days is not None:
        if int(duration_days) < 1:
            raise ValueError("Package duration must be at least one day.")
        package.duration_days = int(duration_days)
    if description is not None:
        package.description = description

    audit_service.log_change(
        user_id=user_id,
        action_type="UPDATE",
        entity_type="catalog.subscription_package",
        entity_id=package.id,
        previous_value=previous,
        new_value={
            "name": package.name,
            "price": str(package.price),
            "duration_days": package.duration_days,
            "description": package.description,
        },
    )
    db.session.commit()

    logger.info("Updated package ID %d", package_id)
    return package


def deactivate_package(package_id: int, user_id: int | None = None) -> SubscriptionPackage:
    """Stop selling a package; clients who own it keep their cover."""
    package = get_package_by_id(package_id)
    if package is None:
        raise ValueError(f"Package ID {package_id} not found.")

    package.is_active = False
    audit_service.log_change(
        user_id=user_id,
        action_type="DELETE",
        entity_type="catalog.subscription_package",
        entity_id=package.id,
        previous_value={"name": package.name, "is_active": True},
    )
    db.session.commit()

    logger.info("Deactivated package ID %d", package_id)
    return package


def set_entitlement(
    package_id: int,
    service_id: int,
    quantity_per_cycle: int,
    cycle_days: int = 30,
    user_id: int | None = None,
) -> PackageEntitlement:
    """
    Create or update the quota a package grants for a service.

    Raises:
        ValueError: If the package or service is missing or the quota
                    values are not positive.
    """
    if get_package_by_id(package_id) is None:
        raise ValueError(f"Package ID {package_id} not found.")
    if get_service_by_id(service_id) is None:
        raise ValueError(f"Service ID {service_id} not found.")
    if int(quantity_per_cycle) < 1:
        raise ValueError("Quantity per cycle must be at least 1.")
    if int(cycle_days) < 1:
        raise ValueError("Cycle length must be at least one day.")

    entitlement = PackageEntitlement.query.filter_by(
        package_id=package_id, allowed_service_id=service_id
    ).first()
    previous = entitlement.to_dict() if entitlement else None
    if entitlement is None:
        entitlement = PackageEntitlement(
            package_id=package_id, allowed_service_id=service_id
        )
        db.session.add(entitlement)
    entitlement.quantity_per_cycle = int(quantity_per_cycle)
    entitlement.cycle_days = int(cycle_days)
    db.session.flush()

    audit_service.log_change(
        user_id=user_id,
        action_type="UPDATE" if previous else "CREATE",
        entity_type="catalog.package_entitlement",
        entity_id=entitlement.id,
        previous_value=previous,
        new_value=entitlement.to_dict(),
    )
    db.session.commit()

    logger.info(
        "Package %d grants service %d x%d per %d days",
        package_id,
        service_id,
        entitlement.quantity_per_cycle,
        entitlement.cycle_days,
    )
    return entitlement


def remove_entitlement(entitlement_id: int, user_id: int | None = None) -> None:
    """Delete an entitlement from its package."""
    entitlement = db.session.get(PackageEntitlement, entitlement_id)
    if entitlement is None:
        raise ValueError(f"Entitlement ID {entitlement_id} not found.")

    previous = entitlement.to_dict()
    db.session.delete(entitlement)
    audit_service.log_change(
        user_id=user_id,
        action_type="DELETE",
        entity_type="catalog.package_entitlement",
        entity_id=entitlement_id,
        previous_value=previous,
    )
    db.session.commit()

    logger.info("Removed entitlement ID %d", entitlement_id)
