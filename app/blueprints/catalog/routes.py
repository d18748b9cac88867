"""
Routes for the catalog blueprint — service categories, services and
subscription packages.

Anyone may browse the active catalog. Creating, editing and retiring
entries requires the ``catalog.manage`` permission.
"""

from flask import request
from flask_login import current_user, login_required

from app.blueprints.catalog import bp
from app.blueprints.utils import error_response, json_body, query_flag
from app.decorators import permission_required
from app.services import catalog_service


def _include_inactive() -> bool:
    """Only catalog managers may see retired entries."""
    return (
        query_flag("include_inactive")
        and current_user.is_authenticated
        and current_user.has_permission("catalog.manage")
    )


# =========================================================================
# Categories
# =========================================================================


@bp.route("/categories")
def list_categories():
    categories = catalog_service.get_categories(include_inactive=_include_inactive())
    return {"categories": [c.to_dict() for c in categories]}


@bp.route("/categories", methods=["POST"])
@login_required
@permission_required("catalog.manage")
def create_category():
    data = json_body()
    try:
        category = catalog_service.create_category(
            data.get("name", ""), data.get("description"), user_id=current_user.id
        )
    except ValueError as exc:
        return error_response(exc)
    return {"category": category.to_dict()}, 201


@bp.route("/categories/<int:category_id>", methods=["DELETE"])
@login_required
@permission_required("catalog.manage")
def deactivate_category(category_id):
    try:
        category = catalog_service.deactivate_category(category_id, user_id=current_user.id)
    except ValueError as exc:
        return error_response(exc)
    return {"category": category.to_dict()}


# =========================================================================
# Services
# =========================================================================


@bp.route("/services")
def list_services():
    """List services, filtered by ``?category_id=`` and ``?type=``."""
    services = catalog_service.get_services(
        include_inactive=_include_inactive(),
        category_id=request.args.get("category_id", type=int),
        service_type=request.args.get("type"),
    )
    return {"services": [s.to_dict() for s in services]}


@bp.route("/services/<int:service_id>")
def service_detail(service_id):
    service = catalog_service.get_service_by_id(service_id)
    if service is None or (not service.is_active and not _include_inactive()):
        return {"error": f"Service ID {service_id} not found."}, 404
    return {"service": service.to_dict()}


@bp.route("/services", methods=["POST"])
@login_required
@permission_required("catalog.manage")
def create_service():
    data = json_body()
    try:
        service = catalog_service.create_service(
            name=data.get("name", ""),
            service_type=data.get("service_type", ""),
            client_price=data.get("client_price"),
            description=data.get("description", ""),
            tags=data.get("tags") or [],
            duration_minutes=data.get("duration_minutes", 60),
            category_id=data.get("category_id"),
            commission_percentage=data.get("commission_percentage"),
            provider_fee=data.get("provider_fee"),
            requirements=data.get("requirements"),
            user_id=current_user.id,
        )
    except ValueError as exc:
        return error_response(exc)
    return {"service": service.to_dict()}, 201


@bp.route("/services/<int:service_id>", methods=["PATCH"])
@login_required
@permission_required("catalog.manage")
def update_service(service_id):
    try:
        service = catalog_service.update_service(
            service_id, user_id=current_user.id, **json_body()
        )
    except ValueError as exc:
        return error_response(exc)
    return {"service": service.to_dict()}


@bp.route("/services/<int:service_id>", methods=["DELETE"])
@login_required
@permission_required("catalog.manage")
def deactivate_service(service_id):
    try:
        service = catalog_service.deactivate_service(service_id, user_id=current_user.id)
    except ValueError as exc:
        return error_response(exc)
    return {"service": service.to_dict()}


# =========================================================================
# Packages and entitlements
# =========================================================================


@bp.route("/packages")
def list_packages():
    packages = catalog_service.get_packages(include_inactive=_include_inactive())
    return {"packages": [p.to_dict() for p in packages]}


@bp.route("/packages", methods=["POST"])
@login_required
@permission_required("catalog.manage")
def create_package():
    data = json_body()
    try:
        package = catalog_service.create_package(
            name=data.get("name", ""),
            price=data.get("price"),
            duration_days=data.get("duration_days", 30),
            description=data.get("description"),
            user_id=current_user.id,
        )
    except ValueError as exc:
        return error_response(exc)
    return {"package": package.to_dict()}, 201


@bp.route("/packages/<int:package_id>", methods=["PATCH"])
@login_required
@permission_required("catalog.manage")
def update_package(package_id):
    data = json_body()
    try:
        package = catalog_service.update_package(
            package_id,
            name=data.get("name"),
            price=data.get("price"),
            duration_days=data.get("duration_days"),
            description=data.get("description"),
            user_id=current_user.id,
        )
    except ValueError as exc:
        return error_response(exc)
    return {"package": package.to_dict()}


@bp.route("/packages/<int:package_id>", methods=["DELETE"])
@login_required
@permission_required("catalog.manage")
def deactivate_package(package_id):
    try:
        package = catalog_service.deactivate_package(package_id, user_id=current_user.id)
    except ValueError as exc:
        return error_response(exc)
    return {"package": package.to_dict()}


@bp.route("/packages/<int:package_id>/entitlements", methods=["PUT"])
@login_required
@permission_required("catalog.manage")
def set_entitlement(package_id):
    """Add or replace the quota a package grants for one service."""
    data = json_body()
    try:
        entitlement = catalog_service.set_entitlement(
            package_id,
            service_id=data.get("service_id"),
            quantity_per_cycle=data.get("quantity_per_cycle", 1),
            cycle_days=data.get("cycle_days", 30),
            user_id=current_user.id,
        )
    except ValueError as exc:
        return error_response(exc)
    return {"entitlement": entitlement.to_dict()}


@bp.route("/entitlements/<int:entitlement_id>", methods=["DELETE"])
@login_required
@permission_required("catalog.manage")
def remove_entitlement(entitlement_id):
    try:
        catalog_service.remove_entitlement(entitlement_id, user_id=current_user.id)
    except ValueError as exc:
        return error_response(exc)
    return {"message": "Entitlement removed."}
