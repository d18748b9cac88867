"""
Tests for catalog_service — categories, services, packages and
package entitlements.
"""

from decimal import Decimal

import pytest

from app.models.audit import AuditLog
from app.models.catalog import PackageEntitlement
from app.services import catalog_service


class TestServiceValidation:
    """Field rules applied to every create and update."""

    def test_valid_fields(self):
        assert (
            catalog_service.validate_service_fields(
                "Window Washing", "one-off", "120", "Inside and outside windows.",
                ["windows"], 90,
            )
            == []
        )

    def test_every_problem_reported(self):
        errors = catalog_service.validate_service_fields(
            "ab", "weekly", "20", "short", [], 0, commission_percentage="40"
        )
        assert errors == [
            "Service name must be at least 3 characters.",
            "Service type must be one-off or subscription.",
            "Price must be at least N$50.",
            "Commission cannot exceed 30%.",
            "Description must be at least 10 characters.",
            "At least one tag is required.",
            "Duration must be between 1 minute and 24 hours.",
        ]

    def test_price_ceiling(self):
        errors = catalog_service.validate_service_fields(
            "Full Renovation", "one-off", "10000.01", "Everything, everywhere.",
            ["building"], 600,
        )
        assert errors == ["Price cannot exceed N$10,000."]


class TestCategoriesAndServices:
    """Creating, editing and retiring catalog entries."""

    def test_create_service(self, admin_user, cleaning):
        service = catalog_service.create_service(
            name="Carpet Cleaning",
            service_type="one-off",
            client_price="450",
            description="Steam cleaning for up to three rooms.",
            tags=["cleaning", " carpets "],
            duration_minutes=120,
            category_id=cleaning.id,
            commission_percentage="12.5",
            user_id=admin_user.id,
        )

        assert service.client_price == Decimal("450.00")
        assert service.tag_list == ["cleaning", "carpets"]
        assert service.commission_percentage == Decimal("12.50")
        log = AuditLog.query.filter_by(
            entity_type="catalog.service", entity_id=service.id
        ).one()
        assert log.user_id == admin_user.id

    def test_duplicate_names_rejected(self, one_off_service):
        with pytest.raises(ValueError, match="already exists"):
            catalog_service.create_service(
                "standard home cleaning", "one-off", "100",
                "Same name, different case.", ["cleaning"], 60,
            )
        with pytest.raises(ValueError, match="already exists"):
            catalog_service.create_category("CLEANING")

    def test_unknown_category_rejected(self, db_session):
        with pytest.raises(ValueError, match="Category ID 42 not found."):
            catalog_service.create_service(
                "Pool Cleaning", "one-off", "300", "Weekly pool maintenance.",
                ["pool"], 60, category_id=42,
            )

    def test_update_service(self, one_off_service):
        catalog_service.update_service(
            one_off_service.id, client_price="375", commission_percentage=None
        )
        assert one_off_service.client_price == Decimal("375.00")
        assert one_off_service.commission_percentage is None

    def test_update_validates_merged_fields(self, one_off_service):
        with pytest.raises(ValueError, match="at least N\\$50"):
            catalog_service.update_service(one_off_service.id, client_price="10")
        with pytest.raises(ValueError, match="Unknown service field"):
            catalog_service.update_service(one_off_service.id, colour="blue")

    def test_deactivated_service_hidden_by_default(self, one_off_service, cleaning):
        catalog_service.deactivate_service(one_off_service.id)

        assert one_off_service not in catalog_service.get_services()
        assert one_off_service in catalog_service.get_services(include_inactive=True)
        assert catalog_service.get_services(category_id=cleaning.id) == []

    def test_filter_by_type(self, one_off_service, subscription_service):
        assert catalog_service.get_services(service_type="subscription") == [
            subscription_service
        ]

    def test_deactivate_category(self, cleaning, gardening):
        catalog_service.deactivate_category(cleaning.id)
        assert catalog_service.get_categories() == [gardening]


class TestPackages:
    """Subscription packages and their entitlements."""

    def test_package_validation(self, db_session):
        with pytest.raises(ValueError, match="greater than zero"):
            catalog_service.create_package("Free Stuff", "0")
        with pytest.raises(ValueError, match="at least one day"):
            catalog_service.create_package("Tiny Plan", "100", duration_days=0)

    def test_update_package(self, package):
        catalog_service.update_package(package.id, price="1100", duration_days=60)
        assert package.price == Decimal("1100.00")
        assert package.duration_days == 60

    def test_packages_ordered_by_price(self, package):
        cheap = catalog_service.create_package("Starter", "200.00")
        assert catalog_service.get_packages() == [cheap, package]

    def test_entitlement_is_upserted(self, package, subscription_service):
        entitlement = catalog_service.set_entitlement(
            package.id, subscription_service.id, 4, 14
        )

        assert PackageEntitlement.query.filter_by(package_id=package.id).count() == 1
        assert entitlement.quantity_per_cycle == 4
        assert entitlement.cycle_days == 14

    def test_entitlement_quantity_must_be_positive(self, package, subscription_service):
        with pytest.raises(ValueError, match="at least 1"):
            catalog_service.set_entitlement(package.id, subscription_service.id, 0)

    def test_remove_entitlement(self, package):
        entitlement_id = PackageEntitlement.query.filter_by(package_id=package.id).one().id
        catalog_service.remove_entitlement(entitlement_id)
        assert PackageEntitlement.query.count() == 0
        with pytest.raises(ValueError, match="not found"):
            catalog_service.remove_entitlement(entitlement_id)
