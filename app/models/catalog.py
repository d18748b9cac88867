"""
Service catalog and subscription package models.

A ``Service`` is either ``one-off`` (paid per booking) or
``subscription`` (covered by a package). A ``SubscriptionPackage``
grants ``PackageEntitlement`` quotas: N uses of a service per rolling
cycle of ``cycle_days``. Every booking made against a quota writes a
``ServiceUsageLog`` row; usage is counted from those rows.
"""

from app.extensions import db


class ServiceCategory(db.Model):
    """Grouping of services (e.g. Cleaning, Gardening)."""

    __tablename__ = "service_category"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    name = db.Column(db.String(100), unique=True, nullable=False)
    description = db.Column(db.String(500), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, server_default=db.func.now())

    # -- Relationships -----------------------------------------------------
    services = db.relationship("Service", back_populates="category", lazy="dynamic")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "is_active": self.is_active,
        }

    def __repr__(self) -> str:
        return f"<ServiceCategory {self.name}>"


class Service(db.Model):
    """
    A bookable service.

    ``client_price`` is what a one-off booking costs the client.
    ``commission_percentage`` overrides the platform's default one-off
    commission when set. ``tags`` is a comma-separated list.
    """

    __tablename__ = "service"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    category_id = db.Column(
        db.Integer, db.ForeignKey("service_category.id"), nullable=True, index=True
    )
    name = db.Column(db.String(100), unique=True, nullable=False)
    description = db.Column(db.String(500), nullable=True)
    service_type = db.Column(db.String(20), nullable=False, default="one-off")
    client_price = db.Column(db.Numeric(10, 2), nullable=False)
    provider_fee = db.Column(db.Numeric(10, 2), nullable=True)
    commission_percentage = db.Column(db.Numeric(5, 2), nullable=True)
    duration_minutes = db.Column(db.Integer, nullable=False, default=60)
    tags = db.Column(db.String(500), nullable=True)
    requirements = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime, nullable=False, server_default=db.func.now())

    # -- Relationships -----------------------------------------------------
    category = db.relationship("ServiceCategory", back_populates="services")

    @property
    def tag_list(self) -> list[str]:
        """Return the tags as a list of trimmed strings."""
        return [t.strip() for t in (self.tags or "").split(",") if t.strip()]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "category_id": self.category_id,
            "name": self.name,
            "description": self.description,
            "service_type": self.service_type,
            "client_price": str(self.client_price),
            "provider_fee": str(self.provider_fee) if self.provider_fee is not None else None,
            "commission_percentage": (
                str(self.commission_percentage)
                if self.commission_percentage is not None
                else None
            ),
            "duration_minutes": self.duration_minutes,
            "tags": self.tag_list,
            "is_active": self.is_active,
        }

    def __repr__(self) -> str:
        return f"<Service {self.name} ({self.service_type})>"


class SubscriptionPackage(db.Model):
    """A purchasable bundle of service entitlements."""

    __tablename__ = "subscription_package"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    name = db.Column(db.String(100), unique=True, nullable=False)
    description = db.Column(db.String(500), nullable=True)
    price = db.Column(db.Numeric(10, 2), nullable=False)
    duration_days = db.Column(db.Integer, nullable=False, default=30)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, server_default=db.func.now())

    # -- Relationships -----------------------------------------------------
    entitlements = db.relationship(
        "PackageEntitlement", back_populates="package", lazy="joined"
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "price": str(self.price),
            "duration_days": self.duration_days,
            "is_active": self.is_active,
            "entitlements": [e.to_dict() for e in self.entitlements],
        }

    def __repr__(self) -> str:
        return f"<SubscriptionPackage {self.name}>"


class PackageEntitlement(db.Model):
    """
    Quota granted by a package: ``quantity_per_cycle`` uses of a
    service within any rolling window of ``cycle_days`` days.
    """

    __tablename__ = "package_entitlement"
    __table_args__ = (
        db.UniqueConstraint(
            "package_id", "allowed_service_id", name="uq_package_entitlement"
        ),
    )

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    package_id = db.Column(
        db.Integer, db.ForeignKey("subscription_package.id"), nullable=False
    )
    allowed_service_id = db.Column(
        db.Integer, db.ForeignKey("service.id"), nullable=False
    )
    quantity_per_cycle = db.Column(db.Integer, nullable=False, default=1)
    cycle_days = db.Column(db.Integer, nullable=False, default=30)

    # -- Relationships -----------------------------------------------------
    package = db.relationship("SubscriptionPackage", back_populates="entitlements")
    service = db.relationship("Service")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "package_id": self.package_id,
            "service_id": self.allowed_service_id,
            "quantity_per_cycle": self.quantity_per_cycle,
            "cycle_days": self.cycle_days,
        }


class UserPackage(db.Model):
    """
    A package owned by a client.

    ``status`` values: ``active``, ``expired``, ``cancelled``. At most
    one package per user is active at a time.
    """

    __tablename__ = "user_package"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("app_user.id"), nullable=False, index=True
    )
    package_id = db.Column(
        db.Integer, db.ForeignKey("subscription_package.id"), nullable=False
    )
    start_date = db.Column(db.Date, nullable=False)
    expiry_date = db.Column(db.Date, nullable=False)
    status = db.Column(db.String(20), nullable=False, default="active")
    created_at = db.Column(db.DateTime, nullable=False, server_default=db.func.now())

    # -- Relationships -----------------------------------------------------
    user = db.relationship("User")
    package = db.relationship("SubscriptionPackage")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "package_id": self.package_id,
            "package_name": self.package.name if self.package else None,
            "start_date": self.start_date.isoformat(),
            "expiry_date": self.expiry_date.isoformat(),
            "status": self.status,
        }

    def __repr__(self) -> str:
        return f"<UserPackage user={self.user_id} pkg={self.package_id} {self.status}>"


class ServiceUsageLog(db.Model):
    """One use of a package entitlement."""

    __tablename__ = "service_usage_log"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("app_user.id"), nullable=False, index=True
    )
    package_id = db.Column(
        db.Integer, db.ForeignKey("subscription_package.id"), nullable=False
    )
    allowed_service_id = db.Column(
        db.Integer, db.ForeignKey("service.id"), nullable=False
    )
    booking_id = db.Column(db.Integer, db.ForeignKey("booking.id"), nullable=True)
    used_at = db.Column(db.DateTime, nullable=False)

    def __repr__(self) -> str:
        return (
            f"<ServiceUsageLog user={self.user_id} service="
            f"{self.allowed_service_id} at={self.used_at}>"
        )
