"""
Authentication and authorization models.

Clients and providers sign in with email and password; staff may also
sign in through Entra ID (``entra_object_id``). Roles decide which
dashboards a user sees; permissions gate individual actions.

Providers carry a ``ProviderProfile`` holding the data the proximity
assignment relies on: home town and suburb, travel radius, rating,
completed job count, availability and verification status.
"""

from flask_login import UserMixin

from app.extensions import db


class Role(db.Model):
    """
    One of ``admin``, ``provider`` or ``client``, seeded by
    ``flask seed-roles``. Code compares ``role_name``; IDs differ
    between databases.
    """

    __tablename__ = "role"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    role_name = db.Column(db.String(50), unique=True, nullable=False)
    description = db.Column(db.String(200), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, server_default=db.func.now())

    # -- Relationships -----------------------------------------------------
    users = db.relationship("User", back_populates="role", lazy="dynamic")
    role_permissions = db.relationship(
        "RolePermission", back_populates="role", lazy="joined"
    )

    def __repr__(self) -> str:
        return f"<Role {self.role_name}>"


class Permission(db.Model):
    """A dotted action name such as ``payout.approve`` or ``booking.assign``."""

    __tablename__ = "permission"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    permission_name = db.Column(db.String(100), unique=True, nullable=False)
    description = db.Column(db.String(200), nullable=True)

    # -- Relationships -----------------------------------------------------
    role_permissions = db.relationship(
        "RolePermission", back_populates="permission", lazy="joined"
    )

    def __repr__(self) -> str:
        return f"<Permission {self.permission_name}>"


class RolePermission(db.Model):
    """Many-to-many mapping of roles to permissions."""

    __tablename__ = "role_permission"
    __table_args__ = (
        db.UniqueConstraint(
            "role_id",
            "permission_id",
            name="uq_role_permission_role_permission",
        ),
    )

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    role_id = db.Column(db.Integer, db.ForeignKey("role.id"), nullable=False)
    permission_id = db.Column(
        db.Integer, db.ForeignKey("permission.id"), nullable=False
    )

    # -- Relationships -----------------------------------------------------
    role = db.relationship("Role", back_populates="role_permissions")
    permission = db.relationship("Permission", back_populates="role_permissions")


class User(UserMixin, db.Model):
    """
    Marketplace user: a client booking services, a provider doing the
    work, or an admin running the platform.

    ``password_hash`` is NULL for staff who only sign in through Entra
    ID. ``town`` and ``suburb`` hold the client's default service
    location.

    Inherits from ``UserMixin`` to satisfy Flask-Login requirements.
    """

    __tablename__ = "app_user"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    email = db.Column(db.String(200), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=True)
    entra_object_id = db.Column(db.String(100), nullable=True, unique=True)
    first_name = db.Column(db.String(100), nullable=False)
    last_name = db.Column(db.String(100), nullable=False)
    phone = db.Column(db.String(30), nullable=True)
    role_id = db.Column(db.Integer, db.ForeignKey("role.id"), nullable=False)
    town = db.Column(db.String(100), nullable=True)
    suburb = db.Column(db.String(100), nullable=True)
    address = db.Column(db.String(300), nullable=True)
    notify_email = db.Column(db.Boolean, nullable=False, default=True)
    notify_sms = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    provisioned_by = db.Column(db.Integer, db.ForeignKey("app_user.id"), nullable=True)
    last_login = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime, nullable=False, server_default=db.func.now())

    # -- Relationships -----------------------------------------------------
    role = db.relationship("Role", back_populates="users")
    provider_profile = db.relationship(
        "ProviderProfile",
        back_populates="user",
        uselist=False,
        foreign_keys="ProviderProfile.user_id",
    )
    provisioner = db.relationship(
        "User", remote_side=[id], foreign_keys=[provisioned_by]
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def role_name(self) -> str:
        return self.role.role_name if self.role else "unknown"

    @property
    def is_provider(self) -> bool:
        return self.role_name == "provider"

    @property
    def is_admin(self) -> bool:
        return self.role_name == "admin"

    @property
    def permission_names(self) -> set[str]:
        """Everything this user's role is granted."""
        if self.role is None:
            return set()
        return {rp.permission.permission_name for rp in self.role.role_permissions}

    def has_role(self, *role_names: str) -> bool:
        return self.role_name in role_names

    def has_permission(self, permission_name: str) -> bool:
        return permission_name in self.permission_names

    def to_dict(self) -> dict:
        """Serialize the public fields of the user for API responses."""
        return {
            "id": self.id,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "full_name": self.full_name,
            "phone": self.phone,
            "role": self.role_name,
            "town": self.town,
            "suburb": self.suburb,
            "address": self.address,
            "notify_email": self.notify_email,
            "notify_sms": self.notify_sms,
            "is_active": self.is_active,
        }

    def __repr__(self) -> str:
        return f"<User {self.email} role={self.role_name}>"


class ProviderProfile(db.Model):
    """
    Service provider details used for job matching and payouts.

    ``verification_status`` values: ``unverified``, ``pending``,
    ``verified``, ``rejected``. Only verified, available providers are
    eligible for automatic assignment.

    ``max_distance`` is the furthest (km) the provider is willing to
    travel from their home suburb.
    """

    __tablename__ = "provider_profile"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("app_user.id"), nullable=False, unique=True
    )
    town = db.Column(db.String(100), nullable=True, index=True)
    suburb = db.Column(db.String(100), nullable=True)
    max_distance = db.Column(db.Integer, nullable=False, default=10)
    rating = db.Column(db.Numeric(3, 2), nullable=False, default=0)
    total_jobs = db.Column(db.Integer, nullable=False, default=0)
    is_available = db.Column(db.Boolean, nullable=False, default=True)
    verification_status = db.Column(
        db.String(20), nullable=False, default="unverified"
    )
    verification_notes = db.Column(db.Text, nullable=True)
    verification_submitted_at = db.Column(db.DateTime, nullable=True)
    verified_at = db.Column(db.DateTime, nullable=True)
    verified_by = db.Column(db.Integer, db.ForeignKey("app_user.id"), nullable=True)
    id_number = db.Column(db.String(50), nullable=True)

    # -- Banking details for payouts ---------------------------------------
    payment_method = db.Column(db.String(20), nullable=False, default="bank_transfer")
    bank_name = db.Column(db.String(100), nullable=True)
    account_number = db.Column(db.String(50), nullable=True)
    account_holder = db.Column(db.String(150), nullable=True)
    mobile_money_number = db.Column(db.String(30), nullable=True)

    updated_at = db.Column(db.DateTime, nullable=False, server_default=db.func.now())

    # -- Relationships -----------------------------------------------------
    user = db.relationship(
        "User", back_populates="provider_profile", foreign_keys=[user_id]
    )
    categories = db.relationship(
        "ProviderCategory", back_populates="provider_profile", lazy="joined"
    )

    def offers_category(self, category_id: int) -> bool:
        """Return True if the provider has specialised in the category."""
        return any(pc.category_id == category_id for pc in self.categories)

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "town": self.town,
            "suburb": self.suburb,
            "max_distance": self.max_distance,
            "rating": float(self.rating or 0),
            "total_jobs": self.total_jobs,
            "is_available": self.is_available,
            "verification_status": self.verification_status,
            "payment_method": self.payment_method,
            "category_ids": [pc.category_id for pc in self.categories],
        }

    def __repr__(self) -> str:
        return (
            f"<ProviderProfile user={self.user_id} {self.town}/{self.suburb} "
            f"status={self.verification_status}>"
        )


class ProviderCategory(db.Model):
    """Service categories a provider is qualified to work in."""

    __tablename__ = "provider_category"
    __table_args__ = (
        db.UniqueConstraint(
            "provider_profile_id",
            "category_id",
            name="uq_provider_category",
        ),
    )

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    provider_profile_id = db.Column(
        db.Integer, db.ForeignKey("provider_profile.id"), nullable=False, index=True
    )
    category_id = db.Column(
        db.Integer, db.ForeignKey("service_category.id"), nullable=False
    )

    # -- Relationships -----------------------------------------------------
    provider_profile = db.relationship("ProviderProfile", back_populates="categories")
    category = db.relationship("ServiceCategory")
