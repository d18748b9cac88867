"""
Model package — imports all models so Alembic and SQLAlchemy can
discover them automatically when ``flask db`` commands are run.

  - user.py         -> roles, permissions, users, provider profiles
  - location.py     -> suburb distance table
  - catalog.py      -> categories, services, packages, entitlements
  - booking.py      -> bookings and their modification history
  - payment.py      -> bank-deposit transactions, payouts, payout rules
  - notification.py -> notifications and delivery failures
  - audit.py        -> audit log
"""

# -- users -----------------------------------------------------------------
from app.models.user import (  # noqa: F401
    Permission,
    ProviderCategory,
    ProviderProfile,
    Role,
    RolePermission,
    User,
)

# -- locations -------------------------------------------------------------
from app.models.location import LocationDistance  # noqa: F401

# -- catalog ---------------------------------------------------------------
from app.models.catalog import (  # noqa: F401
    PackageEntitlement,
    Service,
    ServiceCategory,
    ServiceUsageLog,
    SubscriptionPackage,
    UserPackage,
)

# -- bookings --------------------------------------------------------------
from app.models.booking import Booking, BookingModification  # noqa: F401

# -- payments --------------------------------------------------------------
from app.models.payment import (  # noqa: F401
    Payout,
    PayoutBatch,
    PayoutRule,
    PendingTransaction,
)

# -- notifications ---------------------------------------------------------
from app.models.notification import (  # noqa: F401
    Notification,
    NotificationDeliveryLog,
)

# -- audit -----------------------------------------------------------------
from app.models.audit import AuditLog  # noqa: F401
