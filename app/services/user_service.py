"""
User service — accounts, roles and provider profiles.

Handles registration and admin provisioning of users, role changes,
activation, profile and notification preferences, and everything a
provider maintains for job matching and payouts: service location,
availability, categories, banking details and identity verification.

Passwords are hashed with Werkzeug. Staff who sign in through Entra ID
may have no password at all.
"""

import logging
import re

from sqlalchemy import func
from werkzeug.security import check_password_hash, generate_password_hash

from app.extensions import db
from app.models.catalog import ServiceCategory
from app.models.user import ProviderCategory, ProviderProfile, Role, User
from app.services import audit_service, location_service, notification_service
from app.services.clock import utcnow

logger = logging.getLogger(__name__)

PASSWORD_MIN_LENGTH = 8
SELF_REGISTER_ROLES = ("client", "provider")
PAYMENT_METHODS = ("bank_transfer", "mobile_money", "cash")

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_SPECIAL_CHARS = re.compile(r"[^A-Za-z0-9]")

_PROFILE_FIELDS = ("first_name", "last_name", "phone", "town", "suburb", "address")


# -- User lookup -----------------------------------------------------------


def get_user_by_id(user_id: int) -> User | None:
    """Return a user by primary key, or None if not found."""
    return db.session.get(User, user_id)


def get_user_by_email(email: str) -> User | None:
    """Return a user by email address (case-insensitive)."""
    return User.query.filter(func.lower(User.email) == email.lower()).first()


def get_user_by_entra_id(entra_object_id: str) -> User | None:
    """Return a user by their Entra ID (Azure AD) object ID."""
    return User.query.filter_by(entra_object_id=entra_object_id).first()


def _require_user(user_id: int) -> User:
    user = get_user_by_id(user_id)
    if user is None:
        raise ValueError(f"User ID {user_id} not found.")
    return user


def get_all_users(
    include_inactive: bool = False,
    role_name: str | None = None,
    page: int = 1,
    per_page: int = 50,
):
    """
    Return a paginated list of users, ordered by last name.

    Args:
        include_inactive: If True, include deactivated users.
        role_name:        Only users with this role.
        page:             Page number (1-indexed).
        per_page:         Records per page.

    Returns:
        A SQLAlchemy pagination object.
    """
    query = User.query.order_by(User.last_name, User.first_name)
    if not include_inactive:
        query = query.filter(User.is_active.is_(True))
    if role_name:
        query = query.join(Role).filter(Role.role_name == role_name)
    return query.paginate(page=page, per_page=per_page, error_out=False)


def get_all_roles() -> list[Role]:
    """Return all active roles, ordered by name."""
    return Role.query.filter_by(is_active=True).order_by(Role.role_name).all()


# -- Passwords -------------------------------------------------------------


def validate_password(password: str) -> list[str]:
    """
    Check a password against the policy.

    Returns:
        A list of problems; empty when the password is acceptable.
    """
    password = password or ""
    errors = []
    if len(password) < PASSWORD_MIN_LENGTH:
        errors.append(f"Password must be at least {PASSWORD_MIN_LENGTH} characters.")
    if not re.search(r"[A-Z]", password):
        errors.append("Password must contain an uppercase letter.")
    if not re.search(r"[a-z]", password):
        errors.append("Password must contain a lowercase letter.")
    if not re.search(r"\d", password):
        errors.append("Password must contain a number.")
    if not _SPECIAL_CHARS.search(password):
        errors.append("Password must contain a special character.")
    return errors


def set_password(user: User, password: str) -> None:
    """Hash and store a new password (no commit). Raises ValueError if weak."""
    errors = validate_password(password)
    if errors:
        raise ValueError(" ".join(errors))
    user.password_hash = generate_password_hash(password)


def check_password(user: User, password: str) -> bool:
    if not user.password_hash or not password:
        return False
    return check_password_hash(user.password_hash, password)


def change_password(user_id: int, current_password: str, new_password: str) -> User:
    """
    Replace a user's password after confirming the current one.

    Raises:
        PermissionError: If the current password is wrong.
        ValueError: If the new password fails the policy.
    """
    user = _require_user(user_id)
    if user.password_hash and not check_password(user, current_password):
        raise PermissionError("Current password is incorrect.")
    set_password(user, new_password)
    user.updated_at = utcnow()

    audit_service.log_change(
        user_id=user.id,
        action_type="UPDATE",
        entity_type="auth.user",
        entity_id=user.id,
        new_value={"password": "changed"},
    )
    db.session.commit()

    logger.info("Password changed for user %s", user.email)
    return user


# -- User creation and provisioning ----------------------------------------


def _normalise_phone(phone: str | None) -> str | None:
    if not phone:
        return None
    if not location_service.validate_namibian_phone(phone):
        raise ValueError(f"'{phone}' is not a valid Namibian phone number.")
    return location_service.format_namibian_phone(phone)


def _create_user(
    email: str,
    first_name: str,
    last_name: str,
    role_name: str,
    phone: str | None = None,
    town: str | None = None,
    suburb: str | None = None,
    address: str | None = None,
    provisioned_by: int | None = None,
    entra_object_id: str | None = None,
) -> User:
    """Validate and add a user, with a provider profile when needed (no commit)."""
    email = (email or "").strip().lower()
    if not _EMAIL_PATTERN.match(email):
        raise ValueError(f"'{email}' is not a valid email address.")
    if get_user_by_email(email) is not None:
        raise ValueError(f"An account with email {email} already exists.")
    if not (first_name or "").strip():
        raise ValueError("First name is required.")

    role = Role.query.filter_by(role_name=role_name).first()
    if role is None:
        raise ValueError(f"Role '{role_name}' not found.")

    user = User(
        email=email,
        first_name=first_name.strip(),
        last_name=(last_name or "").strip(),
        phone=_normalise_phone(phone),
        role_id=role.id,
        town=town,
        suburb=suburb,
        address=address,
        entra_object_id=entra_object_id,
        provisioned_by=provisioned_by,
    )
    db.session.add(user)
    db.session.flush()  # Get the user ID for the profile and audit log.

    if role_name == "provider":
        db.session.add(ProviderProfile(user_id=user.id, town=town, suburb=suburb))
    return user


def register_user(
    email: str,
    password: str,
    first_name: str,
    last_name: str,
    phone: str | None = None,
    role_name: str = "client",
    town: str | None = None,
    suburb: str | None = None,
    address: str | None = None,
) -> User:
    """
    Self-service sign-up for clients and providers.

    Providers start ``unverified`` and are not offered jobs until an
    admin approves their verification.

    Raises:
        ValueError: For a duplicate or malformed email, a weak password,
                    an invalid phone number or a role other than client
                    or provider.
    """
    if role_name not in SELF_REGISTER_ROLES:
        raise ValueError(f"Cannot register with role '{role_name}'.")
    errors = validate_password(password)
    if errors:
        raise ValueError(" ".join(errors))

    user = _create_user(
        email, first_name, last_name, role_name,
        phone=phone, town=town, suburb=suburb, address=address,
    )
    user.password_hash = generate_password_hash(password)

    audit_service.log_change(
        user_id=user.id,
        action_type="CREATE",
        entity_type="auth.user",
        entity_id=user.id,
        new_value={"email": user.email, "role": role_name, "self_registered": True},
    )
    notification_service.notify_user(
        user.id,
        "welcome",
        "Welcome to Longa",
        (
            "Complete your profile and submit your documents for verification "
            "to start receiving jobs."
            if role_name == "provider"
            else "Your account is ready. Book your first service any time."
        ),
    )
    db.session.commit()

    logger.info("Registered %s %s", role_name, user.email)
    return user


def provision_user(
    email: str,
    first_name: str,
    last_name: str,
    role_name: str = "client",
    provisioned_by: int | None = None,
    entra_object_id: str | None = None,
    phone: str | None = None,
    password: str | None = None,
) -> User:
    """
    Create a user on someone's behalf.

    Used by admins to add staff, providers or clients, and by the auth
    service to create staff accounts on first SSO login.

    Raises:
        ValueError: If the role is not found or any field is invalid.
    """
    user = _create_user(
        email, first_name, last_name, role_name,
        phone=phone, provisioned_by=provisioned_by, entra_object_id=entra_object_id,
    )
    if password:
        set_password(user, password)

    audit_service.log_change(
        user_id=provisioned_by,
        action_type="CREATE",
        entity_type="auth.user",
        entity_id=user.id,
        new_value={
            "email": user.email,
            "first_name": user.first_name,
            "last_name": user.last_name,
            "role": role_name,
        },
    )
    db.session.commit()

    logger.info("Provisioned user %s with role %s", user.email, role_name)
    return user


def update_user_role(
    user_id: int,
    new_role_name: str,
    changed_by: int | None = None,
) -> User:
    """
    Change a user's role.

    A user moved to ``provider`` gets an empty provider profile if they
    do not have one.

    Raises:
        ValueError: If the user or role is not found.
    """
    user = _require_user(user_id)
    new_role = Role.query.filter_by(role_name=new_role_name).first()
    if new_role is None:
        raise ValueError(f"Role '{new_role_name}' not found.")

    old_role_name = user.role_name
    user.role_id = new_role.id
    user.updated_at = utcnow()
    if new_role_name == "provider" and user.provider_profile is None:
        db.session.add(ProviderProfile(user_id=user.id, town=user.town, suburb=user.suburb))

    audit_service.log_change(
        user_id=changed_by,
        action_type="UPDATE",
        entity_type="auth.user",
        entity_id=user.id,
        previous_value={"role": old_role_name},
        new_value={"role": new_role_name},
    )
    db.session.commit()

    logger.info(
        "Changed role for user %s: %s -> %s",
        user.email,
        old_role_name,
        new_role_name,
    )
    return user


def _set_active(user_id: int, active: bool, changed_by: int | None) -> User:
    user = _require_user(user_id)
    if changed_by == user.id and not active:
        raise ValueError("You cannot deactivate your own account.")

    user.is_active = active
    user.updated_at = utcnow()

    audit_service.log_change(
        user_id=changed_by,
        action_type="UPDATE",
        entity_type="auth.user",
        entity_id=user.id,
        previous_value={"is_active": not active},
        new_value={"is_active": active},
    )
    db.session.commit()
    return user


def deactivate_user(user_id: int, changed_by: int | None = None) -> User:
    """Soft-delete a user by setting is_active to False."""
    user = _set_active(user_id, False, changed_by)
    logger.info("Deactivated user %s", user.email)
    return user


def reactivate_user(user_id: int, changed_by: int | None = None) -> User:
    """Re-enable a previously deactivated user."""
    user = _set_active(user_id, True, changed_by)
    logger.info("Reactivated user %s", user.email)
    return user


def record_login(user: User) -> None:
    """Update the user's last_login timestamp."""
    user.last_login = utcnow()
    db.session.commit()


# -- Profile and preferences -----------------------------------------------


def update_profile(user_id: int, **changes) -> User:
    """
    Update a user's own contact and location details.

    Only name, phone, town, suburb and address can be changed here.

    Raises:
        ValueError: For an unknown field, a blank first name or an
                    invalid phone number.
    """
    user = _require_user(user_id)
    unknown = set(changes) - set(_PROFILE_FIELDS)
    if unknown:
        raise ValueError(f"Cannot update: {', '.join(sorted(unknown))}.")
    if "first_name" in changes and not (changes["first_name"] or "").strip():
        raise ValueError("First name is required.")
    if "phone" in changes:
        changes["phone"] = _normalise_phone(changes["phone"])

    previous = {}
    for field, value in changes.items():
        if getattr(user, field) != value:
            previous[field] = getattr(user, field)
            setattr(user, field, value)
    if not previous:
        return user
    user.updated_at = utcnow()

    audit_service.log_change(
        user_id=user.id,
        action_type="UPDATE",
        entity_type="auth.user",
        entity_id=user.id,
        previous_value=previous,
        new_value={field: changes[field] for field in previous},
    )
    db.session.commit()

    logger.info("Updated profile for user %s: %s", user.email, ", ".join(previous))
    return user


def update_notification_preferences(
    user_id: int, notify_email: bool | None = None, notify_sms: bool | None = None
) -> User:
    """Turn email and SMS notifications on or off. In-app is always on."""
    user = _require_user(user_id)
    previous = {"notify_email": user.notify_email, "notify_sms": user.notify_sms}
    if notify_email is not None:
        user.notify_email = bool(notify_email)
    if notify_sms is not None:
        if notify_sms and not user.phone:
            raise ValueError("Add a phone number before turning on SMS notifications.")
        user.notify_sms = bool(notify_sms)

    audit_service.log_change(
        user_id=user.id,
        action_type="UPDATE",
        entity_type="auth.user",
        entity_id=user.id,
        previous_value=previous,
        new_value={"notify_email": user.notify_email, "notify_sms": user.notify_sms},
    )
    db.session.commit()
    return user


# -- Provider profile ------------------------------------------------------


def get_provider_profile(user_id: int) -> ProviderProfile:
    """Return a provider's profile. Raises ValueError if there is none."""
    profile = ProviderProfile.query.filter_by(user_id=user_id).first()
    if profile is None:
        raise ValueError(f"User ID {user_id} has no provider profile.")
    return profile


def get_providers(verification_status: str | None = None) -> list[ProviderProfile]:
    """Return provider profiles, optionally by verification status."""
    query = ProviderProfile.query
    if verification_status:
        query = query.filter_by(verification_status=verification_status)
    return query.order_by(ProviderProfile.town, ProviderProfile.user_id).all()


def _save_profile(profile: ProviderProfile, previous: dict, new: dict) -> None:
    profile.updated_at = utcnow()
    audit_service.log_change(
        user_id=profile.user_id,
        action_type="UPDATE",
        entity_type="auth.provider_profile",
        entity_id=profile.id,
        previous_value=previous,
        new_value=new,
    )
    db.session.commit()


def update_provider_location(
    user_id: int, town: str, suburb: str, max_distance: int | None = None
) -> ProviderProfile:
    """
    Set where a provider is based and how far they will travel.

    Raises:
        ValueError: If town or suburb is blank or the distance is not
                    a positive number of kilometres.
    """
    profile = get_provider_profile(user_id)
    town = (town or "").strip()
    suburb = (suburb or "").strip()
    if not town or not suburb:
        raise ValueError("Town and suburb are both required.")
    if max_distance is not None and int(max_distance) <= 0:
        raise ValueError("Maximum travel distance must be greater than zero.")

    previous = {
        "town": profile.town,
        "suburb": profile.suburb,
        "max_distance": profile.max_distance,
    }
    profile.town = town
    profile.suburb = suburb
    if max_distance is not None:
        profile.max_distance = int(max_distance)
    _save_profile(
        profile,
        previous,
        {"town": town, "suburb": suburb, "max_distance": profile.max_distance},
    )

    logger.info("Provider %s now based in %s/%s", user_id, town, suburb)
    return profile


def set_provider_availability(user_id: int, is_available: bool) -> ProviderProfile:
    profile = get_provider_profile(user_id)
    previous = {"is_available": profile.is_available}
    profile.is_available = bool(is_available)
    _save_profile(profile, previous, {"is_available": profile.is_available})

    logger.info("Provider %s availability set to %s", user_id, profile.is_available)
    return profile


def set_provider_categories(user_id: int, category_ids: list[int]) -> ProviderProfile:
    """
    Replace the service categories a provider works in.

    Raises:
        ValueError: If any category is unknown or inactive.
    """
    profile = get_provider_profile(user_id)
    wanted = sorted({int(cid) for cid in category_ids})
    if wanted:
        found = ServiceCategory.query.filter(
            ServiceCategory.id.in_(wanted), ServiceCategory.is_active.is_(True)
        ).count()
        if found != len(wanted):
            raise ValueError("One or more categories are unknown or inactive.")

    previous = sorted(pc.category_id for pc in profile.categories)
    ProviderCategory.query.filter_by(provider_profile_id=profile.id).delete()
    for category_id in wanted:
        db.session.add(
            ProviderCategory(provider_profile_id=profile.id, category_id=category_id)
        )
    _save_profile(profile, {"category_ids": previous}, {"category_ids": wanted})

    logger.info("Provider %s categories set to %s", user_id, wanted)
    return profile


def update_banking_details(
    user_id: int,
    payment_method: str,
    bank_name: str | None = None,
    account_number: str | None = None,
    account_holder: str | None = None,
    mobile_money_number: str | None = None,
) -> ProviderProfile:
    """
    Set how a provider is paid.

    Bank transfers need a bank, account number and account holder;
    mobile money needs a valid Namibian phone number.

    Raises:
        ValueError: For an unknown method or missing details.
    """
    if payment_method not in PAYMENT_METHODS:
        raise ValueError(
            f"Unknown payment method '{payment_method}'. "
            f"Valid options: {', '.join(PAYMENT_METHODS)}"
        )
    if payment_method == "bank_transfer" and not (
        bank_name and account_number and account_holder
    ):
        raise ValueError("Bank name, account number and account holder are required.")
    if payment_method == "mobile_money":
        mobile_money_number = _normalise_phone(mobile_money_number)
        if not mobile_money_number:
            raise ValueError("A mobile money number is required.")

    profile = get_provider_profile(user_id)
    previous = {"payment_method": profile.payment_method, "bank_name": profile.bank_name}
    profile.payment_method = payment_method
    profile.bank_name = bank_name
    profile.account_number = account_number
    profile.account_holder = account_holder
    profile.mobile_money_number = mobile_money_number
    # Account numbers stay out of the audit log.
    _save_profile(profile, previous, {"payment_method": payment_method, "bank_name": bank_name})

    logger.info("Provider %s banking details updated (%s)", user_id, payment_method)
    return profile


# -- Verification ----------------------------------------------------------


def submit_verification(user_id: int, id_number: str) -> ProviderProfile:
    """
    Ask for a provider's identity to be verified.

    Raises:
        ValueError: If the ID number is blank or the provider is
                    already verified or pending.
    """
    profile = get_provider_profile(user_id)
    id_number = (id_number or "").strip()
    if not id_number:
        raise ValueError("An ID number is required for verification.")
    if profile.verification_status in ("pending", "verified"):
        raise ValueError(f"Verification is already {profile.verification_status}.")

    previous = {"verification_status": profile.verification_status}
    profile.id_number = id_number
    profile.verification_status = "pending"
    profile.verification_submitted_at = utcnow()
    _save_profile(profile, previous, {"verification_status": "pending"})

    logger.info("Provider %s submitted verification", user_id)
    return profile


def _review_verification(
    user_id: int, reviewed_by: int, approve: bool, notes: str | None
) -> ProviderProfile:
    profile = get_provider_profile(user_id)
    if profile.verification_status != "pending":
        raise ValueError(
            f"Verification is not pending (status: {profile.verification_status})."
        )

    new_status = "verified" if approve else "rejected"
    profile.verification_status = new_status
    profile.verification_notes = notes
    profile.verified_by = reviewed_by
    profile.verified_at = utcnow() if approve else None
    profile.updated_at = utcnow()

    audit_service.log_change(
        user_id=reviewed_by,
        action_type="APPROVE" if approve else "DECLINE",
        entity_type="auth.provider_profile",
        entity_id=profile.id,
        previous_value={"verification_status": "pending"},
        new_value={"verification_status": new_status, "notes": notes},
    )
    if approve:
        message = "Your account is verified. You will now receive job offers."
    else:
        message = "Your verification was not approved."
        if notes:
            message += f" Reason: {notes}"
    notification_service.notify_user(
        user_id,
        f"verification_{new_status}",
        "Verification approved" if approve else "Verification rejected",
        message,
    )
    db.session.commit()

    logger.info("Provider %s verification %s by user %s", user_id, new_status, reviewed_by)
    return profile


def approve_verification(
    user_id: int, reviewed_by: int, notes: str | None = None
) -> ProviderProfile:
    return _review_verification(user_id, reviewed_by, True, notes)


def reject_verification(user_id: int, reviewed_by: int, notes: str) -> ProviderProfile:
    """Reject a pending verification. A reason is required."""
    if not (notes or "").strip():
        raise ValueError("A reason is required when rejecting verification.")
    return _review_verification(user_id, reviewed_by, False, notes.strip())
