"""
Seed data — roles, permissions and a development data set.

Registers these CLI commands:

    flask seed-roles       # Create roles and permissions (safe to re-run)
    flask seed-dev-users   # Dev admin, client and verified providers
    flask seed-dev-catalog # Categories, services, a package, Windhoek distances

The dev users have ``@localhost`` addresses and share the password
given with ``--password``. Use them with password login, or with the
``/auth/dev-login`` bypass when ``DEV_LOGIN_ENABLED`` is on.

Prerequisites:
    - The database must exist and ``flask db upgrade`` must have run.
"""

from decimal import Decimal

import click
from flask.cli import with_appcontext

from app.extensions import db
from app.models.catalog import Service, ServiceCategory, SubscriptionPackage
from app.models.user import Permission, ProviderCategory, Role, RolePermission

# -- Roles and the permissions each one grants -----------------------------
PERMISSIONS = {
    "booking.view_all": "See every booking on the platform",
    "booking.assign": "Assign and reassign providers to bookings",
    "booking.rollback": "Roll a booking back to an earlier status",
    "catalog.manage": "Create and edit services, categories and packages",
    "location.manage": "Maintain the suburb distance table",
    "payment.review": "Approve or decline bank-deposit payments",
    "payout.manage": "Create payouts, run batches and edit payout rules",
    "payout.approve": "Approve payouts and batches and mark them paid",
    "provider.verify": "Approve or reject provider verification",
    "user.manage": "Provision users, change roles, deactivate accounts",
    "audit.view": "Read the audit log",
    "notification.process": "Trigger notification delivery",
}

ROLES = {
    "admin": ("Platform administrator", list(PERMISSIONS)),
    "provider": ("Service provider", []),
    "client": ("Client booking services", []),
}

_DEV_PROVIDERS = (
    # email, first, last, suburb, rating, jobs
    ("provider.one@localhost", "Petrus", "Nangolo", "Klein Windhoek", "4.80", 40),
    ("provider.two@localhost", "Maria", "Shikongo", "Olympia", "4.50", 12),
    ("provider.three@localhost", "Johan", "van Wyk", "Eros", "4.90", 65),
)

_DEV_CATEGORIES = {
    "Cleaning": "Home and office cleaning",
    "Gardening": "Lawn, garden and yard care",
}

_DEV_SERVICES = (
    # name, category, type, price, minutes, description
    ("Standard Home Cleaning", "Cleaning", "one-off", "350.00", 180,
     "Dusting, mopping, kitchen and bathroom cleaning for a standard home."),
    ("Deep Cleaning", "Cleaning", "one-off", "850.00", 360,
     "Top-to-bottom clean including inside cupboards, oven and windows."),
    ("Weekly Cleaning Visit", "Cleaning", "subscription", "300.00", 180,
     "Regular cleaning visit covered by a cleaning package."),
    ("Garden Maintenance", "Gardening", "one-off", "400.00", 120,
     "Mowing, trimming and clearing of garden waste."),
)

_WINDHOEK_DISTANCES = (
    ("Klein Windhoek", "Olympia", 5),
    ("Klein Windhoek", "Eros", 3),
    ("Klein Windhoek", "Ludwigsdorf", 2),
    ("Olympia", "Eros", 6),
    ("Olympia", "Ludwigsdorf", 7),
    ("Eros", "Ludwigsdorf", 4),
)


def seed_roles() -> tuple[int, int]:
    """
    Create any missing roles, permissions and role grants (commits).

    Returns:
        A ``(roles_created, permissions_created)`` tuple.
    """
    permissions = {p.permission_name: p for p in Permission.query.all()}
    permissions_created = 0
    for name, description in PERMISSIONS.items():
        if name not in permissions:
            permissions[name] = Permission(permission_name=name, description=description)
            db.session.add(permissions[name])
            permissions_created += 1
    db.session.flush()

    roles_created = 0
    for role_name, (description, granted) in ROLES.items():
        role = Role.query.filter_by(role_name=role_name).first()
        if role is None:
            role = Role(role_name=role_name, description=description)
            db.session.add(role)
            db.session.flush()
            roles_created += 1
        have = {rp.permission_id for rp in role.role_permissions}
        for name in granted:
            if permissions[name].id not in have:
                db.session.add(
                    RolePermission(role_id=role.id, permission_id=permissions[name].id)
                )
    db.session.commit()
    return roles_created, permissions_created


@click.command("seed-roles")
@with_appcontext
def seed_roles_command():
    """Create the admin, provider and client roles and their permissions."""
    roles_created, permissions_created = seed_roles()
    click.secho(
        f"✓ Roles ready ({roles_created} created), "
        f"permissions ready ({permissions_created} created).",
        fg="green",
    )


@click.command("seed-dev-users")
@click.option(
    "--password",
    default="DevPass1!",
    show_default=True,
    help="Password for every dev user.",
)
@with_appcontext
def seed_dev_users_command(password: str):
    """
    Create a dev admin, a dev client and three verified Windhoek providers.

    Existing users are reactivated rather than duplicated.
    """
    from app.services import user_service  # pylint: disable=import-outside-toplevel

    seed_roles()

    people = [
        ("dev.admin@localhost", "Dev", "Admin", "admin", None),
        ("dev.client@localhost", "Dev", "Client", "client", "Klein Windhoek"),
    ] + [(e, f, l, "provider", s) for e, f, l, s, _, _ in _DEV_PROVIDERS]

    for email, first_name, last_name, role_name, suburb in people:
        user = user_service.get_user_by_email(email)
        if user is None:
            user = user_service.provision_user(
                email=email,
                first_name=first_name,
                last_name=last_name,
                role_name=role_name,
                password=password,
            )
            click.secho(f"  ✓ Created {role_name}: {email}", fg="green")
        else:
            user.is_active = True
            click.echo(f"  • {email} already exists (id={user.id}).")
        if suburb:
            user.town = "Windhoek"
            user.suburb = suburb
            user.address = f"1 Main Street, {suburb}"
    db.session.commit()

    cleaning = ServiceCategory.query.filter_by(name="Cleaning").first()
    for email, _, _, suburb, rating, jobs in _DEV_PROVIDERS:
        profile = user_service.get_user_by_email(email).provider_profile
        profile.town = "Windhoek"
        profile.suburb = suburb
        profile.max_distance = 10
        profile.rating = Decimal(rating)
        profile.total_jobs = jobs
        profile.is_available = True
        profile.verification_status = "verified"
        if cleaning is not None and not profile.offers_category(cleaning.id):
            db.session.add(
                ProviderCategory(provider_profile_id=profile.id, category_id=cleaning.id)
            )
    db.session.commit()

    click.echo(f"\n  Password for all dev users: {password}")


@click.command("seed-dev-catalog")
@with_appcontext
def seed_dev_catalog_command():
    """Create sample categories, services, a package and Windhoek distances."""
    # pylint: disable=import-outside-toplevel
    from app.services import catalog_service, location_service

    for name, description in _DEV_CATEGORIES.items():
        if ServiceCategory.query.filter_by(name=name).first() is None:
            catalog_service.create_category(name, description)
            click.secho(f"  ✓ Category {name}", fg="green")

    for name, category, service_type, price, minutes, description in _DEV_SERVICES:
        if Service.query.filter_by(name=name).first() is None:
            catalog_service.create_service(
                name=name,
                service_type=service_type,
                client_price=price,
                description=description,
                tags=[category.lower()],
                duration_minutes=minutes,
                category_id=ServiceCategory.query.filter_by(name=category).first().id,
            )
            click.secho(f"  ✓ Service {name}", fg="green")

    if SubscriptionPackage.query.filter_by(name="Clean Home Monthly").first() is None:
        package = catalog_service.create_package(
            "Clean Home Monthly", "1000.00", 30, "Four cleaning visits every month."
        )
        visit = Service.query.filter_by(name="Weekly Cleaning Visit").first()
        catalog_service.set_entitlement(package.id, visit.id, 4, 30)
        click.secho("  ✓ Package Clean Home Monthly", fg="green")

    for suburb_a, suburb_b, km in _WINDHOEK_DISTANCES:
        location_service.set_suburb_distance("Windhoek", suburb_a, suburb_b, km)
    click.secho(f"  ✓ {len(_WINDHOEK_DISTANCES)} Windhoek suburb distances", fg="green")


def register_seed_commands(app):
    """Register seed-related CLI commands with the Flask application."""
    app.cli.add_command(seed_roles_command)
    app.cli.add_command(seed_dev_users_command)
    app.cli.add_command(seed_dev_catalog_command)
