"""
Pytest configuration and shared fixtures.

Provides a test application, a fresh database per test, a test client
and small factories for the users, catalog entries and suburb
distances most tests need. The ``testing`` configuration uses an
in-memory SQLite database unless ``TEST_DATABASE_URL`` is set.
"""

import itertools
from datetime import time, timedelta
from decimal import Decimal

import pytest

from app import create_app
from app.extensions import db as _db
from app.models.booking import Booking
from app.models.user import ProviderCategory, ProviderProfile, Role, User
from app.seed_dev_data import seed_roles
from app.services import catalog_service, location_service
from app.services.clock import today


@pytest.fixture(scope="session")
def app():
    """
    Create a Flask application configured for testing.

    The app is created once per test session; each test pushes its own
    application context through ``db_session``.
    """
    return create_app("testing")


@pytest.fixture(scope="function")
def db_session(app):  # pylint: disable=redefined-outer-name
    """
    Provide a clean database session for each test function.

    The schema is created from the models, the roles and permissions
    are seeded, and everything is dropped again after the test.
    """
    with app.app_context():
        _db.create_all()
        seed_roles()

        yield _db.session

        _db.session.remove()
        _db.drop_all()


@pytest.fixture(scope="function")
def client(app, db_session):  # pylint: disable=redefined-outer-name,unused-argument
    """
    Provide a Flask test client for making HTTP requests.

    Usage in tests::

        def test_health(client):
            response = client.get("/health")
            assert response.status_code == 200
    """
    with app.test_client() as test_client:
        yield test_client


@pytest.fixture
def login(client):  # pylint: disable=redefined-outer-name
    """Sign the test client in as a user through the dev-login bypass."""

    def _login(user):
        response = client.get(f"/auth/dev-login?user_id={user.id}")
        assert response.status_code == 200
        return response

    return _login


# =========================================================================
# Factories
# =========================================================================


@pytest.fixture
def make_user(db_session):  # pylint: disable=redefined-outer-name
    """
    Return a factory that creates an active user in a role.

    Providers also get an (unverified, empty) provider profile.
    """
    counter = itertools.count(1)

    def _make_user(role_name="client", **fields):
        n = next(counter)
        role = Role.query.filter_by(role_name=role_name).one()
        user = User(
            email=fields.pop("email", f"{role_name}{n}@example.com"),
            first_name=fields.pop("first_name", role_name.title()),
            last_name=fields.pop("last_name", f"Tester{n}"),
            role_id=role.id,
            **fields,
        )
        db_session.add(user)
        db_session.flush()
        if role_name == "provider":
            db_session.add(ProviderProfile(user_id=user.id))
        db_session.commit()
        return user

    return _make_user


@pytest.fixture
def make_provider(db_session, make_user):  # pylint: disable=redefined-outer-name
    """Return a factory for verified, available providers in Windhoek."""

    def _make_provider(
        suburb="Klein Windhoek",
        town="Windhoek",
        categories=(),
        rating="4.50",
        total_jobs=0,
        max_distance=10,
        **fields,
    ):
        user = make_user("provider", town=town, suburb=suburb, **fields)
        profile = user.provider_profile
        profile.town = town
        profile.suburb = suburb
        profile.rating = Decimal(rating)
        profile.total_jobs = total_jobs
        profile.max_distance = max_distance
        profile.is_available = True
        profile.verification_status = "verified"
        for category in categories:
            db_session.add(
                ProviderCategory(provider_profile_id=profile.id, category_id=category.id)
            )
        db_session.commit()
        return user

    return _make_provider


@pytest.fixture
def admin_user(make_user):  # pylint: disable=redefined-outer-name
    return make_user("admin", first_name="Ada", last_name="Admin")


@pytest.fixture
def client_user(make_user):  # pylint: disable=redefined-outer-name
    """A client with a full Windhoek service address."""
    return make_user(
        "client",
        first_name="Selma",
        last_name="Amupolo",
        town="Windhoek",
        suburb="Klein Windhoek",
        address="12 Nelson Mandela Avenue",
    )


@pytest.fixture
def cleaning(db_session):  # pylint: disable=redefined-outer-name,unused-argument
    return catalog_service.create_category("Cleaning", "Home and office cleaning")


@pytest.fixture
def gardening(db_session):  # pylint: disable=redefined-outer-name,unused-argument
    return catalog_service.create_category("Gardening", "Lawn and garden care")


@pytest.fixture
def one_off_service(cleaning):  # pylint: disable=redefined-outer-name
    """A N$350, three-hour one-off cleaning service."""
    return catalog_service.create_service(
        name="Standard Home Cleaning",
        service_type="one-off",
        client_price="350.00",
        description="Dusting, mopping, kitchen and bathroom cleaning.",
        tags=["cleaning"],
        duration_minutes=180,
        category_id=cleaning.id,
    )


@pytest.fixture
def subscription_service(cleaning):  # pylint: disable=redefined-outer-name
    """A N$300 cleaning visit that is only bookable through a package."""
    return catalog_service.create_service(
        name="Weekly Cleaning Visit",
        service_type="subscription",
        client_price="300.00",
        description="Regular cleaning visit covered by a package.",
        tags=["cleaning", "package"],
        duration_minutes=120,
        category_id=cleaning.id,
    )


@pytest.fixture
def package(subscription_service):  # pylint: disable=redefined-outer-name
    """A package granting two cleaning visits every 30 days."""
    pkg = catalog_service.create_package(
        "Clean Home Monthly", "1000.00", 30, "Two cleaning visits a month."
    )
    catalog_service.set_entitlement(pkg.id, subscription_service.id, 2, 30)
    return pkg


@pytest.fixture
def windhoek_distances(db_session):  # pylint: disable=redefined-outer-name,unused-argument
    """Klein Windhoek is 3 km from Eros and 5 km from Olympia."""
    location_service.set_suburb_distance("Windhoek", "Klein Windhoek", "Eros", 3)
    location_service.set_suburb_distance("Windhoek", "Klein Windhoek", "Olympia", 5)
    location_service.set_suburb_distance("Windhoek", "Olympia", "Eros", 6)


@pytest.fixture
def next_week():
    """A booking date safely in the future."""
    return today() + timedelta(days=7)


@pytest.fixture
def make_booking(db_session, client_user, one_off_service, next_week):  # pylint: disable=redefined-outer-name
    """
    Return a factory that inserts a booking directly, bypassing matching.

    Defaults to the standard cleaning service for ``client_user`` next
    week at 10:00 in Klein Windhoek.
    """

    def _make_booking(status="pending", provider=None, service=None, **fields):
        service = service or one_off_service
        booking = Booking(
            client_id=fields.pop("client_id", client_user.id),
            provider_id=provider.id if provider else None,
            service_id=service.id,
            booking_date=fields.pop("booking_date", next_week),
            booking_time=fields.pop("booking_time", time(10, 0)),
            duration_minutes=fields.pop("duration_minutes", service.duration_minutes),
            total_amount=fields.pop("total_amount", service.client_price),
            job_type=service.service_type,
            status=status,
            assignment_status="auto_assigned" if provider else "pending_assignment",
            client_town=fields.pop("client_town", "Windhoek"),
            client_suburb=fields.pop("client_suburb", "Klein Windhoek"),
            service_address=fields.pop("service_address", "12 Nelson Mandela Avenue"),
            **fields,
        )
        db_session.add(booking)
        db_session.commit()
        return booking

    return _make_booking
