"""
Service layer package.

Each service module encapsulates one domain of business logic.
Services are the only layer that writes to models; routes never
change the database directly.

Import services in route modules as needed::

    from app.services import booking_service
"""
