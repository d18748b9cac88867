"""
Helpers shared by the JSON blueprints.

Services signal problems with ``ValueError`` (bad input, not found) and
``PermissionError`` (not yours). ``error_response`` turns either into
the ``{"error": ...}`` body and status code every route returns.
"""

import logging

from flask import request

logger = logging.getLogger(__name__)


def json_body() -> dict:
    """Return the request's JSON object, or an empty dict."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def error_response(exc: Exception) -> tuple[dict, int]:
    """Map a service exception to a JSON error and HTTP status."""
    if isinstance(exc, PermissionError):
        logger.warning("Denied %s %s: %s", request.method, request.path, exc)
        return {"error": str(exc)}, 403
    message = str(exc)
    if message.endswith("not found."):
        return {"error": message}, 404
    return {"error": message}, 400


def query_flag(name: str) -> bool:
    """Read a ``?name=1`` / ``?name=true`` style query parameter."""
    return request.args.get(name, "0").lower() in ("1", "true", "yes")
