from __future__ import annotations

from flask import request

from app.sitehost.errors import InvalidInput


def json_payload() -> dict:
    """Request body as a JSON object; an absent body is an empty object."""
    value = request.get_json(silent=True)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise InvalidInput("Request body must be a JSON object.")
    return value
