"""
API response helpers for standardized responses.
"""

from typing import Any

from flask import jsonify, Response


def api_success(data: Any = None, status_code: int = 200) -> tuple[Response, int]:
    """Wrap ``data`` as ``{"success": true, "data": ...}``."""
    response = {"success": True}
    if data is not None:
        response["data"] = data
    return jsonify(response), status_code


def api_error(message: str, status_code: int = 400) -> tuple[Response, int]:
    """Wrap an error message as ``{"success": false, "error": ...}``."""
    return jsonify({"success": False, "error": message}), status_code
