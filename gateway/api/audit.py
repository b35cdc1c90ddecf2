"""
Audit logging for token issuance.

Every POST on the issuance API is logged as one structured JSON line on
stdout via a dedicated 'audit' logger. The token itself is never logged;
route handlers leave what they resolved in ``flask.g.audit``.
"""

import logging
import sys
from datetime import datetime, timezone

from flask import Response, g, request
from pythonjsonlogger.json import JsonFormatter

# Dedicated audit logger
audit_logger = logging.getLogger("audit")
audit_logger.setLevel(logging.INFO)
audit_logger.propagate = False

_handler = logging.StreamHandler(sys.stdout)
_handler.setFormatter(JsonFormatter("%(message)s"))
audit_logger.addHandler(_handler)

AUDIT_METHODS = frozenset({"POST"})


def audit_log_response(response: Response) -> Response:
    """
    after_request hook that logs issuance attempts.

    Attach to a Blueprint via: blueprint.after_request(audit_log_response)
    """
    if request.method not in AUDIT_METHODS:
        return response

    entry = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "event": "token_issued" if response.status_code < 400 else "token_refused",
        "method": request.method,
        "path": request.path,
        "endpoint": request.endpoint,
        "status_code": response.status_code,
        "remote_addr": request.remote_addr,
    }
    entry.update(g.get("audit", {}))

    audit_logger.info("audit", extra=entry)
    return response
