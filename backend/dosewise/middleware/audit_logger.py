"""
Audit logger – after-request hook that writes every mutating API call
(POST/PUT/DELETE) to the audit_log table.
"""

import json
import logging
from flask import request, g
from dosewise.database import db
from dosewise.models.models import AuditLog

logger = logging.getLogger("dosewise.audit")

AUDITED_METHODS = ("POST", "PUT", "DELETE")


def audit_after_request(response):
    """Record mutating requests with a truncated body and response summary."""
    if not request.path.startswith("/api/") or request.method not in AUDITED_METHODS:
        return response

    try:
        user = getattr(g, "current_user", None)

        req_body = None
        if request.is_json:
            body = request.get_json(silent=True)
            req_body = json.dumps(body, default=str)[:2000] if body is not None else None

        resp_summary = None
        if response.is_json:
            resp_data = response.get_json(silent=True)
            resp_summary = json.dumps(resp_data, default=str)[:2000] if resp_data is not None else None

        entry = AuditLog(
            user_id=user.id if user else None,
            endpoint=request.path,
            method=request.method,
            status_code=response.status_code,
            request_body=req_body,
            response_summary=resp_summary,
        )
        db.session.add(entry)
        db.session.commit()
    except Exception as exc:
        logger.warning("Audit logging failed: %s", exc)
        db.session.rollback()

    return response
