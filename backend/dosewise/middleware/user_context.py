"""
User context middleware – threads an explicit user id through every request.
All /api/* routes (except /api/health and user creation) require an
X-User-Id header naming an existing user. No authentication is performed.
"""

from flask import request, g, jsonify

from dosewise.database import db
from dosewise.models.models import User

USER_HEADER = "X-User-Id"

# Routes that do not need a user
PUBLIC_PREFIXES = ("/api/health",)


def resolve_user_middleware():
    """Before-request hook: loads the user named by the X-User-Id header."""
    if request.method == "OPTIONS":
        return None

    path = request.path
    if not path.startswith("/api/"):
        return None
    if any(path.startswith(p) for p in PUBLIC_PREFIXES):
        return None
    if path.rstrip("/") == "/api/users" and request.method == "POST":
        return None

    user_id = request.headers.get(USER_HEADER, "").strip()
    if not user_id:
        return jsonify({"error": f"Missing {USER_HEADER} header."}), 400

    user = db.session.get(User, user_id)
    if not user:
        return jsonify({"error": "User not found."}), 404

    g.current_user = user
    return None


def get_current_user() -> User:
    """Convenience accessor for the resolved user."""
    return getattr(g, "current_user", None)
