"""
User routes – create a user and read the current one.
Every other route is scoped to the user named by the X-User-Id header.
"""

from flask import Blueprint, request, jsonify

from dosewise.database import db
from dosewise.middleware.user_context import get_current_user
from dosewise.models.models import User

users_bp = Blueprint("users", __name__)


@users_bp.route("/", methods=["POST"])
def create_user():
    """Body: { "username": "jdoe", "name": "Jane Doe" }"""
    data = request.get_json(force=True)
    required = ["username", "name"]
    missing = [f for f in required if not data.get(f)]
    if missing:
        return jsonify({"error": f"Missing required fields: {', '.join(missing)}"}), 400

    if User.query.filter_by(username=data["username"]).first():
        return jsonify({"error": "Username already registered."}), 409

    user = User(username=data["username"], name=data["name"])
    db.session.add(user)
    db.session.commit()
    return jsonify({"user": user.to_dict()}), 201


@users_bp.route("/me", methods=["GET"])
def current_user():
    return jsonify({"user": get_current_user().to_dict()}), 200
