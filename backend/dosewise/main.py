"""
Dosewise – Flask Application Factory
Serves the medication scheduling and timeline REST API.
"""

from flask import Flask
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

from dosewise.config import Config
from dosewise.database import db
from dosewise.routes.users import users_bp
from dosewise.routes.prescriptions import prescriptions_bp
from dosewise.routes.timeline import timeline_bp
from dosewise.middleware.user_context import resolve_user_middleware
from dosewise.middleware.audit_logger import audit_after_request

limiter = Limiter(key_func=get_remote_address, default_limits=[Config.RATE_LIMIT_DEFAULT])


def create_app() -> Flask:
    Config.validate()

    app = Flask(__name__)
    app.config["SECRET_KEY"] = Config.FLASK_SECRET_KEY
    app.config["SQLALCHEMY_DATABASE_URI"] = Config.DATABASE_URL
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    app.config["DEBUG"] = Config.DEBUG
    app.config["RATELIMIT_ENABLED"] = Config.RATE_LIMIT_ENABLED

    # Extensions
    CORS(app, resources={r"/api/*": {"origins": "*"}})
    limiter.init_app(app)
    db.init_app(app)

    # Create tables if they don't already exist
    with app.app_context():
        from dosewise.models import models as _models  # noqa: F401 – ensure all models are registered
        db.create_all()

    # Middleware
    app.before_request(resolve_user_middleware)
    app.after_request(audit_after_request)

    # Blueprints
    app.register_blueprint(users_bp, url_prefix="/api/users")
    app.register_blueprint(prescriptions_bp, url_prefix="/api/prescriptions")
    app.register_blueprint(timeline_bp, url_prefix="/api/timeline")

    # Health check
    @app.route("/api/health")
    def health():
        return {"status": "ok", "service": "dosewise"}

    return app
