# typetrainer/__init__.py
import os
import re
from urllib.parse import urlparse, urlunparse, unquote
from datetime import datetime, timezone

from flask import Flask, jsonify, request as flask_request
from flask_cors import CORS
from flask_migrate import Migrate
from werkzeug.exceptions import HTTPException

from .config import Config
from .errors import InputValidationError, PersistenceFailure, TextNotFound, TypeTrainerError
from .models import db

migrate = Migrate()


def _normalize_db_url(u: str | None) -> str | None:
    if not u:
        return None

    # normalize scheme and driver
    if u.startswith("postgres://"):
        u = u.replace("postgres://", "postgresql://", 1)
    if u.startswith("postgresql://") and "+" not in u.split(":", 1)[0]:
        u = u.replace("postgresql://", "postgresql+psycopg://", 1)

    parsed = urlparse(u)
    if not parsed.scheme.startswith("postgresql"):
        return u  # don't touch sqlite or others

    # decode percent-encoded DB names
    path = unquote(parsed.path) if "%" in parsed.path else parsed.path

    # ensure sslmode=require unless provided
    query = parsed.query
    if "sslmode=" not in query:
        query = (query + "&" if query else "") + "sslmode=require"
    if "connect_timeout=" not in query:
        query += "&connect_timeout=" + os.getenv("DB_CONNECT_TIMEOUT", "10")

    return urlunparse(parsed._replace(path=path, query=query))


def _resolve_db_url() -> str | None:
    candidates = [
        "DATABASE_URL",
        "DATABASE_CONNECTION_STRING",
        "DATABASE_INTERNAL_URL",
        "DB_URL",
        "POSTGRES_URL",
    ]
    for name in candidates:
        raw = os.getenv(name)
        if raw:
            normalized = _normalize_db_url(raw)
            if normalized:
                return normalized

    fallback = os.getenv("SQLALCHEMY_DATABASE_URI")
    if fallback:
        return _normalize_db_url(fallback)

    return _normalize_db_url(getattr(Config, "SQLALCHEMY_DATABASE_URI", ""))


def _cors_origins(app: Flask):
    """'*' unless CORS_STRICT is on; then the configured allow-list (wildcards become regexes)."""
    allowed = list(app.config.get("CORS_ALLOWED_ORIGINS") or [])
    if not app.config.get("CORS_STRICT") or not allowed:
        return "*"
    out: list[object] = []
    for item in allowed:
        if "*" in item:
            out.append(re.compile("^" + re.escape(item).replace("\\*", ".*") + "$"))
        else:
            out.append(item)
    return out


def _error(message: str, status: int, **extra):
    return jsonify({"success": False, "message": message, **extra}), status


def create_app(overrides: dict | None = None):
    app = Flask(__name__)
    app.config.from_object(Config)

    # --- Database config ---
    db_url = _resolve_db_url()
    if not db_url:
        raise RuntimeError(
            "Database not configured. Set one of: "
            "DATABASE_URL, DATABASE_CONNECTION_STRING, DATABASE_INTERNAL_URL."
        )
    app.config["SQLALCHEMY_DATABASE_URI"] = db_url
    if overrides:
        app.config.update(overrides)
    if not app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite"):
        app.config.setdefault("SQLALCHEMY_ENGINE_OPTIONS", {"pool_pre_ping": True, "pool_recycle": 300})

    db.init_app(app)
    migrate.init_app(app, db)

    # --- CORS ---
    cors_origins = _cors_origins(app)
    CORS(
        app,
        resources={
            r"/api/*": {"origins": cors_origins},
            r"/ping": {"origins": cors_origins},
        },
        supports_credentials=cors_origins != "*",
        allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
        expose_headers=["Content-Type", "Authorization"],
        vary_header=True,
    )

    @app.route("/api/<path:_subpath>", methods=["OPTIONS"])
    def _cors_preflight(_subpath):
        return ("", 204)

    # --- Health ---
    @app.get("/api/healthz")
    def healthz():
        return jsonify(status="ok", time=datetime.now(timezone.utc).isoformat()), 200

    app.add_url_rule("/ping", view_func=healthz, methods=["GET"])

    # --- Blueprints ---
    from .auth import auth_bp
    from .api import api_bp
    from .practice_api import practice_bp
    from .sessions_api import sessions_bp

    app.register_blueprint(auth_bp, url_prefix="/api")
    app.register_blueprint(api_bp, url_prefix="/api")
    app.register_blueprint(practice_bp, url_prefix="/api")
    app.register_blueprint(sessions_bp, url_prefix="/api")

    # Optional local-only init
    if app.config.get("AUTO_INIT_DB"):
        with app.app_context():
            from . import models as _all_models  # noqa: F401
            db.create_all()

    # --- Errors ---
    @app.errorhandler(InputValidationError)
    def on_invalid(e):
        app.logger.info("Rejected %s %s: %s", flask_request.method, flask_request.path, e)
        extra = {"field": e.field} if e.field else {}
        return _error(str(e), 400, **extra)

    @app.errorhandler(TextNotFound)
    def on_not_found(e):
        return _error("Text not found", 404)

    @app.errorhandler(PersistenceFailure)
    def on_persistence(e):
        app.logger.warning("Persistence failure on %s: %s", flask_request.path, e)
        return _error(str(e) or "Storage error", 500)

    @app.errorhandler(TypeTrainerError)
    def on_domain_error(e):
        app.logger.warning("Unhandled %s: %s", type(e).__name__, e)
        return _error(str(e), 400)

    @app.errorhandler(Exception)
    def on_error(e):
        if isinstance(e, HTTPException):
            return e
        app.logger.exception("Unhandled error: %s", e)
        return jsonify({"ok": False, "error": "internal_error"}), 500

    return app
