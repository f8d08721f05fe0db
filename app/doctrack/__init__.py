import logging
import os
from datetime import timedelta

from dotenv import load_dotenv
from flask import Flask, g, request, session
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

# Core models first: module models hang off them.
from app.doctrack import models as _models  # noqa: F401
from app.doctrack.config import load_config
from app.doctrack.db import init_db, teardown_db_session
from app.doctrack.errors import DocTrackError, translate_backend_error
from app.doctrack.routes import bp as routes_bp
from app.doctrack.auth import bp as auth_bp, load_current_user
from app.doctrack.modules.documents.admin import bp as documents_bp
from app.doctrack.modules.departments.admin import bp as departments_bp
from app.doctrack.modules.users.admin import bp as users_bp
from app.doctrack.modules.attachments.admin import bp as attachments_bp
from app.doctrack.modules.notifications.admin import bp as notifications_bp
from app.doctrack.modules.stats.admin import bp as stats_bp
from app.doctrack.utils import json_error

logger = logging.getLogger(__name__)

_UNGUARDED_PREFIXES = ("/static/", "/health", "/healthz")


def _rollback_request_session() -> None:
    s = getattr(g, "db_session", None)
    if s is not None:
        s.rollback()


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=8)
    app.config["SESSION_REFRESH_EACH_REQUEST"] = True
    app.json.sort_keys = False

    # CSRF protection (minimal)
    from app.doctrack.security import ensure_csrf_token, validate_csrf

    @app.before_request
    def _csrf_guard():
        if request.path.startswith(_UNGUARDED_PREFIXES):
            return None
        ensure_csrf_token()
        session.permanent = True
        if request.method in ("POST", "PUT", "PATCH", "DELETE"):
            # login/logout mint the token, so they cannot be asked for it
            if (request.endpoint or "").startswith("auth."):
                return None
            if not validate_csrf(request):
                return json_error("CSRF token missing or invalid.", 400)

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")
        if not app.config.get("EMAIL_PROVIDER_API_KEY"):
            app.logger.warning("EMAIL_PROVIDER_API_KEY not set; invitation emails are disabled.")

    init_db(app)

    def _dispose_engine_on_fork() -> None:
        if hasattr(os, "register_at_fork"):
            def _after_fork_child():
                engine = app.extensions.get("sqlalchemy_engine")
                if engine:
                    engine.dispose()
                    app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

            os.register_at_fork(after_in_child=_after_fork_child)

    _dispose_engine_on_fork()

    if app.config.get("STORAGE_BACKEND") == "s3":
        missing_s3 = [
            key
            for key in ("S3_ENDPOINT", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY")
            if not app.config.get(key)
        ]
        if missing_s3:
            app.logger.error("STORAGE CONFIG ERROR: Missing required S3 env vars: %s", ", ".join(missing_s3))

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(documents_bp)
    app.register_blueprint(departments_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(attachments_bp)
    app.register_blueprint(notifications_bp)
    app.register_blueprint(stats_bp)

    app.before_request(load_current_user)
    app.teardown_appcontext(teardown_db_session)

    @app.errorhandler(DocTrackError)
    def _err_doctrack(e: DocTrackError):
        _rollback_request_session()
        if e.status_code >= 500:
            app.logger.error("%s (request_id=%s): %s", type(e).__name__, getattr(g, "request_id", None), e.message)
        elif e.status_code == 403:
            app.logger.warning(
                "Forbidden: %s missing_role=%s request_id=%s",
                e.message,
                getattr(g, "missing_role", None),
                getattr(g, "request_id", None),
            )
        return json_error(e.message, e.status_code)

    @app.errorhandler(SQLAlchemyError)
    def _err_database(e: SQLAlchemyError):
        _rollback_request_session()
        app.logger.exception("Database error (request_id=%s)", getattr(g, "request_id", None))
        return json_error(translate_backend_error(e), 500)

    @app.errorhandler(413)
    def _err_413(e):  # type: ignore[no-redef]
        return json_error("El archivo excede el tamaño máximo permitido", 413)

    @app.errorhandler(HTTPException)
    def _err_http(e: HTTPException):
        return json_error(e.description or e.name, e.code or 500)

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        # Ensure stack trace shows in logs.
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        return json_error("Error interno del servidor", 500)

    logger.info("create_app() complete; app ready to serve")
    return app
