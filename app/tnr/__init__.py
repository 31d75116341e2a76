import logging
import os
from datetime import timedelta

from flask import Flask, g, jsonify, request
from dotenv import load_dotenv
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from app.tnr.config import load_config
from app.tnr.db import init_db, teardown_db_session
from app.tnr.errors import AuthorizationError, StoreError, TnrError, ValidationError
from app.tnr.geocoding import geocoder_from_config
from app.tnr.routes import bp as routes_bp
from app.tnr.auth import bp as auth_bp, load_current_user
from app.tnr.admin import bp as admin_bp
from app.tnr.modules.cats.routes import bp as cats_bp
from app.tnr.policy import enforce_access
from app.tnr.security import csrf_guard, ensure_csrf_token

_REQUIRED_TABLES = ("users", "audit_events", "cats", "cat_status_history")


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=8)
    app.config["SESSION_REFRESH_EACH_REQUEST"] = True
    app.logger.setLevel(app.config.get("LOG_LEVEL") or "INFO")

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")

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

    # Soft dependency: absent API key means "never geocode".
    app.extensions["geocoder"] = geocoder_from_config(app.config)
    if app.extensions["geocoder"] is None:
        app.logger.info("GOOGLE_MAPS_API_KEY not set; address lookup disabled")

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(admin_bp, url_prefix="/admin")
    app.register_blueprint(cats_bp)

    # Order matters: identity -> access policy -> CSRF. Policy runs before any
    # body parsing or validation.
    @app.before_request
    def _identity_and_policy():
        load_current_user()
        enforce_access()
        if not request.path.startswith(("/static/", "/health", "/healthz")):
            ensure_csrf_token()
        return None

    app.before_request(csrf_guard)
    app.teardown_appcontext(teardown_db_session)

    # Migration health (lean): detect drift between code expectations and DB schema.
    app.config.setdefault("_schema_health_ok", True)
    app.config.setdefault("_schema_health_missing", [])

    def _run_schema_health_check() -> None:
        missing: list[str] = []
        try:
            insp = sa_inspect(app.extensions["sqlalchemy_engine"])
            for table in _REQUIRED_TABLES:
                if not insp.has_table(table):
                    missing.append(f"{table} (table)")
            if insp.has_table("cats"):
                cols = {c["name"] for c in insp.get_columns("cats")}
                if "version" not in cols:
                    missing.append("cats.version")
        except SQLAlchemyError as e:
            app.logger.exception("Schema health check failed: %s", e)

        if missing:
            app.config["_schema_health_ok"] = False
            app.config["_schema_health_missing"] = missing
            app.logger.error("DB schema out of date; run `alembic upgrade head`. Missing: %s", ", ".join(missing))

    _run_schema_health_check()

    @app.errorhandler(ValidationError)
    def _err_validation(e: ValidationError):
        return jsonify({"error": e.message, "field": e.field}), 400

    @app.errorhandler(AuthorizationError)
    def _err_forbidden(e: AuthorizationError):
        # Reason was logged by the policy gate; callers get a generic answer.
        return jsonify({"error": e.public_message}), e.status_code

    @app.errorhandler(StoreError)
    def _err_store(e: StoreError):
        rid = getattr(g, "request_id", None)
        if e.status_code >= 500:
            app.logger.error("Store error (request_id=%s): %s", rid, e, exc_info=e)
        else:
            app.logger.warning("Store conflict (request_id=%s): %s", rid, e)
        return jsonify({"error": e.public_message}), e.status_code

    @app.errorhandler(TnrError)
    def _err_tnr(e: TnrError):
        return jsonify({"error": e.public_message}), e.status_code

    @app.errorhandler(SQLAlchemyError)
    def _err_sqlalchemy(e: SQLAlchemyError):
        s = getattr(g, "db_session", None)
        if s is not None:
            s.rollback()
        app.logger.error("Unhandled DB error (request_id=%s)", getattr(g, "request_id", None), exc_info=e)
        return jsonify({"error": StoreError.public_message}), 500

    @app.errorhandler(HTTPException)
    def _err_http(e: HTTPException):
        return jsonify({"error": e.name}), e.code

    @app.errorhandler(Exception)
    def _err_500(e: Exception):
        # Ensure stack trace shows in logs.
        app.logger.error("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None), exc_info=e)
        return jsonify({"error": "Internal server error"}), 500

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
