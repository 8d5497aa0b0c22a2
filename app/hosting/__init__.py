import logging
import os
from datetime import timedelta

from dotenv import load_dotenv
from flask import Flask, g, render_template, request, session
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.exc import IntegrityError
from werkzeug.exceptions import HTTPException

from app.hosting.auth import bp as auth_bp, load_current_user
from app.hosting.config import load_config
from app.hosting.db import init_db, teardown_db_session
from app.hosting.errors import ApiError, json_error, wants_json
from app.hosting.modules.certificates.admin import bp as certificates_bp
from app.hosting.modules.registries.admin import bp as registries_bp
from app.hosting.modules.settings.admin import bp as settings_bp
from app.hosting.modules.ssh_keys.admin import bp as ssh_keys_bp
from app.hosting.routes import bp as routes_bp

logger = logging.getLogger(__name__)

SETTINGS_API_PREFIX = "/api/v1/settings"

# Tables/columns the settings area cannot run without.
_REQUIRED_SCHEMA = {
    "settings": ("fqdn", "dns_servers", "proxy_default_redirect", "is_dns_check_enabled"),
    "ssh_keys": ("team_id", "private_key"),
    "certificates": ("team_id", "cert", "key"),
    "docker_registries": ("team_id", "is_system_wide", "password"),
    "applications": ("fqdn", "docker_registry_id"),
}


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__, template_folder="templates", static_folder="static")
    app.config.from_mapping(load_config())
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=8)
    app.config["SESSION_REFRESH_EACH_REQUEST"] = True

    from app.hosting.rbac import user_has_permission
    from app.hosting.security import ensure_csrf_token, validate_csrf

    @app.context_processor
    def _inject_csrf() -> dict:
        return {"csrf_token": ensure_csrf_token()}

    @app.context_processor
    def _inject_permissions() -> dict:
        def has_perm(key: str) -> bool:
            return user_has_permission(getattr(g, "current_user", None), key)

        return {"has_perm": has_perm, "app_version": app.config.get("APP_VERSION")}

    @app.before_request
    def _csrf_guard():
        if request.path.startswith(("/static/", "/health", "/healthz")):
            return None
        ensure_csrf_token()
        session.permanent = True
        if request.method in ("POST", "PUT", "PATCH", "DELETE"):
            # Login/register/logout establish or drop the session themselves.
            if (request.endpoint or "").startswith("auth."):
                return None
            if not validate_csrf(request):
                if wants_json():
                    return json_error("CSRF token missing or invalid.", 400)
                return render_template("errors/400.html", message="CSRF token missing or invalid."), 400

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")
        if not app.config.get("PROXY_CONTAINER"):
            app.logger.warning("PROXY_CONTAINER not set; custom certificates will not reach the proxy.")
        if not os.environ.get("ENCRYPTION_KEY"):
            app.logger.warning("ENCRYPTION_KEY not set; stored secrets are keyed on SECRET_KEY.")

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

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(settings_bp, url_prefix=SETTINGS_API_PREFIX)
    app.register_blueprint(ssh_keys_bp, url_prefix=SETTINGS_API_PREFIX)
    app.register_blueprint(certificates_bp, url_prefix=SETTINGS_API_PREFIX)
    app.register_blueprint(registries_bp, url_prefix=SETTINGS_API_PREFIX)

    def _load_user_wrapper():
        if request.path.startswith(("/static/", "/health", "/healthz")):
            g.current_user = None
            return None
        return load_current_user()

    app.before_request(_load_user_wrapper)
    app.teardown_appcontext(teardown_db_session)

    # Migration health: detect drift between code expectations and DB schema.
    app.config.setdefault("_schema_health_ok", True)
    app.config.setdefault("_schema_health_missing", [])

    def _run_schema_health_check() -> None:
        missing: list[str] = []
        try:
            engine = app.extensions.get("sqlalchemy_engine")
            if engine is None:
                raise RuntimeError("sqlalchemy_engine not initialized")
            insp = sa_inspect(engine)
            for table, columns in _REQUIRED_SCHEMA.items():
                if not insp.has_table(table):
                    missing.append(f"{table} (table)")
                    continue
                cols = {c["name"] for c in insp.get_columns(table)}
                missing.extend(f"{table}.{col}" for col in columns if col not in cols)
        except Exception as e:
            app.logger.exception("Schema health check failed: %s", e)

        app.config["_schema_health_missing"] = missing
        app.config["_schema_health_ok"] = not missing
        if missing:
            app.logger.error("DB schema out of date; run `alembic upgrade head`. Missing: %s", ", ".join(missing))

    _run_schema_health_check()
    app.extensions["schema_health_check"] = _run_schema_health_check

    @app.before_request
    def _schema_health_guardrail():  # type: ignore[no-redef]
        if app.config.get("_schema_health_ok"):
            return None
        if request.path.startswith(SETTINGS_API_PREFIX):
            # Tables may have been created since boot (migrations run after start).
            _run_schema_health_check()
            if not app.config.get("_schema_health_ok"):
                missing = ", ".join(app.config.get("_schema_health_missing") or [])
                return json_error(f"Database schema out of date. Missing: {missing}", 500)
        return None

    @app.errorhandler(ApiError)
    def _api_error(e: ApiError):  # type: ignore[no-redef]
        if e.status >= 500:
            app.logger.warning("API error %s on %s %s: %s (request_id=%s)", e.status, request.method, request.path, e.message, getattr(g, "request_id", None))
        return json_error(e.message, e.status)

    @app.errorhandler(IntegrityError)
    def _integrity_error(e: IntegrityError):  # type: ignore[no-redef]
        s = getattr(g, "db_session", None)
        if s is not None:
            s.rollback()
        app.logger.info("Integrity error on %s %s: %s", request.method, request.path, e.orig)
        return json_error("Already exists or still referenced.", 409)

    @app.errorhandler(HTTPException)
    def _http_error(e: HTTPException):  # type: ignore[no-redef]
        if e.code == 403:
            missing = getattr(g, "missing_permission", None)
            if missing:
                app.logger.warning("Forbidden: missing_permission=%s request_id=%s", missing, getattr(g, "request_id", None))
        if e.code and e.code >= 500:
            app.logger.exception("Unhandled %s (request_id=%s)", e.code, getattr(g, "request_id", None))
        if wants_json():
            return json_error(e.description or e.name, e.code or 500)
        if e.code in (403, 404):
            return render_template(f"errors/{e.code}.html", missing_permission=getattr(g, "missing_permission", None)), e.code
        if e.code and e.code >= 500:
            return render_template("errors/500.html"), e.code
        return e

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        if wants_json():
            return json_error("Internal server error.", 500)
        return render_template("errors/500.html"), 500

    logger.info("create_app() complete; app ready to serve")

    return app
