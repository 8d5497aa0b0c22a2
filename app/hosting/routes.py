from flask import Blueprint, abort, current_app, g, jsonify, redirect, render_template, request, url_for

from app.hosting.auth import user_payload
from app.hosting.constants import SETTINGS_ID
from app.hosting.db import db_session
from app.hosting.modules.settings.models import Setting
from app.hosting.rbac import login_redirect, user_has_permission, user_permission_keys
from app.hosting.security import ensure_csrf_token

bp = Blueprint("routes", __name__)

# (section slug, label, permission required to see it in the navigation)
SETTINGS_SECTIONS = (
    ("general", "General", "settings.view"),
    ("ssh-keys", "SSH Keys", "ssh_keys.manage"),
    ("certificates", "Certificates", "certificates.manage"),
    ("registries", "Docker Registries", "registries.manage"),
)


def _registration_enabled() -> bool:
    setting = db_session().get(Setting, SETTINGS_ID)
    return bool(setting and setting.is_registration_enabled)


def _navigation(user) -> list[dict]:
    return [
        {"slug": slug, "label": label, "url": url_for("routes.settings_page", section=slug)}
        for slug, label, perm in SETTINGS_SECTIONS
        if user_has_permission(user, perm)
    ]


@bp.get("/")
def index():
    user = getattr(g, "current_user", None)
    if not user:
        return login_redirect()
    return render_template("shell.html", navigation=_navigation(user), active=None)


@bp.get("/settings", defaults={"section": "general"})
@bp.get("/settings/<section>")
def settings_page(section: str):
    user = getattr(g, "current_user", None)
    if not user:
        return login_redirect()
    navigation = _navigation(user)
    if section not in {item["slug"] for item in navigation}:
        abort(404)
    return render_template("shell.html", navigation=navigation, active=section)


@bp.get("/login")
def login_page():
    nxt = (request.args.get("next") or "").strip()
    if getattr(g, "current_user", None):
        if nxt.startswith("/") and not nxt.startswith("//"):
            return redirect(nxt)
        return redirect(url_for("routes.index"))
    return render_template("auth/login.html", next=nxt, registration_enabled=_registration_enabled())


@bp.get("/api/v1/user")
def session_bootstrap():
    """Everything the dashboard shell needs on first paint."""
    user = getattr(g, "current_user", None)
    if not user:
        abort(401)
    return jsonify(
        {
            "user": user_payload(user),
            "permissions": user_permission_keys(user),
            "csrfToken": ensure_csrf_token(),
            "version": current_app.config.get("APP_VERSION"),
            "isRegistrationEnabled": _registration_enabled(),
        }
    )


@bp.get("/health")
def health():
    """Health check endpoint. Returns JSON."""
    return {"ok": True}


@bp.get("/healthz")
def healthz():
    """
    Fast health check for container probes. No DB access.
    """
    return "ok", 200
