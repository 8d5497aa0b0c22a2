from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, redirect, request

from app.hosting.config import is_dev
from app.hosting.db import db_session
from app.hosting.models import User
from app.hosting.modules.settings.service import (
    check_dns,
    check_domain,
    delete_domain,
    list_all_settings,
    save_settings,
)
from app.hosting.rbac import require_permission

bp = Blueprint("settings", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _payload() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def request_hostname() -> str:
    """Host the dashboard was reached on, without port ("[::1]:3000" -> "::1")."""
    host = request.host
    if host.startswith("["):
        return host[1:].split("]", 1)[0]
    if host.count(":") == 1:
        return host.split(":", 1)[0]
    return host


@bp.get("")
@require_permission("settings.view")
def settings_list():
    s = db_session()
    return jsonify(list_all_settings(s, _current_user()))


@bp.post("")
@require_permission("settings.edit")
def settings_save():
    s = db_session()
    save_settings(s, _payload(), _current_user())
    s.commit()
    return "", 201


@bp.delete("")
@require_permission("settings.edit")
def settings_domain_delete():
    s = db_session()
    ip = delete_domain(s, _payload().get("fqdn"), _current_user())
    s.commit()
    if ip:
        return redirect(f"http://{ip}:{current_app.config['APP_PORT']}/settings", 302)
    return "", 204


@bp.post("/check")
@require_permission("settings.view")
def settings_check_domain():
    s = db_session()
    payload = _payload()
    setting_id = str(payload.get("id") or request.args.get("id") or "").strip() or None
    result = check_domain(s, setting_id, payload, hostname=request_hostname(), dev=is_dev(current_app.config))
    return jsonify(result)


@bp.get("/check/<path:domain>")
@require_permission("settings.view")
def settings_check_dns(domain: str):
    s = db_session()
    return jsonify(check_dns(s, domain.strip().lower(), hostname=request_hostname()))
