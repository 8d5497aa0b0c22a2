from __future__ import annotations

import uuid
from collections import defaultdict
from datetime import datetime, timedelta

from flask import Blueprint, current_app, flash, g, jsonify, redirect, request, session, url_for
from werkzeug.security import check_password_hash, generate_password_hash

from app.hosting.audit import record_event
from app.hosting.constants import ROOT_TEAM_ID, SETTINGS_ID
from app.hosting.db import db_session
from app.hosting.errors import ApiError
from app.hosting.models import Role, Team, User
from app.hosting.modules.settings.models import Setting

bp = Blueprint("auth", __name__)
_login_attempts: dict[str, list[datetime]] = defaultdict(list)
_LOGIN_RATE_LIMIT = 5
_LOGIN_RATE_WINDOW = 300  # seconds
_MIN_PASSWORD_LENGTH = 8


def _check_rate_limit(ip: str) -> bool:
    now = datetime.utcnow()
    cutoff = now - timedelta(seconds=_LOGIN_RATE_WINDOW)
    _login_attempts[ip] = [t for t in _login_attempts[ip] if t > cutoff]
    return len(_login_attempts[ip]) >= _LOGIN_RATE_LIMIT


def _record_attempt(ip: str) -> None:
    _login_attempts[ip].append(datetime.utcnow())


def _credentials() -> tuple[str, str, str]:
    if request.is_json:
        data = request.get_json(silent=True) or {}
    else:
        data = request.form
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    nxt = (data.get("next") or "").strip()
    return email, password, nxt


def _safe_next(nxt: str) -> str | None:
    # Only allow local paths to avoid open redirects.
    if nxt.startswith("/") and not nxt.startswith("//"):
        return nxt
    return None


def user_payload(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "teamId": user.team_id,
        "teamName": user.team.name if user.team else None,
    }


def load_current_user() -> None:
    """
    Loads g.current_user from the signed session cookie.
    Also assigns a simple per-request request_id (for audit/log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    if request.path.startswith(("/static/", "/health", "/healthz")):
        g.current_user = None
        return

    user_id = session.get("user_id")
    if not user_id:
        g.current_user = None
        return

    try:
        s = db_session()
        user = s.get(User, int(user_id))
        if not user or not user.is_active:
            session.pop("user_id", None)
            g.current_user = None
            return
        g.current_user = user
    except Exception as e:
        current_app.logger.error("load_current_user DB error (clearing session): %s", e)
        session.pop("user_id", None)
        g.current_user = None


@bp.post("/login")
def login_post():
    email, password, nxt = _credentials()
    ip = request.remote_addr or "unknown"

    if _check_rate_limit(ip):
        if request.is_json:
            raise ApiError("Too many login attempts. Please wait 5 minutes.", 429)
        flash("Too many login attempts. Please wait 5 minutes.", "danger")
        return redirect(url_for("routes.login_page"))

    _record_attempt(ip)

    s = db_session()
    user = s.query(User).filter(User.email == email).one_or_none()
    if not user or not user.is_active or not check_password_hash(user.password_hash, password):
        record_event(
            s,
            actor=None,
            action="auth.login_failed",
            entity_type="User",
            entity_id=email,
            metadata={"email": email},
        )
        s.commit()
        if request.is_json:
            raise ApiError("Invalid credentials.", 401)
        flash("Invalid credentials.", "danger")
        return redirect(url_for("routes.login_page"))

    session["user_id"] = user.id
    _login_attempts[ip].clear()
    record_event(s, actor=user, action="auth.login", entity_type="User", entity_id=str(user.id))
    s.commit()
    if request.is_json:
        return jsonify({"user": user_payload(user)})
    return redirect(_safe_next(nxt) or url_for("routes.index"))


@bp.post("/register")
def register_post():
    email, password, _ = _credentials()
    if not email or "@" not in email:
        raise ApiError("A valid email is required.", 400)
    if len(password) < _MIN_PASSWORD_LENGTH:
        raise ApiError(f"Password must be at least {_MIN_PASSWORD_LENGTH} characters.", 400)

    s = db_session()
    first_user = s.query(User.id).first() is None
    if not first_user:
        setting = s.get(Setting, SETTINGS_ID)
        if not setting or not setting.is_registration_enabled:
            raise ApiError("Registration is disabled.", 403)
    if s.query(User).filter(User.email == email).one_or_none():
        raise ApiError("Email already registered.", 409)

    # The first account owns the instance; everyone else starts in a private team.
    if first_user:
        team = s.get(Team, ROOT_TEAM_ID) or Team(id=ROOT_TEAM_ID, name="Root Team")
        role_key = "admin"
    else:
        team = Team(name=email)
        role_key = "member"

    user = User(email=email, password_hash=generate_password_hash(password), is_active=True, team=team)
    role = s.query(Role).filter(Role.key == role_key).one_or_none()
    if role:
        user.roles.append(role)
    else:
        current_app.logger.warning("Role %r not seeded; registered %s without permissions", role_key, email)
    s.add(user)
    s.flush()
    record_event(s, actor=user, action="auth.register", entity_type="User", entity_id=str(user.id))
    s.commit()

    session["user_id"] = user.id
    return jsonify({"user": user_payload(user)}), 201


@bp.route("/logout", methods=["GET", "POST"])
def logout():
    s = db_session()
    user = getattr(g, "current_user", None)
    if user:
        record_event(s, actor=user, action="auth.logout", entity_type="User", entity_id=str(user.id))
        s.commit()
    session.pop("user_id", None)
    if request.method == "POST" and request.is_json:
        return jsonify({})
    return redirect(url_for("routes.login_page"))
