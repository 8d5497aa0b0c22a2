from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import abort, g, redirect, request, url_for

from app.hosting.constants import ROOT_TEAM_ID
from app.hosting.errors import wants_json
from app.hosting.models import User


def user_has_permission(user: User | None, permission_key: str) -> bool:
    if not user or not user.is_active:
        return False
    for role in user.roles:
        for perm in role.permissions:
            if perm.key == permission_key:
                return True
    return False


def user_permission_keys(user: User | None) -> list[str]:
    if not user or not user.is_active:
        return []
    return sorted({perm.key for role in user.roles for perm in role.permissions})


def is_root_team(user: User | None) -> bool:
    return bool(user and user.team_id == ROOT_TEAM_ID)


def login_redirect():
    nxt = request.full_path or request.path
    # Avoid trailing '?' from full_path when there is no query string.
    if nxt.endswith("?"):
        nxt = nxt[:-1]
    return redirect(url_for("routes.login_page", next=nxt))


def require_permission(permission_key: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            user: User | None = getattr(g, "current_user", None)
            # API callers get 401; browsers are sent to the login page.
            if not user or not user.is_active:
                if wants_json():
                    abort(401)
                return login_redirect()
            if not user_has_permission(user, permission_key):
                g.missing_permission = permission_key
                abort(403)
            return fn(*args, **kwargs)

        return wrapped

    return decorator
