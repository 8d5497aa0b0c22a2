from __future__ import annotations

from flask import Blueprint, g, request

from app.hosting.db import db_session
from app.hosting.errors import ApiError
from app.hosting.models import User
from app.hosting.modules.ssh_keys.service import delete_ssh_key, save_ssh_key
from app.hosting.rbac import require_permission

bp = Blueprint("ssh_keys", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.post("/sshKey")
@require_permission("ssh_keys.manage")
def ssh_key_save():
    s = db_session()
    save_ssh_key(s, request.get_json(silent=True) or {}, _current_user())
    s.commit()
    return "", 201


@bp.delete("/sshKey")
@require_permission("ssh_keys.manage")
def ssh_key_delete():
    key_id = str((request.get_json(silent=True) or {}).get("id") or "").strip()
    if not key_id:
        raise ApiError("id is required.", 400)
    s = db_session()
    delete_ssh_key(s, key_id, _current_user())
    s.commit()
    return "", 201
