from __future__ import annotations

from flask import Blueprint, g, request

from app.hosting.db import db_session
from app.hosting.errors import ApiError
from app.hosting.models import User
from app.hosting.modules.registries.service import (
    add_docker_registry,
    delete_docker_registry,
    set_docker_registry,
)
from app.hosting.rbac import require_permission

bp = Blueprint("registries", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _payload() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


@bp.post("/registry")
@require_permission("registries.manage")
def registry_set():
    s = db_session()
    set_docker_registry(s, _payload(), _current_user())
    s.commit()
    return "", 201


@bp.post("/registry/new")
@require_permission("registries.manage")
def registry_add():
    s = db_session()
    add_docker_registry(s, _payload(), _current_user())
    s.commit()
    return "", 201


@bp.delete("/registry")
@require_permission("registries.manage")
def registry_delete():
    registry_id = str(_payload().get("id") or "").strip()
    if not registry_id:
        raise ApiError("id is required.", 400)
    s = db_session()
    delete_docker_registry(s, registry_id, _current_user())
    s.commit()
    return "", 201
