from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from app.hosting.audit import record_event
from app.hosting.constants import DEFAULT_REGISTRY_ID
from app.hosting.crypto import decrypt, encrypt
from app.hosting.errors import ApiError
from app.hosting.rbac import is_root_team
from app.hosting.utils import parse_bool

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.hosting.models import User
    from app.hosting.modules.registries.models import DockerRegistry


def registry_to_dict(registry: "DockerRegistry") -> dict:
    return {
        "id": registry.id,
        "name": registry.name,
        "url": registry.url,
        "username": registry.username,
        "password": decrypt(registry.password),
        "isSystemWide": registry.is_system_wide,
        "teamId": registry.team_id,
        "createdAt": registry.created_at.isoformat() if registry.created_at else None,
    }


def list_registries(s: "Session", team_id: str) -> dict:
    """System-wide registries are visible to every team; private ones only to their owner."""
    from app.hosting.modules.registries.models import DockerRegistry

    public = s.query(DockerRegistry).filter(DockerRegistry.is_system_wide.is_(True)).order_by(DockerRegistry.name.asc()).all()
    private = (
        s.query(DockerRegistry)
        .filter(DockerRegistry.team_id == team_id)
        .filter(DockerRegistry.is_system_wide.is_(False))
        .order_by(DockerRegistry.name.asc())
        .all()
    )
    return {
        "public": [registry_to_dict(r) for r in public],
        "private": [registry_to_dict(r) for r in private],
    }


def _encrypted_password(payload: dict) -> str:
    password = payload.get("password") or ""
    return encrypt(password) if password else ""


def set_docker_registry(s: "Session", payload: dict, user: "User") -> "DockerRegistry":
    """Update registry credentials. The root team may update any registry (e.g. Docker Hub)."""
    from app.hosting.modules.registries.models import DockerRegistry

    registry_id = str(payload.get("id") or "").strip()
    if not registry_id:
        raise ApiError("Registry id is required.", 400)

    q = s.query(DockerRegistry).filter(DockerRegistry.id == registry_id)
    if not is_root_team(user):
        q = q.filter(DockerRegistry.team_id == user.team_id)
    registry = q.one_or_none()
    if not registry:
        raise ApiError("Registry not found.", 404)

    registry.username = (payload.get("username") or "").strip() or None
    registry.password = _encrypted_password(payload)
    registry.updated_at = datetime.utcnow()

    record_event(
        s,
        actor=user,
        action="registry.credentials_update",
        entity_type="DockerRegistry",
        entity_id=registry.id,
        metadata={"name": registry.name, "username": registry.username},
    )
    return registry


def add_docker_registry(s: "Session", payload: dict, user: "User") -> "DockerRegistry":
    from app.hosting.modules.registries.models import DockerRegistry

    name = (payload.get("name") or "").strip()
    url = (payload.get("url") or "").strip()
    if not name or not url:
        raise ApiError("Name and URL are required.", 400)
    is_system_wide = parse_bool(payload, "isSystemWide", False)
    if is_system_wide and not is_root_team(user):
        raise ApiError("Only the root team can add system-wide registries.", 403)

    now = datetime.utcnow()
    registry = DockerRegistry(
        name=name,
        url=url,
        username=(payload.get("username") or "").strip() or None,
        password=_encrypted_password(payload),
        is_system_wide=is_system_wide,
        team_id=user.team_id,
        created_at=now,
        updated_at=now,
    )
    s.add(registry)
    s.flush()

    record_event(
        s,
        actor=user,
        action="registry.create",
        entity_type="DockerRegistry",
        entity_id=registry.id,
        metadata={"name": name, "url": url, "is_system_wide": is_system_wide},
    )
    return registry


def delete_docker_registry(s: "Session", registry_id: str, user: "User") -> None:
    """
    Delete one of the team's registries. Applications that pulled from it fall back
    to the built-in registry.
    """
    from app.hosting.modules.applications.models import Application
    from app.hosting.modules.registries.models import DockerRegistry

    if registry_id == DEFAULT_REGISTRY_ID:
        raise ApiError("The default registry cannot be deleted.", 400)

    registry = (
        s.query(DockerRegistry)
        .filter(DockerRegistry.id == registry_id)
        .filter(DockerRegistry.team_id == user.team_id)
        .one_or_none()
    )
    if not registry:
        return

    moved = (
        s.query(Application)
        .filter(Application.docker_registry_id == registry_id)
        .update({Application.docker_registry_id: DEFAULT_REGISTRY_ID}, synchronize_session=False)
    )
    s.delete(registry)

    record_event(
        s,
        actor=user,
        action="registry.delete",
        entity_type="DockerRegistry",
        entity_id=registry_id,
        metadata={"name": registry.name, "applications_reassigned": moved},
    )
