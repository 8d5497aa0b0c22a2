from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from app.hosting.audit import record_event
from app.hosting.crypto import decrypt, encrypt
from app.hosting.errors import ApiError

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.hosting.models import User
    from app.hosting.modules.ssh_keys.models import SshKey


def list_ssh_keys(s: "Session", team_id: str) -> list[dict]:
    """The team's keys with their private key decrypted, for the settings page."""
    from app.hosting.modules.ssh_keys.models import SshKey

    keys = s.query(SshKey).filter(SshKey.team_id == team_id).order_by(SshKey.created_at.asc()).all()
    return [
        {
            "id": k.id,
            "name": k.name,
            "privateKey": decrypt(k.private_key),
            "createdAt": k.created_at.isoformat() if k.created_at else None,
        }
        for k in keys
    ]


def save_ssh_key(s: "Session", payload: dict, user: "User") -> "SshKey":
    from app.hosting.modules.ssh_keys.models import SshKey

    name = (payload.get("name") or "").strip()
    private_key = (payload.get("privateKey") or "").strip()
    if not name or not private_key:
        raise ApiError("Name and private key are required.", 400)

    found = s.query(SshKey.id).filter(SshKey.team_id == user.team_id).filter(SshKey.name == name).first()
    if found:
        raise ApiError("Name already used. Choose another one please.", 409)

    # OpenSSH refuses keys without the trailing newline.
    key = SshKey(
        name=name,
        private_key=encrypt(private_key + "\n"),
        team_id=user.team_id,
        created_at=datetime.utcnow(),
    )
    s.add(key)
    s.flush()

    record_event(s, actor=user, action="ssh_key.create", entity_type="SshKey", entity_id=key.id, metadata={"name": name})
    return key


def delete_ssh_key(s: "Session", key_id: str, user: "User") -> None:
    from app.hosting.modules.ssh_keys.models import SshKey

    deleted = (
        s.query(SshKey)
        .filter(SshKey.id == key_id)
        .filter(SshKey.team_id == user.team_id)
        .delete(synchronize_session=False)
    )
    if deleted:
        record_event(s, actor=user, action="ssh_key.delete", entity_type="SshKey", entity_id=key_id)
