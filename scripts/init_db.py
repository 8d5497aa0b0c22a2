import os
import sys
from pathlib import Path

from sqlalchemy.orm import Session
from werkzeug.security import generate_password_hash

# Ensure repo root is on sys.path when running as a script.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.hosting.constants import (  # noqa: E402
    DEFAULT_REGISTRY_ID,
    DEFAULT_REGISTRY_NAME,
    DEFAULT_REGISTRY_URL,
    PERMISSIONS,
    ROLE_NAMES,
    ROLE_PERMISSIONS,
    ROOT_TEAM_ID,
    SETTINGS_ID,
)
from app.hosting.models import Permission, Role, Team, User  # noqa: E402
from app.hosting.modules.registries.models import DockerRegistry  # noqa: E402
from app.hosting.modules.settings.models import Setting  # noqa: E402
from scripts._db_utils import script_database_url, script_session  # noqa: E402


def seed_platform(s: Session) -> dict[str, Role]:
    """
    Permissions, roles, root team, settings row and the built-in registry.
    Idempotent; existing rows are left as they are.
    """
    perms: dict[str, Permission] = {}
    for key, name in PERMISSIONS:
        p = s.query(Permission).filter(Permission.key == key).one_or_none()
        if not p:
            p = Permission(key=key, name=name)
            s.add(p)
        perms[key] = p

    roles: dict[str, Role] = {}
    for role_key, perm_keys in ROLE_PERMISSIONS.items():
        role = s.query(Role).filter(Role.key == role_key).one_or_none()
        if not role:
            role = Role(key=role_key, name=ROLE_NAMES[role_key])
            s.add(role)
        for perm_key in perm_keys:
            if perms[perm_key] not in role.permissions:
                role.permissions.append(perms[perm_key])
        roles[role_key] = role

    if not s.get(Team, ROOT_TEAM_ID):
        s.add(Team(id=ROOT_TEAM_ID, name="Root Team"))
    if not s.get(Setting, SETTINGS_ID):
        s.add(Setting(id=SETTINGS_ID))
    s.flush()
    if not s.get(DockerRegistry, DEFAULT_REGISTRY_ID):
        s.add(
            DockerRegistry(
                id=DEFAULT_REGISTRY_ID,
                name=DEFAULT_REGISTRY_NAME,
                url=DEFAULT_REGISTRY_URL,
                password="",
                is_system_wide=True,
                team_id=ROOT_TEAM_ID,
            )
        )
    return roles


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed platform rows and the admin user in an idempotent way.
    Does NOT overwrite an existing admin user's password.
    """
    admin_email = (os.environ.get("ADMIN_EMAIL") or "admin@example.com").strip().lower()
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me"

    with script_session(script_database_url(database_url)) as s:
        roles = seed_platform(s)

        user = s.query(User).filter(User.email == admin_email).one_or_none()
        if not user:
            user = User(
                email=admin_email,
                password_hash=generate_password_hash(admin_password),
                is_active=True,
                team_id=ROOT_TEAM_ID,
            )
            s.add(user)
        if roles["admin"] not in user.roles:
            user.roles.append(roles["admin"])

    print("Initialized database (seed_only).")
    print(f"Admin email: {admin_email}")
    print("Admin password: (from ADMIN_PASSWORD)")


def main() -> None:
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
