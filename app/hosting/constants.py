"""
Central constants for the hosting dashboard.
"""
from __future__ import annotations

# The instance owner's team. Members of this team administer instance-wide settings.
ROOT_TEAM_ID = "0"

# Singleton settings row.
SETTINGS_ID = "0"

# Built-in Docker Hub registry; applications fall back to it when their registry is removed.
DEFAULT_REGISTRY_ID = "0"
DEFAULT_REGISTRY_NAME = "Docker Hub"
DEFAULT_REGISTRY_URL = "https://index.docker.io/v1/"

PERMISSIONS = (
    ("settings.view", "Settings: view"),
    ("settings.edit", "Settings: edit instance settings"),
    ("ssh_keys.manage", "SSH keys: manage"),
    ("certificates.manage", "Certificates: manage"),
    ("registries.manage", "Registries: manage"),
)

# Role key -> permission keys
ROLE_PERMISSIONS = {
    "admin": tuple(key for key, _ in PERMISSIONS),
    "member": ("settings.view", "ssh_keys.manage", "certificates.manage", "registries.manage"),
}

ROLE_NAMES = {
    "admin": "Administrator",
    "member": "Team member",
}
