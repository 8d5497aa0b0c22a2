"""Add settings area tables: settings, ssh_keys, certificates, docker_registries, applications.

Revision ID: b7e8f9a0b1c2
Revises: a0c1d2e3f4a5
Create Date: 2026-10-05
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "b7e8f9a0b1c2"
down_revision: Union[str, Sequence[str], None] = "a0c1d2e3f4a5"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "settings",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column("fqdn", sa.String(255), nullable=True),
        sa.Column("is_registration_enabled", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("dual_certs", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("min_port", sa.Integer(), nullable=False, server_default="9000"),
        sa.Column("max_port", sa.Integer(), nullable=False, server_default="9100"),
        sa.Column("is_auto_update_enabled", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("is_dns_check_enabled", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("dns_servers", sa.String(512), nullable=True),
        sa.Column("is_api_debugging_enabled", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("do_not_track", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("proxy_default_redirect", sa.String(512), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("fqdn"),
    )

    op.create_table(
        "ssh_keys",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("private_key", sa.Text(), nullable=False),
        sa.Column("team_id", sa.String(32), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["team_id"], ["teams.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("team_id", "name", name="uq_ssh_keys_team_name"),
    )
    op.create_index("idx_ssh_keys_team", "ssh_keys", ["team_id"])

    op.create_table(
        "certificates",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column("cert", sa.Text(), nullable=False),
        sa.Column("key", sa.Text(), nullable=False),
        sa.Column("team_id", sa.String(32), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["team_id"], ["teams.id"], ondelete="CASCADE"),
    )
    op.create_index("idx_certificates_team", "certificates", ["team_id"])

    op.create_table(
        "docker_registries",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("url", sa.String(512), nullable=False),
        sa.Column("username", sa.String(255), nullable=True),
        sa.Column("password", sa.String(2048), nullable=False, server_default=""),
        sa.Column("is_system_wide", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("team_id", sa.String(32), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["team_id"], ["teams.id"], ondelete="CASCADE"),
    )
    op.create_index("idx_docker_registries_team", "docker_registries", ["team_id"])
    op.create_index("idx_docker_registries_system_wide", "docker_registries", ["is_system_wide"])

    op.create_table(
        "applications",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("fqdn", sa.String(255), nullable=True),
        sa.Column("team_id", sa.String(32), nullable=False),
        sa.Column("docker_registry_id", sa.String(32), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["team_id"], ["teams.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["docker_registry_id"], ["docker_registries.id"], ondelete="SET DEFAULT"),
    )
    op.create_index("idx_applications_team", "applications", ["team_id"])
    op.create_index("idx_applications_registry", "applications", ["docker_registry_id"])


def downgrade() -> None:
    op.drop_index("idx_applications_registry", table_name="applications")
    op.drop_index("idx_applications_team", table_name="applications")
    op.drop_table("applications")
    op.drop_index("idx_docker_registries_system_wide", table_name="docker_registries")
    op.drop_index("idx_docker_registries_team", table_name="docker_registries")
    op.drop_table("docker_registries")
    op.drop_index("idx_certificates_team", table_name="certificates")
    op.drop_table("certificates")
    op.drop_index("idx_ssh_keys_team", table_name="ssh_keys")
    op.drop_table("ssh_keys")
    op.drop_table("settings")
