from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from app.hosting.constants import DEFAULT_REGISTRY_ID
from app.hosting.models import Base, new_id


class Application(Base):
    """
    Deployed application. Only the columns the settings area reads or rewrites live here:
    the public domain (conflict checks) and the image registry (registry removal).
    """

    __tablename__ = "applications"
    __table_args__ = (
        Index("idx_applications_team", "team_id"),
        Index("idx_applications_registry", "docker_registry_id"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    fqdn: Mapped[str | None] = mapped_column(String(255), nullable=True)
    team_id: Mapped[str] = mapped_column(ForeignKey("teams.id", ondelete="CASCADE"), nullable=False)
    docker_registry_id: Mapped[str] = mapped_column(
        ForeignKey("docker_registries.id", ondelete="SET DEFAULT"),
        nullable=False,
        default=DEFAULT_REGISTRY_ID,
        server_default=DEFAULT_REGISTRY_ID,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
