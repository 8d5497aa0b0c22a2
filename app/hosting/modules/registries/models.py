from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from app.hosting.models import Base, new_id


class DockerRegistry(Base):
    __tablename__ = "docker_registries"
    __table_args__ = (
        Index("idx_docker_registries_team", "team_id"),
        Index("idx_docker_registries_system_wide", "is_system_wide"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)  # "0" = Docker Hub
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    url: Mapped[str] = mapped_column(String(512), nullable=False)
    username: Mapped[str | None] = mapped_column(String(255), nullable=True)
    password: Mapped[str] = mapped_column(String(2048), nullable=False, default="")  # encrypted, "" = none
    is_system_wide: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    team_id: Mapped[str] = mapped_column(ForeignKey("teams.id", ondelete="CASCADE"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
