from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.hosting.models import Base, new_id


class Certificate(Base):
    __tablename__ = "certificates"
    __table_args__ = (
        Index("idx_certificates_team", "team_id"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    cert: Mapped[str] = mapped_column(Text, nullable=False)  # PEM, public
    key: Mapped[str] = mapped_column(Text, nullable=False)  # PEM private key, encrypted
    team_id: Mapped[str] = mapped_column(ForeignKey("teams.id", ondelete="CASCADE"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
