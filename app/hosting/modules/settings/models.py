from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.hosting.constants import SETTINGS_ID
from app.hosting.models import Base


class Setting(Base):
    """Instance-wide settings. Exactly one row (id "0") is expected."""

    __tablename__ = "settings"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=SETTINGS_ID)

    # Dashboard domain, stored with scheme (e.g. "https://paas.example.com")
    fqdn: Mapped[str | None] = mapped_column(String(255), nullable=True, unique=True)

    is_registration_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    dual_certs: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    min_port: Mapped[int] = mapped_column(Integer, nullable=False, default=9000)
    max_port: Mapped[int] = mapped_column(Integer, nullable=False, default=9100)
    is_auto_update_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_dns_check_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    dns_servers: Mapped[str | None] = mapped_column(String(512), nullable=True)  # comma separated
    is_api_debugging_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    do_not_track: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    proxy_default_redirect: Mapped[str | None] = mapped_column(String(512), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    @property
    def dns_server_list(self) -> list[str]:
        return [x.strip() for x in (self.dns_servers or "").split(",") if x.strip()]
