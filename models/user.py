# =============================================================================
# 👤 models/user.py
# Besitzer von QR-Codes. Nur Identität + Tarifstufe (plan_tier) als
# explizite Berechtigung; Konto- und Abrechnungslogik liegt woanders.
# =============================================================================

from __future__ import annotations
from typing import List, TYPE_CHECKING
from datetime import datetime, timezone

from sqlalchemy import String, DateTime
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base

if TYPE_CHECKING:
    from models.qrcode import QRCode


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(100), unique=True, index=True)
    email: Mapped[str] = mapped_column(String(200), unique=True, index=True)

    # free | pro | business
    plan_tier: Mapped[str] = mapped_column(String(20), default="free")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )

    qrcodes: Mapped[List["QRCode"]] = relationship(
        "QRCode",
        back_populates="user",
        cascade="all, delete-orphan",
        lazy="select"
    )

    def __repr__(self) -> str:
        return (
            f"<User(id={self.id}, username='{self.username}', "
            f"email='{self.email}', plan_tier='{self.plan_tier}')>"
        )
