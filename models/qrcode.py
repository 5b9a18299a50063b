# =============================================================================
# 📦 QRCode Model – dynamischer QR-Code mit Weiterleitungsregeln (SQLAlchemy 2.0)
# =============================================================================

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Optional, TYPE_CHECKING

from sqlalchemy import (
    JSON, String, Boolean, Integer, DateTime,
    ForeignKey, func, event
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.orm import Mapper
from sqlalchemy.engine import Connection

from database import Base
from utils.geo_rules import GeoRule, coerce_geo_rules
from utils.time_rules import TimeRule, coerce_time_rules

if TYPE_CHECKING:
    from models.qr_scan import QRScan
    from models.user import User


BRANDING_STYLES = ("minimal", "full", "custom")


def new_short_code() -> str:
    return uuid.uuid4().hex[:10]


# =============================================================================
# 🧩 QRCode-Datenmodell
# =============================================================================
class QRCode(Base):
    """
    Ein dynamischer QR-Code.
    Der Short-Code ist der Lookup-Schlüssel für /r/{short_code};
    Zeit- und Geo-Regeln liegen als JSON-Listen am Datensatz.
    """
    __tablename__ = "qr_codes"

    # ---------------------------------------------------------------------
    # 🧾 Basisattribute
    # ---------------------------------------------------------------------
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    title: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    short_code: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        nullable=False,
        index=True,
        default=new_short_code,
    )

    original_url: Mapped[str] = mapped_column(String(2048), nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True)

    # ---------------------------------------------------------------------
    # 🔢 Scan-Limit
    # ---------------------------------------------------------------------
    scan_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    scan_limit: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    expired_url: Mapped[Optional[str]] = mapped_column(String(2048), nullable=True)

    # ---------------------------------------------------------------------
    # ⏰🌍 Dynamische Regeln (Reihenfolge der Zeitregeln ist relevant)
    # ---------------------------------------------------------------------
    time_rules: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)
    geo_rules: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)

    # ---------------------------------------------------------------------
    # 🎨 Branding (nur Darstellung vor der Weiterleitung)
    # ---------------------------------------------------------------------
    branding_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    branding_style: Mapped[str] = mapped_column(String(20), default="minimal")
    branding_duration: Mapped[int] = mapped_column(Integer, default=3)
    custom_branding_text: Mapped[Optional[str]] = mapped_column(String(255))

    # ---------------------------------------------------------------------
    # 🔗 Beziehungen
    # ---------------------------------------------------------------------
    scans: Mapped[list["QRScan"]] = relationship(
        "QRScan",
        back_populates="qr",
        cascade="all, delete-orphan",
        lazy="select",
    )

    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"))
    user: Mapped["User"] = relationship("User", back_populates="qrcodes")

    # ---------------------------------------------------------------------
    # 🕒 Zeitstempel
    # ---------------------------------------------------------------------
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), onupdate=func.now()
    )
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    # ---------------------------------------------------------------------
    # ⚙️ Regel-Zugriff
    # ---------------------------------------------------------------------
    def get_time_rules(self) -> list[TimeRule]:
        return coerce_time_rules(self.time_rules)

    def get_geo_rules(self) -> list[GeoRule]:
        return coerce_geo_rules(self.geo_rules)

    def set_time_rules(self, rules: list[TimeRule]) -> None:
        # neue Liste zuweisen, damit SQLAlchemy die Änderung am JSON erkennt
        self.time_rules = [r.to_dict() for r in rules]

    def set_geo_rules(self, rules: list[GeoRule]) -> None:
        self.geo_rules = [r.to_dict() for r in rules]

    @property
    def has_geo_rules(self) -> bool:
        return bool(self.geo_rules)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    # ---------------------------------------------------------------------
    # 📌 Repräsentation
    # ---------------------------------------------------------------------
    def __repr__(self) -> str:
        return (
            f"<QRCode(id={self.id}, short_code='{self.short_code}', "
            f"scans={self.scan_count}/{self.scan_limit}, active={self.active})>"
        )


# =============================================================================
# ⚙️ Event: Automatische Short-Code-Erzeugung
# =============================================================================
@event.listens_for(QRCode, "before_insert")  # type: ignore[misc]
def set_unique_short_code(mapper: Mapper, connection: Connection, target: Any) -> None:
    """
    Garantiert, dass jeder QR-Code einen gültigen Short-Code erhält.
    """
    if not getattr(target, "short_code", None):
        target.short_code = new_short_code()
