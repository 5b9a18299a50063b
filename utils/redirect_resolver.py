# =============================================================================
# 🔄 utils/redirect_resolver.py
# -----------------------------------------------------------------------------
# Entscheidet für einen gescannten Short-Code die finale Ziel-URL.
#
#   1. QR-Code laden (aktiv, nicht gelöscht)         → sonst QRCodeNotFound
#   2. Scan-Limit (höchste Priorität)                → expired_url / ScanLimitExhausted
#   3. Geo-Regeln (falls vorhanden)                  → bei Fehler/kein Treffer: Zeitregeln
#   4. Zeitregeln
#   5. original_url
#   6. nichts gefunden                               → UnresolvableRedirect
#   7. Schema normalisieren (https://)
#
# Alle Stufen arbeiten auf EINEM Datensatz-Snapshot aus einer Session.
# Zwischenfehler (Geo-Lookup, kaputte Regeln) werden geloggt und geschluckt.
# =============================================================================

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional, Union

from sqlalchemy.orm import Session

from models.qrcode import QRCode
from utils.geo_rules import GeoRule, match_geo_rule
from utils.geolocation import VisitorLocation
from utils.redirect_errors import QRCodeNotFound, ScanLimitExhausted, UnresolvableRedirect
from utils.scan_limit import check_scan_limit
from utils.time_rules import TimeRule, current_utc_hhmm, match_time_rule
from utils.urls import normalize_url

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
LocateVisitor = Callable[[], Awaitable[Optional[VisitorLocation]]]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Resolution:
    qr: QRCode
    url: str
    source: str  # expired | geo | time | default
    matched_rule: Optional[Union[GeoRule, TimeRule]] = None


def get_qr_by_short_code(db: Session, short_code: str) -> Optional[QRCode]:
    if not short_code:
        return None
    return (
        db.query(QRCode)
        .filter(
            QRCode.short_code == short_code,
            QRCode.active == True,  # noqa: E712
            QRCode.deleted_at.is_(None),
        )
        .first()
    )


class RedirectResolver:
    def __init__(self, clock: Optional[Clock] = None) -> None:
        self.clock = clock or _utc_now

    async def resolve(
        self,
        db: Session,
        short_code: str,
        visitor: Optional[VisitorLocation] = None,
        locate_visitor: Optional[LocateVisitor] = None,
    ) -> Resolution:
        # --- 1. QR-Code laden --------------------------------------------------
        qr = get_qr_by_short_code(db, short_code)
        if not qr:
            logger.info(f"❌ QR-Code nicht gefunden: {short_code}")
            raise QRCodeNotFound()

        # --- 2. Scan-Limit -----------------------------------------------------
        gate = check_scan_limit(qr.scan_count, qr.scan_limit, qr.expired_url)
        if gate.exhausted:
            if gate.url:
                logger.info(
                    f"🚫 Scan-Limit erreicht ({qr.scan_count}/{qr.scan_limit}) → expired_url für {short_code}"
                )
                return Resolution(qr=qr, url=gate.url, source="expired")
            logger.info(f"🚫 Scan-Limit erreicht ohne expired_url: {short_code}")
            raise ScanLimitExhausted()

        # --- 3./4. Geo, dann Zeit ----------------------------------------------
        resolution: Optional[Resolution] = None
        if qr.has_geo_rules:
            resolution = await self._resolve_geo(qr, visitor, locate_visitor)
        if resolution is None:
            resolution = self._resolve_time(qr)

        # --- 5. Default --------------------------------------------------------
        if resolution is None:
            url = normalize_url(qr.original_url)
            if not url:
                raise UnresolvableRedirect()
            resolution = Resolution(qr=qr, url=url, source="default")

        logger.info(f"🔗 {short_code} → {resolution.url} ({resolution.source})")
        return resolution

    async def resolve_url(
        self,
        db: Session,
        short_code: str,
        visitor: Optional[VisitorLocation] = None,
        locate_visitor: Optional[LocateVisitor] = None,
    ) -> str:
        resolution = await self.resolve(db, short_code, visitor=visitor, locate_visitor=locate_visitor)
        return resolution.url

    async def _resolve_geo(
        self,
        qr: QRCode,
        visitor: Optional[VisitorLocation],
        locate_visitor: Optional[LocateVisitor],
    ) -> Optional[Resolution]:
        try:
            if visitor is None and locate_visitor is not None:
                visitor = await locate_visitor()
            if visitor is None:
                logger.info(f"🌍 Keine Besucher-Koordinaten für {qr.short_code} → Zeitregeln")
                return None
            rule = match_geo_rule(qr.get_geo_rules(), visitor.lat, visitor.lon)
        except Exception as exc:
            logger.warning(f"⚠️ Geo-Weiterleitung fehlgeschlagen für {qr.short_code}: {exc} → Zeitregeln")
            return None

        if rule is None:
            logger.info(f"🌍 Keine Geo-Regel passt für {qr.short_code} → Zeitregeln")
            return None
        return Resolution(qr=qr, url=normalize_url(rule.url), source="geo", matched_rule=rule)

    def _resolve_time(self, qr: QRCode) -> Optional[Resolution]:
        if not qr.time_rules:
            return None
        try:
            now = current_utc_hhmm(self.clock())
            rule = match_time_rule(qr.get_time_rules(), now)
        except Exception as exc:
            logger.warning(f"⚠️ Zeit-Weiterleitung fehlgeschlagen für {qr.short_code}: {exc}")
            return None
        if rule is None:
            return None
        return Resolution(qr=qr, url=normalize_url(rule.url), source="time", matched_rule=rule)
