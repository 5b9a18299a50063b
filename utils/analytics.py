# =============================================================================
# 📊 utils/analytics.py
# -----------------------------------------------------------------------------
# Scan-Tracking & Auswertung
#   - Geräte-/Browser-Erkennung aus dem User-Agent
#   - Entscheidung, ob ein Aufruf als echter Scan zählt
#   - Scan speichern + scan_count atomar erhöhen (eigene Session)
#   - Zusammenfassung für das Dashboard
# =============================================================================

from __future__ import annotations

import asyncio
import ipaddress
import logging
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from fastapi import Request
from sqlalchemy import desc, func, update
from sqlalchemy.orm import Session

from models.qr_scan import QRScan
from models.qrcode import QRCode
from utils.geolocation import client_ip

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], Session]

# Werkzeuge, mit denen Besitzer ihre Codes ausprobieren (Präfix im User-Agent)
SCRIPTED_CLIENTS = ("curl/", "wget/", "httpie/", "postmanruntime", "insomnia")

FORCE_TRACK_VALUES = {"1", "true", "yes"}


# -----------------------------------------------------------------------------
# 🔍 User-Agent
# -----------------------------------------------------------------------------
def detect_device_type(user_agent: Optional[str]) -> str:
    ua = (user_agent or "").lower()
    if "ipad" in ua or "tablet" in ua:
        return "Tablet"
    if "mobile" in ua or "android" in ua or "iphone" in ua:
        return "Mobile"
    return "Desktop"


def detect_browser(user_agent: Optional[str]) -> str:
    ua = (user_agent or "").lower()
    # Edge und Opera melden sich zusätzlich als Chrome, Chrome als Safari
    if "edg/" in ua or "edge" in ua:
        return "Edge"
    if "opr/" in ua or "opera" in ua:
        return "Opera"
    if "chrome" in ua or "crios" in ua:
        return "Chrome"
    if "firefox" in ua or "fxios" in ua:
        return "Firefox"
    if "safari" in ua:
        return "Safari"
    return "Other"


def _is_loopback(host: Optional[str]) -> bool:
    if not host:
        return False
    if host == "localhost":
        return True
    try:
        return ipaddress.ip_address(host).is_loopback
    except ValueError:
        return False


def scan_skip_reason(request: Request, qr: QRCode) -> Optional[str]:
    """
    Grund, warum ein verifizierter Aufruf nicht als Scan zählt, sonst None.
    `?track=1` erzwingt das Zählen (z. B. für Abnahmetests vom eigenen Rechner).
    """
    if (request.query_params.get("track") or "").lower() in FORCE_TRACK_VALUES:
        return None

    if _is_loopback(request.client.host if request.client else None):
        return "loopback"

    user_agent = (request.headers.get("user-agent") or "").lower()
    if any(user_agent.startswith(marker) or f" {marker}" in user_agent for marker in SCRIPTED_CLIENTS):
        return "scripted-client"

    owner_id = request.scope.get("session", {}).get("user_id")
    if owner_id is not None and str(owner_id) == str(qr.user_id):
        return "owner-preview"
    return None


def should_track_scan(request: Request, qr: QRCode) -> bool:
    return scan_skip_reason(request, qr) is None


# -----------------------------------------------------------------------------
# 💾 Scan speichern
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class ScanInfo:
    user_agent: Optional[str] = None
    referer: Optional[str] = None
    ip_address: Optional[str] = None
    country: Optional[str] = None
    city: Optional[str] = None
    device_type: Optional[str] = None
    browser: Optional[str] = None

    @classmethod
    def from_request(
        cls,
        request: Request,
        country: Optional[str] = None,
        city: Optional[str] = None,
    ) -> "ScanInfo":
        user_agent = request.headers.get("user-agent", "")
        return cls(
            user_agent=user_agent[:255] or None,
            referer=(request.headers.get("referer") or "")[:512] or None,
            ip_address=client_ip(request),
            country=country or request.headers.get("cf-ipcountry"),
            city=city,
            device_type=detect_device_type(user_agent),
            browser=detect_browser(user_agent),
        )


def increment_scan_count(db: Session, qr_id: int) -> None:
    """Atomar in der Datenbank (kein Lesen-Ändern-Schreiben)."""
    db.execute(
        update(QRCode)
        .where(QRCode.id == qr_id)
        .values(scan_count=QRCode.scan_count + 1)
    )


def record_scan(session_factory: SessionFactory, qr_id: int, info: ScanInfo) -> None:
    db = session_factory()
    try:
        db.add(
            QRScan(
                qr_id=qr_id,
                ip_address=info.ip_address,
                user_agent=info.user_agent,
                referer=info.referer,
                country=info.country,
                city=info.city,
                device_type=info.device_type,
                browser=info.browser,
            )
        )
        increment_scan_count(db, qr_id)
        db.commit()
        logger.info(f"📊 Scan gespeichert für QR {qr_id} ({info.device_type}/{info.browser})")
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


async def track_scan_async(session_factory: SessionFactory, qr_id: int, info: ScanInfo) -> None:
    # Sync-Session im Worker-Thread, damit der Event-Loop frei bleibt
    await asyncio.to_thread(record_scan, session_factory, qr_id, info)


# -----------------------------------------------------------------------------
# 📈 Auswertung
# -----------------------------------------------------------------------------
def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _top(db: Session, column: Any, qr_id: int, limit: int = 5) -> list[tuple[str, int]]:
    rows = (
        db.query(column, func.count(QRScan.id))
        .filter(QRScan.qr_id == qr_id, column.isnot(None))
        .group_by(column)
        .order_by(desc(func.count(QRScan.id)))
        .limit(limit)
        .all()
    )
    return [(str(value), int(count)) for value, count in rows]


def summarize_scans(db: Session, qr_id: int, now: Optional[datetime] = None, days: int = 30) -> dict[str, Any]:
    now = _as_utc(now or datetime.now(timezone.utc))
    today = now.date()
    window_start = now - timedelta(days=days)

    total = db.query(func.count(QRScan.id)).filter(QRScan.qr_id == qr_id).scalar() or 0
    recent = [
        _as_utc(ts)
        for (ts,) in db.query(QRScan.scanned_at)
        .filter(QRScan.qr_id == qr_id, QRScan.scanned_at >= window_start)
        .all()
    ]

    week_start = now - timedelta(days=7)
    per_day = Counter(ts.date() for ts in recent)
    daily = [
        {"date": (today - timedelta(days=offset)).isoformat(), "count": per_day.get(today - timedelta(days=offset), 0)}
        for offset in range(days - 1, -1, -1)
    ]

    return {
        "total_scans": int(total),
        "today_scans": per_day.get(today, 0),
        "this_week_scans": sum(1 for ts in recent if ts >= week_start),
        "this_month_scans": len(recent),
        "top_countries": [{"country": c, "count": n} for c, n in _top(db, QRScan.country, qr_id)],
        "top_devices": [{"device": d, "count": n} for d, n in _top(db, QRScan.device_type, qr_id)],
        "daily_scans": daily,
    }
