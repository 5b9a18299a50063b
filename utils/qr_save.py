# utils/qr_save.py
# =============================================================================
# ✅ Einheitliche Speicherlogik für QR-Codes mit Weiterleitungsregeln
# - Validierung beim Anlegen/Bearbeiten (nie erst beim Scan)
# - Zeitregeln werden vor dem Speichern nach UTC umgerechnet
# - Logging
# =============================================================================

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional

from sqlalchemy.orm import Session

from models.qrcode import BRANDING_STYLES, QRCode
from utils.geo_rules import GeoRule
from utils.redirect_errors import InvalidRuleError
from utils.scan_limit import validate_scan_limit
from utils.time_rules import TimeRule, normalize_time_rules
from utils.urls import normalize_url

logger = logging.getLogger("qr_save")
logger.setLevel(logging.INFO)


# =============================================================================
# ✅ Hilfsfunktionen: Validierung
# =============================================================================
def validate_url(value: Any, field: str = "url") -> str:
    url = normalize_url(value)
    if not url:
        raise InvalidRuleError(f"{field} is required")
    if len(url) > 2048:
        raise InvalidRuleError(f"{field} is too long")
    return url


def validate_optional_url(value: Any, field: str) -> Optional[str]:
    if value in (None, ""):
        return None
    return validate_url(value, field)


def validate_geo_rules(rules: Iterable[Mapping[str, Any]]) -> List[GeoRule]:
    parsed: List[GeoRule] = []
    for raw in rules:
        if not isinstance(raw, Mapping):
            raise InvalidRuleError("geo rule must be an object")
        parsed.append(GeoRule.from_dict(raw))
    return parsed


def validate_branding(style: Optional[str], duration: Optional[int]) -> None:
    if style is not None and style not in BRANDING_STYLES:
        raise InvalidRuleError(f"brandingStyle must be one of {', '.join(BRANDING_STYLES)}")
    if duration is not None and (isinstance(duration, bool) or int(duration) < 0 or int(duration) > 30):
        raise InvalidRuleError("brandingDuration must be between 0 and 30 seconds")


# =============================================================================
# ✅ SPEICHERN
# =============================================================================
def create_qr_code(
    db: Session,
    user_id: int,
    original_url: str,
    title: Optional[str] = None,
    short_code: Optional[str] = None,
    scan_limit: Optional[int] = None,
    expired_url: Optional[str] = None,
    time_rules: Optional[Iterable[Mapping[str, Any]]] = None,
    geo_rules: Optional[Iterable[Mapping[str, Any]]] = None,
    tz_name: Optional[str] = None,
    branding_enabled: bool = False,
    branding_style: str = "minimal",
    branding_duration: int = 3,
    custom_branding_text: Optional[str] = None,
    active: bool = True,
) -> QRCode:

    # ✅ Validierung (alles vor dem ersten Schreibzugriff)
    url = validate_url(original_url, "originalUrl")
    limit = validate_scan_limit(scan_limit)
    expired = validate_optional_url(expired_url, "expiredUrl")
    parsed_time = normalize_time_rules(time_rules or [], tz_name)
    parsed_geo = validate_geo_rules(geo_rules or [])
    validate_branding(branding_style, branding_duration)

    logger.info(f"📦 Speichere QR: user={user_id}, url={url}, title={title}")

    qr = QRCode(
        user_id=user_id,
        title=title,
        original_url=url,
        scan_limit=limit,
        expired_url=expired,
        branding_enabled=branding_enabled,
        branding_style=branding_style,
        branding_duration=branding_duration,
        custom_branding_text=custom_branding_text,
        active=active,
    )
    if short_code:
        qr.short_code = short_code
    qr.set_time_rules(parsed_time)
    qr.set_geo_rules(parsed_geo)

    db.add(qr)
    db.commit()
    db.refresh(qr)

    logger.info(f"✅ QR-Code gespeichert (ID {qr.id}, short_code={qr.short_code})")
    return qr


# =============================================================================
# ✅ UPDATE
# =============================================================================
def update_qr(db: Session, qr: QRCode, changes: Dict[str, Any]) -> QRCode:
    """
    Übernimmt nur die übergebenen Felder. short_code bleibt unveränderlich.
    """
    if "original_url" in changes:
        qr.original_url = validate_url(changes["original_url"], "originalUrl")
    if "expired_url" in changes:
        qr.expired_url = validate_optional_url(changes["expired_url"], "expiredUrl")
    if "scan_limit" in changes:
        qr.scan_limit = validate_scan_limit(changes["scan_limit"])
    if "branding_style" in changes or "branding_duration" in changes:
        validate_branding(changes.get("branding_style"), changes.get("branding_duration"))

    for field in ("title", "active", "branding_enabled", "branding_style",
                  "branding_duration", "custom_branding_text"):
        if field in changes and changes[field] is not None:
            setattr(qr, field, changes[field])

    db.commit()
    db.refresh(qr)

    logger.info(f"✏️ QR-Code aktualisiert (ID {qr.id}): {', '.join(sorted(changes))}")
    return qr


def replace_time_rules(
    db: Session,
    qr: QRCode,
    rules: Iterable[Mapping[str, Any]],
    tz_name: Optional[str] = None,
) -> List[TimeRule]:
    parsed = normalize_time_rules(rules, tz_name)
    qr.set_time_rules(parsed)
    db.commit()
    db.refresh(qr)
    logger.info(f"⏰ {len(parsed)} Zeitregel(n) gespeichert für {qr.short_code} (tz={tz_name or 'UTC'})")
    return parsed


def replace_geo_rules(db: Session, qr: QRCode, rules: Iterable[Mapping[str, Any]]) -> List[GeoRule]:
    parsed = validate_geo_rules(rules)
    qr.set_geo_rules(parsed)
    db.commit()
    db.refresh(qr)
    logger.info(f"🌍 {len(parsed)} Geo-Regel(n) gespeichert für {qr.short_code}")
    return parsed


def set_scan_limit(
    db: Session,
    qr: QRCode,
    scan_limit: Optional[int],
    expired_url: Optional[str] = None,
) -> QRCode:
    qr.scan_limit = validate_scan_limit(scan_limit)
    qr.expired_url = validate_optional_url(expired_url, "expiredUrl")
    db.commit()
    db.refresh(qr)
    logger.info(f"🔢 Scan-Limit für {qr.short_code}: {qr.scan_limit} (expired_url={qr.expired_url})")
    return qr


# =============================================================================
# 🗑️ Löschen (weich)
# =============================================================================
def soft_delete(db: Session, qr: QRCode) -> QRCode:
    qr.deleted_at = datetime.now(timezone.utc)
    qr.active = False
    db.commit()
    logger.info(f"🗑️ QR-Code gelöscht (ID {qr.id}, short_code={qr.short_code})")
    return qr
