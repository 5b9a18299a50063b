# =============================================================================
# 🔎 Einzel-Lookups für Zeit- und Geo-Regeln
# -----------------------------------------------------------------------------
#   POST /api/redirect/time  {shortCode}                       → {redirectUrl, matchedRule, fallbackReason}
#   POST /api/redirect/geo   {shortCode, latitude?, longitude?} → {redirectUrl, matchedRule, fallbackReason}
#
# Beide liefern immer eine URL: Treffer oder original_url (dann mit fallbackReason).
# Das Scan-Limit spielt hier keine Rolle (nur im vollständigen Ablauf).
# =============================================================================

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from database import get_db
from models.qrcode import QRCode
from utils.geo_rules import match_geo_rule
from utils.geolocation import VisitorLocation, locate_visitor, location_from_values
from utils.redirect_errors import GeoLookupError
from utils.redirect_resolver import get_qr_by_short_code
from utils.time_rules import current_utc_hhmm, match_time_rule
from utils.urls import normalize_url

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/redirect", tags=["Redirect-Lookup"])


class TimeLookupIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    short_code: str = Field(..., alias="shortCode", min_length=1)


class GeoLookupIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    short_code: str = Field(..., alias="shortCode", min_length=1)
    latitude: Optional[float] = None
    longitude: Optional[float] = None


def _load(db: Session, short_code: str) -> QRCode:
    qr = get_qr_by_short_code(db, short_code)
    if not qr:
        raise HTTPException(status_code=404, detail="QR code not found or is invalid")
    return qr


def _time_aware_url(qr: QRCode) -> str:
    rule = match_time_rule(qr.get_time_rules(), current_utc_hhmm())
    return normalize_url(rule.url if rule else qr.original_url)


@router.post("/time")
def time_redirect(payload: TimeLookupIn, db: Session = Depends(get_db)) -> Dict[str, Any]:
    qr = _load(db, payload.short_code)
    rules = qr.get_time_rules()
    if not rules:
        return {"redirectUrl": normalize_url(qr.original_url), "matchedRule": None, "fallbackReason": "No time rules configured"}

    rule = match_time_rule(rules, current_utc_hhmm())
    if rule is None:
        return {"redirectUrl": normalize_url(qr.original_url), "matchedRule": None, "fallbackReason": "No time rules matched"}

    return {"redirectUrl": normalize_url(rule.url), "matchedRule": rule.to_dict(), "fallbackReason": None}


@router.post("/geo")
async def geo_redirect(
    payload: GeoLookupIn,
    request: Request,
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    qr = _load(db, payload.short_code)

    rules = qr.get_geo_rules()
    if not rules:
        return {"redirectUrl": _time_aware_url(qr), "matchedRule": None, "fallbackReason": "No geo rules configured"}

    visitor: Optional[VisitorLocation] = location_from_values(
        payload.latitude, payload.longitude, source="browser"
    )
    if visitor is None:
        try:
            visitor = await locate_visitor(request)
        except GeoLookupError as exc:
            logger.warning(f"⚠️ Standortbestimmung fehlgeschlagen für {qr.short_code}: {exc}")
            return {
                "redirectUrl": _time_aware_url(qr),
                "matchedRule": None,
                "fallbackReason": "Failed to get user location",
            }

    if visitor is None:
        return {
            "redirectUrl": _time_aware_url(qr),
            "matchedRule": None,
            "fallbackReason": "Visitor location unavailable",
        }

    rule = match_geo_rule(rules, visitor.lat, visitor.lon)
    if rule is None:
        return {"redirectUrl": _time_aware_url(qr), "matchedRule": None, "fallbackReason": "No geo rules matched"}

    return {"redirectUrl": normalize_url(rule.url), "matchedRule": rule.to_dict(), "fallbackReason": None}
