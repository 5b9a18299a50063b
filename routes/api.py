from __future__ import annotations

import os
from typing import Any, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from database import get_db
from models.qrcode import QRCode
from models.user import User
from utils.analytics import summarize_scans
from utils.api_keys import find_user_by_api_key
from utils.entitlements import user_has_capability
from utils.qr_save import (
    create_qr_code,
    replace_geo_rules,
    replace_time_rules,
    set_scan_limit,
    soft_delete,
    update_qr,
)
from utils.redirect_errors import InvalidRuleError

router = APIRouter(prefix="/api/v1", tags=["Public API"])

DYNAMIC_RULES = "dynamic_rules"


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class CreateQRIn(_CamelModel):
    original_url: str = Field(..., alias="originalUrl")
    title: Optional[str] = None
    scan_limit: Optional[int] = Field(default=None, alias="scanLimit")
    expired_url: Optional[str] = Field(default=None, alias="expiredUrl")
    time_rules: list[dict[str, Any]] = Field(default_factory=list, alias="timeRules")
    geo_rules: list[dict[str, Any]] = Field(default_factory=list, alias="geoRules")
    timezone: Optional[str] = None
    branding_enabled: bool = Field(default=False, alias="brandingEnabled")
    branding_style: str = Field(default="minimal", alias="brandingStyle")
    branding_duration: int = Field(default=3, alias="brandingDuration")
    custom_branding_text: Optional[str] = Field(default=None, alias="customBrandingText")
    active: bool = True


class UpdateQRIn(_CamelModel):
    original_url: Optional[str] = Field(default=None, alias="originalUrl")
    title: Optional[str] = None
    active: Optional[bool] = None
    branding_enabled: Optional[bool] = Field(default=None, alias="brandingEnabled")
    branding_style: Optional[str] = Field(default=None, alias="brandingStyle")
    branding_duration: Optional[int] = Field(default=None, alias="brandingDuration")
    custom_branding_text: Optional[str] = Field(default=None, alias="customBrandingText")


class TimeRulesIn(_CamelModel):
    rules: list[dict[str, Any]] = Field(default_factory=list)
    timezone: Optional[str] = None


class GeoRulesIn(_CamelModel):
    rules: list[dict[str, Any]] = Field(default_factory=list)


class ScanLimitIn(_CamelModel):
    scan_limit: Optional[int] = Field(default=None, alias="scanLimit")
    expired_url: Optional[str] = Field(default=None, alias="expiredUrl")


def _redirect_url(request: Request, short_code: str) -> str:
    app_domain = os.getenv("APP_DOMAIN", "").rstrip("/")
    base_url = app_domain or str(request.base_url).rstrip("/")
    return f"{base_url}/r/{short_code}"


def _serialize_qr(qr: QRCode, request: Request) -> dict[str, Any]:
    return {
        "id": qr.id,
        "shortCode": qr.short_code,
        "redirectUrl": _redirect_url(request, qr.short_code),
        "title": qr.title,
        "originalUrl": qr.original_url,
        "active": qr.active,
        "scanCount": qr.scan_count or 0,
        "scanLimit": qr.scan_limit,
        "expiredUrl": qr.expired_url,
        "timeRules": [r.to_dict() for r in qr.get_time_rules()],
        "geoRules": [r.to_dict() for r in qr.get_geo_rules()],
        "branding": {
            "enabled": qr.branding_enabled,
            "style": qr.branding_style,
            "duration": qr.branding_duration,
            "text": qr.custom_branding_text,
        },
        "created_at": qr.created_at.isoformat() if qr.created_at else None,
        "updated_at": qr.updated_at.isoformat() if qr.updated_at else None,
    }


def get_api_user(
    db: Session = Depends(get_db),
    x_api_key: Optional[str] = Header(default=None, alias="X-API-Key"),
) -> User:
    if not x_api_key:
        raise HTTPException(status_code=401, detail="Missing X-API-Key header")
    user = find_user_by_api_key(db, x_api_key)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid API key")
    return user


def _require_dynamic_rules(user: User) -> None:
    if not user_has_capability(user, DYNAMIC_RULES):
        raise HTTPException(status_code=403, detail="Your plan does not include dynamic redirect rules")


def _get_owned_qr(db: Session, short_code: str, user: User) -> QRCode:
    qr = (
        db.query(QRCode)
        .filter(
            QRCode.short_code == short_code,
            QRCode.user_id == user.id,
            QRCode.deleted_at.is_(None),
        )
        .first()
    )
    if not qr:
        raise HTTPException(status_code=404, detail="QR not found")
    return qr


@router.get("/me")
def me(user: User = Depends(get_api_user)):
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "plan_tier": user.plan_tier,
    }


@router.get("/qrs")
def list_qrs(
    request: Request,
    limit: int = 50,
    db: Session = Depends(get_db),
    user: User = Depends(get_api_user),
):
    limit = max(1, min(limit, 200))
    rows = (
        db.query(QRCode)
        .filter(QRCode.user_id == user.id, QRCode.deleted_at.is_(None))
        .order_by(QRCode.created_at.desc(), QRCode.id.desc())
        .limit(limit)
        .all()
    )
    return {"items": [_serialize_qr(r, request) for r in rows], "count": len(rows)}


@router.post("/qrs", status_code=201)
def create_qr(
    payload: CreateQRIn,
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(get_api_user),
):
    if payload.time_rules or payload.geo_rules:
        _require_dynamic_rules(user)

    try:
        qr = create_qr_code(
            db,
            user_id=user.id,
            original_url=payload.original_url,
            title=payload.title,
            scan_limit=payload.scan_limit,
            expired_url=payload.expired_url,
            time_rules=payload.time_rules,
            geo_rules=payload.geo_rules,
            tz_name=payload.timezone,
            branding_enabled=payload.branding_enabled,
            branding_style=payload.branding_style,
            branding_duration=payload.branding_duration,
            custom_branding_text=payload.custom_branding_text,
            active=payload.active,
        )
    except InvalidRuleError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    return _serialize_qr(qr, request)


@router.get("/qrs/{short_code}")
def get_qr(
    short_code: str,
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(get_api_user),
):
    return _serialize_qr(_get_owned_qr(db, short_code, user), request)


@router.patch("/qrs/{short_code}")
def patch_qr(
    short_code: str,
    payload: UpdateQRIn,
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(get_api_user),
):
    qr = _get_owned_qr(db, short_code, user)
    try:
        qr = update_qr(db, qr, payload.model_dump(exclude_unset=True))
    except InvalidRuleError as exc:
        db.rollback()
        raise HTTPException(status_code=422, detail=str(exc))
    return _serialize_qr(qr, request)


@router.delete("/qrs/{short_code}")
def delete_qr(
    short_code: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_api_user),
):
    qr = _get_owned_qr(db, short_code, user)
    soft_delete(db, qr)
    return {"ok": True, "shortCode": short_code}


# -------------------------------------------------------------------------
# ⏰🌍🔢 Regeln
# -------------------------------------------------------------------------
@router.put("/qrs/{short_code}/time-rules")
def put_time_rules(
    short_code: str,
    payload: TimeRulesIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_api_user),
):
    _require_dynamic_rules(user)
    qr = _get_owned_qr(db, short_code, user)
    try:
        rules = replace_time_rules(db, qr, payload.rules, payload.timezone)
    except InvalidRuleError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    return {"shortCode": short_code, "timeRules": [r.to_dict() for r in rules]}


@router.put("/qrs/{short_code}/geo-rules")
def put_geo_rules(
    short_code: str,
    payload: GeoRulesIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_api_user),
):
    _require_dynamic_rules(user)
    qr = _get_owned_qr(db, short_code, user)
    try:
        rules = replace_geo_rules(db, qr, payload.rules)
    except InvalidRuleError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    return {"shortCode": short_code, "geoRules": [r.to_dict() for r in rules]}


@router.put("/qrs/{short_code}/scan-limit")
def put_scan_limit(
    short_code: str,
    payload: ScanLimitIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_api_user),
):
    qr = _get_owned_qr(db, short_code, user)
    try:
        qr = set_scan_limit(db, qr, payload.scan_limit, payload.expired_url)
    except InvalidRuleError as exc:
        db.rollback()
        raise HTTPException(status_code=422, detail=str(exc))
    return {
        "shortCode": short_code,
        "scanLimit": qr.scan_limit,
        "expiredUrl": qr.expired_url,
        "scanCount": qr.scan_count or 0,
    }


@router.get("/qrs/{short_code}/analytics")
def qr_analytics(
    short_code: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_api_user),
):
    qr = _get_owned_qr(db, short_code, user)
    summary = summarize_scans(db, qr.id)
    summary["shortCode"] = short_code
    return summary
