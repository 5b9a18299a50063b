# =============================================================================
# 🔄 Weiterleitungs-Routen (Blast QR)
# -----------------------------------------------------------------------------
#   GET /r/{short_code}             → Bestätigungsseite (HTML)
#   GET /api/redirect/{short_code}  → gleicher Ablauf als JSON
#
# Optionale Query-Parameter lat/lon liefern Browser-Koordinaten.
# Blockierte Ziele werden angezeigt, aber nie automatisch geöffnet.
# =============================================================================

from __future__ import annotations

import logging
from functools import partial
from pathlib import Path
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates
from sqlalchemy.orm import Session

from database import get_db, get_session_factory
from models.qrcode import QRCode
from utils.analytics import ScanInfo, SessionFactory, scan_skip_reason, track_scan_async
from utils.geolocation import locate_visitor
from utils.redirect_flow import OnVerified, RedirectFlow, RedirectOutcome, RedirectState
from utils.redirect_resolver import RedirectResolver
from utils.url_security import SecurityClient

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Redirect"])

templates = Jinja2Templates(directory=str(Path(__file__).resolve().parent.parent / "templates"))


# -------------------------------------------------------------------------
# 🔌 Abhängigkeiten (in Tests überschreibbar)
# -------------------------------------------------------------------------
def get_resolver() -> RedirectResolver:
    return RedirectResolver()


def get_security_client() -> SecurityClient:
    return SecurityClient()


def _scan_tracker(request: Request, session_factory: SessionFactory) -> OnVerified:
    async def on_verified(qr: QRCode) -> None:
        skip = scan_skip_reason(request, qr)
        if skip:
            logger.debug(f"🙈 Scan nicht gezählt für {qr.short_code} ({skip})")
            return
        await track_scan_async(session_factory, qr.id, ScanInfo.from_request(request))

    return on_verified


async def run_redirect(
    request: Request,
    short_code: str,
    db: Session,
    session_factory: SessionFactory,
    resolver: RedirectResolver,
    security: SecurityClient,
) -> RedirectOutcome:
    flow = RedirectFlow(
        resolver=resolver,
        security=security,
        on_verified=_scan_tracker(request, session_factory),
    )
    return await flow.run(db, short_code, locate_visitor=partial(locate_visitor, request))


# -------------------------------------------------------------------------
# 🌐 HTML
# -------------------------------------------------------------------------
@router.get("/r/{short_code}", response_class=HTMLResponse)
async def redirect_page(
    short_code: str,
    request: Request,
    db: Session = Depends(get_db),
    session_factory: SessionFactory = Depends(get_session_factory),
    resolver: RedirectResolver = Depends(get_resolver),
    security: SecurityClient = Depends(get_security_client),
):
    outcome = await run_redirect(request, short_code, db, session_factory, resolver, security)

    if outcome.state == RedirectState.ERROR:
        error = outcome.error
        return templates.TemplateResponse(
            request,
            "redirect_error.html",
            {"short_code": short_code, "message": error.message, "status_code": error.status_code},
            status_code=error.status_code,
        )

    context: Dict[str, Any] = {
        "outcome": outcome,
        "security": outcome.security,
        "advice": outcome.advice,
        "branding": outcome.branding,
        "auto_redirect": outcome.state == RedirectState.VERIFIED,
        "delay_seconds": int(round(outcome.delay_seconds)),
    }
    return templates.TemplateResponse(request, "redirect.html", context)


# -------------------------------------------------------------------------
# 🧾 JSON
# -------------------------------------------------------------------------
@router.get("/api/redirect/{short_code}")
async def redirect_json(
    short_code: str,
    request: Request,
    db: Session = Depends(get_db),
    session_factory: SessionFactory = Depends(get_session_factory),
    resolver: RedirectResolver = Depends(get_resolver),
    security: SecurityClient = Depends(get_security_client),
):
    outcome = await run_redirect(request, short_code, db, session_factory, resolver, security)
    if outcome.state == RedirectState.ERROR:
        raise HTTPException(status_code=outcome.error.status_code, detail=outcome.error.message)
    return outcome.to_dict()
