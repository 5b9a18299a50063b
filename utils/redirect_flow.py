# =============================================================================
# 🚦 utils/redirect_flow.py
# -----------------------------------------------------------------------------
# Ablauf pro Scan (ohne Darstellung):
#
#   Resolving → [BrandingDisplay] → Classifying → Blocked | Verified → Redirected
#        └──────────────→ Error
#
# - Blocked: keine automatische Navigation
# - Verified: Navigation nach kurzer Bestätigungs-Verzögerung (+ Branding-Dauer)
# - Analytics beim Erreichen von Verified als losgelöster Task (nur Log bei Fehlern)
# - cancel() verhindert eine noch ausstehende Navigation
# =============================================================================

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from sqlalchemy.orm import Session

from models.qrcode import QRCode
from utils.geolocation import VisitorLocation
from utils.redirect_config import verify_delay_seconds
from utils.redirect_errors import RedirectError
from utils.redirect_resolver import LocateVisitor, RedirectResolver
from utils.tasks import fire_and_forget
from utils.url_security import SecurityCheckResult, SecurityClient, security_advice

logger = logging.getLogger(__name__)

OnVerified = Callable[[QRCode], Awaitable[None]]


class RedirectState(str, Enum):
    BRANDING_DISPLAY = "branding_display"
    RESOLVING = "resolving"
    CLASSIFYING = "classifying"
    BLOCKED = "blocked"
    VERIFIED = "verified"
    REDIRECTED = "redirected"
    ERROR = "error"


@dataclass
class RedirectOutcome:
    state: RedirectState
    short_code: str
    url: Optional[str] = None
    source: Optional[str] = None
    security: Optional[SecurityCheckResult] = None
    error: Optional[RedirectError] = None
    qr: Optional[QRCode] = None
    branding: Optional[dict[str, Any]] = None
    delay_seconds: float = 0.0
    history: list[RedirectState] = field(default_factory=list)

    @property
    def advice(self) -> list[str]:
        return security_advice(self.security) if self.security else []

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "shortCode": self.short_code,
            "url": self.url,
            "source": self.source,
            "security": self.security.to_dict() if self.security else None,
            "advice": self.advice,
            "error": self.error.message if self.error else None,
            "branding": self.branding,
            "delaySeconds": self.delay_seconds,
        }


def branding_for(qr: QRCode) -> Optional[dict[str, Any]]:
    if not qr.branding_enabled:
        return None
    return {
        "style": qr.branding_style or "minimal",
        "duration": max(0, int(qr.branding_duration or 0)),
        "text": qr.custom_branding_text,
    }


class RedirectFlow:
    def __init__(
        self,
        resolver: Optional[RedirectResolver] = None,
        security: Optional[SecurityClient] = None,
        on_verified: Optional[OnVerified] = None,
        verify_delay: Optional[float] = None,
    ) -> None:
        self.resolver = resolver or RedirectResolver()
        self.security = security or SecurityClient()
        self.on_verified = on_verified
        self.verify_delay = verify_delay if verify_delay is not None else verify_delay_seconds()
        self.state = RedirectState.RESOLVING
        self.history: list[RedirectState] = []
        self.outcome: Optional[RedirectOutcome] = None
        self.analytics_task: Optional[asyncio.Task] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._cancelled = False

    def _transition(self, state: RedirectState) -> None:
        self.state = state
        self.history.append(state)
        logger.debug(f"🚦 Redirect-Status: {state.value}")

    def _finish(self, outcome: RedirectOutcome) -> RedirectOutcome:
        outcome.history = list(self.history)
        self.outcome = outcome
        return outcome

    async def run(
        self,
        db: Session,
        short_code: str,
        visitor: Optional[VisitorLocation] = None,
        locate_visitor: Optional[LocateVisitor] = None,
    ) -> RedirectOutcome:
        self._transition(RedirectState.RESOLVING)
        try:
            resolution = await self.resolver.resolve(
                db, short_code, visitor=visitor, locate_visitor=locate_visitor
            )
        except RedirectError as exc:
            self._transition(RedirectState.ERROR)
            return self._finish(RedirectOutcome(state=self.state, short_code=short_code, error=exc))
        except Exception:
            logger.exception(f"❌ Weiterleitung fehlgeschlagen für {short_code}")
            self._transition(RedirectState.ERROR)
            return self._finish(
                RedirectOutcome(state=self.state, short_code=short_code, error=RedirectError())
            )

        qr = resolution.qr
        branding = branding_for(qr)
        if branding:
            self._transition(RedirectState.BRANDING_DISPLAY)

        self._transition(RedirectState.CLASSIFYING)
        security = await self.security.check(resolution.url)

        outcome = RedirectOutcome(
            state=self.state,
            short_code=short_code,
            url=resolution.url,
            source=resolution.source,
            security=security,
            qr=qr,
            branding=branding,
        )

        if not security.is_safe:
            logger.warning(f"🚨 Unsichere Ziel-URL blockiert: {resolution.url} ({security.threats})")
            self._transition(RedirectState.BLOCKED)
            outcome.state = self.state
            return self._finish(outcome)

        self._transition(RedirectState.VERIFIED)
        outcome.state = self.state
        outcome.delay_seconds = self.verify_delay + (branding["duration"] if branding else 0)

        if self.on_verified is not None:
            self.analytics_task = fire_and_forget(self.on_verified(qr), name=f"scan-{qr.id}")

        return self._finish(outcome)

    # -------------------------------------------------------------------------
    # ⏱️ Navigation
    # -------------------------------------------------------------------------
    def schedule_navigation(
        self,
        navigate: Callable[[str], Any],
        delay: Optional[float] = None,
    ) -> asyncio.TimerHandle:
        if self.state != RedirectState.VERIFIED or not self.outcome or not self.outcome.url:
            raise RuntimeError(f"Navigation is only possible after verification (state={self.state.value})")
        if self._timer is not None:
            self._timer.cancel()
        delay = self.outcome.delay_seconds if delay is None else delay
        url = self.outcome.url
        self._timer = asyncio.get_running_loop().call_later(delay, self._navigate, navigate, url)
        return self._timer

    def _navigate(self, navigate: Callable[[str], Any], url: str) -> None:
        self._timer = None
        if self._cancelled:
            return
        self._transition(RedirectState.REDIRECTED)
        if self.outcome:
            self.outcome.state = self.state
            self.outcome.history = list(self.history)
        navigate(url)

    def cancel(self) -> None:
        """Abbau der Sitzung: ausstehende Navigation wird nie ausgeführt."""
        self._cancelled = True
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    @property
    def navigation_pending(self) -> bool:
        return self._timer is not None
