# =============================================================================
# ⚠️ utils/redirect_errors.py
# -----------------------------------------------------------------------------
# Fehlerklassen der Weiterleitungs-Engine.
#   - RedirectError & Unterklassen erreichen den Besucher (Fehlerseite)
#   - GeoLookupError bleibt intern (Stufe liefert einfach keine Antwort)
#   - InvalidRuleError wird beim Anlegen/Bearbeiten von Regeln geworfen
# =============================================================================

from __future__ import annotations


class RedirectError(Exception):
    """Basis für alle Fehler, die dem Besucher angezeigt werden."""

    status_code: int = 500
    default_message: str = "Failed to process QR code"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class QRCodeNotFound(RedirectError):
    status_code = 404
    default_message = "QR code not found or is invalid"


class ScanLimitExhausted(RedirectError):
    status_code = 410
    default_message = "This QR code has reached its scan limit"


class UnresolvableRedirect(RedirectError):
    status_code = 422
    default_message = "No valid redirect URL found"


class GeoLookupError(Exception):
    """Standortbestimmung des Besuchers fehlgeschlagen."""


class InvalidRuleError(ValueError):
    """Ungültige Regel-Konfiguration (Zeit, Geo, Scan-Limit)."""
