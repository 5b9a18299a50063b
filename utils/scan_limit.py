from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from utils.redirect_errors import InvalidRuleError
from utils.urls import normalize_url


@dataclass(frozen=True)
class ScanLimitResult:
    exhausted: bool
    url: Optional[str] = None


def check_scan_limit(
    scan_count: Optional[int],
    scan_limit: Optional[int],
    expired_url: Optional[str],
) -> ScanLimitResult:
    """
    Höchste Priorität vor Geo- und Zeitregeln.
    exhausted + url  → sofort auf expired_url
    exhausted + None → Limit erreicht ohne Ersatz-URL (Aufrufer wirft Fehler)
    nicht exhausted  → nächste Stufe
    """
    if not scan_limit:
        return ScanLimitResult(exhausted=False)
    if (scan_count or 0) < scan_limit:
        return ScanLimitResult(exhausted=False)
    return ScanLimitResult(exhausted=True, url=normalize_url(expired_url) or None)


def validate_scan_limit(scan_limit: Any) -> Optional[int]:
    """None = kein Limit; sonst muss es eine positive Ganzzahl sein."""
    if scan_limit is None or scan_limit == "":
        return None
    if isinstance(scan_limit, bool):
        raise InvalidRuleError("scanLimit must be a positive integer")
    try:
        value = int(scan_limit)
    except (TypeError, ValueError) as exc:
        raise InvalidRuleError(f"scanLimit must be a positive integer, got {scan_limit!r}") from exc
    if value != scan_limit and not isinstance(scan_limit, str):
        raise InvalidRuleError("scanLimit must be a whole number")
    if value <= 0:
        raise InvalidRuleError("scanLimit must be a positive integer")
    return value
