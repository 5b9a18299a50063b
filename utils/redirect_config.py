from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

load_dotenv(dotenv_path=Path(__file__).resolve().parent.parent / ".env")


def _flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _optional(name: str) -> Optional[str]:
    raw = os.getenv(name, "").strip()
    return raw or None


def security_check_url() -> Optional[str]:
    """Externer Security-Check-Endpunkt (POST {url}); None = lokale Heuristik."""
    return _optional("SECURITY_CHECK_URL")


def security_check_token() -> Optional[str]:
    return _optional("SECURITY_CHECK_TOKEN")


def security_probe_enabled() -> bool:
    return _flag("SECURITY_PROBE_ENABLED", True)


def security_probe_timeout() -> float:
    return _float("SECURITY_PROBE_TIMEOUT", 5.0)


def geoip_url() -> Optional[str]:
    """
    URL-Vorlage für den IP-Geolookup, z. B. http://ip-api.com/json/{ip}.
    Antwort muss lat/lon (oder latitude/longitude) enthalten.
    """
    return _optional("GEOIP_URL")


def geoip_timeout() -> float:
    return _float("GEOIP_TIMEOUT", 3.0)


def verify_delay_seconds() -> float:
    return _float("REDIRECT_VERIFY_DELAY", 4.0)
