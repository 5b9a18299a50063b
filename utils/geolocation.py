# =============================================================================
# 📍 utils/geolocation.py
# -----------------------------------------------------------------------------
# Standort des Besuchers für die Geo-Regeln bestimmen.
# Reihenfolge:
#   1. Koordinaten aus dem Browser (?lat=&lon=)
#   2. Header X-Visitor-Lat / X-Visitor-Lon (z. B. vom Edge-Proxy gesetzt)
#   3. IP-Geolookup über GEOIP_URL (httpx, kurzer Timeout, kein Retry)
# Fehler beim Lookup → GeoLookupError; der Resolver fällt dann auf die
# Zeitregeln zurück.
# =============================================================================

from __future__ import annotations

import asyncio
import ipaddress
import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

import httpx
from fastapi import Request

from utils.geo_rules import validate_coordinates
from utils.redirect_config import geoip_timeout, geoip_url
from utils.redirect_errors import GeoLookupError, InvalidRuleError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VisitorLocation:
    lat: float
    lon: float
    country: Optional[str] = None
    city: Optional[str] = None
    source: str = "explicit"


def location_from_values(
    lat: Any,
    lon: Any,
    source: str = "explicit",
    country: Optional[str] = None,
    city: Optional[str] = None,
) -> Optional[VisitorLocation]:
    """Ungültige oder fehlende Werte ergeben None statt eines Fehlers."""
    if lat in (None, "") or lon in (None, ""):
        return None
    try:
        lat_f, lon_f = validate_coordinates(lat, lon)
    except InvalidRuleError:
        logger.warning(f"⚠️ Ungültige Besucher-Koordinaten ignoriert: {lat!r}, {lon!r}")
        return None
    return VisitorLocation(lat=lat_f, lon=lon_f, country=country, city=city, source=source)


def client_ip(request: Request) -> Optional[str]:
    for header in ("cf-connecting-ip", "x-forwarded-for", "x-real-ip"):
        raw = request.headers.get(header)
        if raw:
            return raw.split(",", 1)[0].strip()
    return request.client.host if request.client else None


def _is_public_ip(ip: str) -> bool:
    try:
        addr = ipaddress.ip_address(ip)
    except ValueError:
        return False
    return not (addr.is_private or addr.is_loopback or addr.is_reserved or addr.is_link_local)


def _parse_geoip_payload(payload: Mapping[str, Any]) -> VisitorLocation:
    if str(payload.get("status", "success")).lower() == "fail":
        raise GeoLookupError(f"GeoIP lookup failed: {payload.get('message', 'unknown')}")
    lat = payload.get("lat", payload.get("latitude"))
    lon = payload.get("lon", payload.get("longitude"))
    location = location_from_values(
        lat,
        lon,
        source="geoip",
        country=payload.get("countryCode") or payload.get("country_code") or payload.get("country"),
        city=payload.get("city"),
    )
    if location is None:
        raise GeoLookupError("GeoIP response without usable coordinates")
    return location


async def lookup_ip(
    ip: str,
    client: Optional[httpx.AsyncClient] = None,
    url_template: Optional[str] = None,
    timeout: Optional[float] = None,
) -> VisitorLocation:
    template = url_template or geoip_url()
    if not template:
        raise GeoLookupError("GEOIP_URL is not configured")
    url = template.format(ip=ip)
    timeout = timeout if timeout is not None else geoip_timeout()

    try:
        if client is None:
            async with httpx.AsyncClient(timeout=timeout) as own_client:
                response = await asyncio.wait_for(own_client.get(url), timeout)
        else:
            response = await asyncio.wait_for(client.get(url, timeout=timeout), timeout)
        response.raise_for_status()
        payload = response.json()
    except asyncio.TimeoutError as exc:
        raise GeoLookupError(f"GeoIP lookup for {ip} timed out after {timeout}s") from exc
    except (httpx.HTTPError, ValueError) as exc:
        raise GeoLookupError(f"GeoIP lookup for {ip} failed: {exc}") from exc

    if not isinstance(payload, Mapping):
        raise GeoLookupError("GeoIP response is not an object")
    return _parse_geoip_payload(payload)


async def locate_visitor(
    request: Request,
    client: Optional[httpx.AsyncClient] = None,
) -> Optional[VisitorLocation]:
    """
    Liefert den Standort oder None, wenn keine Quelle etwas hergibt.
    Wirft GeoLookupError nur, wenn der konfigurierte Lookup selbst scheitert.
    """
    explicit = location_from_values(
        request.query_params.get("lat"),
        request.query_params.get("lon"),
        source="browser",
    )
    if explicit:
        return explicit

    from_headers = location_from_values(
        request.headers.get("x-visitor-lat"),
        request.headers.get("x-visitor-lon"),
        source="header",
        country=request.headers.get("cf-ipcountry"),
    )
    if from_headers:
        return from_headers

    if not geoip_url():
        return None

    ip = client_ip(request)
    if not ip or not _is_public_ip(ip):
        logger.info(f"ℹ️ Kein öffentlicher Client-IP für Geolookup ({ip})")
        return None
    return await lookup_ip(ip, client=client)
