# =============================================================================
# 🌍 utils/geo_rules.py
# -----------------------------------------------------------------------------
# Geofencing: Kreis (Mittelpunkt + Radius) → Ziel-URL.
# Entfernung per Haversine (mittlerer Erdradius 6371 km).
# Bei mehreren Treffern gewinnt der KLEINSTE Radius (spezifischster Ort),
# nicht die Reihenfolge der Liste.
# =============================================================================

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional, Union

from utils.redirect_errors import InvalidRuleError
from utils.urls import normalize_url

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Großkreis-Entfernung in km. Identische Punkte ergeben exakt 0."""
    if lat1 == lat2 and lon1 == lon2:
        return 0.0
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def _as_float(value: Any, field: str) -> float:
    if isinstance(value, bool):
        raise InvalidRuleError(f"{field} must be a number")
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise InvalidRuleError(f"{field} must be a number, got {value!r}") from exc
    if math.isnan(number) or math.isinf(number):
        raise InvalidRuleError(f"{field} must be a finite number")
    return number


def validate_coordinates(lat: Any, lon: Any) -> tuple[float, float]:
    lat_f = _as_float(lat, "lat")
    lon_f = _as_float(lon, "lon")
    if not -90.0 <= lat_f <= 90.0:
        raise InvalidRuleError(f"lat must be within [-90, 90], got {lat_f}")
    if not -180.0 <= lon_f <= 180.0:
        raise InvalidRuleError(f"lon must be within [-180, 180], got {lon_f}")
    return lat_f, lon_f


@dataclass(frozen=True)
class GeoRule:
    lat: float
    lon: float
    radius_km: float
    url: str
    label: Optional[str] = None
    id: Optional[str] = None

    def distance_km(self, lat: float, lon: float) -> float:
        return haversine_km(lat, lon, self.lat, self.lon)

    def contains(self, lat: float, lon: float) -> bool:
        return self.distance_km(lat, lon) <= self.radius_km

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "GeoRule":
        lat, lon = validate_coordinates(data.get("lat"), data.get("lon"))
        radius_raw = data.get("radius_km", data.get("radiusKm"))
        radius = _as_float(radius_raw, "radiusKm")
        if radius <= 0:
            raise InvalidRuleError("radiusKm must be greater than 0")
        url = normalize_url(data.get("url"))
        if not url:
            raise InvalidRuleError("url is required for a geo rule")
        label = data.get("label") or f"Within {radius:g}km of {lat:.4f}, {lon:.4f}"
        rule_id = data.get("id")
        return cls(
            lat=lat,
            lon=lon,
            radius_km=radius,
            url=url,
            label=label,
            id=str(rule_id) if rule_id is not None else None,
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "lat": self.lat,
            "lon": self.lon,
            "radiusKm": self.radius_km,
            "url": self.url,
        }
        if self.label:
            out["label"] = self.label
        if self.id:
            out["id"] = self.id
        return out


RuleLike = Union[GeoRule, Mapping[str, Any]]


def coerce_geo_rules(rules: Optional[Iterable[RuleLike]]) -> list[GeoRule]:
    parsed: list[GeoRule] = []
    for raw in rules or []:
        if isinstance(raw, GeoRule):
            parsed.append(raw)
            continue
        try:
            parsed.append(GeoRule.from_dict(raw))
        except (InvalidRuleError, AttributeError, TypeError) as exc:
            logger.warning(f"⚠️ Ungültige Geo-Regel übersprungen: {raw!r} ({exc})")
    return parsed


def match_geo_rule(
    rules: Optional[Iterable[RuleLike]],
    visitor_lat: Optional[float],
    visitor_lon: Optional[float],
) -> Optional[GeoRule]:
    """Kleinster passender Kreis oder None (auch wenn keine Koordinaten vorliegen)."""
    if visitor_lat is None or visitor_lon is None:
        return None
    best: Optional[GeoRule] = None
    for rule in coerce_geo_rules(rules):
        if not rule.contains(visitor_lat, visitor_lon):
            continue
        if best is None or rule.radius_km < best.radius_km:
            best = rule
    return best


def evaluate_geo_rules(
    rules: Optional[Iterable[RuleLike]],
    visitor_lat: Optional[float],
    visitor_lon: Optional[float],
) -> Optional[str]:
    rule = match_geo_rule(rules, visitor_lat, visitor_lon)
    return rule.url if rule else None
