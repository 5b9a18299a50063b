# =============================================================================
# ⏰ utils/time_rules.py
# -----------------------------------------------------------------------------
# Zeitbasierte Weiterleitung.
#
# Regeln werden IMMER in UTC gespeichert (HH:MM, 24h). Die Umrechnung aus der
# lokalen Zeitzone des Erstellers passiert beim Anlegen (local_time_to_utc),
# der Evaluator selbst vergleicht nur UTC-Strings.
#
#   start <= end  → normales Fenster:        start <= now < end
#   start >  end  → Fenster über Mitternacht: now >= start oder now < end
#
# Erste passende Regel gewinnt (Reihenfolge der Liste).
# =============================================================================

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Iterable, Mapping, Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from utils.redirect_errors import InvalidRuleError
from utils.urls import normalize_url

logger = logging.getLogger(__name__)

_HHMM_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def parse_hhmm(value: Any, field: str = "time") -> str:
    raw = str(value or "").strip()
    if not _HHMM_RE.match(raw):
        raise InvalidRuleError(f"{field} must be a 24-hour HH:MM value, got {value!r}")
    return raw


@dataclass(frozen=True)
class TimeRule:
    start_time: str
    end_time: str
    url: str
    label: Optional[str] = None
    id: Optional[str] = None

    @property
    def spans_midnight(self) -> bool:
        return self.start_time > self.end_time

    def matches(self, now_utc_hhmm: str) -> bool:
        if self.spans_midnight:
            return now_utc_hhmm >= self.start_time or now_utc_hhmm < self.end_time
        return self.start_time <= now_utc_hhmm < self.end_time

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TimeRule":
        """Validiert und baut eine Regel aus JSON (camelCase oder snake_case)."""
        start = parse_hhmm(data.get("start_time", data.get("startTime")), "startTime")
        end = parse_hhmm(data.get("end_time", data.get("endTime")), "endTime")
        if start == end:
            raise InvalidRuleError("startTime and endTime must differ")
        url = normalize_url(data.get("url"))
        if not url:
            raise InvalidRuleError("url is required for a time rule")
        rule_id = data.get("id")
        return cls(
            start_time=start,
            end_time=end,
            url=url,
            label=(data.get("label") or None),
            id=str(rule_id) if rule_id is not None else None,
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "startTime": self.start_time,
            "endTime": self.end_time,
            "url": self.url,
        }
        if self.label:
            out["label"] = self.label
        if self.id:
            out["id"] = self.id
        return out


RuleLike = Union[TimeRule, Mapping[str, Any]]


def coerce_time_rules(rules: Optional[Iterable[RuleLike]]) -> list[TimeRule]:
    """Gespeicherte Regeln einlesen; kaputte Einträge werden übersprungen."""
    parsed: list[TimeRule] = []
    for raw in rules or []:
        if isinstance(raw, TimeRule):
            parsed.append(raw)
            continue
        try:
            parsed.append(TimeRule.from_dict(raw))
        except (InvalidRuleError, AttributeError, TypeError) as exc:
            logger.warning(f"⚠️ Ungültige Zeitregel übersprungen: {raw!r} ({exc})")
    return parsed


def current_utc_hhmm(now: Optional[datetime] = None) -> str:
    """Aktuelle UTC-Uhrzeit als HH:MM. Naive Datetimes gelten als UTC."""
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc).strftime("%H:%M")


def match_time_rule(rules: Optional[Iterable[RuleLike]], now_utc_hhmm: str) -> Optional[TimeRule]:
    for rule in coerce_time_rules(rules):
        if rule.matches(now_utc_hhmm):
            return rule
    return None


def evaluate_time_rules(rules: Optional[Iterable[RuleLike]], now_utc_hhmm: str) -> Optional[str]:
    """URL der ersten passenden Regel oder None (Aufrufer fällt auf original_url zurück)."""
    rule = match_time_rule(rules, now_utc_hhmm)
    return rule.url if rule else None


# -----------------------------------------------------------------------------
# 🌍 Zeitzonen-Umrechnung (nur beim Anlegen / Anzeigen)
# -----------------------------------------------------------------------------
def _zone(tz_name: str) -> ZoneInfo:
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise InvalidRuleError(f"Unknown timezone: {tz_name!r}") from exc


def local_time_to_utc(hhmm: str, tz_name: str, on: Optional[date] = None) -> str:
    """
    Rechnet eine lokale Uhrzeit (HH:MM in tz_name) nach UTC um.
    Der Stichtag bestimmt die Sommerzeit-Regel, Standard ist heute (UTC).
    """
    hhmm = parse_hhmm(hhmm)
    day = on or datetime.now(timezone.utc).date()
    hour, minute = (int(part) for part in hhmm.split(":"))
    local = datetime(day.year, day.month, day.day, hour, minute, tzinfo=_zone(tz_name))
    return local.astimezone(timezone.utc).strftime("%H:%M")


def utc_to_local(hhmm: str, tz_name: str, on: Optional[date] = None) -> str:
    hhmm = parse_hhmm(hhmm)
    day = on or datetime.now(timezone.utc).date()
    hour, minute = (int(part) for part in hhmm.split(":"))
    utc = datetime(day.year, day.month, day.day, hour, minute, tzinfo=timezone.utc)
    return utc.astimezone(_zone(tz_name)).strftime("%H:%M")


def normalize_time_rules(
    rules: Iterable[Mapping[str, Any]],
    tz_name: Optional[str] = None,
    on: Optional[date] = None,
) -> list[TimeRule]:
    """
    Validiert eingehende Regeln strikt (Fehler → InvalidRuleError) und
    rechnet sie bei Angabe einer Zeitzone nach UTC um.
    """
    normalized: list[TimeRule] = []
    for raw in rules:
        if not isinstance(raw, Mapping):
            raise InvalidRuleError("time rule must be an object")
        data = dict(raw)
        if tz_name:
            for key_snake, key_camel in (("start_time", "startTime"), ("end_time", "endTime")):
                value = data.pop(key_snake, None) or data.get(key_camel)
                data[key_camel] = local_time_to_utc(str(value or ""), tz_name, on)
        normalized.append(TimeRule.from_dict(data))
    return normalized
