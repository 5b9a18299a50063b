# =============================================================================
# 🛡️ utils/url_security.py
# -----------------------------------------------------------------------------
# Heuristische Sicherheitsprüfung der Ziel-URL vor der Weiterleitung.
#
#   Start: Score 85, sicher
#   IP-Adresse als Host          → Threat, -40, reputation=bad
#   Schadwort im Host            → Threat, Score 0, reputation=bad
#   Link-Kürzer                  → Warnung, -5, reputation=suspicious
#   kein HTTPS                   → Warnung, -10
#   HEAD-Probe (optional, 5 s)   → Warnung, -5 (nie allein unsicher)
#   Allow-List (ohne Threats)    → Score 95, Warnungen gelöscht
#   Ende: is_safe = score >= 70 und keine Threats
#
# Fällt die Prüf-Infrastruktur aus, gibt es ein neutrales Ergebnis mit
# Hinweis – ein Ausfall darf nie alle Weiterleitungen blockieren.
# =============================================================================

from __future__ import annotations

import asyncio
import ipaddress
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional
from urllib.parse import urlsplit

import httpx

from utils.redirect_config import (
    security_check_token,
    security_check_url,
    security_probe_enabled,
    security_probe_timeout,
)
from utils.urls import normalize_url

logger = logging.getLogger(__name__)

BASELINE_SCORE = 85
ALLOWLIST_SCORE = 95
SAFE_THRESHOLD = 70

SAFE_DOMAINS = (
    "google.com", "github.com", "microsoft.com", "apple.com",
    "amazon.com", "facebook.com", "twitter.com", "linkedin.com",
    "youtube.com", "instagram.com", "wikipedia.org", "stackoverflow.com",
)

URL_SHORTENERS = (
    "bit.ly", "t.co", "tinyurl.com", "goo.gl", "cutt.ly",
    "is.gd", "v.gd", "ow.ly", "shorturl.at",
)

MALICIOUS_KEYWORDS = ("phishing", "malware", "virus")

DEGRADED_WARNING = "Advanced security features temporarily unavailable"

_HOST_RE = re.compile(r"^[a-z0-9_-]+(\.[a-z0-9_-]+)*\.?$")


@dataclass
class SecurityDetails:
    url_valid: bool = False
    reachable: bool = False
    has_ssl: bool = False
    safe_browsing: bool = True
    domain_reputation: str = "good"  # good | suspicious | bad

    def to_dict(self) -> dict[str, Any]:
        return {
            "urlValid": self.url_valid,
            "reachable": self.reachable,
            "hasSSL": self.has_ssl,
            "safeBrowsing": self.safe_browsing,
            "domainReputation": self.domain_reputation,
        }


@dataclass
class SecurityCheckResult:
    is_safe: bool = True
    score: int = BASELINE_SCORE
    threats: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    details: SecurityDetails = field(default_factory=SecurityDetails)

    def finalize(self) -> "SecurityCheckResult":
        self.score = max(0, min(100, int(self.score)))
        self.is_safe = self.score >= SAFE_THRESHOLD and not self.threats
        return self

    def to_dict(self) -> dict[str, Any]:
        return {
            "isSafe": self.is_safe,
            "score": self.score,
            "threats": list(self.threats),
            "warnings": list(self.warnings),
            "details": self.details.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SecurityCheckResult":
        raw_details = data.get("details") or {}
        reputation = str(raw_details.get("domainReputation", "good"))
        if reputation not in {"good", "suspicious", "bad"}:
            reputation = "suspicious"
        details = SecurityDetails(
            url_valid=bool(raw_details.get("urlValid", False)),
            reachable=bool(raw_details.get("reachable", False)),
            has_ssl=bool(raw_details.get("hasSSL", False)),
            safe_browsing=bool(raw_details.get("safeBrowsing", True)),
            domain_reputation=reputation,
        )
        result = cls(
            is_safe=bool(data["isSafe"]),
            score=int(data["score"]),
            threats=[str(t) for t in data.get("threats") or []],
            warnings=[str(w) for w in data.get("warnings") or []],
            details=details,
        )
        # Ergebnis der Gegenstelle wird nach unserer Formel neu bewertet
        return result.finalize()


class InvalidURL(ValueError):
    pass


def domain_matches(host: str, domain: str) -> bool:
    return host == domain or host.endswith("." + domain)


def parse_target(url: str) -> tuple[str, str]:
    """(normalisierte URL, Hostname) – InvalidURL, wenn nicht parsebar."""
    normalized = normalize_url(url)
    if not normalized:
        raise InvalidURL("empty url")
    try:
        parts = urlsplit(normalized)
        host = (parts.hostname or "").lower()
        _ = parts.port  # wirft ValueError bei ungültigem Port
    except ValueError as exc:
        raise InvalidURL(str(exc)) from exc
    if not host:
        raise InvalidURL("missing host")
    if _is_ip_literal(host):
        return normalized, host
    try:
        ascii_host = host.encode("idna").decode("ascii")
    except UnicodeError as exc:
        raise InvalidURL(f"invalid host {host!r}") from exc
    if not _HOST_RE.match(ascii_host):
        raise InvalidURL(f"invalid host {host!r}")
    return normalized, ascii_host


def _is_ip_literal(host: str) -> bool:
    try:
        ipaddress.ip_address(host)
    except ValueError:
        return False
    return True


def _invalid_result() -> SecurityCheckResult:
    result = SecurityCheckResult(is_safe=False, score=0)
    result.threats.append("Invalid URL format")
    result.details.domain_reputation = "bad"
    return result


def _classify(normalized: str, host: str) -> SecurityCheckResult:
    result = SecurityCheckResult()
    result.details.url_valid = True
    result.details.has_ssl = normalized.lower().startswith("https://")

    if _is_ip_literal(host):
        result.threats.append("IP address used instead of domain name - high risk")
        result.score -= 40
        result.is_safe = False
        result.details.domain_reputation = "bad"

    if any(keyword in host for keyword in MALICIOUS_KEYWORDS):
        result.threats.append("Suspicious domain name detected")
        result.score = 0
        result.is_safe = False
        result.details.safe_browsing = False
        result.details.domain_reputation = "bad"

    if any(domain_matches(host, d) for d in URL_SHORTENERS):
        result.warnings.append("Shortened URL detected - verify destination")
        result.score -= 5
        if result.details.domain_reputation == "good":
            result.details.domain_reputation = "suspicious"

    if not result.details.has_ssl:
        result.warnings.append("Website does not use secure HTTPS connection")
        result.score -= 10

    return result


def _apply_allow_list(result: SecurityCheckResult, host: str) -> None:
    # überschreibt nur warnungsbedingte Abzüge, nie Threats
    if result.threats:
        return
    if any(domain_matches(host, d) for d in SAFE_DOMAINS):
        result.score = ALLOWLIST_SCORE
        result.warnings = []
        result.details.domain_reputation = "good"


def check_url_heuristics(url: str) -> SecurityCheckResult:
    """Deterministische Prüfung ohne Netzwerk."""
    try:
        normalized, host = parse_target(url)
    except InvalidURL:
        return _invalid_result()
    result = _classify(normalized, host)
    _apply_allow_list(result, host)
    return result.finalize()


async def probe_reachability(
    url: str,
    client: Optional[httpx.AsyncClient] = None,
    timeout: Optional[float] = None,
) -> tuple[bool, Optional[str]]:
    """HEAD-Request mit hartem Timeout. Gibt (erreichbar, Warnung) zurück."""
    timeout = timeout if timeout is not None else security_probe_timeout()
    # httpx begrenzt nur einzelne Phasen pro Hop; wait_for begrenzt die ganze Probe
    try:
        if client is None:
            async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as own_client:
                response = await asyncio.wait_for(own_client.head(url), timeout)
        else:
            response = await asyncio.wait_for(
                client.head(url, timeout=timeout, follow_redirects=True), timeout
            )
    except asyncio.TimeoutError:
        logger.info(f"ℹ️ Erreichbarkeitsprüfung nach {timeout}s abgebrochen für {url}")
        return False, "Unable to verify website availability"
    except httpx.HTTPError as exc:
        logger.info(f"ℹ️ Erreichbarkeitsprüfung fehlgeschlagen für {url}: {exc}")
        return False, "Unable to verify website availability"
    if response.is_success:
        return True, None
    return False, f"Website returned {response.status_code} status"


async def check_url(
    url: str,
    probe: bool = True,
    client: Optional[httpx.AsyncClient] = None,
    timeout: Optional[float] = None,
) -> SecurityCheckResult:
    try:
        normalized, host = parse_target(url)
    except InvalidURL:
        return _invalid_result()

    result = _classify(normalized, host)

    if probe:
        reachable, warning = await probe_reachability(normalized, client=client, timeout=timeout)
        result.details.reachable = reachable
        if warning:
            result.warnings.append(warning)
            result.score -= 5

    _apply_allow_list(result, host)
    return result.finalize()


def degraded_result(url: str) -> SecurityCheckResult:
    """Neutrales Ergebnis, wenn die eigentliche Prüfung nicht verfügbar ist."""
    try:
        result = check_url_heuristics(url)
    except Exception:
        logger.exception(f"❌ Lokale Heuristik fehlgeschlagen für {url}")
        result = SecurityCheckResult()
        result.details.url_valid = True
    result.warnings.append(DEGRADED_WARNING)
    return result


def security_advice(result: SecurityCheckResult) -> list[str]:
    if not result.is_safe:
        return [
            "🚨 DO NOT visit this website - security threats detected",
            "📞 Consider reporting this malicious link",
        ]
    if result.score < SAFE_THRESHOLD:
        return [
            "⚠️ Proceed with caution - some security concerns detected",
            "🔍 Verify this is the website you intended to visit",
            "🛡️ Avoid entering personal information",
        ]
    if result.score < 90:
        return [
            "✅ Website appears safe with minor concerns",
            "🔒 Verify the website URL matches what you expected",
        ]
    return [
        "✅ Website passed all security checks",
        "🔒 Safe to proceed to destination",
    ]


# =============================================================================
# 🌐 Client: externer Endpunkt oder lokale Prüfung, mit Degradierung
# =============================================================================
class SecurityClient:
    def __init__(
        self,
        endpoint: Optional[str] = None,
        token: Optional[str] = None,
        probe: Optional[bool] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.endpoint = endpoint if endpoint is not None else security_check_url()
        self.token = token if token is not None else security_check_token()
        self.probe = probe if probe is not None else security_probe_enabled()
        self.timeout = timeout if timeout is not None else security_probe_timeout()
        self.client = client

    async def check(self, url: str) -> SecurityCheckResult:
        try:
            if self.endpoint:
                return await self._check_remote(url)
            return await check_url(url, probe=self.probe, client=self.client, timeout=self.timeout)
        except Exception as exc:
            logger.warning(f"⚠️ Sicherheitsprüfung degradiert für {url}: {exc}")
            return degraded_result(url)

    async def _check_remote(self, url: str) -> SecurityCheckResult:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        # Gegenstelle braucht selbst bis zu `timeout` für ihre Probe
        remote_timeout = self.timeout * 2
        # asyncio.TimeoutError landet in check() und degradiert
        if self.client is None:
            async with httpx.AsyncClient(timeout=remote_timeout) as own_client:
                response = await asyncio.wait_for(
                    own_client.post(self.endpoint, json={"url": url}, headers=headers), remote_timeout
                )
        else:
            response = await asyncio.wait_for(
                self.client.post(self.endpoint, json={"url": url}, headers=headers, timeout=remote_timeout),
                remote_timeout,
            )
        response.raise_for_status()
        payload = response.json()
        if not isinstance(payload, Mapping):
            raise ValueError("security endpoint returned no object")
        return SecurityCheckResult.from_dict(payload)
