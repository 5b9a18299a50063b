import time

import httpx
import pytest

from conftest import slow_http_server
from utils.url_security import (
    DEGRADED_WARNING,
    SecurityCheckResult,
    SecurityClient,
    check_url,
    check_url_heuristics,
    domain_matches,
    probe_reachability,
    security_advice,
)


def test_plain_https_domain_is_safe_at_baseline():
    result = check_url_heuristics("https://example.org")
    assert result.is_safe
    assert result.score == 85
    assert result.threats == []
    assert result.details.has_ssl


def test_missing_scheme_is_normalised_to_https():
    result = check_url_heuristics("example.org/path")
    assert result.details.has_ssl
    assert result.score == 85


@pytest.mark.parametrize("url", ["http://192.168.1.1/login", "https://10.0.0.1", "http://[2001:db8::1]/"])
def test_ip_literal_is_unsafe(url):
    result = check_url_heuristics(url)
    assert not result.is_safe
    assert "IP address used instead of domain name - high risk" in result.threats
    assert result.details.domain_reputation == "bad"


def test_malicious_keyword_scores_zero():
    result = check_url_heuristics("https://free-malware-download.com")
    assert not result.is_safe
    assert result.score == 0
    assert result.details.safe_browsing is False


def test_shortener_is_a_warning_only():
    result = check_url_heuristics("https://bit.ly/abc")
    assert result.is_safe
    assert result.score == 80
    assert result.details.domain_reputation == "suspicious"
    assert "Shortened URL detected - verify destination" in result.warnings


def test_shortener_match_is_not_substring_based():
    assert not domain_matches("rabbit.ly", "bit.ly")
    assert domain_matches("www.bit.ly", "bit.ly")
    result = check_url_heuristics("https://rabbit.ly")
    assert result.details.domain_reputation == "good"


def test_plain_http_loses_ten_points():
    result = check_url_heuristics("http://example.org")
    assert result.score == 75
    assert result.is_safe
    assert "Website does not use secure HTTPS connection" in result.warnings


def test_allow_list_overrides_tls_warning():
    result = check_url_heuristics("http://google.com")
    assert result.score == 95
    assert result.warnings == []
    assert result.is_safe


def test_allow_list_matches_subdomains_only():
    assert check_url_heuristics("https://docs.github.com").score == 95
    assert check_url_heuristics("https://notgithub.com").score == 85
    assert check_url_heuristics("https://github.com.evil.example").score == 85


def test_allow_list_never_clears_threats():
    result = check_url_heuristics("https://phishing.google.com")
    assert not result.is_safe
    assert result.score == 0


@pytest.mark.parametrize("url", ["", "https://", "http://exa mple.com", "https://example.com:99999"])
def test_unparseable_urls_are_invalid(url):
    result = check_url_heuristics(url)
    assert not result.is_safe
    assert result.score == 0
    assert result.threats == ["Invalid URL format"]


def test_classification_is_deterministic():
    assert check_url_heuristics("http://bit.ly/x").to_dict() == check_url_heuristics("http://bit.ly/x").to_dict()


def test_score_and_safety_are_consistent():
    for url in ["https://example.org", "http://bit.ly", "http://1.2.3.4", "https://virus.example", "google.com"]:
        result = check_url_heuristics(url)
        assert 0 <= result.score <= 100
        assert result.is_safe == (result.score >= 70 and not result.threats)


# -------------------------------------------------------------------------
# 🌐 Probe
# -------------------------------------------------------------------------
def _client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_probe_reachable_site():
    async with _client(lambda request: httpx.Response(200)) as client:
        result = await check_url("https://example.org", client=client)
    assert result.details.reachable
    assert result.score == 85


@pytest.mark.asyncio
async def test_probe_error_status_is_a_warning():
    async with _client(lambda request: httpx.Response(503)) as client:
        result = await check_url("https://example.org", client=client)
    assert "Website returned 503 status" in result.warnings
    assert result.score == 80
    assert result.is_safe


@pytest.mark.asyncio
async def test_probe_timeout_is_a_warning():
    def handler(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    async with _client(handler) as client:
        result = await check_url("https://example.org", client=client)
    assert "Unable to verify website availability" in result.warnings
    assert result.is_safe


@pytest.mark.asyncio
async def test_probe_uses_head_request():
    methods = []

    def handler(request):
        methods.append(request.method)
        return httpx.Response(200)

    async with _client(handler) as client:
        await check_url("https://example.org", client=client)
    assert methods == ["HEAD"]


@pytest.mark.asyncio
async def test_probe_is_bounded_against_trickling_server():
    # Header kommen Byte für Byte: der Lese-Timeout von httpx greift dabei nie
    async with slow_http_server(delay=0.5) as base_url:
        started = time.monotonic()
        reachable, warning = await probe_reachability(f"{base_url}/", timeout=1.0)
        elapsed = time.monotonic() - started
    assert not reachable
    assert warning == "Unable to verify website availability"
    assert elapsed < 3


@pytest.mark.asyncio
async def test_check_url_with_trickling_server_reports_unreachable():
    async with slow_http_server(delay=0.5) as base_url:
        async with httpx.AsyncClient() as client:
            started = time.monotonic()
            result = await check_url(f"{base_url}/", client=client, timeout=1.0)
            elapsed = time.monotonic() - started
    assert "Unable to verify website availability" in result.warnings
    assert result.details.reachable is False
    assert elapsed < 3


# -------------------------------------------------------------------------
# 🛡️ Client mit Degradierung
# -------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_remote_classifier_result_is_used():
    payload = {
        "isSafe": True,
        "score": 60,
        "threats": [],
        "warnings": ["remote warning"],
        "details": {"urlValid": True, "reachable": True, "hasSSL": True, "safeBrowsing": True, "domainReputation": "good"},
    }
    seen = {}

    def handler(request):
        seen["auth"] = request.headers.get("authorization")
        return httpx.Response(200, json=payload)

    async with _client(handler) as client:
        security = SecurityClient(endpoint="https://security.internal/check", token="s3cret", client=client)
        result = await security.check("https://example.org")
    assert seen["auth"] == "Bearer s3cret"
    assert result.warnings == ["remote warning"]
    # Formel wird auf das Fremdergebnis angewendet
    assert result.is_safe is False


@pytest.mark.asyncio
async def test_remote_failure_degrades_to_neutral_result():
    async with _client(lambda request: httpx.Response(500)) as client:
        security = SecurityClient(endpoint="https://security.internal/check", client=client)
        result = await security.check("https://example.org")
    assert result.is_safe
    assert result.score == 85
    assert DEGRADED_WARNING in result.warnings


@pytest.mark.asyncio
async def test_remote_garbage_degrades():
    async with _client(lambda request: httpx.Response(200, text="<html>")) as client:
        security = SecurityClient(endpoint="https://security.internal/check", client=client)
        result = await security.check("https://example.org")
    assert DEGRADED_WARNING in result.warnings


@pytest.mark.asyncio
async def test_degraded_result_still_blocks_ip_literals():
    async with _client(lambda request: httpx.Response(502)) as client:
        security = SecurityClient(endpoint="https://security.internal/check", client=client)
        result = await security.check("http://203.0.113.9/login")
    assert not result.is_safe


def test_round_trip_of_wire_schema():
    result = check_url_heuristics("http://bit.ly/x")
    assert SecurityCheckResult.from_dict(result.to_dict()).to_dict() == result.to_dict()


def test_advice_bands():
    assert security_advice(check_url_heuristics("http://10.0.0.1"))[0].startswith("🚨")
    assert security_advice(check_url_heuristics("https://example.org"))[0].startswith("✅ Website appears safe")
    assert security_advice(check_url_heuristics("https://google.com"))[0] == "✅ Website passed all security checks"


@pytest.mark.asyncio
async def test_slow_remote_endpoint_degrades_in_time():
    async with slow_http_server(delay=0.5) as base_url:
        security = SecurityClient(endpoint=f"{base_url}/check", timeout=0.5)
        started = time.monotonic()
        result = await security.check("https://example.org")
        elapsed = time.monotonic() - started
    assert DEGRADED_WARNING in result.warnings
    assert result.is_safe
    assert elapsed < 3
