import pytest
import httpx
from fastapi.routing import APIRoute
from httpx import ASGITransport
from main import app


# ✅ erlaubte Statuscodes
ALLOWED = {200}


@pytest.mark.asyncio
async def test_all_get_routes():
    """
    Testet alle parameterlosen GET-Routen der FastAPI-App.
    """
    transport = ASGITransport(app=app)
    client = httpx.AsyncClient(transport=transport, base_url="http://test")

    failed = []

    for route in app.routes:
        if not isinstance(route, APIRoute):
            continue

        if "GET" not in route.methods:
            continue

        # Parameterisierte Routen überspringen
        if "{" in route.path:
            continue

        # API-Key-geschützte Routen überspringen
        if route.path.startswith("/api/v1"):
            continue

        response = await client.get(route.path)
        if response.status_code not in ALLOWED:
            failed.append((route.path, response.status_code))

    await client.aclose()

    assert not failed, (
        "\n\n❌ FEHLERHAFTE ROUTEN GEFUNDEN:\n" +
        "\n".join([f"  - {path}: {err}" for path, err in failed]) +
        "\n"
    )


def test_expected_routes_are_registered():
    paths = {route.path for route in app.routes}
    for expected in [
        "/r/{short_code}",
        "/api/redirect/{short_code}",
        "/api/redirect/time",
        "/api/redirect/geo",
        "/api/security-check",
        "/api/v1/qrs",
        "/api/v1/qrs/{short_code}/time-rules",
        "/api/v1/qrs/{short_code}/geo-rules",
        "/api/v1/qrs/{short_code}/scan-limit",
        "/api/v1/qrs/{short_code}/analytics",
    ]:
        assert expected in paths


def test_only_health_is_exposed_outside_the_redirect_surface():
    paths = {route.path for route in app.routes if isinstance(route, APIRoute)}
    assert "/health" in paths
    assert "/debug/routes" not in paths
    assert "/.well-known/appspecific/com.chrome.devtools.json" not in paths
