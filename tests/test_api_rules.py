from datetime import datetime, timedelta, timezone

from conftest import make_api_user, make_qr
from models.api_key import APIKey
from models.qr_scan import QRScan
from models.qrcode import QRCode


def _headers(key):
    return {"X-API-Key": key}


def test_missing_or_wrong_key_is_rejected(client):
    assert client.get("/api/v1/qrs").status_code == 401
    assert client.get("/api/v1/qrs", headers=_headers("blq_live_wrong")).status_code == 401


def test_key_is_stored_hashed_and_can_be_revoked(client, db):
    user, key = make_api_user(db, username="revoker")
    row = db.query(APIKey).filter(APIKey.user_id == user.id).one()
    assert row.key_hash != key
    assert key.startswith(row.key_prefix)
    assert key.endswith(row.last4)

    assert client.get("/api/v1/me", headers=_headers(key)).status_code == 200
    db.refresh(row)
    assert row.last_used_at is not None

    row.revoked_at = datetime.now(timezone.utc)
    db.commit()
    assert client.get("/api/v1/me", headers=_headers(key)).status_code == 401


def test_create_and_fetch_qr(client, db):
    _, key = make_api_user(db)
    response = client.post(
        "/api/v1/qrs",
        json={"originalUrl": "shop.example.com", "title": "Shop", "scanLimit": 100, "expiredUrl": "sold-out.example.com"},
        headers=_headers(key),
    )
    assert response.status_code == 201
    created = response.json()
    assert created["originalUrl"] == "https://shop.example.com"
    assert created["expiredUrl"] == "https://sold-out.example.com"
    assert created["redirectUrl"].endswith(f"/r/{created['shortCode']}")

    fetched = client.get(f"/api/v1/qrs/{created['shortCode']}", headers=_headers(key)).json()
    assert fetched["scanLimit"] == 100

    listing = client.get("/api/v1/qrs", headers=_headers(key)).json()
    assert listing["count"] == 1


def test_other_users_codes_are_invisible(client, db):
    owner, _ = make_api_user(db, username="owner")
    _, other_key = make_api_user(db, username="other")
    qr = make_qr(db, user=owner)
    assert client.get(f"/api/v1/qrs/{qr.short_code}", headers=_headers(other_key)).status_code == 404


def test_invalid_values_are_rejected_at_creation(client, db):
    _, key = make_api_user(db)
    bad_payloads = [
        {"originalUrl": ""},
        {"originalUrl": "x.com", "scanLimit": 0},
        {"originalUrl": "x.com", "timeRules": [{"startTime": "9am", "endTime": "17:00", "url": "y.com"}]},
        {"originalUrl": "x.com", "geoRules": [{"lat": 95, "lon": 0, "radius_km": 5, "url": "y.com"}]},
        {"originalUrl": "x.com", "brandingStyle": "neon"},
    ]
    for payload in bad_payloads:
        response = client.post("/api/v1/qrs", json=payload, headers=_headers(key))
        assert response.status_code == 422, payload


def test_dynamic_rules_need_capability(client, db):
    user, key = make_api_user(db, plan_tier="free")
    qr = make_qr(db, user=user)

    response = client.put(
        f"/api/v1/qrs/{qr.short_code}/time-rules",
        json={"rules": [{"startTime": "09:00", "endTime": "17:00", "url": "day.example.com"}]},
        headers=_headers(key),
    )
    assert response.status_code == 403

    response = client.post(
        "/api/v1/qrs",
        json={"originalUrl": "x.com", "geoRules": [{"lat": 1, "lon": 1, "radius_km": 5, "url": "y.com"}]},
        headers=_headers(key),
    )
    assert response.status_code == 403

    # Scan-Limit ist in jeder Stufe enthalten
    response = client.put(f"/api/v1/qrs/{qr.short_code}/scan-limit", json={"scanLimit": 5}, headers=_headers(key))
    assert response.status_code == 200


def test_time_rules_are_stored_in_utc(client, db):
    user, key = make_api_user(db)
    qr = make_qr(db, user=user)
    response = client.put(
        f"/api/v1/qrs/{qr.short_code}/time-rules",
        json={
            "timezone": "UTC",
            "rules": [
                {"startTime": "22:00", "endTime": "06:00", "url": "night.example.com", "label": "Nacht"},
                {"startTime": "09:00", "endTime": "17:00", "url": "day.example.com"},
            ],
        },
        headers=_headers(key),
    )
    assert response.status_code == 200
    rules = response.json()["timeRules"]
    assert [r["url"] for r in rules] == ["https://night.example.com", "https://day.example.com"]
    assert rules[0]["label"] == "Nacht"

    tokyo = client.put(
        f"/api/v1/qrs/{qr.short_code}/time-rules",
        json={"timezone": "Asia/Tokyo", "rules": [{"startTime": "09:00", "endTime": "18:00", "url": "jp.example.com"}]},
        headers=_headers(key),
    ).json()["timeRules"]
    assert tokyo[0]["startTime"] == "00:00"
    assert tokyo[0]["endTime"] == "09:00"


def test_geo_rules_replace(client, db):
    user, key = make_api_user(db)
    qr = make_qr(db, user=user)
    response = client.put(
        f"/api/v1/qrs/{qr.short_code}/geo-rules",
        json={"rules": [{"lat": 52.52, "lon": 13.405, "radiusKm": 15, "url": "berlin.example.com"}]},
        headers=_headers(key),
    )
    assert response.status_code == 200
    assert response.json()["geoRules"][0]["label"] == "Within 15km of 52.5200, 13.4050"

    bad = client.put(
        f"/api/v1/qrs/{qr.short_code}/geo-rules",
        json={"rules": [{"lat": 52.52, "lon": 13.405, "radiusKm": 0, "url": "berlin.example.com"}]},
        headers=_headers(key),
    )
    assert bad.status_code == 422


def test_patch_keeps_short_code_and_validates(client, db):
    user, key = make_api_user(db)
    qr = make_qr(db, user=user)
    response = client.patch(
        f"/api/v1/qrs/{qr.short_code}",
        json={"originalUrl": "new.example.com", "title": "Neu", "shortCode": "hijack"},
        headers=_headers(key),
    )
    assert response.status_code == 200
    assert response.json()["shortCode"] == qr.short_code
    assert response.json()["originalUrl"] == "https://new.example.com"

    bad = client.patch(f"/api/v1/qrs/{qr.short_code}", json={"brandingDuration": 99}, headers=_headers(key))
    assert bad.status_code == 422


def test_soft_delete_hides_code_from_redirects(client, db):
    user, key = make_api_user(db)
    qr = make_qr(db, user=user)
    assert client.delete(f"/api/v1/qrs/{qr.short_code}", headers=_headers(key)).json()["ok"] is True

    assert client.get(f"/r/{qr.short_code}").status_code == 404
    assert client.get(f"/api/v1/qrs/{qr.short_code}", headers=_headers(key)).status_code == 404
    db.expire_all()
    assert db.get(QRCode, qr.id).deleted_at is not None


def test_analytics_summary(client, db):
    user, key = make_api_user(db)
    qr = make_qr(db, user=user)
    now = datetime.now(timezone.utc)
    for days_ago, country, device in [(0, "DE", "Mobile"), (0, "DE", "Desktop"), (3, "FR", "Mobile"), (20, "DE", "Mobile")]:
        db.add(QRScan(qr_id=qr.id, country=country, device_type=device, scanned_at=now - timedelta(days=days_ago)))
    db.commit()

    data = client.get(f"/api/v1/qrs/{qr.short_code}/analytics", headers=_headers(key)).json()
    assert data["total_scans"] == 4
    assert data["today_scans"] == 2
    assert data["this_week_scans"] == 3
    assert data["this_month_scans"] == 4
    assert data["top_countries"][0] == {"country": "DE", "count": 3}
    assert data["top_devices"][0] == {"device": "Mobile", "count": 3}
    assert len(data["daily_scans"]) == 30
