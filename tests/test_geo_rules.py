import math

import pytest

from utils.geo_rules import GeoRule, coerce_geo_rules, evaluate_geo_rules, haversine_km, match_geo_rule
from utils.redirect_errors import InvalidRuleError

NYC = (40.7128, -74.0060)
LA = (34.0522, -118.2437)


def test_haversine_identical_points_is_zero():
    assert haversine_km(*NYC, *NYC) == 0.0


def test_haversine_new_york_to_los_angeles():
    assert haversine_km(*NYC, *LA) == pytest.approx(3936, abs=5)


def test_haversine_is_symmetric():
    assert math.isclose(haversine_km(*NYC, *LA), haversine_km(*LA, *NYC))


def _rule(radius, url, lat=NYC[0], lon=NYC[1]):
    return {"lat": lat, "lon": lon, "radius_km": radius, "url": url}


def test_smallest_matching_radius_wins_regardless_of_order():
    rules = [_rule(100, "region.example.com"), _rule(5, "city.example.com"), _rule(50, "metro.example.com")]
    assert evaluate_geo_rules(rules, *NYC) == "https://city.example.com"


def test_equal_radius_keeps_list_order():
    rules = [_rule(10, "first.example.com"), _rule(10, "second.example.com")]
    assert evaluate_geo_rules(rules, *NYC) == "https://first.example.com"


def test_boundary_is_inclusive():
    target = (40.8, -74.0060)
    distance = haversine_km(*target, *NYC)
    rule = GeoRule.from_dict(_rule(distance, "edge.example.com"))
    assert rule.contains(*target)


def test_outside_radius_does_not_match():
    assert match_geo_rule([_rule(10, "nyc.example.com")], *LA) is None


def test_missing_coordinates_never_match():
    rules = [_rule(20000, "world.example.com")]
    assert match_geo_rule(rules, None, None) is None
    assert match_geo_rule(rules, NYC[0], None) is None


@pytest.mark.parametrize(
    "data",
    [
        {"lat": 91, "lon": 0, "radius_km": 1, "url": "x.com"},
        {"lat": 0, "lon": -181, "radius_km": 1, "url": "x.com"},
        {"lat": "north", "lon": 0, "radius_km": 1, "url": "x.com"},
        {"lat": 0, "lon": 0, "radius_km": 0, "url": "x.com"},
        {"lat": 0, "lon": 0, "radius_km": -3, "url": "x.com"},
        {"lat": 0, "lon": 0, "radius_km": float("nan"), "url": "x.com"},
        {"lat": True, "lon": 0, "radius_km": 1, "url": "x.com"},
        {"lat": 0, "lon": 0, "radius_km": 1, "url": ""},
    ],
)
def test_invalid_geo_rules_rejected(data):
    with pytest.raises(InvalidRuleError):
        GeoRule.from_dict(data)


def test_default_label_and_camel_case_radius():
    rule = GeoRule.from_dict({"lat": 40.7128, "lon": -74.006, "radiusKm": 10, "url": "x.com"})
    assert rule.radius_km == 10
    assert rule.label == "Within 10km of 40.7128, -74.0060"
    assert rule.to_dict()["radiusKm"] == 10


def test_stored_broken_rules_are_skipped():
    rules = coerce_geo_rules([{"lat": 500, "lon": 0, "radius_km": 1, "url": "x.com"}, _rule(5, "ok.example.com")])
    assert [r.url for r in rules] == ["https://ok.example.com"]
