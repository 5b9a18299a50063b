from __future__ import annotations

from typing import Any

# Tarifstufe → freigeschaltete Funktionen
PLAN_CAPABILITIES: dict[str, set[str]] = {
    "free": {"scan_limit", "branding"},
    "pro": {"scan_limit", "branding", "dynamic_rules"},
    "business": {"scan_limit", "branding", "dynamic_rules", "analytics_export"},
}

DEFAULT_PLAN = "free"


def _normalized(value: Any) -> str:
    return str(value or "").strip().lower()


def plan_capabilities(plan_tier: str | None) -> set[str]:
    return PLAN_CAPABILITIES.get(_normalized(plan_tier), PLAN_CAPABILITIES[DEFAULT_PLAN])


def has_capability(plan_tier: str | None, capability: str) -> bool:
    return _normalized(capability) in plan_capabilities(plan_tier)


def user_has_capability(user: Any, capability: str) -> bool:
    return has_capability(getattr(user, "plan_tier", None), capability)
