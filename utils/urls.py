from __future__ import annotations

import re
from typing import Optional

_SCHEME_RE = re.compile(r"^https?://", re.IGNORECASE)


def has_http_scheme(url: str) -> bool:
    return bool(_SCHEME_RE.match(url or ""))


def normalize_url(url: Optional[str]) -> str:
    """Sorgt dafür, dass eine URL mit http(s):// beginnt (sonst https://)."""
    if not url:
        return ""
    url = url.strip()
    if not url:
        return ""
    if not has_http_scheme(url):
        url = "https://" + url
    return url
