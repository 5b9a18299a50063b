from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, HTTPException

from routes.redirect import get_security_client
from utils.url_security import SecurityClient, security_advice

router = APIRouter(prefix="/api", tags=["Security"])


@router.post("/security-check")
async def security_check(
    payload: Optional[Dict[str, Any]] = Body(default=None),
    security: SecurityClient = Depends(get_security_client),
):
    url = (payload or {}).get("url")
    if not isinstance(url, str) or not url.strip():
        raise HTTPException(status_code=400, detail="URL is required")

    result = await security.check(url)
    data = result.to_dict()
    data["advice"] = security_advice(result)
    return data
