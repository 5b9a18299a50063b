# =============================================================================
# 📦 models/__init__.py
# -----------------------------------------------------------------------------
# Minimal & korrekt für Alembic
# =============================================================================

from .user import User
from .api_key import APIKey
from .qrcode import QRCode
from .qr_scan import QRScan

__all__ = [
    "User",
    "APIKey",
    "QRCode",
    "QRScan",
]
