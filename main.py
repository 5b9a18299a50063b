# =============================================================================
# 🚀 Blast QR – Hauptapplikation (main.py)
# =============================================================================

from __future__ import annotations
import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Dict

from fastapi import FastAPI
from starlette.middleware.sessions import SessionMiddleware

from dotenv import load_dotenv

# -------------------------------------------------------------------------
# 1️⃣ .env laden (muss ganz oben sein!)
# -------------------------------------------------------------------------
env_path = Path(__file__).resolve().parent / ".env"
load_dotenv(dotenv_path=env_path)

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger("blast_qr")

from routes import api, redirect, redirect_lookup, security  # noqa: E402
from utils.tasks import drain_background_tasks  # noqa: E402


# -------------------------------------------------------------------------
# 2️⃣ Lebenszyklus: offene Analytics-Tasks beim Herunterfahren abwarten
# -------------------------------------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("🚀 Blast QR gestartet")
    yield
    await drain_background_tasks()
    logger.info("👋 Blast QR beendet")


# -------------------------------------------------------------------------
# 3️⃣ FastAPI App
# -------------------------------------------------------------------------
app = FastAPI(title="Blast QR", version="1.0", lifespan=lifespan)

# -------------------------------------------------------------------------
# 4️⃣ Session Middleware (nur Lesen: Besitzer-Vorschau nicht zählen)
# -------------------------------------------------------------------------
app.add_middleware(
    SessionMiddleware,
    secret_key=os.getenv("SESSION_SECRET", "blast-qr-secret-key"),
    max_age=60 * 60 * 24 * 7,
    session_cookie=os.getenv("SESSION_COOKIE_NAME", "blast_session"),
    same_site=os.getenv("SESSION_SAME_SITE", "lax"),
    https_only=os.getenv("SESSION_HTTPS_ONLY", "0") in {"1", "true", "yes"},
)

# -------------------------------------------------------------------------
# 5️⃣ Routen
# -------------------------------------------------------------------------
app.include_router(redirect.router)
app.include_router(redirect_lookup.router)
app.include_router(security.router)
app.include_router(api.router)


# -------------------------------------------------------------------------
# 6️⃣ Health
# -------------------------------------------------------------------------
@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}

