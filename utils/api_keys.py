from __future__ import annotations

import hashlib
import secrets
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from models.api_key import APIKey
from models.user import User


def generate_api_key() -> str:
    return f"blq_live_{secrets.token_urlsafe(32)}"


def hash_api_key(api_key: str) -> str:
    return hashlib.sha256(api_key.encode("utf-8")).hexdigest()


def key_prefix(api_key: str) -> str:
    return api_key[:12]


def key_last4(api_key: str) -> str:
    return api_key[-4:]


def issue_api_key(db: Session, user: User, name: str = "Default") -> tuple[APIKey, str]:
    """
    Legt einen neuen Schlüssel an. Der Klartext wird nur hier einmal
    zurückgegeben, gespeichert wird ausschließlich der Hash.
    """
    raw = generate_api_key()
    row = APIKey(
        user_id=user.id,
        name=name,
        key_prefix=key_prefix(raw),
        key_hash=hash_api_key(raw),
        last4=key_last4(raw),
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return row, raw


def find_user_by_api_key(db: Session, api_key: Optional[str]) -> Optional[User]:
    if not api_key:
        return None
    row = (
        db.query(APIKey)
        .filter(APIKey.key_hash == hash_api_key(api_key), APIKey.revoked_at.is_(None))
        .first()
    )
    if not row:
        return None
    row.last_used_at = datetime.now(timezone.utc)
    db.commit()
    return db.query(User).filter(User.id == row.user_id).first()

