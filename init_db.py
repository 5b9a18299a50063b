# =============================================================================
# 🧩 init_db.py
# -----------------------------------------------------------------------------
# Initialisiert die Datenbank für Blast QR (lokal / Demo):
#   - Erstellt alle Tabellen (User, APIKey, QRCode, QRScan)
#   - Optional: Demo-Benutzer mit API-Key und Beispiel-QR-Code
# Für Produktivsysteme: alembic upgrade head
# =============================================================================

from database import Base, engine, SessionLocal
import models  # noqa: F401  (registriert alle Tabellen)
from models.user import User
from utils.api_keys import issue_api_key
from utils.qr_save import create_qr_code


def main() -> None:
    # 🔹 Schritt 1 – Tabellen anlegen
    print("🛠️ Erstelle Tabellen in der Datenbank...")
    Base.metadata.create_all(bind=engine)
    print("✅ Tabellen wurden erfolgreich erstellt.\n")

    # 🔹 Schritt 2 – Demo-Daten
    db = SessionLocal()
    try:
        print("👤 Prüfe auf Demo-Benutzer...")
        demo_email = "demo@blastqr.local"
        user = db.query(User).filter(User.email == demo_email).first()
        if user:
            print("  ✔️ Demo-Benutzer existiert bereits.")
            return

        user = User(username="demo", email=demo_email, plan_tier="pro")
        db.add(user)
        db.commit()
        db.refresh(user)

        _, raw_key = issue_api_key(db, user, name="Demo")
        qr = create_qr_code(
            db,
            user_id=user.id,
            original_url="example.com",
            title="Demo",
            time_rules=[{"startTime": "22:00", "endTime": "06:00", "url": "example.com/night", "label": "Nacht"}],
        )
        print(f"  🆕 Demo-Benutzer erstellt: {demo_email}")
        print(f"  🔑 API-Key (nur jetzt sichtbar): {raw_key}")
        print(f"  🔗 Demo-QR: /r/{qr.short_code}")
    finally:
        db.close()
    print("\n🎉 Datenbankinitialisierung abgeschlossen!")


if __name__ == "__main__":
    main()
