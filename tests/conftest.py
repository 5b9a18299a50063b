import asyncio, sys, os, uuid, pytest, pytest_asyncio, httpx
from contextlib import asynccontextmanager
from httpx import ASGITransport

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

# Tests laufen ohne MySQL und ohne Netzwerk
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ["SECURITY_PROBE_ENABLED"] = "0"
os.environ.pop("SECURITY_CHECK_URL", None)
os.environ.pop("GEOIP_URL", None)

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from database import Base, get_db, get_session_factory
from main import app
from models.user import User
from routes.redirect import get_security_client
from utils.api_keys import issue_api_key
from utils.qr_save import create_qr_code
from utils.url_security import SecurityClient


@pytest.fixture
def session_local(tmp_path):
    # Datei statt :memory:, Analytics schreibt aus einem eigenen Thread
    engine = create_engine(
        f"sqlite:///{tmp_path / 'blast_qr_test.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield testing_session_local
    engine.dispose()


@pytest.fixture
def db(session_local):
    session = session_local()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def app_env(session_local):
    def override_get_db():
        db = session_local()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_local
    app.dependency_overrides[get_security_client] = lambda: SecurityClient(endpoint="", probe=False)
    yield session_local
    app.dependency_overrides.clear()


@pytest.fixture
def client(app_env):
    with TestClient(app) as test_client:
        yield test_client


@pytest_asyncio.fixture
async def async_client(app_env):
    """Gleicher Event-Loop wie der Test: Hintergrund-Tasks lassen sich abwarten."""
    transport = ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# -------------------------------------------------------------------------
# 🧪 Testdaten
# -------------------------------------------------------------------------
def make_user(session, username=None, plan_tier="pro"):
    username = username or f"owner_{uuid.uuid4().hex[:8]}"
    user = User(username=username, email=f"{username}@example.com", plan_tier=plan_tier)
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


def make_qr(session, user=None, **kwargs):
    user = user or make_user(session)
    kwargs.setdefault("original_url", "example.com")
    return create_qr_code(session, user_id=user.id, **kwargs)


def make_api_user(session, username="api", plan_tier="pro"):
    user = make_user(session, username=username, plan_tier=plan_tier)
    _, raw_key = issue_api_key(session, user)
    return user, raw_key


# -------------------------------------------------------------------------
# 🐢 Echter, langsamer HTTP-Server (Antwort-Header Byte für Byte)
# -------------------------------------------------------------------------
@asynccontextmanager
async def slow_http_server(delay=0.5, body=b"{}"):
    handlers = []
    response = (
        b"HTTP/1.1 200 OK\r\nContent-Type: application/json\r\n"
        + f"Content-Length: {len(body)}\r\n\r\n".encode()
        + body
    )

    async def handle(reader, writer):
        handlers.append(asyncio.current_task())
        try:
            await reader.readuntil(b"\r\n\r\n")
            for byte in response:
                writer.write(bytes([byte]))
                await writer.drain()
                await asyncio.sleep(delay)
        except (ConnectionError, asyncio.IncompleteReadError):
            pass
        finally:
            writer.close()

    server = await asyncio.start_server(handle, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    try:
        yield f"http://127.0.0.1:{port}"
    finally:
        for task in handlers:
            task.cancel()
        server.close()
        await server.wait_closed()
