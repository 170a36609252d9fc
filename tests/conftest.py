"""
Shared fixtures. The environment is pointed at a throwaway SQLite file and
storage root before anything under `app` is imported, since settings and the
engine are built at import time.
"""
import asyncio
import io
import os
import shutil
import tempfile

TEST_ROOT = tempfile.mkdtemp(prefix="portfolio-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{TEST_ROOT}/test.db"
os.environ["STORAGE_ROOT"] = os.path.join(TEST_ROOT, "media")
os.environ["UPLOAD_TMP_DIR"] = os.path.join(TEST_ROOT, "tmp")
os.environ["JWT_SECRET_KEY"] = "test-secret-key"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["RECAPTCHA_SECRET_KEY"] = "test-recaptcha-secret"
os.environ["MAIL_CONTACT_TO"] = "owner@portfolio.test"
os.environ["IMG_MAX_WIDTH"] = "64"
os.environ["THUMB_WIDTH"] = "16"

import pytest
from fastapi.testclient import TestClient
from PIL import Image
from starlette.datastructures import UploadFile

from app.api.deps import get_mailer
from app.core.config import get_settings
from app.core.database import Base, SessionLocal, engine
from app.main import app
from app.models.user import User
from app.services.assets import AssetManager
from app.services.email import Mailer
from app.services.redis_client import get_redis

STRONG_PASSWORD = "Str0ngP@ss"


def _loop_running():
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return False
    return True


class FakeRedis:
    """Just enough of redis.Redis for the fixed-window counters."""

    def __init__(self):
        self.counters = {}
        self.expiry = {}
        self.calls = []

    def incr(self, key):
        self.calls.append(_loop_running())
        self.counters[key] = self.counters.get(key, 0) + 1
        return self.counters[key]

    def expire(self, key, seconds):
        self.expiry[key] = seconds
        return True


class RecordingMailer(Mailer):
    """Mailer that keeps outgoing messages instead of sending them."""

    def __init__(self, settings, deliver=True):
        super().__init__(settings)
        self.deliver = deliver
        self.sent = []

    async def send(self, to_email, subject, body, reply_to=None):
        self.sent.append({"to": to_email, "subject": subject, "body": body, "reply_to": reply_to})
        return self.deliver


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture(autouse=True)
def clean_state(settings):
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    shutil.rmtree(settings.STORAGE_ROOT, ignore_errors=True)
    shutil.rmtree(settings.UPLOAD_TMP_DIR, ignore_errors=True)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def assets(settings):
    return AssetManager(settings)


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def mailer(settings):
    return RecordingMailer(settings)


@pytest.fixture
def client(fake_redis, mailer):
    app.dependency_overrides[get_redis] = lambda: fake_redis
    app.dependency_overrides[get_mailer] = lambda: mailer
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def make_png():
    def _make(width=96, height=48, color=(200, 30, 30), mode="RGB"):
        buf = io.BytesIO()
        Image.new(mode, (width, height), color).save(buf, format="PNG")
        return buf.getvalue()

    return _make


@pytest.fixture
def make_upload(make_png):
    def _make(data=None, filename="photo.png"):
        if data is None:
            data = make_png()
        return UploadFile(io.BytesIO(data), filename=filename)

    return _make


@pytest.fixture
def register(client, make_png):
    """POST /users and return the created id."""

    def _register(name="Ann", email="ann@x.com", password=STRONG_PASSWORD):
        response = client.post(
            "/users",
            data={"name": name, "email": email, "password": password},
            files={"image": (f"{name}.png", make_png(), "image/png")},
        )
        assert response.status_code == 201, response.text
        return response.json()["id"]

    return _register


@pytest.fixture
def login(client):
    def _login(email="ann@x.com", password=STRONG_PASSWORD):
        response = client.post("/auth", json={"email": email, "password": password})
        assert response.status_code == 200, response.text
        return {"Authorization": f"Bearer {response.json()['userToken']}"}

    return _login


@pytest.fixture
def auth_headers(register, login):
    register()
    return login()


@pytest.fixture
def make_admin(db):
    def _promote(user_id):
        user = db.get(User, user_id)
        user.role = "admin"
        db.commit()

    return _promote
