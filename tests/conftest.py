import os
import tempfile

# must be set before the app modules read their configuration
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret"
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="fooddrop-uploads-"))

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlmodel import Session, SQLModel  # noqa: E402

import models  # noqa: E402,F401
from changefeed import ChangeFeed, get_change_feed  # noqa: E402
from db import engine, get_session  # noqa: E402
from identity import sign_up, update_role  # noqa: E402
from main import app  # noqa: E402
from models import Profile, Role  # noqa: E402
from session_store import create_session_token  # noqa: E402
from storage import BlobStorage, get_blob_storage  # noqa: E402

DONATION_FIELDS = {
    "food_name": "Bread",
    "description": "Day-old loaves",
    "quantity": "10 loaves",
    "location": "1 Main St",
    "contact_name": "A",
    "contact_phone": "555-0000",
}


class RecordingFeed(ChangeFeed):
    def __init__(self):
        super().__init__()
        self.events = []

    def publish(self, event):
        self.events.append(event)
        return super().publish(event)


@pytest.fixture(name="session")
def session_fixture():
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        yield session
    SQLModel.metadata.drop_all(engine)


@pytest.fixture
def storage(tmp_path):
    return BlobStorage(tmp_path / "blobs", "/uploads", max_bytes=1024)


@pytest.fixture
def feed():
    return RecordingFeed()


@pytest.fixture(name="client")
def client_fixture(session, storage, feed):
    app.dependency_overrides[get_session] = lambda: session
    app.dependency_overrides[get_blob_storage] = lambda: storage
    app.dependency_overrides[get_change_feed] = lambda: feed

    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(session):
    def _make(email, role=Role.donor, is_admin=False, username=None, password="secret123"):
        identity = sign_up(session, email, password, username)
        if role is not None:
            identity = update_role(session, identity, role)
        if is_admin:
            profile = session.get(Profile, identity.id)
            profile.is_admin = True
            session.add(profile)
            session.commit()
            session.refresh(identity)
        return identity

    return _make


@pytest.fixture
def login(client):
    def _login(identity):
        client.cookies.set("session", create_session_token(identity.id, identity.role))
        return client

    return _login


@pytest.fixture
def donation_fields():
    return dict(DONATION_FIELDS)
