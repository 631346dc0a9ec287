import os

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("GOOGLE_CLIENT_ID", "test-client-id.apps.googleusercontent.com")
os.environ.setdefault("SMTP_SERVER", "localhost")
os.environ.setdefault("SMTP_PORT", "2525")
os.environ.setdefault("SMTP_USER", "store@example.com")
os.environ.setdefault("SMTP_PASSWORD", "not-a-real-password")
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["BCRYPT_ROUNDS"] = "4"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app import models
from app.core import dependencies
from app.core.config import settings
from app.core.exceptions import OAuthVerificationError
from app.core.google import GoogleIdentity
from app.core.otp import OtpRegistry
from app.core.security import TokenIssuer
from app.core.store import InMemoryStore
from app.database import Base, get_db
from app.main import app


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeMailer:
    def __init__(self):
        self.sent = []
        self.ok = True

    def send_otp_email(self, to_email, otp, expires_minutes):
        if not self.ok:
            return False
        self.sent.append({"to": to_email, "otp": otp, "expires_minutes": expires_minutes})
        return True

    def last_code_for(self, email):
        for message in reversed(self.sent):
            if message["to"] == email:
                return message["otp"]
        return None


class FakeGoogleVerifier:
    def __init__(self):
        self.identities = {}

    async def verify(self, id_token):
        identity = self.identities.get(id_token)
        if identity is None:
            raise OAuthVerificationError()
        return identity

    def add(self, id_token, email, subject):
        self.identities[id_token] = GoogleIdentity(email=email, subject=subject)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(engine):
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return InMemoryStore(clock=clock)


@pytest.fixture
def registry(store, clock):
    return OtpRegistry(store, ttl_seconds=300, clock=clock)


@pytest.fixture
def issuer():
    return TokenIssuer.from_settings(settings)


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def google():
    return FakeGoogleVerifier()


@pytest.fixture
def client(engine, registry, issuer, mailer, google, store):
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[dependencies.get_otp_registry] = lambda: registry
    app.dependency_overrides[dependencies.get_token_issuer] = lambda: issuer
    app.dependency_overrides[dependencies.get_mailer] = lambda: mailer
    app.dependency_overrides[dependencies.get_google_verifier] = lambda: google
    app.dependency_overrides[dependencies.get_used_token_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def user_factory(db_session):
    from app import crud

    def create(email="a@x.com", password="Secret123!", google_id=None):
        if password is None:
            return crud.create_google_user(db_session, email=email, google_id=google_id)
        user = crud.create_user(db_session, email=email, password=password)
        if google_id:
            user = crud.link_google_id(db_session, user, google_id)
        return user

    return create


@pytest.fixture
def password_hash_of(db_session):
    def lookup(email):
        db_session.expire_all()
        user = db_session.query(models.User).filter(models.User.email == email).first()
        return user.password_hash if user else None

    return lookup
