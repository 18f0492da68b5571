# sheetgenius/conftest.py
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import delete

from sheetgenius.core.config import Settings
from sheetgenius.tests.mocks import FakeBillingProvider, FakeGroq, PRO_PRICE, STARTER_PRICE


@pytest.fixture(scope="session")
def test_settings():
    """Settings isolated from any local .env file."""
    return Settings(
        _env_file=None,
        ENV="test",
        DATABASE_URL="sqlite://",
        STRIPE_SECRET_KEY="sk_test_123",
        STRIPE_WEBHOOK_SECRET="whsec_test_123",
        STRIPE_STARTER_PRICE_ID=STARTER_PRICE,
        STRIPE_PRO_PRICE_ID=PRO_PRICE,
        GROQ_API_KEY="gsk_test_123",
    )


@pytest.fixture(scope="session", autouse=True)
def create_tables(test_settings):
    """
    Point the row store at an in-memory SQLite database for the session.
    """
    from sheetgenius.core.database import init_engine, create_all_tables, reset_engine

    init_engine(test_settings.DATABASE_URL)
    create_all_tables()
    yield
    reset_engine()


@pytest.fixture(scope="function", autouse=True)
def reset_db():
    """Empty the profiles table before each test."""
    from sheetgenius.core.database import get_db_session, profiles

    with get_db_session() as session:
        session.execute(delete(profiles))
    yield


@pytest.fixture
def profile_store():
    from sheetgenius.features.profiles.service import ProfileStore
    return ProfileStore()


@pytest.fixture
def fake_provider():
    return FakeBillingProvider()


@pytest.fixture
def fake_groq():
    return FakeGroq()


@pytest.fixture
def app(test_settings, fake_provider, fake_groq, profile_store):
    from sheetgenius.main import create_app
    return create_app(
        test_settings,
        billing_provider=fake_provider,
        llm_client=fake_groq,
        profile_store=profile_store,
    )


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def unconfigured_db(monkeypatch):
    """Row store with no DATABASE_URL; the session engine is restored afterwards."""
    from sheetgenius.core import database

    monkeypatch.setattr(database, "_engine", None)
    monkeypatch.setattr(database, "_SessionLocal", None)
    monkeypatch.setattr(database.settings, "DATABASE_URL", None)
    yield


@pytest.fixture
def tableless_store():
    """ProfileStore over a database where the profiles table was never created."""
    from contextlib import contextmanager

    from sqlalchemy import create_engine
    from sqlalchemy.orm import sessionmaker
    from sqlalchemy.pool import StaticPool

    from sheetgenius.features.profiles.service import ProfileStore

    engine = create_engine("sqlite://", poolclass=StaticPool, connect_args={"check_same_thread": False})
    factory = sessionmaker(bind=engine)

    @contextmanager
    def session_scope():
        session = factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    yield ProfileStore(session_scope=session_scope)
    engine.dispose()
