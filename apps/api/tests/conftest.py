"""Pytest configuration and fixtures."""

import os

# Settings are cached on first import, so the test environment goes first
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("KV_BACKEND", "memory")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("LEDGER_CONFIRMATION_DELAY_SECONDS", "0")
os.environ.setdefault("RECORD_SUBMISSION_DELAY_SECONDS", "0")

from datetime import datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session as DBSession
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from ecosangam_api.auth.capabilities import RECORD_STORE_WRITER
from ecosangam_api.auth.credentials import hash_credential
from ecosangam_api.commands import MRVCommands
from ecosangam_api.db.base import Base
from ecosangam_api.identity.service import Session
from ecosangam_api.ledger.client import SimulatedLedgerClient
from ecosangam_api.ledger.locks import KeyedLocks
from ecosangam_api.models import Organization, Project, User
from ecosangam_api.schemas import Location, ProjectCreate
from ecosangam_api.services.container import build_services
from ecosangam_api.settings import Settings
from ecosangam_api.storage.kv import MemoryKeyValueStore

# Use test database URL from environment or default to SQLite in-memory
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite:///:memory:")

TEST_CREDENTIAL = "secret123"


class Connectivity:
    """Switchable network state for the record submitter."""

    def __init__(self):
        self.online = True

    def __call__(self) -> bool:
        return self.online


@pytest.fixture(scope="function")
def db():
    """
    Create a test database session.

    Set TEST_DATABASE_URL to run against a real PostgreSQL instance.
    """
    if TEST_DATABASE_URL.startswith("sqlite"):
        engine = create_engine(
            TEST_DATABASE_URL,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        engine = create_engine(TEST_DATABASE_URL)

    Base.metadata.create_all(engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(engine)


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        environment="test",
        kv_backend="memory",
        ledger_confirmation_delay_seconds=0.0,
        record_submission_delay_seconds=0.0,
        crediting_period_years=1.0,
    )


@pytest.fixture
def kv() -> MemoryKeyValueStore:
    return MemoryKeyValueStore(prefix="test")


@pytest.fixture
def locks() -> KeyedLocks:
    return KeyedLocks()


@pytest.fixture
def ledger_client() -> SimulatedLedgerClient:
    return SimulatedLedgerClient(delay_seconds=0.0)


@pytest.fixture
def connectivity() -> Connectivity:
    return Connectivity()


@pytest.fixture
def services(db, kv, locks, ledger_client, connectivity, test_settings):
    return build_services(
        db,
        kv=kv,
        settings=test_settings,
        ledger_client=ledger_client,
        connectivity=connectivity,
        locks=locks,
    )


@pytest.fixture
def commands(services) -> MRVCommands:
    return MRVCommands(services)


@pytest.fixture
def organizations(db: DBSession) -> dict[str, Organization]:
    """One organization per type used in tests."""
    orgs = {
        "platform": Organization(id="org-platform", name="EcoSangam Platform", type="private"),
        "ngo": Organization(id="org-ngo", name="Green Earth NGO", type="NGO"),
        "other_ngo": Organization(id="org-other-ngo", name="Blue Coast Trust", type="NGO"),
        "panchayat": Organization(id="org-panchayat", name="Sundarbans Panchayat", type="panchayat"),
        "government": Organization(id="org-gov", name="Ministry of Environment", type="government"),
        "verifier": Organization(id="org-verifier", name="Carbon Standards International", type="verifier"),
    }
    db.add_all(orgs.values())
    db.commit()
    return orgs


def _make_user(db: DBSession, user_id: str, role: str, organization_id: str) -> User:
    user = User(
        id=user_id,
        name=f"{role.title()} User",
        email=f"{user_id}@example.org",
        role=role,
        organization_id=organization_id,
        credential_hash=hash_credential(TEST_CREDENTIAL),
    )
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def admin_user(db, organizations) -> User:
    return _make_user(db, "usr-admin", "admin", "org-platform")


@pytest.fixture
def ngo_user(db, organizations) -> User:
    return _make_user(db, "usr-ngo", "ngo", "org-ngo")


@pytest.fixture
def other_ngo_user(db, organizations) -> User:
    return _make_user(db, "usr-other-ngo", "ngo", "org-other-ngo")


@pytest.fixture
def panchayat_user(db, organizations) -> User:
    return _make_user(db, "usr-panchayat", "panchayat", "org-panchayat")


@pytest.fixture
def gov_user(db, organizations) -> User:
    return _make_user(db, "usr-gov", "government", "org-gov")


@pytest.fixture
def verifier_user(db, organizations) -> User:
    return _make_user(db, "usr-verifier", "verifier", "org-verifier")


def session_for(user: User) -> Session:
    """A live session for ``user`` without going through login."""
    return Session(token=f"token-{user.id}", user=user, expires_at=datetime.utcnow() + timedelta(hours=1))


def project_input(**overrides) -> ProjectCreate:
    data = {
        "name": "Sundarbans Mangrove Conservation",
        "ecosystem_type": "mangrove",
        "location": Location(lat=21.9497, lng=88.75, state="West Bengal", district="South 24 Parganas"),
        "area_hectares": 450.2,
        "methodology": "vcs",
    }
    data.update(overrides)
    return ProjectCreate(**data)


@pytest.fixture
def pending_project(services, ngo_user) -> Project:
    return services.registry.create_project(ngo_user, project_input())


@pytest.fixture
def active_project(db, services, pending_project) -> Project:
    services.registry.transition(pending_project, "active", RECORD_STORE_WRITER)
    db.commit()
    return pending_project
