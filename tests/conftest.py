"""
Test configuration and fixtures
"""
import os

# Must be set before unisocial is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key-for-testing-only"
os.environ["ENVIRONMENT"] = "testing"

from typing import Callable, Dict, Generator

import pytest
from faker import Faker
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from unisocial.main import app
from unisocial.db.base_class import Base
from unisocial.db.session import get_db
from unisocial.common.websocket import manager
from unisocial.core.security import get_password_hash, create_access_token
from unisocial.models.user import User
from unisocial.services.relationship_service import RelationshipService

fake = Faker()

TEST_PASSWORD = "testpassword123"
# bcrypt is slow; hash once for every fixture user
TEST_PASSWORD_HASH = get_password_hash(TEST_PASSWORD)

test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=test_engine)


class RecordingPresence:
    """Presence double: users in ``online`` get their notifications recorded."""

    def __init__(self):
        self.online = set()
        self.sent = []

    def is_online(self, user_id: int) -> bool:
        return user_id in self.online

    async def notify(self, user_id: int, event: str, payload: Dict) -> bool:
        if user_id not in self.online:
            return False
        self.sent.append((user_id, event, payload))
        return True


@pytest.fixture
def db_session() -> Generator[Session, None, None]:
    """Fresh schema per test"""
    Base.metadata.create_all(bind=test_engine)
    session = TestSessionLocal()
    yield session
    session.close()
    Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def presence() -> RecordingPresence:
    return RecordingPresence()


@pytest.fixture
def service(db_session: Session, presence: RecordingPresence) -> RelationshipService:
    return RelationshipService(db_session, presence=presence)


@pytest.fixture
def make_user(db_session: Session) -> Callable[..., User]:
    def _make(username: str = None, **kwargs) -> User:
        user = User(
            username=username or fake.unique.user_name(),
            name=kwargs.pop("name", fake.name()),
            hashed_password=TEST_PASSWORD_HASH,
            **kwargs,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make


@pytest.fixture
def auth_headers() -> Callable[[User], Dict[str, str]]:
    def _headers(user: User) -> Dict[str, str]:
        token = create_access_token({"sub": user.username})
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """Test client sharing the test session with the app"""

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
    manager.active_connections.clear()
