"""Shared pytest fixtures for test suite"""
import os
import secrets
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Generator, Optional, Tuple
from unittest.mock import patch

import fakeredis
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["STATUS_CHECKER_ENABLED"] = "false"
os.environ["CALLBACK_SECRET"] = ""
os.environ["HEYGEN_API_KEY"] = "test-heygen-key"
os.environ["KLING_API_KEY"] = "test-kling-key"

# Add backend directory to Python path
backend_dir = Path(__file__).parent.parent
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

from reelflow.main import app
from reelflow.core.errors import AdapterError
from reelflow.db import redis as redis_module
from reelflow.db.session import get_db
from reelflow.models import Base
from reelflow.models.tiktok import TikTokAccount
from reelflow.models.user import User
from reelflow.models.video import Video
from reelflow.services.generation import GenerationAdapter, GenerationResult
from reelflow.services.publish import PublishResult


# SQLite in-memory database for testing
TEST_DATABASE_URL = "sqlite:///:memory:"

# Create test engine with StaticPool for in-memory database
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

# Create test session factory
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


class FakeGenerationAdapter(GenerationAdapter):
    """In-memory provider: hands out sequential job ids and serves scripted results"""

    def __init__(self):
        super().__init__(api_key="fake-key")
        self.provider = "heygen"
        self.submitted = []
        self.results: Dict[str, Optional[GenerationResult]] = {}
        self.reject_when = None
        self.fetch_error: Optional[AdapterError] = None

    def submit(self, config: Dict[str, Any]) -> str:
        if self.reject_when is not None and self.reject_when(config):
            raise AdapterError("HTTP 400 - invalid avatar", provider=self.provider)
        self.submitted.append(config)
        return f"job-{len(self.submitted)}"

    def fetch_result(self, job_id: str) -> Optional[GenerationResult]:
        if self.fetch_error is not None:
            raise self.fetch_error
        return self.results.get(job_id)

    def normalize_callback(self, payload: Dict[str, Any]) -> Tuple[str, Optional[GenerationResult]]:
        return payload["job_id"], self.results.get(payload["job_id"])


class FakePublishAdapter:
    provider = "tiktok"

    def __init__(self):
        self.submitted = []
        self.results: Dict[str, Optional[PublishResult]] = {}
        self.reject = False

    def submit(self, access_token, request):
        if self.reject:
            raise AdapterError("TikTok API error: spam_risk_too_many_posts - limit reached", provider=self.provider)
        self.submitted.append((access_token, request))
        return f"pub-{len(self.submitted)}"

    def fetch_result(self, access_token, publish_id):
        return self.results.get(publish_id)


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """Create a fresh SQLite in-memory database session for each test"""
    # Create all tables
    Base.metadata.create_all(bind=test_engine)

    # Create session
    session = TestSessionLocal()

    try:
        yield session
    finally:
        session.close()
        # Drop all tables after test
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture(scope="function", autouse=True)
def mock_redis():
    """Mock Redis client using fakeredis"""
    fake_redis = fakeredis.FakeStrictRedis(decode_responses=True)
    with patch.object(redis_module, "_client", fake_redis):
        yield fake_redis


@pytest.fixture(scope="function")
def fake_adapter():
    """Route every generation job through FakeGenerationAdapter"""
    adapter = FakeGenerationAdapter()

    def get_adapter(provider, client=None):
        adapter.provider = provider
        return adapter

    with patch("reelflow.services.video_service.get_generation_adapter", side_effect=get_adapter):
        yield adapter


@pytest.fixture(scope="function")
def fake_publisher():
    publisher = FakePublishAdapter()
    with patch("reelflow.services.post_service.get_publish_adapter", return_value=publisher):
        yield publisher


@pytest.fixture(scope="function")
def client(db_session: Session, mock_redis) -> Generator[TestClient, None, None]:
    """FastAPI test client with test database and mocked Redis"""

    # Override get_db dependency to use test database
    def override_get_db():
        try:
            yield db_session
        finally:
            pass  # Don't close session here, handled by fixture

    app.dependency_overrides[get_db] = override_get_db

    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        # Cleanup - always clear overrides
        app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def test_user(db_session: Session) -> User:
    user = User(email="creator@example.com")
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture(scope="function")
def test_user_2(db_session: Session) -> User:
    """Second user for ownership tests"""
    user = User(email="other@example.com")
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture(scope="function")
def authenticated_client(client: TestClient, test_user: User, mock_redis) -> TestClient:
    """Client carrying a session cookie for test_user"""
    session_id = secrets.token_urlsafe(32)
    redis_module.set_session(session_id, test_user.id)
    client.cookies.set("session_id", session_id)
    return client


@pytest.fixture(scope="function")
def tiktok_account(db_session: Session, test_user: User) -> TikTokAccount:
    account = TikTokAccount(
        user_id=test_user.id,
        open_id="open-123",
        display_name="creator",
        access_token="tiktok-access-token",
        is_active=True
    )
    db_session.add(account)
    db_session.commit()
    db_session.refresh(account)
    return account


def make_video(db: Session, user: User, status: str = "draft", **fields) -> Video:
    """Insert a video directly in the given status"""
    defaults = {
        "generation_type": "heygen",
        "title": "Test video",
        "progress": 0,
    }
    if status == "generating":
        defaults.update(
            provider_job_id="job-existing",
            progress=10,
            generation_started_at=datetime.now(timezone.utc)
        )
    if status in ("ready", "posting", "posted"):
        defaults.update(remote_url="https://cdn.example.com/video.mp4", progress=100)
    if status == "failed":
        defaults.update(error_message="Generation failed")
    defaults.update(fields)

    video = Video(user_id=user.id, status=status, **defaults)
    db.add(video)
    db.commit()
    db.refresh(video)
    return video


@pytest.fixture(scope="function")
def video_factory(db_session: Session, test_user: User):
    def factory(status: str = "draft", user: Optional[User] = None, **fields) -> Video:
        return make_video(db_session, user or test_user, status=status, **fields)
    return factory
