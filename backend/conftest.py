"""
Pytest configuration and shared fixtures for StreamWatch tests.
"""

import os

# Settings are read at import time; configure them before importing the app
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "")
os.environ.setdefault("SENTRY_DSN", "")
os.environ.setdefault("YOUTUBE_API_KEY", "")
os.environ.setdefault("CRON_SECRET", "test-cron-secret")
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret")
os.environ.setdefault("SCHEDULER_ENABLED", "false")

import pytest
from typing import Any, Callable, Dict, Generator, List, Optional
from datetime import datetime
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient
from jose import jwt

from streamwatch.main import app
from streamwatch.config import settings
from streamwatch.database import Base, get_db
from streamwatch.models.stream_models import TrackedBroadcast, UserBroadcast
from streamwatch.platforms.youtube.exceptions import NotModified
from streamwatch.services.polling_runtime import PollingRuntime, build_polling_runtime


# Database setup
SQLALCHEMY_TEST_DATABASE_URL = "sqlite:///:memory:"


@pytest.fixture(scope="function")
def test_db() -> Generator[Session, None, None]:
    """
    Create a fresh in-memory SQLite database for each test.
    """
    engine = create_engine(
        SQLALCHEMY_TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    db = TestingSessionLocal()

    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


# YouTube fakes
class FakeYouTubeAPI:
    """
    Stand-in for YouTubeAPI.

    Serves items from `videos`, answers 304 when the request etag matches
    `response_etag`, and raises queued `errors` first.
    """

    def __init__(self):
        self.videos: Dict[str, Dict[str, Any]] = {}
        self.calls: List[Dict[str, Any]] = []
        self.errors: List[Exception] = []
        self.response_etag = "etag-1"

    def list_videos(self, video_ids: List[str], etag: Optional[str] = None) -> Dict[str, Any]:
        self.calls.append({"ids": list(video_ids), "etag": etag})

        if self.errors:
            raise self.errors.pop(0)

        if etag is not None and etag == self.response_etag:
            raise NotModified(etag)

        return {
            "etag": self.response_etag,
            "items": [self.videos[v] for v in video_ids if v in self.videos]
        }


def make_video_item(
    video_id: str,
    title: Optional[str] = "Live stream",
    live: Optional[str] = "live",
    viewers: Optional[int] = 100,
    likes: Optional[int] = 10,
    views: Optional[int] = 1000,
    description: Optional[str] = "Stream description",
    thumbnail: Optional[str] = "https://i.ytimg.com/vi/x/maxresdefault.jpg"
) -> Dict[str, Any]:
    """Build a `videos.list` item. Pass None to omit a field."""
    snippet = {"channelId": "UC123", "channelTitle": "Test Channel"}
    if title is not None:
        snippet["title"] = title
    if description is not None:
        snippet["description"] = description
    if thumbnail is not None:
        snippet["thumbnails"] = {"maxres": {"url": thumbnail}}
    if live is not None:
        snippet["liveBroadcastContent"] = live

    live_details = {"actualStartTime": "2026-01-01T12:00:00Z"}
    if viewers is not None:
        live_details["concurrentViewers"] = str(viewers)

    statistics = {}
    if likes is not None:
        statistics["likeCount"] = str(likes)
    if views is not None:
        statistics["viewCount"] = str(views)

    return {
        "id": video_id,
        "snippet": snippet,
        "liveStreamingDetails": live_details,
        "statistics": statistics
    }


@pytest.fixture
def video_item() -> Callable[..., Dict[str, Any]]:
    """Factory for `videos.list` items."""
    return make_video_item


@pytest.fixture
def fake_api() -> FakeYouTubeAPI:
    """Fresh fake YouTube client."""
    return FakeYouTubeAPI()


@pytest.fixture
def polling_runtime(fake_api: FakeYouTubeAPI) -> PollingRuntime:
    """Polling runtime wired to the fake YouTube client."""
    return build_polling_runtime(settings, api=fake_api)


@pytest.fixture(scope="function")
def client(test_db: Session, polling_runtime: PollingRuntime) -> TestClient:
    """
    Create a test client with overridden database dependency.
    """
    def override_get_db():
        try:
            yield test_db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        # Startup leaves the runtime unset without YOUTUBE_API_KEY
        app.state.polling_runtime = polling_runtime
        yield test_client

    app.state.polling_runtime = None
    app.dependency_overrides.clear()


# Auth fixtures
def make_access_token(user_id: str) -> str:
    """Sign a JWT the way the identity provider does."""
    return jwt.encode({"sub": user_id}, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


@pytest.fixture
def auth_headers() -> Dict[str, str]:
    """
    Create authentication headers with JWT token.
    """
    return {"Authorization": f"Bearer {make_access_token('user-1')}"}


@pytest.fixture
def auth_headers2() -> Dict[str, str]:
    """
    Create authentication headers for second user.
    """
    return {"Authorization": f"Bearer {make_access_token('user-2')}"}


@pytest.fixture
def cron_headers() -> Dict[str, str]:
    """Headers accepted by the poll trigger."""
    return {"Authorization": f"Bearer {settings.CRON_SECRET}"}


# Stream fixtures
@pytest.fixture
def make_broadcast(test_db: Session) -> Callable[..., TrackedBroadcast]:
    """
    Factory creating catalog rows.
    """
    def _make(video_id: str = "dQw4w9WgXcQ", follower: Optional[str] = None, **fields) -> TrackedBroadcast:
        values = {
            "channel_id": "UC123",
            "channel_title": "Test Channel",
            "title": "Live stream",
            "description": "Stream description",
            "thumbnail_url": "https://i.ytimg.com/vi/x/maxresdefault.jpg",
            "is_live": True,
        }
        values.update(fields)
        broadcast = TrackedBroadcast(youtube_video_id=video_id, **values)
        test_db.add(broadcast)
        test_db.flush()
        if follower:
            test_db.add(UserBroadcast(user_id=follower, stream_id=broadcast.id))
        test_db.commit()
        test_db.refresh(broadcast)
        return broadcast

    return _make


@pytest.fixture
def live_broadcast(make_broadcast) -> TrackedBroadcast:
    """A live stream followed by user-1."""
    return make_broadcast("dQw4w9WgXcQ", follower="user-1", last_fetched_at=datetime.utcnow())
