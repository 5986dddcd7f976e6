"""pytest configuration and fixtures."""

import os

# Set required environment variables for testing before any imports
os.environ.setdefault("ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ADMIN_PASSWORD", "admin-secret")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("TWITTER_API_IO_KEY", "test-key")
os.environ.setdefault("CLAIM_PACKAGE_ID", "0x" + "ab" * 32)
os.environ.setdefault("ADMIN_SUI_WALLET_ADDRESS", "0x" + "aa" * 32)
os.environ.setdefault("SCHEDULER_ENABLED", "false")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from giverep.database import Base, get_db  # noqa: E402
from giverep.main import app  # noqa: E402

ADMIN_HEADERS = {"Authorization": "Bearer admin-secret"}


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
def db(engine):
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(db):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers():
    return dict(ADMIN_HEADERS)


@pytest.fixture
def make_project(db):
    from giverep.models.project import LoyaltyProject

    def _make(**kwargs):
        kwargs.setdefault("name", "Test Project")
        kwargs.setdefault("twitter_handle", "testproj")
        project = LoyaltyProject(**kwargs)
        db.add(project)
        db.commit()
        db.refresh(project)
        return project

    return _make


@pytest.fixture
def add_member(db):
    from giverep.models.loyalty_member import LoyaltyMember

    def _add(project, handle, is_active=True):
        member = LoyaltyMember(project_id=project.id, twitter_handle=handle, is_active=is_active)
        db.add(member)
        db.commit()
        return member

    return _add


@pytest.fixture
def add_tweet(db):
    """Store a tweet by ``author`` mentioning ``project``'s handle."""
    from datetime import datetime
    from giverep.models.tweet import Tweet, TweetMention

    counter = {"n": 0}

    def _add(project, author, views=0, likes=0, retweets=0, replies=0, content="gm", created_at=None):
        counter["n"] += 1
        tweet = Tweet(
            tweet_id=f"{1000 + counter['n']}",
            author_handle=author,
            author_name=author.title(),
            content=content,
            views=views,
            likes=likes,
            retweets=retweets,
            replies=replies,
            created_at=created_at or datetime.utcnow(),
        )
        tweet.mentions.append(TweetMention(handle=project.twitter_handle.lower()))
        db.add(tweet)
        db.commit()
        return tweet

    return _add
