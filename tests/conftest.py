# tests/conftest.py
from __future__ import annotations

from collections.abc import Callable, Generator, Iterator
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from feedline.api.v1.dependencies import get_notifier, get_store_dep
from feedline.client.notices import NoticeBoard
from feedline.core.security import create_access_token
from feedline.db.session import Base
from feedline.db.store import RelationStore
from feedline.main import app as fastapi_app
from feedline.models import Comment, Community, Poll, PollOption, Post, UserProfile
from feedline.services.feed import FeedService
from feedline.services.notifications import NotificationDispatcher, NotificationService
from feedline.services.relations import RelationService
from feedline.services.toggles import ToggleEngine

TEST_DB_URL = "sqlite://"
BASE_TIME = datetime(2024, 5, 1, 12, 0, 0, tzinfo=UTC)


@pytest.fixture(scope="session")
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def session_factory(engine: Engine) -> Iterator[sessionmaker[Session]]:
    factory = sessionmaker(
        bind=engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )
    try:
        yield factory
    finally:
        # Ensure each test sees a clean database; the store commits for real.
        with engine.begin() as cleanup_conn:
            for table in reversed(Base.metadata.sorted_tables):
                cleanup_conn.execute(table.delete())


@pytest.fixture()
def store(session_factory: sessionmaker[Session]) -> RelationStore:
    return RelationStore(
        session_factory,
        timeout=5.0,
        serialize=True,
        require_composite_indexes=True,
    )


@pytest.fixture()
def relations(store: RelationStore) -> RelationService:
    return RelationService(store)


@pytest.fixture()
def toggles(relations: RelationService) -> ToggleEngine:
    """Toggle engine without a notification dispatcher."""
    return ToggleEngine(relations)


@pytest.fixture()
def notification_service(store: RelationStore) -> NotificationService:
    return NotificationService(store)


@pytest.fixture()
def feed_service(store: RelationStore) -> FeedService:
    return FeedService(store, page_size=15, max_page_size=100)


class Seeder:
    """Writes fixture rows directly, bypassing the services under test."""

    def __init__(self, factory: sessionmaker[Session]) -> None:
        self._factory = factory
        self._tick = 0

    def add(self, *rows: Any) -> None:
        with self._factory() as session, session.begin():
            session.add_all(rows)

    def get(self, model: type[Any], key: str) -> Any:
        with self._factory() as session:
            return session.get(model, key)

    def set(self, model: type[Any], key: str, **values: Any) -> None:
        with self._factory() as session, session.begin():
            row = session.get(model, key)
            for name, value in values.items():
                setattr(row, name, value)

    def next_time(self) -> datetime:
        self._tick += 1
        return BASE_TIME + timedelta(seconds=self._tick)

    def user(self, user_id: str, **values: Any) -> UserProfile:
        profile = UserProfile(id=user_id, display_name=values.pop("display_name", user_id), **values)
        self.add(profile)
        return profile

    def community(self, community_id: str, **values: Any) -> Community:
        community = Community(
            id=community_id,
            slug=values.pop("slug", community_id),
            name=values.pop("name", community_id.title()),
            **values,
        )
        self.add(community)
        return community

    def post(self, post_id: str, author_id: str = "author", **values: Any) -> Post:
        values.setdefault("created_at", self.next_time())
        values.setdefault("content", f"post {post_id}")
        post = Post(id=post_id, author_id=author_id, hashtags=[], **values)
        self.add(post)
        return post

    def posts(self, count: int, prefix: str = "p", **values: Any) -> list[Post]:
        return [self.post(f"{prefix}{index:03d}", **values) for index in range(count)]

    def comment(self, comment_id: str, post_id: str, author_id: str = "author") -> Comment:
        comment = Comment(
            id=comment_id,
            post_id=post_id,
            author_id=author_id,
            content="comment",
            created_at=self.next_time(),
        )
        self.add(comment)
        return comment

    def poll(self, post_id: str, options: list[str], ends_at: datetime | None = None) -> Poll:
        poll = Poll(post_id=post_id, ends_at=ends_at, total_votes=0)
        rows: list[Any] = [poll]
        for position, text in enumerate(options):
            rows.append(
                PollOption(
                    id=f"{post_id}:{position}",
                    post_id=post_id,
                    position=position,
                    text=text,
                    votes=0,
                )
            )
        self.add(*rows)
        return poll


@pytest.fixture()
def seed(session_factory: sessionmaker[Session]) -> Seeder:
    return Seeder(session_factory)


@pytest.fixture(scope="session")
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture()
def client(app: FastAPI, store: RelationStore) -> Iterator[TestClient]:
    idle_notifier = NotificationDispatcher(NotificationService(store), enabled=False)
    app.dependency_overrides[get_store_dep] = lambda: store
    app.dependency_overrides[get_notifier] = lambda: idle_notifier
    try:
        yield TestClient(app, base_url="http://test")
    finally:
        app.dependency_overrides.pop(get_store_dep, None)
        app.dependency_overrides.pop(get_notifier, None)


@pytest.fixture()
def auth_headers() -> Callable[[str], dict[str, str]]:
    """Return a factory of bearer headers for an actor id."""

    def _headers(actor_id: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(actor_id)}"}

    return _headers


class FakeClock:
    """Monotonic clock the tests move by hand."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def notices() -> NoticeBoard:
    return NoticeBoard()
