"""Shared pytest fixtures for oceanwatch tests."""
from datetime import datetime
from typing import Dict, Generator, List

import pytest
from sqlalchemy.orm import Session, sessionmaker

from oceanwatch.core.database import create_db_engine, create_session_factory, init_db
from oceanwatch.core.exceptions import FetchError


class FakeYowebClient:
    """
    Stand-in for YowebClient serving canned pages by URL.

    Unknown URLs raise FetchError with a 404, like a missing yoweb page.
    """

    def __init__(self, pages: Dict[str, str] = None):
        self.pages = dict(pages or {})
        self.requested: List[str] = []

    async def fetch(self, url: str) -> str:
        self.requested.append(url)
        if url not in self.pages:
            raise FetchError(url, "HTTP 404", status_code=404)
        return self.pages[url]

    async def aclose(self) -> None:
        pass


@pytest.fixture(scope="function")
def session_factory() -> Generator[sessionmaker, None, None]:
    """Session factory over a fresh in-memory database (one shared connection)."""
    engine = create_db_engine("sqlite://")
    init_db(engine)
    yield create_session_factory(engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(session_factory: sessionmaker) -> Generator[Session, None, None]:
    """Create fresh test database session with isolated in-memory database."""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def fake_client() -> FakeYowebClient:
    return FakeYowebClient()


@pytest.fixture
def scraped_at() -> datetime:
    return datetime(2024, 6, 1, 10, 30)
