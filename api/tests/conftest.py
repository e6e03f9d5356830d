import itertools
import random
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from mutual_match.database import Base
from mutual_match.errors import StoreUnavailable
from mutual_match.schemas import ProfileSnapshot
from mutual_match.services.matching import MatchingService
from mutual_match.services.profiles import ProfileStore
from mutual_match.store import DocumentStore

# Wednesday of 2026-W43 (Sunday 18 Oct .. Saturday 24 Oct)
WEDNESDAY = datetime(2026, 10, 21, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = WEDNESDAY):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class CountingStore(DocumentStore):
    """Counts writes; optionally fails the write numbered ``fail_on`` (1-based)."""

    def __init__(self, session_factory, fail_on: int | None = None):
        super().__init__(session_factory)
        self.fail_on = fail_on
        self._counter = itertools.count(1)
        self.writes: list[tuple[str, str]] = []

    def _count(self, collection: str, doc_id: str) -> None:
        n = next(self._counter)
        if self.fail_on is not None and n == self.fail_on:
            raise StoreUnavailable(f"injected failure on write {n}")
        self.writes.append((collection, doc_id))

    def set_document(self, collection, doc_id, value, merge=False):
        self._count(collection, doc_id)
        return super().set_document(collection, doc_id, value, merge=merge)

    def update_document(self, collection, doc_id, fields):
        self._count(collection, doc_id)
        return super().update_document(collection, doc_id, fields)


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        future=True,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    engine.dispose()


@pytest.fixture
def store(session_factory):
    return CountingStore(session_factory)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_service(store, clock):
    def _make(seed: int = 7, match_count: tuple[int, int] = (1, 3), target=None, atomic: bool = False) -> MatchingService:
        return MatchingService(
            target or store,
            clock=clock,
            rng=random.Random(seed),
            tz="UTC",
            match_count=match_count,
            atomic_generation=atomic,
        )

    return _make


def opted_in(user_id: str, **overrides) -> ProfileSnapshot:
    data = {
        "id": user_id,
        "display_name": user_id.title(),
        "email": f"{user_id}@test.com",
        "age": 27,
        "location": "Bogotá, Colombia",
        "hobbies": ["Música", "Cine"],
        "has_matching_consent": True,
        "matching_enabled": True,
        "is_public": True,
    }
    data.update(overrides)
    return ProfileSnapshot(**data)


@pytest.fixture
def add_profiles(store):
    def _add(*profiles: ProfileSnapshot) -> None:
        profiles_store = ProfileStore(store)
        for profile in profiles:
            profiles_store.upsert_profile(profile)
        store.writes.clear()

    return _add
