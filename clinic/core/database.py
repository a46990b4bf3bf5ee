import time
from typing import Dict, Generator, Optional, Tuple

import redis
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .config import settings


def _make_engine(url: str):
    if url.startswith("sqlite"):
        # TestClient runs requests on another thread than the fixtures
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(
        url,
        pool_size=5,
        max_overflow=10,
        pool_timeout=30,
        pool_recycle=1800,
        pool_pre_ping=True,
    )


engine = _make_engine(settings.get_database_url)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


class InMemoryRedis:
    """The subset of the redis client used by the doctor cache, kept in a dict."""

    def __init__(self):
        self._entries: Dict[str, Tuple[str, Optional[float]]] = {}

    def setex(self, key, ttl, value):
        self._entries[key] = (value, time.monotonic() + ttl)
        return True

    def get(self, key):
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and expires_at <= time.monotonic():
            del self._entries[key]
            return None
        return value

    def delete(self, *keys):
        return sum(1 for key in keys if self._entries.pop(key, None) is not None)

    def flushall(self):
        self._entries.clear()
        return True


if settings.TESTING:
    redis_client = InMemoryRedis()
else:
    redis_client = redis.from_url(settings.REDIS_URL, decode_responses=True)


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_redis():
    return redis_client


def init_db():
    """Create any missing tables."""
    from .. import models  # noqa: F401  registers every table on Base.metadata

    Base.metadata.create_all(bind=engine)
