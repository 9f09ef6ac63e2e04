"""Pytest fixtures — per-test SQLite database for fast, isolated tests."""
import os

# Must be set before app.config is imported
os.environ.setdefault("EXPIRY_SWEEP_ENABLED", "false")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import uuid
from datetime import date, timedelta
from typing import Optional

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient

from app.database import Base, get_db
from app.main import app
from app.models.category import Category
from app.models.user import User, UserRole
from app.services import event_service
from app.utils.time_utils import at_clock

# Import all models so they register with Base.metadata
from app.models.event import Event                        # noqa: F401
from app.models.pencil_hold import PencilHold             # noqa: F401
from app.models.hold_transition import HoldTransition     # noqa: F401

EVENT_DAY = date(2030, 3, 15)
VENUE = {"name": "Town Hall", "address": "1 Queen Street", "city": "Auckland"}


@pytest.fixture(scope="function")
def db_engine(tmp_path):
    """Create a fresh SQLite file database for each test."""
    engine = create_engine(f"sqlite:///{tmp_path / 'test.db'}", connect_args={"check_same_thread": False})

    # Enable WAL mode for better concurrency
    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture(scope="function")
def db(session_factory):
    """Yield a database session, closed after the test."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def client(session_factory):
    """FastAPI TestClient with the database dependency overridden to use SQLite."""

    def _override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def local(day: date, clock: str):
    """UTC instant of a local HH:MM on ``day`` in the event timezone."""
    return at_clock(day, clock)


# ---------------------------------------------------------------------------
# Service-level helpers: write straight through the session
# ---------------------------------------------------------------------------
def make_user(db, role: str = "organizer", name: Optional[str] = None) -> User:
    user = User(
        name=name or f"{role.title()} User",
        email=f"{uuid.uuid4().hex[:10]}@example.org",
        role=UserRole(role),
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def make_category(db, name: Optional[str] = None) -> Category:
    category = Category(name=name or f"Category {uuid.uuid4().hex[:6]}")
    db.add(category)
    db.commit()
    db.refresh(category)
    return category


def make_event(
    db,
    creator: User,
    category: Category,
    day: date = EVENT_DAY,
    start: str = "14:00",
    end: str = "16:00",
    title: str = "Community Event",
    location: Optional[dict] = None,
    capacity: int = 50,
    status: str = "draft",
    with_clock: bool = True,
    end_day: Optional[date] = None,
):
    """Create an event on a local day; clock strings are stored unless ``with_clock`` is off."""
    end_day = end_day or day
    return event_service.create_event(
        db,
        title=title,
        category_id=category.category_id,
        start_date=local(day, start),
        end_date=local(end_day, end),
        location=location or dict(VENUE),
        capacity=capacity,
        created_by=creator.user_id,
        start_time=start if with_clock else None,
        end_time=end if with_clock else None,
        event_status=status,
    )


# ---------------------------------------------------------------------------
# API helpers: return the response JSON
# ---------------------------------------------------------------------------
def create_test_user(client: TestClient, name: str = "Test User", role: str = "organizer") -> dict:
    """Helper — POST /api/users and return response JSON."""
    resp = client.post("/api/users/", json={
        "name": name,
        "email": f"{uuid.uuid4().hex[:10]}@example.org",
        "role": role,
    })
    assert resp.status_code == 201, resp.text
    return resp.json()


def create_test_category(client: TestClient, name: Optional[str] = None) -> dict:
    """Helper — POST /api/categories and return response JSON."""
    resp = client.post("/api/categories/", json={"name": name or f"Category {uuid.uuid4().hex[:6]}"})
    assert resp.status_code == 201, resp.text
    return resp.json()


def event_payload(
    creator_id: str,
    category_id: str,
    day: date = EVENT_DAY,
    start: str = "14:00",
    end: str = "16:00",
    title: str = "Community Event",
    location: Optional[dict] = None,
    capacity: int = 50,
) -> dict:
    return {
        "title": title,
        "category_id": category_id,
        "start_date": local(day, start).isoformat(),
        "end_date": local(day, end).isoformat(),
        "start_time": start,
        "end_time": end,
        "location": location or dict(VENUE),
        "capacity": capacity,
        "created_by": creator_id,
    }


def create_test_event(client: TestClient, creator_id: str, category_id: str, **kwargs) -> dict:
    """Helper — POST /api/events and return response JSON."""
    resp = client.post("/api/events/", json=event_payload(creator_id, category_id, **kwargs))
    assert resp.status_code == 201, resp.text
    return resp.json()


def next_day(day: date = EVENT_DAY, days: int = 1) -> date:
    return day + timedelta(days=days)
