import os
os.environ["TESTING"] = "1"
os.environ["DATABASE_URL"] = "sqlite:///./test.db"
import pytest
from fastapi.testclient import TestClient

import sys
from pathlib import Path

import uuid
from datetime import datetime, timedelta, timezone

sys.path.append(str(Path(__file__).resolve().parents[2]))

from campusconnect.main import app
from campusconnect.database import Base, SessionLocal, engine, get_db
from campusconnect import models, notify, pubsub
from campusconnect.services import workflow

TestingSessionLocal = SessionLocal


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()

app.dependency_overrides[get_db] = override_get_db


@pytest.fixture(autouse=True)
def reset_state():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    notify.EMAIL_OUTBOX.clear()
    pubsub._redis = None
    yield


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture
def db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


def headers_for(user):
    return {"X-User-Id": str(user.id)}


def future_date(days: int = 7) -> datetime:
    return datetime.now(timezone.utc) + timedelta(days=days)


@pytest.fixture
def make_user(db):
    """
    purpose: persist users with a chosen role and department for workflow tests
    outputs: factory returning models.User bound to the test session
    """

    def _make(*, admin: bool = False, department: str | None = None, name: str | None = None, active: bool = True):
        user = models.User(
            email=f"{uuid.uuid4().hex[:12]}@example.com",
            full_name=name or ("Admin" if admin else "Student"),
            is_admin=admin,
            department=department,
            visibility=models.VISIBILITY_VISIBLE if active else models.VISIBILITY_HIDDEN,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


def event_fields(**overrides):
    fields = {
        "title": "Robotics Club Kickoff",
        "description": "Meet the team and see this year's builds.",
        "category": "technical",
        "date": future_date(),
        "time": "18:00",
        "location": "Hall B",
        "capacity": 50,
    }
    fields.update(overrides)
    return fields


def post_fields(**overrides):
    fields = {
        "title": "Study group for finals",
        "content": "Anyone up for a weekly study group before finals?",
        "category": "academics",
    }
    fields.update(overrides)
    return fields


def resource_fields(**overrides):
    fields = {
        "title": "Data Structures notes",
        "description": "Lecture notes covering trees and graphs.",
        "category": "notes",
        "subject": "Data Structures",
        "department": "CS",
        "semester": 3,
        "file_url": "https://files.example.com/ds-notes.pdf",
        "file_name": "ds-notes.pdf",
        "file_type": "application/pdf",
        "file_size": 2048,
    }
    fields.update(overrides)
    return fields


@pytest.fixture
def make_event(db):
    """Create an event through the workflow; pass approver to publish it."""

    def _make(organizer, *, approver=None, **overrides):
        event = workflow.create_item(db, organizer, models.Event.kind, event_fields(**overrides)).item
        if approver is not None and event.is_pending:
            workflow.approve_item(db, approver, models.Event.kind, event.id)
        db.refresh(event)
        return event

    return _make
