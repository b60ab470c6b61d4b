# backend/tests/conftest.py
"""
Pytest configuration.

Sets testing mode BEFORE any application imports so settings, the engine
and the presence backend are built for an in-memory SQLite database with
local-only realtime delivery.
"""

import os
import sys

os.environ["IS_TESTING"] = "true"
os.environ["CI"] = "true"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["PRESENCE_BACKEND"] = "local"
os.environ["REALTIME_RELAY_URL"] = ""
os.environ["ENVIRONMENT"] = "test"

# Add the backend directory to Python path so imports work
backend_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if backend_dir not in sys.path:
    sys.path.insert(0, backend_dir)

from datetime import timedelta
from typing import Callable, Dict

from fastapi.testclient import TestClient
import pytest
from sqlalchemy.orm import Session

from mentorlink.auth import create_access_token
from mentorlink.database import Base, SessionLocal, engine, get_db
from mentorlink.main import app
from mentorlink.models import MentorshipRequest, MentorshipStatus, User, UserRole


@pytest.fixture(scope="function")
def db():
    """Fresh schema and session for each test."""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def make_user(db: Session) -> Callable[..., User]:
    counter = {"n": 0}

    def _make(name: str = None, role: str = UserRole.STUDENT, is_active: bool = True) -> User:
        counter["n"] += 1
        user = User(
            name=name or f"User {counter['n']}",
            email=f"user{counter['n']}@example.com",
            role=role,
            is_active=is_active,
        )
        db.add(user)
        db.commit()
        return user

    return _make


@pytest.fixture
def connect(db: Session) -> Callable[..., MentorshipRequest]:
    """Create a mentorship request between a mentor and a student."""

    def _connect(
        mentor: User, student: User, status: str = MentorshipStatus.ACCEPTED
    ) -> MentorshipRequest:
        request = MentorshipRequest(mentor_id=mentor.id, student_id=student.id, status=status)
        db.add(request)
        db.commit()
        return request

    return _connect


@pytest.fixture
def mentor(make_user) -> User:
    return make_user(name="Maya Mentor", role=UserRole.MENTOR)


@pytest.fixture
def student(make_user) -> User:
    return make_user(name="Sam Student", role=UserRole.STUDENT)


@pytest.fixture
def outsider(make_user) -> User:
    return make_user(name="Xavier Outsider", role=UserRole.STUDENT)


@pytest.fixture
def connected_pair(mentor: User, student: User, connect):
    connect(mentor, student)
    return mentor, student


def auth_headers_for(user: User) -> Dict[str, str]:
    token = create_access_token({"sub": user.id}, expires_delta=timedelta(minutes=30))
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers():
    return auth_headers_for


@pytest.fixture(scope="function")
def client(db: Session):
    """Create a test client with the test database."""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db

    test_client = TestClient(app)

    yield test_client

    app.dependency_overrides.clear()
    test_client.close()
