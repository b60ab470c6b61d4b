"""
Concurrency tests against a file-backed SQLite database.

Each worker uses its own session and connection, the way concurrent
requests do, so uniqueness and counter updates are enforced by the
database rather than by in-process locking.
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone

import pytest
from sqlalchemy.orm import sessionmaker

from mentorlink.database import Base, create_app_engine
from mentorlink.models import Conversation, ConversationParticipant, User
from mentorlink.repositories.conversation_repository import ConversationRepository

WORKERS = 8


@pytest.fixture
def file_session_factory(tmp_path):
    engine = create_app_engine(f"sqlite:///{tmp_path / 'concurrency.db'}")
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    try:
        yield factory
    finally:
        engine.dispose()


@pytest.fixture
def pair(file_session_factory):
    session = file_session_factory()
    try:
        a = User(name="Mentor", email="mentor@example.com", role="mentor")
        b = User(name="Student", email="student@example.com", role="student")
        session.add_all([a, b])
        session.commit()
        return a.id, b.id
    finally:
        session.close()


@pytest.mark.slow
class TestConcurrentWrites:
    def test_find_or_create_yields_one_conversation(self, file_session_factory, pair):
        a, b = pair

        def worker(index):
            session = file_session_factory()
            try:
                first, second = (a, b) if index % 2 == 0 else (b, a)
                conversation, created = ConversationRepository(session).find_or_create(
                    first, second
                )
                session.commit()
                return conversation.id, created
            finally:
                session.close()

        with ThreadPoolExecutor(max_workers=WORKERS) as pool:
            results = list(pool.map(worker, range(WORKERS)))

        assert len({conversation_id for conversation_id, _ in results}) == 1
        assert sum(1 for _, created in results if created) == 1

        session = file_session_factory()
        try:
            assert session.query(Conversation).count() == 1
            assert session.query(ConversationParticipant).count() == 2
        finally:
            session.close()

    def test_unread_increments_are_not_lost(self, file_session_factory, pair):
        a, b = pair
        session = file_session_factory()
        try:
            conversation, _ = ConversationRepository(session).find_or_create(a, b)
            session.commit()
            conversation_id = conversation.id
        finally:
            session.close()

        sends = WORKERS * 3

        def worker(index):
            session = file_session_factory()
            try:
                ConversationRepository(session).record_message_sent(
                    conversation_id,
                    recipient_id=b,
                    sender_id=a,
                    preview=f"message {index}",
                    message_type="text",
                    sent_at=datetime.now(timezone.utc),
                )
                session.commit()
            finally:
                session.close()

        with ThreadPoolExecutor(max_workers=WORKERS) as pool:
            list(pool.map(worker, range(sends)))

        session = file_session_factory()
        try:
            repo = ConversationRepository(session)
            assert repo.get_unread_count(conversation_id, b) == sends
            assert repo.get_unread_count(conversation_id, a) == 0
        finally:
            session.close()
