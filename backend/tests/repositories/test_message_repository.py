"""Tests for MessageRepository."""

from datetime import datetime, timedelta, timezone

from mentorlink.models import Message
from mentorlink.repositories.conversation_repository import ConversationRepository
from mentorlink.repositories.message_repository import MessageRepository


def _conversation_key(db, a, b):
    conversation, _ = ConversationRepository(db).find_or_create(a.id, b.id)
    db.commit()
    return conversation.conversation_key


def _message(repo, key, sender, recipient, content, created_at):
    return repo.create(
        conversation_key=key,
        sender_id=sender.id,
        recipient_id=recipient.id,
        message_type="text",
        content=content,
        attachments=[],
        created_at=created_at,
    )


class TestMessageRepository:
    def test_create_message_loads_participants(self, db, mentor, student):
        repo = MessageRepository(db)
        key = _conversation_key(db, mentor, student)

        message = repo.create_message(
            conversation_key=key,
            sender_id=student.id,
            recipient_id=mentor.id,
            message_type="text",
            content="Hello",
        )
        db.commit()

        assert message.sender.name == student.name
        assert message.recipient.id == mentor.id
        assert message.is_read is False
        assert message.is_hidden is False
        assert message.attachments == []

    def test_list_pages_backwards_oldest_first(self, db, mentor, student):
        repo = MessageRepository(db)
        key = _conversation_key(db, mentor, student)
        base = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
        for i in range(5):
            _message(repo, key, student, mentor, f"m{i}", base + timedelta(minutes=i))
        db.commit()

        latest = repo.list_for_conversation(key, mentor.id, limit=2)
        assert [m.content for m in latest] == ["m3", "m4"]

        older = repo.list_for_conversation(key, mentor.id, limit=2, before=latest[0].created_at)
        assert [m.content for m in older] == ["m1", "m2"]

    def test_deleted_by_viewer_is_excluded_for_viewer_only(self, db, mentor, student):
        repo = MessageRepository(db)
        key = _conversation_key(db, mentor, student)
        message = _message(repo, key, student, mentor, "hello", datetime.now(timezone.utc))
        db.commit()

        hidden = repo.add_deletion(repo.get_for_update(message.id), student.id)
        db.commit()

        assert hidden is False
        assert repo.list_for_conversation(key, student.id) == []
        assert [m.id for m in repo.list_for_conversation(key, mentor.id)] == [message.id]

    def test_both_deletions_hide_message(self, db, mentor, student):
        repo = MessageRepository(db)
        key = _conversation_key(db, mentor, student)
        message = _message(repo, key, student, mentor, "hello", datetime.now(timezone.utc))
        db.commit()

        repo.add_deletion(repo.get_for_update(message.id), student.id)
        db.commit()
        hidden = repo.add_deletion(repo.get_for_update(message.id), mentor.id)
        db.commit()

        assert hidden is True
        assert repo.deleted_by(message.id) == {student.id, mentor.id}
        assert db.query(Message).filter(Message.id == message.id).one().is_hidden is True

    def test_repeat_deletion_is_noop(self, db, mentor, student):
        repo = MessageRepository(db)
        key = _conversation_key(db, mentor, student)
        message = _message(repo, key, student, mentor, "hello", datetime.now(timezone.utc))
        db.commit()

        repo.add_deletion(repo.get_for_update(message.id), student.id)
        db.commit()
        hidden = repo.add_deletion(repo.get_for_update(message.id), student.id)
        db.commit()

        assert hidden is False
        assert repo.deleted_by(message.id) == {student.id}

    def test_mark_many_read_only_touches_incoming(self, db, mentor, student):
        repo = MessageRepository(db)
        key = _conversation_key(db, mentor, student)
        now = datetime.now(timezone.utc)
        _message(repo, key, student, mentor, "one", now)
        _message(repo, key, student, mentor, "two", now + timedelta(seconds=1))
        outgoing = _message(repo, key, mentor, student, "reply", now + timedelta(seconds=2))
        db.commit()

        assert repo.mark_many_read(key, mentor.id, student.id) == 2
        db.commit()
        assert repo.mark_many_read(key, mentor.id, student.id) == 0

        db.expire_all()
        assert db.query(Message).filter(Message.id == outgoing.id).one().is_read is False

    def test_search_escapes_wildcards_and_respects_deletions(self, db, mentor, student):
        repo = MessageRepository(db)
        key = _conversation_key(db, mentor, student)
        now = datetime.now(timezone.utc)
        _message(repo, key, student, mentor, "Progress is 100% done", now)
        _message(repo, key, student, mentor, "Progress is 1000 done", now + timedelta(seconds=1))
        deleted = _message(repo, key, student, mentor, "100% secret", now + timedelta(seconds=2))
        db.commit()
        repo.add_deletion(repo.get_for_update(deleted.id), mentor.id)
        db.commit()

        results = repo.search_for_user(mentor.id, "100%")
        assert [m.content for m in results] == ["Progress is 100% done"]

        sender_results = repo.search_for_user(student.id, "100%")
        assert len(sender_results) == 2
