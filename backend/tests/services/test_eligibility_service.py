"""Tests for the mentorship eligibility gate."""

from unittest.mock import MagicMock

import pytest

from mentorlink.core.exceptions import (
    NO_MENTORSHIP_CONNECTION,
    NoMentorshipConnectionException,
    RepositoryException,
)
from mentorlink.models import MentorshipStatus
from mentorlink.services.eligibility_service import EligibilityService


class TestEligibilityService:
    def test_accepted_connection_is_eligible_in_both_directions(self, db, mentor, student, connect):
        connect(mentor, student)
        service = EligibilityService(db)

        assert service.is_eligible(mentor.id, student.id) is True
        assert service.is_eligible(student.id, mentor.id) is True

    @pytest.mark.parametrize(
        "status",
        [MentorshipStatus.PENDING, MentorshipStatus.REJECTED, MentorshipStatus.CANCELLED],
    )
    def test_non_accepted_connection_is_not_eligible(self, db, mentor, student, connect, status):
        connect(mentor, student, status=status)
        assert EligibilityService(db).is_eligible(mentor.id, student.id) is False

    def test_no_connection_is_not_eligible(self, db, mentor, outsider):
        assert EligibilityService(db).is_eligible(mentor.id, outsider.id) is False

    def test_self_is_not_eligible(self, db, mentor):
        assert EligibilityService(db).is_eligible(mentor.id, mentor.id) is False

    def test_revocation_takes_effect_immediately(self, db, mentor, student, connect):
        request = connect(mentor, student)
        service = EligibilityService(db)
        assert service.is_eligible(mentor.id, student.id) is True

        request.status = MentorshipStatus.CANCELLED
        db.commit()

        assert service.is_eligible(mentor.id, student.id) is False

    def test_ensure_eligible_raises_forbidden(self, db, mentor, outsider):
        with pytest.raises(NoMentorshipConnectionException) as exc_info:
            EligibilityService(db).ensure_eligible(mentor.id, outsider.id)
        assert exc_info.value.code == NO_MENTORSHIP_CONNECTION
        assert exc_info.value.status_code == 403

    def test_lookup_failure_fails_closed(self, db):
        service = EligibilityService(db)
        service.repository = MagicMock()
        service.repository.has_accepted_connection.side_effect = RepositoryException("db down")
        service.repository.accepted_partner_ids.side_effect = RepositoryException("db down")

        assert service.is_eligible("a", "b") is False
        assert service.connected_user_ids("a") == set()

    def test_connected_user_ids(self, db, make_user, mentor, student, outsider, connect):
        other_mentor = make_user(name="Other Mentor")
        connect(mentor, student)
        connect(other_mentor, student)
        connect(mentor, outsider, status=MentorshipStatus.PENDING)

        assert EligibilityService(db).connected_user_ids(student.id) == {
            mentor.id,
            other_mentor.id,
        }
