"""Tests for message body validation."""

from unittest.mock import patch

import pytest

from mentorlink.core.exceptions import ValidationException
from mentorlink.services.message_service import MessageService, validate_message_payload


class TestValidateMessagePayload:
    def test_text_message_is_trimmed(self):
        message_type, content, attachments = validate_message_payload("text", "  hello  ", None)
        assert message_type == "text"
        assert content == "hello"
        assert attachments == []

    def test_missing_type_defaults_to_text(self):
        message_type, _, _ = validate_message_payload(None, "hi", None)
        assert message_type == "text"

    @pytest.mark.parametrize("content", [None, "", "   \n\t"])
    def test_empty_text_rejected(self, content):
        with pytest.raises(ValidationException) as exc_info:
            validate_message_payload("text", content, None)
        assert exc_info.value.code == "CONTENT_REQUIRED"

    def test_unknown_type_rejected(self):
        with pytest.raises(ValidationException) as exc_info:
            validate_message_payload("sticker", "hi", None)
        assert exc_info.value.code == "INVALID_MESSAGE_TYPE"

    def test_media_requires_attachments(self):
        with pytest.raises(ValidationException) as exc_info:
            validate_message_payload("image", None, [])
        assert exc_info.value.code == "ATTACHMENTS_REQUIRED"

    def test_media_without_caption_is_allowed(self):
        attachment = {"url": "https://cdn.example.com/a.png", "type": "image"}
        message_type, content, attachments = validate_message_payload("image", None, [attachment])
        assert message_type == "image"
        assert content is None
        assert attachments == [attachment]

    def test_content_length_is_capped(self):
        with patch("mentorlink.services.message_service.settings") as mock_settings:
            mock_settings.message_max_length = 5
            with pytest.raises(ValidationException) as exc_info:
                validate_message_payload("text", "too long", None)
        assert exc_info.value.code == "CONTENT_TOO_LONG"


class TestClampLimit:
    def test_default_when_missing(self):
        with patch("mentorlink.services.message_service.settings") as mock_settings:
            mock_settings.message_page_size = 50
            mock_settings.message_page_size_max = 100
            assert MessageService.clamp_limit(None) == 50
            assert MessageService.clamp_limit(0) == 50

    def test_capped_at_maximum(self):
        with patch("mentorlink.services.message_service.settings") as mock_settings:
            mock_settings.message_page_size = 50
            mock_settings.message_page_size_max = 100
            assert MessageService.clamp_limit(500) == 100
            assert MessageService.clamp_limit(10) == 10
