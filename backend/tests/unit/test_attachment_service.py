"""Tests for attachment uploads."""

from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest
import requests

from mentorlink.core.exceptions import TransientInfraException, ValidationException
from mentorlink.services.attachment_service import AttachmentService, resource_type_for
from mentorlink.services.attachment_storage import (
    R2AttachmentStorage,
    SigV4Signer,
    UnconfiguredAttachmentStorage,
)


@pytest.fixture
def storage():
    client = MagicMock()
    client.upload_bytes.return_value = (True, 200)
    client.public_url.side_effect = lambda key: f"https://cdn.example.com/{key}"
    return client


class TestResourceType:
    @pytest.mark.parametrize(
        "content_type,expected",
        [
            ("image/png", "image"),
            ("video/mp4", "video"),
            ("audio/mpeg", "audio"),
            ("application/pdf", "raw"),
            ("text/plain", "raw"),
        ],
    )
    def test_resource_type(self, content_type, expected):
        assert resource_type_for(content_type) == expected


class TestAttachmentUpload:
    def test_upload_stores_bytes_and_describes_object(self, storage):
        service = AttachmentService(storage=storage)

        stored = service.upload("01HUSER", "photo.PNG", "image/png", b"\x89PNG data")

        object_key = storage.upload_bytes.call_args.args[0]
        assert object_key.startswith("mentorlink/messages/01HUSER/")
        assert object_key.endswith(".png")
        assert stored.url == f"https://cdn.example.com/{object_key}"
        assert stored.public_id == object_key[: -len(".png")]
        assert stored.format == "png"
        assert stored.size == len(b"\x89PNG data")
        assert stored.type == "image"

    def test_content_type_parameters_are_ignored(self, storage):
        stored = AttachmentService(storage=storage).upload(
            "01HUSER", "notes.txt", "text/plain; charset=utf-8", b"hello"
        )
        assert stored.type == "raw"

    def test_empty_file_rejected(self, storage):
        with pytest.raises(ValidationException) as exc_info:
            AttachmentService(storage=storage).upload("01HUSER", "a.png", "image/png", b"")
        assert exc_info.value.code == "FILE_REQUIRED"
        storage.upload_bytes.assert_not_called()

    def test_disallowed_type_rejected(self, storage):
        with pytest.raises(ValidationException) as exc_info:
            AttachmentService(storage=storage).upload(
                "01HUSER", "run.exe", "application/x-msdownload", b"MZ"
            )
        assert exc_info.value.code == "FILE_TYPE_NOT_ALLOWED"

    def test_oversized_file_rejected(self, storage, monkeypatch):
        from mentorlink.services import attachment_service

        monkeypatch.setattr(attachment_service.settings, "attachment_max_bytes", 4)
        with pytest.raises(ValidationException) as exc_info:
            AttachmentService(storage=storage).upload("01HUSER", "a.png", "image/png", b"12345")
        assert exc_info.value.code == "FILE_TOO_LARGE"

    def test_storage_failure_is_transient(self, storage):
        storage.upload_bytes.return_value = (False, 500)
        with pytest.raises(TransientInfraException) as exc_info:
            AttachmentService(storage=storage).upload("01HUSER", "a.png", "image/png", b"data")
        assert exc_info.value.code == "STORAGE_UNAVAILABLE"
        assert exc_info.value.status_code == 503




class TestSigV4Signer:
    def test_presigned_url_is_deterministic_for_fixed_time(self):
        signer = SigV4Signer("AKID", "secret")
        now = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

        first = signer.presign("PUT", "acct.r2.cloudflarestorage.com", "/bucket/a.png", now=now)
        second = signer.presign("PUT", "acct.r2.cloudflarestorage.com", "/bucket/a.png", now=now)

        assert first == second
        assert first.startswith("https://acct.r2.cloudflarestorage.com/bucket/a.png?")
        assert "X-Amz-Credential=AKID%2F20240501%2Fauto%2Fs3%2Faws4_request" in first
        assert "X-Amz-Date=20240501T120000Z" in first
        assert "X-Amz-Expires=300" in first

    def test_signature_depends_on_secret(self):
        now = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
        one = SigV4Signer("AKID", "secret-one").presign("PUT", "h", "/b/k", now=now)
        two = SigV4Signer("AKID", "secret-two").presign("PUT", "h", "/b/k", now=now)

        assert one.rsplit("X-Amz-Signature=", 1)[1] != two.rsplit("X-Amz-Signature=", 1)[1]


class TestR2AttachmentStorage:
    @pytest.fixture
    def r2(self):
        return R2AttachmentStorage(
            account_id="acct",
            bucket_name="chat",
            signer=SigV4Signer("AKID", "secret"),
        )

    def test_upload_puts_to_bucket(self, r2):
        with patch("mentorlink.services.attachment_storage.requests.put") as put:
            put.return_value = MagicMock(status_code=200)

            assert r2.upload_bytes("a/b.png", b"data", "image/png") == (True, 200)

        url = put.call_args.args[0]
        assert url.startswith("https://acct.r2.cloudflarestorage.com/chat/a/b.png?")
        assert put.call_args.kwargs["headers"] == {"Content-Type": "image/png"}

    def test_rejected_upload(self, r2):
        with patch("mentorlink.services.attachment_storage.requests.put") as put:
            put.return_value = MagicMock(status_code=403)

            assert r2.upload_bytes("a/b.png", b"data", "image/png") == (False, 403)

    def test_network_error(self, r2):
        with patch(
            "mentorlink.services.attachment_storage.requests.put",
            side_effect=requests.ConnectionError("unreachable"),
        ):
            assert r2.upload_bytes("a/b.png", b"data", "image/png") == (False, None)

    def test_public_url_prefers_public_base(self):
        r2 = R2AttachmentStorage(
            account_id="acct",
            bucket_name="chat",
            signer=SigV4Signer("AKID", "secret"),
            public_base_url="https://files.example.com/",
        )

        assert r2.public_url("a/b.png") == "https://files.example.com/a/b.png"

    def test_public_url_falls_back_to_bucket(self, r2):
        assert r2.public_url("a/b.png") == "https://acct.r2.cloudflarestorage.com/chat/a/b.png"


class TestUnconfiguredAttachmentStorage:
    def test_accepts_upload(self):
        assert UnconfiguredAttachmentStorage().upload_bytes("k", b"x", "image/png") == (True, None)

    def test_public_url_without_base(self):
        assert UnconfiguredAttachmentStorage().public_url("a/b.png") == "/attachments/a/b.png"

    def test_public_url_with_base(self):
        storage = UnconfiguredAttachmentStorage("https://files.example.com")
        assert storage.public_url("a/b.png") == "https://files.example.com/a/b.png"
