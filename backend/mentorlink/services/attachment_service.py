# backend/mentorlink/services/attachment_service.py
"""
Attachment uploads for chat messages.

Validates size and content type, stores the bytes through the configured
storage client and describes the stored object in the shape clients attach
to media messages.
"""

from dataclasses import dataclass
import logging
import mimetypes
from typing import Optional, Protocol, Tuple

import ulid

from ..core.config import settings
from ..core.exceptions import TransientInfraException, ValidationException
from .attachment_storage import R2AttachmentStorage, UnconfiguredAttachmentStorage

logger = logging.getLogger(__name__)


class StorageClient(Protocol):
    def upload_bytes(
        self, object_key: str, data: bytes, content_type: str
    ) -> Tuple[bool, Optional[int]]:
        ...

    def public_url(self, object_key: str) -> str:
        ...


def get_storage_client() -> StorageClient:
    if settings.storage_configured:
        return R2AttachmentStorage.from_settings(settings)
    return UnconfiguredAttachmentStorage(settings.attachments_public_base_url)


def resource_type_for(content_type: str) -> str:
    """Coarse media class: image, video, audio or raw."""
    major = content_type.split("/", 1)[0].lower()
    if major in ("image", "video", "audio"):
        return major
    return "raw"


@dataclass
class StoredAttachment:
    url: str
    public_id: str
    format: str
    size: int
    type: str


class AttachmentService:
    def __init__(self, storage: Optional[StorageClient] = None):
        self.storage = storage or get_storage_client()

    def upload(
        self,
        user_id: str,
        filename: Optional[str],
        content_type: Optional[str],
        data: bytes,
    ) -> StoredAttachment:
        """
        Raises:
            ValidationException: empty file, disallowed type, too large
            TransientInfraException: the storage backend rejected the upload
        """
        if not data:
            raise ValidationException("No file uploaded", code="FILE_REQUIRED")

        content_type = (content_type or "").split(";", 1)[0].strip().lower()
        if content_type not in settings.attachment_allowed_content_types:
            raise ValidationException(
                f"File type not allowed: {content_type or 'unknown'}",
                code="FILE_TYPE_NOT_ALLOWED",
            )
        if len(data) > settings.attachment_max_bytes:
            raise ValidationException(
                f"File exceeds {settings.attachment_max_bytes} bytes",
                code="FILE_TOO_LARGE",
            )

        extension = self._extension(filename, content_type)
        public_id = f"mentorlink/messages/{user_id}/{ulid.ULID()}"
        object_key = f"{public_id}.{extension}" if extension else public_id

        ok, status_code = self.storage.upload_bytes(object_key, data, content_type)
        if not ok:
            logger.warning(
                "[UPLOAD] Storage rejected upload",
                extra={"object_key": object_key, "status_code": status_code},
            )
            raise TransientInfraException(
                "Attachment storage is unavailable", code="STORAGE_UNAVAILABLE"
            )

        logger.info(
            "[UPLOAD] Stored attachment",
            extra={"object_key": object_key, "size": len(data), "user_id": user_id},
        )
        return StoredAttachment(
            url=self.storage.public_url(object_key),
            public_id=public_id,
            format=extension,
            size=len(data),
            type=resource_type_for(content_type),
        )

    @staticmethod
    def _extension(filename: Optional[str], content_type: str) -> str:
        if filename and "." in filename:
            return filename.rsplit(".", 1)[1].lower()
        guessed = mimetypes.guess_extension(content_type) or ""
        return guessed.lstrip(".")
