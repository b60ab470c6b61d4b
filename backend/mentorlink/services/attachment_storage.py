# backend/mentorlink/services/attachment_storage.py
"""
Storage backends for message attachments.

``R2AttachmentStorage`` writes to a Cloudflare R2 bucket (S3-compatible)
with query-signed SigV4 PUT requests, so no AWS SDK is needed.
``UnconfiguredAttachmentStorage`` is used when no bucket is configured: it
accepts every upload and only builds URLs, which keeps local development
and tests free of network calls.

Both return ``(stored, status_code)`` from ``upload_bytes``.
"""

from datetime import datetime, timezone
import hashlib
import hmac
import logging
from typing import Dict, Optional, Tuple
from urllib.parse import quote, urlencode

import requests

from ..core.config import Settings

logger = logging.getLogger(__name__)

UPLOAD_TIMEOUT_SECONDS = 30
PRESIGN_EXPIRES_SECONDS = 300


class SigV4Signer:
    """Query-string SigV4 signing for a single S3-compatible host."""

    algorithm = "AWS4-HMAC-SHA256"

    def __init__(self, access_key_id: str, secret_key: str, *, region: str = "auto"):
        self.access_key_id = access_key_id
        self.secret_key = secret_key
        self.region = region

    def _signing_key(self, datestamp: str) -> bytes:
        key = ("AWS4" + self.secret_key).encode("utf-8")
        for part in (datestamp, self.region, "s3", "aws4_request"):
            key = hmac.new(key, part.encode("utf-8"), hashlib.sha256).digest()
        return key

    def presign(
        self,
        method: str,
        host: str,
        path: str,
        *,
        expires_seconds: int = PRESIGN_EXPIRES_SECONDS,
        content_type: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> str:
        now = now or datetime.now(timezone.utc)
        amz_date = now.strftime("%Y%m%dT%H%M%SZ")
        scope = f"{now:%Y%m%d}/{self.region}/s3/aws4_request"

        params: Dict[str, str] = {
            "X-Amz-Algorithm": self.algorithm,
            "X-Amz-Content-Sha256": "UNSIGNED-PAYLOAD",
            "X-Amz-Credential": f"{self.access_key_id}/{scope}",
            "X-Amz-Date": amz_date,
            "X-Amz-Expires": str(expires_seconds),
            "X-Amz-SignedHeaders": "host",
        }
        if content_type:
            params["content-type"] = content_type
        query = urlencode(sorted(params.items()), quote_via=quote, safe="-_.~")

        canonical_request = "\n".join(
            [method.upper(), path, query, f"host:{host}\n", "host", "UNSIGNED-PAYLOAD"]
        )
        string_to_sign = "\n".join(
            [
                self.algorithm,
                amz_date,
                scope,
                hashlib.sha256(canonical_request.encode("utf-8")).hexdigest(),
            ]
        )
        signature = hmac.new(
            self._signing_key(f"{now:%Y%m%d}"), string_to_sign.encode("utf-8"), hashlib.sha256
        ).hexdigest()
        return f"https://{host}{path}?{query}&X-Amz-Signature={signature}"


class R2AttachmentStorage:
    def __init__(
        self,
        *,
        account_id: str,
        bucket_name: str,
        signer: SigV4Signer,
        public_base_url: str = "",
    ):
        self.host = f"{account_id}.r2.cloudflarestorage.com"
        self.bucket_name = bucket_name
        self.signer = signer
        self.public_base_url = public_base_url.rstrip("/")

    @classmethod
    def from_settings(cls, settings: Settings) -> "R2AttachmentStorage":
        if not settings.storage_configured:
            raise RuntimeError("R2 configuration is missing; check r2_* settings")
        return cls(
            account_id=settings.r2_account_id,
            bucket_name=settings.r2_bucket_name,
            signer=SigV4Signer(
                settings.r2_access_key_id, settings.r2_secret_access_key.get_secret_value()
            ),
            public_base_url=settings.attachments_public_base_url,
        )

    def upload_bytes(
        self, object_key: str, data: bytes, content_type: str
    ) -> Tuple[bool, Optional[int]]:
        url = self.signer.presign(
            "PUT", self.host, f"/{self.bucket_name}/{object_key}", content_type=content_type
        )
        try:
            response = requests.put(
                url,
                data=data,
                headers={"Content-Type": content_type},
                timeout=UPLOAD_TIMEOUT_SECONDS,
            )
        except requests.RequestException as e:
            logger.error(f"[UPLOAD] R2 request failed for {object_key}: {e}")
            return False, None
        return 200 <= response.status_code < 300, response.status_code

    def public_url(self, object_key: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url}/{object_key}"
        return f"https://{self.host}/{self.bucket_name}/{object_key}"


class UnconfiguredAttachmentStorage:
    """Accepts uploads without storing them; URLs point at the public base."""

    def __init__(self, public_base_url: str = ""):
        self.public_base_url = public_base_url.rstrip("/")

    def upload_bytes(
        self, object_key: str, data: bytes, content_type: str
    ) -> Tuple[bool, Optional[int]]:
        logger.debug("[UPLOAD] Storage not configured, discarding %s", object_key)
        return True, None

    def public_url(self, object_key: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url}/{object_key}"
        return f"/attachments/{object_key}"
