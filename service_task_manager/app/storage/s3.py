"""
Pre-signed S3 upload URLs for task attachments.

Clients upload directly to the bucket; file bytes never pass through this
service. Object keys live under the caller's subject prefix.
"""

import re
import time
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Callable, Optional
from urllib.parse import quote

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from shared.errors import ExternalServiceError, ValidationError
from shared.logging import get_logger

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


@dataclass(frozen=True)
class UploadTicket:
    upload_url: str
    file_url: str
    key: str
    expires_in: int


def safe_file_name(file_name: str) -> str:
    """Reduce a client-supplied name to one safe path segment."""
    base = PurePosixPath(file_name.replace("\\", "/")).name
    cleaned = _UNSAFE_CHARS.sub("_", base).lstrip(".")
    if not cleaned:
        raise ValidationError("Invalid file name", details={"file_name": file_name})
    return cleaned[:200]


class S3AttachmentStorage:
    """Issues time-limited PUT URLs scoped to ``{subject}/attachments/``."""

    def __init__(
        self,
        bucket: Optional[str],
        *,
        region: Optional[str] = None,
        expires_in: int = 300,
        client=None,
        clock: Callable[[], float] = time.time,
    ):
        self.bucket = bucket
        self.expires_in = expires_in
        self.logger = get_logger("task-manager.storage.s3")
        self._clock = clock
        self._client = client or boto3.client(
            "s3",
            region_name=region,
            config=Config(signature_version="s3v4"),
        )

    def object_key(self, subject: str, file_name: str) -> str:
        millis = int(self._clock() * 1000)
        return f"{subject}/attachments/{millis}-{safe_file_name(file_name)}"

    def file_url(self, key: str) -> str:
        return f"https://{self.bucket}.s3.amazonaws.com/{quote(key)}"

    def issue_upload_url(self, subject: str, file_name: str, content_type: str) -> UploadTicket:
        if not self.bucket:
            raise ExternalServiceError("s3", "Attachment storage is not configured")

        key = self.object_key(subject, file_name)
        try:
            upload_url = self._client.generate_presigned_url(
                "put_object",
                Params={"Bucket": self.bucket, "Key": key, "ContentType": content_type},
                ExpiresIn=self.expires_in,
                HttpMethod="PUT",
            )
        except (BotoCoreError, ClientError) as e:
            self.logger.error("Error generating S3 pre-signed URL", key=key, error=str(e))
            raise ExternalServiceError("s3", "Failed to generate S3 upload URL", {"error": str(e)}) from e

        self.logger.info("Upload URL issued", key=key, expires_in=self.expires_in)
        return UploadTicket(
            upload_url=upload_url,
            file_url=self.file_url(key),
            key=key,
            expires_in=self.expires_in,
        )

    async def check_health(self) -> str:
        return "ok" if self.bucket else "unconfigured"
