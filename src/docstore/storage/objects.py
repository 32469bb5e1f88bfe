"""
Object storage for uploads.

`ObjectStorage.put` stores bytes under a path and returns a publicly
resolvable URL. `S3ObjectStorage` talks to S3 (or any S3-compatible
endpoint) through boto3.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Optional
from urllib.parse import quote

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..errors import UploadError

logger = logging.getLogger(__name__)


class ObjectStorage(ABC):
    @abstractmethod
    def put(self, data: bytes, path: str, content_type: str) -> str:
        """Store ``data`` at ``path``; return its public URL."""
        ...


class S3ObjectStorage(ObjectStorage):
    def __init__(
        self,
        bucket: str,
        *,
        region: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        public_url: Optional[str] = None,
        client: Any = None,
    ):
        self.bucket = bucket
        self.region = region
        self.public_url = public_url.rstrip("/") if public_url else None
        self._s3 = client or boto3.client(
            "s3", region_name=region, endpoint_url=endpoint_url
        )

    def url_for(self, path: str) -> str:
        key = quote(path)
        if self.public_url:
            return f"{self.public_url}/{key}"
        if self.region:
            return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"
        return f"https://{self.bucket}.s3.amazonaws.com/{key}"

    def put(self, data: bytes, path: str, content_type: str) -> str:
        try:
            self._s3.put_object(
                Bucket=self.bucket, Key=path, Body=data, ContentType=content_type
            )
        except (ClientError, BotoCoreError) as exc:
            logger.error("upload to s3://%s/%s failed: %s", self.bucket, path, exc)
            raise UploadError(
                f"Upload failed for {path}: {exc}", operation="upload", key=path
            ) from exc
        return self.url_for(path)
