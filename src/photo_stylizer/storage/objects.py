"""S3-compatible object storage for original and generated images.

Works against AWS S3 and S3-compatible services such as Aliyun OSS or MinIO;
`endpoint_url` selects the service.
"""

from __future__ import annotations

import logging
from typing import Any

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from photo_stylizer.errors import StorageError

logger = logging.getLogger(__name__)


class S3ObjectStore:
    """Thin wrapper over a boto3 S3 client bound to one bucket."""

    def __init__(
        self,
        *,
        bucket: str,
        region: str | None = None,
        endpoint_url: str | None = None,
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
        timeout_seconds: int = 10,
    ) -> None:
        if not bucket:
            raise ValueError("bucket is required")
        self.bucket = bucket
        aws_kwargs: dict[str, Any] = {}
        if access_key_id and secret_access_key:
            aws_kwargs["aws_access_key_id"] = access_key_id
            aws_kwargs["aws_secret_access_key"] = secret_access_key

        session = boto3.session.Session()
        self._client = session.client(
            "s3",
            region_name=region or None,
            endpoint_url=endpoint_url or None,
            config=Config(
                connect_timeout=timeout_seconds,
                read_timeout=timeout_seconds,
                # OSS only accepts virtual-hosted style addressing.
                s3={"addressing_style": "virtual"},
            ),
            **aws_kwargs,
        )

    def put(self, key: str, data: bytes, content_type: str) -> str:
        try:
            self._client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Failed to upload {key}: {exc}") from exc
        logger.info("object_store event=put key=%s bytes=%d", key, len(data))
        return key

    def get(self, key: str) -> bytes:
        try:
            response = self._client.get_object(Bucket=self.bucket, Key=key)
            return response["Body"].read()
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Failed to fetch {key}: {exc}") from exc
