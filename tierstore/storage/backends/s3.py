"""S3 object-storage backend using boto3.

boto3 clients are thread-safe, so one client is created per backend and
each blocking call runs in a worker thread via ``asyncio.to_thread``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from tierstore.errors import RetrievalError, StorageFatalError
from tierstore.storage.backends.base import ObjectStorageBackend
from tierstore.storage.config import StorageConfig

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}


class S3ObjectStorage(ObjectStorageBackend):
    """Objects stored in one S3 bucket, keyed by path key.

    Attributes:
        bucket: Bucket name.
        client: boto3 S3 client.
    """

    def __init__(self, bucket: str, client: Any) -> None:
        self.bucket = bucket
        self.client = client

    @classmethod
    def from_config(cls, config: StorageConfig) -> "S3ObjectStorage":
        """Create a backend from resolved storage config.

        A custom endpoint keeps the configured region name.
        """
        client = boto3.client(
            "s3",
            region_name=config.region,
            endpoint_url=config.endpoint,
            aws_access_key_id=config.access_key_id,
            aws_secret_access_key=config.secret_access_key,
            config=Config(max_pool_connections=64),
        )
        logger.info(
            f"S3 object storage: bucket={config.bucket} region={config.region}"
            + (f" endpoint={config.endpoint}" if config.endpoint else "")
        )
        return cls(bucket=config.bucket, client=client)

    async def put_object(self, key: str, data: bytes, content_type: str) -> None:
        """Upload an object."""
        try:
            await asyncio.to_thread(
                self.client.put_object,
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Upload failed for {key}: {e}")
            raise StorageFatalError(key, e) from e

    async def get_object(self, key: str) -> bytes:
        """Download an object."""
        try:
            response = await asyncio.to_thread(
                self.client.get_object,
                Bucket=self.bucket,
                Key=key,
            )
            return await asyncio.to_thread(response["Body"].read)
        except (BotoCoreError, ClientError) as e:
            raise RetrievalError(key, e) from e

    async def exists(self, key: str) -> bool:
        """Check if an object exists with a HEAD request."""
        try:
            await asyncio.to_thread(self.client.head_object, Bucket=self.bucket, Key=key)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in _NOT_FOUND_CODES:
                return False
            raise RetrievalError(key, e) from e
        except BotoCoreError as e:
            raise RetrievalError(key, e) from e
        return True
