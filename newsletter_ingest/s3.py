"""S3 content store for raw EML blobs.

All boto3 calls are wrapped with ``asyncio.to_thread()`` to avoid blocking.
"""

from __future__ import annotations

import asyncio

import boto3
import structlog
from botocore.exceptions import BotoCoreError, ClientError

from .config import S3Config
from .errors import ContentFetchError
from .interface import ContentStore

logger = structlog.get_logger()


class S3ContentStore(ContentStore):
    """Read raw messages written to the bucket by the mail receiver."""

    def __init__(self, config: S3Config) -> None:
        self._config = config
        self._client = None  # type: ignore[assignment]

    async def start(self) -> None:
        """Create the boto3 S3 client."""
        kwargs: dict = {"region_name": self._config.region}
        if self._config.endpoint_url:
            kwargs["endpoint_url"] = self._config.endpoint_url
        self._client = await asyncio.to_thread(boto3.client, "s3", **kwargs)
        logger.info("s3_content_store_started", bucket=self._config.bucket)

    async def stop(self) -> None:
        """Clean up the boto3 client."""
        self._client = None
        logger.info("s3_content_store_stopped")

    def _object_key(self, content_key: str) -> str:
        if not self._config.prefix:
            return content_key
        return f"{self._config.prefix.rstrip('/')}/{content_key}"

    async def fetch(self, content_key: str) -> bytes:
        """Download the raw message stored under *content_key*."""
        assert self._client is not None, "S3 client not started"
        key = self._object_key(content_key)
        try:
            response = await asyncio.to_thread(
                self._client.get_object,
                Bucket=self._config.bucket,
                Key=key,
            )
            raw_bytes: bytes = await asyncio.to_thread(response["Body"].read)
        except (ClientError, BotoCoreError) as exc:
            raise ContentFetchError(content_key, str(exc)) from exc
        logger.debug("raw_message_downloaded", key=key, size=len(raw_bytes))
        return raw_bytes

    async def list(self) -> list[str]:
        """List every content key under the configured prefix."""
        assert self._client is not None, "S3 client not started"
        return await asyncio.to_thread(self._list_sync)

    def _list_sync(self) -> list[str]:
        paginator = self._client.get_paginator("list_objects_v2")
        kwargs: dict = {"Bucket": self._config.bucket}
        prefix = ""
        if self._config.prefix:
            prefix = f"{self._config.prefix.rstrip('/')}/"
            kwargs["Prefix"] = prefix

        keys: list[str] = []
        for page in paginator.paginate(**kwargs):
            for obj in page.get("Contents", []):
                keys.append(obj["Key"].removeprefix(prefix))
        return keys
