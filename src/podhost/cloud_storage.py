"""
S3-compatible blob store (AWS S3, DigitalOcean Spaces, MinIO).
"""

import logging
from typing import Any, Iterator, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .exceptions import StorageError
from .storage import CHUNK_SIZE, BlobStore

_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}


class S3BlobStore(BlobStore):
    """A client for an S3-compatible bucket."""

    def __init__(
        self,
        bucket_name: str,
        endpoint_url: Optional[str] = None,
        key_id: Optional[str] = None,
        access_key: Optional[str] = None,
        region_name: Optional[str] = None,
        client: Any = None,
    ):
        if not bucket_name:
            raise ValueError("bucket_name is required for S3 storage")
        self.bucket_name = bucket_name
        self.logger = logging.getLogger(__name__)
        if client is None:
            session = boto3.session.Session()
            client = session.client(
                "s3",
                region_name=region_name,
                endpoint_url=endpoint_url,
                aws_access_key_id=key_id,
                aws_secret_access_key=access_key,
            )
        self.client = client

    def _error(self, action: str, path: str, e: Exception) -> StorageError:
        self.logger.error("S3 %s failed for %s: %s", action, path, e)
        return StorageError(f"Failed to {action} {path}: {e}", path)

    def put_object(self, path: str, data: bytes) -> None:
        try:
            self.client.put_object(Bucket=self.bucket_name, Key=path, Body=data)
        except (ClientError, BotoCoreError) as e:
            raise self._error("write", path, e) from e

    def upload_file(self, path: str, local_path: str) -> None:
        try:
            self.client.upload_file(local_path, self.bucket_name, path)
        except (ClientError, BotoCoreError, OSError) as e:
            raise self._error("upload", path, e) from e
        self.logger.info("Uploaded %s to bucket %s", path, self.bucket_name)

    def get_object(self, path: str) -> bytes:
        try:
            response = self.client.get_object(Bucket=self.bucket_name, Key=path)
            return response["Body"].read()
        except (ClientError, BotoCoreError) as e:
            raise self._error("read", path, e) from e

    def get_object_stream(
        self, path: str, start: int = 0, end: Optional[int] = None
    ) -> Iterator[bytes]:
        kwargs = {"Bucket": self.bucket_name, "Key": path}
        if start or end is not None:
            last = "" if end is None else str(end - 1)
            kwargs["Range"] = f"bytes={start}-{last}"
        try:
            response = self.client.get_object(**kwargs)
        except (ClientError, BotoCoreError) as e:
            raise self._error("open", path, e) from e
        return response["Body"].iter_chunks(chunk_size=CHUNK_SIZE)

    def download_file(self, path: str, local_path: str) -> None:
        try:
            self.client.download_file(self.bucket_name, path, local_path)
        except (ClientError, BotoCoreError, OSError) as e:
            raise self._error("download", path, e) from e

    def exists(self, path: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket_name, Key=path)
        except ClientError as e:
            if str(e.response.get("Error", {}).get("Code")) in _NOT_FOUND_CODES:
                return False
            raise self._error("check", path, e) from e
        return True

    def delete(self, path: str) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket_name, Key=path)
        except (ClientError, BotoCoreError) as e:
            raise self._error("delete", path, e) from e

    def list_by_prefix(self, prefix: str) -> List[str]:
        keys: List[str] = []
        try:
            paginator = self.client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket_name, Prefix=prefix):
                keys.extend(item["Key"] for item in page.get("Contents", []))
        except (ClientError, BotoCoreError) as e:
            raise self._error("list", prefix, e) from e
        return keys

    def size(self, path: str) -> int:
        try:
            response = self.client.head_object(Bucket=self.bucket_name, Key=path)
        except (ClientError, BotoCoreError) as e:
            raise self._error("stat", path, e) from e
        return int(response["ContentLength"])

    def copy(self, src_path: str, dst_path: str) -> None:
        try:
            self.client.copy(
                {"Bucket": self.bucket_name, "Key": src_path},
                self.bucket_name,
                dst_path,
            )
        except (ClientError, BotoCoreError) as e:
            raise self._error("copy", src_path, e) from e
