"""S3 helpers for report files, mapping sheets and generated CSVs.

Every call goes through ``retry_call`` so transient throttling or 5xx answers are
retried with backoff; anything still failing is raised as ``StorageError``.
"""

from typing import Callable, Dict, List, Optional, TypeVar

from botocore.exceptions import BotoCoreError, ClientError
from mypy_boto3_s3 import S3Client

from core.models import ObjectSummary
from core.retry import RetryPolicy, retry_call
from exceptions import StorageError
from logger import logger

T = TypeVar("T")


class S3BlobStore:
    """Thin wrapper around an S3 client with bounded retries."""

    def __init__(self, s3_client: S3Client, retry_policy: Optional[RetryPolicy] = None) -> None:
        self._s3 = s3_client
        self._policy = retry_policy or RetryPolicy()

    def _call(self, operation: str, bucket: str, key: Optional[str], fn: Callable[[], T]) -> T:
        try:
            return retry_call(f"s3:{operation}", fn, policy=self._policy)
        except (BotoCoreError, ClientError) as exc:
            logger.exception("S3 operation failed", operation=operation, bucket=bucket, key=key, error=str(exc))
            raise StorageError(operation, bucket, key) from exc

    def list_objects(self, bucket: str, prefix: str) -> List[ObjectSummary]:
        """List every object under ``prefix``; entries without key, timestamp or size are dropped."""

        def _list() -> List[ObjectSummary]:
            summaries: List[ObjectSummary] = []
            paginator = self._s3.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=bucket, Prefix=prefix):
                for obj in page.get("Contents", []):
                    key = obj.get("Key")
                    last_modified = obj.get("LastModified")
                    size = obj.get("Size")
                    if not key or last_modified is None or size is None:
                        continue
                    summaries.append(ObjectSummary(key=key, last_modified=last_modified, size=size))
            return summaries

        return self._call("list_objects_v2", bucket, prefix, _list)

    def get_bytes(self, bucket: str, key: str) -> bytes:
        def _get() -> bytes:
            response = self._s3.get_object(Bucket=bucket, Key=key)
            return response["Body"].read()

        return self._call("get_object", bucket, key, _get)

    def put_bytes(
        self,
        bucket: str,
        key: str,
        data: bytes,
        content_type: str = "text/csv",
        metadata: Optional[Dict[str, str]] = None,
    ) -> None:
        def _put() -> None:
            self._s3.put_object(Bucket=bucket, Key=key, Body=data, ContentType=content_type, Metadata=metadata or {})

        self._call("put_object", bucket, key, _put)
        logger.info("Uploaded object to S3", bucket=bucket, key=key, size=len(data))

    def copy_object(self, bucket: str, source_key: str, dest_key: str, metadata: Optional[Dict[str, str]] = None) -> None:
        def _copy() -> None:
            self._s3.copy_object(
                Bucket=bucket,
                Key=dest_key,
                CopySource={"Bucket": bucket, "Key": source_key},
                Metadata=metadata or {},
                MetadataDirective="REPLACE",
            )

        self._call("copy_object", bucket, source_key, _copy)

    def delete_object(self, bucket: str, key: str) -> None:
        def _delete() -> None:
            self._s3.delete_object(Bucket=bucket, Key=key)

        self._call("delete_object", bucket, key, _delete)
