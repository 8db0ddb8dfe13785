"""In-memory stand-ins for S3 and SES used across the unit tests."""

from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from core.models import FileIdentity, NotificationResult, ObjectSummary, ReportSummary
from exceptions import StorageError


class FakeBlobStore:
    """Dict-backed stand-in for ``S3BlobStore``."""

    def __init__(self) -> None:
        self.objects: Dict[Tuple[str, str], Tuple[bytes, datetime, Dict[str, str]]] = {}
        self.fail_copy_for: set[str] = set()

    def add(self, bucket: str, key: str, data: bytes, last_modified: datetime) -> None:
        self.objects[(bucket, key)] = (data, last_modified, {})

    def keys(self, bucket: str) -> List[str]:
        return sorted(k for b, k in self.objects if b == bucket)

    def list_objects(self, bucket: str, prefix: str) -> List[ObjectSummary]:
        return [
            ObjectSummary(key=key, last_modified=modified, size=len(data))
            for (b, key), (data, modified, _meta) in self.objects.items()
            if b == bucket and key.startswith(prefix)
        ]

    def get_bytes(self, bucket: str, key: str) -> bytes:
        try:
            return self.objects[(bucket, key)][0]
        except KeyError as exc:
            raise StorageError("get_object", bucket, key) from exc

    def put_bytes(
        self,
        bucket: str,
        key: str,
        data: bytes,
        content_type: str = "text/csv",
        metadata: Optional[Dict[str, str]] = None,
    ) -> None:
        self.objects[(bucket, key)] = (data, datetime.now(timezone.utc), dict(metadata or {}))

    def copy_object(self, bucket: str, source_key: str, dest_key: str, metadata: Optional[Dict[str, str]] = None) -> None:
        if source_key in self.fail_copy_for:
            raise StorageError("copy_object", bucket, source_key)
        data, modified, _meta = self.objects[(bucket, source_key)]
        self.objects[(bucket, dest_key)] = (data, modified, dict(metadata or {}))

    def delete_object(self, bucket: str, key: str) -> None:
        self.objects.pop((bucket, key), None)


class RecordingNotifier:
    def __init__(self, success: bool = True) -> None:
        self.calls: List[Tuple[str, str, ReportSummary]] = []
        self.success = success

    def notify(self, je_key: str, stat_je_key: str, summary: ReportSummary) -> NotificationResult:
        self.calls.append((je_key, stat_je_key, summary))
        if self.success:
            return NotificationResult(success=True, message_id="msg-1", recipients=["ops@example.com"])
        return NotificationResult(success=False, error="No email recipients configured")


def make_identity(
    key: str = "daily-files/bards-inn/2025-07-15/DailyReport.pdf",
    size: int = 1024,
    last_modified: Optional[datetime] = None,
) -> FileIdentity:
    identity = FileIdentity.from_key(key, last_modified or datetime(2025, 7, 15, 8, 0, tzinfo=timezone.utc), size)
    assert identity is not None
    return identity
