"""Custom exceptions used by the report builder Lambda."""

from typing import List, Optional


class ReportBuilderError(Exception):
    """Base class for errors raised by the pipeline."""


class ConfigurationError(ReportBuilderError):
    """Raised when required runtime configuration is missing or invalid."""

    def __init__(self, missing: Optional[List[str]] = None, message: Optional[str] = None) -> None:
        self.missing = list(missing or [])
        msg = message or f"Missing required configuration: {', '.join(self.missing)}"
        super().__init__(msg)


class StorageError(ReportBuilderError):
    """Raised when an S3 operation fails after retries."""

    def __init__(self, operation: str, bucket: str, key: Optional[str] = None, message: Optional[str] = None) -> None:
        self.operation = operation
        self.bucket = bucket
        self.key = key
        location = f"s3://{bucket}/{key}" if key else f"s3://{bucket}"
        super().__init__(message or f"S3 {operation} failed for {location}")


class ReportParseError(ReportBuilderError):
    """Raised by a content parser when a file cannot be read as a report."""


class MappingTableError(ReportBuilderError):
    """Raised when the account mapping spreadsheet cannot be loaded."""


class NotificationError(ReportBuilderError):
    """Raised when the report email cannot be built or sent."""
