"""
Pydantic models used across the Lambda.

These are small, focused schemas that:
- Validate/normalize the EventBridge -> Lambda trigger payload (`ProcessingEvent`)
- Carry each pipeline stage's output in an explicit type (`FileIdentity`, `AccountLine`,
  `ParsedReport`, `MappedRecord`, `ConsolidatedReport`) instead of loose dicts
- Describe the two NetSuite CSV row shapes and the result envelope returned to the scheduler
"""

from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

DAILY_FILES_PREFIX = "daily-files"


class ObjectSummary(BaseModel):
    """One entry from an S3 listing."""

    model_config = ConfigDict(frozen=True)

    key: str
    last_modified: datetime
    size: int


class FileIdentity(BaseModel):
    """A daily report object, identified by its ``daily-files/{property}/{date}/{filename}`` key."""

    model_config = ConfigDict(frozen=True)

    storage_key: str
    last_modified_at: datetime
    size_bytes: int
    property_id_from_path: str
    date_folder: str
    filename: str

    @classmethod
    def from_key(cls, key: str, last_modified: datetime, size: int) -> Optional["FileIdentity"]:
        # Filenames may themselves contain "/" so everything after the date folder belongs to the name.
        parts = (key or "").split("/")
        if len(parts) < 4 or parts[0] != DAILY_FILES_PREFIX:
            return None
        property_id, date_folder = parts[1], parts[2]
        filename = "/".join(parts[3:])
        if not property_id or not date_folder or not filename:
            return None
        return cls(
            storage_key=key,
            last_modified_at=last_modified,
            size_bytes=size,
            property_id_from_path=property_id,
            date_folder=date_folder,
            filename=filename,
        )


class AccountLine(BaseModel):
    """A single accounting fact pulled from a report line."""

    model_config = ConfigDict(frozen=True)

    source_code: str
    description: str
    amount: Decimal
    payment_method: Optional[str] = None
    original_line: str = ""


class ParsedReport(BaseModel):
    """Result of parsing one daily report file."""

    source: FileIdentity
    property_name: Optional[str] = None
    business_date: Optional[str] = None
    account_lines: List[AccountLine] = Field(default_factory=list)
    parse_errors: List[str] = Field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return not self.parse_errors

    @property
    def effective_property(self) -> str:
        # Content wins over the path; the path id is all we have for reports with no header match
        return self.property_name or self.source.property_id_from_path

    def effective_business_date(self, fallback: str) -> str:
        return self.business_date or fallback


class MappingEntry(BaseModel):
    """One row of the account mapping sheet. ``property_name`` of None marks a global mapping."""

    model_config = ConfigDict(frozen=True)

    source_code: str
    property_name: Optional[str] = None
    target_code: str
    target_name: str
    multiplier: Decimal = Decimal("1")
    source_description: Optional[str] = None
    property_id: Optional[str] = None
    record_id: Optional[str] = None

    @property
    def is_global(self) -> bool:
        return self.property_name is None


class MappedRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    source_code: str
    source_description: str
    source_amount: Decimal
    target_code: str
    target_description: str
    mapped_amount: Decimal
    payment_method: Optional[str] = None
    property_id: str
    is_credit_card_deposit: bool = False


class PropertyConfig(BaseModel):
    """Accounting identifiers for one hotel property."""

    model_config = ConfigDict(frozen=True)

    property_name: str
    location_id: str
    subsidiary_id: str
    subsidiary_full_name: str
    location_name: str
    credit_card_deposit_account: str


class ConsolidatedReport(BaseModel):
    """All mapped records for one (property, business date) pair in a run."""

    model_config = ConfigDict(frozen=True)

    property_id: str
    business_date: str
    property_name: str
    total_files: int = 0
    total_records: int = 0
    records: List[MappedRecord] = Field(default_factory=list)
    successful_files: int = 0
    failed_files: int = 0
    errors: List[str] = Field(default_factory=list)

    @property
    def key(self) -> tuple[str, str]:
        return (self.property_id, self.business_date)


class JournalEntryRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    entry: str
    date: str
    sub_name: str
    subsidiary: str
    acct_number: str
    internal_id: str
    location: str
    account_name: str
    debit: str
    credit: str
    comment: str
    payment_type: str = ""

    def as_row(self) -> List[str]:
        return [
            self.entry,
            self.date,
            self.sub_name,
            self.subsidiary,
            self.acct_number,
            self.internal_id,
            self.location,
            self.account_name,
            self.debit,
            self.credit,
            self.comment,
            self.payment_type,
        ]


class StatisticalJournalEntryRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    transaction_id: str
    date: str
    subsidiary: str
    unit_of_measure_type: str = "statistical"
    unit_of_measure: str = "Each"
    acct_number: str
    internal_id: str
    account_name: str
    department_id: str = "1"
    location: str
    amount: str
    line_units: str = "EA"

    def as_row(self) -> List[str]:
        return [
            self.transaction_id,
            self.date,
            self.subsidiary,
            self.unit_of_measure_type,
            self.unit_of_measure,
            self.acct_number,
            self.internal_id,
            self.account_name,
            self.department_id,
            self.location,
            self.amount,
            self.line_units,
        ]


class ProcessingEvent(BaseModel):
    """
    Typed trigger payload for this Lambda.

    EventBridge passes keys in camelCase (e.g. `processingType`); we expose snake_case attributes via Pydantic field aliases.
    """

    model_config = ConfigDict(populate_by_name=True)

    processing_type: Literal["daily-batch", "weekly-report"] = Field(default="daily-batch", alias="processingType")
    environment: Optional[str] = None
    timestamp: Optional[str] = None
    schedule_expression: Optional[str] = Field(default=None, alias="scheduleExpression")
    target_date: Optional[date] = Field(default=None, alias="targetDate")
    resend_email: bool = Field(default=False, alias="resendEmail")
    business_date: Optional[date] = Field(default=None, alias="businessDate")

    @field_validator("target_date", "business_date", mode="before")
    def _blank_date_to_none(cls, v):  # type: ignore[no-untyped-def]
        if isinstance(v, str) and not v.strip():
            return None
        return v


class ProcessingSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    files_found: int = Field(default=0, alias="filesFound")
    properties_processed: List[str] = Field(default_factory=list, alias="propertiesProcessed")
    processing_time_ms: int = Field(default=0, alias="processingTimeMs")
    reports_generated: int = Field(default=0, alias="reportsGenerated")


class ProcessingResult(BaseModel):
    """Envelope returned to the scheduling layer; never raised past the handler."""

    model_config = ConfigDict(populate_by_name=True)

    status_code: int = Field(alias="statusCode")
    message: str
    processed_files: int = Field(default=0, alias="processedFiles")
    timestamp: str
    summary: ProcessingSummary = Field(default_factory=ProcessingSummary)
    je_key: Optional[str] = Field(default=None, alias="jeKey")
    stat_je_key: Optional[str] = Field(default=None, alias="statJeKey")
    email_sent: Optional[bool] = Field(default=None, alias="emailSent")
    deferred_files: List[str] = Field(default_factory=list, alias="deferredFiles")

    def to_payload(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class ReportSummary(BaseModel):
    """Figures included in the daily report email."""

    model_config = ConfigDict(populate_by_name=True)

    report_date: str = Field(alias="reportDate")
    total_properties: int = Field(default=0, alias="totalProperties")
    property_names: List[str] = Field(default_factory=list, alias="propertyNames")
    total_files: int = Field(default=0, alias="totalFiles")
    total_je_records: int = Field(default=0, alias="totalJERecords")
    total_stat_je_records: int = Field(default=0, alias="totalStatJERecords")
    processing_time_ms: int = Field(default=0, alias="processingTimeMs")
    errors: List[str] = Field(default_factory=list)


class NotificationResult(BaseModel):
    success: bool
    message_id: Optional[str] = None
    recipients: List[str] = Field(default_factory=list)
    error: Optional[str] = None


def yesterday_of(moment: datetime) -> str:
    """ISO date of the day before ``moment``; the business-date fallback for reports with no date header."""
    return (moment.date() - timedelta(days=1)).isoformat()
