"""
Daily file processing run.

Discover -> pre-parse dedup -> parse -> post-parse dedup -> map -> card consolidation
-> assemble -> persist -> notify. Everything runs sequentially in one invocation; any
exception is turned into a 500 ``ProcessingResult`` so the scheduler never sees a raw
failure.
"""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Dict, List, Optional, Protocol, Tuple

from config import Settings
from core.credit_cards import consolidate_credit_cards
from core.discovery import discover_business_date, discover_folder_date, discover_recent, filter_by_business_date
from core.duplicates import archive_duplicates, drop_content_duplicates, find_metadata_duplicates
from core.mapping_resolver import map_account_lines
from core.mapping_table import MappingTable
from core.models import (
    FileIdentity,
    MappedRecord,
    ObjectSummary,
    ParsedReport,
    ProcessingEvent,
    ProcessingResult,
    ProcessingSummary,
    ReportSummary,
    yesterday_of,
)
from core.notifier import Notifier
from core.parsers import MappingTableParser, detect_file_type, parser_for
from core.property_directory import PropertyDirectory
from core.report_assembly import AssembledOutput, FileOutcome, assemble, group_reports
from exceptions import ConfigurationError, NotificationError
from logger import logger

REPORTS_PREFIX = "reports"
MAPPING_EXTENSIONS = (".xlsx", ".csv")


class Stage(str, Enum):
    DISCOVER = "discover"
    DEDUP_PRE_PARSE = "dedup-pre-parse"
    PARSE = "parse"
    DEDUP_POST_PARSE = "dedup-post-parse"
    MAP = "map"
    CONSOLIDATE = "consolidate"
    ASSEMBLE = "assemble"
    PERSIST = "persist"
    NOTIFY = "notify"
    DONE = "done"
    FAILED = "failed"


class BlobStore(Protocol):
    def list_objects(self, bucket: str, prefix: str) -> List[ObjectSummary]: ...

    def get_bytes(self, bucket: str, key: str) -> bytes: ...

    def put_bytes(
        self,
        bucket: str,
        key: str,
        data: bytes,
        content_type: str = "text/csv",
        metadata: Optional[Dict[str, str]] = None,
    ) -> None: ...

    def copy_object(self, bucket: str, source_key: str, dest_key: str, metadata: Optional[Dict[str, str]] = None) -> None: ...

    def delete_object(self, bucket: str, key: str) -> None: ...


def report_keys(run_folder_date: str, business_date: str) -> Tuple[str, str]:
    base = f"{REPORTS_PREFIX}/{run_folder_date}/{business_date}"
    return f"{base}_JE.csv", f"{base}_StatJE.csv"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReportPipeline:
    """Runs one processing invocation against injected collaborators.

    Args:
        settings: Frozen runtime settings.
        store: Blob store for incoming, mapping and processed buckets.
        directory: Property accounting identifiers.
        notifier: Sends the report email; ``None`` disables notification.
        clock: Returns the current aware datetime.
        remaining_time_ms: Lambda ``context.get_remaining_time_in_millis``; when
            remaining time drops below the configured margin, parsing stops and the
            files not yet parsed are reported as deferred.
    """

    def __init__(
        self,
        settings: Settings,
        store: BlobStore,
        directory: PropertyDirectory,
        notifier: Optional[Notifier] = None,
        clock: Callable[[], datetime] = _utcnow,
        remaining_time_ms: Optional[Callable[[], int]] = None,
    ) -> None:
        self.settings = settings
        self.store = store
        self.directory = directory
        self.notifier = notifier
        self.clock = clock
        self.remaining_time_ms = remaining_time_ms
        self.stage = Stage.DISCOVER

    def _enter(self, stage: Stage, **context) -> None:  # type: ignore[no-untyped-def]
        self.stage = stage
        logger.info("Pipeline stage", stage=stage.value, **context)

    def _elapsed_ms(self, started: datetime) -> int:
        return int((self.clock() - started).total_seconds() * 1000)

    # region Run
    def run(self, event: ProcessingEvent) -> ProcessingResult:
        started = self.clock()
        self.stage = Stage.DISCOVER
        logger.info(
            "Starting file processing",
            processing_type=event.processing_type,
            target_date=event.target_date.isoformat() if event.target_date else None,
            business_date=event.business_date.isoformat() if event.business_date else None,
            resend_email=event.resend_email,
        )
        try:
            if event.resend_email:
                return self._resend(event, started)
            return self._process(event, started)
        except Exception as exc:
            failed_stage = self.stage
            self.stage = Stage.FAILED
            logger.exception("File processing failed", stage=failed_stage.value, error=str(exc))
            return ProcessingResult(
                status_code=500,
                message=f"File processing failed: {exc}",
                processed_files=0,
                timestamp=self.clock().isoformat(),
                summary=ProcessingSummary(processing_time_ms=self._elapsed_ms(started)),
            )

    def _process(self, event: ProcessingEvent, started: datetime) -> ProcessingResult:
        now = started
        fallback_business_date = yesterday_of(now)
        incoming = self.settings.incoming_bucket

        self._enter(Stage.DISCOVER)
        files = self._discover(event, now)
        files_found = len(files)

        self._enter(Stage.DEDUP_PRE_PARSE, files_found=files_found)
        pre = find_metadata_duplicates(files)
        archive_duplicates(self.store, incoming, pre.duplicates, now)

        self._enter(Stage.PARSE, files=len(pre.kept))
        mapping = self._load_mapping_table() if pre.kept else None
        reports, deferred = self._parse_all(pre.kept, mapping)

        self._enter(Stage.DEDUP_POST_PARSE, parsed=len(reports))
        if event.business_date is not None:
            reports = filter_by_business_date(reports, event.business_date.isoformat())
        post = drop_content_duplicates(reports, fallback_business_date)

        self._enter(Stage.MAP)
        mapped = self._map_reports(post.kept, mapping)

        self._enter(Stage.CONSOLIDATE)
        outcomes = self._consolidate_cards(mapped)

        self._enter(Stage.ASSEMBLE)
        consolidated = group_reports(outcomes, fallback_business_date)
        business_dates = sorted({r.business_date for r in consolidated if r.successful_files})
        if not business_dates:
            business_dates = [event.business_date.isoformat() if event.business_date else fallback_business_date]
        outputs = [assemble(consolidated, self.directory, bd) for bd in business_dates]

        self._enter(Stage.PERSIST, business_dates=business_dates)
        run_folder = now.date().isoformat()
        written: List[Tuple[AssembledOutput, str, str]] = []
        for output in outputs:
            je_key, stat_key = report_keys(run_folder, output.business_date)
            self.store.put_bytes(self.settings.processed_bucket, je_key, output.je_csv.encode("utf-8"))
            self.store.put_bytes(self.settings.processed_bucket, stat_key, output.stat_je_csv.encode("utf-8"))
            written.append((output, je_key, stat_key))

        errors = [err for report in consolidated for err in report.errors]
        if deferred:
            errors.append(f"{len(deferred)} files deferred: execution time limit reached")

        self._enter(Stage.NOTIFY)
        email_sent = self._notify_all(written, len(post.kept), errors, started)

        properties = sorted({name for output in outputs for name in output.properties})
        self.stage = Stage.DONE
        message = f"File processing completed for {event.processing_type}"
        if deferred:
            message += f" ({len(deferred)} files deferred)"
        result = ProcessingResult(
            status_code=200,
            message=message,
            processed_files=len(post.kept),
            timestamp=self.clock().isoformat(),
            summary=ProcessingSummary(
                files_found=files_found,
                properties_processed=properties,
                processing_time_ms=self._elapsed_ms(started),
                reports_generated=len(written) * 2,
            ),
            je_key=written[0][1] if written else None,
            stat_je_key=written[0][2] if written else None,
            email_sent=email_sent,
            deferred_files=[f.storage_key for f in deferred],
        )
        logger.info(
            "File processing completed",
            files_found=files_found,
            processed_files=result.processed_files,
            skipped_duplicates=len(pre.duplicates) + len(post.skipped),
            properties=properties,
            reports_generated=result.summary.reports_generated,
        )
        return result

    # endregion

    # region Stages
    def _discover(self, event: ProcessingEvent, now: datetime) -> List[FileIdentity]:
        bucket = self.settings.incoming_bucket
        if event.business_date is not None:
            return discover_business_date(self.store, bucket, event.business_date)
        if event.target_date is not None:
            return discover_folder_date(self.store, bucket, event.target_date)
        return discover_recent(self.store, bucket, now, timedelta(hours=self.settings.lookback_hours))

    def _load_mapping_table(self) -> MappingTable:
        bucket = self.settings.mapping_bucket
        candidates = [o for o in self.store.list_objects(bucket, "") if o.key.lower().endswith(MAPPING_EXTENSIONS)]
        if not candidates:
            raise ConfigurationError(message=f"No mapping file found in bucket {bucket}")
        latest = max(candidates, key=lambda o: o.last_modified)
        logger.info("Loading mapping file", bucket=bucket, key=latest.key, size=latest.size)
        return MappingTableParser().parse(self.store.get_bytes(bucket, latest.key), latest.key)

    def _out_of_time(self) -> bool:
        if self.remaining_time_ms is None:
            return False
        return self.remaining_time_ms() < self.settings.deadline_safety_margin_ms

    def _parse_all(
        self, files: List[FileIdentity], mapping: Optional[MappingTable]
    ) -> Tuple[List[ParsedReport], List[FileIdentity]]:
        known_names = self.directory.known_names()
        valid_codes = [e.source_code for e in mapping.entries] if mapping else []
        reports: List[ParsedReport] = []
        for index, identity in enumerate(files):
            if self._out_of_time():
                deferred = files[index:]
                logger.warning(
                    "Execution time limit approaching; deferring remaining files",
                    deferred=[f.storage_key for f in deferred],
                    margin_ms=self.settings.deadline_safety_margin_ms,
                )
                return reports, deferred
            reports.append(self._parse_one(identity, known_names, valid_codes))
        return reports, []

    def _parse_one(self, identity: FileIdentity, known_names: List[str], valid_codes: List[str]) -> ParsedReport:
        file_type = detect_file_type(identity.filename)
        if file_type == "mapping":
            logger.warning("Spreadsheet found among daily files; not a report", key=identity.storage_key)
            return ParsedReport(source=identity, parse_errors=["Spreadsheet files are not daily reports"])
        parser = parser_for(file_type, known_names=known_names, valid_source_codes=valid_codes)
        try:
            data = self.store.get_bytes(self.settings.incoming_bucket, identity.storage_key)
            return parser.parse(data, identity)  # type: ignore[arg-type]
        except Exception as exc:
            # Per-file failures are recorded on the report
            logger.exception("Failed to process file", key=identity.storage_key, error=str(exc))
            return ParsedReport(source=identity, parse_errors=[str(exc)])

    def _map_reports(
        self, reports: List[ParsedReport], mapping: Optional[MappingTable]
    ) -> List[Tuple[ParsedReport, List[MappedRecord]]]:
        mapped: List[Tuple[ParsedReport, List[MappedRecord]]] = []
        for report in reports:
            if not report.succeeded or mapping is None:
                mapped.append((report, []))
                continue
            records = map_account_lines(report.account_lines, report.effective_property, report.effective_property, mapping)
            logger.info(
                "Mapped report",
                key=report.source.storage_key,
                property_name=report.effective_property,
                account_lines=len(report.account_lines),
                mapped_records=len(records),
            )
            mapped.append((report, records))
        return mapped

    def _consolidate_cards(self, mapped: List[Tuple[ParsedReport, List[MappedRecord]]]) -> List[FileOutcome]:
        outcomes: List[FileOutcome] = []
        for report, records in mapped:
            if report.succeeded:
                config = self.directory.resolve(report.effective_property)
                records = consolidate_credit_cards(records, report.account_lines, config, report.effective_property)
            outcomes.append(FileOutcome(report=report, records=tuple(records)))
        return outcomes

    def _notify_all(
        self,
        written: List[Tuple[AssembledOutput, str, str]],
        total_files: int,
        errors: List[str],
        started: datetime,
    ) -> Optional[bool]:
        notifier = self.notifier
        if notifier is None:
            return None
        sent = True
        for output, je_key, stat_key in written:
            summary = ReportSummary(
                report_date=output.business_date,
                total_properties=len(output.properties),
                property_names=list(output.properties),
                total_files=total_files,
                total_je_records=output.je_records,
                total_stat_je_records=output.stat_je_records,
                processing_time_ms=self._elapsed_ms(started),
                errors=errors,
            )
            sent = self._notify(notifier, je_key, stat_key, summary) and sent
        return sent

    def _notify(self, notifier: Notifier, je_key: str, stat_key: str, summary: ReportSummary) -> bool:
        try:
            result = notifier.notify(je_key, stat_key, summary)
        except NotificationError as exc:
            # CSVs are already persisted at this point
            logger.exception("Report notification failed", je_key=je_key, error=str(exc))
            return False
        if not result.success:
            logger.warning("Report notification not sent", je_key=je_key, error=result.error)
        return result.success

    # endregion

    # region Resend
    def _find_existing_reports(self, event: ProcessingEvent, now: datetime) -> Optional[Tuple[str, str]]:
        bucket = self.settings.processed_bucket
        if event.business_date is not None:
            prefix = f"{REPORTS_PREFIX}/"
            suffix = f"/{event.business_date.isoformat()}_JE.csv"
        else:
            folder = (event.target_date or now.date()).isoformat()
            prefix = f"{REPORTS_PREFIX}/{folder}/"
            suffix = "_JE.csv"
        je_objects = [o for o in self.store.list_objects(bucket, prefix) if o.key.endswith(suffix)]
        if not je_objects:
            return None
        latest = max(je_objects, key=lambda o: o.last_modified)
        return latest.key, latest.key[: -len("_JE.csv")] + "_StatJE.csv"

    def _resend(self, event: ProcessingEvent, started: datetime) -> ProcessingResult:
        self._enter(Stage.NOTIFY, mode="resend")
        found = self._find_existing_reports(event, started)
        if found is None:
            logger.warning("No generated reports found to resend")
            self.stage = Stage.DONE
            return ProcessingResult(
                status_code=404,
                message="No generated reports found to resend",
                timestamp=self.clock().isoformat(),
                summary=ProcessingSummary(processing_time_ms=self._elapsed_ms(started)),
                email_sent=False,
            )
        je_key, stat_key = found
        report_date = je_key.rsplit("/", 1)[-1][: -len("_JE.csv")]
        email_sent = None
        if self.notifier is not None:
            summary = ReportSummary(report_date=report_date, processing_time_ms=self._elapsed_ms(started))
            email_sent = self._notify(self.notifier, je_key, stat_key, summary)
        self.stage = Stage.DONE
        return ProcessingResult(
            status_code=200,
            message=f"Resent reports for {report_date}",
            timestamp=self.clock().isoformat(),
            summary=ProcessingSummary(processing_time_ms=self._elapsed_ms(started), reports_generated=0),
            je_key=je_key,
            stat_je_key=stat_key,
            email_sent=email_sent,
        )

    # endregion