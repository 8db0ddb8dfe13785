"""Daily report email: the JE and StatJE CSVs sent through SES."""

import html
from datetime import date
from email.mime.application import MIMEApplication
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import List, Optional, Protocol

from botocore.exceptions import BotoCoreError, ClientError
from mypy_boto3_ses import SESClient
from mypy_boto3_ssm import SSMClient

from config import DEFAULT_FROM_ADDRESS, Settings, fetch_parameter
from core.models import NotificationResult, ReportSummary
from core.retry import RetryPolicy, retry_call
from core.storage import S3BlobStore
from exceptions import NotificationError, StorageError
from logger import logger


class Notifier(Protocol):
    def notify(self, je_key: str, stat_je_key: str, summary: ReportSummary) -> NotificationResult: ...


def _display_date(iso_date: str) -> str:
    try:
        return date.fromisoformat(iso_date).strftime("%B %d, %Y")
    except ValueError:
        return iso_date


def build_subject(summary: ReportSummary) -> str:
    return f"Daily Hotel Reports - {_display_date(summary.report_date)} ({summary.total_properties} Properties)"


def build_text_body(summary: ReportSummary) -> str:
    lines = [
        f"Daily Hotel Reports - {_display_date(summary.report_date)}",
        "",
        f"Properties Processed: {summary.total_properties}",
        f"Files Processed: {summary.total_files}",
        f"JE Records: {summary.total_je_records}",
        f"StatJE Records: {summary.total_stat_je_records}",
        f"Processing Time: {summary.processing_time_ms / 1000:.2f} seconds",
        "",
        "Properties:",
        *[f"  - {name}" for name in summary.property_names],
    ]
    if summary.errors:
        lines += ["", "Processing Warnings:", *[f"  - {err}" for err in summary.errors]]
    return "\n".join(lines) + "\n"


def build_html_body(summary: ReportSummary) -> str:
    rows = [
        ("Report Date", _display_date(summary.report_date)),
        ("Properties Processed", str(summary.total_properties)),
        ("Files Processed", str(summary.total_files)),
        ("JE Records", f"{summary.total_je_records:,}"),
        ("StatJE Records", f"{summary.total_stat_je_records:,}"),
        ("Processing Time", f"{summary.processing_time_ms / 1000:.2f} seconds"),
    ]
    table = "".join(f"<tr><td><b>{html.escape(k)}:</b></td><td>{html.escape(v)}</td></tr>" for k, v in rows)
    properties = "".join(f"<li>{html.escape(name)}</li>" for name in summary.property_names)
    warnings = ""
    if summary.errors:
        items = "".join(f"<li>{html.escape(err)}</li>" for err in summary.errors)
        warnings = f"<h3>Processing Warnings</h3><ul>{items}</ul>"
    return (
        "<!DOCTYPE html><html><head><meta charset=\"UTF-8\"></head><body>"
        f"<h1>Daily Hotel Reports</h1><h2>Processing Summary</h2><table>{table}</table>"
        f"<h3>Properties</h3><ul>{properties}</ul>{warnings}"
        "<p>The JE and StatJE files are attached for NetSuite import.</p>"
        "</body></html>"
    )


def build_message(
    sender: str,
    recipients: List[str],
    summary: ReportSummary,
    attachments: List[tuple[str, bytes]],
) -> MIMEMultipart:
    message = MIMEMultipart("mixed")
    message["Subject"] = build_subject(summary)
    message["From"] = sender
    message["To"] = ", ".join(recipients)

    body = MIMEMultipart("alternative")
    body.attach(MIMEText(build_text_body(summary), "plain", "utf-8"))
    body.attach(MIMEText(build_html_body(summary), "html", "utf-8"))
    message.attach(body)

    for filename, content in attachments:
        part = MIMEApplication(content, _subtype="csv")
        part.add_header("Content-Disposition", "attachment", filename=filename)
        message.attach(part)
    return message


class SesReportNotifier:
    """Send the report email; recipients and sender come from SSM Parameter Store."""

    def __init__(
        self,
        ses_client: SESClient,
        ssm_client: SSMClient,
        store: S3BlobStore,
        settings: Settings,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> None:
        self._ses = ses_client
        self._ssm = ssm_client
        self._store = store
        self._settings = settings
        self._policy = retry_policy or RetryPolicy()

    def _optional_parameter(self, name: str) -> Optional[str]:
        try:
            return fetch_parameter(self._ssm, name)
        except ValueError:
            return None
        except RuntimeError as exc:
            raise NotificationError(f"Unable to read email setting {name}") from exc

    def _recipients(self) -> List[str]:
        raw = self._optional_parameter(self._settings.recipients_parameter) or ""
        return [r.strip() for r in raw.split(",") if r.strip()]

    def notify(self, je_key: str, stat_je_key: str, summary: ReportSummary) -> NotificationResult:
        recipients = self._recipients()
        if not recipients:
            logger.warning("No email recipients configured; skipping email send", parameter=self._settings.recipients_parameter)
            return NotificationResult(success=False, error="No email recipients configured")

        sender = self._optional_parameter(self._settings.from_address_parameter) or DEFAULT_FROM_ADDRESS
        configuration_set = self._optional_parameter(self._settings.configuration_set_parameter)

        try:
            attachments = [
                (key.rsplit("/", 1)[-1], self._store.get_bytes(self._settings.processed_bucket, key))
                for key in (je_key, stat_je_key)
            ]
            message = build_message(sender, recipients, summary, attachments)
            request = {
                "Source": sender,
                "Destinations": recipients,
                "RawMessage": {"Data": message.as_bytes()},
            }
            if configuration_set:
                request["ConfigurationSetName"] = configuration_set
            response = retry_call("ses:send_raw_email", lambda: self._ses.send_raw_email(**request), policy=self._policy)
        except (StorageError, BotoCoreError, ClientError) as exc:
            logger.exception("Failed to send report email", je_key=je_key, stat_je_key=stat_je_key, error=str(exc))
            return NotificationResult(success=False, recipients=recipients, error=str(exc))

        message_id = response.get("MessageId")
        logger.info("Report email sent", message_id=message_id, recipients=len(recipients), report_date=summary.report_date)
        return NotificationResult(success=True, message_id=message_id, recipients=recipients)
