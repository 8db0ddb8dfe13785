"""
NetSuite JE / StatJE CSV assembly.

Mapped records are grouped per (property, business date), split into financial
and statistical records, and rendered into the two import layouts NetSuite
expects. Both files are always produced so the import job never has to special
case a missing file.
"""

import csv
import io
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Iterable, List, Literal, Optional, Sequence, Tuple

from core.models import (
    ConsolidatedReport,
    JournalEntryRecord,
    MappedRecord,
    ParsedReport,
    PropertyConfig,
    StatisticalJournalEntryRecord,
)
from core.property_directory import PropertyDirectory

JE_HEADERS: Tuple[str, ...] = (
    "Entry",
    "Date",
    "Sub Name",
    "Subsidiary",
    "acctnumber",
    "internal id",
    "location",
    "account name",
    "Debit",
    "Credit",
    "Comment",
    "Payment Type",
)
STAT_JE_HEADERS: Tuple[str, ...] = (
    "Transaction ID",
    "Date",
    "Subsidiary",
    "Unit of Measure Type",
    "Unit of Measure",
    "acctNumber",
    "internal id",
    "account name",
    "department id",
    "location",
    "Amount",
    "Line Units",
)
NO_DATA_BODY = "No data available\n"

STATISTICAL_PREFIX = "90"
STATISTICAL_KEYWORDS: Tuple[str, ...] = ("ADR", "REVPAR", "ROOMS SOLD", "OOS", "COMPS", "OCCY", "OCCUPANCY")
CARD_PAYMENT_TYPES = frozenset({"VISA/MASTER", "VISA", "MASTER", "MASTERCARD", "AMEX", "DISCOVER"})

AccountType = Literal["asset", "liability", "revenue", "expense", "unknown"]
_TYPE_BY_DIGIT: Dict[str, AccountType] = {
    "1": "asset",
    "2": "liability",
    "4": "revenue",
    "5": "expense",
    "6": "expense",
    "7": "expense",
    "8": "expense",
}
# Accounts whose normal balance is a credit: a positive amount posts as a credit
_CREDIT_NORMAL: frozenset = frozenset({"liability", "revenue"})

_CENT = Decimal("0.01")


# region Classification
def is_statistical(record: MappedRecord) -> bool:
    code = (record.target_code or record.source_code or "").strip()
    if code.startswith(STATISTICAL_PREFIX):
        return True
    description = (record.source_description or "").upper()
    return any(keyword in description for keyword in STATISTICAL_KEYWORDS)


def partition_records(records: Iterable[MappedRecord]) -> Tuple[List[MappedRecord], List[MappedRecord]]:
    """Split records into (financial, statistical)."""
    financial: List[MappedRecord] = []
    statistical: List[MappedRecord] = []
    for record in records:
        (statistical if is_statistical(record) else financial).append(record)
    return financial, statistical


def split_account_code(code: str) -> Tuple[str, str]:
    prefix, _sep, suffix = (code or "").strip().partition("-")
    return prefix, suffix


def account_type(code: str) -> AccountType:
    prefix, _ = split_account_code(code)
    return _TYPE_BY_DIGIT.get(prefix[:1], "unknown")


def debit_credit(amount: Decimal, code: str) -> Tuple[str, str]:
    """Return ``(debit, credit)`` strings; exactly one side is filled, including for zero."""
    formatted = format_amount(abs(amount))
    if account_type(code) in _CREDIT_NORMAL:
        is_debit = amount < 0
    else:
        is_debit = amount >= 0
    return (formatted, "") if is_debit else ("", formatted)


def payment_type(payment_method: Optional[str]) -> str:
    value = (payment_method or "").strip().upper()
    return value if value in CARD_PAYMENT_TYPES else ""


# endregion


# region Formatting
def format_amount(amount: Decimal) -> str:
    return str(amount.quantize(_CENT, rounding=ROUND_HALF_UP))


def entry_id(location_id: str, business_date: date) -> str:
    return f"WR{location_id}{business_date.strftime('%Y%m%d')}"


def us_date(business_date: date) -> str:
    return business_date.strftime("%m/%d/%Y")


def to_csv(headers: Sequence[str], rows: Sequence[Sequence[str]]) -> str:
    if not rows:
        return NO_DATA_BODY
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(headers)
    writer.writerows(rows)
    return buffer.getvalue()


# endregion


# region Rows
def journal_entry_rows(report: ConsolidatedReport, config: PropertyConfig) -> List[JournalEntryRecord]:
    business_date = date.fromisoformat(report.business_date)
    financial, _ = partition_records(report.records)
    rows: List[JournalEntryRecord] = []
    for record in financial:
        acct_number, internal_id = split_account_code(record.target_code)
        debit, credit = debit_credit(record.mapped_amount, record.target_code)
        rows.append(
            JournalEntryRecord(
                entry=entry_id(config.location_id, business_date),
                date=us_date(business_date),
                sub_name=config.subsidiary_full_name,
                subsidiary=config.subsidiary_id,
                acct_number=acct_number,
                internal_id=internal_id,
                location=config.location_id,
                account_name=record.target_description,
                debit=debit,
                credit=credit,
                comment=record.source_description,
                payment_type=payment_type(record.payment_method),
            )
        )
    return rows


def statistical_entry_rows(report: ConsolidatedReport, config: PropertyConfig) -> List[StatisticalJournalEntryRecord]:
    business_date = date.fromisoformat(report.business_date)
    _, statistical = partition_records(report.records)
    rows: List[StatisticalJournalEntryRecord] = []
    for record in statistical:
        acct_number, internal_id = split_account_code(record.target_code)
        amount = record.mapped_amount if record.mapped_amount is not None else record.source_amount
        rows.append(
            StatisticalJournalEntryRecord(
                transaction_id=f"{us_date(business_date)} WRH",
                date=us_date(business_date),
                subsidiary=config.subsidiary_full_name,
                acct_number=acct_number,
                internal_id=internal_id,
                account_name=record.target_description,
                location=config.location_id,
                amount=format_amount(abs(amount)),
            )
        )
    return rows


# endregion


@dataclass(frozen=True)
class AssembledOutput:
    """CSV bodies for one business date."""

    business_date: str
    je_csv: str
    stat_je_csv: str
    je_records: int
    stat_je_records: int
    properties: Tuple[str, ...]


def assemble(reports: Sequence[ConsolidatedReport], directory: PropertyDirectory, business_date: str) -> AssembledOutput:
    """Render every property report for ``business_date`` into the JE and StatJE CSV bodies."""
    je_rows: List[JournalEntryRecord] = []
    stat_rows: List[StatisticalJournalEntryRecord] = []
    properties: List[str] = []
    for report in reports:
        # Groups made only of unreadable files have nothing to post
        if report.business_date != business_date or not report.successful_files:
            continue
        config = directory.resolve(report.property_name)
        je_rows.extend(journal_entry_rows(report, config))
        stat_rows.extend(statistical_entry_rows(report, config))
        properties.append(report.property_name)
    return AssembledOutput(
        business_date=business_date,
        je_csv=to_csv(JE_HEADERS, [r.as_row() for r in je_rows]),
        stat_je_csv=to_csv(STAT_JE_HEADERS, [r.as_row() for r in stat_rows]),
        je_records=len(je_rows),
        stat_je_records=len(stat_rows),
        properties=tuple(properties),
    )


@dataclass(frozen=True)
class FileOutcome:
    """One parsed file and the records it contributed after mapping and card consolidation."""

    report: ParsedReport
    records: Tuple[MappedRecord, ...] = ()


def group_reports(outcomes: Iterable[FileOutcome], fallback_business_date: str) -> List[ConsolidatedReport]:
    """Aggregate file outcomes into one ``ConsolidatedReport`` per (property, business date)."""
    groups: Dict[Tuple[str, str], Dict[str, Any]] = {}
    for outcome in outcomes:
        report = outcome.report
        key = (report.effective_property, report.effective_business_date(fallback_business_date))
        group = groups.setdefault(
            key,
            {"files": 0, "ok": 0, "failed": 0, "records": [], "errors": []},
        )
        group["files"] += 1
        if report.succeeded:
            group["ok"] += 1
            group["records"].extend(outcome.records)
        else:
            group["failed"] += 1
            group["errors"].extend(f"{report.source.storage_key}: {err}" for err in report.parse_errors)

    return [
        ConsolidatedReport(
            property_id=property_id,
            business_date=business_date,
            property_name=property_id,
            total_files=group["files"],
            total_records=len(group["records"]),
            records=group["records"],
            successful_files=group["ok"],
            failed_files=group["failed"],
            errors=group["errors"],
        )
        for (property_id, business_date), group in groups.items()
    ]
