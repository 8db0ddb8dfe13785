"""
Unit tests for NetSuite JE / StatJE assembly.
"""

import csv
import io
from datetime import date
from decimal import Decimal
from typing import List

import pytest

from core.credit_cards import consolidate_credit_cards
from core.mapping_resolver import map_account_lines
from core.mapping_table import entries_from_rows
from core.models import AccountLine, ConsolidatedReport, MappedRecord, ParsedReport
from core.property_directory import default_property_directory
from core.report_assembly import (
    JE_HEADERS,
    NO_DATA_BODY,
    STAT_JE_HEADERS,
    FileOutcome,
    account_type,
    assemble,
    debit_credit,
    entry_id,
    format_amount,
    group_reports,
    is_statistical,
    payment_type,
    to_csv,
)
from tests.helpers import make_identity

DIRECTORY = default_property_directory()
BARDS = "THE BARD'S INN HOTEL"


def _record(target_code: str, amount: str, description: str = "Line", payment_method=None) -> MappedRecord:  # type: ignore[no-untyped-def]
    return MappedRecord(
        source_code="X",
        source_description=description,
        source_amount=Decimal(amount),
        target_code=target_code,
        target_description="Account",
        mapped_amount=Decimal(amount),
        payment_method=payment_method,
        property_id=BARDS,
    )


def _rows(body: str) -> List[List[str]]:
    return list(csv.reader(io.StringIO(body)))


def _report(records: List[MappedRecord], business_date: str = "2025-07-14") -> ConsolidatedReport:
    return ConsolidatedReport(
        property_id=BARDS,
        business_date=business_date,
        property_name=BARDS,
        total_files=1,
        total_records=len(records),
        records=records,
        successful_files=1,
    )


# region Classification
def test_statistical_by_code_prefix_or_keyword() -> None:
    assert is_statistical(_record("90001-418", "45"))
    assert is_statistical(_record("40110-634", "120.50", description="ADR"))
    assert not is_statistical(_record("40110-634", "1500.00", description="ROOM CHARGE"))


@pytest.mark.parametrize(
    "code, expected",
    [("10070-696", "asset"), ("20110-641", "liability"), ("30000-1", "unknown"), ("40110-634", "revenue"), ("61000-2", "expense"), ("", "unknown")],
)
def test_account_type_from_leading_digit(code: str, expected: str) -> None:
    assert account_type(code) == expected


@pytest.mark.parametrize(
    "amount, code, expected",
    [
        ("100.00", "10070-696", ("100.00", "")),
        ("-100.00", "10070-696", ("", "100.00")),
        ("150.00", "40110-634", ("", "150.00")),
        ("-150.00", "40110-634", ("150.00", "")),
        ("0", "40110-634", ("", "0.00")),
        ("0", "10070-696", ("0.00", "")),
        ("12.345", "61000-2", ("12.35", "")),
        ("100.00", "30100-5", ("100.00", "")),
        ("-100.00", "30100-5", ("", "100.00")),
    ],
)
def test_debit_credit_exactly_one_side(amount: str, code: str, expected: tuple) -> None:
    debit, credit = debit_credit(Decimal(amount), code)

    assert (debit, credit) == expected
    assert bool(debit) != bool(credit)


def test_payment_type_only_for_cards() -> None:
    assert payment_type("AMEX") == "AMEX"
    assert payment_type("visa/master") == "VISA/MASTER"
    assert payment_type("CASH") == ""
    assert payment_type(None) == ""


# endregion


# region Formatting
def test_entry_id_and_amount_format() -> None:
    assert entry_id("24", date(2025, 7, 14)) == "WR2420250714"
    assert format_amount(Decimal("2.005")) == "2.01"


def test_empty_csv_is_no_data_body() -> None:
    assert to_csv(JE_HEADERS, []) == NO_DATA_BODY


def test_csv_quotes_every_field() -> None:
    body = to_csv(("A", "B"), [["1", "x,y"]])

    assert body == '"A","B"\n"1","x,y"\n'


# endregion


# region Assembly
def test_assemble_splits_financial_and_statistical() -> None:
    report = _report([_record("40110-634", "1500.00", "ROOM CHARGE"), _record("90001-418", "-45", "Occupied")])

    output = assemble([report], DIRECTORY, "2025-07-14")

    je = _rows(output.je_csv)
    stat = _rows(output.stat_je_csv)
    assert je[0] == list(JE_HEADERS)
    assert je[1] == [
        "WR2420250714",
        "07/14/2025",
        BARDS,
        "26",
        "40110",
        "634",
        "24",
        "Account",
        "",
        "1500.00",
        "ROOM CHARGE",
        "",
    ]
    assert stat[0] == list(STAT_JE_HEADERS)
    assert stat[1] == ["07/14/2025 WRH", "07/14/2025", BARDS, "statistical", "Each", "90001", "418", "Account", "1", "24", "45.00", "EA"]
    assert (output.je_records, output.stat_je_records) == (1, 1)
    assert output.properties == (BARDS,)


def test_assemble_skips_other_dates_and_failed_groups() -> None:
    failed = ConsolidatedReport(property_id="x", business_date="2025-07-14", property_name="x", total_files=1, failed_files=1)
    other_day = _report([_record("40110-634", "1.00")], business_date="2025-07-13")

    output = assemble([failed, other_day], DIRECTORY, "2025-07-14")

    assert output.je_csv == NO_DATA_BODY
    assert output.stat_je_csv == NO_DATA_BODY
    assert output.properties == ()


def test_unknown_property_uses_parent_company_defaults() -> None:
    report = ConsolidatedReport(
        property_id="HARBOR VIEW HOTEL",
        business_date="2025-07-14",
        property_name="HARBOR VIEW HOTEL",
        records=[_record("40110-634", "10.00")],
        successful_files=1,
    )

    row = _rows(assemble([report], DIRECTORY, "2025-07-14").je_csv)[1]

    assert row[0] == "WR120250714"
    assert row[2] == "Parent Company : Warren Family Hotels : Warren Resort Hotels, Inc."
    assert row[3] == "5"


def test_group_reports_counts_failures() -> None:
    ok = ParsedReport(source=make_identity("daily-files/p/2025-07-15/a.pdf"), property_name=BARDS, business_date="2025-07-14")
    bad = ParsedReport(source=make_identity("daily-files/p/2025-07-15/b.pdf"), property_name=BARDS, business_date="2025-07-14", parse_errors=["boom"])

    groups = group_reports([FileOutcome(ok, (_record("40110-634", "1.00"),)), FileOutcome(bad)], "2025-07-13")

    assert len(groups) == 1
    group = groups[0]
    assert (group.total_files, group.successful_files, group.failed_files, group.total_records) == (2, 1, 1, 1)
    assert group.errors == ["daily-files/p/2025-07-15/b.pdf: boom"]


def test_room_revenue_and_payment_end_to_end() -> None:
    """Map two report lines for a known property and render the JE file.

    Both rows carry the property's subsidiary name and location; revenue posts on
    the credit side and the payment line keeps its own row.

    Args:
        None.

    Returns:
        None.
    """
    table = entries_from_rows(
        [
            ["Src Acct Code", "Property Id", "Property Name", "Acct Code", "Acct Name", "Multiplier"],
            ["1001", "24", BARDS, "4010", "Room Revenue", "1"],
            ["2001", "24", BARDS, "4020", "Visa Clearing", "1"],
        ]
    )
    lines = [
        AccountLine(source_code="1001", description="Room Revenue", amount=Decimal("150.00")),
        AccountLine(source_code="2001", description="Visa Payment", amount=Decimal("100.00")),
    ]
    records = map_account_lines(lines, BARDS, BARDS, table)
    records = consolidate_credit_cards(records, lines, DIRECTORY.resolve(BARDS), BARDS)
    source = ParsedReport(source=make_identity(), property_name=BARDS, business_date="2025-07-14", account_lines=lines)
    groups = group_reports([FileOutcome(source, tuple(records))], "2025-07-14")

    rows = _rows(assemble(groups, DIRECTORY, "2025-07-14").je_csv)[1:]

    assert len(rows) == 2
    revenue, payment = rows
    assert revenue[4] == "4010" and revenue[9] == "150.00" and revenue[8] == ""
    assert payment[4] == "4020" and payment[9] == "100.00"
    assert all(row[2] == BARDS and row[6] == "24" for row in rows)


# endregion
