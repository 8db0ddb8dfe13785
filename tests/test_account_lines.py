"""
Unit tests for account line extraction from normalised report text.
"""

from decimal import Decimal

import pytest

from core.account_lines import AccountLineExtractor, detect_payment_method, normalise_delimiters, parse_amount, split_posting_code


# region Amounts
@pytest.mark.parametrize(
    "raw, expected",
    [
        ("$1,234.56", Decimal("1234.56")),
        ("($2,486.57)", Decimal("-2486.57")),
        ("-$5.00", Decimal("-5.00")),
        ("125.00-", Decimal("-125.00")),
    ],
)
def test_parse_amount_handles_report_sign_conventions(raw: str, expected: Decimal) -> None:
    assert parse_amount(raw) == expected


def test_parse_amount_returns_none_for_garbage() -> None:
    assert parse_amount("$abc") is None


# endregion


# region Line shapes
def test_embedded_code_line_carries_payment_method() -> None:
    line = AccountLineExtractor().parse_line("VS|PAYMENT VISA|3|$1,234.56")

    assert line is not None
    assert line.source_code == "VS"
    assert line.description == "PAYMENT VISA"
    assert line.amount == Decimal("1234.56")
    assert line.payment_method == "VISA"


def test_payment_total_line_is_negative_without_payment_method() -> None:
    line = AccountLineExtractor().parse_line("VISA/MASTER|($13,616.46)")

    assert line is not None
    assert line.source_code == "VISA/MASTER"
    assert line.amount == Decimal("-13616.46")
    assert line.payment_method is None


def test_advance_deposit_refunds_are_skipped() -> None:
    assert AccountLineExtractor().parse_line("AD|REFUND AD DEPOSIT|1|$50.00") is None


def test_fixed_width_text_is_split_into_columns() -> None:
    assert normalise_delimiters("RM   ROOM CHARGE   12   $1,500.00") == "RM|ROOM CHARGE|12|$1,500.00"

    line = AccountLineExtractor().parse_line("RM   ROOM CHARGE   12   $1,500.00")

    assert line is not None
    assert (line.source_code, line.amount) == ("RM", Decimal("1500.00"))


def test_statistical_rows_allow_zero() -> None:
    line = AccountLineExtractor().parse_line("Out of Service|0")

    assert line is not None
    assert line.description == "Statistical Data"
    assert line.amount == Decimal("0")


def test_amounts_below_a_cent_are_dropped() -> None:
    assert AccountLineExtractor().parse_line("RM|ROOM CHARGE|1|$0.00") is None


def test_glued_codes_need_a_whitelist() -> None:
    text = "91CITY LODGING TAX|49|$980.63"

    assert AccountLineExtractor().parse_line(text) is None

    line = AccountLineExtractor(["9", "91"]).parse_line(text)
    assert line is not None
    assert line.source_code == "91"
    assert line.description == "CITY LODGING TAX"
    assert line.amount == Decimal("980.63")


def test_split_posting_code_prefers_longest_known_code() -> None:
    assert split_posting_code("91CITY TAX", {"9", "91"}) == ("91", "CITY TAX")
    assert split_posting_code("XXCITY TAX", {"9", "91"}) is None


# endregion


# region Extraction
def test_extract_skips_short_lines_and_section_markers() -> None:
    lines = [
        "ab",
        "Detail Listing",
        "Detail Listing Summary",
        "RM|ROOM CHARGE|12|$1,500.00",
        "Page 1 of 3",
    ]

    result = AccountLineExtractor().extract(lines)

    assert [line.source_code for line in result] == ["RM"]


def test_extract_keeps_first_statistical_figure_only() -> None:
    lines = ["Occupied|45", "Occupied|44"]

    result = AccountLineExtractor().extract(lines)

    assert len(result) == 1
    assert result[0].amount == Decimal("45")


def test_detect_payment_method_first_brand_wins() -> None:
    assert detect_payment_method("PAYMENT AMEX") == "AMEX"
    assert detect_payment_method("VISA OR MASTERCARD") == "VISA"
    assert detect_payment_method("ROOM CHARGE") is None


# endregion
