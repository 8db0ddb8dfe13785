"""
Unit tests for credit card consolidation.
"""

from decimal import Decimal
from typing import Optional

import pytest

from core.credit_cards import DEPOSIT_DESCRIPTION, card_brand, consolidate_credit_cards, extract_card_totals
from core.models import AccountLine, MappedRecord
from core.property_directory import default_property_directory

BARDS = default_property_directory().resolve("THE BARD'S INN HOTEL")


def _line(code: str, amount: str, payment_method: Optional[str] = None) -> AccountLine:
    return AccountLine(source_code=code, description=code, amount=Decimal(amount), payment_method=payment_method)


def _record(code: str, amount: str, payment_method: Optional[str] = None) -> MappedRecord:
    return MappedRecord(
        source_code=code,
        source_description=code,
        source_amount=Decimal(amount),
        target_code="10000-100",
        target_description="Clearing",
        mapped_amount=Decimal(amount),
        payment_method=payment_method,
        property_id="THE BARD'S INN HOTEL",
    )


# region Brands
@pytest.mark.parametrize(
    "code, expected",
    [
        ("VS", "VISA/MASTER"),
        ("7V", "VISA/MASTER"),
        ("MASTERCARD PMT", "VISA/MASTER"),
        ("AX", "AMEX"),
        ("DI", "DISCOVER"),
        ("DIRECT BILLS", None),
        ("RM", None),
        ("PK", None),
    ],
)
def test_card_brand(code: str, expected: Optional[str]) -> None:
    assert card_brand(code) == expected


def test_first_printed_total_wins() -> None:
    totals = extract_card_totals(
        [
            _line("VISA/MASTER", "-13616.46"),
            _line("VISA/MASTER", "-99.00"),
            _line("AMEX", "-500.00"),
            _line("VS", "100.00", "VISA"),
        ]
    )

    assert totals == {"VISA/MASTER": Decimal("13616.46"), "AMEX": Decimal("500.00")}


# endregion


# region Consolidation
def test_card_lines_replaced_by_deposits() -> None:
    """Replace individual card settlements with one deposit per processor.

    VISA/MASTER and DISCOVER settle together; AMEX deposits on its own.

    Args:
        None.

    Returns:
        None.
    """
    records = [_record("RM", "1500.00"), _record("VS", "-900.00", "VISA"), _record("DI", "-100.00"), _record("AX", "-400.00")]
    lines = [_line("VISA/MASTER", "-900.00"), _line("DISCOVER", "-100.00"), _line("AMEX", "-400.00")]

    result = consolidate_credit_cards(records, lines, BARDS, "THE BARD'S INN HOTEL")

    assert [r.source_code for r in result] == ["RM", "VISA/MASTER", "AMEX"]
    visa, amex = result[1], result[2]
    assert visa.mapped_amount == Decimal("1000.00")
    assert amex.mapped_amount == Decimal("400.00")
    assert visa.target_code == amex.target_code == "10070-696"
    assert visa.target_description == DEPOSIT_DESCRIPTION
    assert visa.is_credit_card_deposit and amex.is_credit_card_deposit


def test_net_of_card_lines_used_without_printed_total() -> None:
    records = [_record("VS", "-300.00", "VISA"), _record("VS", "50.00", "VISA")]

    result = consolidate_credit_cards(records, [], BARDS, "THE BARD'S INN HOTEL")

    assert len(result) == 1
    assert result[0].mapped_amount == Decimal("250.00")


def test_zero_totals_produce_no_deposit() -> None:
    result = consolidate_credit_cards([_record("AX", "0.00")], [], BARDS, "THE BARD'S INN HOTEL")

    assert result == []


def test_records_untouched_without_card_activity() -> None:
    records = [_record("RM", "1500.00")]

    assert consolidate_credit_cards(records, [_line("RM", "1500.00")], BARDS, "THE BARD'S INN HOTEL") is records


def test_revenue_line_mentioning_a_card_is_kept() -> None:
    parking = MappedRecord(
        source_code="PK",
        source_description="PARKING VISA GUEST",
        source_amount=Decimal("40.00"),
        target_code="40500-650",
        target_description="Parking Revenue",
        mapped_amount=Decimal("40.00"),
        payment_method="VISA",
        property_id="THE BARD'S INN HOTEL",
    )

    result = consolidate_credit_cards([parking], [_line("VISA/MASTER", "-900.00")], BARDS, "THE BARD'S INN HOTEL")

    assert [(r.source_code, r.target_code, str(r.mapped_amount)) for r in result] == [
        ("PK", "40500-650", "40.00"),
        ("VISA/MASTER", "10070-696", "900.00"),
    ]


# endregion
