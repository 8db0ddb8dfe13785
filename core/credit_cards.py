"""
Credit card consolidation.

Night audit reports list card activity twice: individual settlement lines
(``VS|PAYMENT VISA|...``, ``AX|PAYMENT AMEX|...``) and the payment totals on the
first page (``VISA/MASTER|($13,616.46)``). Posting both double counts the cards,
and the bank sees a single deposit per processor anyway. All card lines are
therefore replaced by one deposit entry per processor against the property's
credit card clearing account: VISA/MASTER and DISCOVER settle together, AMEX
settles on its own.
"""

from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from core.models import AccountLine, MappedRecord, PropertyConfig
from logger import logger

DEPOSIT_DESCRIPTION = "Cash in Bank : Credit Card Deposits"

VISA_MASTER = "VISA/MASTER"
AMEX = "AMEX"
DISCOVER = "DISCOVER"

# Transaction codes printed by VisualMatrix for card settlements
_BRAND_CODES: Dict[str, str] = {
    "VISA/MASTER": VISA_MASTER,
    "VISA": VISA_MASTER,
    "MASTER": VISA_MASTER,
    "MASTERCARD": VISA_MASTER,
    "VS": VISA_MASTER,
    "7V": VISA_MASTER,
    "AMEX": AMEX,
    "AX": AMEX,
    "AV": AMEX,
    "DISCOVER": DISCOVER,
    "DI": DISCOVER,
}
_BRAND_WORD_PREFIXES = ("VISA", "MASTER", "AMEX", "DISCOVER")

# First-page payment totals, by the source code the report prints
_TOTAL_CODES: Dict[str, str] = {"VISA/MASTER": VISA_MASTER, "VISA": VISA_MASTER, "AMEX": AMEX, "DISCOVER": DISCOVER}


def card_brand(source_code: str) -> Optional[str]:
    """Return the settlement brand for a card line, or None for non-card lines.

    Only the transaction code decides: descriptions such as ``PARKING VISA GUEST``
    name a card without being a settlement.
    """
    code = (source_code or "").strip().upper()
    if code in _BRAND_CODES:
        return _BRAND_CODES[code]
    for prefix in _BRAND_WORD_PREFIXES:
        if code.startswith(prefix):
            return _BRAND_CODES[prefix]
    return None


def extract_card_totals(account_lines: Iterable[AccountLine]) -> Dict[str, Decimal]:
    """First-page totals per brand.

    The same settlement total is printed on more than one page; only the first
    figure per brand is used and later differing figures are logged.
    """
    totals: Dict[str, Decimal] = {}
    for line in account_lines:
        brand = _TOTAL_CODES.get(line.source_code.strip().upper())
        if brand is None or line.payment_method is not None:
            continue
        amount = abs(line.amount)
        if brand in totals:
            if totals[brand] != amount:
                logger.warning("Conflicting credit card totals; keeping the first", brand=brand, kept=str(totals[brand]), ignored=str(amount))
            continue
        totals[brand] = amount
    return totals


def consolidate_credit_cards(
    records: List[MappedRecord],
    account_lines: Iterable[AccountLine],
    property_config: PropertyConfig,
    property_id: str,
) -> List[MappedRecord]:
    """Replace card lines in ``records`` with per-processor deposit records."""
    totals = extract_card_totals(account_lines)

    kept: List[MappedRecord] = []
    card_net: Dict[str, Decimal] = {}
    removed = 0
    for record in records:
        brand = card_brand(record.source_code)
        if brand is None:
            kept.append(record)
            continue
        removed += 1
        card_net[brand] = card_net.get(brand, Decimal("0")) + record.source_amount

    if not removed and not totals:
        return records

    for brand, net in card_net.items():
        if brand not in totals:
            logger.info("No printed total for card brand; using net of card lines", brand=brand, net=str(net))
            totals[brand] = abs(net)

    deposits: List[MappedRecord] = []
    combined = totals.get(VISA_MASTER, Decimal("0")) + totals.get(DISCOVER, Decimal("0"))
    for label, amount in ((VISA_MASTER, combined), (AMEX, totals.get(AMEX, Decimal("0")))):
        if amount <= 0:
            continue
        deposits.append(
            MappedRecord(
                source_code=label,
                source_description=f"{label} Credit Card Deposit",
                source_amount=amount,
                target_code=property_config.credit_card_deposit_account,
                target_description=DEPOSIT_DESCRIPTION,
                mapped_amount=amount,
                payment_method=label,
                property_id=property_id,
                is_credit_card_deposit=True,
            )
        )

    logger.info(
        "Consolidated credit card lines",
        property_name=property_config.property_name,
        removed=removed,
        visa_master=str(totals.get(VISA_MASTER, Decimal("0"))),
        discover=str(totals.get(DISCOVER, Decimal("0"))),
        amex=str(totals.get(AMEX, Decimal("0"))),
        deposits=len(deposits),
        account=property_config.credit_card_deposit_account,
    )
    return kept + deposits
