"""
Account line extraction for VisualMatrix night audit reports.

Report text arrives one line per row with columns separated by ``|`` (pdfplumber
table rows, CSV rows, and fixed-width text lines are all normalised to that shape
before they get here). Each line is tried against an ordered table of row shapes;
the first shape that matches produces an ``AccountLine``. Lines that match nothing
are headers, page furniture or totals we do not post, and are skipped.
"""

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Callable, Collection, FrozenSet, Iterable, List, Optional, Pattern

from core.models import AccountLine
from logger import logger

AMOUNT = r"(-?\$[\d,.-]+|\(\$?[\d,.-]+\))"
MINIMUM_AMOUNT = Decimal("0.01")

STATISTICAL_CODES: FrozenSet[str] = frozenset(
    {
        "ADR",
        "REVPAR",
        "OCCUPANCY",
        "OCCUPIED",
        "OUT OF SERVICE",
        "COMPS",
        "ROOMS SOLD",
        "ROOMS AVAILABLE",
        "NO SHOW",
        "LATE C/I",
        "EARLY C/O",
        "TOTAL ROOMS",
    }
)

_SECTION_MARKERS = (
    re.compile(r"Detail\s+Listing\s+Summary", re.IGNORECASE),
    re.compile(r"^Detail\s+Listing\s*$", re.IGNORECASE),
)

# Order matters: earlier brand wins when a line mentions more than one.
_PAYMENT_METHODS = (
    ("VISA", re.compile(r"(?:^|[\s|])(VISA|VISA\s*CARD|VISA/MC)(?:[\s|]|\d|$)", re.IGNORECASE)),
    ("MASTER", re.compile(r"(?:^|[\s|])(MASTER|MASTERCARD|MASTER\s*CARD|MC)(?:[\s|]|\d|$)", re.IGNORECASE)),
    ("DISCOVER", re.compile(r"(?:^|[\s|])(DISCOVER)(?:[\s|]|\d|$)", re.IGNORECASE)),
    ("AMEX", re.compile(r"(?:^|[\s|])(AMEX|AMERICAN\s*EXPRESS)(?:[\s|]|\d|$)", re.IGNORECASE)),
)

_FIXED_WIDTH_GAP = re.compile(r"\s{2,}|\t+")


def parse_amount(raw: str) -> Optional[Decimal]:
    """Parse ``$1,234.56``, ``-$5.00`` or ``($2,486.57)`` into a signed Decimal."""
    text = raw.strip()
    negative = text.startswith("(") and text.endswith(")")
    cleaned = text.strip("()").replace("$", "").replace(",", "")
    # Some exports print a trailing minus ("125.00-")
    if cleaned.startswith("-") or cleaned.endswith("-"):
        negative = not negative
        cleaned = cleaned.strip("-")
    try:
        value = Decimal(cleaned)
    except InvalidOperation:
        return None
    return -value if negative else value


def detect_payment_method(line: str) -> Optional[str]:
    for method, pattern in _PAYMENT_METHODS:
        if pattern.search(line):
            return method
    return None


def normalise_delimiters(line: str) -> str:
    """Turn a fixed-width line (columns separated by runs of spaces) into a ``|`` delimited one."""
    stripped = line.strip()
    if "|" in stripped:
        return stripped
    return _FIXED_WIDTH_GAP.sub("|", stripped)


@dataclass(frozen=True)
class _RowShape:
    name: str
    pattern: Pattern[str]
    build: Callable[["re.Match[str]", str], Optional[AccountLine]]


def _above_minimum(amount: Optional[Decimal]) -> bool:
    return amount is not None and abs(amount) >= MINIMUM_AMOUNT


def _fixed(description: str) -> Callable[["re.Match[str]", str], Optional[AccountLine]]:
    # Two-group shapes: (code, amount) with a constant description
    def _build(match: "re.Match[str]", line: str) -> Optional[AccountLine]:
        amount = parse_amount(match.group(2))
        if not _above_minimum(amount):
            return None
        return AccountLine(
            source_code=match.group(1).strip(),
            description=description,
            amount=amount,
            original_line=line,
        )

    return _build


def _embedded(match: "re.Match[str]", line: str) -> Optional[AccountLine]:
    code, description, _count, raw_amount = match.groups()
    description = description.strip()
    # Advance-deposit refunds are posted from the deposit ledger, not the daily report
    if description.startswith("REFUND AD") or description == "REFUND PREPAID":
        return None
    amount = parse_amount(raw_amount)
    if not _above_minimum(amount):
        return None
    return AccountLine(
        source_code=code.strip(),
        description=description,
        amount=amount,
        payment_method=detect_payment_method(line),
        original_line=line,
    )


def _gl_cl_account(match: "re.Match[str]", line: str) -> Optional[AccountLine]:
    _prefix, category, code, description, _count, raw_amount = match.groups()
    amount = parse_amount(raw_amount)
    if not _above_minimum(amount):
        return None
    return AccountLine(
        source_code=code.strip(),
        description=f"{category.strip()} {description.strip()}".strip(),
        amount=amount,
        payment_method=detect_payment_method(line),
        original_line=line,
    )


def _gl_cl_summary(match: "re.Match[str]", line: str) -> Optional[AccountLine]:
    prefix, category, _count, raw_amount = match.groups()
    amount = parse_amount(raw_amount)
    if not _above_minimum(amount):
        return None
    code = f"{prefix} {category.strip()}"
    return AccountLine(
        source_code=code,
        description=code,
        amount=amount,
        payment_method=detect_payment_method(line),
        original_line=line,
    )


def _statistical(match: "re.Match[str]", line: str) -> Optional[AccountLine]:
    # Room counts and occupancy are legitimately zero; no minimum applies
    return AccountLine(
        source_code=match.group(1).strip(),
        description="Statistical Data",
        amount=Decimal(match.group(2)),
        original_line=line,
    )


def _category_prefixed(match: "re.Match[str]", line: str) -> Optional[AccountLine]:
    _category, code, description, _count, raw_amount = match.groups()
    amount = parse_amount(raw_amount)
    if not _above_minimum(amount):
        return None
    return AccountLine(
        source_code=code.strip(),
        description=description.strip(),
        amount=amount,
        payment_method=detect_payment_method(line),
        original_line=line,
    )


def _category_summary(match: "re.Match[str]", line: str) -> Optional[AccountLine]:
    category, _count, raw_amount = match.groups()
    amount = parse_amount(raw_amount)
    if not _above_minimum(amount):
        return None
    code = category.strip()
    return AccountLine(
        source_code=code,
        description=code,
        amount=amount,
        payment_method=detect_payment_method(line),
        original_line=line,
    )


ROW_SHAPES: tuple[_RowShape, ...] = (
    _RowShape(
        "ledger",
        re.compile(
            r"^((?:GUEST\s+LEDGER|CITY\s+LEDGER|ADVANCE\s+DEPOSITS)(?:\s+TOTAL)?)\|" + AMOUNT, re.IGNORECASE
        ),
        _fixed("Ledger Balance"),
    ),
    _RowShape(
        "payment_total",
        re.compile(r"^(VISA/MASTER|VISA|MASTER|MASTERCARD|AMEX|DISCOVER|CASH|CHECKS)\|" + AMOUNT),
        _fixed("Payment Method Total"),
    ),
    _RowShape(
        "summary_total",
        re.compile(r"^(Total\s+[A-Z\s]+|ADR|RevPar|Occupancy\s*%?|DEPOSIT\s+TOTAL)\|" + AMOUNT, re.IGNORECASE),
        _fixed("Summary Total"),
    ),
    _RowShape("embedded_code", re.compile(r"^([A-Za-z0-9]+)\|([^|]+)\|(\d+)\|" + AMOUNT), _embedded),
    _RowShape("gl_cl_account", re.compile(r"^(GL|CL)\s+([^|]+)\|([A-Z0-9]+)\|([^|]+)\|(\d+)\|" + AMOUNT), _gl_cl_account),
    _RowShape("gl_cl_summary", re.compile(r"^(GL|CL)\s+([^|]+)\|(\d+)\|" + AMOUNT), _gl_cl_summary),
    _RowShape(
        "statistical",
        re.compile(
            r"^(Occupied|No\s+Show|Late\s+C/I|Early\s+C/O|Total\s+Rooms|Out\s+of\s+Service|Comps|Occupancy\s*%)\|(\d+(?:\.\d+)?)",
            re.IGNORECASE,
        ),
        _statistical,
    ),
    _RowShape("category_prefixed", re.compile(r"^([^|]+)\|([A-Z0-9]+)\|([^|]+)\|(\d+)\|" + AMOUNT), _category_prefixed),
    _RowShape("category_summary", re.compile(r"^([A-Za-z]+(?:\s+[A-Za-z]+)+)\|(\d+)\|" + AMOUNT), _category_summary),
)

_GLUED_CODE = re.compile(r"^([A-Z0-9][^|]*)\|(\d+)\|" + AMOUNT)


def split_posting_code(text: str, valid_codes: Collection[str]) -> Optional[tuple[str, str]]:
    """Split ``91CITY LODGING TAX`` into ``("91", "CITY LODGING TAX")`` using known codes.

    The longest known prefix wins so ``91`` is preferred over ``9``.
    """
    candidate_text = text.strip()
    for length in range(min(8, len(candidate_text)), 0, -1):
        candidate = candidate_text[:length].upper()
        if candidate in valid_codes:
            return candidate, candidate_text[length:].strip()
    return None


class AccountLineExtractor:
    """Walk report lines and emit ``AccountLine``s.

    Args:
        valid_source_codes: Optional whitelist (normally the mapping sheet's source
            codes, upper-cased). When given, lines whose code is glued to the
            description (``91CITY LODGING TAX|49|$980.63``) are split on the longest
            known code.
    """

    def __init__(self, valid_source_codes: Optional[Iterable[str]] = None) -> None:
        self._valid_codes: FrozenSet[str] = frozenset(c.strip().upper() for c in (valid_source_codes or ()) if c.strip())

    def parse_line(self, raw_line: str) -> Optional[AccountLine]:
        line = normalise_delimiters(raw_line)
        if len(line) < 3:
            return None
        for shape in ROW_SHAPES:
            match = shape.pattern.match(line)
            if match:
                return shape.build(match, line)
        if self._valid_codes:
            return self._parse_glued_code(line)
        return None

    def _parse_glued_code(self, line: str) -> Optional[AccountLine]:
        match = _GLUED_CODE.match(line)
        if not match:
            return None
        split = split_posting_code(match.group(1), self._valid_codes)
        if split is None:
            return None
        code, description = split
        amount = parse_amount(match.group(3))
        if not _above_minimum(amount):
            return None
        return AccountLine(
            source_code=code,
            description=description or code,
            amount=amount,
            payment_method=detect_payment_method(line),
            original_line=line,
        )

    def extract(self, lines: Iterable[str]) -> List[AccountLine]:
        results: List[AccountLine] = []
        seen_statistical: set[str] = set()
        total = 0
        for raw_line in lines:
            total += 1
            stripped = raw_line.strip()
            if len(stripped) < 3 or any(marker.search(stripped) for marker in _SECTION_MARKERS):
                continue
            account_line = self.parse_line(stripped)
            if account_line is None:
                continue
            # ADR appears again as "ADR w/comps" further down; only the first figure is posted
            code = account_line.source_code.upper()
            if code in STATISTICAL_CODES:
                if code in seen_statistical:
                    continue
                seen_statistical.add(code)
            results.append(account_line)
        logger.debug("Account line parsing completed", total_lines=total, parsed_lines=len(results))
        return results
