"""
Property identity and business date extraction from report headers.

VisualMatrix prints ``PROPERTY NAME  MM/DD/YYYY HH:MM user`` at the top of every
page. The timestamp is when night audit printed the report, which is the morning
after the business day the figures belong to. Reports from other systems usually
carry an explicit "Business Date" (or similar) label instead, which wins when present.
"""

from __future__ import annotations

import calendar
import re
from collections import Counter
from datetime import date, timedelta
from typing import Iterable, List, Optional, Sequence

HEADER_LINES_PER_PAGE = 8
FOOTER_LINES_PER_PAGE = 4

LODGING_WORDS = re.compile(r"\b(hotel|inn|resort|suites|lodge|motel)\b", re.IGNORECASE)

MONTH_NAME_TO_NUM = {name.lower(): idx for idx, name in enumerate(calendar.month_name) if name}
MONTH_ABBR_TO_NUM = {abbr.lower(): idx for idx, abbr in enumerate(calendar.month_abbr) if abbr}
MONTH_NAME_TO_NUM["sept"] = 9

_DATE_TOKEN = (
    r"(\d{4}-\d{1,2}-\d{1,2}"
    r"|\d{1,2}/\d{1,2}/\d{2,4}"
    r"|[A-Za-z]{3,9}\.?\s+\d{1,2}(?:st|nd|rd|th)?,?\s+\d{4})"
)

_LABELLED_DATE = re.compile(
    r"\b(?:business\s+date|audit\s+date|report\s+date|for\s+date|for|date(?=\s*:))\s*[:\-]?\s*" + _DATE_TOKEN,
    re.IGNORECASE,
)
_PRINT_HEADER = re.compile(r"^(?P<name>.+?)\s+(?P<date>\d{1,2}/\d{1,2}/\d{4})\s+\d{1,2}:\d{2}(?::\d{2})?\b.*$")


def _to_date(year: int, month: int, day: int) -> Optional[date]:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def parse_report_date(token: str) -> Optional[date]:
    """Parse the date formats seen in report headers: ISO, US numeric and month-name forms."""
    s = token.strip().rstrip(".,")
    m = re.fullmatch(r"(\d{4})-(\d{1,2})-(\d{1,2})", s)
    if m:
        return _to_date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
    m = re.fullmatch(r"(\d{1,2})/(\d{1,2})/(\d{2}|\d{4})", s)
    if m:
        year = int(m.group(3))
        if year < 100:
            year += 2000
        return _to_date(year, int(m.group(1)), int(m.group(2)))
    m = re.fullmatch(r"([A-Za-z]{3,9})\.?\s+(\d{1,2})(?:st|nd|rd|th)?,?\s+(\d{4})", s)
    if m:
        month_key = m.group(1).lower()
        month = MONTH_NAME_TO_NUM.get(month_key) or MONTH_ABBR_TO_NUM.get(month_key[:3])
        if month:
            return _to_date(int(m.group(3)), month, int(m.group(2)))
    return None


def _page_lines(page: str) -> List[str]:
    return [line.strip() for line in page.splitlines() if line.strip()]


def _header_and_footer(pages: Sequence[str]) -> List[str]:
    zone: List[str] = []
    for page in pages:
        lines = _page_lines(page)
        zone.extend(lines[:HEADER_LINES_PER_PAGE])
        zone.extend(lines[-FOOTER_LINES_PER_PAGE:] if len(lines) > HEADER_LINES_PER_PAGE else [])
    return zone


def _strip_print_stamp(line: str) -> str:
    m = _PRINT_HEADER.match(line)
    return m.group("name").strip() if m else line.strip()


def _known_name_in(line: str, known_names: Iterable[str]) -> Optional[str]:
    upper = line.upper()
    best: Optional[str] = None
    for name in known_names:
        if re.search(r"(?<![A-Z0-9])" + re.escape(name.upper()) + r"(?![A-Z0-9])", upper):
            if best is None or len(name) > len(best):
                best = name
    return best


def extract_property_name(pages: Sequence[str], known_names: Iterable[str] = ()) -> Optional[str]:
    """Find the property's display name.

    A configured property name in the header or footer wins. Otherwise the name is
    taken from a line that repeats across the document (the page header), has a
    plausible length and reads like a lodging business.
    """
    names = list(known_names)
    if names:
        for line in _header_and_footer(pages):
            found = _known_name_in(line, names)
            if found:
                return found

    counts: Counter[str] = Counter()
    for page in pages:
        for line in _page_lines(page):
            candidate = _strip_print_stamp(line)
            if 10 <= len(candidate) <= 100 and LODGING_WORDS.search(candidate):
                counts[candidate] += 1
    repeated = [(name, n) for name, n in counts.items() if n >= 2]
    if not repeated:
        return None
    # Counter preserves insertion order, so ties go to the line seen first
    return max(repeated, key=lambda item: item[1])[0]


def extract_business_date(pages: Sequence[str]) -> Optional[str]:
    """Return the report's business date as ``YYYY-MM-DD``, or None."""
    zone = _header_and_footer(pages)
    for line in zone:
        m = _LABELLED_DATE.search(line)
        if m:
            parsed = parse_report_date(m.group(1))
            if parsed:
                return parsed.isoformat()

    for line in zone:
        m = _PRINT_HEADER.match(line)
        if m and LODGING_WORDS.search(m.group("name")):
            printed = parse_report_date(m.group("date"))
            if printed:
                return (printed - timedelta(days=1)).isoformat()
    return None
