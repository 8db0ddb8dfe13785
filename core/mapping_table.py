"""
Load the VisualMatrix account mapping spreadsheet into an immutable lookup.

The sheet is maintained by the accounting team. Each row maps a source account
code, as printed on a property's night audit report, to a NetSuite target account.
``Property Id = 0`` rows are global; any other id scopes the row to the property in
``Property Name``. Duplicate property-specific rows are a data-quality problem in the
sheet: they are reported at load time and the first row wins.
"""

import csv
import io
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from types import MappingProxyType
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

from openpyxl import load_workbook

from core.models import MappingEntry
from exceptions import MappingTableError
from logger import logger

MAPPING_SHEET_NAME = "VisualMatrix"
EXPECTED_HEADERS: Tuple[str, ...] = (
    "Rec Id",
    "Src Acct Code",
    "Src Acct Desc",
    "Xref Key",
    "Acct Id",
    "Property Id",
    "Property Name",
    "Acct Code",
    "Acct Suffix",
    "Acct Name",
    "Multiplier",
    "Created",
    "Updated",
)
CRITICAL_HEADERS: Tuple[str, ...] = ("Src Acct Code", "Acct Code")

GLOBAL_SCOPE = ""

MappingKey = Tuple[str, str]


def normalize_code(code: Optional[str]) -> str:
    return (code or "").strip().casefold()


def normalize_scope(property_name: Optional[str]) -> str:
    return (property_name or "").strip().casefold()


@dataclass(frozen=True)
class DuplicateMapping:
    """Two sheet rows competing for the same (source code, property) slot."""

    kept: MappingEntry
    ignored: MappingEntry


@dataclass(frozen=True)
class MappingTable:
    """Immutable mapping lookup keyed on normalized (source code, property scope)."""

    entries: Tuple[MappingEntry, ...]
    index: Mapping[MappingKey, MappingEntry]
    duplicates: Tuple[DuplicateMapping, ...] = ()
    skipped_rows: int = 0
    warnings: Tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_entries(
        cls,
        entries: Iterable[MappingEntry],
        *,
        skipped_rows: int = 0,
        warnings: Sequence[str] = (),
    ) -> "MappingTable":
        ordered: List[MappingEntry] = []
        index: Dict[MappingKey, MappingEntry] = {}
        duplicates: List[DuplicateMapping] = []
        for entry in entries:
            key = (normalize_code(entry.source_code), normalize_scope(entry.property_name))
            existing = index.get(key)
            if existing is not None:
                duplicates.append(DuplicateMapping(kept=existing, ignored=entry))
                continue
            index[key] = entry
            ordered.append(entry)

        for dup in duplicates:
            logger.warning(
                "Duplicate mapping in sheet; keeping the first row",
                source_code=dup.kept.source_code,
                property_name=dup.kept.property_name or "GLOBAL",
                kept_target=dup.kept.target_code,
                kept_record_id=dup.kept.record_id,
                ignored_target=dup.ignored.target_code,
                ignored_record_id=dup.ignored.record_id,
            )

        return cls(
            entries=tuple(ordered),
            index=MappingProxyType(index),
            duplicates=tuple(duplicates),
            skipped_rows=skipped_rows,
            warnings=tuple(warnings),
        )

    def __len__(self) -> int:
        return len(self.entries)

    def property_entry(self, source_code: str, property_name: Optional[str]) -> Optional[MappingEntry]:
        scope = normalize_scope(property_name)
        if not scope:
            return None
        return self.index.get((normalize_code(source_code), scope))

    def global_entry(self, source_code: str) -> Optional[MappingEntry]:
        return self.index.get((normalize_code(source_code), GLOBAL_SCOPE))


def _cell_text(value: Any) -> str:
    # Spreadsheet cells hold ints/floats for numeric codes (e.g. 91.0); render them the way they were typed.
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def _parse_multiplier(raw: str) -> Decimal:
    if not raw:
        return Decimal("1")
    try:
        value = Decimal(raw.replace(",", ""))
    except InvalidOperation:
        return Decimal("1")
    # A zero multiplier would erase the line; the sheet uses blanks and zeros interchangeably for "as is".
    return value if value != 0 else Decimal("1")


def _target_code(acct_code: str, suffix: str) -> str:
    if "-" in acct_code or not suffix:
        return acct_code
    return f"{acct_code}-{suffix}"


def _is_global(property_id: str) -> bool:
    if not property_id:
        return True
    try:
        return Decimal(property_id) == 0
    except InvalidOperation:
        return False


def _header_positions(header_row: Sequence[Any]) -> Tuple[Dict[str, int], List[str]]:
    headers = [_cell_text(cell) for cell in header_row]
    lowered = {h.lower(): i for i, h in enumerate(headers) if h}
    missing_critical = [h for h in CRITICAL_HEADERS if h.lower() not in lowered]
    if missing_critical:
        raise MappingTableError(f"Missing required columns: {', '.join(missing_critical)}")
    positions = {h: lowered[h.lower()] for h in EXPECTED_HEADERS if h.lower() in lowered}
    warnings: List[str] = []
    missing = [h for h in EXPECTED_HEADERS if h not in positions]
    if missing:
        warnings.append(f"Missing optional columns: {', '.join(missing)}")
    return positions, warnings


def entries_from_rows(rows: Iterable[Sequence[Any]]) -> MappingTable:
    """Build a ``MappingTable`` from raw sheet rows; the first row is the header."""
    iterator: Iterator[Sequence[Any]] = iter(rows)
    try:
        header_row = next(iterator)
    except StopIteration as exc:
        raise MappingTableError("Mapping sheet is empty") from exc

    positions, warnings = _header_positions(header_row)

    def _get(row: Sequence[Any], header: str) -> str:
        idx = positions.get(header)
        if idx is None or idx >= len(row):
            return ""
        return _cell_text(row[idx])

    entries: List[MappingEntry] = []
    skipped = 0
    unscoped = 0
    for row in iterator:
        if not row or all(_cell_text(cell) == "" for cell in row):
            continue
        source_code = _get(row, "Src Acct Code")
        acct_code = _get(row, "Acct Code")
        if not source_code or not acct_code:
            skipped += 1
            continue

        property_id = _get(row, "Property Id")
        property_name = _get(row, "Property Name") or None
        if _is_global(property_id):
            property_name = None
        elif property_name is None:
            unscoped += 1
            continue

        entries.append(
            MappingEntry(
                source_code=source_code,
                property_name=property_name,
                target_code=_target_code(acct_code, _get(row, "Acct Suffix")),
                target_name=_get(row, "Acct Name") or _get(row, "Src Acct Desc") or acct_code,
                multiplier=_parse_multiplier(_get(row, "Multiplier")),
                source_description=_get(row, "Src Acct Desc") or None,
                property_id=property_id or None,
                record_id=_get(row, "Rec Id") or None,
            )
        )

    if skipped:
        warnings.append(f"{skipped} rows skipped for missing source or target code")
    if unscoped:
        warnings.append(f"{unscoped} property-specific rows skipped for missing property name")

    table = MappingTable.from_entries(entries, skipped_rows=skipped + unscoped, warnings=warnings)
    logger.info(
        "Loaded mapping table",
        total_mappings=len(table),
        global_mappings=sum(1 for e in table.entries if e.is_global),
        duplicate_rows=len(table.duplicates),
        skipped_rows=table.skipped_rows,
        warnings=list(table.warnings),
    )
    return table


def _xlsx_rows(data: bytes, sheet_name: str) -> List[Tuple[Any, ...]]:
    try:
        workbook = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    except Exception as exc:
        raise MappingTableError(f"Unable to open mapping workbook: {exc}") from exc
    try:
        if sheet_name in workbook.sheetnames:
            worksheet = workbook[sheet_name]
        else:
            logger.warning("Mapping sheet not found; using first worksheet", sheet_name=sheet_name, available=workbook.sheetnames)
            worksheet = workbook.worksheets[0]
        return list(worksheet.iter_rows(values_only=True))
    finally:
        workbook.close()


def _csv_rows(data: bytes) -> List[List[str]]:
    text = data.decode("utf-8-sig", errors="replace")
    return list(csv.reader(io.StringIO(text)))


def load_mapping_table(data: bytes, filename: str, sheet_name: str = MAPPING_SHEET_NAME) -> MappingTable:
    """Parse a mapping spreadsheet (``.xlsx`` or ``.csv``)."""
    lower = filename.lower()
    if lower.endswith(".xlsx"):
        rows: Iterable[Sequence[Any]] = _xlsx_rows(data, sheet_name)
    elif lower.endswith(".csv"):
        rows = _csv_rows(data)
    else:
        raise MappingTableError(f"Unsupported mapping file type: {filename}")
    return entries_from_rows(rows)
