"""
Per-file-type content parsers.

``parser_for`` returns one of four variants keyed on the detected file type. The
three report variants share one contract, ``parse(data, source) -> ParsedReport``,
and differ only in how they turn bytes into page text; the mapping variant turns a
spreadsheet into a ``MappingTable``.
"""

import codecs
import csv
import io
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import FrozenSet, Iterable, List, Literal, Sequence, Union

from core.account_lines import AccountLineExtractor
from core.mapping_table import MappingTable, load_mapping_table
from core.models import FileIdentity, ParsedReport
from core.pdf_text import extract_pdf_pages
from core.report_header import extract_business_date, extract_property_name
from exceptions import ReportParseError
from logger import logger

FileType = Literal["pdf", "csv", "txt", "mapping"]

_EXTENSION_TYPES: dict[str, FileType] = {
    ".pdf": "pdf",
    ".csv": "csv",
    ".txt": "txt",
    ".xlsx": "mapping",
    ".xls": "mapping",
}

CSV_DELIMITERS = ",;\t|"


def detect_file_type(filename: str) -> FileType:
    # Unknown extensions are most often plain-text exports with odd names
    return _EXTENSION_TYPES.get(PurePosixPath(filename).suffix.lower(), "txt")


def _looks_binary(data: bytes) -> bool:
    sample = data[:512]
    if not sample:
        return False
    control = sum(1 for b in sample if b < 32 and b not in (9, 10, 12, 13))
    return b"\x00" in sample or control / len(sample) > 0.3


def decode_text(data: bytes) -> str:
    """Decode report bytes, honouring UTF-8/UTF-16 BOMs and falling back to latin-1."""
    if data.startswith(codecs.BOM_UTF8):
        return data[len(codecs.BOM_UTF8):].decode("utf-8", errors="replace")
    if data.startswith(codecs.BOM_UTF16_LE) or data.startswith(codecs.BOM_UTF16_BE):
        return data.decode("utf-16")
    if _looks_binary(data):
        raise ReportParseError("File does not look like text")
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        logger.warning("Report is not valid UTF-8; decoding as latin-1")
        return data.decode("latin-1")


@dataclass(frozen=True)
class _ReportParser:
    known_names: Sequence[str] = ()
    valid_source_codes: FrozenSet[str] = field(default_factory=frozenset)

    def pages(self, data: bytes) -> List[str]:
        raise NotImplementedError

    def parse(self, data: bytes, source: FileIdentity) -> ParsedReport:
        try:
            pages = self.pages(data)
        except ReportParseError as exc:
            logger.warning("Report could not be parsed", key=source.storage_key, error=str(exc))
            return ParsedReport(source=source, parse_errors=[str(exc)])

        lines = [line for page in pages for line in page.splitlines()]
        account_lines = AccountLineExtractor(self.valid_source_codes).extract(lines)
        report = ParsedReport(
            source=source,
            property_name=extract_property_name(pages, self.known_names),
            business_date=extract_business_date(pages),
            account_lines=account_lines,
        )
        if not account_lines:
            logger.warning("No account lines recognised in report", key=source.storage_key)
        logger.info(
            "Parsed report",
            key=source.storage_key,
            property_name=report.property_name,
            business_date=report.business_date,
            account_lines=len(account_lines),
        )
        return report


@dataclass(frozen=True)
class PdfReportParser(_ReportParser):
    file_type: Literal["pdf"] = "pdf"

    def pages(self, data: bytes) -> List[str]:
        return extract_pdf_pages(data)


@dataclass(frozen=True)
class TextReportParser(_ReportParser):
    file_type: Literal["txt"] = "txt"

    def pages(self, data: bytes) -> List[str]:
        text = decode_text(data)
        if not text.strip():
            raise ReportParseError("Text file is empty")
        # Form feeds separate pages in printer-style exports
        return text.replace("\r\n", "\n").replace("\r", "\n").split("\f")


@dataclass(frozen=True)
class CsvReportParser(_ReportParser):
    file_type: Literal["csv"] = "csv"

    def pages(self, data: bytes) -> List[str]:
        text = decode_text(data)
        if not text.strip():
            raise ReportParseError("CSV file contains no data")
        try:
            dialect = csv.Sniffer().sniff(text[:4096], delimiters=CSV_DELIMITERS)
            delimiter = dialect.delimiter
        except csv.Error:
            delimiter = ","
        rows = csv.reader(io.StringIO(text), delimiter=delimiter)
        lines = []
        for row in rows:
            cells = [" ".join(cell.split()) for cell in row]
            while cells and not cells[-1]:
                cells.pop()
            if any(cells):
                lines.append("|".join(cells))
        if not lines:
            raise ReportParseError("CSV file contains no data")
        return ["\n".join(lines)]


@dataclass(frozen=True)
class MappingTableParser:
    file_type: Literal["mapping"] = "mapping"

    def parse(self, data: bytes, filename: str) -> MappingTable:
        return load_mapping_table(data, filename)


ContentParser = Union[PdfReportParser, CsvReportParser, TextReportParser, MappingTableParser]


def parser_for(
    file_type: FileType,
    *,
    known_names: Iterable[str] = (),
    valid_source_codes: Iterable[str] = (),
) -> ContentParser:
    if file_type == "mapping":
        return MappingTableParser()
    names = tuple(known_names)
    codes = frozenset(c.strip().upper() for c in valid_source_codes if c and c.strip())
    if file_type == "pdf":
        return PdfReportParser(known_names=names, valid_source_codes=codes)
    if file_type == "csv":
        return CsvReportParser(known_names=names, valid_source_codes=codes)
    return TextReportParser(known_names=names, valid_source_codes=codes)
