from io import BytesIO
from typing import Any, List, Optional

import pdfplumber

from exceptions import ReportParseError
from logger import logger

PDF_MAGIC = b"%PDF"


def _cell(value: Optional[str]) -> str:
    return " ".join((value or "").split())


def _table_rows(page: Any) -> List[str]:
    rows: List[str] = []
    for table in page.extract_tables() or []:
        for row in table or []:
            cells = [_cell(c) for c in row or []]
            # Trailing empty cells come from ruled columns with nothing printed in them
            while cells and not cells[-1]:
                cells.pop()
            if any(cells):
                rows.append("|".join(cells))
    return rows


def extract_pdf_pages(pdf_bytes: bytes) -> List[str]:
    """Return the text of each page, one report row per line.

    Pages with ruled tables contribute their plain text (for the header) followed
    by the table rows with cells joined by ``|``. Pages without tables are read in
    layout mode so fixed-width columns keep their spacing for the line extractor.
    """
    if not pdf_bytes.startswith(PDF_MAGIC):
        raise ReportParseError("File is not a PDF (missing %PDF header)")

    pages: List[str] = []
    try:
        with pdfplumber.open(BytesIO(pdf_bytes)) as pdf:
            for page in pdf.pages:
                rows = _table_rows(page)
                if rows:
                    text = page.extract_text() or ""
                    pages.append("\n".join([text, *rows]) if text else "\n".join(rows))
                else:
                    pages.append(page.extract_text(layout=True) or "")
    except Exception as exc:
        raise ReportParseError(f"Unable to read PDF: {exc}") from exc

    if not any(p.strip() for p in pages):
        raise ReportParseError("PDF has no extractable text (scanned or image-only)")
    logger.debug("Extracted PDF text", pages=len(pages))
    return pages
