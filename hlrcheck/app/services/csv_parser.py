# hlrcheck/app/services/csv_parser.py

import io
import csv
import re
from typing import List, Iterable, Optional

from openpyxl import load_workbook

# Accepts longer TLDs, underscores, plus-addressing.
EMAIL_REGEX = re.compile(
    r"(^[a-zA-Z0-9_.+-]+@[a-zA-Z0-9-]+\.[a-zA-Z0-9-.]+$)"
)

_DIGITS = re.compile(r"\d")

SUPPORTED_EXTENSIONS = (".csv", ".txt", ".xlsx")


def normalize_email(raw: Optional[str]) -> Optional[str]:
    """Lower-cased, trimmed email, or None when it does not look like one."""
    candidate = (raw or "").strip().lower()
    if candidate and EMAIL_REGEX.match(candidate):
        return candidate
    return None


def _decode(content: bytes) -> str:
    try:
        return content.decode("utf-8-sig")  # Handles BOM correctly
    except UnicodeDecodeError:
        return content.decode("utf-8", errors="replace")


def _csv_cells(text: str, max_sample_size: int = 8192) -> Iterable[str]:
    sample = text[:max_sample_size]
    try:
        dialect = csv.Sniffer().sniff(sample, delimiters=",\t;|")
    except csv.Error:
        dialect = csv.excel

    for row in csv.reader(io.StringIO(text), dialect=dialect):
        for cell in row:
            yield cell


def _xlsx_cells(content: bytes) -> Iterable[str]:
    wb = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    try:
        for ws in wb.worksheets:
            for row in ws.iter_rows(values_only=True):
                for value in row:
                    if value is None:
                        continue
                    # numeric cells come back as int/float
                    if isinstance(value, float) and value.is_integer():
                        value = int(value)
                    yield str(value)
    finally:
        wb.close()


def _looks_like_phone(cell: str) -> bool:
    return "@" not in cell and len(_DIGITS.findall(cell)) >= 7


def extract_values(content: bytes, filename: str, kind: str) -> List[str]:
    """
    Pull candidate phone numbers ("hlr") or emails ("email") out of an
    uploaded CSV / TXT / XLSX file. Header cells and junk are skipped,
    duplicates are kept so the caller can report them.
    """
    name = (filename or "").lower()
    if not name.endswith(SUPPORTED_EXTENSIONS):
        raise ValueError("Only CSV, TXT or XLSX files are supported")

    cells = _xlsx_cells(content) if name.endswith(".xlsx") else _csv_cells(_decode(content))

    values: List[str] = []
    for cell in cells:
        cell = (cell or "").strip()
        if not cell:
            continue
        if kind == "email":
            email = normalize_email(cell)
            if email:
                values.append(email)
        elif _looks_like_phone(cell):
            values.append(cell)
    return values
