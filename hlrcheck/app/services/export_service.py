# hlrcheck/app/services/export_service.py
"""
CSV / XLSX export of batch results with selectable columns.
"""

import csv
import io
import logging
from typing import Any, Dict, Iterable, List, Optional

from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter

from hlrcheck.app.services.health_score import calculate_health_score, health_label

logger = logging.getLogger(__name__)

HLR_EXPORT_FIELDS: List[Dict[str, str]] = [
    {"key": "phone_number", "label": "Phone Number"},
    {"key": "international_format", "label": "International Format"},
    {"key": "national_format", "label": "National Format"},
    {"key": "country_name", "label": "Country"},
    {"key": "country_code", "label": "Country Code"},
    {"key": "country_prefix", "label": "Country Prefix"},
    {"key": "current_carrier_name", "label": "Current Carrier"},
    {"key": "current_carrier_code", "label": "Carrier Code"},
    {"key": "current_network_type", "label": "Network Type"},
    {"key": "original_carrier_name", "label": "Original Carrier"},
    {"key": "valid_number", "label": "Valid"},
    {"key": "reachable", "label": "Reachable"},
    {"key": "ported", "label": "Ported"},
    {"key": "roaming", "label": "Roaming"},
    {"key": "gsm_code", "label": "GSM Code"},
    {"key": "gsm_message", "label": "GSM Message"},
    {"key": "health_score", "label": "Health Score"},
    {"key": "health_label", "label": "Health"},
    {"key": "status", "label": "Status"},
    {"key": "error_message", "label": "Error"},
    {"key": "created_at", "label": "Checked At"},
]

EMAIL_EXPORT_FIELDS: List[Dict[str, str]] = [
    {"key": "email", "label": "Email"},
    {"key": "verdict", "label": "Status"},
    {"key": "quality", "label": "Quality"},
    {"key": "result", "label": "Result"},
    {"key": "subresult", "label": "Subresult"},
    {"key": "is_free", "label": "Free Provider"},
    {"key": "is_role", "label": "Role Account"},
    {"key": "did_you_mean", "label": "Did You Mean"},
    {"key": "error_message", "label": "Error"},
    {"key": "created_at", "label": "Checked At"},
]

EXPORT_FIELDS = {"hlr": HLR_EXPORT_FIELDS, "email": EMAIL_EXPORT_FIELDS}

PRESETS: Dict[str, Dict[str, List[str]]] = {
    "hlr": {
        "basic": ["phone_number", "valid_number", "current_carrier_name", "country_name"],
        "standard": [
            "phone_number", "international_format", "valid_number", "reachable",
            "country_name", "current_carrier_name", "ported", "roaming", "health_score",
        ],
        "full": [f["key"] for f in HLR_EXPORT_FIELDS],
    },
    "email": {
        "basic": ["email", "verdict", "result"],
        "standard": ["email", "verdict", "quality", "result", "subresult", "is_free", "is_role", "did_you_mean"],
        "full": [f["key"] for f in EMAIL_EXPORT_FIELDS],
    },
}

FILTERS = ("all", "valid", "invalid")


def field_keys(kind: str) -> List[str]:
    return [f["key"] for f in EXPORT_FIELDS[kind]]


def unknown_fields(kind: str, fields: Iterable[str]) -> List[str]:
    known = set(field_keys(kind))
    return [f for f in fields if f not in known]


def resolve_fields(kind: str, fields: Optional[List[str]] = None, preset: Optional[str] = None) -> List[str]:
    """Explicit fields win over a preset; default is the full field list."""
    if fields:
        bad = unknown_fields(kind, fields)
        if bad:
            raise ValueError(f"Unknown export fields: {', '.join(bad)}")
        return list(dict.fromkeys(fields))
    if preset:
        try:
            return list(PRESETS[kind][preset])
        except KeyError:
            raise ValueError(f"Unknown preset: {preset}")
    return field_keys(kind)


def filter_results(results: Iterable[Any], mode: str = "all") -> List[Any]:
    if mode not in FILTERS:
        raise ValueError(f"Unknown filter: {mode}")
    results = list(results)
    if mode == "valid":
        return [r for r in results if r.is_valid]
    if mode == "invalid":
        return [r for r in results if not r.is_valid]
    return results


def _value(row: Any, key: str):
    if key == "health_score":
        return getattr(row, "health_score", None) or calculate_health_score(row)
    if key == "health_label":
        return health_label(getattr(row, "health_score", None) or calculate_health_score(row))
    value = getattr(row, key, None)
    if isinstance(value, bool):
        return "yes" if value else "no"
    if hasattr(value, "isoformat"):
        return value.isoformat(sep=" ", timespec="seconds")
    return value


def export_rows(results: Iterable[Any], fields: List[str], kind: str) -> List[List[Any]]:
    labels = {f["key"]: f["label"] for f in EXPORT_FIELDS[kind]}
    rows: List[List[Any]] = [[labels[k] for k in fields]]
    for r in results:
        rows.append([_value(r, k) for k in fields])
    return rows


def to_csv(rows: List[List[Any]]) -> bytes:
    buf = io.StringIO()
    writer = csv.writer(buf)
    for row in rows:
        writer.writerow(["" if v is None else v for v in row])
    # BOM so Excel picks up UTF-8
    return ("\ufeff" + buf.getvalue()).encode("utf-8")


def to_xlsx(rows: List[List[Any]], sheet_title: str = "Results") -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = sheet_title[:31]

    widths: Dict[int, int] = {}
    for row in rows:
        ws.append(row)
        for idx, value in enumerate(row, start=1):
            widths[idx] = max(widths.get(idx, 0), len(str(value)) if value is not None else 0)

    for cell in ws[1]:
        cell.font = Font(bold=True)
    ws.freeze_panes = "A2"
    for idx, width in widths.items():
        ws.column_dimensions[get_column_letter(idx)].width = min(max(width + 2, 10), 60)

    out = io.BytesIO()
    wb.save(out)
    return out.getvalue()


def render(results: Iterable[Any], kind: str, fields: List[str], fmt: str = "csv") -> bytes:
    rows = export_rows(results, fields, kind)
    if fmt == "xlsx":
        return to_xlsx(rows, sheet_title=f"{kind.upper()} results")
    if fmt == "csv":
        return to_csv(rows)
    raise ValueError(f"Unknown export format: {fmt}")


MEDIA_TYPES = {
    "csv": "text/csv; charset=utf-8",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}
