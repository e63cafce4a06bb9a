"""Spreadsheet-friendly CSV export of an extracted invoice.

The layout targets Excel's CSV import:

* a leading BOM so Arabic descriptions are read as UTF-8,
* supplier codes wrapped as ``="<code>"`` so they stay text (leading zeros,
  no scientific notation),
* plain numeric literals in the amount columns.

The ``="..."`` wrapper is an Excel import convention, not standard CSV. Other
consumers will see the literal formula text.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any, Final
from urllib.parse import quote

from schemas.invoice_schema import InvoiceRecord, LineItem

BOM: Final[str] = "\ufeff"

CSV_HEADERS: Final[tuple[str, ...]] = (
    "Red Code",
    "LV TY UC",
    "Supplier REF",
    "FAM",
    "VAT",
    "Description (EN)",
    "Description (AR)",
    "Qty",
    "Unit Price",
    "Line Total",
)

NO_ITEMS_LABEL: Final[str] = "No Items Detected"

DEFAULT_FILENAME_PREFIX: Final[str] = "invoice_extract_"

_NO_ITEMS_ROW: Final[tuple[str, ...]] = ("", "", "", "", "0", NO_ITEMS_LABEL, "", "0", "0", "0")


def _number(value: Any) -> str:
    if not value:
        return "0"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    # Positional notation only; str() switches to exponents below 1e-4.
    return format(Decimal(str(value)), "f")


def _code(value: str | None) -> str:
    # Embedded quotes are not escaped inside the wrapper.
    if not value:
        return ""
    return f'="{value}"'


def _quoted(value: str | None) -> str:
    return '"' + (value or "").replace('"', '""') + '"'


def _item_row(item: LineItem) -> list[str]:
    return [
        _code(item.red_code),
        _code(item.lv_ty_uc),
        _code(item.supplier_ref),
        _code(item.fam),
        _number(item.vat),
        _quoted(item.description_en),
        _quoted(item.description_ar),
        _number(item.quantity),
        _number(item.unit_price),
        _number(item.total),
    ]


def format_invoice_csv(record: InvoiceRecord) -> str:
    rows = [",".join(CSV_HEADERS)]
    if record.items:
        rows.extend(",".join(_item_row(item)) for item in record.items)
    else:
        rows.append(",".join(_NO_ITEMS_ROW))
    return BOM + "\n".join(rows)


def encode_csv(text: str) -> bytes:
    return text.encode("utf-8")


def export_filename(today: date | None = None, prefix: str = DEFAULT_FILENAME_PREFIX) -> str:
    day = today or date.today()
    return f"{prefix}{day.isoformat()}.csv"


def content_disposition(filename: str) -> str:
    """``attachment`` header value, adding an RFC 5987 ``filename*`` for non-ASCII names."""
    fallback = "".join(ch if 32 <= ord(ch) < 127 and ch not in '"\\' else "_" for ch in filename)
    header = f'attachment; filename="{fallback}"'
    if fallback != filename:
        header += f"; filename*=UTF-8''{quote(filename, safe='')}"
    return header
