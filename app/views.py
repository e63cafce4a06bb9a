"""Server-rendered pages for each workflow state.

Every function here is a pure mapping from a ``WorkflowSnapshot`` to HTML.
Text coming from the user or the model is always escaped.
"""

from __future__ import annotations

from html import escape
from typing import Any

from app.state_machine import ERROR, PROCESSING, RESETTABLE_STATES, SUCCESS
from app.workflow import WorkflowSnapshot
from schemas.invoice_schema import InvoiceRecord, LineItem

APP_TITLE = "المحاسب الذكي"
APP_SUBTITLE = "استخراج بيانات الفواتير بالذكاء الاصطناعي"

PROCESSING_REFRESH_SECONDS = 2

_TABLE_HEADERS = (
    "Red Code",
    "LV TY UC",
    "Supplier REF",
    "FAM",
    "VAT",
    "Desc (EN)",
    "Desc (AR)",
    "Qty",
    "Unit Price",
    "Total",
)


def format_amount(value: float | None) -> str:
    """Display form of a number with thousands separators. Not used for export."""
    if value is None:
        return "-"
    if float(value).is_integer():
        return f"{int(value):,}"
    return f"{value:,.3f}".rstrip("0").rstrip(".")


def _text(value: Any, missing: str = "-") -> str:
    if value is None or value == "":
        return missing
    return escape(str(value))


def _layout(body: str, *, show_reset: bool, refresh_seconds: int | None = None) -> str:
    refresh = ""
    if refresh_seconds:
        refresh = f'\n    <meta http-equiv="refresh" content="{refresh_seconds}">'
    reset = ""
    if show_reset:
        reset = (
            '<form method="post" action="/reset" class="header-action">'
            '<button type="submit">فاتورة جديدة</button></form>'
        )
    return f"""<!DOCTYPE html>
<html lang="ar" dir="rtl">
  <head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1">{refresh}
    <title>{APP_TITLE}</title>
  </head>
  <body>
    <header>
      <h1>{APP_TITLE}</h1>
      <p>{APP_SUBTITLE}</p>
      {reset}
    </header>
    <main>
{body}
    </main>
  </body>
</html>
"""


def render_upload_view() -> str:
    return """      <section class="upload">
        <h2>ابدأ برفع الفاتورة</h2>
        <p>ساقوم بقراءة البيانات وتحويلها لملف إكسيل جاهز</p>
        <form method="post" action="/upload" enctype="multipart/form-data">
          <label for="file">اضغط لرفع الفاتورة (PDF, JPG, PNG)</label>
          <input id="file" type="file" name="file" accept="image/*,application/pdf" required>
          <button type="submit">رفع</button>
        </form>
      </section>"""


def _render_preview(snapshot: WorkflowSnapshot, caption: str) -> str:
    preview = snapshot.preview
    if preview is None:
        return ""
    if preview.is_pdf:
        return (
            '<div class="preview pdf">'
            f'<p>مستند PDF</p><a href="{preview.url}" target="_blank" rel="noreferrer">عرض الملف</a>'
            "</div>"
        )
    return f'<div class="preview"><img src="{preview.url}" alt="{escape(caption)}"></div>'


def render_processing_view(snapshot: WorkflowSnapshot) -> str:
    return f"""      <section class="processing">
        <h3>جاري تحليل الفاتورة...</h3>
        <p>يرجى الانتظار، جاري استخراج الأرقام والتفاصيل</p>
        {_render_preview(snapshot, "Processing")}
      </section>"""


def render_error_view(snapshot: WorkflowSnapshot) -> str:
    return f"""      <section class="error" role="alert">
        <h3>عفواً، حدث خطأ</h3>
        <p>{escape(snapshot.error_message)}</p>
        <form method="post" action="/reset"><button type="submit">حاول مرة أخرى</button></form>
      </section>"""


def _render_item_row(item: LineItem) -> str:
    cells = [
        _text(item.red_code),
        _text(item.lv_ty_uc),
        _text(item.supplier_ref),
        _text(item.fam),
        format_amount(item.vat) if item.vat else "-",
        _text(item.description_en, missing=""),
        _text(item.description_ar, missing=""),
        format_amount(item.quantity),
        format_amount(item.unit_price),
        format_amount(item.total),
    ]
    return "<tr>" + "".join(f"<td>{cell}</td>" for cell in cells) + "</tr>"


def _render_warnings(warnings: tuple[dict[str, Any], ...]) -> str:
    if not warnings:
        return ""
    entries = "".join(f"<li>{escape(str(w.get('message', w.get('code', ''))))}</li>" for w in warnings)
    return f'<div class="warnings" dir="ltr"><h4>Please double-check</h4><ul>{entries}</ul></div>'


def render_result_view(snapshot: WorkflowSnapshot) -> str:
    record: InvoiceRecord | None = snapshot.record
    if record is None:
        return render_upload_view()
    currency = _text(record.currency, missing="")
    header_cells = "".join(f"<th>{label}</th>" for label in _TABLE_HEADERS)
    rows = "".join(_render_item_row(item) for item in record.items)
    summary = f"<p class=\"summary\">{escape(record.summary)}</p>" if record.summary else ""
    return f"""      <section class="result" dir="ltr">
        <div class="result-header">
          <h2>&#10003; Extraction Complete</h2>
          <p>Data ready for export</p>
          <a class="download" href="/export.csv" download>Download Excel (CSV)</a>
        </div>
        <div class="facts">
          <div><p>Vendor</p><p>{_text(record.vendor_name, missing="N/A")}</p></div>
          <div><p>Invoice</p><p>{_text(record.invoice_number)} &middot; {_text(record.date)}</p></div>
          <div><p>Total Amount</p><p>{format_amount(record.total_amount)} {currency}</p></div>
        </div>
        {summary}
        {_render_warnings(snapshot.warnings)}
        <table>
          <thead><tr>{header_cells}</tr></thead>
          <tbody>{rows}</tbody>
          <tfoot>
            <tr><td colspan="9">Subtotal</td><td>{format_amount(record.subtotal)}</td></tr>
            <tr><td colspan="9">Tax</td><td>{format_amount(record.tax)}</td></tr>
            <tr><td colspan="9">Grand Total ({currency})</td><td>{format_amount(record.total_amount)}</td></tr>
          </tfoot>
        </table>
      </section>
      <section class="original">
        <h3>ملف الفاتورة الأصلي</h3>
        {_render_preview(snapshot, "Original Invoice")}
      </section>"""


def render_page(snapshot: WorkflowSnapshot) -> str:
    if snapshot.status == PROCESSING:
        body = render_processing_view(snapshot)
    elif snapshot.status == ERROR:
        body = render_error_view(snapshot)
    elif snapshot.status == SUCCESS:
        body = render_result_view(snapshot)
    else:
        body = render_upload_view()
    return _layout(
        body,
        show_reset=snapshot.status in RESETTABLE_STATES,
        refresh_seconds=PROCESSING_REFRESH_SECONDS if snapshot.status == PROCESSING else None,
    )
