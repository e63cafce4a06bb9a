from __future__ import annotations

from typing import Any

from schemas.invoice_schema import InvoiceRecord


def evaluate_record(
    record: InvoiceRecord,
    *,
    amount_tolerance: float = 0.01,
) -> list[dict[str, Any]]:
    """Return arithmetic warnings for an extracted record.

    Nothing here blocks the workflow: the model output is shown and exported
    as-is, and the warnings only point the user at rows worth double-checking.
    """
    warnings: list[dict[str, Any]] = []

    for index, item in enumerate(record.items, start=1):
        expected = round(item.quantity * item.unit_price, 2)
        actual = round(item.total, 2)
        if abs(expected - actual) > amount_tolerance:
            warnings.append(
                {
                    "code": "line_total_mismatch",
                    "message": f"item {index}: quantity x unit price does not match line total",
                    "expected_total": expected,
                    "actual_total": actual,
                }
            )

    if record.subtotal is not None and record.tax is not None:
        computed_total = round(record.subtotal + record.tax, 2)
        declared_total = round(record.total_amount, 2)
        if abs(computed_total - declared_total) > amount_tolerance:
            warnings.append(
                {
                    "code": "amount_mismatch",
                    "message": "subtotal + tax does not match total amount",
                    "expected_total": computed_total,
                    "actual_total": declared_total,
                }
            )

    if record.items and record.subtotal is not None:
        line_sum = round(sum(item.total for item in record.items), 2)
        subtotal = round(record.subtotal, 2)
        if abs(line_sum - subtotal) > amount_tolerance:
            warnings.append(
                {
                    "code": "line_item_sum_mismatch",
                    "message": "sum of line totals does not match subtotal",
                    "expected_subtotal": line_sum,
                    "actual_subtotal": subtotal,
                }
            )

    return warnings
