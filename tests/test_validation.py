from __future__ import annotations

from app.validation import evaluate_record
from schemas.invoice_schema import InvoiceRecord


def _payload() -> dict:
    return {
        "vendorName": "Acme Supplies",
        "subtotal": 100.0,
        "tax": 15.0,
        "totalAmount": 115.0,
        "items": [
            {
                "descriptionEn": "Paper",
                "descriptionAr": "ورق",
                "quantity": 2,
                "unitPrice": 50.0,
                "total": 100.0,
            }
        ],
    }


def _codes(payload: dict) -> list[str]:
    return [w["code"] for w in evaluate_record(InvoiceRecord.model_validate(payload))]


def test_consistent_record_has_no_warnings() -> None:
    assert _codes(_payload()) == []


def test_line_total_mismatch_names_the_item() -> None:
    payload = _payload()
    payload["items"][0]["unitPrice"] = 40.0
    warnings = evaluate_record(InvoiceRecord.model_validate(payload))
    assert warnings[0]["code"] == "line_total_mismatch"
    assert warnings[0]["message"].startswith("item 1:")
    assert warnings[0]["expected_total"] == 80.0


def test_subtotal_tax_total_mismatch() -> None:
    payload = _payload()
    payload["totalAmount"] = 999.0
    assert _codes(payload) == ["amount_mismatch"]


def test_line_item_sum_mismatch() -> None:
    payload = _payload()
    payload["subtotal"] = 90.0
    payload["totalAmount"] = 105.0
    assert _codes(payload) == ["line_item_sum_mismatch"]


def test_small_rounding_differences_are_tolerated() -> None:
    payload = _payload()
    payload["totalAmount"] = 115.004
    assert _codes(payload) == []


def test_missing_optional_amounts_skip_checks() -> None:
    payload = _payload()
    del payload["subtotal"]
    del payload["tax"]
    payload["totalAmount"] = 1.0
    assert _codes(payload) == []


def test_record_without_items_only_checks_totals() -> None:
    payload = _payload()
    payload["items"] = []
    assert _codes(payload) == []
