from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, StrictStr


class LineItem(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    # Codes stay strings end to end so leading zeros survive.
    red_code: StrictStr | None = Field(default=None, alias="redCode")
    lv_ty_uc: StrictStr | None = Field(default=None, alias="lvTyUc")
    supplier_ref: StrictStr | None = Field(default=None, alias="supplierRef")
    fam: StrictStr | None = None
    vat: float | None = None
    description_en: str = Field(alias="descriptionEn")
    description_ar: str = Field(alias="descriptionAr")
    quantity: float
    unit_price: float = Field(alias="unitPrice")
    total: float


class InvoiceRecord(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    invoice_number: str | None = Field(default=None, alias="invoiceNumber")
    date: str | None = None
    vendor_name: str = Field(alias="vendorName")
    currency: str | None = None
    subtotal: float | None = None
    tax: float | None = None
    total_amount: float = Field(alias="totalAmount")
    items: list[LineItem]
    summary: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
