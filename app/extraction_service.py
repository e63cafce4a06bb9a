from __future__ import annotations

import json
import logging
from typing import Any, Final, Protocol

import httpx
from pydantic import ValidationError

from app.config import Settings
from schemas.invoice_schema import InvoiceRecord

logger = logging.getLogger(__name__)

DEFAULT_MODEL: Final[str] = "gemini-3-flash-preview"


class VisionClient(Protocol):
    async def generate_json(self, data: bytes, mime_type: str, prompt: str) -> str | None:
        """Return raw model text intended to be a JSON invoice object."""


class InvoiceProcessingError(RuntimeError):
    default_code = "processing_failed"

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.code = code or self.default_code


class ConfigurationError(InvoiceProcessingError):
    default_code = "missing_api_key"


class ExtractionError(InvoiceProcessingError):
    default_code = "extraction_failed"


class TransportError(InvoiceProcessingError):
    default_code = "transport_failed"


SYSTEM_INSTRUCTION: Final[str] = (
    "You are an expert accountant AI. Extract specific columns: Red Code, LV TY UC, "
    "Supplier REF, FAM, VAT, Qty, Unit Price, Total. "
    "Split descriptions into English and Arabic."
)

USER_EXTRACTION_PROMPT: Final[str] = (
    "Analyze this invoice document. Extract the data strictly according to the schema. "
    "Look for columns specifically named 'Red Code', 'LV TY UC', 'Supplier REF', 'FAM', "
    "and 'VAT'. Copy codes exactly as printed, keeping leading zeros. "
    "For the item description, you MUST split it into 'descriptionEn' (English) and "
    "'descriptionAr' (Arabic). If the invoice only has one language, provide a translation."
)

_LINE_ITEM_SCHEMA: Final[dict[str, Any]] = {
    "type": "OBJECT",
    "properties": {
        "redCode": {"type": "STRING", "description": "The Red Code or product code."},
        "lvTyUc": {"type": "STRING", "description": "The LV TY UC code or similar classification code."},
        "supplierRef": {"type": "STRING", "description": "The Supplier Reference (REF)."},
        "fam": {"type": "STRING", "description": "The FAM or Family code."},
        "vat": {"type": "NUMBER", "description": "The VAT amount or percentage for this item."},
        "descriptionEn": {"type": "STRING", "description": "Item name/description in English."},
        "descriptionAr": {"type": "STRING", "description": "Item name/description in Arabic."},
        "quantity": {"type": "NUMBER", "description": "Quantity purchased."},
        "unitPrice": {"type": "NUMBER", "description": "Price per unit."},
        "total": {"type": "NUMBER", "description": "Total line item price."},
    },
    "required": ["descriptionEn", "descriptionAr", "quantity", "unitPrice", "total"],
}

INVOICE_RESPONSE_SCHEMA: Final[dict[str, Any]] = {
    "type": "OBJECT",
    "properties": {
        "invoiceNumber": {"type": "STRING", "description": "The invoice number or ID."},
        "date": {"type": "STRING", "description": "The invoice date in YYYY-MM-DD format."},
        "vendorName": {
            "type": "STRING",
            "description": "The name of the company or vendor issuing the invoice.",
        },
        "currency": {
            "type": "STRING",
            "description": "Currency symbol or code (e.g., EGP, USD, SAR).",
        },
        "subtotal": {"type": "NUMBER", "description": "The total before tax."},
        "tax": {"type": "NUMBER", "description": "The total tax amount."},
        "totalAmount": {"type": "NUMBER", "description": "The final total amount to be paid."},
        "items": {
            "type": "ARRAY",
            "description": (
                "List of items purchased. Look for columns like 'Red Code', 'LV TY UC', "
                "'Supplier Ref', 'FAM', 'VAT'. Split description into English and Arabic."
            ),
            "items": _LINE_ITEM_SCHEMA,
        },
        "summary": {"type": "STRING", "description": "Optional one-sentence summary of the invoice."},
    },
    "required": ["vendorName", "totalAmount", "items"],
}


def _parse_json_payload(raw_text: str) -> dict[str, Any]:
    try:
        payload = json.loads(raw_text)
    except json.JSONDecodeError as exc:
        raise ExtractionError("Model returned invalid JSON", code="invalid_json") from exc
    if not isinstance(payload, dict):
        raise ExtractionError("Model output must be a JSON object", code="invalid_json_shape")
    return payload


def decode_invoice_payload(raw_text: str | None) -> InvoiceRecord:
    if not raw_text or not raw_text.strip():
        raise ExtractionError("No data returned from Gemini", code="empty_response")
    payload = _parse_json_payload(raw_text)
    try:
        return InvoiceRecord.model_validate(payload)
    except ValidationError as exc:
        raise ExtractionError(
            f"Model output does not match the invoice schema: {exc.error_count()} error(s)",
            code="schema_mismatch",
        ) from exc


class GeminiVisionClient:
    def __init__(self, api_key: str, model_name: str = DEFAULT_MODEL) -> None:
        try:
            from google import genai
        except ImportError as exc:
            raise RuntimeError("google-genai package is required for Gemini extraction") from exc
        self._client = genai.Client(api_key=api_key)
        self._model_name = model_name

    async def generate_json(self, data: bytes, mime_type: str, prompt: str) -> str | None:
        from google.genai import errors, types

        try:
            response = await self._client.aio.models.generate_content(
                model=self._model_name,
                contents=[
                    types.Part.from_bytes(data=data, mime_type=mime_type),
                    prompt,
                ],
                config=types.GenerateContentConfig(
                    response_mime_type="application/json",
                    response_schema=INVOICE_RESPONSE_SCHEMA,
                    system_instruction=SYSTEM_INSTRUCTION,
                ),
            )
        except errors.APIError as exc:
            raise TransportError(f"Gemini request failed with status {exc.code}: {exc.message}") from exc
        except httpx.HTTPError as exc:
            raise TransportError(f"Gemini request failed: {exc}") from exc
        return getattr(response, "text", None)


class InvoiceExtractor:
    """Single-attempt invoice extraction against a vision model.

    The credential is supplied at construction time. A missing credential only
    fails when ``extract`` is called, so the surrounding workflow can report it
    like any other processing failure.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model_name: str = DEFAULT_MODEL,
        client: VisionClient | None = None,
    ) -> None:
        self._api_key = api_key
        self._model_name = model_name
        self._client = client

    @property
    def model_name(self) -> str:
        return self._model_name

    def _resolve_client(self) -> VisionClient:
        if self._client is not None:
            return self._client
        if not self._api_key:
            raise ConfigurationError("API key is missing")
        self._client = GeminiVisionClient(api_key=self._api_key, model_name=self._model_name)
        return self._client

    async def extract(self, data: bytes, mime_type: str) -> InvoiceRecord:
        client = self._resolve_client()
        if not data:
            raise ExtractionError("Uploaded file is empty", code="empty_file")

        logger.info(
            "Requesting extraction model=%s mime_type=%s size_bytes=%d",
            self._model_name,
            mime_type,
            len(data),
        )
        raw_text = await client.generate_json(data, mime_type, USER_EXTRACTION_PROMPT)
        record = decode_invoice_payload(raw_text)
        logger.info("Extraction decoded vendor=%r items=%d", record.vendor_name, len(record.items))
        return record


def build_extractor(settings: Settings) -> InvoiceExtractor:
    return InvoiceExtractor(api_key=settings.gemini_api_key, model_name=settings.gemini_model)
