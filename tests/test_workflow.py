from __future__ import annotations

import asyncio

import pytest

from app.extraction_service import ConfigurationError, ExtractionError, InvoiceExtractor
from app.metrics import MetricsCollector
from app.preview_store import PreviewStore
from app.state_machine import ERROR, IDLE, PROCESSING, SUCCESS, InvalidTransitionError
from app.workflow import GENERIC_ERROR_MESSAGE, WorkflowController
from schemas.invoice_schema import InvoiceRecord


def _record() -> InvoiceRecord:
    return InvoiceRecord.model_validate(
        {
            "vendorName": "Acme",
            "totalAmount": 150,
            "items": [
                {
                    "descriptionEn": "Bolt",
                    "descriptionAr": "برغي",
                    "quantity": 10,
                    "unitPrice": 15,
                    "total": 150,
                }
            ],
        }
    )


class _StaticExtractor:
    def __init__(self, record: InvoiceRecord | None = None, error: Exception | None = None) -> None:
        self._record = record
        self._error = error
        self.calls: list[tuple[bytes, str]] = []

    async def extract(self, data: bytes, mime_type: str) -> InvoiceRecord:
        self.calls.append((data, mime_type))
        if self._error is not None:
            raise self._error
        assert self._record is not None
        return self._record


class _ReentrantExtractor:
    """Pokes the controller while the extraction is still in flight."""

    def __init__(self) -> None:
        self.controller: WorkflowController | None = None
        self.status_during_call = ""
        self.errors: list[Exception] = []

    async def extract(self, data: bytes, mime_type: str) -> InvoiceRecord:
        assert self.controller is not None
        self.status_during_call = self.controller.status
        try:
            self.controller.reset()
        except InvalidTransitionError as exc:
            self.errors.append(exc)
        try:
            await self.controller.select_file(b"other", "other.png", "image/png")
        except InvalidTransitionError as exc:
            self.errors.append(exc)
        return _record()


def test_successful_upload_moves_to_success() -> None:
    extractor = _StaticExtractor(record=_record())
    controller = WorkflowController(extractor)

    snapshot = asyncio.run(controller.select_file(b"img", "scan.png", "image/png"))

    assert snapshot.status == SUCCESS
    assert snapshot.record == _record()
    assert snapshot.error_message == ""
    assert snapshot.file_type == "image/png"
    assert snapshot.preview is not None
    assert snapshot.preview.data == b"img"
    assert extractor.calls == [(b"img", "image/png")]


def test_upload_shows_processing_while_extraction_runs() -> None:
    extractor = _ReentrantExtractor()
    controller = WorkflowController(extractor)
    extractor.controller = controller

    asyncio.run(controller.select_file(b"img", "scan.png", "image/png"))

    assert extractor.status_during_call == PROCESSING
    assert len(extractor.errors) == 2
    assert all("Invalid transition" in str(exc) for exc in extractor.errors)
    assert controller.status == SUCCESS


@pytest.mark.parametrize(
    "error",
    [
        ExtractionError("bad json", code="invalid_json"),
        ConfigurationError("API key is missing"),
        RuntimeError("unexpected"),
    ],
)
def test_any_failure_moves_to_error_with_generic_message(error: Exception) -> None:
    controller = WorkflowController(_StaticExtractor(error=error))

    snapshot = asyncio.run(controller.select_file(b"img", "scan.png", "image/png"))

    assert snapshot.status == ERROR
    assert snapshot.record is None
    assert snapshot.error_message == GENERIC_ERROR_MESSAGE
    assert str(error) not in snapshot.error_message


def test_missing_key_with_real_extractor_lands_in_error() -> None:
    controller = WorkflowController(InvoiceExtractor(api_key=None))
    snapshot = asyncio.run(controller.select_file(b"img", "scan.jpg", "image/jpeg"))
    assert snapshot.status == ERROR
    assert snapshot.error_message == GENERIC_ERROR_MESSAGE


def test_reset_clears_everything_and_revokes_preview() -> None:
    store = PreviewStore()
    controller = WorkflowController(_StaticExtractor(record=_record()), store)
    asyncio.run(controller.select_file(b"img", "scan.png", "image/png"))
    token = controller.preview.token if controller.preview else ""
    assert store.get(token) is not None

    snapshot = controller.reset()

    assert snapshot.status == IDLE
    assert snapshot.record is None
    assert snapshot.error_message == ""
    assert snapshot.preview is None
    assert snapshot.file_type == ""
    assert snapshot.warnings == ()
    assert store.get(token) is None
    assert len(store) == 0


def test_reset_from_error_returns_to_idle() -> None:
    controller = WorkflowController(_StaticExtractor(error=ExtractionError("nope")))
    asyncio.run(controller.select_file(b"img", "scan.png", "image/png"))
    assert controller.reset().status == IDLE
    assert controller.error_message == ""


def test_reset_while_idle_is_rejected() -> None:
    controller = WorkflowController(_StaticExtractor(record=_record()))
    with pytest.raises(InvalidTransitionError):
        controller.reset()


def test_upload_requires_idle_state() -> None:
    controller = WorkflowController(_StaticExtractor(record=_record()))
    asyncio.run(controller.select_file(b"img", "scan.png", "image/png"))

    with pytest.raises(InvalidTransitionError):
        asyncio.run(controller.select_file(b"img2", "scan2.png", "image/png"))
    assert controller.status == SUCCESS


def test_new_upload_after_reset_supersedes_preview() -> None:
    store = PreviewStore()
    controller = WorkflowController(_StaticExtractor(record=_record()), store)
    asyncio.run(controller.select_file(b"first", "a.png", "image/png"))
    first_token = controller.preview.token if controller.preview else ""
    controller.reset()

    asyncio.run(controller.select_file(b"second", "b.pdf", "application/pdf"))

    assert store.get(first_token) is None
    assert controller.preview is not None
    assert controller.preview.is_pdf
    assert len(store) == 1


def test_arithmetic_warnings_do_not_block_success() -> None:
    payload = _record().to_payload()
    payload["items"][0]["unitPrice"] = 16
    controller = WorkflowController(_StaticExtractor(record=InvoiceRecord.model_validate(payload)))

    snapshot = asyncio.run(controller.select_file(b"img", "scan.png", "image/png"))

    assert snapshot.status == SUCCESS
    assert [w["code"] for w in snapshot.warnings] == ["line_total_mismatch"]


def test_metrics_count_outcomes() -> None:
    metrics = MetricsCollector()
    ok = WorkflowController(_StaticExtractor(record=_record()), metrics=metrics)
    bad = WorkflowController(_StaticExtractor(error=ExtractionError("nope")), metrics=metrics)

    asyncio.run(ok.select_file(b"img", "a.png", "image/png"))
    asyncio.run(bad.select_file(b"img", "b.png", "image/png"))

    snapshot = metrics.snapshot()
    assert snapshot["uploads_total"] == 2
    assert snapshot["success_total"] == 1
    assert snapshot["failure_total"] == 1


def test_begin_publishes_preview_before_extraction() -> None:
    extractor = _StaticExtractor(record=_record())
    store = PreviewStore()
    controller = WorkflowController(extractor, store)

    snapshot = controller.begin(b"img", "scan.png", "image/png")

    assert snapshot.status == PROCESSING
    assert snapshot.preview is not None
    assert store.get(snapshot.preview.token) is not None
    assert extractor.calls == []

    settled = asyncio.run(controller.run_extraction(b"img"))
    assert settled.status == SUCCESS
    assert extractor.calls == [(b"img", "image/png")]


def test_run_extraction_requires_pending_upload() -> None:
    controller = WorkflowController(_StaticExtractor(record=_record()))
    with pytest.raises(InvalidTransitionError, match="No extraction pending"):
        asyncio.run(controller.run_extraction(b"img"))


def test_close_releases_preview() -> None:
    store = PreviewStore()
    controller = WorkflowController(_StaticExtractor(record=_record()), store)
    asyncio.run(controller.select_file(b"img", "scan.png", "image/png"))

    controller.close()

    assert controller.preview is None
    assert len(store) == 0
