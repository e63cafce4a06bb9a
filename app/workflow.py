from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Final, Protocol

from app.extraction_service import InvoiceProcessingError
from app.logger import log_workflow_event
from app.metrics import MetricsCollector
from app.preview_store import FilePreview, PreviewStore
from app.state_machine import ERROR, IDLE, PROCESSING, SUCCESS, InvalidTransitionError, transition_state
from app.validation import evaluate_record
from schemas.invoice_schema import InvoiceRecord

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE: Final[str] = (
    "حدث خطأ أثناء معالجة الفاتورة. تأكد من أن الملف واضح وحاول مرة أخرى."
)


class Extractor(Protocol):
    async def extract(self, data: bytes, mime_type: str) -> InvoiceRecord:
        """Return the structured record for one uploaded document."""


@dataclass(frozen=True)
class WorkflowSnapshot:
    status: str
    record: InvoiceRecord | None = None
    error_message: str = ""
    preview: FilePreview | None = None
    file_type: str = ""
    warnings: tuple[dict[str, Any], ...] = ()


class WorkflowController:
    """Upload/extract/result workflow for one browser session.

    IDLE -> PROCESSING on ``begin`` (or ``select_file``); PROCESSING -> SUCCESS
    or ERROR when ``run_extraction`` settles; SUCCESS/ERROR -> IDLE on ``reset``.
    A new upload is only accepted from IDLE and there is no cancel while
    PROCESSING.
    """

    def __init__(
        self,
        extractor: Extractor,
        preview_store: PreviewStore | None = None,
        *,
        session_id: str = "local",
        metrics: MetricsCollector | None = None,
    ) -> None:
        self._extractor = extractor
        self._previews = preview_store if preview_store is not None else PreviewStore()
        self._session_id = session_id
        self._metrics = metrics
        self._status = IDLE
        self._record: InvoiceRecord | None = None
        self._error_message = ""
        self._preview: FilePreview | None = None
        self._file_type = ""
        self._warnings: tuple[dict[str, Any], ...] = ()

    @property
    def status(self) -> str:
        return self._status

    @property
    def record(self) -> InvoiceRecord | None:
        return self._record

    @property
    def error_message(self) -> str:
        return self._error_message

    @property
    def preview(self) -> FilePreview | None:
        return self._preview

    def snapshot(self) -> WorkflowSnapshot:
        return WorkflowSnapshot(
            status=self._status,
            record=self._record,
            error_message=self._error_message,
            preview=self._preview,
            file_type=self._file_type,
            warnings=self._warnings,
        )

    def _move_to(self, to_state: str) -> None:
        self._status = transition_state(self._status, to_state)
        log_workflow_event(
            logger,
            logging.INFO,
            f"Workflow moved to {self._status}",
            session_id=self._session_id,
            state=self._status,
        )

    def _replace_preview(self, preview: FilePreview | None) -> None:
        if self._preview is not None:
            self._previews.revoke(self._preview.token)
        self._preview = preview

    def _count(self, name: str) -> None:
        if self._metrics is not None:
            self._metrics.increment(name)

    def begin(self, data: bytes, filename: str, mime_type: str) -> WorkflowSnapshot:
        """Enter PROCESSING and publish the preview. Raises unless IDLE."""
        self._move_to(PROCESSING)
        self._count("uploads_total")
        self._record = None
        self._error_message = ""
        self._warnings = ()
        self._file_type = mime_type
        self._replace_preview(self._previews.create(data, mime_type, filename))
        return self.snapshot()

    async def run_extraction(self, data: bytes) -> WorkflowSnapshot:
        """Await the extractor for a file accepted by ``begin`` and settle the state."""
        if self._status != PROCESSING:
            raise InvalidTransitionError(f"No extraction pending in {self._status}")
        started = time.perf_counter()
        try:
            record = await self._extractor.extract(data, self._file_type)
        except InvoiceProcessingError as exc:
            logger.warning(
                "Extraction failed code=%s error=%s",
                exc.code,
                exc,
                extra={"session_id": self._session_id, "stage": "extraction", "outcome": "failed"},
            )
            self._fail(started)
        except Exception:  # noqa: BLE001
            logger.exception(
                "Unexpected extraction failure",
                extra={"session_id": self._session_id, "stage": "extraction", "outcome": "failed"},
            )
            self._fail(started)
        else:
            self._record = record
            self._warnings = tuple(evaluate_record(record))
            self._observe(started)
            self._count("extractions_success_total")
            self._move_to(SUCCESS)
        return self.snapshot()

    async def select_file(self, data: bytes, filename: str, mime_type: str) -> WorkflowSnapshot:
        self.begin(data, filename, mime_type)
        return await self.run_extraction(data)

    def _observe(self, started: float) -> None:
        latency_ms = int((time.perf_counter() - started) * 1000)
        if self._metrics is not None:
            self._metrics.observe_latency(latency_ms)
        log_workflow_event(
            logger,
            logging.INFO,
            "Extraction settled",
            session_id=self._session_id,
            stage="extraction",
            latency_ms=latency_ms,
            mime_type=self._file_type,
        )

    def _fail(self, started: float) -> None:
        self._record = None
        self._warnings = ()
        self._error_message = GENERIC_ERROR_MESSAGE
        self._observe(started)
        self._count("extractions_failed_total")
        self._move_to(ERROR)

    def reset(self) -> WorkflowSnapshot:
        self._move_to(IDLE)
        self._record = None
        self._error_message = ""
        self._warnings = ()
        self._file_type = ""
        self._replace_preview(None)
        return self.snapshot()

    def close(self) -> None:
        """Release the preview of a session that is being discarded."""
        self._replace_preview(None)
