from __future__ import annotations

import asyncio
import logging
import mimetypes
from typing import Any, Final

from fastapi import FastAPI, File, HTTPException, Request, UploadFile
from fastapi.responses import HTMLResponse, RedirectResponse, Response

from app.config import Settings
from app.csv_export import content_disposition, encode_csv, export_filename, format_invoice_csv
from app.extraction_service import build_extractor
from app.metrics import MetricsCollector
from app.preview_store import PreviewStore
from app.sessions import SessionRegistry
from app.state_machine import IDLE, InvalidTransitionError
from app.views import render_page
from app.workflow import Extractor, WorkflowController, WorkflowSnapshot

logger = logging.getLogger(__name__)

SESSION_COOKIE: Final[str] = "session_id"


def _resolve_mime_type(content_type: str | None, filename: str | None) -> str:
    if content_type and content_type != "application/octet-stream":
        return content_type
    guessed, _ = mimetypes.guess_type(filename or "")
    return guessed or content_type or "application/octet-stream"


def _snapshot_payload(snapshot: WorkflowSnapshot) -> dict[str, Any]:
    return {
        "status": snapshot.status,
        "record": snapshot.record.to_payload() if snapshot.record is not None else None,
        "error_message": snapshot.error_message or None,
        "warnings": list(snapshot.warnings),
    }


def create_web_app(
    settings: Settings | None = None,
    *,
    extractor: Extractor | None = None,
    preview_store: PreviewStore | None = None,
    metrics: MetricsCollector | None = None,
) -> FastAPI:
    active_settings = settings or Settings()
    active_extractor = extractor if extractor is not None else build_extractor(active_settings)
    previews = preview_store if preview_store is not None else PreviewStore()
    collector = metrics if metrics is not None else MetricsCollector()
    upload_limit = active_settings.max_upload_bytes
    sessions = SessionRegistry(
        lambda session_id: WorkflowController(
            active_extractor,
            previews,
            session_id=session_id,
            metrics=collector,
        ),
        ttl_seconds=active_settings.session_ttl_minutes * 60,
        max_sessions=active_settings.max_sessions,
    )
    extractions: set[asyncio.Task[WorkflowSnapshot]] = set()

    app = FastAPI(title="Invoice Extract", version="0.1.0")
    app.state.sessions = sessions
    app.state.previews = previews
    app.state.metrics = collector
    app.state.extractions = extractions

    def _session(request: Request) -> tuple[str, WorkflowController]:
        session_id = request.cookies.get(SESSION_COOKIE)
        controller = sessions.get(session_id)
        if session_id and controller is not None:
            return session_id, controller
        return sessions.create()

    def _with_cookie(response: Response, session_id: str) -> Response:
        response.set_cookie(SESSION_COOKIE, session_id, httponly=True, samesite="lax")
        return response

    def _back_home(session_id: str) -> Response:
        return _with_cookie(RedirectResponse("/", status_code=303), session_id)

    def _extraction_done(task: asyncio.Task[WorkflowSnapshot]) -> None:
        extractions.discard(task)
        if task.cancelled():
            logger.warning("Extraction task cancelled")
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Extraction task failed", exc_info=exc)

    def _start_extraction(controller: WorkflowController, data: bytes) -> None:
        task = asyncio.create_task(controller.run_extraction(data))
        extractions.add(task)
        task.add_done_callback(_extraction_done)

    def _too_large() -> HTTPException:
        return HTTPException(
            status_code=413,
            detail=f"File exceeds {active_settings.max_upload_mb} MB upload limit",
        )

    @app.get("/", response_class=HTMLResponse)
    async def index(request: Request) -> Response:
        session_id, controller = _session(request)
        return _with_cookie(HTMLResponse(render_page(controller.snapshot())), session_id)

    @app.post("/upload")
    async def upload(request: Request, file: UploadFile = File(...)) -> Response:
        session_id, controller = _session(request)
        if controller.status != IDLE:
            raise HTTPException(status_code=409, detail=f"Upload not accepted while {controller.status}")

        if file.size is not None and file.size > upload_limit:
            raise _too_large()
        data = await file.read(upload_limit + 1)
        if len(data) > upload_limit:
            raise _too_large()

        mime_type = _resolve_mime_type(file.content_type, file.filename)
        try:
            controller.begin(data, file.filename or "invoice", mime_type)
        except InvalidTransitionError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        _start_extraction(controller, data)
        return _back_home(session_id)

    @app.post("/reset")
    async def reset(request: Request) -> Response:
        session_id = request.cookies.get(SESSION_COOKIE)
        controller = sessions.get(session_id)
        if not session_id or controller is None:
            return RedirectResponse("/", status_code=303)
        if controller.status == IDLE:
            return _back_home(session_id)
        try:
            controller.reset()
        except InvalidTransitionError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        return _back_home(session_id)

    @app.get("/export.csv")
    async def export_csv(request: Request) -> Response:
        controller = sessions.get(request.cookies.get(SESSION_COOKIE))
        record = controller.record if controller is not None else None
        if record is None:
            raise HTTPException(status_code=409, detail="No extracted invoice to export")
        filename = export_filename(prefix=active_settings.export_filename_prefix)
        collector.increment("exports_total")
        logger.info("Exporting %d item(s) as %s", len(record.items), filename)
        return Response(
            content=encode_csv(format_invoice_csv(record)),
            media_type="text/csv; charset=utf-8",
            headers={"Content-Disposition": content_disposition(filename)},
        )

    @app.get("/api/invoice")
    async def current_invoice(request: Request) -> dict[str, Any]:
        controller = sessions.get(request.cookies.get(SESSION_COOKIE))
        if controller is None:
            return _snapshot_payload(WorkflowSnapshot(status=IDLE))
        return _snapshot_payload(controller.snapshot())

    @app.get("/preview/{token}")
    async def preview(token: str) -> Response:
        item = previews.get(token)
        if item is None:
            raise HTTPException(status_code=404, detail="Preview not found")
        return Response(content=item.data, media_type=item.mime_type)

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/stats")
    def stats() -> dict[str, Any]:
        snapshot = collector.snapshot()
        snapshot["active_sessions"] = len(sessions)
        snapshot["active_previews"] = len(previews)
        snapshot["extractions_in_flight"] = len(extractions)
        return snapshot

    return app
