"""FastAPI application exposing capture, compare and the stored images."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from fastapi import FastAPI, File, Form, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from snapdiff.capture.orchestrator import CaptureOrchestrator
from snapdiff.capture.upload import store_upload
from snapdiff.compare.comparator import Comparator
from snapdiff.errors import SnapdiffError
from snapdiff.models.config import ServiceConfig
from snapdiff.models.snapshot import (
    CaptureRequest,
    CaptureResult,
    CompareRequest,
    ComparisonResult,
    ErrorResponse,
)
from snapdiff.storage import URL_PREFIX, ImageStore

logger = logging.getLogger(__name__)


def create_app(
    config: ServiceConfig,
    orchestrator: CaptureOrchestrator | None = None,
    comparator: Comparator | None = None,
) -> FastAPI:
    app = FastAPI(title="snapdiff", version="0.1.0")

    store = ImageStore(config.storage_path)
    store.ensure_root()
    _orchestrator = orchestrator or CaptureOrchestrator(config, store)
    _comparator = comparator or Comparator(store, threshold=config.diff_threshold)

    @app.exception_handler(SnapdiffError)
    async def handle_snapdiff_error(request: Request, exc: SnapdiffError) -> JSONResponse:
        logger.info("%s %s -> %d: %s", request.method, request.url.path, exc.status_code, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "Internal server error", "details": str(exc)},
        )

    @app.exception_handler(RequestValidationError)
    async def handle_bad_request(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = exc.errors()
        field = "body"
        if errors:
            loc = [str(part) for part in errors[0].get("loc", ()) if part != "body"]
            field = ".".join(loc) or "body"
        details = "; ".join(
            "%s: %s" % (".".join(str(p) for p in err.get("loc", ())), err.get("msg", ""))
            for err in errors
        )
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": "Invalid request", "details": details, "field": field},
        )

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "healthy"}

    @app.post(
        "/api/capture",
        response_model=CaptureResult,
        responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    )
    async def capture(payload: Optional[CaptureRequest] = None):
        return await _orchestrator.capture(payload or CaptureRequest())

    @app.post(
        "/api/compare",
        response_model=ComparisonResult,
        responses={
            400: {"model": ErrorResponse},
            404: {"model": ErrorResponse},
            500: {"model": ErrorResponse},
        },
    )
    async def compare(payload: Optional[CompareRequest] = None):
        # Decoding and diffing are CPU bound
        return await asyncio.to_thread(_comparator.compare, payload or CompareRequest())

    @app.post(
        "/api/upload",
        response_model=CaptureResult,
        responses={400: {"model": ErrorResponse}},
    )
    async def upload(
        time: Optional[str] = Form(default=None),
        test_id: Optional[str] = Form(default=None, alias="testId"),
        file: Optional[UploadFile] = File(default=None),
    ):
        # One byte past the limit is enough to tell it was exceeded
        limit = config.max_upload_bytes
        data = await file.read(limit + 1) if file is not None else b""
        return await asyncio.to_thread(store_upload, store, time, test_id, data, limit)

    app.mount(URL_PREFIX, StaticFiles(directory=str(store.root)), name="uploads")
    return app
