"""FastAPI app entrypoint for photo-stylizer."""

from __future__ import annotations

import hmac
import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, File, Form, Request, UploadFile
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel

from photo_stylizer.capabilities.base import Analyzer, Generator, Reviewer
from photo_stylizer.config.settings import Settings, get_settings
from photo_stylizer.errors import (
    PhotoStylizerError,
    RequestValidationFailed,
    TaskNotFoundError,
    TaskNotReadyError,
)
from photo_stylizer.pipeline.orchestrator import PipelineOrchestrator
from photo_stylizer.pipeline.runner import BackgroundRunner
from photo_stylizer.reporting.pull import dump_view, get_result, get_status
from photo_stylizer.reporting.stream import stream_process
from photo_stylizer.storage.base import ObjectStore, TaskStore
from photo_stylizer.storage.memory import InMemoryObjectStore, InMemoryTaskStore
from photo_stylizer.storage.postgres import PostgresTaskStore

logger = logging.getLogger(__name__)

_SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


class VerifyAccessRequest(BaseModel):
    token: str = ""


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    for noisy in ("boto3", "botocore", "urllib3"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def _build_store(settings: Settings) -> TaskStore:
    backend = settings.store_backend.lower()
    if backend == "memory":
        logger.warning(
            "task_store event=memory_backend detail=single-process only, tasks are not shared"
        )
        return InMemoryTaskStore()
    if backend != "postgres":
        raise RuntimeError(f"Unknown store backend: {settings.store_backend}")
    database_url = settings.resolved_database_url()
    if not database_url:
        raise RuntimeError(
            "Missing database URL. Set PHOTO_STYLIZER_DATABASE_URL "
            "or DATABASE_URL before starting the app."
        )
    return PostgresTaskStore(database_url)


def _build_objects(settings: Settings) -> ObjectStore:
    if settings.object_store_backend.lower() == "memory":
        return InMemoryObjectStore()
    # boto3 is only imported when the S3 backend is selected.
    from photo_stylizer.storage.objects import S3ObjectStore

    if not settings.object_store_bucket:
        raise RuntimeError("Missing bucket. Set PHOTO_STYLIZER_OBJECT_STORE_BUCKET.")
    return S3ObjectStore(
        bucket=settings.object_store_bucket,
        region=settings.object_store_region,
        endpoint_url=settings.object_store_endpoint,
        access_key_id=settings.object_store_access_key_id,
        secret_access_key=settings.object_store_secret_access_key,
    )


def _build_capabilities(
    settings: Settings,
    analyzer: Analyzer | None,
    generator: Generator | None,
    reviewer: Reviewer | None,
) -> tuple[Analyzer, Generator, Reviewer]:
    if analyzer is not None and generator is not None and reviewer is not None:
        return analyzer, generator, reviewer

    from photo_stylizer.capabilities.gemini import (
        GeminiAnalyzer,
        GeminiGenerator,
        GeminiReviewer,
        build_client,
    )

    api_key = settings.resolved_gemini_api_key()
    if not api_key:
        raise RuntimeError(
            "Missing Gemini API key. Set PHOTO_STYLIZER_GEMINI_API_KEY or GEMINI_API_KEY."
        )
    client = build_client(api_key)
    return (
        analyzer or GeminiAnalyzer(client, model=settings.analysis_model),
        generator
        or GeminiGenerator(
            client,
            model=settings.image_model,
            aspect_ratio=settings.image_aspect_ratio,
            image_size=settings.image_size,
        ),
        reviewer or GeminiReviewer(client, model=settings.analysis_model),
    )


def _ensure_runtime_state(
    app: FastAPI,
    *,
    settings: Settings,
    store_override: TaskStore | None,
    objects_override: ObjectStore | None,
    analyzer: Analyzer | None,
    generator: Generator | None,
    reviewer: Reviewer | None,
    runner_override: BackgroundRunner | None,
) -> None:
    if not hasattr(app.state, "settings"):
        app.state.settings = settings

    if not hasattr(app.state, "store"):
        app.state.store = store_override or _build_store(settings)
        app.state.store.migrate()

    if not hasattr(app.state, "objects"):
        app.state.objects = objects_override or _build_objects(settings)

    if not hasattr(app.state, "runner"):
        app.state.runner = runner_override or BackgroundRunner(settings.worker_threads)

    if not hasattr(app.state, "orchestrator"):
        resolved = _build_capabilities(settings, analyzer, generator, reviewer)
        app.state.orchestrator = PipelineOrchestrator(
            store=app.state.store,
            objects=app.state.objects,
            analyzer=resolved[0],
            generator=resolved[1],
            reviewer=resolved[2],
            max_retries=settings.max_retries,
            review_enabled=settings.review_enabled,
            feed_review_suggestions=settings.feed_review_suggestions,
            task_ttl_s=settings.task_ttl_s,
            purge_interval_s=settings.purge_interval_s,
            object_prefix=settings.object_store_prefix,
        )


def create_app(
    *,
    store: TaskStore | None = None,
    objects: ObjectStore | None = None,
    analyzer: Analyzer | None = None,
    generator: Generator | None = None,
    reviewer: Reviewer | None = None,
    runner: BackgroundRunner | None = None,
    settings_override: Settings | None = None,
) -> FastAPI:
    settings = settings_override or get_settings()
    configure_logging(settings.log_level)

    def _ensure(target: FastAPI) -> None:
        _ensure_runtime_state(
            target,
            settings=settings,
            store_override=store,
            objects_override=objects,
            analyzer=analyzer,
            generator=generator,
            reviewer=reviewer,
            runner_override=runner,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        _ensure(app)
        app.state.orchestrator.purge_if_due()
        yield
        if runner is None and hasattr(app.state, "runner"):
            app.state.runner.shutdown(wait=True)

    app = FastAPI(title=settings.app_name, lifespan=lifespan)

    # Keep test paths reliable when lifespan is not executed by the client.
    if store is not None:
        _ensure(app)

    def _orchestrator(request: Request) -> PipelineOrchestrator:
        if not hasattr(request.app.state, "orchestrator"):
            _ensure(request.app)
        return request.app.state.orchestrator

    @app.exception_handler(PhotoStylizerError)
    async def _handle_domain_error(request: Request, exc: PhotoStylizerError) -> JSONResponse:
        body: dict[str, Any] = {"error": str(exc), "code": exc.code}
        if isinstance(exc, TaskNotFoundError):
            body["hint"] = exc.hint
        if isinstance(exc, TaskNotReadyError):
            body["status"] = exc.status
            if exc.error_message:
                body["errorMessage"] = exc.error_message
        if exc.status_code >= 500:
            logger.error("http event=request_failed path=%s code=%s", request.url.path, exc.code)
        return JSONResponse(status_code=exc.status_code, content=body)

    @app.get("/health")
    @app.get("/healthz")
    @app.get("/live")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/upload", status_code=202)
    def upload(
        request: Request,
        image: UploadFile | None = File(None),
        access_token: str | None = Form(None),
    ) -> dict[str, str]:
        orchestrator = _orchestrator(request)
        data, content_type = _read_upload(image, access_token, settings)
        task = orchestrator.submit(data, content_type)
        request.app.state.runner.spawn(orchestrator.run, task.task_id, data)
        logger.info("http event=upload_accepted task_id=%s", task.task_id)
        return {"taskId": task.task_id, "status": task.status}

    @app.get("/status/{task_id}")
    def status(task_id: str, request: Request) -> dict[str, Any]:
        orchestrator = _orchestrator(request)
        return dump_view(get_status(orchestrator.store, task_id))

    @app.get("/result/{task_id}")
    def result(task_id: str, request: Request) -> dict[str, Any]:
        orchestrator = _orchestrator(request)
        return dump_view(get_result(orchestrator.store, orchestrator.objects, task_id))

    @app.post("/process")
    def process(
        request: Request,
        image: UploadFile | None = File(None),
        access_token: str | None = Form(None),
    ) -> StreamingResponse:
        orchestrator = _orchestrator(request)
        data, content_type = _read_upload(image, access_token, settings)
        frames = stream_process(
            orchestrator,
            request.app.state.runner,
            data,
            content_type,
            chunk_size=settings.stream_chunk_size,
        )
        return StreamingResponse(frames, media_type="text/event-stream", headers=_SSE_HEADERS)

    @app.post("/tasks/{task_id}/cancel", status_code=202)
    def cancel(task_id: str, request: Request) -> dict[str, Any]:
        task = _orchestrator(request).request_cancel(task_id)
        logger.info("http event=cancel_requested task_id=%s status=%s", task_id, task.status)
        return {"taskId": task.task_id, "cancelRequested": task.cancel_requested}

    @app.post("/verify-access")
    def verify_access(payload: VerifyAccessRequest) -> dict[str, bool]:
        return {"valid": _token_ok(payload.token, settings)}

    return app


def _token_ok(token: str | None, settings: Settings) -> bool:
    if not settings.access_token:
        return True
    return hmac.compare_digest((token or "").strip(), settings.access_token)


def _read_upload(
    image: UploadFile | None,
    access_token: str | None,
    settings: Settings,
) -> tuple[bytes, str]:
    if not _token_ok(access_token, settings):
        raise RequestValidationFailed(
            "INVALID_ACCESS_TOKEN", "Invalid access token", status_code=403
        )
    if image is None:
        raise RequestValidationFailed("NO_IMAGE", "No image uploaded")

    limit = settings.max_upload_bytes
    data = image.file.read(limit + 1)
    if not data:
        raise RequestValidationFailed("NO_IMAGE", "Uploaded image is empty")
    if len(data) > limit:
        raise RequestValidationFailed(
            "IMAGE_TOO_LARGE",
            f"Image exceeds the {limit} byte limit",
            status_code=413,
        )
    return data, image.content_type or "image/jpeg"


app = create_app()
