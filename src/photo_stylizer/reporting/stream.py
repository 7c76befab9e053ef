"""Push adapter: one request drives a task and streams its progress as SSE.

Frames: `step`, `progress`, `result_chunk`, then exactly one `complete` or
`error` frame.
"""

from __future__ import annotations

import base64
import json
import logging
import queue
from collections.abc import Iterator
from typing import Any

from photo_stylizer.errors import PhotoStylizerError
from photo_stylizer.pipeline.events import PipelineEvent, ProgressEvent, StepEvent
from photo_stylizer.pipeline.orchestrator import PipelineOrchestrator
from photo_stylizer.pipeline.runner import BackgroundRunner
from photo_stylizer.storage.models import Task

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024

_CLOSED = object()


def format_sse(event: str, data: dict[str, Any]) -> str:
    return f"event: {event}\ndata: {json.dumps(data, ensure_ascii=False)}\n\n"


def chunk_payload(data: bytes, chunk_size: int = DEFAULT_CHUNK_SIZE) -> list[str]:
    """Base64 encode `data` and split the text into fixed-size slices."""
    if chunk_size < 1:
        raise ValueError("chunk_size must be >= 1")
    encoded = base64.b64encode(data).decode("ascii")
    return [encoded[i : i + chunk_size] for i in range(0, len(encoded), chunk_size)] or [""]


class QueueProgressSink:
    """Hands pipeline events from the worker thread to the response generator."""

    def __init__(self) -> None:
        self._queue: queue.Queue[Any] = queue.Queue()

    def emit(self, event: PipelineEvent) -> None:
        self._queue.put(event)

    def close(self) -> None:
        self._queue.put(_CLOSED)

    def drain(self) -> Iterator[PipelineEvent]:
        while True:
            item = self._queue.get()
            if item is _CLOSED:
                return
            yield item


def event_frame(event: PipelineEvent) -> str:
    if isinstance(event, StepEvent):
        return format_sse("step", {"id": event.step, "status": event.status})
    payload: dict[str, Any] = {"stage": event.stage, "attempt": event.attempt}
    if isinstance(event, ProgressEvent) and event.review is not None:
        payload["review"] = event.review.model_dump(mode="json")
    return format_sse("progress", payload)


def stream_process(
    orchestrator: PipelineOrchestrator,
    runner: BackgroundRunner,
    image: bytes,
    content_type: str,
    *,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> Iterator[str]:
    yield format_sse("step", {"id": "upload", "status": "processing"})
    try:
        task = orchestrator.submit(image, content_type)
    except PhotoStylizerError as exc:
        logger.warning("stream event=submit_failed code=%s error=%s", exc.code, exc)
        yield format_sse("step", {"id": "upload", "status": "failed"})
        yield format_sse("error", {"message": str(exc), "code": exc.code})
        return
    yield format_sse("step", {"id": "upload", "status": "completed"})

    sink = QueueProgressSink()

    def _run() -> Task | None:
        try:
            return orchestrator.run(task.task_id, image, sink)
        finally:
            sink.close()

    future = runner.spawn(_run)
    for event in sink.drain():
        yield event_frame(event)

    try:
        final = future.result()
    except Exception as exc:  # noqa: BLE001
        logger.exception("stream event=run_crashed task_id=%s", task.task_id)
        yield format_sse("error", {"message": str(exc) or type(exc).__name__, "code": "INTERNAL_ERROR"})
        return

    yield from _terminal_frames(orchestrator, task.task_id, final, chunk_size)


def _terminal_frames(
    orchestrator: PipelineOrchestrator,
    task_id: str,
    final: Task | None,
    chunk_size: int,
) -> Iterator[str]:
    if final is None:
        yield format_sse("error", {"message": f"Task {task_id} not found", "code": "TASK_NOT_FOUND"})
        return
    if final.status != "COMPLETED" or not final.generated_image_ref:
        yield format_sse(
            "error",
            {
                "message": final.error_message or f"Task ended with status {final.status}",
                "code": final.error_code or "INTERNAL_ERROR",
            },
        )
        return

    try:
        data = orchestrator.objects.get(final.generated_image_ref)
    except PhotoStylizerError as exc:
        yield format_sse("error", {"message": str(exc), "code": exc.code})
        return

    chunks = chunk_payload(data, chunk_size)
    for index, piece in enumerate(chunks):
        yield format_sse("result_chunk", {"index": index, "total": len(chunks), "data": piece})

    review = final.final_review
    yield format_sse(
        "complete",
        {
            "taskId": final.task_id,
            "mimeType": final.generated_content_type or "image/png",
            "chunks": len(chunks),
            "approved": bool(review and review.approved),
            "overallScore": review.overall_score if review else None,
            "attempts": final.attempt_count,
            "analysis": final.analysis.model_dump(mode="json") if final.analysis else None,
        },
    )
    logger.info("stream event=complete task_id=%s chunks=%d", final.task_id, len(chunks))
