"""Pull adapter: status and result lookup by task id."""

from __future__ import annotations

import base64
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from photo_stylizer.errors import TaskNotReadyError
from photo_stylizer.storage.base import ObjectStore, TaskStore
from photo_stylizer.storage.models import AnalysisSummary, LoopStage, ReviewResult, TaskStatus


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StatusView(CamelModel):
    task_id: str
    status: TaskStatus
    stage: LoopStage | None = None
    attempt: int = 0
    sub_status: str
    error_message: str | None = None
    cancel_requested: bool = False


class ResultView(CamelModel):
    task_id: str
    status: TaskStatus
    image_ref: str
    image_url: str
    content_type: str
    analysis: AnalysisSummary | None = None
    instruction: str | None = None
    review: ReviewResult | None = None
    review_history: list[ReviewResult] = []
    attempts: int = 0


def get_status(store: TaskStore, task_id: str) -> StatusView:
    task = store.get(task_id)
    return StatusView(
        task_id=task.task_id,
        status=task.status,
        stage=task.stage if task.status == "GENERATING" else None,
        attempt=task.attempt_count,
        sub_status=task.sub_status,
        error_message=task.error_message,
        cancel_requested=task.cancel_requested,
    )


def get_result(store: TaskStore, objects: ObjectStore, task_id: str) -> ResultView:
    task = store.get(task_id)
    if task.status != "COMPLETED" or not task.generated_image_ref:
        raise TaskNotReadyError(task.task_id, task.status, task.error_message)

    data = objects.get(task.generated_image_ref)
    content_type = task.generated_content_type or "image/png"
    return ResultView(
        task_id=task.task_id,
        status=task.status,
        image_ref=task.generated_image_ref,
        image_url=to_data_url(data, content_type),
        content_type=content_type,
        analysis=task.analysis,
        instruction=task.instruction,
        review=task.final_review,
        review_history=task.review_history,
        attempts=task.attempt_count,
    )


def to_data_url(data: bytes, content_type: str) -> str:
    return f"data:{content_type};base64,{base64.b64encode(data).decode('ascii')}"


def dump_view(view: BaseModel) -> dict[str, Any]:
    return view.model_dump(mode="json", by_alias=True)
