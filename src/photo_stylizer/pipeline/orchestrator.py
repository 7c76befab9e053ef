"""End-to-end task state machine.

PENDING -> ANALYZING -> GENERATING -> COMPLETED | FAILED | CANCELLED

Only this module writes lifecycle fields of a Task. Every transition is
written to the task store first so pollers on any instance see it, then
forwarded to the optional extra sink (the streaming adapter).
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from photo_stylizer.capabilities.base import Analyzer, Generator, Reviewer
from photo_stylizer.errors import (
    InfeasibleInputError,
    PhotoStylizerError,
    TaskCancelledError,
    TaskNotFoundError,
)
from photo_stylizer.pipeline.events import (
    NullSink,
    PipelineEvent,
    ProgressEvent,
    ProgressSink,
    StepEvent,
    StepName,
)
from photo_stylizer.pipeline.loop import GenerationReviewLoop
from photo_stylizer.pipeline.prompt_builder import build_instruction
from photo_stylizer.storage.base import ObjectStore, TaskStore
from photo_stylizer.storage.keys import extension_for, session_prefix, sniff_image_type
from photo_stylizer.storage.models import StructuredAnalysis, Task

logger = logging.getLogger(__name__)


class PipelineOrchestrator:
    def __init__(
        self,
        *,
        store: TaskStore,
        objects: ObjectStore,
        analyzer: Analyzer,
        generator: Generator,
        reviewer: Reviewer,
        max_retries: int = 3,
        review_enabled: bool = True,
        feed_review_suggestions: bool = False,
        task_ttl_s: int = 3600,
        object_prefix: str = "",
        purge_interval_s: int = 300,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        if max_retries < 1:
            raise ValueError("max_retries must be >= 1")
        self.store = store
        self.objects = objects
        self.analyzer = analyzer
        self.max_retries = max_retries
        self.review_enabled = review_enabled
        self.feed_review_suggestions = feed_review_suggestions
        self.task_ttl = timedelta(seconds=task_ttl_s)
        self.object_prefix = object_prefix
        self._clock = clock or (lambda: datetime.now(UTC))
        self.purge_interval = timedelta(seconds=purge_interval_s)
        self._last_purge: datetime | None = None
        self._loop = GenerationReviewLoop(generator, reviewer)

    def submit(self, image: bytes, content_type: str) -> Task:
        """Store the original image and create the task record (status ANALYZING)."""
        task_id = str(uuid.uuid4())
        now = self._clock()
        self.purge_if_due(now)
        key = (
            session_prefix(self.object_prefix, str(uuid.uuid4()), now=now)
            + f"original.{extension_for(content_type)}"
        )
        self.objects.put(key, image, content_type)
        task = Task(
            task_id=task_id,
            status="ANALYZING",
            original_image_ref=key,
            original_content_type=content_type,
            created_at=now,
            updated_at=now,
            expires_at=now + self.task_ttl,
        )
        created = self.store.create(task)
        logger.info(
            "task_run event=submitted task_id=%s original=%s bytes=%d",
            task_id,
            key,
            len(image),
        )
        return created

    def purge_if_due(self, now: datetime | None = None) -> int:
        """Drop expired task records at most once per purge interval."""
        now = now or self._clock()
        if self._last_purge is not None and now - self._last_purge < self.purge_interval:
            return 0
        self._last_purge = now
        try:
            removed = self.store.purge_expired()
        except PhotoStylizerError as exc:
            logger.warning("task_store event=purge_failed code=%s error=%s", exc.code, exc)
            return 0
        if removed:
            logger.info("task_store event=purged removed=%d", removed)
        return removed

    def request_cancel(self, task_id: str) -> Task:
        """Flag a task for cancellation; the running pipeline acts on it."""

        def _flag(task: Task) -> Task:
            if not task.is_terminal:
                task.cancel_requested = True
            return task

        return self.store.update(task_id, _flag)

    def run(self, task_id: str, image: bytes, sink: ProgressSink | None = None) -> Task | None:
        """Drive one task to a terminal state. Never raises for pipeline failures."""
        extra = sink or NullSink()
        current_step: StepName | None = None

        def step(name: StepName, status: str) -> None:
            nonlocal current_step
            current_step = name if status == "processing" else None
            self._forward(extra, StepEvent(step=name, status=status))

        try:
            task = self.store.get(task_id)
            self._raise_if_cancelled(task)
            logger.info(
                "task_run event=start task_id=%s max_retries=%d review_enabled=%s",
                task_id,
                self.max_retries,
                self.review_enabled,
            )

            step("analysis", "processing")
            analysis = self.analyzer.analyze(image, task.original_content_type)
            task = self.store.update(task_id, lambda t: _set(t, analysis=analysis))
            step("analysis", "completed")

            step("audit", "processing")
            if isinstance(analysis, StructuredAnalysis) and not analysis.is_feasible:
                raise InfeasibleInputError(analysis.infeasibility_reason())
            step("audit", "completed")
            self._raise_if_cancelled(task)

            step("prompt", "processing")
            instruction = build_instruction(analysis)
            task = self.store.update(
                task_id,
                lambda t: _set(t, instruction=instruction, status="GENERATING"),
            )
            step("prompt", "completed")
            self._raise_if_cancelled(task)

            step("generation", "processing")
            outcome = self._loop.run(
                instruction,
                image,
                max_retries=self.max_retries,
                review_enabled=self.review_enabled,
                feed_suggestions=self.feed_review_suggestions,
                on_progress=self._progress_handler(task_id, extra),
            )
            step("generation", "completed")
            if not self.review_enabled:
                self._forward(extra, StepEvent(step="review", status="completed"))
            # A cancel that arrived during the last review still wins.
            self._raise_if_cancelled(self.store.get(task_id))

            generated_type = sniff_image_type(outcome.image)
            directory = (task.original_image_ref or "").rpartition("/")[0]
            generated_key = f"{directory}/generated.{extension_for(generated_type)}".lstrip("/")
            self.objects.put(generated_key, outcome.image, generated_type)

            def _complete(t: Task) -> Task:
                # Rejected verdicts were recorded with their REGENERATING event.
                if outcome.review.approved:
                    t.review_history.append(outcome.review)
                return _set(
                    t,
                    status="COMPLETED",
                    stage=None,
                    attempt_count=outcome.attempts,
                    generated_image_ref=generated_key,
                    generated_content_type=generated_type,
                    final_review=outcome.review,
                )

            final = self.store.update(task_id, _complete)
            if self.review_enabled:
                self._forward(extra, StepEvent(step="review", status="completed"))
            logger.info(
                "task_run event=completed task_id=%s attempts=%d approved=%s overall_score=%s",
                task_id,
                outcome.attempts,
                outcome.review.approved,
                outcome.review.overall_score,
            )
            return final
        except InfeasibleInputError as exc:
            logger.info("task_run event=infeasible task_id=%s reason=%s", task_id, exc.reason)
            self._fail_step(extra, current_step)
            return self._finish(task_id, "FAILED", exc.reason, exc.code)
        except TaskCancelledError as exc:
            logger.info("task_run event=cancelled task_id=%s", task_id)
            self._fail_step(extra, current_step)
            return self._finish(task_id, "CANCELLED", "Task was cancelled", exc.code)
        except TaskNotFoundError:
            logger.warning("task_run event=record_lost task_id=%s", task_id)
            self._fail_step(extra, current_step)
            return None
        except Exception as exc:  # noqa: BLE001
            logger.exception("task_run event=failed task_id=%s", task_id)
            self._fail_step(extra, current_step)
            code = exc.code if isinstance(exc, PhotoStylizerError) else "INTERNAL_ERROR"
            return self._finish(task_id, "FAILED", str(exc) or type(exc).__name__, code)

    def _progress_handler(self, task_id: str, extra: ProgressSink) -> Callable[[ProgressEvent], None]:
        def _on_progress(event: ProgressEvent) -> None:
            def _record(t: Task) -> Task:
                if event.stage == "REGENERATING" and event.review is not None:
                    t.review_history.append(event.review)
                return _set(t, stage=event.stage, attempt_count=event.attempt)

            task = self.store.update(task_id, _record)
            if event.stage == "GENERATING":
                self._raise_if_cancelled(task)
            if event.stage == "REVIEWING":
                self._forward(extra, StepEvent(step="review", status="processing"))
            self._forward(extra, event)

        return _on_progress

    def _finish(self, task_id: str, status: str, message: str, code: str) -> Task | None:
        try:
            return self.store.update(
                task_id,
                lambda t: _set(t, status=status, stage=None, error_message=message, error_code=code),
            )
        except TaskNotFoundError:
            logger.warning("task_run event=record_lost task_id=%s status=%s", task_id, status)
            return None

    def _fail_step(self, extra: ProgressSink, name: StepName | None) -> None:
        if name is not None:
            self._forward(extra, StepEvent(step=name, status="failed"))

    @staticmethod
    def _raise_if_cancelled(task: Task) -> None:
        if task.cancel_requested:
            raise TaskCancelledError(task.task_id)

    @staticmethod
    def _forward(extra: ProgressSink, event: PipelineEvent) -> None:
        try:
            extra.emit(event)
        except Exception:  # noqa: BLE001
            # A broken observer must not fail the task itself.
            logger.warning("task_run event=sink_error event_type=%s", type(event).__name__)


def _set(task: Task, **changes: object) -> Task:
    return task.model_copy(update=changes)
