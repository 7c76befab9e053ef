"""Progress events published by the orchestrator and the generation loop."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Protocol

from photo_stylizer.storage.models import LoopStage, ReviewResult

StepName = Literal["upload", "analysis", "audit", "prompt", "generation", "review"]
StepStatus = Literal["processing", "completed", "failed"]


@dataclass(frozen=True)
class StepEvent:
    """A coarse pipeline step changed state."""

    step: StepName
    status: StepStatus


@dataclass(frozen=True)
class ProgressEvent:
    """One generation loop transition, qualified by attempt number."""

    stage: LoopStage
    attempt: int
    review: ReviewResult | None = None


PipelineEvent = StepEvent | ProgressEvent


class ProgressSink(Protocol):
    """Send-only channel for pipeline events."""

    def emit(self, event: PipelineEvent) -> None: ...


class NullSink:
    def emit(self, event: PipelineEvent) -> None:
        return None
