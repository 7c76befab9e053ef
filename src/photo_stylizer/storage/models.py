"""Pydantic models persisted by the task store and returned by the API.

Terms used in this file:
- Verdict: one ReviewResult, the outcome of reviewing a generated candidate.
- Stage: the loop sub-state (GENERATING/REVIEWING/REGENERATING) of a task
  whose top-level status is GENERATING.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

# Task lifecycle states. Order matters for monotonic progress checks.
TaskStatus = Literal["PENDING", "ANALYZING", "GENERATING", "COMPLETED", "FAILED", "CANCELLED"]
LoopStage = Literal["GENERATING", "REVIEWING", "REGENERATING"]

STATUS_ORDER: dict[str, int] = {
    "PENDING": 0,
    "ANALYZING": 1,
    "GENERATING": 2,
    "COMPLETED": 3,
    "FAILED": 3,
    "CANCELLED": 3,
}
TERMINAL_STATUSES = frozenset({"COMPLETED", "FAILED", "CANCELLED"})

# Every dimension must reach the threshold for a verdict to be approved.
APPROVAL_THRESHOLD = 7.0
MAX_SCORE = 10.0
REVIEW_DIMENSIONS = (
    "face_match",
    "outfit",
    "pose",
    "full_body",
    "quality",
    "cultural",
    "realism",
)


def is_approved(scores: dict[str, float], threshold: float = APPROVAL_THRESHOLD) -> bool:
    """Approval rule: non-empty scores, each one at or above the threshold."""
    return bool(scores) and min(scores.values()) >= threshold


class ReviewResult(BaseModel):
    """Verdict for one generated candidate."""

    approved: bool = False
    scores: dict[str, float] = Field(default_factory=dict)
    overall_score: float | None = None
    issues: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)

    @field_validator("scores")
    @classmethod
    def _scores_in_range(cls, value: dict[str, float]) -> dict[str, float]:
        for name, score in value.items():
            if not 0.0 <= score <= MAX_SCORE:
                raise ValueError(f"score '{name}' must be within [0, {MAX_SCORE:g}], got {score}")
        return value

    @model_validator(mode="after")
    def _derive_approval(self) -> ReviewResult:
        # `approved` is derived from the scores; a reviewer's own claim is ignored.
        self.approved = is_approved(self.scores)
        if self.overall_score is None:
            self.overall_score = (
                round(sum(self.scores.values()) / len(self.scores), 2) if self.scores else 0.0
            )
        return self

    @classmethod
    def auto_approved(cls) -> ReviewResult:
        """Placeholder verdict used when review is disabled."""
        return cls(
            scores={name: MAX_SCORE for name in REVIEW_DIMENSIONS},
            overall_score=MAX_SCORE,
        )

    @classmethod
    def unparseable(cls, detail: str = "review-unparseable") -> ReviewResult:
        """Rejected verdict used when the reviewer answer cannot be read."""
        return cls(
            scores={name: 0.0 for name in REVIEW_DIMENSIONS},
            overall_score=0.0,
            issues=[detail],
            suggestions=["Retry generation"],
        )


class StructuredAnalysis(BaseModel):
    """Analysis output that parsed into the expected fields."""

    kind: Literal["structured"] = "structured"
    is_feasible: bool = True
    quality_score: float | None = None
    issues: list[str] = Field(default_factory=list)
    description: str | None = None
    face_description: str | None = None
    hair_description: str | None = None
    style_tags: list[str] = Field(default_factory=list)
    creative_direction: str | None = None
    retouching_notes: str | None = None

    def infeasibility_reason(self) -> str:
        if self.description:
            return self.description
        if self.issues:
            return ", ".join(self.issues)
        return "Image analysis failed"


class RawTextAnalysis(BaseModel):
    """Analysis output kept verbatim because it did not parse."""

    kind: Literal["raw"] = "raw"
    text: str = ""


AnalysisSummary = Annotated[StructuredAnalysis | RawTextAnalysis, Field(discriminator="kind")]


class Task(BaseModel):
    """Canonical task record shape stored by every TaskStore backend."""

    task_id: str
    status: TaskStatus = "PENDING"
    stage: LoopStage | None = None
    attempt_count: int = Field(default=0, ge=0)
    original_image_ref: str | None = None
    original_content_type: str = "image/jpeg"
    generated_image_ref: str | None = None
    generated_content_type: str | None = None
    analysis: AnalysisSummary | None = None
    instruction: str | None = None
    review_history: list[ReviewResult] = Field(default_factory=list)
    final_review: ReviewResult | None = None
    error_message: str | None = None
    error_code: str | None = None
    cancel_requested: bool = False
    created_at: datetime
    updated_at: datetime
    expires_at: datetime

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def sub_status(self) -> str:
        """Attempt-qualified status, for example `REVIEWING_ATTEMPT_2`."""
        if self.status == "GENERATING" and self.stage and self.attempt_count:
            return f"{self.stage}_ATTEMPT_{self.attempt_count}"
        return self.status
