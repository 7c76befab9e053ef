"""Typed state contract for the generation/review LangGraph workflow."""

from collections.abc import Callable
from typing import TypedDict

from photo_stylizer.pipeline.events import ProgressEvent
from photo_stylizer.storage.models import ReviewResult


class LoopState(TypedDict, total=False):
    instruction: str
    reference_image: bytes | None
    max_retries: int
    review_enabled: bool
    feed_suggestions: bool
    on_progress: Callable[[ProgressEvent], None]
    attempt: int
    candidate: bytes | None
    review: ReviewResult | None


def initial_loop_state(
    instruction: str,
    reference_image: bytes | None,
    *,
    max_retries: int,
    review_enabled: bool,
    on_progress: Callable[[ProgressEvent], None],
    feed_suggestions: bool = False,
) -> LoopState:
    return {
        "instruction": instruction,
        "reference_image": reference_image,
        "max_retries": max_retries,
        "review_enabled": review_enabled,
        "feed_suggestions": feed_suggestions,
        "on_progress": on_progress,
        "attempt": 0,
        "candidate": None,
        "review": None,
    }
