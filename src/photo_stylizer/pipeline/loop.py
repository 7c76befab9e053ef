"""Bounded generate/review loop assembled as a LangGraph workflow.

generate -> (review disabled) -> done
generate -> review -> (approved) -> done
generate -> review -> regenerate -> (attempts left) -> generate ...
generate -> review -> regenerate -> (attempts exhausted) -> done

Exhaustion is not an error: the last candidate and its rejected verdict are
returned and callers inspect `review.approved`.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from langgraph.graph import END, StateGraph

from photo_stylizer.capabilities.base import Generator, Reviewer
from photo_stylizer.pipeline.events import ProgressEvent
from photo_stylizer.pipeline.prompt_builder import with_review_feedback
from photo_stylizer.pipeline.state import LoopState, initial_loop_state
from photo_stylizer.storage.models import ReviewResult

logger = logging.getLogger(__name__)

# Supersteps per attempt: generate, review, regenerate.
_STEPS_PER_ATTEMPT = 3


@dataclass(frozen=True)
class LoopOutcome:
    image: bytes
    review: ReviewResult
    attempts: int


def build_review_loop(generator: Generator, reviewer: Reviewer):
    def generate(state: LoopState) -> LoopState:
        attempt = int(state.get("attempt", 0)) + 1
        state["on_progress"](ProgressEvent(stage="GENERATING", attempt=attempt))

        instruction = state["instruction"]
        previous = state.get("review")
        if state.get("feed_suggestions") and previous is not None and not previous.approved:
            instruction = with_review_feedback(instruction, previous.suggestions)

        candidate = generator.generate(instruction, state.get("reference_image"))
        if not state.get("review_enabled", True):
            logger.info("generation_loop event=review_skipped attempt=%d", attempt)
            return {
                "attempt": attempt,
                "candidate": candidate,
                "review": ReviewResult.auto_approved(),
            }
        return {"attempt": attempt, "candidate": candidate, "review": None}

    def review(state: LoopState) -> LoopState:
        attempt = state["attempt"]
        state["on_progress"](ProgressEvent(stage="REVIEWING", attempt=attempt))
        verdict = reviewer.review(state["candidate"], state.get("reference_image") or b"")
        logger.info(
            "generation_loop event=reviewed attempt=%d approved=%s overall_score=%s",
            attempt,
            verdict.approved,
            verdict.overall_score,
        )
        return {"review": verdict}

    def regenerate(state: LoopState) -> LoopState:
        verdict = state["review"]
        logger.info(
            "generation_loop event=rejected attempt=%d issues=%s",
            state["attempt"],
            verdict.issues if verdict else [],
        )
        state["on_progress"](
            ProgressEvent(stage="REGENERATING", attempt=state["attempt"], review=verdict)
        )
        return {}

    def _after_generate(state: LoopState) -> str:
        return "review" if state.get("review_enabled", True) else "done"

    def _after_review(state: LoopState) -> str:
        verdict = state.get("review")
        if verdict is not None and verdict.approved:
            return "done"
        return "rejected"

    def _after_regenerate(state: LoopState) -> str:
        return "done" if state["attempt"] >= state["max_retries"] else "retry"

    graph = StateGraph(LoopState)

    graph.add_node("generate", generate)
    graph.add_node("review", review)
    graph.add_node("regenerate", regenerate)

    graph.set_entry_point("generate")
    graph.add_conditional_edges("generate", _after_generate, {"review": "review", "done": END})
    graph.add_conditional_edges("review", _after_review, {"rejected": "regenerate", "done": END})
    graph.add_conditional_edges("regenerate", _after_regenerate, {"retry": "generate", "done": END})

    return graph.compile()


class GenerationReviewLoop:
    """Runs the compiled workflow for one instruction/reference pair."""

    def __init__(self, generator: Generator, reviewer: Reviewer) -> None:
        self._workflow = build_review_loop(generator, reviewer)

    def run(
        self,
        instruction: str,
        reference_image: bytes | None,
        *,
        max_retries: int,
        review_enabled: bool,
        on_progress: Callable[[ProgressEvent], None],
        feed_suggestions: bool = False,
    ) -> LoopOutcome:
        if max_retries < 1:
            raise ValueError("max_retries must be >= 1")

        state = initial_loop_state(
            instruction,
            reference_image,
            max_retries=max_retries,
            review_enabled=review_enabled,
            on_progress=on_progress,
            feed_suggestions=feed_suggestions,
        )
        result: LoopState = self._workflow.invoke(
            state,
            config={"recursion_limit": _STEPS_PER_ATTEMPT * max_retries + 2},
        )

        candidate = result.get("candidate")
        verdict = result.get("review")
        if candidate is None or verdict is None:
            raise RuntimeError("generation loop finished without a candidate")
        if not verdict.approved:
            logger.info(
                "generation_loop event=exhausted attempts=%d overall_score=%s",
                result["attempt"],
                verdict.overall_score,
            )
        return LoopOutcome(image=candidate, review=verdict, attempts=result["attempt"])


def run_generation_loop(
    instruction: str,
    reference_image: bytes | None,
    *,
    generator: Generator,
    reviewer: Reviewer,
    max_retries: int,
    review_enabled: bool,
    on_progress: Callable[[ProgressEvent], None],
    feed_suggestions: bool = False,
) -> LoopOutcome:
    """One-shot convenience wrapper around GenerationReviewLoop."""
    return GenerationReviewLoop(generator, reviewer).run(
        instruction,
        reference_image,
        max_retries=max_retries,
        review_enabled=review_enabled,
        on_progress=on_progress,
        feed_suggestions=feed_suggestions,
    )
