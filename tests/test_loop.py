import pytest

from conftest import APPROVED, REJECTED, CountingGenerator, ScriptedReviewer, review_with
from photo_stylizer.pipeline.events import ProgressEvent
from photo_stylizer.pipeline.loop import GenerationReviewLoop, run_generation_loop


def _run(generator, reviewer, *, max_retries=3, review_enabled=True, feed_suggestions=False):
    events: list[ProgressEvent] = []
    outcome = GenerationReviewLoop(generator, reviewer).run(
        "make it festive",
        b"reference",
        max_retries=max_retries,
        review_enabled=review_enabled,
        on_progress=events.append,
        feed_suggestions=feed_suggestions,
    )
    return outcome, events


def test_first_approved_candidate_wins() -> None:
    generator = CountingGenerator()
    reviewer = ScriptedReviewer(REJECTED, APPROVED, REJECTED)

    outcome, events = _run(generator, reviewer)

    assert generator.calls == 2
    assert reviewer.calls == 2
    assert outcome.attempts == 2
    assert outcome.review.approved is True
    assert [(e.stage, e.attempt) for e in events] == [
        ("GENERATING", 1),
        ("REVIEWING", 1),
        ("REGENERATING", 1),
        ("GENERATING", 2),
        ("REVIEWING", 2),
    ]
    assert events[2].review == REJECTED


@pytest.mark.parametrize("max_retries", [1, 2, 5])
def test_exhaustion_returns_last_rejected_candidate(max_retries: int) -> None:
    generator = CountingGenerator()
    reviewer = ScriptedReviewer(REJECTED)

    outcome, events = _run(generator, reviewer, max_retries=max_retries)

    assert generator.calls == max_retries
    assert outcome.attempts == max_retries
    assert outcome.review.approved is False
    regenerating = [e for e in events if e.stage == "REGENERATING"]
    assert [e.attempt for e in regenerating] == list(range(1, max_retries + 1))
    assert all(e.review == REJECTED for e in regenerating)
    assert events[-1].stage == "REGENERATING"


def test_review_disabled_generates_once_with_auto_approval() -> None:
    generator = CountingGenerator()
    reviewer = ScriptedReviewer(REJECTED)

    outcome, events = _run(generator, reviewer, review_enabled=False)

    assert generator.calls == 1
    assert reviewer.calls == 0
    assert outcome.review.approved is True
    assert [e.stage for e in events] == ["GENERATING"]


def test_unparseable_review_triggers_retry() -> None:
    generator = CountingGenerator()
    reviewer = ScriptedReviewer(review_with(0.0), APPROVED)

    outcome, _ = _run(generator, reviewer)

    assert generator.calls == 2
    assert outcome.review.approved is True


def test_suggestions_are_fed_back_only_when_enabled() -> None:
    rejected = REJECTED.model_copy(update={"suggestions": ["match the jawline"]})

    generator = CountingGenerator()
    _run(generator, ScriptedReviewer(rejected, APPROVED))
    assert generator.instructions == ["make it festive", "make it festive"]

    generator = CountingGenerator()
    _run(generator, ScriptedReviewer(rejected, APPROVED), feed_suggestions=True)
    assert generator.instructions[0] == "make it festive"
    assert "match the jawline" in generator.instructions[1]


def test_max_retries_below_one_is_rejected() -> None:
    with pytest.raises(ValueError):
        run_generation_loop(
            "x",
            None,
            generator=CountingGenerator(),
            reviewer=ScriptedReviewer(),
            max_retries=0,
            review_enabled=True,
            on_progress=lambda event: None,
        )
