from __future__ import annotations

from collections.abc import Callable
from concurrent.futures import Future
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest
from fastapi.testclient import TestClient

from photo_stylizer.api.main import create_app
from photo_stylizer.config.settings import Settings
from photo_stylizer.errors import GenerationError
from photo_stylizer.pipeline.orchestrator import PipelineOrchestrator
from photo_stylizer.storage.memory import InMemoryObjectStore, InMemoryTaskStore
from photo_stylizer.storage.models import (
    REVIEW_DIMENSIONS,
    AnalysisSummary,
    ReviewResult,
    StructuredAnalysis,
)

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"generated-image" * 8
JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"original-photo" * 8


def review_with(score: float, **overrides: float) -> ReviewResult:
    scores = {name: score for name in REVIEW_DIMENSIONS}
    scores.update(overrides)
    return ReviewResult(scores=scores, issues=[] if score >= 7 else ["face drift"])


APPROVED = review_with(9.0)
REJECTED = review_with(8.0, face_match=4.0)


class ScriptedAnalyzer:
    def __init__(self, summary: AnalysisSummary | None = None, error: Exception | None = None) -> None:
        self.summary = summary or StructuredAnalysis(
            face_description="oval face, brown eyes",
            hair_description="short black hair",
            style_tags=["Festive", "Warm"],
        )
        self.error = error
        self.calls = 0

    def analyze(self, image: bytes, mime_type: str) -> AnalysisSummary:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.summary


class CountingGenerator:
    def __init__(self, image: bytes = PNG_BYTES, fail_on: int | None = None) -> None:
        self.image = image
        self.fail_on = fail_on
        self.instructions: list[str] = []

    @property
    def calls(self) -> int:
        return len(self.instructions)

    def generate(self, instruction: str, reference_image: bytes | None) -> bytes:
        self.instructions.append(instruction)
        if self.fail_on is not None and self.calls == self.fail_on:
            raise GenerationError("image model unavailable")
        return self.image


class ScriptedReviewer:
    """Returns verdicts in order; the last one repeats."""

    def __init__(self, *verdicts: ReviewResult, before_review: Callable[[int], None] | None = None) -> None:
        self.verdicts = list(verdicts) or [APPROVED]
        self.before_review = before_review
        self.calls = 0

    def review(self, candidate: bytes, reference_image: bytes) -> ReviewResult:
        self.calls += 1
        if self.before_review is not None:
            self.before_review(self.calls)
        index = min(self.calls, len(self.verdicts)) - 1
        return self.verdicts[index]


class InlineRunner:
    """Runs spawned work immediately on the calling thread."""

    def __init__(self) -> None:
        self.spawned = 0

    def spawn(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Future[Any]:
        self.spawned += 1
        future: Future[Any] = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as exc:  # noqa: BLE001
            future.set_exception(exc)
        return future

    def shutdown(self, wait: bool = True) -> None:
        return None


class FakeClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 28, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def store() -> InMemoryTaskStore:
    return InMemoryTaskStore()


@pytest.fixture
def objects() -> InMemoryObjectStore:
    return InMemoryObjectStore()


@pytest.fixture
def make_orchestrator(store: InMemoryTaskStore, objects: InMemoryObjectStore):
    def _make(
        *,
        analyzer: ScriptedAnalyzer | None = None,
        generator: CountingGenerator | None = None,
        reviewer: ScriptedReviewer | None = None,
        **kwargs: Any,
    ) -> PipelineOrchestrator:
        return PipelineOrchestrator(
            store=store,
            objects=objects,
            analyzer=analyzer or ScriptedAnalyzer(),
            generator=generator or CountingGenerator(),
            reviewer=reviewer or ScriptedReviewer(),
            **kwargs,
        )

    return _make


def make_settings(**overrides: Any) -> Settings:
    values: dict[str, Any] = {
        "store_backend": "memory",
        "object_store_backend": "memory",
        "max_retries": 3,
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def build_client():
    def _build(
        *,
        analyzer: ScriptedAnalyzer | None = None,
        generator: CountingGenerator | None = None,
        reviewer: ScriptedReviewer | None = None,
        **settings: Any,
    ) -> TestClient:
        app = create_app(
            store=InMemoryTaskStore(),
            objects=InMemoryObjectStore(),
            analyzer=analyzer or ScriptedAnalyzer(),
            generator=generator or CountingGenerator(),
            reviewer=reviewer or ScriptedReviewer(),
            runner=InlineRunner(),
            settings_override=make_settings(**settings),
        )
        return TestClient(app)

    return _build
