"""Interfaces for the external model capabilities the pipeline consumes."""

from __future__ import annotations

from typing import Protocol

from photo_stylizer.storage.models import AnalysisSummary, ReviewResult


class Analyzer(Protocol):
    """Describe the uploaded photo. Raises `AnalysisError` on failure."""

    def analyze(self, image: bytes, mime_type: str) -> AnalysisSummary: ...


class Generator(Protocol):
    """Produce a stylized image. Raises `GenerationError` on failure."""

    def generate(self, instruction: str, reference_image: bytes | None) -> bytes: ...


class Reviewer(Protocol):
    """Judge a candidate against the original.

    Unreadable model answers come back as a rejected verdict instead of an
    exception so the loop can still decide whether to retry.
    """

    def review(self, candidate: bytes, reference_image: bytes) -> ReviewResult: ...
