"""Parsing helpers for model answers that are supposed to be JSON."""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from pydantic import ValidationError

from photo_stylizer.storage.models import (
    REVIEW_DIMENSIONS,
    RawTextAnalysis,
    ReviewResult,
    StructuredAnalysis,
)

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?", flags=re.IGNORECASE)


def strip_json_fences(text: str) -> str:
    """Remove markdown code fences models like to wrap JSON in."""
    return _FENCE_RE.sub("", text).strip()


def _load_object(text: str) -> dict[str, Any] | None:
    cleaned = strip_json_fences(text)
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError:
        # Fall back to the outermost {...} span when the model adds prose.
        start, end = cleaned.find("{"), cleaned.rfind("}")
        if start == -1 or end <= start:
            return None
        try:
            parsed = json.loads(cleaned[start : end + 1])
        except json.JSONDecodeError:
            return None
    return parsed if isinstance(parsed, dict) else None


def parse_analysis(text: str) -> StructuredAnalysis | RawTextAnalysis:
    payload = _load_object(text)
    if payload is None:
        logger.warning("analysis_parse event=raw_fallback chars=%d", len(text))
        return RawTextAnalysis(text=text.strip())
    try:
        return StructuredAnalysis.model_validate(_coerce_analysis(payload))
    except ValidationError as exc:
        logger.warning("analysis_parse event=invalid_fields reason=%s", exc.errors()[:1])
        return RawTextAnalysis(text=text.strip())


def parse_review(text: str) -> ReviewResult:
    """Read a reviewer answer; anything unusable becomes a rejected verdict."""
    payload = _load_object(text)
    if payload is None:
        logger.warning("review_parse event=unparseable chars=%d", len(text))
        return ReviewResult.unparseable()

    raw_scores = payload.get("scores")
    if not isinstance(raw_scores, dict):
        return ReviewResult.unparseable("review-unparseable: missing scores")

    scores: dict[str, float] = {}
    for name in REVIEW_DIMENSIONS:
        # A dimension the reviewer skipped cannot count as passing.
        scores[name] = _score(raw_scores.get(name))

    try:
        return ReviewResult(
            scores=scores,
            overall_score=_optional_float(payload.get("overall_score")),
            issues=_string_list(payload.get("issues")),
            suggestions=_string_list(payload.get("suggestions")),
        )
    except ValidationError as exc:
        logger.warning("review_parse event=invalid_scores reason=%s", exc.errors()[:1])
        return ReviewResult.unparseable("review-unparseable: scores out of range")


def _coerce_analysis(payload: dict[str, Any]) -> dict[str, Any]:
    data = {key: value for key, value in payload.items() if value is not None}
    data.pop("kind", None)
    for key in ("issues", "style_tags"):
        if key in data:
            data[key] = _string_list(data[key])
    return data


def _string_list(value: Any) -> list[str]:
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, list):
        return [str(item) for item in value if str(item).strip()]
    return []


def _score(value: Any) -> float:
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, int | float):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return 0.0
    return 0.0


def _optional_float(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        return float(value)
    return None
