"""Gemini-backed capability clients using the google-genai SDK."""

from __future__ import annotations

import base64
import logging
import time

from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from photo_stylizer.capabilities import prompts
from photo_stylizer.capabilities.parsing import parse_analysis, parse_review
from photo_stylizer.errors import AnalysisError, GenerationError, ReviewError
from photo_stylizer.storage.keys import sniff_image_type
from photo_stylizer.storage.models import AnalysisSummary, ReviewResult

logger = logging.getLogger(__name__)

# Requests that can fail transiently; anything else is a programming error.
_TRANSIENT_ERRORS = (genai_errors.APIError, TimeoutError, ConnectionError)


def build_client(api_key: str) -> genai.Client:
    if not api_key:
        raise ValueError("GEMINI_API_KEY is required")
    return genai.Client(api_key=api_key)


class _GeminiCapability:
    def __init__(
        self,
        client: genai.Client,
        *,
        model: str,
        max_retries: int = 1,
        backoff_s: float = 0.5,
    ) -> None:
        self._client = client
        self.model = model
        self.max_retries = max(0, max_retries)
        self.backoff_s = max(0.0, backoff_s)

    def _generate_content(
        self,
        contents: list[types.Part | str],
        config: types.GenerateContentConfig | None = None,
    ) -> types.GenerateContentResponse:
        last_error: Exception | None = None
        for attempt in range(self.max_retries + 1):
            try:
                return self._client.models.generate_content(
                    model=self.model,
                    contents=contents,
                    config=config,
                )
            except _TRANSIENT_ERRORS as exc:
                last_error = exc
                logger.warning(
                    "Gemini request failed attempt=%d/%d model=%s reason=%s",
                    attempt + 1,
                    self.max_retries + 1,
                    self.model,
                    exc,
                )
                if attempt < self.max_retries and self.backoff_s > 0:
                    time.sleep(self.backoff_s)
        if last_error is None:
            raise RuntimeError("Gemini request failed with unknown error")
        raise last_error


class GeminiAnalyzer(_GeminiCapability):
    def analyze(self, image: bytes, mime_type: str) -> AnalysisSummary:
        try:
            response = self._generate_content(
                [prompts.ANALYSIS_PROMPT, types.Part.from_bytes(data=image, mime_type=mime_type)]
            )
        except _TRANSIENT_ERRORS as exc:
            raise AnalysisError(f"Image analysis failed: {exc}") from exc
        return parse_analysis(response.text or "")


class GeminiGenerator(_GeminiCapability):
    def __init__(
        self,
        client: genai.Client,
        *,
        model: str,
        aspect_ratio: str = "9:16",
        image_size: str = "1K",
        reference_mime_type: str = "image/jpeg",
        max_retries: int = 1,
        backoff_s: float = 0.5,
    ) -> None:
        super().__init__(client, model=model, max_retries=max_retries, backoff_s=backoff_s)
        self.aspect_ratio = aspect_ratio
        self.image_size = image_size
        self.reference_mime_type = reference_mime_type

    def generate(self, instruction: str, reference_image: bytes | None) -> bytes:
        contents: list[types.Part | str] = [f"{prompts.GENERATION_PREAMBLE}\n\n{instruction}"]
        if reference_image:
            contents.append(
                types.Part.from_bytes(
                    data=reference_image,
                    mime_type=sniff_image_type(reference_image, default=self.reference_mime_type),
                )
            )
            contents.append(prompts.REFERENCE_NOTE)
        config = types.GenerateContentConfig(
            response_modalities=["IMAGE", "TEXT"],
            image_config=types.ImageConfig(
                aspect_ratio=self.aspect_ratio,
                image_size=self.image_size,
            ),
        )
        try:
            response = self._generate_content(contents, config)
        except _TRANSIENT_ERRORS as exc:
            raise GenerationError(f"Image generation failed: {exc}") from exc

        image = _first_inline_image(response)
        if image is None:
            raise GenerationError("Image model returned no image data")
        logger.info("gemini_generate event=image_received model=%s bytes=%d", self.model, len(image))
        return image


class GeminiReviewer(_GeminiCapability):
    def __init__(
        self,
        client: genai.Client,
        *,
        model: str,
        reference_mime_type: str = "image/jpeg",
        candidate_mime_type: str = "image/png",
        max_retries: int = 1,
        backoff_s: float = 0.5,
    ) -> None:
        super().__init__(client, model=model, max_retries=max_retries, backoff_s=backoff_s)
        self.reference_mime_type = reference_mime_type
        self.candidate_mime_type = candidate_mime_type

    def review(self, candidate: bytes, reference_image: bytes) -> ReviewResult:
        contents: list[types.Part | str] = [
            prompts.REVIEW_PROMPT,
            prompts.ORIGINAL_LABEL,
            types.Part.from_bytes(
                data=reference_image,
                mime_type=sniff_image_type(reference_image, default=self.reference_mime_type),
            ),
            prompts.CANDIDATE_LABEL,
            types.Part.from_bytes(
                data=candidate,
                mime_type=sniff_image_type(candidate, default=self.candidate_mime_type),
            ),
        ]
        try:
            response = self._generate_content(contents)
        except _TRANSIENT_ERRORS as exc:
            raise ReviewError(f"Image review failed: {exc}") from exc
        return parse_review(response.text or "")


def _first_inline_image(response: types.GenerateContentResponse) -> bytes | None:
    for candidate in response.candidates or []:
        content = candidate.content
        if content is None or not content.parts:
            continue
        for part in content.parts:
            if part.inline_data and part.inline_data.data:
                data = part.inline_data.data
                if isinstance(data, str):
                    data = base64.b64decode(data)
                return data
    return None
