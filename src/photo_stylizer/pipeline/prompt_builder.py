"""Deterministic generation instruction built from the analysis result."""

from __future__ import annotations

from photo_stylizer.storage.models import AnalysisSummary, RawTextAnalysis

DEFAULT_FACE = "A person with natural features"
DEFAULT_HAIR = "natural hair"
DEFAULT_STYLE_TAGS = ("Festive", "Red", "Gold")

_SCENE = """OUTFIT (replace the original clothing):
- Women: elegant red qipao with gold embroidery and auspicious patterns
- Men: festive red Tang suit with intricate gold embroidery
- Matching festive accessories such as jade jewellery or lucky ornaments

POSE:
- Hands cupped together in front of the chest (traditional New Year salute),
  or holding a red envelope, with a warm genuine smile
- Confident, joyful, celebratory posture

BACKGROUND: New Year scene with red lanterns, golden decorations and plum blossoms.

RETOUCHING: gentle skin smoothing, bright eyes, healthy glow, still photographic.

CRITICAL:
- The face must be exactly recognisable from the original photo
- Show the COMPLETE body from head to feet"""


def build_instruction(analysis: AnalysisSummary) -> str:
    """Return the instruction for the image model.

    Missing analysis fields fall back to DEFAULT_FACE, DEFAULT_HAIR and
    DEFAULT_STYLE_TAGS. Raw (unparsed) analysis text is passed through as the
    subject description.
    """
    if isinstance(analysis, RawTextAnalysis):
        face = analysis.text.strip() or DEFAULT_FACE
        hair = DEFAULT_HAIR
        style_tags = list(DEFAULT_STYLE_TAGS)
        direction = None
    else:
        face = (analysis.face_description or "").strip() or DEFAULT_FACE
        hair = (analysis.hair_description or "").strip() or DEFAULT_HAIR
        style_tags = [tag.strip() for tag in analysis.style_tags if tag.strip()]
        style_tags = style_tags or list(DEFAULT_STYLE_TAGS)
        direction = (analysis.creative_direction or "").strip() or None

    sections = [
        "Create a New Year blessing photo.",
        "IMAGE TYPE: FULL BODY SHOT, the entire person visible from head to toe.",
        f"FACE IDENTITY (MUST PRESERVE EXACTLY):\n{face}\nHair: {hair}",
        _SCENE,
        f"STYLE: Full body portrait, {', '.join(style_tags)}",
    ]
    if direction:
        sections.append(f"CREATIVE DIRECTION: {direction}")
    return "\n\n".join(sections)


def with_review_feedback(instruction: str, suggestions: list[str]) -> str:
    """Append a rejected verdict's suggestions to an instruction."""
    cleaned = [item.strip() for item in suggestions if item.strip()]
    if not cleaned:
        return instruction
    fixes = "\n".join(f"- {item}" for item in cleaned)
    return f"{instruction}\n\nFIX FROM PREVIOUS REVIEW:\n{fixes}"
