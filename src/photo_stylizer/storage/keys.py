"""Object key layout and content-type helpers for stored images."""

from __future__ import annotations

from datetime import UTC, datetime

_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/heic": "heic",
}


def extension_for(content_type: str) -> str:
    return _EXTENSIONS.get(content_type.lower(), "jpg")


def sniff_image_type(data: bytes, default: str = "image/png") -> str:
    """Guess an image MIME type from its magic bytes."""
    if data.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if data.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    return default


def session_prefix(prefix: str, session_id: str, *, now: datetime | None = None) -> str:
    """Key prefix `<prefix>/sessions/<yyyymmddHHMMSS>_<session_id>/` for one task."""
    stamp = (now or datetime.now(UTC)).strftime("%Y%m%d%H%M%S")
    base = prefix.strip("/")
    head = f"{base}/" if base else ""
    return f"{head}sessions/{stamp}_{session_id}/"
