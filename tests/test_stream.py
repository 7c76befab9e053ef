import base64
import json

from conftest import (
    APPROVED,
    JPEG_BYTES,
    PNG_BYTES,
    REJECTED,
    CountingGenerator,
    InlineRunner,
    ScriptedAnalyzer,
    ScriptedReviewer,
)
from photo_stylizer.reporting.stream import chunk_payload, format_sse, stream_process
from photo_stylizer.storage.models import StructuredAnalysis


def parse_frames(text: str) -> list[tuple[str, dict]]:
    frames = []
    for block in text.strip().split("\n\n"):
        lines = dict(line.split(": ", 1) for line in block.splitlines())
        frames.append((lines["event"], json.loads(lines["data"])))
    return frames


def test_format_sse_frame() -> None:
    assert format_sse("step", {"id": "upload"}) == 'event: step\ndata: {"id": "upload"}\n\n'


def test_chunk_payload_reassembles() -> None:
    data = bytes(range(256)) * 50
    chunks = chunk_payload(data, 1024)
    assert all(len(chunk) == 1024 for chunk in chunks[:-1])
    assert base64.b64decode("".join(chunks)) == data


def test_stream_process_success_frames(make_orchestrator) -> None:
    big_image = PNG_BYTES + b"\x00" * 5000
    orchestrator = make_orchestrator(
        generator=CountingGenerator(image=big_image),
        reviewer=ScriptedReviewer(REJECTED, APPROVED),
    )

    frames = parse_frames(
        "".join(stream_process(orchestrator, InlineRunner(), JPEG_BYTES, "image/jpeg", chunk_size=1024))
    )
    names = [name for name, _ in frames]

    assert frames[0] == ("step", {"id": "upload", "status": "processing"})
    assert frames[1] == ("step", {"id": "upload", "status": "completed"})
    assert names.count("complete") == 1
    assert names[-1] == "complete"
    assert "error" not in names

    progress = [data for name, data in frames if name == "progress"]
    assert [(p["stage"], p["attempt"]) for p in progress] == [
        ("GENERATING", 1),
        ("REVIEWING", 1),
        ("REGENERATING", 1),
        ("GENERATING", 2),
        ("REVIEWING", 2),
    ]
    assert progress[2]["review"]["approved"] is False

    chunks = [data for name, data in frames if name == "result_chunk"]
    assert [c["index"] for c in chunks] == list(range(len(chunks)))
    assert {c["total"] for c in chunks} == {len(chunks)}
    assert base64.b64decode("".join(c["data"] for c in chunks)) == big_image

    complete = frames[-1][1]
    assert complete["mimeType"] == "image/png"
    assert complete["chunks"] == len(chunks)
    assert complete["approved"] is True
    assert complete["attempts"] == 2
    assert complete["analysis"]["kind"] == "structured"


def test_stream_process_infeasible_ends_with_error(make_orchestrator) -> None:
    orchestrator = make_orchestrator(
        analyzer=ScriptedAnalyzer(StructuredAnalysis(is_feasible=False, description="Too blurry"))
    )

    frames = parse_frames(
        "".join(stream_process(orchestrator, InlineRunner(), JPEG_BYTES, "image/jpeg"))
    )

    assert frames[-1] == ("error", {"message": "Too blurry", "code": "INFEASIBLE_INPUT"})
    assert ("step", {"id": "audit", "status": "failed"}) in frames
    assert not any(name in ("complete", "result_chunk") for name, _ in frames)


def test_process_endpoint_streams_sse(build_client) -> None:
    client = build_client()

    response = client.post("/process", files={"image": ("me.jpg", JPEG_BYTES, "image/jpeg")})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    frames = parse_frames(response.text)
    assert frames[-1][0] == "complete"


def test_process_endpoint_validates_before_streaming(build_client) -> None:
    response = build_client().post("/process", data={})
    assert response.status_code == 400
    assert response.json()["code"] == "NO_IMAGE"
