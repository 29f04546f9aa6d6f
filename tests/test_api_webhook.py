from __future__ import annotations

from uuid import uuid4

from fastapi.testclient import TestClient
import pytest

import api.main as api_main
from db.models import Mux, Prompt, Video

SECRET = "callback-secret"


@pytest.fixture
def client(monkeypatch, session_factory):
    monkeypatch.setattr(api_main, "SessionLocal", session_factory)
    monkeypatch.setenv("VIDEO_WEBHOOK_SECRET", SECRET)
    return TestClient(api_main.app)


@pytest.fixture
def pair(session_factory):
    session = session_factory()
    try:
        prompt = Prompt(prompt="Explain derivatives", language="english", subject_id=None)
        session.add(prompt)
        session.flush()
        video = Video(id=uuid4(), prompt_id=prompt.id, status="PROCESSING", job_id="job-1")
        mux = Mux(id=uuid4(), prompt_id=prompt.id, video_id=video.id, status="PROCESSING", job_id="job-1")
        session.add_all([video, mux])
        session.commit()
        return video.id, mux.id
    finally:
        session.close()


def _statuses(session_factory, video_id, mux_id) -> tuple[str, str]:
    session = session_factory()
    try:
        return session.get(Video, video_id).status, session.get(Mux, mux_id).status
    finally:
        session.close()


def _completed_body(video_id, mux_id) -> dict:
    return {
        "jobId": "job-1",
        "status": "COMPLETED",
        "videoRecordId": str(video_id),
        "muxRecordId": str(mux_id),
        "videoUrl": "https://cdn.example.com/raw.mp4",
        "finalVideoUrl": "https://cdn.example.com/final.mp4",
    }


@pytest.mark.parametrize("headers", [{}, {"x-callback-secret": "wrong"}])
def test_bad_secret_is_rejected_without_mutation(client, pair, session_factory, headers) -> None:
    video_id, mux_id = pair
    response = client.post(
        "/webhooks/video-generation", json=_completed_body(video_id, mux_id), headers=headers
    )
    assert response.status_code == 401
    assert _statuses(session_factory, video_id, mux_id) == ("PROCESSING", "PROCESSING")


def test_completed_callback_is_idempotent(client, pair, session_factory) -> None:
    video_id, mux_id = pair
    headers = {"x-callback-secret": SECRET}
    body = _completed_body(video_id, mux_id)

    first = client.post("/webhooks/video-generation", json=body, headers=headers)
    assert first.status_code == 200
    assert first.json() == {"success": True, "changed": ["video", "mux"]}

    second = client.post("/webhooks/video-generation", json=body, headers=headers)
    assert second.status_code == 200
    assert second.json() == {"success": True, "changed": []}
    assert _statuses(session_factory, video_id, mux_id) == ("COMPLETED", "COMPLETED")


def test_secret_is_optional_when_unconfigured(client, pair, monkeypatch) -> None:
    monkeypatch.delenv("VIDEO_WEBHOOK_SECRET")
    video_id, mux_id = pair
    response = client.post("/webhooks/video-generation", json=_completed_body(video_id, mux_id))
    assert response.status_code == 200


@pytest.mark.parametrize(
    "body,detail",
    [
        ({"status": "SOMETHING", "videoRecordId": "x"}, "invalid_status"),
        ({"videoRecordId": "x"}, "invalid_status"),
        ({"status": "FAILED", "promptId": "p"}, "no_record_refs"),
    ],
)
def test_invalid_payloads_return_400(client, body, detail) -> None:
    response = client.post(
        "/webhooks/video-generation", json=body, headers={"x-callback-secret": SECRET}
    )
    assert response.status_code == 400
    assert response.json()["detail"] == detail


def test_invalid_json_returns_400(client) -> None:
    response = client.post(
        "/webhooks/video-generation",
        content=b"{not json",
        headers={"x-callback-secret": SECRET, "content-type": "application/json"},
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "invalid_json"


def test_unknown_record_returns_404_without_mutation(client, pair, session_factory) -> None:
    video_id, mux_id = pair
    body = {"status": "FAILED", "videoRecordId": str(uuid4()), "muxRecordId": str(mux_id), "error": "x"}
    response = client.post("/webhooks/video-generation", json=body, headers={"x-callback-secret": SECRET})
    assert response.status_code == 404
    assert _statuses(session_factory, video_id, mux_id) == ("PROCESSING", "PROCESSING")


def test_failed_callback_records_error(client, pair, session_factory) -> None:
    video_id, mux_id = pair
    body = {"status": "FAILED", "videoRecordId": str(video_id), "error": "render crashed"}
    response = client.post("/webhooks/video-generation", json=body, headers={"x-callback-secret": SECRET})
    assert response.status_code == 200
    session = session_factory()
    try:
        video = session.get(Video, video_id)
        assert video.status == "FAILED"
        assert video.error_message == "render crashed"
        assert session.get(Mux, mux_id).status == "PROCESSING"
    finally:
        session.close()


def test_status_regression_returns_409(client, pair) -> None:
    video_id, _mux_id = pair
    body = {"status": "QUEUED", "videoRecordId": str(video_id)}
    response = client.post("/webhooks/video-generation", json=body, headers={"x-callback-secret": SECRET})
    assert response.status_code == 409


def test_bad_render_quality_does_not_break_callbacks(client, pair, session_factory, monkeypatch) -> None:
    monkeypatch.setenv("RENDER_QUALITY", "ultra")
    video_id, mux_id = pair
    rejected = client.post(
        "/webhooks/video-generation",
        json=_completed_body(video_id, mux_id),
        headers={"x-callback-secret": "wrong"},
    )
    assert rejected.status_code == 401
    accepted = client.post(
        "/webhooks/video-generation",
        json=_completed_body(video_id, mux_id),
        headers={"x-callback-secret": SECRET},
    )
    assert accepted.status_code == 200
    assert _statuses(session_factory, video_id, mux_id) == ("COMPLETED", "COMPLETED")
