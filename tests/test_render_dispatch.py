from __future__ import annotations

import socket
from uuid import UUID

import pytest
from sqlalchemy import func, select

from db.models import Mux, Script, Video
from generation.config import GenerationConfig
from generation.intake import create_prompt_for_user
from pipeline.dispatch import RenderJobDispatcher, RenderWorkerClient
from pipeline.errors import DispatchError, ProviderError
from pipeline.status import JobStatus

CONFIG = GenerationConfig(
    backend_url="http://worker.local",
    app_base_url="https://app.example.com/",
    callback_secret="s3cret",
    audio_speed=1.25,
)


class _FakeWorker:
    def __init__(self, response: dict | None = None, error: Exception | None = None) -> None:
        self.response = response if response is not None else {"job_id": "job-1"}
        self.error = error
        self.payloads: list[dict] = []

    def submit_render_job(self, payload: dict) -> dict:
        self.payloads.append(payload)
        if self.error is not None:
            raise self.error
        return self.response


class _RacingWorker(_FakeWorker):
    """Completes the job through the callback path before answering the submit."""

    def __init__(self, session) -> None:
        super().__init__({"jobId": "job-fast"})
        self.session = session

    def submit_render_job(self, payload: dict) -> dict:
        video = self.session.get(Video, UUID(payload["video_record_id"]))
        video.status = "COMPLETED"
        video.video_url = "https://cdn.example.com/v.mp4"
        self.session.commit()
        return super().submit_render_job(payload)


def _setup(session):
    prompt = create_prompt_for_user(session, "Explain derivatives", "english", "u1").prompt
    script = Script(
        prompt_id=prompt.id,
        explanation="Rates",
        script="# Scene 1\nclass Scene1(Scene): pass",
        narration="Hello",
    )
    session.add(script)
    session.commit()
    return prompt, script


def _enqueue(session, worker, **kwargs):
    prompt, script = _setup(session)
    job = RenderJobDispatcher(worker, CONFIG).enqueue_video_processing_job(
        session,
        prompt=prompt,
        script=script,
        audio_url="https://cdn.example.com/a.mp3",
        language="english",
        **kwargs,
    )
    return prompt, script, job


def test_successful_submit_moves_pair_to_processing(session) -> None:
    worker = _FakeWorker({"job_id": "job-1"})
    prompt, script, job = _enqueue(session, worker)

    assert job.job_id == "job-1"
    assert job.status is JobStatus.PROCESSING
    assert job.local_job_id is False
    video = session.execute(select(Video)).scalar_one()
    mux = session.execute(select(Mux)).scalar_one()
    assert (video.status, mux.status) == ("PROCESSING", "PROCESSING")
    assert video.job_id == mux.job_id == "job-1"
    assert mux.video_id == video.id

    payload = worker.payloads[0]
    assert payload["script_code"] == script.script
    assert payload["scene_name"] == "auto"
    assert payload["quality"] == "low"
    assert payload["prompt_id"] == prompt.prompt_id
    assert payload["script_id"] == script.script_id
    assert payload["video_record_id"] == str(video.id)
    assert payload["mux_record_id"] == str(mux.id)
    assert payload["audio_url"] == "https://cdn.example.com/a.mp3"
    assert payload["output_name"] == f"final_{script.script_id}"
    assert payload["bucket_name"] == "muxvideos"
    assert payload["audio_speed"] == 1.25
    assert payload["language"] == "english"
    assert payload["callback_url"] == "https://app.example.com/webhooks/video-generation"
    assert payload["callback_secret"] == "s3cret"


def test_camel_case_job_id_and_overrides(session) -> None:
    worker = _FakeWorker({"jobId": "job-2"})
    _prompt, _script, job = _enqueue(session, worker, quality="HIGH", manim_script="print('x')")
    assert job.job_id == "job-2"
    assert worker.payloads[0]["quality"] == "high"
    assert worker.payloads[0]["script_code"] == "print('x')"


def test_missing_job_id_falls_back_to_local_id(session) -> None:
    _prompt, _script, job = _enqueue(session, _FakeWorker({"status": "accepted"}))
    assert job.local_job_id is True
    assert job.job_id.startswith("local-")
    assert session.execute(select(Video)).scalar_one().job_id == job.job_id


def test_http_rejection_marks_pair_failed_with_detail(session) -> None:
    error = ProviderError(
        code="http_422",
        message='{"detail": "script_code is empty"}',
        provider="render_worker",
        status=422,
    )
    with pytest.raises(DispatchError) as excinfo:
        _enqueue(session, _FakeWorker(error=error))
    assert excinfo.value.detail == "script_code is empty"
    assert excinfo.value.status == 422
    video = session.execute(select(Video)).scalar_one()
    mux = session.execute(select(Mux)).scalar_one()
    assert (video.status, mux.status) == ("FAILED", "FAILED")
    assert video.error_message == mux.error_message == "script_code is empty"
    assert video.video_url is None and mux.final_video_url is None


def test_raw_body_used_when_detail_missing(session) -> None:
    error = ProviderError(code="http_500", message="Internal Server Error", provider="render_worker", status=500)
    with pytest.raises(DispatchError):
        _enqueue(session, _FakeWorker(error=error))
    assert session.execute(select(Video)).scalar_one().error_message == "Internal Server Error"


def test_transport_failure_marks_pair_failed(session) -> None:
    error = ProviderError(code="network_error", message="Connection refused", provider="render_worker")
    with pytest.raises(DispatchError, match="Connection refused"):
        _enqueue(session, _FakeWorker(error=error))
    statuses = session.execute(select(Video.status)).scalars().all() + session.execute(
        select(Mux.status)
    ).scalars().all()
    assert statuses == ["FAILED", "FAILED"]


def test_video_and_mux_are_created_together(session) -> None:
    for worker in (_FakeWorker(), _FakeWorker(error=ProviderError(code="x", message="y", provider="w", status=500))):
        try:
            _enqueue(session, worker)
        except DispatchError:
            pass
    videos = session.execute(select(func.count()).select_from(Video)).scalar_one()
    muxes = session.execute(select(func.count()).select_from(Mux)).scalar_one()
    assert videos == muxes == 2


def test_early_callback_is_not_overwritten(session) -> None:
    _prompt, _script, job = _enqueue(session, _RacingWorker(session))
    video = session.execute(select(Video)).scalar_one()
    mux = session.execute(select(Mux)).scalar_one()
    assert video.status == "COMPLETED"
    assert video.video_url == "https://cdn.example.com/v.mp4"
    assert video.job_id == "job-fast"
    assert mux.status == "PROCESSING"
    assert job.status is JobStatus.COMPLETED


def test_invalid_quality_is_rejected_before_any_write(session) -> None:
    with pytest.raises(ValueError):
        _enqueue(session, _FakeWorker(), quality="ultra")
    assert session.execute(select(func.count()).select_from(Video)).scalar_one() == 0


def test_worker_that_never_answers_marks_pair_failed(session) -> None:
    with socket.create_server(("127.0.0.1", 0)) as server:
        host, port = server.getsockname()[:2]
        worker = RenderWorkerClient(f"http://{host}:{port}", timeout_s=0.5)
        with pytest.raises(DispatchError) as excinfo:
            _enqueue(session, worker)
    assert excinfo.value.status is None
    statuses = session.execute(select(Video.status)).scalars().all() + session.execute(
        select(Mux.status)
    ).scalars().all()
    assert statuses == ["FAILED", "FAILED"]
